"""
HTTP server for EXEX.

Exposes the dispatcher over a small JSON API:

    GET  /health        Liveness check
    POST /api/exec      Run a command
    POST /api/read      Read a file
    POST /api/write     Write a file
    POST /api/scan      List a directory
    POST /api/delete    Delete a file or directory
    POST /api/create    Create a file or directory
    POST /api/rename    Rename or move a file or directory
    POST /api/open      Launch an application

Status codes:
    200 - the operation ran (file operations report OS failures in the
          body with success=false)
    403 - the policy engine denied the request
    422 - the request body is malformed
    500 - exec could not start the process, or an internal error occurred

Endpoints are plain (non-async) functions so FastAPI runs them on its
threadpool; path canonicalization and the OS operations block.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from exex import __version__
from exex.dispatcher import DispatchResult, Dispatcher
from exex.errors import (
    ExexError,
    OperationNotFoundError,
    PolicyDeniedError,
)
from exex.logging_utils import parse_level
from exex.policy import PolicyEngine
from exex.schema import (
    Config,
    CreateRequest,
    CreateResponse,
    DeleteRequest,
    DeleteResponse,
    ErrorResponse,
    ExecRequest,
    ExecResponse,
    HealthResponse,
    OpenAppRequest,
    OpenAppResponse,
    OperationStatus,
    ReadRequest,
    ReadResponse,
    RenameRequest,
    RenameResponse,
    ScanRequest,
    ScanResponse,
    WriteRequest,
    WriteResponse,
)
from exex.store import AuditDB
from exex.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

SERVICE_NAME = "EXEX"


def create_app(
    config: Config,
    audit_db_path: str | None = None,
    registry: ToolRegistry | None = None,
    working_dir: str | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Daemon configuration (shared, never mutated)
        audit_db_path: SQLite audit trail (default: config.logging.audit_db;
            None disables the trail)
        registry: Tool registry (default: the built-in tools)
        working_dir: Base for relative paths (default: process cwd)
    """
    policy = PolicyEngine.from_config(config)
    db_path = audit_db_path or config.logging.audit_db
    audit = AuditDB(db_path) if db_path else None
    dispatcher = Dispatcher(
        policy,
        registry=registry,
        exec_config=config.execution,
        audit=audit,
        working_dir=working_dir,
    )

    _log_rules(policy)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        logger.info("Shutting down EXEX server")
        policy.close()
        if audit is not None:
            audit.close()

    app = FastAPI(
        title="EXEX",
        description="Local execution daemon with path and command policy",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.policy = policy
    app.state.dispatcher = dispatcher
    app.state.audit = audit

    @app.exception_handler(ExexError)
    async def exex_error_handler(request: Request, exc: ExexError) -> JSONResponse:
        logger.error("[API] E%s: %s", exc.code, exc.message)
        return JSONResponse(
            status_code=_status_for(exc),
            content={"error": exc.message, "details": exc.to_dict()},
        )

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="healthy", service=SERVICE_NAME, version=__version__)

    @app.post("/api/exec", response_model=ExecResponse)
    def exec_command(req: ExecRequest, request: Request) -> JSONResponse:
        result = _dispatch(request, "exec", req)
        if result.status == OperationStatus.DENIED:
            return _json(403, ErrorResponse(
                error=f"Command '{req.command}' is not allowed by security policy: "
                f"{result.policy_decision.reason}",
            ))
        if result.status == OperationStatus.ERROR:
            return _json(500, ErrorResponse(error=result.error or "Failed to execute command"))
        return _json(200, ExecResponse(**result.output))

    @app.post("/api/read", response_model=ReadResponse)
    def read_file(req: ReadRequest, request: Request) -> JSONResponse:
        return _file_response(_dispatch(request, "fs.read", req), ReadResponse)

    @app.post("/api/write", response_model=WriteResponse)
    def write_file(req: WriteRequest, request: Request) -> JSONResponse:
        return _file_response(_dispatch(request, "fs.write", req), WriteResponse)

    @app.post("/api/scan", response_model=ScanResponse)
    def scan_directory(req: ScanRequest, request: Request) -> JSONResponse:
        return _file_response(_dispatch(request, "fs.scan", req), ScanResponse)

    @app.post("/api/delete", response_model=DeleteResponse)
    def delete_item(req: DeleteRequest, request: Request) -> JSONResponse:
        return _file_response(_dispatch(request, "fs.delete", req), DeleteResponse)

    @app.post("/api/create", response_model=CreateResponse)
    def create_item(req: CreateRequest, request: Request) -> JSONResponse:
        return _file_response(_dispatch(request, "fs.create", req), CreateResponse)

    @app.post("/api/rename", response_model=RenameResponse)
    def rename_item(req: RenameRequest, request: Request) -> JSONResponse:
        return _file_response(_dispatch(request, "fs.rename", req), RenameResponse)

    @app.post("/api/open", response_model=OpenAppResponse)
    def open_application(req: OpenAppRequest, request: Request) -> JSONResponse:
        return _file_response(_dispatch(request, "app.open", req), OpenAppResponse)

    return app


def _dispatch(request: Request, operation: str, body: BaseModel) -> DispatchResult:
    dispatcher: Dispatcher = request.app.state.dispatcher
    return dispatcher.dispatch(operation, body.model_dump())


def _json(status_code: int, model: BaseModel) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(mode="json"))


def _file_response(result: DispatchResult, model: type[BaseModel]) -> JSONResponse:
    if result.status == OperationStatus.DENIED:
        return _json(403, model(
            success=False,
            error=f"Access denied: {result.policy_decision.reason}",
        ))
    if result.status == OperationStatus.ERROR:
        return _json(200, model(success=False, error=result.error))
    return _json(200, model(success=True, **(result.output or {})))


def _status_for(exc: ExexError) -> int:
    if isinstance(exc, PolicyDeniedError):
        return 403
    if isinstance(exc, OperationNotFoundError):
        return 404
    return 500


def _log_rules(policy: PolicyEngine) -> None:
    rules = policy.rules
    logger.info("Loaded %d disallowed paths", len(rules.disallowed_paths))
    for path in sorted(rules.disallowed_paths, key=str):
        logger.info("Disallowed: %s", path)
    logger.info("Loaded %d allowed path exceptions", len(rules.allowed_paths))
    for path in sorted(rules.allowed_paths, key=str):
        logger.info("Allowed exception: %s", path)
    if rules.command_whitelist:
        logger.info("Command whitelist: %s", ", ".join(sorted(rules.command_whitelist)))
    if rules.command_blacklist:
        logger.info("Command blacklist: %s", ", ".join(sorted(rules.command_blacklist)))


def run_server(
    config: Config,
    host: str | None = None,
    port: int | None = None,
    audit_db_path: str | None = None,
) -> None:
    """Serve the API with uvicorn until interrupted."""
    app = create_app(config, audit_db_path=audit_db_path)
    bind_host = host or config.server.host
    bind_port = port or config.server.port
    logger.info("Starting server on http://%s:%s", bind_host, bind_port)
    uvicorn.run(
        app,
        host=bind_host,
        port=bind_port,
        log_level=logging.getLevelName(parse_level(config.logging.level)).lower(),
        access_log=False,
    )


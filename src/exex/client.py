"""
Python client for the EXEX HTTP API.

Usage:
    with ExexClient("http://127.0.0.1:8080") as client:
        print(client.health().status)
        result = client.exec("echo", ["hello"])
        print(result.stdout)

Denied requests raise PolicyDeniedError; an exec that cannot start its
process raises OperationFailedError. File operations that fail on the OS
side return their response model with success=False, like the API does.

Any httpx.Client can be injected, including FastAPI's TestClient:
    client = ExexClient(http_client=TestClient(create_app(config)))
"""

from typing import Any, TypeVar

import httpx
from pydantic import BaseModel

from exex.errors import OperationFailedError, PolicyDeniedError
from exex.schema import (
    CreateResponse,
    DeleteResponse,
    ExecResponse,
    HealthResponse,
    OpenAppResponse,
    ReadResponse,
    RenameResponse,
    ScanResponse,
    WriteResponse,
)

DEFAULT_BASE_URL = "http://127.0.0.1:8080"

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class ExexClient:
    """
    Thin typed wrapper around the EXEX HTTP API.

    Attributes:
        base_url: Daemon address
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ExexClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Endpoints
    # =========================================================================

    def health(self) -> HealthResponse:
        response = self._client.get("/health")
        response.raise_for_status()
        return HealthResponse.model_validate(response.json())

    def exec(
        self,
        command: str,
        args: list[str] | None = None,
        cwd: str | None = None,
    ) -> ExecResponse:
        """
        Run a command. Without args the command line goes through the shell.

        Raises:
            PolicyDeniedError: If the daemon's policy denied the command
            OperationFailedError: If the process could not be started
        """
        payload = {"command": command, "args": args, "cwd": cwd}
        response = self._client.post("/api/exec", json=payload)
        if response.status_code == 403:
            raise PolicyDeniedError(operation="exec", reason=_error_text(response))
        if response.status_code == 500:
            raise OperationFailedError(
                operation="exec",
                operation_args=payload,
                underlying_error=_error_text(response),
            )
        response.raise_for_status()
        return ExecResponse.model_validate(response.json())

    def read(self, path: str) -> ReadResponse:
        return self._post("fs.read", "/api/read", {"path": path}, ReadResponse)

    def write(self, path: str, content: str) -> WriteResponse:
        return self._post(
            "fs.write", "/api/write", {"path": path, "content": content}, WriteResponse
        )

    def scan(
        self,
        path: str,
        recursive: bool = False,
        include_hidden: bool = False,
    ) -> ScanResponse:
        payload = {"path": path, "recursive": recursive, "include_hidden": include_hidden}
        return self._post("fs.scan", "/api/scan", payload, ScanResponse)

    def delete(self, path: str, recursive: bool = False) -> DeleteResponse:
        payload = {"path": path, "recursive": recursive}
        return self._post("fs.delete", "/api/delete", payload, DeleteResponse)

    def create(
        self,
        path: str,
        is_directory: bool = False,
        content: str | None = None,
    ) -> CreateResponse:
        payload = {"path": path, "is_directory": is_directory, "content": content}
        return self._post("fs.create", "/api/create", payload, CreateResponse)

    def rename(self, from_path: str, to_path: str) -> RenameResponse:
        payload = {"from_path": from_path, "to_path": to_path}
        return self._post("fs.rename", "/api/rename", payload, RenameResponse)

    def open(
        self,
        application: str,
        args: list[str] | None = None,
        cwd: str | None = None,
    ) -> OpenAppResponse:
        payload = {"application": application, "args": args, "cwd": cwd}
        return self._post("app.open", "/api/open", payload, OpenAppResponse)

    def _post(
        self,
        operation: str,
        url: str,
        payload: dict[str, Any],
        model: type[ResponseT],
    ) -> ResponseT:
        response = self._client.post(url, json=payload)
        if response.status_code == 403:
            raise PolicyDeniedError(operation=operation, reason=_error_text(response))
        response.raise_for_status()
        return model.model_validate(response.json())


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text

"""
Integration tests for the Python client.

The client talks to the in-process app through the TestClient, which is
an httpx.Client and can be injected directly.
"""

import os
from pathlib import Path
from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient

from exex import __version__
from exex.client import ExexClient
from exex.errors import OperationFailedError, PolicyDeniedError
from exex.schema import Config
from exex.server import create_app


@pytest.fixture
def client(config: Config, sandbox: Path) -> Generator[ExexClient, None, None]:
    app = create_app(config, working_dir=str(sandbox / "work"))
    with TestClient(app) as http_client:
        with ExexClient(http_client=http_client) as exex_client:
            yield exex_client


class TestExexClient:
    """Tests for the typed client against a live app."""

    def test_health(self, client: ExexClient) -> None:
        health = client.health()
        assert health.status == "healthy"
        assert health.version == __version__

    def test_write_read(self, client: ExexClient) -> None:
        assert client.write("hello.txt", "hi there").success is True
        assert client.read("hello.txt").content == "hi there"

    def test_read_denied_raises(self, client: ExexClient, sandbox: Path) -> None:
        with pytest.raises(PolicyDeniedError) as exc_info:
            client.read(str(sandbox / "secret" / "key.txt"))
        assert exc_info.value.operation == "fs.read"
        assert exc_info.value.reason.startswith("Access denied: ")

    def test_os_failure_in_body(self, client: ExexClient) -> None:
        response = client.read("absent.txt")
        assert response.success is False
        assert response.error.startswith("Failed to read file: ")

    def test_scan(self, client: ExexClient) -> None:
        response = client.scan(".", include_hidden=True)
        assert [item.name for item in response.items] == ["notes.txt"]
        assert response.total_count == 1

    def test_create_rename_delete(self, client: ExexClient, sandbox: Path) -> None:
        created = client.create("draft.txt", content="v1")
        assert created.created_path == str(sandbox / "work" / "draft.txt")
        assert client.rename("draft.txt", "final.txt").new_path == "final.txt"
        assert client.delete("final.txt").deleted_count == 1
        assert not (sandbox / "work" / "final.txt").exists()

    @pytest.mark.skipif(os.name == "nt", reason="uses POSIX utilities")
    def test_exec(self, client: ExexClient) -> None:
        result = client.exec("echo", ["hello"])
        assert result.stdout == "hello\n"
        assert result.exit_code == 0

    def test_exec_denied_raises(self, client: ExexClient) -> None:
        with pytest.raises(PolicyDeniedError) as exc_info:
            client.exec("shutdown -h now")
        assert "not allowed by security policy" in exc_info.value.reason

    def test_exec_spawn_failure_raises(self, client: ExexClient) -> None:
        with pytest.raises(OperationFailedError) as exc_info:
            client.exec("exex-no-such-binary-anywhere", [])
        assert exc_info.value.operation == "exec"


class TestClientTransport:
    """Tests for response handling independent of the server."""

    def test_non_json_error_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text="forbidden")

        http_client = httpx.Client(
            base_url="http://exex.test",
            transport=httpx.MockTransport(handler),
        )
        with ExexClient(http_client=http_client) as client:
            with pytest.raises(PolicyDeniedError) as exc_info:
                client.read("/etc/shadow")
        assert exc_info.value.reason == "forbidden"
        http_client.close()

    def test_unexpected_status_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, json={"error": "bad gateway"})

        http_client = httpx.Client(
            base_url="http://exex.test",
            transport=httpx.MockTransport(handler),
        )
        with ExexClient(http_client=http_client) as client:
            with pytest.raises(httpx.HTTPStatusError):
                client.scan("/tmp")
        http_client.close()

    def test_owned_client_is_closed(self) -> None:
        client = ExexClient("http://127.0.0.1:1")
        client.close()
        assert client._client.is_closed

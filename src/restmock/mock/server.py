"""
RestMock Server

FastAPI transport for the mock engine.

Features:
- Single catch-all route feeding every request to the engine
- Engine runs on a worker thread pool (blocking latency and file I/O)
- Config file hot reload while serving
- Background server handle for test suites (ephemeral port)
"""

import logging
import os
import threading
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import anyio.to_thread
import uvicorn
from fastapi import FastAPI, Request
from fastapi import Response as HTTPResponse
from starlette.concurrency import run_in_threadpool

from .. import __version__
from ..config import MockConfig, apply_overrides, load_config
from .engine import Engine
from .http import IncomingRequest, Response
from .reload import ConfigWatcher

logger = logging.getLogger("restmock.mock")

ALL_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def worker_pool_size() -> int:
    """Worker threads available for in-flight requests."""
    return max(4, os.cpu_count() or 1)


def to_incoming(request: Request, body: bytes) -> IncomingRequest:
    """Convert a Starlette request into the engine's request type."""
    headers: Dict[str, List[str]] = {}
    for name, value in request.headers.items():
        headers.setdefault(name, []).append(value)

    return IncomingRequest(
        method=request.method,
        path=request.url.path,
        query=request.url.query,
        headers=headers,
        body=body
    )


def to_http_response(response: Response) -> HTTPResponse:
    """Convert an engine response into a Starlette response."""
    return HTTPResponse(
        content=response.body or b'',
        status_code=response.status,
        headers=response.headers
    )


class MockServer:
    """
    Config-driven mock HTTP server.

    Example:
        server = MockServer('mock.yml')
        server.start(host='0.0.0.0', port=8080)

        # Or for tests
        client = TestClient(MockServer('mock.yml').get_app())
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        config: Optional[MockConfig] = None,
        hot_reload: Optional[bool] = None,
        overrides: Optional[Dict[str, Any]] = None,
        engine: Optional[Engine] = None
    ):
        """
        Initialize mock server.

        Args:
            config_path: Path to YAML/JSON config (loaded when config is None)
            config: Already parsed configuration
            hot_reload: Override features.hotReload
            overrides: apply_overrides() arguments (kept across reloads)
            engine: Pre-built engine (config and config_path are then ignored)

        Raises:
            ConfigError: If the config cannot be loaded or fails strict validation
        """
        if engine is None:
            if config is None:
                if config_path is None:
                    raise ValueError("MockServer needs a config_path, a config or an engine")
                config = load_config(config_path)
            apply_overrides(config, **(overrides or {}))
            engine = Engine(config, config_path=config_path, overrides=overrides)

        self.engine = engine
        self.logger = logging.getLogger("restmock.mock")

        if hot_reload is None:
            hot_reload = engine.config.features.hot_reload
        self.watcher: Optional[ConfigWatcher] = None
        if hot_reload:
            if engine.config_path:
                self.watcher = ConfigWatcher(engine)
            else:
                self.logger.warning("hotReload enabled but no config file to watch")

        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with the catch-all route."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            limiter = anyio.to_thread.current_default_thread_limiter()
            limiter.total_tokens = worker_pool_size()
            if self.watcher is not None:
                self.watcher.start()
            try:
                yield
            finally:
                if self.watcher is not None:
                    self.watcher.stop()

        # Built-in docs routes would shadow configured paths
        app = FastAPI(
            title="RestMock",
            description="Configurable mock HTTP server",
            version=__version__,
            lifespan=lifespan,
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )

        @app.api_route("/{path:path}", methods=ALL_METHODS)
        async def mock_request(request: Request, path: str):
            """Hand every request to the engine."""
            return await self._handle_request(request)

        return app

    async def _handle_request(self, request: Request) -> HTTPResponse:
        body = await request.body()
        incoming = to_incoming(request, body)
        response = await run_in_threadpool(self.engine.handle, incoming)
        return to_http_response(response)

    def start(
        self,
        host: str = "127.0.0.1",
        port: Optional[int] = None,
        log_level: str = "info",
        access_log: bool = True
    ):
        """
        Start the mock server and block until interrupted.

        Args:
            host: Host to bind to
            port: Port to bind to (overrides config)
            log_level: uvicorn log level
            access_log: Enable access logging
        """
        config = self.engine.config
        actual_port = config.port if port is None else port
        self.engine.bound_port = actual_port

        print("RestMock server starting...")
        print(f"   Listening: http://{host}:{actual_port}")
        print(f"   Routes: {len(self.engine.snapshot.routes)}")
        for summary in self.engine.snapshot.routes.summaries():
            print(f"     {summary}")
        if config.auth_token:
            print("   Auth: bearer token required on mutating routes")
        if config.chaos_fail_rate > 0 or config.artificial_latency_ms > 0:
            print(f"   Chaos: {config.chaos_fail_rate * 100:.0f}% failure rate, "
                  f"{config.artificial_latency_ms}ms latency")
        if self.engine.record_replay.recording or self.engine.record_replay.replaying:
            print(f"   Record/replay: {config.features.record_replay.mode} "
                  f"({config.features.record_replay.file})")
        if self.watcher is not None:
            print(f"   Hot reload: watching {self.watcher.config_path}")
        print()

        uvicorn.run(
            self.app,
            host=host,
            port=actual_port,
            log_level=log_level,
            access_log=access_log
        )

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app


class ServerHandle:
    """
    Mock server running on a background thread.

    Example:
        with ServerHandle(MockServer('mock.yml')) as handle:
            requests_against(handle.base_url)
    """

    def __init__(self, server: MockServer, host: str = "127.0.0.1", port: int = 0, log_level: str = "warning"):
        """
        Initialize the handle (the server is not started yet).

        Args:
            server: Mock server to run
            host: Host to bind to
            port: Port to bind to (0 picks a free port)
            log_level: uvicorn log level
        """
        self.server = server
        self.host = host
        self.port = port
        self.log_level = log_level
        self._uvicorn: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def engine(self) -> Engine:
        return self.server.engine

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self, timeout: float = 10.0) -> 'ServerHandle':
        """
        Boot uvicorn and wait until the socket is listening.

        Raises:
            RuntimeError: If the server does not come up within timeout
        """
        config = uvicorn.Config(
            self.server.app,
            host=self.host,
            port=self.port,
            log_level=self.log_level,
            access_log=False,
            lifespan="on"
        )
        self._uvicorn = uvicorn.Server(config)
        self._thread = threading.Thread(target=self._uvicorn.run, name="restmock-server", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._uvicorn.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.stop()
                raise RuntimeError(f"Mock server failed to start on {self.host}:{self.port}")
            time.sleep(0.01)

        self.port = self._uvicorn.servers[0].sockets[0].getsockname()[1]
        self.engine.bound_port = self.port
        logger.info(f"Mock server running at {self.base_url}")
        return self

    def stop(self, timeout: float = 5.0):
        """Ask uvicorn to exit and wait for the thread."""
        if self._uvicorn is not None:
            self._uvicorn.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def __enter__(self) -> 'ServerHandle':
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()


def create_mock_server(
    config_path: str,
    port: Optional[int] = None,
    auth_token: Optional[str] = None,
    hot_reload: Optional[bool] = None,
    record_replay_mode: Optional[str] = None,
    record_replay_file: Optional[str] = None
) -> MockServer:
    """
    Convenience function to load a config file, apply overrides and build a server.

    Args:
        config_path: Path to YAML/JSON config
        port: Override port
        auth_token: Override authToken
        hot_reload: Override features.hotReload
        record_replay_mode: Override features.recordReplay.mode
        record_replay_file: Override features.recordReplay.file

    Returns:
        Configured MockServer instance

    Example:
        server = create_mock_server('mock.yml', port=9090, auth_token='secret')
        server.start()
    """
    overrides = {
        key: value for key, value in {
            'port': port,
            'auth_token': auth_token,
            'record_replay_mode': record_replay_mode,
            'record_replay_file': record_replay_file
        }.items() if value is not None
    }
    return MockServer(config_path=config_path, hot_reload=hot_reload, overrides=overrides)

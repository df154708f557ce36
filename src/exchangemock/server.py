"""
ExchangeMock Server

FastAPI-based HTTP mock server serving declared network exchanges.

Features:
- Exact method + path routing (path parameters use FastAPI's {name} syntax)
- Response sequences for retry/polling simulation
- Per-response and server-wide delays
- Empty, text, bytes, JSON and file payloads
- Read-only admin API (metrics, request counts, exchanges)

Lifecycle:
    UNCONFIGURED -> configure() -> CONFIGURED -> run() -> RUNNING -> stop() -> STOPPED
"""

from __future__ import annotations  # Enable forward references for type hints

import enum
import logging
import threading
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
import uvicorn

from .config import ServerConfiguration
from .errors import (
    InstanceAlreadyRunningError,
    ServerNotConfiguredError,
    ServerNotRunningError,
    ServerStartError,
)
from .materializer import ResponseMaterializer
from .metrics import ServerMetrics
from .router import register_exchanges
from .tracker import RequestTracker


class ServerState(enum.Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    RUNNING = "running"
    STOPPED = "stopped"


class MockServer:
    """
    Mock HTTP server for declared request/response exchanges.

    Each declared exchange answers with the next response of its sequence;
    once the sequence is exhausted, the last response repeats.

    Example:
        config = ServerConfiguration.from_file('mocks.yaml')

        server = MockServer()
        server.configure(config)
        server.run()            # Returns once the server accepts connections
        ...
        server.stop()

        # Or block until Ctrl+C
        server.configure(config)
        server.serve_forever()
    """

    def __init__(self, startup_timeout: float = 10.0):
        """
        Initialize mock server.

        Args:
            startup_timeout: Seconds run() waits for the transport to accept connections
        """
        self.startup_timeout = startup_timeout
        self.state = ServerState.UNCONFIGURED
        self.config: Optional[ServerConfiguration] = None
        self.app: Optional[FastAPI] = None
        self.tracker: Optional[RequestTracker] = None
        self.materializer: Optional[ResponseMaterializer] = None
        self.metrics: Optional[ServerMetrics] = None

        self._uvicorn: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

        self.logger = logging.getLogger("exchangemock.server")

    @property
    def is_running(self) -> bool:
        return self.state == ServerState.RUNNING

    @property
    def host(self) -> Optional[str]:
        return self.config.host if self.config else None

    @property
    def port(self) -> Optional[int]:
        """Configured port, or the port actually bound once running (useful with port 0)."""
        if self.config is None:
            return None
        if self.is_running and self._uvicorn is not None and self._uvicorn.servers:
            sockets = self._uvicorn.servers[0].sockets
            if sockets:
                return sockets[0].getsockname()[1]
        return self.config.port

    @property
    def address_description(self) -> Optional[str]:
        """Base URL of the server, or None before configure()."""
        if self.host is None or self.port is None:
            return None
        return f"http://{self.host}:{self.port}"

    def configure(self, configuration: ServerConfiguration):
        """
        Configure the server and register its routes.

        Must be called before run(). A fresh request tracker is created, so
        every response sequence starts over.

        Args:
            configuration: Validated on entry

        Raises:
            InstanceAlreadyRunningError: If the server is configured or running
            InvalidConfigurationError: If the configuration is invalid
        """
        if self.state not in (ServerState.UNCONFIGURED, ServerState.STOPPED):
            raise InstanceAlreadyRunningError()

        configuration.validate()

        self.config = configuration
        self.logger.setLevel(configuration.python_log_level)

        self.tracker = RequestTracker()
        self.metrics = ServerMetrics()
        self.materializer = ResponseMaterializer(default_delay=configuration.delay)
        self.app = self._create_app()

        self.state = ServerState.CONFIGURED
        self.logger.info(
            f"Configured {len(configuration.exchanges)} exchanges "
            f"(default delay: {configuration.delay}s)"
        )

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""
        app = FastAPI(
            title="ExchangeMock Server",
            description="Mock HTTP server serving declared request/response exchanges",
            version="1.0.0"
        )

        # Admin routes go first so they win over any catch-all path parameter
        if self.config.admin_enabled:
            self._register_admin_routes(app)

        register_exchanges(app, self.config.exchanges, self.tracker, self.materializer, self.metrics)
        return app

    def _register_admin_routes(self, app: FastAPI):
        prefix = self.config.admin_prefix

        @app.get(f"{prefix}/metrics")
        async def get_metrics():
            """Get server metrics."""
            return JSONResponse(content=self.metrics.to_dict())

        @app.get(f"{prefix}/requests")
        async def get_requests():
            """Get how many times each exchange was hit."""
            counts = self.tracker.snapshot()
            requests = [
                {'method': method, 'path': path, 'count': count}
                for (method, path), count in counts.items()
            ]
            return JSONResponse(content={
                'total': sum(counts.values()),
                'requests': requests
            })

        @app.get(f"{prefix}/exchanges")
        async def list_exchanges():
            """List declared exchanges."""
            exchanges = [self._describe_exchange(exchange) for exchange in self.config.exchanges]
            return JSONResponse(content={
                'total': len(exchanges),
                'default_delay': self.config.delay,
                'exchanges': exchanges
            })

    def _describe_exchange(self, exchange) -> Dict[str, Any]:
        return {
            'method': exchange.request.method,
            'path': exchange.request.path,
            'hits': self.tracker.count(exchange.identity),
            'responses': [
                {
                    'status': response.status,
                    'kind': response.kind_name,
                    'delay': self.materializer.effective_delay(response)
                }
                for response in exchange.responses
            ]
        }

    def run(self):
        """
        Start serving in a background thread.

        Returns once the server accepts connections.

        Raises:
            ServerNotConfiguredError: If configure() has not been called
            ServerStartError: If the transport fails to start (e.g. port in use)
        """
        if self.state != ServerState.CONFIGURED:
            raise ServerNotConfiguredError()

        uvicorn_config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
            access_log=self.config.access_log
        )
        server = uvicorn.Server(uvicorn_config)
        thread = threading.Thread(target=server.run, name="exchangemock-server", daemon=True)
        thread.start()

        deadline = time.monotonic() + self.startup_timeout
        while not server.started:
            if not thread.is_alive():
                # uvicorn exits the thread when binding fails
                raise ServerStartError(
                    f"Failed to start server on {self.config.host}:{self.config.port}"
                )
            if time.monotonic() > deadline:
                server.should_exit = True
                thread.join(timeout=self.startup_timeout)
                raise ServerStartError(
                    f"Server did not start within {self.startup_timeout}s "
                    f"on {self.config.host}:{self.config.port}"
                )
            time.sleep(0.01)

        self._uvicorn = server
        self._thread = thread
        self.state = ServerState.RUNNING
        self.metrics.mark_started()
        self.logger.info(f"Mock server running at {self.address_description}")

    def stop(self):
        """
        Shut down the running server and discard its request tracker.

        Raises:
            ServerNotRunningError: If the server is not running
        """
        if not self.is_running:
            raise ServerNotRunningError()

        self.logger.info(f"Stopping mock server at {self.address_description}")
        self._uvicorn.should_exit = True
        self._thread.join()

        self._uvicorn = None
        self._thread = None
        self._discard()
        self.state = ServerState.STOPPED
        self.logger.info("Mock server stopped")

    def reset(self):
        """
        Drop the current configuration so configure() can be called again.

        Raises:
            InstanceAlreadyRunningError: If the server is running (stop it first)
        """
        if self.is_running:
            raise InstanceAlreadyRunningError("Server is running; stop it before resetting")
        self._discard()
        self.config = None
        self.state = ServerState.UNCONFIGURED

    def restart(self, configuration: ServerConfiguration):
        """
        Stop the running server, then configure and run it again.

        Raises:
            ServerNotRunningError: If the server is not running
            InvalidConfigurationError: If the new configuration is invalid
            ServerStartError: If the transport fails to start
        """
        self.stop()
        self.configure(configuration)
        self.run()

    def serve_forever(self):
        """Run the server and block until interrupted (Ctrl+C)."""
        self.run()
        try:
            while self._thread is not None and self._thread.is_alive():
                self._thread.join(timeout=0.5)
        except KeyboardInterrupt:
            self.logger.info("Interrupted")
        finally:
            if self.is_running:
                self.stop()

    def _discard(self):
        if self.tracker is not None:
            self.tracker.clear()
        self.tracker = None
        self.app = None
        self.materializer = None
        self.metrics = None

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance

        Raises:
            ServerNotConfiguredError: If configure() has not been called
        """
        if self.app is None:
            raise ServerNotConfiguredError()
        return self.app


def create_mock_server(
    exchanges=None,
    host: str = "127.0.0.1",
    port: int = 8080,
    delay: float = 0.0,
    log_level: str = "info",
    admin_enabled: bool = True
) -> MockServer:
    """
    Convenience function to create and configure a mock server.

    Args:
        exchanges: List of NetworkExchange to serve
        host: Host to bind to
        port: Port to bind to
        delay: Default delay in seconds
        log_level: Log level for the server and uvicorn
        admin_enabled: Enable the admin API

    Returns:
        Configured MockServer instance

    Example:
        server = create_mock_server([
            NetworkExchange(
                EndpointRequest('GET', '/status'),
                [MockResponse(status=503), MockResponse(status=200)]
            )
        ], port=9090)
        server.run()
    """
    config = ServerConfiguration(
        host=host,
        port=port,
        delay=delay,
        log_level=log_level,
        exchanges=list(exchanges or []),
        admin_enabled=admin_enabled
    )

    server = MockServer()
    server.configure(config)
    return server

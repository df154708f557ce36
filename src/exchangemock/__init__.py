"""
ExchangeMock

Configurable mock HTTP server for simulating backend APIs in client tests.

This package provides:
- Declarative request/response exchanges with response sequences
- Per-endpoint request tracking (retry and polling simulation)
- Delayed responses and five payload kinds (empty, text, bytes, JSON, file)
- FastAPI/uvicorn-based server with a start/stop/restart lifecycle
"""

from .config import ServerConfiguration
from .errors import (
    MockServerError,
    InvalidConfigurationError,
    InstanceAlreadyRunningError,
    ServerNotConfiguredError,
    ServerNotRunningError,
    ServerStartError
)
from .materializer import ResponseMaterializer, read_file
from .metrics import ServerMetrics
from .models import (
    EndpointRequest,
    NetworkExchange,
    MockResponse,
    MaterializedResponse,
    EmptyBody,
    TextBody,
    BytesBody,
    JSONBody,
    FileContent
)
from .selector import select_response
from .server import MockServer, ServerState, create_mock_server
from .tracker import RequestTracker

__all__ = [
    # Server
    'MockServer',
    'ServerState',
    'ServerConfiguration',
    'ServerMetrics',
    'create_mock_server',

    # Models
    'EndpointRequest',
    'NetworkExchange',
    'MockResponse',
    'MaterializedResponse',
    'EmptyBody',
    'TextBody',
    'BytesBody',
    'JSONBody',
    'FileContent',

    # Engine
    'RequestTracker',
    'select_response',
    'ResponseMaterializer',
    'read_file',

    # Errors
    'MockServerError',
    'InvalidConfigurationError',
    'InstanceAlreadyRunningError',
    'ServerNotConfiguredError',
    'ServerNotRunningError',
    'ServerStartError',
]

__version__ = '1.0.0'

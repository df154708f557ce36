"""
ExchangeMock Configuration

Server configuration with YAML/JSON loading and validation.

Example file:

    host: 127.0.0.1
    port: 8080
    delay: 0.2
    exchanges:
      - request: {method: GET, path: /status}
        responses:
          - status: 503
          - status: 200
            headers: {Content-Type: application/json}
            json: {ok: true}
            delay: 1
"""

import base64
import binascii
import codecs
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import InvalidConfigurationError
from .models import (
    HTTP_METHODS,
    BytesBody,
    EmptyBody,
    EndpointRequest,
    FileContent,
    JSONBody,
    MockResponse,
    NetworkExchange,
    TextBody,
)


LOG_LEVELS = ('critical', 'error', 'warning', 'info', 'debug', 'trace')

PAYLOAD_KEYS = ('text', 'bytes', 'base64', 'json', 'file')
RESPONSE_KEYS = {'status', 'headers', 'delay', 'encoding'} | set(PAYLOAD_KEYS)


def parse_delay(value: Any) -> float:
    """Convert a configured delay to seconds."""
    if isinstance(value, bool):
        raise InvalidConfigurationError(f"Invalid delay: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidConfigurationError(f"Invalid delay: {value!r}")


def is_port(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 65535


@dataclass
class ServerConfiguration:
    """Configuration for a mock server instance."""

    # Server options
    host: str = "127.0.0.1"
    port: int = 8080
    delay: float = 0.0  # Default delay in seconds for responses without their own
    log_level: str = "info"
    access_log: bool = True

    # Declared exchanges
    exchanges: List[NetworkExchange] = field(default_factory=list)

    # Admin API
    admin_enabled: bool = True
    admin_prefix: str = "/__admin__"

    def validate(self):
        """
        Check the configuration as a whole.

        Raises:
            InvalidConfigurationError: On the first problem found
        """
        if not is_port(self.port):
            raise InvalidConfigurationError(f"Invalid port: {self.port!r}")
        if isinstance(self.delay, bool) or not isinstance(self.delay, (int, float)):
            raise InvalidConfigurationError(f"Invalid delay: {self.delay!r}")
        if self.delay < 0:
            raise InvalidConfigurationError(f"Delay must not be negative: {self.delay!r}")
        if self.log_level.lower() not in LOG_LEVELS:
            raise InvalidConfigurationError(
                f"Invalid log level '{self.log_level}' (expected one of: {', '.join(LOG_LEVELS)})"
            )
        if self.admin_enabled and not self.admin_prefix.startswith('/'):
            raise InvalidConfigurationError(f"Admin prefix must start with '/': {self.admin_prefix!r}")

        seen = set()
        for exchange in self.exchanges:
            request = exchange.request
            if request.method not in HTTP_METHODS:
                raise InvalidConfigurationError(f"Unknown HTTP method: {request.method}")
            if not request.path.startswith('/'):
                raise InvalidConfigurationError(f"Path must start with '/': {request.path!r}")
            if not exchange.responses:
                raise InvalidConfigurationError(f"Exchange {request} must declare at least one response")
            if exchange.identity in seen:
                raise InvalidConfigurationError(f"Duplicate exchange declared for {request}")
            if self.admin_enabled and (
                request.path == self.admin_prefix or request.path.startswith(self.admin_prefix + '/')
            ):
                raise InvalidConfigurationError(
                    f"Exchange {request} collides with the admin API prefix {self.admin_prefix}"
                )
            seen.add(exchange.identity)

    @property
    def python_log_level(self) -> int:
        # uvicorn's 'trace' sits below DEBUG
        if self.log_level.lower() == 'trace':
            return 5
        return getattr(logging, self.log_level.upper())

    @classmethod
    def from_file(cls, path: str) -> 'ServerConfiguration':
        """
        Load configuration from a YAML or JSON file.

        Relative `file` payload paths resolve against the file's directory.

        Args:
            path: Path to a .yaml/.yml or .json file

        Returns:
            Parsed (not yet validated) configuration
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            try:
                if config_path.suffix.lower() == '.json':
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
            except (json.JSONDecodeError, yaml.YAMLError) as e:
                raise InvalidConfigurationError(f"Failed to parse {config_path}: {e}")

        return cls.from_dict(data or {}, base_dir=config_path.parent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> 'ServerConfiguration':
        """Create configuration from a dictionary."""
        if not isinstance(data, dict):
            raise InvalidConfigurationError("Configuration must be a mapping")

        admin = data.get('admin', {}) or {}
        if not isinstance(admin, dict):
            raise InvalidConfigurationError(f"'admin' must be a mapping: {admin!r}")

        exchange_entries = data.get('exchanges', []) or []
        if not isinstance(exchange_entries, list):
            raise InvalidConfigurationError(f"'exchanges' must be a list: {exchange_entries!r}")
        exchanges = [exchange_from_dict(item, base_dir=base_dir) for item in exchange_entries]

        return cls(
            host=str(data.get('host', '127.0.0.1')),
            port=data.get('port', 8080),
            delay=parse_delay(data.get('delay', 0.0)),
            log_level=str(data.get('log_level', 'info')),
            access_log=bool(data.get('access_log', True)),
            exchanges=exchanges,
            admin_enabled=bool(admin.get('enabled', True)),
            admin_prefix=str(admin.get('prefix', '/__admin__'))
        )


def exchange_from_dict(data: Dict[str, Any], base_dir: Optional[Path] = None) -> NetworkExchange:
    """Create a NetworkExchange from its configuration entry."""
    if not isinstance(data, dict) or 'request' not in data:
        raise InvalidConfigurationError(f"Exchange entry needs a 'request' section: {data!r}")

    request_data = data['request']
    if not isinstance(request_data, dict) or 'path' not in request_data:
        raise InvalidConfigurationError(f"Exchange request needs a 'path': {request_data!r}")

    request = EndpointRequest(
        method=str(request_data.get('method', 'GET')),
        path=str(request_data['path'])
    )

    responses = data.get('responses')
    if responses is None and 'response' in data:
        responses = [data['response']]
    if not responses:
        raise InvalidConfigurationError(f"Exchange {request} must declare at least one response")
    if not isinstance(responses, list):
        raise InvalidConfigurationError(f"Responses of {request} must be a list: {responses!r}")

    return NetworkExchange(
        request=request,
        responses=[response_from_dict(item, base_dir=base_dir) for item in responses]
    )


def response_from_dict(data: Optional[Dict[str, Any]], base_dir: Optional[Path] = None) -> MockResponse:
    """
    Create a MockResponse from its configuration entry.

    At most one payload key (text, bytes, base64, json, file) may be given;
    without one the response has no body.
    """
    data = data or {}
    if not isinstance(data, dict):
        raise InvalidConfigurationError(f"Response entry must be a mapping: {data!r}")

    unknown = set(data) - RESPONSE_KEYS
    if unknown:
        raise InvalidConfigurationError(f"Unknown response keys: {', '.join(sorted(unknown))}")

    payload_keys = [key for key in PAYLOAD_KEYS if key in data]
    if len(payload_keys) > 1:
        raise InvalidConfigurationError(
            f"Response declares more than one payload: {', '.join(payload_keys)}"
        )
    if 'encoding' in data:
        if payload_keys != ['text']:
            raise InvalidConfigurationError("'encoding' is only valid with a 'text' payload")
        try:
            codecs.lookup(str(data['encoding']))
        except LookupError:
            raise InvalidConfigurationError(f"Unknown text encoding: {data['encoding']!r}")

    kind = EmptyBody()
    if payload_keys:
        key = payload_keys[0]
        value = data[key]

        if key == 'text':
            kind = TextBody(str(value), encoding=str(data.get('encoding', 'utf-8')))
        elif key == 'bytes':
            kind = BytesBody(value if isinstance(value, bytes) else str(value).encode('utf-8'))
        elif key == 'base64':
            try:
                kind = BytesBody(base64.b64decode(value, validate=True))
            except (binascii.Error, ValueError) as e:
                raise InvalidConfigurationError(f"Invalid base64 payload: {e}")
        elif key == 'json':
            kind = JSONBody(value)
        elif key == 'file':
            file_path = Path(str(value))
            if base_dir is not None and not file_path.is_absolute():
                file_path = Path(base_dir) / file_path
            kind = FileContent(str(file_path))

    delay = data.get('delay')

    return MockResponse(
        status=data.get('status', 200),
        headers=data.get('headers') or (),
        kind=kind,
        delay=parse_delay(delay) if delay is not None else None
    )

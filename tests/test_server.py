"""
Tests for ExchangeMock Server

Tests the FastAPI-based mock server including:
- Response sequences served over HTTP
- Payload kinds and failure substitution on the wire
- Admin API endpoints
- Server lifecycle (configure, run, stop, reset, restart)
"""

import socket
from unittest.mock import AsyncMock, patch

import pytest
import httpx
from fastapi.testclient import TestClient

from exchangemock.config import ServerConfiguration
from exchangemock.errors import (
    InstanceAlreadyRunningError,
    InvalidConfigurationError,
    ServerNotConfiguredError,
    ServerNotRunningError,
    ServerStartError,
)
from exchangemock.models import (
    BytesBody,
    EndpointRequest,
    FileContent,
    JSONBody,
    MockResponse,
    NetworkExchange,
    TextBody,
)
from exchangemock.server import MockServer, ServerState, create_mock_server


JSON = {'Content-Type': 'application/json'}


@pytest.fixture
def sample_exchanges(tmp_path):
    """Sample exchanges for the mock server."""
    report = tmp_path / 'report.csv'
    report.write_text('id,total\n1,10\n')

    return [
        NetworkExchange(EndpointRequest('GET', '/status'), [
            MockResponse(status=503),
            MockResponse(status=200, headers=JSON, kind=JSONBody({'status': 'ok'})),
        ]),
        NetworkExchange(EndpointRequest('GET', '/jobs/{job_id}'), [
            MockResponse(status=202, kind=TextBody('pending')),
            MockResponse(status=202, kind=TextBody('pending')),
            MockResponse(status=200, kind=TextBody('done')),
        ]),
        NetworkExchange(EndpointRequest('POST', '/users'), [
            MockResponse(
                status=201,
                headers=[
                    ('Content-Type', 'application/json'),
                    ('Set-Cookie', 'session=abc'),
                    ('Set-Cookie', 'theme=dark'),
                ],
                kind=JSONBody({'id': 42})
            ),
        ]),
        NetworkExchange(EndpointRequest('GET', '/blob'), [
            MockResponse(headers={'Content-Type': 'application/octet-stream'}, kind=BytesBody(b'\x00\x01\xff')),
        ]),
        NetworkExchange(EndpointRequest('GET', '/report'), [
            MockResponse(headers={'Content-Type': 'text/csv'}, kind=FileContent(str(report))),
        ]),
        NetworkExchange(EndpointRequest('GET', '/missing'), [
            MockResponse(
                headers={'Content-Type': 'application/json', 'Access-Control-Allow-Origin': '*'},
                kind=FileContent(str(tmp_path / 'missing.json'))
            ),
        ]),
        NetworkExchange(EndpointRequest('GET', '/broken'), [
            MockResponse(
                headers={'Content-Type': 'application/json', 'X-Custom': 'kept'},
                kind=JSONBody({'value': float('nan')})
            ),
        ]),
    ]


@pytest.fixture
def server(sample_exchanges):
    """Configured (not running) mock server."""
    server = MockServer()
    server.configure(ServerConfiguration(exchanges=sample_exchanges))
    return server


@pytest.fixture
def client(server):
    return TestClient(server.app)


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]


class TestResponseSequences:
    """Test response sequences over HTTP."""

    def test_fails_once_then_succeeds(self, client):
        """Test GET /status declared as [503, 200]."""
        statuses = [client.get('/status').status_code for _ in range(4)]

        assert statuses == [503, 200, 200, 200]

    def test_last_response_repeats(self, client):
        """Test polling sequence clamps on the final response."""
        bodies = [client.get('/jobs/1').text for _ in range(5)]

        assert bodies == ['pending', 'pending', 'done', 'done', 'done']

    def test_path_parameters_share_one_counter(self, client):
        """Test that every path matching the pattern advances the same sequence."""
        assert client.get('/jobs/1').text == 'pending'
        assert client.get('/jobs/2').text == 'pending'
        assert client.get('/jobs/3').text == 'done'

    def test_endpoints_are_independent(self, client, server):
        """Test that each endpoint has its own count."""
        client.get('/jobs/1')
        client.get('/jobs/1')

        assert client.get('/status').status_code == 503
        assert server.tracker.count(('GET', '/jobs/{job_id}')) == 2
        assert server.tracker.count(('GET', '/status')) == 1

    def test_tracker_counts_requests(self, client, server):
        """Test that the count equals the number of requests."""
        for _ in range(7):
            client.get('/status')

        assert server.tracker.count(('GET', '/status')) == 7

    def test_unmatched_path(self, client):
        """Test that undeclared paths get a 404."""
        assert client.get('/nonexistent').status_code == 404

    def test_unmatched_method(self, client, server):
        """Test that a declared path with another method does not match."""
        response = client.delete('/status')

        assert response.status_code == 405
        assert server.tracker.count(('GET', '/status')) == 0


class TestPayloadsOverHttp:
    """Test payload kinds written by the transport."""

    def test_json_body(self, client):
        """Test JSON responses."""
        client.get('/status')
        response = client.get('/status')

        assert response.status_code == 200
        assert response.headers['content-type'] == 'application/json'
        assert response.json() == {'status': 'ok'}

    def test_latin1_header_value(self):
        """Test that a non-ASCII latin-1 header value is written as-is."""
        server = MockServer()
        server.configure(ServerConfiguration(exchanges=[
            NetworkExchange(EndpointRequest('GET', '/note'), [
                MockResponse(status=200, headers={'X-Note': 'café'}, kind=TextBody('ok')),
            ]),
        ]))

        response = TestClient(server.app).get('/note')

        assert response.status_code == 200
        assert response.headers['x-note'] == 'café'
        assert response.text == 'ok'

    def test_empty_body(self, client):
        """Test that empty responses have no body and no Content-Type."""
        response = client.get('/status')

        assert response.status_code == 503
        assert response.content == b''
        assert 'content-type' not in response.headers

    def test_duplicate_headers_kept(self, client):
        """Test that repeated header names are all written, in order."""
        response = client.post('/users', json={'name': 'Jane'})

        assert response.status_code == 201
        assert response.headers.get_list('set-cookie') == ['session=abc', 'theme=dark']
        assert response.json() == {'id': 42}

    def test_bytes_body(self, client):
        """Test raw bytes are sent verbatim."""
        response = client.get('/blob')

        assert response.status_code == 200
        assert response.content == b'\x00\x01\xff'

    def test_file_body(self, client):
        """Test file content is served."""
        response = client.get('/report')

        assert response.status_code == 200
        assert response.headers['content-type'] == 'text/csv'
        assert response.text == 'id,total\n1,10\n'

    def test_missing_file(self, client):
        """Test missing files become 404 without Content-Type."""
        response = client.get('/missing')

        assert response.status_code == 404
        assert response.content == b''
        assert 'content-type' not in response.headers
        assert response.headers['access-control-allow-origin'] == '*'

    def test_json_failure(self, client):
        """Test unserializable JSON becomes 500 without Content-Type."""
        response = client.get('/broken')

        assert response.status_code == 500
        assert response.content == b''
        assert 'content-type' not in response.headers
        assert response.headers['x-custom'] == 'kept'

    def test_declared_content_length_ignored(self):
        """Test that a declared Content-Length does not conflict with the real body."""
        server = create_mock_server([
            NetworkExchange(EndpointRequest('GET', '/text'), [
                MockResponse(headers={'Content-Length': '999'}, kind=TextBody('abc'))
            ])
        ])

        response = TestClient(server.app).get('/text')

        assert response.headers['content-length'] == '3'
        assert response.text == 'abc'

    @patch('exchangemock.materializer.asyncio.sleep', new_callable=AsyncMock)
    def test_delay_applied(self, mock_sleep):
        """Test that the server default and per-response delays are awaited."""
        server = create_mock_server([
            NetworkExchange(EndpointRequest('GET', '/slow'), [
                MockResponse(delay=2),
                MockResponse(),
            ])
        ], delay=5)
        client = TestClient(server.app)

        client.get('/slow')
        client.get('/slow')

        # Event loop checkpoints may await sleep(0) as well
        delays = [call.args[0] for call in mock_sleep.await_args_list if call.args and call.args[0]]
        assert delays == [2, 5]


class TestAdminApi:
    """Test admin API endpoints."""

    def test_metrics(self, client):
        """Test metrics count served requests and failures."""
        client.get('/status')
        client.get('/missing')
        client.get('/broken')

        data = client.get('/__admin__/metrics').json()

        assert data['total_requests'] == 3
        assert data['missing_files'] == 1
        assert data['serialization_failures'] == 1
        assert 'uptime_seconds' in data

    def test_requests(self, client):
        """Test request counts per endpoint."""
        client.get('/status')
        client.get('/status')
        client.post('/users')

        data = client.get('/__admin__/requests').json()

        assert data['total'] == 3
        assert {'method': 'GET', 'path': '/status', 'count': 2} in data['requests']
        assert {'method': 'POST', 'path': '/users', 'count': 1} in data['requests']

    def test_exchanges(self, client):
        """Test listing declared exchanges."""
        client.get('/status')

        data = client.get('/__admin__/exchanges').json()

        assert data['total'] == 7
        status = data['exchanges'][0]
        assert status['method'] == 'GET'
        assert status['path'] == '/status'
        assert status['hits'] == 1
        assert [response['status'] for response in status['responses']] == [503, 200]
        assert status['responses'][1]['kind'] == 'json'

    def test_admin_does_not_advance_sequences(self, client):
        """Test that admin calls are not tracked."""
        client.get('/__admin__/metrics')
        client.get('/__admin__/requests')

        assert client.get('/status').status_code == 503

    def test_admin_disabled(self, sample_exchanges):
        """Test server with admin API disabled."""
        server = MockServer()
        server.configure(ServerConfiguration(exchanges=sample_exchanges, admin_enabled=False))
        client = TestClient(server.app)

        assert client.get('/__admin__/metrics').status_code == 404


class TestLifecycle:
    """Test server lifecycle state machine."""

    def test_initial_state(self):
        """Test a new server is unconfigured."""
        server = MockServer()

        assert server.state == ServerState.UNCONFIGURED
        assert server.address_description is None
        assert server.host is None
        assert server.port is None

    def test_configure(self, server):
        """Test configuring a server."""
        assert server.state == ServerState.CONFIGURED
        assert server.address_description == 'http://127.0.0.1:8080'
        assert server.get_app() is server.app
        assert len(server.tracker) == 0

    def test_configure_twice(self, server):
        """Test that configure fails on a configured server."""
        with pytest.raises(InstanceAlreadyRunningError):
            server.configure(ServerConfiguration())

    def test_configure_invalid(self):
        """Test that invalid configurations leave the server unconfigured."""
        exchange = NetworkExchange(EndpointRequest('GET', '/a'), [MockResponse()])
        server = MockServer()

        with pytest.raises(InvalidConfigurationError):
            server.configure(ServerConfiguration(exchanges=[exchange, exchange]))

        assert server.state == ServerState.UNCONFIGURED

    def test_run_unconfigured(self):
        """Test that run fails before configure."""
        with pytest.raises(ServerNotConfiguredError):
            MockServer().run()

    def test_get_app_unconfigured(self):
        """Test that there is no app before configure."""
        with pytest.raises(ServerNotConfiguredError):
            MockServer().get_app()

    def test_stop_not_running(self, server):
        """Test that stop fails when the server is not running."""
        with pytest.raises(ServerNotRunningError):
            server.stop()

    def test_restart_not_running(self, server):
        """Test that restart fails when the server is not running."""
        with pytest.raises(ServerNotRunningError):
            server.restart(ServerConfiguration())

    def test_reset_allows_reconfigure(self, server, client):
        """Test that reset discards the tracker and allows configure again."""
        client.get('/status')

        server.reset()
        assert server.state == ServerState.UNCONFIGURED
        assert server.tracker is None

        server.configure(ServerConfiguration(exchanges=[
            NetworkExchange(EndpointRequest('GET', '/status'), [MockResponse(status=503), MockResponse()])
        ]))
        assert TestClient(server.app).get('/status').status_code == 503

    def test_run_and_stop(self, sample_exchanges):
        """Test serving over a real socket, then stopping and reconfiguring."""
        server = MockServer()
        config = ServerConfiguration(port=0, exchanges=sample_exchanges, log_level='warning')
        server.configure(config)

        server.run()
        try:
            assert server.is_running
            assert server.port != 0

            with pytest.raises(InstanceAlreadyRunningError):
                server.configure(config)
            with pytest.raises(InstanceAlreadyRunningError):
                server.reset()

            base_url = server.address_description
            assert httpx.get(f"{base_url}/status", trust_env=False).status_code == 503
            assert httpx.get(f"{base_url}/status", trust_env=False).status_code == 200
        finally:
            server.stop()

        assert server.state == ServerState.STOPPED
        assert server.tracker is None

        with pytest.raises(ServerNotRunningError):
            server.stop()

        # A fresh tracker starts every sequence over
        server.configure(config)
        assert TestClient(server.app).get('/status').status_code == 503

    def test_restart(self, sample_exchanges):
        """Test restart with a new configuration."""
        server = MockServer()
        server.configure(ServerConfiguration(port=0, exchanges=sample_exchanges, log_level='warning'))
        server.run()
        try:
            httpx.get(f"{server.address_description}/status", trust_env=False)

            server.restart(ServerConfiguration(port=0, log_level='warning', exchanges=[
                NetworkExchange(EndpointRequest('GET', '/status'), [MockResponse(status=418)])
            ]))

            assert server.is_running
            assert httpx.get(f"{server.address_description}/status", trust_env=False).status_code == 418
        finally:
            server.stop()

    def test_port_in_use(self):
        """Test that binding an occupied port raises ServerStartError."""
        port = free_port()
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(('127.0.0.1', port))
            blocker.listen(1)

            server = MockServer()
            server.configure(ServerConfiguration(port=port, log_level='critical'))

            with pytest.raises(ServerStartError):
                server.run()

            assert server.state == ServerState.CONFIGURED


    def test_uptime_counts_from_run(self, sample_exchanges):
        """Test that metrics uptime starts when the server starts serving, not at configure."""
        server = MockServer()
        server.configure(ServerConfiguration(port=0, exchanges=sample_exchanges, log_level='warning'))
        server.metrics.start_time = '2000-01-01T00:00:00'

        server.run()
        try:
            data = httpx.get(f"{server.address_description}/__admin__/metrics", trust_env=False).json()
        finally:
            server.stop()

        assert data['start_time'] != '2000-01-01T00:00:00'
        assert data['uptime_seconds'] < 60


class TestCreateMockServer:
    """Test create_mock_server convenience function."""

    def test_create_mock_server(self, sample_exchanges):
        """Test creating server with convenience function."""
        server = create_mock_server(sample_exchanges, port=9090, delay=0.1, admin_enabled=False)

        assert server.state == ServerState.CONFIGURED
        assert server.config.port == 9090
        assert server.config.delay == 0.1
        assert server.config.admin_enabled is False
        assert server.materializer.default_delay == 0.1

"""
Tests for RestMock Test Integration

Tests the background server handle and the pytest plugin including:
- running_server context manager on an ephemeral port
- Overrides applied before boot
- Class-scoped restmock_server fixture driven by a marker
"""

import json
import urllib.error
import urllib.request
from pathlib import Path

import httpx
import pytest
import yaml

from restmock.testing import running_server

CONFIG = {
    'resources': [{'name': 'users', 'idField': 'id', 'seed': [{'id': 'u1', 'name': 'Ada'}]}],
    'staticEndpoints': [{'path': '/health', 'response': {'status': 'ok'}}]
}


@pytest.fixture(scope='module')
def module_config(tmp_path_factory):
    path = tmp_path_factory.mktemp('restmock') / 'mock.yml'
    path.write_text(yaml.safe_dump(CONFIG), encoding='utf-8')
    return str(path)


class TestRunningServer:
    """Test the context manager."""

    def test_serves_on_ephemeral_port(self, module_config):
        with running_server(module_config) as server:
            assert server.port > 0
            assert server.engine.server_info()['port'] == server.port
            response = httpx.get(f"{server.base_url}/health")

        assert response.status_code == 200
        assert response.json() == {'status': 'ok'}

    def test_auth_override(self, module_config):
        with running_server(module_config, auth_token='secret') as server:
            denied = httpx.post(f"{server.base_url}/api/users", json={'name': 'x'})
            allowed = httpx.post(
                f"{server.base_url}/api/users", json={'name': 'x'},
                headers={'Authorization': 'Bearer secret'}
            )

        assert denied.status_code == 401
        assert allowed.status_code == 201

    def test_record_override(self, module_config, tmp_path):
        record_file = tmp_path / 'traffic.ndjson'
        with running_server(module_config, record_replay_mode='record', record_replay_file=str(record_file)) as server:
            httpx.get(f"{server.base_url}/health")

        line = json.loads(record_file.read_text(encoding='utf-8').splitlines()[0])
        assert line['request']['path'] == '/health'
        assert line['response']['status'] == 200

    def test_stopped_after_exit(self, module_config):
        with running_server(module_config) as server:
            url = f"{server.base_url}/health"

        with pytest.raises(urllib.error.URLError):
            urllib.request.urlopen(url, timeout=1)


@pytest.mark.restmock(config_path=str(Path(__file__).parent / 'fixtures' / 'users.yml'))
class TestPytestPlugin:
    """Test the marker-driven class fixture."""

    def test_fixture_serves(self, restmock_base_url):
        assert httpx.get(f"{restmock_base_url}/api/users").json()[0]['name'] == 'Ada'

    def test_same_server_for_class(self, restmock_server, restmock_base_url):
        created = httpx.post(f"{restmock_base_url}/api/users", json={'id': 'u9', 'name': 'Kept'})

        assert created.status_code == 201
        assert restmock_server.engine.store('users').read('u9')['name'] == 'Kept'

    def test_state_persists_across_class_tests(self, restmock_server):
        assert restmock_server.engine.store('users').read('u9') is not None

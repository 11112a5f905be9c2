"""
Shared fixtures for RestMock tests.
"""

import pytest
import yaml

pytest_plugins = ["restmock.testing"]


@pytest.fixture
def users_config():
    """Config with one seeded resource and a few static endpoints."""
    return {
        'port': 8080,
        'features': {'templating': True, 'schemaValidation': 'strict'},
        'resources': [
            {
                'name': 'users',
                'idField': 'id',
                'seed': [{'id': 'u1', 'name': 'Ada'}]
            }
        ],
        'staticEndpoints': [
            {'method': 'GET', 'path': '/health', 'response': {'status': 'ok'}},
            {'method': 'POST', 'path': '/echo', 'echoRequest': True},
            {'method': 'GET', 'path': '/ping', 'response': 'pong'}
        ]
    }


@pytest.fixture
def write_config(tmp_path):
    """Factory writing a config mapping to a YAML file and returning its path."""

    def _write(data, name='mock.yml'):
        path = tmp_path / name
        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f)
        return str(path)

    return _write

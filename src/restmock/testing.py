"""
RestMock Test Integration

Runs a mock server for the duration of a test or test class.

Plain context manager:
    with running_server('mock.yml', auth_token='secret') as server:
        httpx.get(f"{server.base_url}/api/users")

Pytest plugin (add to conftest.py):
    pytest_plugins = ["restmock.testing"]

    @pytest.mark.restmock(config_path='mock.yml', auth_token='secret')
    class TestUsers:
        def test_list(self, restmock_base_url):
            ...
"""

from contextlib import contextmanager
from typing import Iterator, Optional

import pytest

from .mock import ServerHandle, create_mock_server

MARKER = 'restmock'


@contextmanager
def running_server(
    config_path: str,
    port: int = 0,
    auth_token: Optional[str] = None,
    record_replay_mode: Optional[str] = None,
    record_replay_file: Optional[str] = None,
    hot_reload: Optional[bool] = False
) -> Iterator[ServerHandle]:
    """
    Start a mock server on a background thread and stop it on exit.

    Args:
        config_path: Path to YAML/JSON config
        port: Port to bind (0 picks a free port)
        auth_token: Override authToken
        record_replay_mode: Override features.recordReplay.mode
        record_replay_file: Override features.recordReplay.file
        hot_reload: Watch the config file (None follows the config)

    Yields:
        Running ServerHandle
    """
    server = create_mock_server(
        config_path,
        auth_token=auth_token,
        hot_reload=hot_reload,
        record_replay_mode=record_replay_mode,
        record_replay_file=record_replay_file
    )
    handle = ServerHandle(server, port=port)
    handle.start()
    try:
        yield handle
    finally:
        handle.stop()


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "restmock(config_path, port=0, auth_token=None, record_replay_mode=None, "
        "record_replay_file=None, hot_reload=False): run a mock server for the test class"
    )


@pytest.fixture(scope='class')
def restmock_server(request) -> Iterator[ServerHandle]:
    """Mock server configured by the nearest @pytest.mark.restmock marker."""
    marker = request.node.get_closest_marker(MARKER)
    if marker is None:
        pytest.fail("restmock_server requires a @pytest.mark.restmock(config_path=...) marker")

    kwargs = dict(marker.kwargs)
    if marker.args:
        kwargs.setdefault('config_path', marker.args[0])
    if 'config_path' not in kwargs:
        pytest.fail("@pytest.mark.restmock needs a config_path")

    with running_server(**kwargs) as handle:
        yield handle


@pytest.fixture
def restmock_base_url(restmock_server: ServerHandle) -> str:
    """Base URL of the running mock server."""
    return restmock_server.base_url

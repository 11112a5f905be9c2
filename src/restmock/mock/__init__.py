"""
RestMock Mock Server Module

Config-driven mock HTTP server.

This module provides:
- FastAPI transport and background server handle
- Request pipeline engine with hot-swappable snapshots
- Route table, resource stores and response handlers
- Chaos engineering, record/replay and response templating
"""

from .server import MockServer, ServerHandle, create_mock_server
from .engine import Engine, EngineSnapshot, build_routes, build_stores
from .errors import MockError, BadRequest, Unauthorized, NotFound, ChaosFailure, ReplayMiss
from .http import IncomingRequest, RequestContext, Response
from .matcher import Route, RouteMatch, RouteTable
from .store import ResourceStore
from .chaos import ChaosMiddleware, RetryTracker
from .recorder import ReplayItem, Recorder, Replayer, RecordReplay
from .reload import ConfigWatcher
from .templating import render

__all__ = [
    # Server
    'MockServer',
    'ServerHandle',
    'create_mock_server',

    # Engine
    'Engine',
    'EngineSnapshot',
    'build_routes',
    'build_stores',

    # Errors
    'MockError',
    'BadRequest',
    'Unauthorized',
    'NotFound',
    'ChaosFailure',
    'ReplayMiss',

    # Request/response
    'IncomingRequest',
    'RequestContext',
    'Response',

    # Routing and storage
    'Route',
    'RouteMatch',
    'RouteTable',
    'ResourceStore',

    # Chaos, record/replay, reload, templating
    'ChaosMiddleware',
    'RetryTracker',
    'ReplayItem',
    'Recorder',
    'Replayer',
    'RecordReplay',
    'ConfigWatcher',
    'render',
]

"""
RestMock Engine

Per-request dispatch pipeline and the swappable snapshot it runs against.

Pipeline (in order):
1. CORS headers; OPTIONS short-circuits with 204
2. Process-wide artificial latency
3. Process-wide failure injection
4. Replay lookup (replay mode only)
5. Route resolution (404 lists available routes)
6. Route-level chaos
7. Bearer-token authorization for mutating routes
8. Handler invocation
9. Recording of the emitted response (record mode only)

Every error raised inside the pipeline is converted to a JSON error
response here; nothing escapes to the transport layer.
"""

import logging
import platform
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .. import __version__
from ..common import utc_now_iso
from ..config import ConfigError, MockConfig, apply_overrides, check_config, load_config
from .chaos import ChaosMiddleware, RetryTracker
from .errors import MockError, NotFound, ReplayMiss, Unauthorized
from .handlers import (
    CreateHandler, DeleteHandler, EchoHandler, ListHandler, ReadHandler,
    StaticHandler, UpdateHandler
)
from .http import IncomingRequest, RequestContext, Response
from .matcher import MUTATING_METHODS, Route, RouteTable, normalize_path
from .recorder import RecordReplay
from .store import ResourceStore

logger = logging.getLogger("restmock.mock")

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, PUT, PATCH, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization',
}


@dataclass(frozen=True)
class EngineSnapshot:
    """
    Everything a request needs, published as one reference.

    A snapshot is never modified after it is built; reloads build a new one
    and swap the engine's reference.
    """

    version: int
    config: MockConfig
    routes: RouteTable
    stores: Dict[str, ResourceStore]
    chaos: ChaosMiddleware

    @property
    def templating(self) -> bool:
        return self.config.features.templating


def build_routes(config: MockConfig, stores: Dict[str, ResourceStore]) -> RouteTable:
    """
    Generate the route table for a configuration.

    CRUD routes come first, five per resource with CRUD enabled, followed by
    static endpoints in configuration order.
    """
    routes: List[Route] = []

    for resource in config.resources:
        if not resource.enable_crud:
            continue
        store = stores[resource.name]
        base = normalize_path(f"/api/{resource.name}")
        item = f"{base}/{{id}}"
        routes.extend([
            Route('GET', base, ListHandler(store, base), kind='crud', chaos=resource.chaos),
            Route('POST', base, CreateHandler(store, base), mutates=True, kind='crud', chaos=resource.chaos),
            Route('GET', item, ReadHandler(store, base), kind='crud', chaos=resource.chaos),
            Route('PUT', item, UpdateHandler(store, base), mutates=True, kind='crud', chaos=resource.chaos),
            Route('DELETE', item, DeleteHandler(store, base), mutates=True, kind='crud', chaos=resource.chaos),
        ])

    for endpoint in config.static_endpoints:
        if endpoint.echo_request:
            handler = EchoHandler(endpoint.status)
        else:
            handler = StaticHandler(endpoint.status, endpoint.response, templating=config.features.templating)
        routes.append(Route(
            endpoint.method,
            endpoint.path,
            handler,
            mutates=endpoint.method.upper() in MUTATING_METHODS,
            kind='static',
            chaos=endpoint.chaos
        ))

    return RouteTable(routes)


def build_stores(config: MockConfig) -> Dict[str, ResourceStore]:
    """Create one store per resource, loaded with its seed records."""
    stores: Dict[str, ResourceStore] = {}
    for resource in config.resources:
        store = ResourceStore(resource.name, id_field=resource.id_field)
        store.seed(resource.seed)
        stores[resource.name] = store
    return stores


class Engine:
    """
    Mock server engine: owns the live snapshot and runs the request pipeline.

    Example:
        engine = Engine(load_config('mock.yml'), config_path='mock.yml')
        response = engine.handle(IncomingRequest('GET', '/api/users'))
        engine.reload_from_file()
    """

    def __init__(
        self,
        config: MockConfig,
        config_path: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], None]] = None,
        time_func: Optional[Callable[[], float]] = None
    ):
        """
        Initialize the engine.

        Args:
            config: Parsed configuration
            config_path: File the configuration came from (enables reload_from_file)
            overrides: apply_overrides() arguments re-applied on every reload_from_file
            rng: Random source for chaos decisions
            sleep: Blocking sleep used for latency injection
            time_func: Clock used by retry simulation windows

        Raises:
            ConfigError: If strict schema validation rejects the config
        """
        check_config(config)

        self.config_path = config_path
        self.overrides = dict(overrides or {})
        self.started_at = utc_now_iso()
        self.bound_port: Optional[int] = None
        self._rng = rng
        self._sleep = sleep
        self._time_func = time_func
        self._reload_lock = threading.Lock()

        # Record/replay is fixed for the lifetime of the engine
        self.record_replay = RecordReplay(config.features.record_replay)

        self._snapshot = self._build_snapshot(config, version=1)
        logger.info(
            f"Engine ready: {len(self._snapshot.routes)} routes, "
            f"{len(self._snapshot.stores)} resources"
        )

    @property
    def snapshot(self) -> EngineSnapshot:
        return self._snapshot

    @property
    def config(self) -> MockConfig:
        return self._snapshot.config

    def store(self, name: str) -> Optional[ResourceStore]:
        """Store backing a resource in the current snapshot."""
        return self._snapshot.stores.get(name)

    def _build_snapshot(self, config: MockConfig, version: int) -> EngineSnapshot:
        stores = build_stores(config)
        chaos = ChaosMiddleware(
            latency_ms=config.artificial_latency_ms,
            fail_rate=config.chaos_fail_rate,
            tracker=RetryTracker(time_func=self._time_func),
            rng=self._rng,
            sleep=self._sleep
        )
        return EngineSnapshot(
            version=version,
            config=config,
            routes=build_routes(config, stores),
            stores=stores,
            chaos=chaos
        )

    # ---- Request pipeline ----

    def handle(self, request: IncomingRequest) -> Response:
        """
        Run one request through the pipeline.

        Args:
            request: Transport-neutral inbound request

        Returns:
            Final response, CORS headers applied
        """
        if request.method.upper() == 'OPTIONS':
            return self._finalize(Response.no_content())

        # Captured once; a concurrent reload does not affect this request
        snapshot = self._snapshot

        start = time.monotonic()
        try:
            response = self._dispatch(snapshot, request)
        except MockError as e:
            response = self._error_response(e, request)
        except Exception:
            logger.exception(f"Unhandled error for {request.method} {request.path}")
            response = self._internal_error(request)

        response = self._finalize(response)
        self.record_replay.record(request, response)

        logger.debug(
            f"{request.method} {request.path} -> {response.status} "
            f"({(time.monotonic() - start) * 1000:.1f}ms)"
        )
        return response

    def _dispatch(self, snapshot: EngineSnapshot, request: IncomingRequest) -> Response:
        snapshot.chaos.apply_latency()
        snapshot.chaos.maybe_fail()

        if self.record_replay.replaying:
            replayed = self.record_replay.try_replay(request)
            if replayed is not None:
                return replayed
            if self.record_replay.miss_is_error:
                raise ReplayMiss(f"No recorded response for {request.method} {request.path}")

        found = snapshot.routes.resolve(request.method, request.path)
        if found is None:
            raise NotFound(
                f"No route for {request.method} {request.path}",
                extra={'availableRoutes': snapshot.routes.summaries()}
            )

        route = found.route
        snapshot.chaos.apply_route(route)

        if route.mutates:
            self._authorize(snapshot.config, request)

        ctx = RequestContext(
            request=request,
            route=route,
            path_params=found.params,
            server_info=self.server_info(snapshot) if snapshot.templating else {}
        )
        return route.handler.handle(ctx)

    def _authorize(self, config: MockConfig, request: IncomingRequest):
        """
        Require an exact 'Authorization: Bearer <token>' header.

        Raises:
            Unauthorized: When a token is configured and the header differs
        """
        if not config.auth_token:
            return
        if request.header('Authorization') != f"Bearer {config.auth_token}":
            raise Unauthorized()

    def _finalize(self, response: Response) -> Response:
        return response.with_headers(CORS_HEADERS)

    def _error_response(self, error: MockError, request: IncomingRequest) -> Response:
        body: Dict[str, Any] = {
            'error': error.code,
            'message': error.message,
            'method': request.method,
            'path': request.path,
            'timestamp': utc_now_iso()
        }
        body.update(error.extra)
        response = Response.json(error.status, body)
        if error.headers:
            response = response.with_headers(error.headers)
        return response

    def _internal_error(self, request: IncomingRequest) -> Response:
        return Response.json(500, {
            'error': 'internal',
            'message': 'Internal server error',
            'method': request.method,
            'path': request.path,
            'timestamp': utc_now_iso()
        })

    # ---- Server information ----

    def server_info(self, snapshot: Optional[EngineSnapshot] = None) -> Dict[str, Any]:
        """Values exposed to templates as server.<key>."""
        snapshot = snapshot or self._snapshot
        config = snapshot.config
        routes = snapshot.routes
        return {
            'name': 'restmock',
            'version': __version__,
            'port': self.bound_port if self.bound_port is not None else config.port,
            'started_at': self.started_at,
            'python_version': platform.python_version(),
            'templating': config.features.templating,
            'hot_reload': config.features.hot_reload,
            'schema_validation': config.features.schema_validation,
            'total_routes': len(routes),
            'crud_routes': routes.count('crud'),
            'static_routes': routes.count('static'),
            'routes': ', '.join(routes.summaries()),
            'total_resources': len(snapshot.stores),
            'resources': [
                {'name': name, 'idField': store.id_field, 'count': len(store)}
                for name, store in snapshot.stores.items()
            ]
        }

    # ---- Hot reload ----

    def reload(self, config: MockConfig) -> bool:
        """
        Validate a new configuration and publish it as a fresh snapshot.

        Stores are rebuilt from the new seed data and retry counters start
        over. On any failure the current snapshot stays in place.

        Returns:
            True if the new snapshot was published
        """
        with self._reload_lock:
            current = self._snapshot
            try:
                check_config(config)
                snapshot = self._build_snapshot(config, version=current.version + 1)
            except (ConfigError, TypeError, ValueError) as e:
                logger.error(f"Config reload rejected, keeping version {current.version}: {e}")
                return False

            if config.features.record_replay != current.config.features.record_replay:
                logger.warning("recordReplay changes take effect only after a restart")

            self._snapshot = snapshot

        logger.info(
            f"Config reloaded (version {snapshot.version}): "
            f"{len(snapshot.routes)} routes, {len(snapshot.stores)} resources"
        )
        return True

    def reload_from_file(self) -> bool:
        """Re-read config_path and reload; failures keep the current config."""
        if not self.config_path:
            logger.warning("Reload requested but engine has no config file")
            return False

        try:
            config = apply_overrides(load_config(self.config_path), **self.overrides)
        except (FileNotFoundError, ConfigError) as e:
            logger.error(f"Config reload rejected, keeping version {self._snapshot.version}: {e}")
            return False

        return self.reload(config)

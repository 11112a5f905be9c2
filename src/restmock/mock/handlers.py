"""
RestMock Route Handlers

The fixed set of handler kinds a route can be bound to. Every handler
exposes a single handle(ctx) -> Response method; CRUD handlers hold a
reference to the ResourceStore of the snapshot they were built for.
"""

from typing import Any, Dict

from ..common import deep_copy, utc_now_iso
from .errors import NotFound
from .http import RequestContext, Response
from .store import ResourceStore
from .templating import render


class Handler:
    """Base class for route handlers."""

    kind = 'handler'

    def handle(self, ctx: RequestContext) -> Response:
        raise NotImplementedError


class _StoreHandler(Handler):
    """Shared state for the five CRUD handlers of one resource."""

    def __init__(self, store: ResourceStore, base_path: str):
        self.store = store
        self.base_path = base_path

    def _not_found(self, record_id: str) -> NotFound:
        return NotFound(
            f"No {self.store.name} with id '{record_id}'",
            extra={'resource': self.store.name, 'id': record_id}
        )


class ListHandler(_StoreHandler):
    """GET /api/<name> with limit/offset pagination (defaults 50/0)."""

    kind = 'list'

    def handle(self, ctx: RequestContext) -> Response:
        limit = ctx.query_int('limit', 50)
        offset = ctx.query_int('offset', 0)
        return Response.json(200, self.store.list(limit=limit, offset=offset))


class CreateHandler(_StoreHandler):
    """POST /api/<name>; responds 201 with a Location header."""

    kind = 'create'

    def handle(self, ctx: RequestContext) -> Response:
        created = self.store.create(ctx.read_json_object())
        location = f"{self.base_path}/{created[self.store.id_field]}"
        return Response.json(201, created).with_headers({'Location': location})


class ReadHandler(_StoreHandler):
    kind = 'read'

    def handle(self, ctx: RequestContext) -> Response:
        record_id = ctx.path_params['id']
        record = self.store.read(record_id)
        if record is None:
            raise self._not_found(record_id)
        return Response.json(200, record)


class UpdateHandler(_StoreHandler):
    kind = 'update'

    def handle(self, ctx: RequestContext) -> Response:
        record_id = ctx.path_params['id']
        patch = ctx.read_json_object()
        merged = self.store.update(record_id, patch)
        if merged is None:
            raise self._not_found(record_id)
        return Response.json(200, merged)


class DeleteHandler(_StoreHandler):
    kind = 'delete'

    def handle(self, ctx: RequestContext) -> Response:
        record_id = ctx.path_params['id']
        if not self.store.delete(record_id):
            raise self._not_found(record_id)
        return Response.no_content()


class StaticHandler(Handler):
    """
    Fixed response body (string, mapping or list), optionally templated.

    Templating is decided when the route is built; the renderer itself
    never consults configuration.
    """

    kind = 'static'

    def __init__(self, status: int, body: Any, templating: bool = False):
        self.status = status
        self.body = {} if body is None else deep_copy(body)
        self.templating = templating

    def handle(self, ctx: RequestContext) -> Response:
        body = render(self.body, ctx) if self.templating else deep_copy(self.body)
        return Response.json(self.status, body)


class EchoHandler(Handler):
    """Reflects the request back as JSON."""

    kind = 'echo'

    def __init__(self, status: int):
        self.status = status

    def handle(self, ctx: RequestContext) -> Response:
        request = ctx.request
        echoed: Dict[str, Any] = {
            'method': request.method,
            'path': request.path,
            'query': request.query_params,
            'headers': request.headers,
            'body': request.body_text,
            'time': utc_now_iso()
        }
        return Response.json(self.status, echoed)

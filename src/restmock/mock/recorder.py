"""
RestMock Record/Replay

Persists request/response pairs as newline-delimited JSON and answers
future requests from them.

Modes:
- record: every response (including chaos and error short-circuits) is
  appended to the log file as one JSON line
- replay: the log is loaded once; each request is answered by the first
  item whose captured request matches under the configured criteria
- off: neither

Record line format:
    {"request": {"method", "path", "query", "headers", "body"},
     "response": {"status", "headers", "bodyBase64"}}
"""

import base64
import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import MatchConfig, RecordReplayConfig
from .http import IncomingRequest, Response

logger = logging.getLogger("restmock.replay")

# Loading stops after this many malformed lines in a row
MAX_CONSECUTIVE_FAILURES = 10

# Headers the transport computes itself
HOP_BY_HOP_HEADERS = {'content-length', 'transfer-encoding', 'connection'}


def _find_header(headers: Dict[str, Any], name: str) -> Optional[str]:
    wanted = name.lower()
    for key in headers:
        if key.lower() == wanted:
            return key
    return None


def _header_text(value: Any) -> str:
    # Multi-valued headers are stored as lists by some recorders
    if isinstance(value, list):
        return ', '.join(str(v) for v in value)
    return str(value)


@dataclass(frozen=True)
class CapturedRequest:
    """Request shape stored with each replay item."""

    method: str
    path: str
    query: str = ''
    headers: Dict[str, List[str]] = field(default_factory=dict)
    body: str = ''

    @classmethod
    def from_incoming(cls, request: IncomingRequest) -> 'CapturedRequest':
        return cls(
            method=request.method,
            path=request.path,
            query=request.query,
            headers={k: list(v) for k, v in request.headers.items()},
            body=request.body_text
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CapturedRequest':
        headers = data.get('headers') or {}
        return cls(
            method=str(data.get('method') or ''),
            path=str(data.get('path') or ''),
            query=data.get('query') or '',
            headers={
                str(k): list(v) if isinstance(v, list) else [str(v)]
                for k, v in headers.items()
            },
            body=data.get('body') or ''
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'path': self.path,
            'query': self.query,
            'headers': self.headers,
            'body': self.body
        }

    def header_values(self, name: str) -> Optional[List[str]]:
        key = _find_header(self.headers, name)
        return self.headers[key] if key is not None else None


@dataclass(frozen=True)
class CapturedResponse:
    """Response shape stored with each replay item."""

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b''

    @classmethod
    def from_response(cls, response: Response) -> 'CapturedResponse':
        return cls(status=response.status, headers=dict(response.headers), body=response.body or b'')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CapturedResponse':
        encoded = data.get('bodyBase64')
        return cls(
            status=int(data['status']),
            headers={str(k): _header_text(v) for k, v in (data.get('headers') or {}).items()},
            body=base64.b64decode(encoded) if encoded else b''
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'headers': self.headers,
            'bodyBase64': base64.b64encode(self.body).decode('ascii')
        }


@dataclass(frozen=True)
class ReplayItem:
    """An immutable (request shape, response shape) pair."""

    request: CapturedRequest
    response: CapturedResponse

    @classmethod
    def capture(cls, request: IncomingRequest, response: Response) -> 'ReplayItem':
        return cls(
            request=CapturedRequest.from_incoming(request),
            response=CapturedResponse.from_response(response)
        )

    @classmethod
    def from_json_line(cls, line: str) -> 'ReplayItem':
        """
        Parse one log line.

        Raises:
            ValueError: If the line is not a valid replay item
        """
        try:
            data = json.loads(line)
            return cls(
                request=CapturedRequest.from_dict(data['request']),
                response=CapturedResponse.from_dict(data['response'])
            )
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise ValueError(f"Malformed replay item: {e}") from e

    def to_json_line(self) -> str:
        return json.dumps(
            {'request': self.request.to_dict(), 'response': self.response.to_dict()},
            separators=(',', ':'),
            ensure_ascii=False
        )

    def matches(self, incoming: CapturedRequest, match: MatchConfig) -> bool:
        """
        Check the incoming request against this item's request shape.

        Only the attributes enabled in match are compared; with nothing
        enabled every item matches.
        """
        captured = self.request
        if match.method and captured.method != incoming.method:
            return False
        if match.path and captured.path != incoming.path:
            return False
        if match.query and captured.query != incoming.query:
            return False
        if match.body and captured.body != incoming.body:
            return False
        for name in match.headers:
            if captured.header_values(name) != incoming.header_values(name):
                return False
        return True

    def to_response(self) -> Response:
        headers = {
            k: v for k, v in self.response.headers.items()
            if k.lower() not in HOP_BY_HOP_HEADERS
        }
        return Response(status=self.response.status, headers=headers, body=self.response.body)


class Recorder:
    """
    Appends replay items to a log file.

    Appends are serialized so concurrent requests never interleave partial
    lines. Write failures are logged and never propagate.
    """

    def __init__(self, file_path: str):
        self.file_path = Path(file_path)
        self._lock = threading.Lock()
        self.recorded = 0

    def record(self, request: IncomingRequest, response: Response) -> bool:
        """
        Append one request/response pair.

        Returns:
            True if the line was written
        """
        try:
            line = ReplayItem.capture(request, response).to_json_line()
            with self._lock:
                with open(self.file_path, 'a', encoding='utf-8') as f:
                    f.write(line + '\n')
                self.recorded += 1
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to record {request.method} {request.path}: {e}")
            return False

        logger.debug(f"Recorded {request.method} {request.path} -> {response.status}")
        return True


class Replayer:
    """
    Answers requests from a loaded replay log by deterministic linear scan.

    Example:
        replayer = Replayer('traffic.ndjson', MatchConfig(method=True, path=True))
        replayer.load()
        response = replayer.find(request)
    """

    def __init__(self, file_path: str, match: MatchConfig):
        self.file_path = Path(file_path)
        self.match = match
        self._items: List[ReplayItem] = []
        self.skipped = 0

    @property
    def items(self) -> List[ReplayItem]:
        return list(self._items)

    def load(self) -> int:
        """
        Load every line of the log file.

        Malformed lines are skipped and counted; loading stops early after
        MAX_CONSECUTIVE_FAILURES malformed lines in a row. A missing or
        unreadable file leaves the replay set empty.

        Returns:
            Number of items loaded
        """
        if not self.file_path.exists():
            logger.warning(f"Replay file not found: {self.file_path}")
            return 0

        consecutive_failures = 0
        try:
            with open(self.file_path, 'rb') as f:
                for line_number, raw_line in enumerate(f, 1):
                    raw_line = raw_line.strip()
                    if not raw_line:
                        continue
                    try:
                        # An undecodable line counts as malformed
                        line = raw_line.decode('utf-8')
                        self._items.append(ReplayItem.from_json_line(line))
                        consecutive_failures = 0
                    except ValueError as e:
                        self.skipped += 1
                        consecutive_failures += 1
                        logger.debug(f"Skipping line {line_number} of {self.file_path}: {e}")
                        if consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
                            logger.error(
                                f"Stopped loading {self.file_path} after {consecutive_failures} "
                                f"consecutive malformed lines (line {line_number})"
                            )
                            break
        except OSError as e:
            logger.error(f"Failed loading replay file {self.file_path}: {e}")

        logger.info(f"Loaded {len(self._items)} replay items from {self.file_path} (skipped {self.skipped})")
        return len(self._items)

    def find(self, request: IncomingRequest) -> Optional[Response]:
        """First matching recorded response, or None."""
        incoming = CapturedRequest.from_incoming(request)
        # Scan a stable snapshot of the append-only list
        for item in self._items[:len(self._items)]:
            if item.matches(incoming, self.match):
                return item.to_response()
        return None


class RecordReplay:
    """
    Record/replay subsystem as seen by the engine.

    Wraps a Recorder or Replayer according to the configured mode.
    """

    def __init__(self, config: RecordReplayConfig):
        self.config = config
        self.recorder: Optional[Recorder] = None
        self.replayer: Optional[Replayer] = None

        if config.recording and config.file:
            self.recorder = Recorder(config.file)
        elif config.replaying and config.file:
            self.replayer = Replayer(config.file, config.match)
            self.replayer.load()

    @property
    def recording(self) -> bool:
        return self.recorder is not None

    @property
    def replaying(self) -> bool:
        return self.replayer is not None

    @property
    def miss_is_error(self) -> bool:
        return self.config.replay_on_miss == 'error'

    def try_replay(self, request: IncomingRequest) -> Optional[Response]:
        if self.replayer is None:
            return None
        return self.replayer.find(request)

    def record(self, request: IncomingRequest, response: Response):
        if self.recorder is not None:
            self.recorder.record(request, response)

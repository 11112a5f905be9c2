"""
RestMock Configuration

YAML/JSON configuration for the mock server: resources, static endpoints,
chaos settings, feature flags and record/replay options.

Example YAML:
    port: 8080
    authToken: secret
    artificialLatencyMs: 0
    chaosFailRate: 0.0
    features:
      templating: true
      hotReload: true
      schemaValidation: strict
      recordReplay:
        mode: record
        file: traffic.ndjson
        replayOnMiss: fallback
        match: {method: true, path: true, headers: [Accept]}
    resources:
      - name: users
        idField: id
        seed:
          - {id: u1, name: Ada}
    staticEndpoints:
      - method: GET
        path: /health
        response: {status: ok, time: "{{now}}"}
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger("restmock.config")

RECORD_REPLAY_MODES = ('off', 'record', 'replay')
REPLAY_MISS_POLICIES = ('fallback', 'error')
SCHEMA_VALIDATION_MODES = ('strict', 'lenient')

DEFAULT_MAX_RETRY_WINDOW = 300


class ConfigError(ValueError):
    """Configuration file could not be loaded or failed strict validation."""


def _clamp_rate(value: Any) -> float:
    return max(0.0, min(1.0, float(value or 0.0)))


@dataclass
class RouteChaosConfig:
    """Chaos overrides for one resource's CRUD routes or one static endpoint."""

    latency_ms: int = 0
    random_latency_min_ms: int = 0
    random_latency_max_ms: int = 0
    failure_rate: float = 0.0
    random_statuses: List[int] = field(default_factory=list)
    random_status_weights: List[float] = field(default_factory=list)
    success_after_retries: int = 0
    success_after_seconds: float = 0
    max_retry_window: float = DEFAULT_MAX_RETRY_WINDOW

    CHAOS_KEYS = (
        'latencyMs', 'randomLatencyMinMs', 'randomLatencyMaxMs', 'failureRate',
        'randomStatuses', 'randomStatusWeights', 'successAfterRetries',
        'successAfterSeconds', 'maxRetryWindow'
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['RouteChaosConfig']:
        """Build overrides from a resource/endpoint entry; None when it sets none."""
        if not any(data.get(key) is not None for key in cls.CHAOS_KEYS):
            return None

        return cls(
            latency_ms=int(data.get('latencyMs') or 0),
            random_latency_min_ms=int(data.get('randomLatencyMinMs') or 0),
            random_latency_max_ms=int(data.get('randomLatencyMaxMs') or 0),
            failure_rate=_clamp_rate(data.get('failureRate')),
            random_statuses=[int(s) for s in data.get('randomStatuses') or []],
            random_status_weights=[float(w) for w in data.get('randomStatusWeights') or []],
            success_after_retries=int(data.get('successAfterRetries') or 0),
            success_after_seconds=float(data.get('successAfterSeconds') or 0),
            max_retry_window=float(data.get('maxRetryWindow') or DEFAULT_MAX_RETRY_WINDOW)
        )


@dataclass
class MatchConfig:
    """Which request attributes a replayed item must match."""

    method: bool = False
    path: bool = False
    query: bool = False
    body: bool = False
    headers: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'MatchConfig':
        data = data or {}
        return cls(
            method=bool(data.get('method', False)),
            path=bool(data.get('path', False)),
            query=bool(data.get('query', False)),
            body=bool(data.get('body', False)),
            headers=[str(h) for h in data.get('headers') or []]
        )


@dataclass
class RecordReplayConfig:
    """Record/replay mode, log file and replay matching rules."""

    mode: str = 'off'
    file: Optional[str] = None
    replay_on_miss: str = 'fallback'
    match: MatchConfig = field(default_factory=MatchConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'RecordReplayConfig':
        data = data or {}
        return cls(
            mode=str(data.get('mode') or 'off').lower(),
            file=data.get('file') or None,
            replay_on_miss=str(data.get('replayOnMiss') or 'fallback').lower(),
            match=MatchConfig.from_dict(data.get('match'))
        )

    @property
    def recording(self) -> bool:
        return self.mode == 'record'

    @property
    def replaying(self) -> bool:
        return self.mode == 'replay'


@dataclass
class FeaturesConfig:
    """Feature flags."""

    templating: bool = False
    hot_reload: bool = False
    schema_validation: str = 'lenient'
    record_replay: RecordReplayConfig = field(default_factory=RecordReplayConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'FeaturesConfig':
        data = data or {}
        return cls(
            templating=bool(data.get('templating', False)),
            hot_reload=bool(data.get('hotReload', False)),
            schema_validation=str(data.get('schemaValidation') or 'lenient').lower(),
            record_replay=RecordReplayConfig.from_dict(data.get('recordReplay'))
        )


@dataclass
class ResourceConfig:
    """A CRUD resource served under /api/<name>."""

    name: str
    id_field: str = 'id'
    enable_crud: bool = True
    seed: List[Dict[str, Any]] = field(default_factory=list)
    chaos: Optional[RouteChaosConfig] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResourceConfig':
        enable_crud = data.get('enableCrud')
        return cls(
            name=str(data.get('name') or ''),
            id_field=str(data.get('idField') or 'id'),
            enable_crud=True if enable_crud is None else bool(enable_crud),
            seed=[dict(row) for row in data.get('seed') or []],
            chaos=RouteChaosConfig.from_dict(data)
        )


@dataclass
class StaticEndpointConfig:
    """A fixed response (or request echo) bound to one method and path."""

    path: str
    method: str = 'GET'
    status: int = 200
    response: Any = None
    echo_request: bool = False
    chaos: Optional[RouteChaosConfig] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StaticEndpointConfig':
        return cls(
            path=str(data.get('path') or ''),
            method=str(data.get('method') or 'GET').upper(),
            status=int(data.get('status') or 200),
            response=data.get('response'),
            echo_request=bool(data.get('echoRequest', False)),
            chaos=RouteChaosConfig.from_dict(data)
        )


@dataclass
class MockConfig:
    """Complete server configuration."""

    port: int = 8080
    auth_token: Optional[str] = None
    artificial_latency_ms: int = 0
    chaos_fail_rate: float = 0.0
    features: FeaturesConfig = field(default_factory=FeaturesConfig)
    resources: List[ResourceConfig] = field(default_factory=list)
    static_endpoints: List[StaticEndpointConfig] = field(default_factory=list)

    # Raw values kept for validation (rates before clamping)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'MockConfig':
        """Create config from a parsed YAML/JSON mapping."""
        data = data or {}
        port = data.get('port')
        return cls(
            port=8080 if port is None else int(port),
            auth_token=data.get('authToken') or None,
            artificial_latency_ms=int(data.get('artificialLatencyMs') or 0),
            chaos_fail_rate=_clamp_rate(data.get('chaosFailRate')),
            features=FeaturesConfig.from_dict(data.get('features')),
            resources=[ResourceConfig.from_dict(r) for r in data.get('resources') or []],
            static_endpoints=[StaticEndpointConfig.from_dict(s) for s in data.get('staticEndpoints') or []],
            raw=data
        )


def load_config(path: str) -> MockConfig:
    """
    Load configuration from a YAML or JSON file.

    Args:
        path: Path to .yml/.yaml/.json file

    Returns:
        Parsed MockConfig (not yet validated)

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the file cannot be parsed or is not a mapping
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            if config_path.suffix.lower() == '.json':
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot parse {config_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping, got {type(data).__name__}")

    try:
        return MockConfig.from_dict(data)
    except (AttributeError, TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {config_path}: {e}") from e


def apply_overrides(
    config: MockConfig,
    port: Optional[int] = None,
    auth_token: Optional[str] = None,
    record_replay_mode: Optional[str] = None,
    record_replay_file: Optional[str] = None
) -> MockConfig:
    """
    Apply command-line or test-harness overrides to a loaded config in place.

    None leaves the configured value unchanged.

    Returns:
        The same config object
    """
    if port is not None:
        config.port = port
    if auth_token is not None:
        config.auth_token = auth_token or None
    if record_replay_mode is not None:
        config.features.record_replay.mode = record_replay_mode.lower()
    if record_replay_file is not None:
        config.features.record_replay.file = str(record_replay_file)
    return config


def validate_config(config: MockConfig) -> List[str]:
    """
    Collect every problem in a configuration.

    Args:
        config: Parsed configuration

    Returns:
        List of human-readable problems (empty when valid)
    """
    errors: List[str] = []
    raw = config.raw

    rate = raw.get('chaosFailRate')
    if rate is not None and not 0.0 <= float(rate) <= 1.0:
        errors.append(f"chaosFailRate must be between 0 and 1, got {rate}")
    if config.artificial_latency_ms < 0:
        errors.append("artificialLatencyMs must not be negative")

    features = config.features
    if features.schema_validation not in SCHEMA_VALIDATION_MODES:
        errors.append(f"features.schemaValidation must be one of {SCHEMA_VALIDATION_MODES}")

    rr = features.record_replay
    if rr.mode not in RECORD_REPLAY_MODES:
        errors.append(f"features.recordReplay.mode must be one of {RECORD_REPLAY_MODES}")
    if rr.replay_on_miss not in REPLAY_MISS_POLICIES:
        errors.append(f"features.recordReplay.replayOnMiss must be one of {REPLAY_MISS_POLICIES}")
    if rr.mode in ('record', 'replay') and not rr.file:
        errors.append(f"features.recordReplay.file is required in {rr.mode} mode")

    names = set()
    raw_resources = raw.get('resources') or []
    for index, resource in enumerate(config.resources):
        raw_resource = _raw_entry(raw_resources, index, {'idField': resource.id_field})
        if not resource.name:
            errors.append(f"resources[{index}].name is required")
        elif resource.name in names:
            errors.append(f"duplicate resource name: {resource.name}")
        names.add(resource.name)
        if not raw_resource.get('idField'):
            errors.append(f"resources[{index}].idField is required for: {resource.name or '?'}")
        errors.extend(_validate_chaos(f"resources[{index}]", resource.chaos, raw_resource))

    raw_endpoints = raw.get('staticEndpoints') or []
    for index, endpoint in enumerate(config.static_endpoints):
        raw_endpoint = _raw_entry(raw_endpoints, index, {})
        if not endpoint.path:
            errors.append(f"staticEndpoints[{index}].path is required")
        errors.extend(_validate_chaos(f"staticEndpoints[{index}]", endpoint.chaos, raw_endpoint))

    return errors


def _raw_entry(entries: List[Any], index: int, default: Dict[str, Any]) -> Dict[str, Any]:
    # Programmatically built configs carry no raw mapping
    if index < len(entries) and isinstance(entries[index], dict):
        return entries[index]
    return default


def _validate_chaos(where: str, chaos: Optional[RouteChaosConfig], raw: Dict[str, Any]) -> List[str]:
    if chaos is None:
        return []

    errors = []
    rate = raw.get('failureRate')
    if rate is not None and not 0.0 <= float(rate) <= 1.0:
        errors.append(f"{where}.failureRate must be between 0 and 1, got {rate}")
    if chaos.random_status_weights and len(chaos.random_status_weights) != len(chaos.random_statuses):
        errors.append(f"{where}.randomStatuses and randomStatusWeights must have the same length")
    if min(chaos.latency_ms, chaos.random_latency_min_ms, chaos.random_latency_max_ms) < 0:
        errors.append(f"{where} latencies must not be negative")
    if chaos.success_after_retries < 0 or chaos.success_after_seconds < 0:
        errors.append(f"{where} retry simulation values must not be negative")
    if chaos.success_after_seconds > 0 and chaos.success_after_seconds >= chaos.max_retry_window:
        errors.append(
            f"{where}.successAfterSeconds ({chaos.success_after_seconds:g}) must be less than "
            f"maxRetryWindow ({chaos.max_retry_window:g})"
        )
    return errors


def check_config(config: MockConfig) -> MockConfig:
    """
    Apply the configured schema validation mode.

    Strict mode rejects an invalid config; lenient mode logs each problem
    and returns the config unchanged.

    Raises:
        ConfigError: In strict mode when any problem is found
    """
    errors = validate_config(config)
    if not errors:
        return config

    if config.features.schema_validation == 'strict':
        raise ConfigError("Invalid config: " + "; ".join(errors))

    for error in errors:
        logger.warning(f"[lenient] {error}")
    return config

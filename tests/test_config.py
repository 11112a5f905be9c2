"""
Tests for RestMock Configuration

Tests loading and validating config files including:
- YAML and JSON parsing with defaults
- Route chaos options
- Strict and lenient schema validation
- Overrides
"""

import json
import logging

import pytest

from restmock.config import (
    ConfigError,
    MockConfig,
    ResourceConfig,
    RouteChaosConfig,
    apply_overrides,
    check_config,
    load_config,
    validate_config,
)


class TestLoadConfig:
    """Test reading config files."""

    def test_yaml_with_defaults(self, write_config):
        """Test absent keys take their defaults."""
        config = load_config(write_config({'resources': [{'name': 'users'}]}))

        assert config.port == 8080
        assert config.auth_token is None
        assert config.artificial_latency_ms == 0
        assert config.chaos_fail_rate == 0.0
        assert config.features.templating is False
        assert config.features.schema_validation == 'lenient'
        assert config.features.record_replay.mode == 'off'
        assert config.features.record_replay.replay_on_miss == 'fallback'
        assert config.resources[0].id_field == 'id'
        assert config.resources[0].enable_crud is True
        assert config.resources[0].chaos is None

    def test_full_yaml(self, write_config):
        config = load_config(write_config({
            'port': 9000,
            'authToken': 'secret',
            'artificialLatencyMs': 50,
            'chaosFailRate': 0.25,
            'features': {
                'templating': True,
                'hotReload': True,
                'schemaValidation': 'STRICT',
                'recordReplay': {
                    'mode': 'replay',
                    'file': 'traffic.ndjson',
                    'replayOnMiss': 'error',
                    'match': {'method': True, 'path': True, 'headers': ['Accept']}
                }
            },
            'resources': [{'name': 'orders', 'idField': 'orderId', 'enableCrud': False, 'seed': [{'orderId': 1}]}],
            'staticEndpoints': [{'path': '/echo', 'method': 'post', 'status': 202, 'echoRequest': True}]
        }))

        assert config.port == 9000
        assert config.auth_token == 'secret'
        assert config.features.hot_reload is True
        assert config.features.schema_validation == 'strict'
        rr = config.features.record_replay
        assert rr.replaying
        assert rr.match.method and rr.match.path and not rr.match.query
        assert rr.match.headers == ['Accept']
        assert config.resources[0].enable_crud is False
        assert config.resources[0].seed == [{'orderId': 1}]
        endpoint = config.static_endpoints[0]
        assert endpoint.method == 'POST'
        assert endpoint.status == 202
        assert endpoint.echo_request is True

    def test_json_file(self, tmp_path):
        path = tmp_path / 'mock.json'
        path.write_text(json.dumps({'port': 7000, 'staticEndpoints': [{'path': '/x', 'response': 'hi'}]}))

        config = load_config(str(path))

        assert config.port == 7000
        assert config.static_endpoints[0].response == 'hi'

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'empty.yml'
        path.write_text('')

        assert load_config(str(path)).resources == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / 'missing.yml'))

    def test_unparseable_file(self, tmp_path):
        path = tmp_path / 'bad.yml'
        path.write_text('port: [unclosed')

        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / 'list.yml'
        path.write_text('- a\n- b\n')

        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_bad_value_type(self, write_config):
        with pytest.raises(ConfigError):
            load_config(write_config({'port': 'not-a-port'}))


class TestRouteChaosConfig:
    """Test route-level chaos options."""

    def test_none_without_chaos_keys(self):
        assert RouteChaosConfig.from_dict({'name': 'users'}) is None

    def test_parses_all_keys(self):
        chaos = RouteChaosConfig.from_dict({
            'latencyMs': 10,
            'randomLatencyMinMs': 5,
            'randomLatencyMaxMs': 15,
            'failureRate': 1.5,
            'randomStatuses': [500, 503],
            'randomStatusWeights': [1, 3],
            'successAfterRetries': 2,
            'successAfterSeconds': 1.5
        })

        assert chaos.latency_ms == 10
        assert chaos.random_latency_max_ms == 15
        assert chaos.failure_rate == 1.0
        assert chaos.random_statuses == [500, 503]
        assert chaos.random_status_weights == [1.0, 3.0]
        assert chaos.success_after_retries == 2
        assert chaos.success_after_seconds == 1.5
        assert chaos.max_retry_window == 300

    def test_resource_carries_chaos(self):
        resource = ResourceConfig.from_dict({'name': 'users', 'failureRate': 0.5})

        assert resource.chaos.failure_rate == 0.5


class TestValidateConfig:
    """Test collecting config problems."""

    def test_valid_config(self, users_config):
        assert validate_config(MockConfig.from_dict(users_config)) == []

    def test_reports_every_problem(self):
        config = MockConfig.from_dict({
            'chaosFailRate': 2,
            'features': {'schemaValidation': 'sometimes', 'recordReplay': {'mode': 'record'}},
            'resources': [{'name': 'users'}, {'name': 'users'}, {'idField': ''}],
            'staticEndpoints': [
                {'method': 'GET'},
                {'path': '/x', 'randomStatuses': [500], 'randomStatusWeights': [1, 2]}
            ]
        })

        errors = validate_config(config)
        text = '\n'.join(errors)

        assert 'chaosFailRate' in text
        assert 'schemaValidation' in text
        assert 'file is required' in text
        assert 'duplicate resource name: users' in text
        assert 'resources[2].name is required' in text
        assert 'resources[2].idField is required' in text
        assert 'staticEndpoints[0].path is required' in text
        assert 'same length' in text

    def test_retry_seconds_must_fit_window(self):
        """Test a success time the retry window can never reach is reported."""
        config = MockConfig.from_dict({
            'staticEndpoints': [
                {'path': '/slow', 'successAfterSeconds': 60, 'maxRetryWindow': 30},
                {'path': '/ok', 'successAfterSeconds': 10, 'maxRetryWindow': 30}
            ]
        })

        errors = validate_config(config)

        assert len(errors) == 1
        assert 'staticEndpoints[0].successAfterSeconds' in errors[0]

    def test_programmatic_config(self):
        """Test configs built without a raw mapping validate."""
        config = MockConfig(resources=[ResourceConfig(name='users')])

        assert validate_config(config) == []


class TestCheckConfig:
    """Test schema validation modes."""

    def test_strict_rejects(self):
        config = MockConfig.from_dict({
            'features': {'schemaValidation': 'strict'},
            'staticEndpoints': [{'method': 'GET'}]
        })

        with pytest.raises(ConfigError, match='path is required'):
            check_config(config)

    def test_lenient_logs_and_proceeds(self, caplog):
        config = MockConfig.from_dict({'staticEndpoints': [{'method': 'GET'}]})

        with caplog.at_level(logging.WARNING, logger='restmock.config'):
            assert check_config(config) is config

        assert '[lenient]' in caplog.text
        assert len(config.static_endpoints) == 1


class TestApplyOverrides:
    """Test override application."""

    def test_overrides(self):
        config = apply_overrides(
            MockConfig(),
            port=0,
            auth_token='t',
            record_replay_mode='RECORD',
            record_replay_file='x.ndjson'
        )

        assert config.port == 0
        assert config.auth_token == 't'
        assert config.features.record_replay.recording
        assert config.features.record_replay.file == 'x.ndjson'

    def test_none_keeps_values(self):
        config = apply_overrides(MockConfig(port=9000, auth_token='keep'))

        assert config.port == 9000
        assert config.auth_token == 'keep'

"""
Tests for configuration validation and duration parsing.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from promql_poller.config.validation import (
    PollerConfigValidator,
    QueryConfigValidator,
    get_env_var_mappings,
    parse_duration,
    validate_config_dict,
)
from promql_poller.utils.errors import ConfigurationError


class TestParseDuration:
    """Test duration parsing."""

    @pytest.mark.parametrize("value, expected", [
        ("30s", timedelta(seconds=30)),
        ("1m30s", timedelta(seconds=90)),
        ("500ms", timedelta(milliseconds=500)),
        ("2h", timedelta(hours=2)),
        ("1h15m", timedelta(minutes=75)),
        ("1.5s", timedelta(seconds=1.5)),
        ("250us", timedelta(microseconds=250)),
        ("1d", timedelta(days=1)),
        ("45", timedelta(seconds=45)),
        ("0.25", timedelta(seconds=0.25)),
        (10, timedelta(seconds=10)),
        (2.5, timedelta(seconds=2.5)),
        (timedelta(minutes=1), timedelta(minutes=1)),
        ("-5s", timedelta(seconds=-5)),
    ])
    def test_valid_durations(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "s", "5x", "5s junk", "1m 30s", "soon", "nan", "inf", True])
    def test_invalid_durations(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestQueryConfigValidator:
    """Test single query validation."""

    def test_promql_aliases(self):
        for key in ('promql', 'expression', 'query'):
            query = QueryConfigValidator(**{
                'server': 'http://localhost:9090',
                key: 'up',
                'interval': '5s',
            })
            assert query.expression == 'up'

    def test_server_trailing_slash_removed(self):
        query = QueryConfigValidator(server='http://localhost:9090/', promql='up', interval='5s')
        assert query.server == 'http://localhost:9090'

    def test_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            QueryConfigValidator(server='http://localhost:9090', promql='up', interval='0s')
        with pytest.raises(ValidationError):
            QueryConfigValidator(server='http://localhost:9090', promql='up', interval=-1)

    def test_empty_expression(self):
        with pytest.raises(ValidationError):
            QueryConfigValidator(server='http://localhost:9090', promql='  ', interval='5s')


class TestValidateConfigDict:
    """Test whole configuration validation."""

    def test_valid_config(self):
        validated = validate_config_dict({
            'queries': {
                'up': {'server': 'http://localhost:9090', 'promql': 'up', 'interval': '15s'},
            },
            'logging': {'level': 'warning'},
        })

        assert isinstance(validated, PollerConfigValidator)
        assert validated.logging.level == 'WARNING'

        config = validated.to_poller_config()
        assert config.queries['up'].interval_seconds == 15
        assert config.queries['up'].name == 'up'

    def test_empty_config(self):
        config = validate_config_dict({}).to_poller_config()
        assert len(config.queries) == 0

    def test_null_sections(self):
        config = validate_config_dict({'queries': None, 'http': None}).to_poller_config()
        assert len(config.queries) == 0
        assert config.http.timeout == 30.0

    @pytest.mark.parametrize("data", [
        {'unknown': 1},
        {'http': {'timeout': 0}},
        {'http': {'timeout': -5}},
        {'scheduler': {'shutdown_timeout': -1}},
        {'logging': {'level': 'LOUD'}},
        {'queries': {'': {'server': 'http://localhost:9090', 'promql': 'up', 'interval': '5s'}}},
    ])
    def test_invalid_config(self, data):
        with pytest.raises(ConfigurationError):
            validate_config_dict(data)

    def test_non_mapping(self):
        with pytest.raises(ConfigurationError):
            validate_config_dict(['queries'])


def test_get_env_var_mappings():
    mappings = get_env_var_mappings()

    assert mappings['PROMQL_POLLER_HTTP_TIMEOUT'] == 'http.timeout'
    assert mappings['PROMQL_POLLER_SHUTDOWN_TIMEOUT'] == 'scheduler.shutdown_timeout'
    assert mappings['PROMQL_POLLER_LOG_LEVEL'] == 'logging.level'
    assert all(key.startswith('PROMQL_POLLER_') for key in mappings)

"""
Unit tests for config.defaults module.
"""

import pytest

from switchboard.config.defaults import (
    apply_health_defaults,
    apply_logging_defaults,
    apply_telephony_defaults,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PORT", "TELEPHONY_BIND_HOST", "HEALTH_BIND_HOST", "HEALTH_BIND_PORT", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


class TestApplyTelephonyDefaults:

    def test_default_values_when_no_env(self):
        config_data = {}
        apply_telephony_defaults(config_data)

        assert config_data['telephony'] == {
            'host': '0.0.0.0',
            'port': 8080,
            'stream_path': '/twilio-stream',
        }

    def test_port_env_overrides_yaml(self, monkeypatch):
        monkeypatch.setenv('PORT', '3000')
        config_data = {'telephony': {'port': 8080}}

        apply_telephony_defaults(config_data)

        assert config_data['telephony']['port'] == 3000

    def test_invalid_port_env_keeps_yaml(self, monkeypatch):
        monkeypatch.setenv('PORT', 'not-a-port')
        config_data = {'telephony': {'port': 9090}}

        apply_telephony_defaults(config_data)

        assert config_data['telephony']['port'] == 9090

    def test_bind_host_env_overrides_yaml(self, monkeypatch):
        monkeypatch.setenv('TELEPHONY_BIND_HOST', '127.0.0.1')
        config_data = {'telephony': {'host': '0.0.0.0'}}

        apply_telephony_defaults(config_data)

        assert config_data['telephony']['host'] == '127.0.0.1'

    def test_yaml_stream_path_preserved(self):
        config_data = {'telephony': {'stream_path': '/media'}}

        apply_telephony_defaults(config_data)

        assert config_data['telephony']['stream_path'] == '/media'


class TestApplyHealthDefaults:

    def test_defaults(self):
        config_data = {}
        apply_health_defaults(config_data)

        assert config_data['health']['host'] == '127.0.0.1'
        assert config_data['health']['port'] == 15000

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv('HEALTH_BIND_HOST', '0.0.0.0')
        monkeypatch.setenv('HEALTH_BIND_PORT', '16000')
        config_data = {'health': {'host': '10.0.0.1', 'port': 1}}

        apply_health_defaults(config_data)

        assert config_data['health']['host'] == '0.0.0.0'
        assert config_data['health']['port'] == 16000


class TestApplyLoggingDefaults:

    def test_level_from_env(self, monkeypatch):
        monkeypatch.setenv('LOG_LEVEL', 'DEBUG')
        config_data = {}

        apply_logging_defaults(config_data)

        assert config_data['logging']['level'] == 'debug'

    def test_yaml_level_kept(self):
        config_data = {'logging': {'level': 'warning'}}

        apply_logging_defaults(config_data)

        assert config_data['logging']['level'] == 'warning'

"""
Default value application for configuration.

This module handles:
- Telephony WebSocket bind defaults (PORT override, as on hosted platforms)
- Health surface bind defaults
- Logging level default
"""

import os
from typing import Any, Dict


def apply_telephony_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply telephony listener defaults with environment variable overrides.

    Environment variables:
    - PORT: Override telephony WebSocket port
    - TELEPHONY_BIND_HOST: Override bind address

    Precedence: env overrides > YAML telephony.* > defaults
    """
    telephony_cfg = config_data.get('telephony') or {}

    bind_host = os.getenv('TELEPHONY_BIND_HOST')
    if bind_host:
        telephony_cfg['host'] = bind_host
    else:
        telephony_cfg.setdefault('host', '0.0.0.0')
    port_env = os.getenv('PORT')
    if port_env:
        try:
            telephony_cfg['port'] = int(port_env)
        except ValueError:
            telephony_cfg.setdefault('port', 8080)
    else:
        telephony_cfg.setdefault('port', 8080)
    telephony_cfg.setdefault('stream_path', '/twilio-stream')

    config_data['telephony'] = telephony_cfg


def apply_health_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply health/operations endpoint defaults.

    Precedence: env overrides > YAML health.* > defaults

    Environment variables:
    - HEALTH_BIND_HOST
    - HEALTH_BIND_PORT
    """
    health_cfg = config_data.get('health') or {}

    if "HEALTH_BIND_HOST" in os.environ:
        health_cfg['host'] = os.getenv('HEALTH_BIND_HOST', '127.0.0.1')
    else:
        health_cfg.setdefault('host', '127.0.0.1')

    if "HEALTH_BIND_PORT" in os.environ:
        try:
            health_cfg['port'] = int(os.getenv('HEALTH_BIND_PORT', '15000'))
        except ValueError:
            health_cfg['port'] = 15000
    else:
        health_cfg.setdefault('port', 15000)

    config_data['health'] = health_cfg


def apply_logging_defaults(config_data: Dict[str, Any]) -> None:
    """Fill logging.level from LOG_LEVEL when YAML leaves it unset."""
    logging_cfg = config_data.get('logging') or {}
    logging_cfg.setdefault('level', os.getenv('LOG_LEVEL', 'info').lower())
    config_data['logging'] = logging_cfg

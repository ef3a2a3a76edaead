"""
Security-critical configuration injection.

This module handles:
- OpenAI Realtime API key injection (ONLY from environment variables)
- Supabase URL/service key injection (ONLY from environment variables)
- Persona refresh token injection (ONLY from environment variables)

SECURITY POLICY:
- API keys and tokens MUST NEVER be in YAML files
- Any value found in YAML for these fields is overwritten (or cleared)
"""

import os
from typing import Any, Dict


def _is_nonempty_string(val: Any) -> bool:
    """True if val is a string with non-whitespace content."""
    return isinstance(val, str) and val.strip() != ""


def _env(name: str):
    value = os.getenv(name)
    return value.strip() if _is_nonempty_string(value) else None


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = config_data.get(name)
    if not isinstance(block, dict):
        block = {}
    config_data[name] = block
    return block


def inject_realtime_credentials(config_data: Dict[str, Any]) -> None:
    """
    Inject the OpenAI API key from the environment.

    Environment variables:
    - OPENAI_API_KEY (required for the service to start)
    """
    realtime = _section(config_data, 'realtime')
    realtime['api_key'] = _env("OPENAI_API_KEY")


def inject_supabase_credentials(config_data: Dict[str, Any]) -> None:
    """
    Inject Supabase connection details from the environment.

    The URL may come from YAML when not set in the environment; the service
    key never does.

    Environment variables:
    - SUPABASE_URL
    - SUPABASE_SERVICE_KEY (falls back to SUPABASE_KEY)
    """
    supabase = _section(config_data, 'supabase')
    url = _env("SUPABASE_URL")
    if url:
        supabase['url'] = url
    elif not _is_nonempty_string(supabase.get('url')):
        supabase['url'] = None
    supabase['api_key'] = _env("SUPABASE_SERVICE_KEY") or _env("SUPABASE_KEY")


def inject_refresh_token(config_data: Dict[str, Any]) -> None:
    """
    Inject the bearer token guarding POST /personas/refresh.

    Environment variables:
    - PROMPT_REFRESH_TOKEN
    """
    health = _section(config_data, 'health')
    health['refresh_token'] = _env("PROMPT_REFRESH_TOKEN")

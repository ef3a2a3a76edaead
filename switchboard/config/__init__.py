"""
Configuration system for the Switchboard voice agent.

Models are validated with Pydantic v2. Loading runs in phases: YAML with
environment expansion, credential injection from the environment, defaults,
then validation into AppConfig.
"""

import os
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from switchboard.config.loaders import (
    DEFAULT_CONFIG_PATH,
    load_yaml_with_env_expansion,
    resolve_config_path,
)
from switchboard.config.security import (
    inject_realtime_credentials,
    inject_refresh_token,
    inject_supabase_credentials,
)
from switchboard.config.defaults import (
    apply_health_defaults,
    apply_logging_defaults,
    apply_telephony_defaults,
)

logger = structlog.get_logger(__name__)

DEFAULT_PERSONA = "router"

FALLBACK_ERROR_TEXT = "I'm having trouble accessing that information right now."


class TelephonyConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)
    # Only media streams connecting on this path are accepted
    stream_path: str = Field(default="/twilio-stream")


class RealtimeConfig(BaseModel):
    api_key: Optional[str] = None
    model: str = Field(default="gpt-realtime")
    voice: str = Field(default="verse")
    base_url: str = Field(default="wss://api.openai.com/v1/realtime")
    organization: Optional[str] = None
    # Twilio media streams carry 8 kHz mu-law, passed through untouched
    input_audio_format: str = Field(default="g711_ulaw")
    output_audio_format: str = Field(default="g711_ulaw")
    modalities: List[str] = Field(default_factory=lambda: ["audio", "text"])
    temperature: Optional[float] = None
    session_created_timeout_sec: float = Field(default=5.0)

    class TurnDetectionConfig(BaseModel):
        type: str = Field(default="server_vad")
        silence_duration_ms: int = Field(default=500)
        threshold: float = Field(default=0.5)
        prefix_padding_ms: int = Field(default=300)

    # null disables server turn detection
    turn_detection: Optional[TurnDetectionConfig] = Field(default_factory=TurnDetectionConfig)


class SupabaseConfig(BaseModel):
    url: Optional[str] = None
    api_key: Optional[str] = None
    prompts_table: str = Field(default="agent_system_prompts")
    schedule_table: str = Field(default="pickup_events")
    items_table: str = Field(default="items")
    timeout_sec: float = Field(default=5.0)


class PersonaConfig(BaseModel):
    display_name: str
    store_key: Optional[str] = None
    # Used when the persona store is unreachable or has no active row
    instructions: str
    tools: List[str] = Field(default_factory=list)


def _default_personas() -> Dict[str, PersonaConfig]:
    return {
        "router": PersonaConfig(
            display_name="Router",
            store_key="agent_router",
            instructions=(
                "You are the router. Greet the user. If they need pickup info, transfer to Pickup. "
                "If items, transfer to Items. Do not answer questions yourself."
            ),
            tools=["transfer_to_pickup", "transfer_to_items"],
        ),
        "pickup": PersonaConfig(
            display_name="Pickup Specialist",
            store_key="agent_pickup",
            instructions=(
                "You are the Pickup Specialist. You answer questions about dates and times using the "
                "get_pickup_times tool. If asked about items, transfer to main menu."
            ),
            tools=["get_pickup_times", "transfer_to_main_menu"],
        ),
        "items": PersonaConfig(
            display_name="Item Specialist",
            store_key="agent_items",
            instructions=(
                "You are the Item Specialist. You answer questions about food and kashrus using the "
                "get_item_info tool. If asked about pickup, transfer to main menu."
            ),
            tools=["get_item_info", "transfer_to_main_menu"],
        ),
    }


class HandoffConfig(BaseModel):
    # Lets the spoken acknowledgment finish before the caller's question is replayed
    replay_delay_sec: float = Field(default=1.5)
    returning_caller_instructions: str = Field(
        default=(
            "The caller has just been brought back to the main menu. Do not repeat the opening "
            "greeting. Briefly welcome them back and ask what else you can help with."
        )
    )


class GreetingConfig(BaseModel):
    instructions: str = Field(
        default="Greet the caller warmly, introduce yourself, and ask how you can help today."
    )


class AudioGateConfig(BaseModel):
    # drop: discard caller audio while the assistant speaks
    # passthrough: always forward, rely on the model's turn detection
    policy: str = Field(default="drop")


class AnswersConfig(BaseModel):
    fallback_error: str = Field(default=FALLBACK_ERROR_TEXT)
    templates: Dict[str, str] = Field(default_factory=dict)


class LocationsConfig(BaseModel):
    synonyms: Dict[str, str] = Field(default_factory=dict)


class HealthConfig(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=15000)
    refresh_token: Optional[str] = None


class LoggingConfig(BaseModel):
    level: str = Field(default="info")  # debug|info|warning|error|critical


class AppConfig(BaseModel):
    default_persona: str = Field(default=DEFAULT_PERSONA)
    telephony: TelephonyConfig = Field(default_factory=TelephonyConfig)
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
    personas: Dict[str, PersonaConfig] = Field(default_factory=_default_personas)
    handoff: HandoffConfig = Field(default_factory=HandoffConfig)
    greeting: GreetingConfig = Field(default_factory=GreetingConfig)
    audio_gate: AudioGateConfig = Field(default_factory=AudioGateConfig)
    answers: AnswersConfig = Field(default_factory=AnswersConfig)
    locations: LocationsConfig = Field(default_factory=LocationsConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _merge_personas(config_data: Dict[str, Any]) -> None:
    """Overlay YAML persona entries on the built-in personas, field by field."""
    overrides = config_data.get('personas') or {}
    if not isinstance(overrides, dict):
        raise TypeError(f"Unsupported personas block type: {type(overrides).__name__}")
    merged = {name: persona.model_dump() for name, persona in _default_personas().items()}
    for name, entry in overrides.items():
        if entry is None:
            continue
        if not isinstance(entry, dict):
            raise TypeError(f"Unsupported persona definition for '{name}': {type(entry).__name__}")
        merged.setdefault(name, {}).update(entry)
    config_data['personas'] = merged


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Load and validate configuration from YAML file.

    Args:
        path: Path to YAML configuration file (absolute or relative to project
            root). Defaults to $SWITCHBOARD_CONFIG or config/switchboard.yaml.

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If configuration file doesn't exist
        yaml.YAMLError: If YAML parsing fails
    """
    path = resolve_config_path(path or os.getenv("SWITCHBOARD_CONFIG") or DEFAULT_CONFIG_PATH)
    config_data = load_yaml_with_env_expansion(path)

    inject_realtime_credentials(config_data)
    inject_supabase_credentials(config_data)
    inject_refresh_token(config_data)

    apply_telephony_defaults(config_data)
    apply_health_defaults(config_data)
    apply_logging_defaults(config_data)

    _merge_personas(config_data)

    return AppConfig(**config_data)


def validate_production_config(config: AppConfig) -> tuple[list[str], list[str]]:
    """Validate configuration before the service binds any socket.

    Returns:
        (errors, warnings): errors block startup, warnings are logged.
    """
    errors = []
    warnings = []

    if not config.realtime.api_key:
        errors.append("OPENAI_API_KEY is not set")

    if config.default_persona not in config.personas:
        errors.append(f"default_persona '{config.default_persona}' is not a configured persona")

    if not config.telephony.stream_path.startswith("/"):
        errors.append(f"telephony.stream_path must start with '/': {config.telephony.stream_path}")

    if config.audio_gate.policy not in ("drop", "passthrough"):
        errors.append(f"Invalid audio_gate.policy: {config.audio_gate.policy} (must be drop or passthrough)")

    if config.handoff.replay_delay_sec < 0:
        errors.append("handoff.replay_delay_sec must not be negative")

    if not (config.supabase.url and config.supabase.api_key):
        warnings.append(
            "Supabase not configured (SUPABASE_URL/SUPABASE_SERVICE_KEY); using built-in personas "
            "and fallback answers for lookups"
        )

    if not config.health.refresh_token:
        warnings.append("PROMPT_REFRESH_TOKEN not set; persona refresh endpoint will reject all requests")

    if config.supabase.timeout_sec > 10:
        warnings.append(
            f"Lookup timeout is {config.supabase.timeout_sec}s; callers hear silence while a lookup is pending"
        )

    if os.getenv('LOG_LEVEL', 'info').lower() == 'debug':
        warnings.append("Debug logging enabled (security/performance risk in production)")

    return errors, warnings


__all__ = [
    'DEFAULT_PERSONA',
    'FALLBACK_ERROR_TEXT',
    'TelephonyConfig',
    'RealtimeConfig',
    'SupabaseConfig',
    'PersonaConfig',
    'HandoffConfig',
    'GreetingConfig',
    'AudioGateConfig',
    'AnswersConfig',
    'LocationsConfig',
    'HealthConfig',
    'LoggingConfig',
    'AppConfig',
    'load_config',
    'validate_production_config',
]

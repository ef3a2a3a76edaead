"""
Process entry point: config, logging, shared services, servers, signals.
"""

import asyncio
import signal

import structlog
from dotenv import load_dotenv

from switchboard.answers import AnswerRenderer
from switchboard.config import AppConfig, load_config, validate_production_config
from switchboard.core.models import CallServices
from switchboard.health import HealthServer
from switchboard.logging_config import configure_logging
from switchboard.lookups import ItemCatalog, LocationNormalizer, ScheduleDirectory, SupabaseRestClient
from switchboard.personas import PersonaRegistry, PersonaStore
from switchboard.server import CallServer
from switchboard.tools import CapabilityDispatcher, build_default_registry

logger = structlog.get_logger(__name__)


def build_services(config: AppConfig, supabase: SupabaseRestClient) -> CallServices:
    """Wire the process-wide collaborators every call shares."""
    tools = build_default_registry()
    answers = AnswerRenderer.from_config(config.answers)
    personas = PersonaRegistry(
        config.personas,
        catalog=tools.names(),
        store=PersonaStore(supabase, config.supabase.prompts_table),
        default=config.default_persona,
    )
    return CallServices(
        config=config,
        personas=personas,
        tools=tools,
        dispatcher=CapabilityDispatcher(tools, answers),
        answers=answers,
        locations=LocationNormalizer(config.locations.synonyms),
        schedule=ScheduleDirectory(supabase, config.supabase.schedule_table),
        catalog=ItemCatalog(supabase, config.supabase.items_table),
    )


async def main():
    load_dotenv()
    config = load_config()
    configure_logging(log_level=config.logging.level)

    errors, warnings = validate_production_config(config)
    if errors:
        logger.error("Configuration validation FAILED", errors=errors, warnings=warnings)
        raise RuntimeError(f"Configuration errors: {errors}")
    if warnings:
        logger.warning("Configuration warnings", warnings=warnings)
    logger.info("Configuration validation passed")

    supabase = SupabaseRestClient.from_config(config.supabase)
    services = build_services(config, supabase)
    await services.personas.load()

    call_server = CallServer(services)
    health_server = HealthServer(config.health, services.personas, call_server)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    await call_server.start()
    await health_server.start()
    try:
        await shutdown_event.wait()
    finally:
        await call_server.stop()
        await health_server.stop()
        await supabase.close()


def run() -> None:
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
    finally:
        logger.info("Switchboard has shut down.")


if __name__ == "__main__":
    run()

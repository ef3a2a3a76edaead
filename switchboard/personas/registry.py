"""
Persona registry.

Holds an immutable snapshot of all personas. ``load``/``refresh`` build a new
snapshot off to the side and swap it in with one assignment, so concurrent
readers see either the old or the new mapping, never a mix. Personas already
bound to a call are frozen objects and are unaffected by a refresh.
"""

import asyncio
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

import structlog

from switchboard import metrics
from switchboard.config import DEFAULT_PERSONA, PersonaConfig
from switchboard.lookups.supabase import LookupServiceError
from switchboard.personas.models import SOURCE_BUILTIN, SOURCE_STORE, Persona
from switchboard.personas.store import PersonaStore

logger = structlog.get_logger(__name__)


class PersonaRegistry:

    def __init__(
        self,
        persona_configs: Mapping[str, PersonaConfig],
        catalog: Iterable[str],
        store: Optional[PersonaStore] = None,
        default: str = DEFAULT_PERSONA,
    ):
        if not persona_configs:
            raise ValueError("At least one persona must be configured")
        self._configs = dict(persona_configs)
        self._catalog = frozenset(catalog)
        self._store = store
        self._default = default if default in self._configs else next(iter(self._configs))
        self._lock = asyncio.Lock()
        self._snapshot: Mapping[str, Persona] = self._build({})

    @property
    def default_name(self) -> str:
        return self._default

    @property
    def snapshot(self) -> Mapping[str, Persona]:
        return self._snapshot

    def names(self):
        return list(self._snapshot.keys())

    def get(self, name: Optional[str]) -> Persona:
        """Return the named persona, or the default persona if unknown. Never raises."""
        snapshot = self._snapshot
        persona = snapshot.get(name) if name else None
        if persona is None:
            logger.warning("Unknown persona requested, using default", persona=name, default=self._default)
            persona = snapshot[self._default]
        return persona

    async def load(self) -> Mapping[str, Persona]:
        """
        Fetch active prompts and install a fresh snapshot.

        A store that is unconfigured or unreachable leaves every persona on
        its built-in instructions.
        """
        async with self._lock:
            prompts: Dict[str, str] = {}
            if self._store is not None and self._store.configured:
                try:
                    prompts = await self._store.fetch_active()
                except LookupServiceError as exc:
                    logger.warning("Persona store unavailable, using built-in instructions", error=str(exc))
            elif self._store is not None:
                logger.info("Persona store not configured, using built-in instructions")

            snapshot = self._build(prompts)
            self._snapshot = snapshot

            for persona in snapshot.values():
                metrics.PERSONA_REFRESHES.labels(source=persona.source).inc()
            logger.info(
                "Personas loaded",
                personas=list(snapshot.keys()),
                sources=self.sources(),
            )
            return snapshot

    async def refresh(self) -> Mapping[str, Persona]:
        """Reload out-of-band; only personas fetched afterwards see the change."""
        return await self.load()

    def sources(self) -> Dict[str, str]:
        return {name: persona.source for name, persona in self._snapshot.items()}

    def _build(self, prompts: Mapping[str, str]) -> Mapping[str, Persona]:
        personas: Dict[str, Persona] = {}
        for name, cfg in self._configs.items():
            store_key = cfg.store_key or f"agent_{name}"
            stored = prompts.get(store_key)
            if stored:
                instructions, source = stored, SOURCE_STORE
            else:
                instructions, source = cfg.instructions.strip(), SOURCE_BUILTIN
            if not instructions:
                instructions = f"You are the {cfg.display_name}. Help the caller politely and briefly."

            tools = []
            for tool_name in cfg.tools:
                if tool_name not in self._catalog:
                    logger.warning("Persona references unknown tool, dropping it", persona=name, tool=tool_name)
                    continue
                if tool_name not in tools:
                    tools.append(tool_name)

            personas[name] = Persona(
                name=name,
                display_name=cfg.display_name,
                instructions=instructions,
                tools=tuple(tools),
                store_key=store_key,
                source=source,
            )
        return MappingProxyType(personas)

"""Personas: named instruction sets plus the tools each may use."""

from switchboard.personas.models import Persona
from switchboard.personas.store import PersonaStore
from switchboard.personas.registry import PersonaRegistry

__all__ = ["Persona", "PersonaStore", "PersonaRegistry"]

from dataclasses import dataclass
from typing import Tuple

SOURCE_STORE = "store"
SOURCE_BUILTIN = "builtin"


@dataclass(frozen=True)
class Persona:
    """A named agent: instructions plus the tools it exposes to the model."""
    name: str
    display_name: str
    instructions: str
    tools: Tuple[str, ...]
    store_key: str = ""
    source: str = SOURCE_BUILTIN

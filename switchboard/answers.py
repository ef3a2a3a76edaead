"""
Spoken answer templates.

Each business tool renders its reply from a template keyed by outcome
category, so the wording callers hear is deterministic and can be tuned in
config without touching tool code.
"""

from typing import Any, Dict, Iterable, Mapping, Optional

import structlog
from jinja2 import Environment, StrictUndefined, Template, TemplateError

from switchboard.config import FALLBACK_ERROR_TEXT

logger = structlog.get_logger(__name__)

FALLBACK_ERROR = "fallback_error"

DEFAULT_TEMPLATES: Dict[str, str] = {
    "pickup_success": (
        "The next pickup for {{ city }} is on {{ date_spoken }}, from {{ time_window }}, "
        "at {{ address }}."
    ),
    "pickup_tbd": (
        "The pickup for {{ city }}{% if date_spoken %} on {{ date_spoken }}{% endif %} hasn't been "
        "finalized yet. The time and location are still to be determined, so please check back soon."
    ),
    "pickup_not_found": (
        "I don't see any upcoming pickups scheduled for {{ city }}. "
        "Would you like me to check a different location?"
    ),
    "item_full": "{{ item }} is under the {{ hechsher }} hechsher. {{ description }}",
    "item_kashrus": "{{ item }} is under the {{ hechsher }} hechsher.",
    "item_description": "Here's what I have on {{ item }}: {{ description }}",
    "item_ambiguous": "I found a few items that match: {{ names }}. Which one did you mean?",
    "item_not_found": "I couldn't find an item called {{ item }}. Could you say the name a different way?",
    FALLBACK_ERROR: FALLBACK_ERROR_TEXT,
}


def oxford_join(names: Iterable[str]) -> str:
    """Join names for speech: "A", "A and B", "A, B, and C"."""
    items = [str(n) for n in names if n is not None and str(n) != ""]
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    if len(items) == 2:
        return f"{items[0]} and {items[1]}"
    return f"{', '.join(items[:-1])}, and {items[-1]}"


class AnswerRenderer:
    """Renders spoken text for outcome categories."""

    def __init__(
        self,
        overrides: Optional[Mapping[str, str]] = None,
        fallback_error: Optional[str] = None,
    ):
        self._env = Environment(undefined=StrictUndefined, autoescape=False)
        self._env.filters["oxford_join"] = oxford_join
        sources = dict(DEFAULT_TEMPLATES)
        sources.update(overrides or {})
        if fallback_error:
            sources[FALLBACK_ERROR] = fallback_error
        self._templates: Dict[str, Template] = {
            key: self._env.from_string(source) for key, source in sources.items()
        }

    @classmethod
    def from_config(cls, answers_config) -> "AnswerRenderer":
        return cls(overrides=answers_config.templates, fallback_error=answers_config.fallback_error)

    @property
    def fallback_error(self) -> str:
        return self.render(FALLBACK_ERROR)

    def render(self, key: str, **values: Any) -> str:
        """
        Render the template for an outcome category.

        An unknown key or a template that fails to render yields the fallback
        error sentence so the caller never hears silence.
        """
        template = self._templates.get(key)
        if template is None:
            logger.error("Unknown answer template", template=key)
            key, template = FALLBACK_ERROR, self._templates[FALLBACK_ERROR]
        try:
            return " ".join(template.render(**values).split())
        except TemplateError as exc:
            logger.error("Answer template render failed", template=key, error=str(exc))
            if key == FALLBACK_ERROR:
                return FALLBACK_ERROR_TEXT
            return self.fallback_error

"""Message rendering for check results.

Results carry an untranslated template such as
``"Approaching Api limit of :daily_count/:daily_limit limit tag purges/day."``
plus its placeholder values. This module substitutes them, optionally after
swapping the template for a translation.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from .engine import CheckResult

logger = logging.getLogger(__name__)


def render(template: str, params: dict[str, Any] | None = None) -> str:
    """Replace each ``:placeholder`` in ``template`` with its value."""
    text = template
    # Longest keys first so ":daily_count" wins over a shorter ":daily" key
    for key in sorted(params or {}, key=len, reverse=True):
        text = text.replace(key, str(params[key]))
    return text


class MessageCatalog:
    """Per-language translations keyed by source template."""

    def __init__(self, translations: dict[str, dict[str, str]] | None = None) -> None:
        self._translations = translations or {}

    @classmethod
    def from_yaml(cls, path: Path) -> MessageCatalog:
        """Load ``{langcode: {source: translated}}`` from a YAML file.

        A missing or unreadable file yields an empty catalog.
        """
        if not path.exists():
            logger.warning("Translations file not found: %s", path)
            return cls()
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            logger.error("Failed to parse %s: %s", path, e)
            return cls()
        if not isinstance(raw, dict):
            logger.error("Ignoring %s: expected a mapping of language codes", path)
            return cls()

        translations: dict[str, dict[str, str]] = {}
        for langcode, entries in raw.items():
            if not isinstance(entries, dict):
                logger.warning("Skipping malformed translations for '%s'", langcode)
                continue
            translations[str(langcode)] = {str(k): str(v) for k, v in entries.items()}
        logger.info("Loaded translations for %d languages", len(translations))
        return cls(translations)

    @property
    def languages(self) -> list[str]:
        return sorted(self._translations)

    def translate(self, template: str, langcode: str | None = None) -> str:
        if not langcode:
            return template
        return self._translations.get(langcode, {}).get(template, template)

    def render(self, result: CheckResult, langcode: str | None = None) -> str:
        return render(self.translate(result.message, langcode), result.params)

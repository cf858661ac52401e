"""
Message composer - loads chat copy from YAML and renders it.

Copy lives in app/copy/<locale>.yml as flat `key: template` pairs with
`{placeholder}` substitution.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

COPY_DIR = Path(__file__).resolve().parent.parent.parent / "copy"
DEFAULT_LOCALE = "en"


class MessageComposer:
    """Composes messages from a YAML copy file."""

    def __init__(self, locale: str = DEFAULT_LOCALE):
        self.locale = locale
        self.copy_file = COPY_DIR / f"{locale}.yml"
        self._copy_data: dict[str, Any] = {}
        self._load_copy()

    def _load_copy(self) -> None:
        if not self.copy_file.exists():
            logger.warning(f"Copy file not found: {self.copy_file}, using empty copy")
            self._copy_data = {}
            return

        try:
            with open(self.copy_file, encoding="utf-8") as f:
                self._copy_data = yaml.safe_load(f) or {}
            logger.info(f"Loaded copy from {self.copy_file}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load copy from {self.copy_file}: {e}")
            self._copy_data = {}

    def render(self, key: str, **kwargs: Any) -> str:
        """
        Render a message from copy.

        Example:
            composer.render("confirm_prompt", service_name="Demo Call", start_local="10:00")
        """
        template = self._copy_data.get(key)
        if template is None:
            logger.warning(f"Message key not found: {key}")
            return f"[MISSING: {key}]"

        try:
            return str(template).format(**kwargs)
        except KeyError as e:
            logger.warning(f"Missing template variable {e} for key {key}")
            return str(template)


_composer: MessageComposer | None = None


def get_composer(locale: str = DEFAULT_LOCALE) -> MessageComposer:
    global _composer
    if _composer is None or _composer.locale != locale:
        _composer = MessageComposer(locale=locale)
    return _composer


def render_message(key: str, locale: str = DEFAULT_LOCALE, **kwargs: Any) -> str:
    return get_composer(locale).render(key, **kwargs)

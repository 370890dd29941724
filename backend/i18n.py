"""
Message key resolution.

Services and routes only deal in dotted message keys ("task.no_task"); this
module turns a key into text for the caller's locale. Catalogs are JSON files
in locales/{lang}.json and missing keys fall back to English, then to the key
itself.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from fastapi import Request

logger = logging.getLogger(__name__)

LOCALES_DIR = Path(__file__).resolve().parent / "locales"
DEFAULT_LOCALE = "en"


@lru_cache(maxsize=None)
def load_catalog(locale: str) -> dict:
    path = LOCALES_DIR / f"{locale}.json"
    if not path.is_file():
        logger.debug(f"No catalog for locale '{locale}'")
        return {}
    with path.open(encoding="utf-8") as fh:
        return json.load(fh)


def available_locales() -> set[str]:
    return {p.stem for p in LOCALES_DIR.glob("*.json")}


def _lookup(catalog: dict, key: str) -> Optional[str]:
    node = catalog
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node if isinstance(node, str) else None


def translate(key: str, locale: str = DEFAULT_LOCALE, **params) -> str:
    """
    Resolve a message key for a locale.

    Args:
        key: Dotted message key, e.g. "task.no_task"
        locale: Language code; unknown locales use the English catalog
        **params: Values interpolated with str.format

    Returns:
        Localized text, or the key itself when no catalog defines it
    """
    text = _lookup(load_catalog(locale), key)
    if text is None and locale != DEFAULT_LOCALE:
        text = _lookup(load_catalog(DEFAULT_LOCALE), key)
    if text is None:
        logger.warning(f"Missing translation for key: {key}")
        return key
    return text.format(**params) if params else text


def resolve_locale(request: Request) -> str:
    """Pick the locale from ?lang=, then Accept-Language, then the default."""
    supported = available_locales()

    lang = request.query_params.get("lang")
    if lang and lang.lower() in supported:
        return lang.lower()

    header = request.headers.get("accept-language", "")
    for part in header.split(","):
        tag = part.split(";")[0].strip().lower()
        primary = tag.split("-")[0]
        if primary in supported:
            return primary

    return DEFAULT_LOCALE


def get_translator(request: Request):
    """FastAPI dependency returning a translate function bound to the request locale."""
    locale = resolve_locale(request)

    def _t(key: str, **params) -> str:
        return translate(key, locale, **params)

    return _t


def success(t, message_key: str, **payload) -> dict:
    """Response body for a successful request: localized message plus payload."""
    return {"message": t(message_key), "message_key": message_key, **payload}

"""URL pattern matching for page object models."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

REGEX_PREFIX = "regex:"


def is_url_match(url: str, model_url: str) -> bool:
    """Return True when ``url`` matches the model URL pattern.

    Rules are tried in order: case-insensitive exact match, ``regex:``-prefixed
    pattern (searched anywhere in the URL), ``*`` wildcard over the whole URL,
    and finally a case-insensitive prefix match.
    """

    if not url or not model_url:
        return False

    if url.lower() == model_url.lower():
        return True

    if model_url[: len(REGEX_PREFIX)].lower() == REGEX_PREFIX:
        pattern = model_url[len(REGEX_PREFIX):]
        try:
            return re.search(pattern, url, re.IGNORECASE) is not None
        except re.error as exc:
            logger.warning("Invalid URL pattern %r: %s", pattern, exc)
            return False

    if "*" in model_url:
        pattern = "^" + re.escape(model_url).replace(r"\*", ".*") + "$"
        return re.match(pattern, url, re.IGNORECASE) is not None

    return url.lower().startswith(model_url.lower())


__all__ = ["REGEX_PREFIX", "is_url_match"]

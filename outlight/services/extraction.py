"""Ordered artifact extraction.

Providers answer in several shapes. Each extractor looks for the artifact in
one known shape; extractors are tried in a fixed priority order and the first
match wins. No match is reported as ``None`` and the caller turns it into a
Failure with a diagnostic.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Extractor:
    """A named strategy returning an artifact locator or None."""

    name: str
    find: Callable[[Any], Optional[str]]


def dig(obj: Any, *paths: Sequence[str]) -> Any:
    """Return the first non-empty value found along any of the key paths."""
    for path in paths:
        value = obj
        for key in path:
            if not isinstance(value, dict):
                value = None
                break
            value = value.get(key)
        if value:
            return value
    return None


def first_match(extractors: Sequence[Extractor], subject: Any) -> Optional[Tuple[str, str]]:
    """
    Run extractors in order against a response.

    Args:
        extractors: Strategies in priority order
        subject: Parsed provider response (or part of it)

    Returns:
        (extractor name, artifact locator) for the first match, else None
    """
    for extractor in extractors:
        found = extractor.find(subject)
        if found:
            return extractor.name, found
    return None

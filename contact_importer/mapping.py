"""Helpers for matching CSV headers to contact attributes."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from .errors import ValidationError
from .fields import ATTRIBUTES_BY_KEY, CONTACT_ATTRIBUTES, EMAIL_KEY, ContactAttribute
from .models import FieldMapping

LOGGER = logging.getLogger(__name__)


def _normalise(value: str) -> str:
    return value.strip().lower()


def match_attribute(
    header: str, attributes: Sequence[ContactAttribute] = CONTACT_ATTRIBUTES
) -> Optional[ContactAttribute]:
    """Return the first attribute whose key or label equals ``header``, ignoring case."""

    lowered = _normalise(header)
    if not lowered:
        return None
    for attribute in attributes:
        if lowered == attribute.key.lower() or lowered == attribute.label.lower():
            return attribute
    return None


def suggest_mapping(headers: Iterable[str]) -> FieldMapping:
    """Build the initial mapping by name similarity.

    Headers without a match stay unmapped. When two headers match the same
    attribute the first one keeps it.
    """

    mapping: FieldMapping = {}
    for header in headers:
        attribute = match_attribute(header)
        if attribute is None or attribute.key in mapping:
            continue
        mapping[attribute.key] = header
    LOGGER.debug("Suggested mapping %s", mapping)
    return mapping


def set_mapping(mapping: FieldMapping, key: str, header: Optional[str]) -> FieldMapping:
    """Assign ``header`` to ``key`` in place and return the mapping.

    The header is first released from whichever key held it, so a header is
    never mapped to more than one attribute. ``None`` or an empty header
    unmaps the key.
    """

    if key not in ATTRIBUTES_BY_KEY:
        raise ValidationError(f"Unknown contact attribute '{key}'")

    if not header:
        mapping.pop(key, None)
        return mapping

    for other_key in [existing for existing, column in mapping.items() if column == header]:
        if other_key != key:
            del mapping[other_key]
    mapping[key] = header
    return mapping


def key_for_header(mapping: FieldMapping, header: str) -> Optional[str]:
    for key, column in mapping.items():
        if column == header:
            return key
    return None


def unmapped_headers(mapping: FieldMapping, headers: Iterable[str]) -> List[str]:
    used = set(mapping.values())
    return [header for header in headers if header not in used]


def filter_mapping(mapping: FieldMapping, headers: Sequence[str]) -> Tuple[FieldMapping, List[str]]:
    """Split a mapping into entries whose header exists and the keys that were dropped."""

    available = set(headers)
    kept: FieldMapping = {}
    dropped: List[str] = []
    # email claims its header before any other key can.
    ordered = sorted(mapping.items(), key=lambda item: item[0] != EMAIL_KEY)
    for key, header in ordered:
        if key in ATTRIBUTES_BY_KEY and header and header in available and header not in kept.values():
            kept[key] = header
        else:
            dropped.append(key)
    return kept, dropped


def is_runnable(mapping: FieldMapping, headers: Sequence[str]) -> bool:
    """True when ``email`` is mapped onto a header of the loaded file."""

    header = mapping.get(EMAIL_KEY)
    return bool(header) and header in headers


def validate_mapping(mapping: FieldMapping, headers: Sequence[str]) -> FieldMapping:
    """Return the usable part of ``mapping`` or raise :class:`ValidationError`."""

    if not mapping.get(EMAIL_KEY):
        raise ValidationError("Email field mapping is required")
    if not is_runnable(mapping, headers):
        raise ValidationError(f"Email is mapped to '{mapping[EMAIL_KEY]}', which is not a column of this file")

    kept, dropped = filter_mapping(mapping, headers)
    if dropped:
        LOGGER.warning("Ignoring mappings for %s: columns not present in file", ", ".join(sorted(dropped)))
    return kept


__all__ = [
    "filter_mapping",
    "is_runnable",
    "key_for_header",
    "match_attribute",
    "set_mapping",
    "suggest_mapping",
    "unmapped_headers",
    "validate_mapping",
]

"""Contact attribute catalogue and the typed parsers applied to raw CSV cells."""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

import pandas as pd

from .errors import RowTransformError

LOGGER = logging.getLogger(__name__)

EMAIL_KEY = "email"


def _clean_text(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _parse_string(text: str) -> str:
    return text


def _parse_number(text: str) -> float:
    # Digit separators such as "1_000" are not valid here.
    if "_" in text:
        raise RowTransformError(f"'{text}' is not a number")
    try:
        value = float(text)
    except ValueError as exc:
        raise RowTransformError(f"'{text}' is not a number") from exc
    if not math.isfinite(value):
        raise RowTransformError(f"'{text}' is not a finite number")
    return value


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise RowTransformError(f"invalid JSON: {exc.msg}") from exc
    except RecursionError as exc:
        raise RowTransformError("JSON value is nested too deeply") from exc


def _parse_date(text: str) -> str:
    try:
        timestamp = pd.to_datetime(text, utc=True)
    except (ValueError, OverflowError, TypeError) as exc:
        raise RowTransformError(f"'{text}' is not a date") from exc
    if pd.isna(timestamp):
        raise RowTransformError(f"'{text}' is not a date")
    return timestamp.isoformat()


class FieldKind(str, Enum):
    """How a raw cell is coerced before it is sent to the contact API."""

    STRING = "string"
    NUMBER = "number"
    JSON = "json"
    DATE = "date"

    def parse(self, raw: Optional[str]) -> Any:
        """Return the coerced value, or ``None`` for blank or unparseable input."""

        text = _clean_text(raw)
        if text is None:
            return None
        try:
            return _PARSERS[self](text)
        except RowTransformError as exc:
            LOGGER.debug("Discarding %s value: %s", self.value, exc)
            return None


_PARSERS: Dict[FieldKind, Callable[[str], Any]] = {
    FieldKind.STRING: _parse_string,
    FieldKind.NUMBER: _parse_number,
    FieldKind.JSON: _parse_json,
    FieldKind.DATE: _parse_date,
}


@dataclass(frozen=True)
class ContactAttribute:
    """A contact field that CSV columns can be mapped onto."""

    key: str
    label: str
    kind: FieldKind = FieldKind.STRING
    required: bool = False

    @property
    def is_custom(self) -> bool:
        return self.key.startswith("custom_")


def _custom(prefix: str, label: str, kind: FieldKind) -> List[ContactAttribute]:
    return [ContactAttribute(f"{prefix}_{index}", f"{label} {index}", kind) for index in range(1, 6)]


CONTACT_ATTRIBUTES: List[ContactAttribute] = [
    ContactAttribute(EMAIL_KEY, "Email", required=True),
    ContactAttribute("external_id", "External ID"),
    ContactAttribute("first_name", "First Name"),
    ContactAttribute("last_name", "Last Name"),
    ContactAttribute("phone", "Phone"),
    ContactAttribute("country", "Country"),
    ContactAttribute("timezone", "Timezone"),
    ContactAttribute("language", "Language"),
    ContactAttribute("address_line_1", "Address Line 1"),
    ContactAttribute("address_line_2", "Address Line 2"),
    ContactAttribute("postcode", "Postcode"),
    ContactAttribute("state", "State"),
    ContactAttribute("job_title", "Job Title"),
    ContactAttribute("lifetime_value", "Lifetime Value", FieldKind.NUMBER),
    ContactAttribute("orders_count", "Orders Count", FieldKind.NUMBER),
    ContactAttribute("last_order_at", "Last Order At", FieldKind.DATE),
    *_custom("custom_string", "Custom String", FieldKind.STRING),
    *_custom("custom_number", "Custom Number", FieldKind.NUMBER),
    *_custom("custom_datetime", "Custom Date", FieldKind.DATE),
    *_custom("custom_json", "Custom JSON", FieldKind.JSON),
]

ATTRIBUTES_BY_KEY: Mapping[str, ContactAttribute] = {attribute.key: attribute for attribute in CONTACT_ATTRIBUTES}


def get_attribute(key: str) -> Optional[ContactAttribute]:
    return ATTRIBUTES_BY_KEY.get(key)


def kind_for(key: str) -> FieldKind:
    attribute = ATTRIBUTES_BY_KEY.get(key)
    return attribute.kind if attribute else FieldKind.STRING


__all__ = [
    "ATTRIBUTES_BY_KEY",
    "CONTACT_ATTRIBUTES",
    "ContactAttribute",
    "EMAIL_KEY",
    "FieldKind",
    "get_attribute",
    "kind_for",
]

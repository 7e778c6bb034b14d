from __future__ import annotations

import re
from typing import Any, Iterable, Mapping


_PHONE_REGEX = re.compile(r"^\+?\d{7,15}$")
_UUID_REGEX = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class EmptyUpdateError(ValueError):
    """Raised when an update carries no changed fields."""


class MissingIdentifierError(ValueError):
    """Raised when a required entity id is blank."""


def normalize_phone(raw: str) -> str | None:
    """
    Basic phone normalization and validation.

    Accepts digits and an optional leading '+'. Returns normalized phone
    (digits with optional '+') or None if the value looks invalid.
    """

    value = raw.strip().replace(" ", "").replace("-", "")
    if not _PHONE_REGEX.match(value):
        return None
    return value


def looks_like_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(_UUID_REGEX.match(value.strip()))


def clean_updates(updates: Mapping[str, Any]) -> dict[str, Any]:
    """
    Copy an update payload, rejecting one with no fields.

    A key that is present is a change, so an explicit None clears the
    column. Raises EmptyUpdateError so callers fail before touching cache
    or network.
    """

    cleaned = dict(updates)
    if not cleaned:
        raise EmptyUpdateError("No valid updates provided")
    return cleaned


def require_id(value: str | None, name: str = "id") -> str:
    if value is None or not str(value).strip():
        raise MissingIdentifierError(f"Missing required {name}")
    return str(value).strip()


def require_ids(values: Iterable[str], name: str = "ids") -> list[str]:
    ids = [require_id(value, name) for value in values]
    if not ids:
        raise MissingIdentifierError(f"Missing required {name}")
    return ids

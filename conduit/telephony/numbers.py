"""Phone number helpers (E.164)."""
from __future__ import annotations
import re

_NON_DIALABLE = re.compile(r"[^0-9+]")
_E164 = re.compile(r"\+[1-9][0-9]{1,14}")


def normalize_phone_number(raw: str, default_country_code: str = "1") -> str:
    """
    Normalize a phone number to E.164 form.

        normalize_phone_number("(415) 555-1234")   -> "+14155551234"
        normalize_phone_number("+44 20 7946 0958") -> "+442079460958"

    Numbers that already carry a ``+`` keep their country code.
    """
    cleaned = _NON_DIALABLE.sub("", raw)
    if cleaned.startswith("+"):
        # Only a single leading sign survives
        return "+" + cleaned[1:].replace("+", "")
    return f"+{default_country_code}{cleaned.replace('+', '')}"


def is_valid_e164(number: str) -> bool:
    return _E164.fullmatch(number) is not None

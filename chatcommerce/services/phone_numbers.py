from __future__ import annotations

import re

_NON_DIGITS = re.compile(r"\D+")


def normalize_phone(value: str | None) -> str:
    """Digits only: '+91 98765-43210' -> '919876543210'."""
    return _NON_DIGITS.sub("", value or "")


def phone_variants(value: str | None) -> list[str]:
    """Formats a customer's phone may have been stored under, most specific first.

    Older rows were written with a leading '+' or with the national number only,
    so lookups try each form in turn instead of rewriting history.
    """
    digits = normalize_phone(value)
    if not digits:
        return []
    variants = [digits, f"+{digits}"]
    if len(digits) > 10:
        variants.append(digits[-10:])
    raw = (value or "").strip()
    if raw and raw not in variants:
        variants.append(raw)
    return variants

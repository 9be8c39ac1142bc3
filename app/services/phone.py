from __future__ import annotations


def normalize_phone_number(raw: str | None) -> str:
    """Reduce a phone number to the digits-only form stored on users.

    Local numbers are assumed to be Indian: a leading ``0`` trunk prefix is
    replaced with ``91`` and bare 10-digit numbers get ``91`` prepended.
    """
    digits = "".join(ch for ch in str(raw or "") if ch.isdigit())
    if digits.startswith("0"):
        digits = "91" + digits[1:]
    if len(digits) == 10:
        digits = "91" + digits
    return digits

"""M-Pesa MSISDN helpers."""

import re


def normalize_msisdn(phone: str) -> str:
    """Return `phone` in the 254XXXXXXXXX form the STK endpoint expects.

    Accepts 254XXXXXXXXX, +254XXXXXXXXX, 0XXXXXXXXX and XXXXXXXXX. Raises
    ValueError for anything else.
    """

    if not phone:
        raise ValueError("Phone number is required")

    digits = re.sub(r"[\s\-]", "", phone)
    if digits.startswith("+"):
        digits = digits[1:]

    if digits.startswith("254"):
        if len(digits) == 12 and digits.isdigit():
            return digits
        raise ValueError("Invalid format. Expected 254XXXXXXXXX (12 digits)")
    if digits.startswith("0"):
        if len(digits) == 10 and digits.isdigit():
            return f"254{digits[1:]}"
        raise ValueError("Invalid format. Expected 0XXXXXXXXX (10 digits)")
    if len(digits) == 9 and digits.isdigit():
        return f"254{digits}"
    raise ValueError(
        "Invalid phone number format. Use: 254XXXXXXXXX, +254XXXXXXXXX, 0XXXXXXXXX, or XXXXXXXXX"
    )


def mask(value: str | None, visible: int = 4) -> str:
    """Mask all but the last `visible` characters, for logs."""

    if not value:
        return ""
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]

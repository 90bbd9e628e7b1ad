"""Phone number formatting helpers."""

import re

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


def format_e164(phone_number: str, default_country: str = "US") -> str:
    """Format phone number to E.164."""
    if phone_number.strip().startswith("+"):
        return "+" + re.sub(r"\D", "", phone_number)

    digits = re.sub(r"\D", "", phone_number)

    if default_country == "US":
        if len(digits) == 10:
            return f"+1{digits}"
        elif len(digits) == 11 and digits.startswith("1"):
            return f"+{digits}"

    return f"+{digits}"


def validate_e164(phone_number: str) -> bool:
    """Validate E.164 format."""
    return bool(E164_PATTERN.match(phone_number))

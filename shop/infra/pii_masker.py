"""
PII masking for request and audit logs.
"""
import re
from typing import Any

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)
PHONE_RE = re.compile(r"^[\d\s\+\-\(\)]{5,}$")

PII_KEYS = {"email", "phone", "full_name", "name", "address", "postal_code"}


def mask_email(email: str) -> str:
    """Keep the first two characters of the local part and the domain."""
    local, _, domain = email.partition("@")
    if not domain:
        return email
    visible = local[:2] if len(local) > 2 else ""
    return f"{visible}{'*' * max(len(local) - len(visible), 2)}@{domain}"


def mask_phone(phone: str) -> str:
    if len(phone) <= 4:
        return "*" * len(phone)
    return phone[:2] + "*" * (len(phone) - 4) + phone[-2:]


def mask_text(value: str) -> str:
    if len(value) <= 2:
        return "**"
    return value[0] + "*" * (len(value) - 2) + value[-1]


def mask_uuid(uuid_str: str) -> str:
    """Show the first 8 characters only."""
    if len(uuid_str) < 8:
        return "*" * len(uuid_str)
    return uuid_str[:8] + "-****-****-****-************"


def mask_value(key: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if "@" in value:
        return mask_email(value)
    if UUID_RE.match(value):
        return mask_uuid(value)
    if key in PII_KEYS:
        return mask_phone(value) if PHONE_RE.match(value) else mask_text(value)
    return value


def mask_pii_in_dict(data: dict) -> dict:
    """Mask PII in a dictionary recursively."""
    masked = {}
    for key, value in data.items():
        key_lower = key.lower()
        if isinstance(value, dict):
            masked[key] = mask_pii_in_dict(value)
        elif isinstance(value, list):
            masked[key] = [mask_pii_in_dict(item) if isinstance(item, dict) else item for item in value]
        elif key_lower in PII_KEYS or key_lower.endswith("id"):
            masked[key] = mask_value(key_lower, value)
        else:
            masked[key] = value
    return masked

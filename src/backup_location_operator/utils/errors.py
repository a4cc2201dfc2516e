"""Error sanitization utilities to prevent credential leakage."""

import re

# Patterns whose captured value is replaced before a message is logged or surfaced
SENSITIVE_PATTERNS = [
    r"aws_access_key_id\s*=\s*(\S+)",
    r"aws_secret_access_key\s*=\s*(\S+)",
    r"aws_session_token\s*=\s*(\S+)",
    r"AZURE_CLIENT_SECRET\s*=\s*(\S+)",
    r"AZURE_STORAGE_ACCOUNT_ACCESS_KEY\s*=\s*(\S+)",
    r"AccountKey=([^;\s]+)",
    r"sig=([^&\s]+)",
    r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----",
]


def sanitize_error_message(message: str) -> str:
    """Sanitize an error message so it carries no credential material.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = message
    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(pattern, _redact, sanitized, flags=re.IGNORECASE)
    return sanitized


def _redact(match: re.Match[str]) -> str:
    if match.groups():
        start, end = match.span(1)
        offset = match.start()
        text = match.group(0)
        return text[: start - offset] + "[REDACTED]" + text[end - offset:]
    return "[REDACTED]"


def sanitize_exception(error: Exception) -> str:
    """Sanitize exception message.

    Args:
        error: Exception object

    Returns:
        Sanitized error message
    """
    return sanitize_error_message(str(error))


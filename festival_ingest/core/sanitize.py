"""
Content sanitization utilities for scraped and imported data.

Provides the dangerous-pattern checks shared by the URL guard and the
validation engine, plus the string coercion used on AI output.
"""

import re
from typing import Any


# Patterns that indicate potential injection attempts
DANGEROUS_PATTERNS = [
    r"<script",                    # Script tags
    r"javascript:",                # JavaScript protocol
    r"vbscript:",                  # VBScript protocol
    # Event handlers by name, so query keys like "online=" stay legal
    (
        r"\bon(?:abort|blur|change|click|dblclick|error|focus\w*|input|key(?:down|press|up)"
        r"|load|mouse\w+|pointer\w+|submit|toggle|unload|animation\w+|transition\w+)\s*="
    ),
    r"data:text/html",             # Data URI with HTML
    r"data:application/",          # Data URI with applications
    r"expression\s*\(",            # CSS expression()
    r"\x00",                       # Null bytes
]

DANGEROUS_REGEX = re.compile("|".join(DANGEROUS_PATTERNS), re.IGNORECASE)

MAX_STRING_LENGTH = 1000


def contains_dangerous_content(value: str) -> bool:
    """Check a string against the injection patterns."""
    return bool(DANGEROUS_REGEX.search(value))


def clean_string(value: Any, max_length: int = MAX_STRING_LENGTH) -> str | None:
    """
    Coerce an untrusted value into a trimmed, bounded string.

    Non-strings and blank strings become None. Control characters other
    than newline and tab are dropped.

    Args:
        value: Raw value (typically from parsed AI JSON)
        max_length: Maximum characters kept

    Returns:
        Cleaned string or None
    """
    if not isinstance(value, str):
        return None

    cleaned = "".join(char for char in value if char >= " " or char in "\n\t").strip()
    if not cleaned:
        return None

    return cleaned[:max_length]

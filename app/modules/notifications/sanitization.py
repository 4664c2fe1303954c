"""Markup stripping for user-visible notification text.

Script blocks are removed with their content until none remain, then bleach
strips every remaining tag (including unterminated ones) and escapes markup
characters left in the text. Payloads are walked recursively so every string
leaf is cleaned.
"""

import re
from typing import Any

import bleach

SCRIPT_PATTERN = re.compile(
    r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE
)


def _remove_script_blocks(value: str) -> str:
    # Removing one block can join fragments into a new one
    while True:
        cleaned = SCRIPT_PATTERN.sub("", value)
        if cleaned == value:
            return cleaned
        value = cleaned


def sanitize_text(value: str) -> str:
    """Strip script blocks and HTML tags from a string."""
    without_scripts = _remove_script_blocks(value)
    return bleach.clean(without_scripts, tags=set(), strip=True).strip()


def sanitize_payload(value: Any) -> Any:
    """Return a copy of ``value`` with every string leaf sanitized.

    Dict keys are left unchanged. Non-string scalars pass through.
    """
    if isinstance(value, str):
        return sanitize_text(value)
    if isinstance(value, dict):
        return {key: sanitize_payload(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_payload(item) for item in value]
    return value

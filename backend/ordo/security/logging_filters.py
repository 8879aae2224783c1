"""Logging filters that scrub sensitive content."""

from __future__ import annotations

import logging
import re

_SENSITIVE_PATTERN = re.compile(
    r"(Authorization: Bearer\s+[\w\.-]+"
    r"|\b(?:sk|rk)_(?:live|test)_[0-9A-Za-z]+"
    r"|whsec_[0-9A-Za-z]+"
    r"|X-Webhook-Signature\"?\s*[:=]\s*\"?[0-9a-fA-F]+"
    r"|\b(?:\d[ -]?){12,15}\d\b)",
    re.IGNORECASE,
)


def scrub(message: str) -> str:
    return _SENSITIVE_PATTERN.sub("**REDACTED**", message)


class SensitiveFilter(logging.Filter):
    """Replace secret keys, signatures and card numbers with a redaction marker."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = scrub(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    key: scrub(value) if isinstance(value, str) else value
                    for key, value in record.args.items()
                }
            else:
                record.args = tuple(
                    scrub(arg) if isinstance(arg, str) else arg for arg in record.args
                )
        return True


__all__ = ["SensitiveFilter", "scrub"]

"""Log rotation and VAT-number scrubbing for vatcalc.

Provides a logging filter that masks VAT identifiers (ours and our
customers') in log output, and a helper to configure a rotating file
handler with the filter installed.

Only stdlib modules are used.
"""

from __future__ import annotations

import logging
import os
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


_DEFAULT_LOG_DIR = os.path.join(str(Path.home()), ".vatcalc", "logs")

_MASK = "***"

# ``vat_number=DE123456789`` / ``requester: "NL..."`` style fragments.
# Keeps the two-letter prefix and the last two characters.
_SCRUB_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(
        r'((?:vat_number|vatNumber|requester(?:_vat_number|Number)?)["\x27]?\s*[:=]\s*["\x27]?)'
        r'([A-Za-z]{2})([0-9A-Za-z+*]+)([0-9A-Za-z+*]{2})',
        re.IGNORECASE,
    ), r'\1\2' + _MASK + r'\4'),
]


class ScrubFilter(logging.Filter):
    """Logging filter that masks VAT identifiers in log messages.

    Matches ``vat_number=...`` and ``requester=...`` fragments and keeps only
    the country prefix and the last two characters.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        # The key usually sits in the format string and the number in the
        # args, so scrub the merged message.
        if isinstance(record.msg, str) and record.args:
            record.msg = _scrub(record.getMessage())
            record.args = ()
        elif record.msg and isinstance(record.msg, str):
            record.msg = _scrub(record.msg)
        return True


def _scrub(text: str) -> str:
    """Apply all scrub patterns to *text*."""
    for pattern, replacement in _SCRUB_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def configure_logging(
    log_dir: Optional[str] = None,
    *,
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
    level: Optional[str] = None,
) -> str:
    """Configure logging with rotation and VAT-number scrubbing.

    :param log_dir: Directory for log files.  Reads ``VATCALC_LOG_DIR`` env
        var, then falls back to ``~/.vatcalc/logs/``.
    :param max_bytes: Maximum log file size before rotation (default 10 MB).
    :param backup_count: Number of rotated log files to keep (default 5).
    :param level: Log level string.  Reads ``VATCALC_LOG_LEVEL`` env var,
        then falls back to ``"INFO"``.
    :returns: Path of the log file.
    """
    log_dir = log_dir or os.environ.get("VATCALC_LOG_DIR", _DEFAULT_LOG_DIR)
    level = level or os.environ.get("VATCALC_LOG_LEVEL", "INFO")

    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "vatcalc.log")

    log_level = getattr(logging, level.upper(), logging.INFO)

    scrub_filter = ScrubFilter()

    root = logging.getLogger()
    root.setLevel(log_level)

    has_rotating = any(
        isinstance(h, RotatingFileHandler) for h in root.handlers
    )
    if not has_rotating:
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(name)s %(levelname)s %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        file_handler.addFilter(scrub_filter)
        root.addHandler(file_handler)

    # Existing handlers (e.g. pytest's capture handler) get the filter too.
    for handler in root.handlers:
        if not any(isinstance(f, ScrubFilter) for f in handler.filters):
            handler.addFilter(scrub_filter)

    return log_path

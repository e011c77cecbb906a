from __future__ import annotations
import logging
import re
import sys
from typing import Optional

_configured = False


class _OneLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        return base.replace("\n", " | ")


class RedactFilter(logging.Filter):
    """Mask emails and secret-looking tokens in log messages."""

    EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
    # bearer tokens, Stripe secret/webhook keys, api_key=... style values
    TOKEN_RE = re.compile(
        r"(?i)(bearer\s+[A-Za-z0-9\-._~+/]+=*|sk_(?:test_|live_)?[A-Za-z0-9]{8,}"
        r"|whsec_[A-Za-z0-9]{8,}|api[_-]?key=\w{12,}|api[_-]?token=\w{12,})"
    )

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
            redacted = self.EMAIL_RE.sub("<redacted-email>", msg)
            redacted = self.TOKEN_RE.sub("<redacted-secret>", redacted)
            if redacted != msg:
                record.msg = redacted
                record.args = ()
        except Exception:
            pass
        return True


def configure_logging(level: int = logging.INFO) -> None:
    global _configured
    logger = logging.getLogger()
    logger.setLevel(level)

    # Drop previously attached redaction filters/handlers so re-configuration is idempotent
    for f in list(logger.filters):
        if isinstance(f, RedactFilter):
            logger.removeFilter(f)
    for h in list(logger.handlers):
        if getattr(h, "_theme_api_handler", False):
            logger.removeHandler(h)
            continue
        for f in list(h.filters):
            if isinstance(f, RedactFilter):
                h.removeFilter(f)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_OneLineFormatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s"))
    handler._theme_api_handler = True  # type: ignore[attr-defined]

    redact_filter = RedactFilter()
    handler.addFilter(redact_filter)
    for h in logger.handlers:
        h.addFilter(redact_filter)
    # Logger-level too, so caplog-style collectors see redacted messages.
    logger.addFilter(redact_filter)
    logger.addHandler(handler)
    _configured = True

    # Quiet noisy libraries a bit
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not name:
        name = __name__
    if not _configured:
        configure_logging()
    return logging.getLogger(name)

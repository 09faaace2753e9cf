"""Logging configuration for the gateway.

Console output only; every handler carries the PII masking filter so that
email addresses and credentials never reach the log stream in clear text.
"""

from __future__ import annotations

import logging

from workspace_gateway.security.pii import PIIMaskingFilter

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(PIIMaskingFilter())
    root.addHandler(handler)
    root.setLevel(level.upper())

    # Quiet noisy libraries
    for name in ("httpx", "httpcore", "google.auth"):
        logging.getLogger(name).setLevel(logging.WARNING)

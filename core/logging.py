"""
core/logging.py -- One-time logging setup shared by the API and the web UI.

Every module logs through a named logger under the "aiplatform." namespace
(e.g. logging.getLogger("aiplatform.cache")). configure_logging() is called
once from api/main.py at import time; calling it again is a no-op.
"""

import logging

_FORMAT = "%(asctime)s %(levelname)-5s %(name)s %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_configured = False


def configure_logging(level: int = logging.INFO) -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(level=level, format=_FORMAT, datefmt=_DATEFMT)
    _configured = True

"""
Logging setup.

One stream handler on the root "api" logger; every module asks for a child
via get_logger(__name__).
"""

import logging
import sys

from api.config.settings import settings

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def _configure_root() -> logging.Logger:
    root = logging.getLogger("api")
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
    root.setLevel(settings.LOG_LEVEL.upper())
    root.propagate = False
    return root


logger = _configure_root()


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the application namespace."""
    if name == "api" or name.startswith("api."):
        return logging.getLogger(name)
    return logger.getChild(name)

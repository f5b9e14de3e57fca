import importlib
import logging
from datetime import datetime, timezone

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"


def now_iso() -> str:
    """UTC timestamp like '2025-11-06T09:12:34.123456Z'.

    Microseconds are always present so timestamps sort as plain strings.
    """
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT)


def import_path(path: str):
    """Import ``package.module`` or ``package.module:attr``."""
    if not path or not path.strip():
        raise ValueError("import path cannot be empty")
    module_name, _, attr = path.partition(":")
    module = importlib.import_module(module_name)
    if not attr:
        return module
    try:
        return getattr(module, attr)
    except AttributeError:
        raise ValueError(f"{module_name!r} has no attribute {attr!r}") from None

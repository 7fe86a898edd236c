import logging
import sys

from config import settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_configured = False


def get_logger(name: str = "salon") -> logging.Logger:
    global _configured
    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        root = logging.getLogger("salon")
        root.addHandler(handler)
        root.setLevel(settings.log_level)
        root.propagate = False
        _configured = True
    if name != "salon" and not name.startswith("salon."):
        name = f"salon.{name}"
    return logging.getLogger(name)

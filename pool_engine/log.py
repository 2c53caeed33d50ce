import logging
import sys
from typing import Optional, TextIO

_HANDLER_NAME = "pool_engine"


def setup_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """Attach a single formatted handler to the root logger.

    Output goes to stderr by default so CLI JSON on stdout stays clean.
    """

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    if any(handler.get_name() == _HANDLER_NAME for handler in root_logger.handlers):
        return

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(_HANDLER_NAME)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

"""JSON logging for the API process and the maintenance scripts."""

import logging
import sys
from typing import List, Optional, Tuple

from pythonjsonlogger import jsonlogger

JSON_FIELDS = "%(asctime)s %(levelname)s %(name)s %(message)s %(module)s %(funcName)s"

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = {
    "aiosqlite": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "passlib": logging.ERROR,
    "watchfiles": logging.ERROR,
}


def _handlers(log_file: Optional[str]) -> Tuple[List[logging.Handler], Optional[OSError]]:
    formatter = jsonlogger.JsonFormatter(JSON_FIELDS)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    file_error = None
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as exc:
            file_error = exc
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers, file_error


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """Route the root logger and uvicorn's error logger through the JSON handlers.

    Access logs stay with uvicorn; every record produced by ``tidesk.*``
    (permission denials, sweeps, job failures) reaches the root handlers.
    """
    handlers, file_error = _handlers(log_file)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = list(handlers)

    uvicorn_error = logging.getLogger("uvicorn.error")
    uvicorn_error.setLevel(level)
    uvicorn_error.handlers = []
    uvicorn_error.propagate = True

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    if file_error is not None:
        root.warning("Could not open log file %s: %s", log_file, file_error)

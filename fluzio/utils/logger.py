import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union


LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
LOG_FILENAME = "fluzio.log"
DEFAULT_LOG_DIR = Path("logs")
# Third-party loggers that drown the [MISSIONS]/[PRICING] lines at INFO.
QUIET_LOGGERS = ("sqlalchemy.engine", "werkzeug", "alembic.runtime.migration")

_configured_key: Optional[tuple] = None


def _resolve_level(level: Union[str, int, None]) -> int:
    if isinstance(level, int):
        return level
    if not level:
        return logging.INFO
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(log_dir: Optional[str] = None, level: Union[str, int, None] = None) -> None:
    """Install a stream handler and a rotating file handler on the root logger.

    Calling again with the same directory and level is a no-op, so the app
    factory can run once per test without stacking handlers.
    """

    global _configured_key

    directory = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    resolved_level = _resolve_level(level)
    key = (directory, resolved_level)
    if _configured_key == key:
        return

    directory.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(
        directory / LOG_FILENAME, maxBytes=5 * 1024 * 1024, backupCount=5
    )
    file_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved_level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.addHandler(stream_handler)
    root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved_level, logging.WARNING))

    _configured_key = key


def get_logger(name: str = "fluzio") -> logging.Logger:
    if _configured_key is None:
        configure_logging()
    return logging.getLogger(name)

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from backend.app.config import get_settings

FORMAT = (
    "%(asctime)s | %(levelname)-7s | %(name)s | "
    "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
)
formatter = logging.Formatter(FORMAT)


def _file_handler(path: Path, level=logging.INFO) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _attach(logger: logging.Logger, handler: logging.Handler) -> None:
    for h in logger.handlers:
        if getattr(h, "baseFilename", None) == getattr(handler, "baseFilename", None):
            handler.close()
            return
    logger.addHandler(handler)


def setup_logging(log_dir: Optional[Path] = None) -> Path:
    log_dir = log_dir or Path(get_settings().log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # --- Core ---
    core_handler = _file_handler(log_dir / "core.log")

    core_parent = logging.getLogger("curator")
    _attach(core_parent, core_handler)
    core_parent.propagate = False

    # --- Health / update checks (chatty, keep them out of core.log) ---
    health_handler = _file_handler(log_dir / "health.log", level=logging.DEBUG)

    for name in ("curator.health", "curator.updates"):
        checks = logging.getLogger(name)
        _attach(checks, health_handler)
        checks.propagate = False

    # --- Uvicorn ---
    uvicorn_handler = _file_handler(log_dir / "uvicorn.log")
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        ul = logging.getLogger(name)
        _attach(ul, uvicorn_handler)
        ul.propagate = False

    return log_dir

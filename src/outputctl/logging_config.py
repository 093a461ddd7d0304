from __future__ import annotations
import logging, os, sys
from logging.handlers import RotatingFileHandler
from outputctl.config import AppConfig

class ClassNameFilter(logging.Filter):
    """Adds %(owner)s: the class part of loggers named module.Class (DigitalOutput, Runtime, ...)."""
    def filter(self, record: logging.LogRecord) -> bool:
        record.owner = record.name.rpartition('.')[2]
        return True

# loops run on threads named output-control-<controller>
FORMAT = "%(asctime)s %(levelname)s [%(threadName)s %(owner)s.%(funcName)s] %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S"

def _level(level: str | int) -> int:
    lvl = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(lvl, int):
        raise ValueError(f"unknown log level {level!r}")
    return lvl

def _handlers(log_file: str | None) -> list[logging.Handler]:
    out: list[logging.Handler] = [logging.StreamHandler(stream=sys.stdout)]
    if log_file:
        # raises on an unwritable path, before any output is driven
        d = os.path.dirname(log_file)
        if d:
            os.makedirs(d, exist_ok=True)
        out.append(RotatingFileHandler(log_file, maxBytes=512_000, backupCount=3))
    fmt = logging.Formatter(fmt=FORMAT, datefmt=DATEFMT)
    for h in out:
        h.setFormatter(fmt); h.addFilter(ClassNameFilter())
    return out

def setup_logging(enabled: bool = True, level: str | int = "INFO", log_file: str | None = None) -> None:
    """Install the stdout (and optional rotating file) handlers. Later calls are ignored."""
    if getattr(setup_logging, "_configured", False):
        return
    if enabled:
        logging.disable(logging.NOTSET)
        logging.basicConfig(level=_level(level), handlers=_handlers(log_file), force=True)
    else:
        logging.disable(logging.CRITICAL)
    setup_logging._configured = True

def resolve_logging(cfg: AppConfig) -> tuple[bool, str, str | None]:
    """
    Environment wins over the config file's `logging` section.
      OUTPUTCTL_LOGGING=1|0, OUTPUTCTL_LOG_LEVEL=DEBUG|INFO|..., OUTPUTCTL_LOG_FILE=/path/to/log
    """
    env_enabled = os.getenv("OUTPUTCTL_LOGGING")
    if env_enabled is None:
        enabled = cfg.logging.enabled
    else:
        enabled = env_enabled.lower() not in ("0", "false", "no")
    level = os.getenv("OUTPUTCTL_LOG_LEVEL") or cfg.logging.level
    log_file = os.getenv("OUTPUTCTL_LOG_FILE") or cfg.logging.file
    return enabled, level, log_file

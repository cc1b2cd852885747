import logging
import logging.config
import os
from datetime import datetime


class ColourizedFormatter(logging.Formatter):
    """
    Formatter that colours the level name of each record.
    """
    GREY = "\x1b[90m"
    GREEN = "\x1b[32m"
    YELLOW = "\x1b[33m"
    RED = "\x1b[31m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        orig_levelname = record.levelname

        if record.levelno in self.LEVEL_COLORS:
            record.levelname = f"{self.LEVEL_COLORS[record.levelno]}{record.levelname}{self.RESET}"

        result = super().format(record)

        # Other handlers share the record
        record.levelname = orig_levelname
        return result


def get_logging_config() -> dict:
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir = os.getenv("LOG_DIR")
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "default",
        },
    }
    root_handlers = ["console"]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "filename": os.path.join(log_dir, "kalavara.log"),
            "formatter": "plain",
        }
        root_handlers.append("file")

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": "kalavara.logger.ColourizedFormatter",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            },
            "plain": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            },
        },
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": root_handlers,
                "level": log_level_name,
            },
            "uvicorn": {
                "handlers": root_handlers,
                "level": "INFO",
                "propagate": False
            },
            "uvicorn.error": {
                "handlers": root_handlers,
                "level": "INFO",
                "propagate": False
            },
            "uvicorn.access": {
                "handlers": root_handlers,
                "level": "INFO",
                "propagate": False
            },
            "httpx": {
                "handlers": root_handlers,
                "level": "WARNING",
                "propagate": False
            },
        },
    }


def setup_logging() -> None:
    logging.config.dictConfig(get_logging_config())


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class SyncLog:
    """
    Log entries for a single sync run.

    Every entry is forwarded to the regular logger as well. The caller owns
    the instance and decides when to write it out with ``flush``.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or get_logger("kalavara.sync")
        self.started_at = datetime.now()
        self.entries: list[str] = [f"=== Sync started at {self.started_at.isoformat()} ==="]

    def log(self, message: str, level: int = logging.INFO) -> None:
        timestamp = datetime.now().strftime("%H:%M:%S")
        self.entries.append(f"[{timestamp}] {message}")
        self.logger.log(level, "[SYNC] %s", message)

    def warning(self, message: str) -> None:
        self.log(message, level=logging.WARNING)

    def error(self, message: str) -> None:
        self.log(message, level=logging.ERROR)

    def render(self) -> str:
        finished = f"=== Sync completed at {datetime.now().isoformat()} ==="
        return "\n".join([*self.entries, finished]) + "\n"

    def flush(self, path: str) -> bool:
        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(path, "w", encoding="utf-8") as handle:
                handle.write(self.render())
        except OSError as exc:
            self.logger.error("[SYNC] Failed to write sync log to %s: %s", path, exc)
            return False
        return True

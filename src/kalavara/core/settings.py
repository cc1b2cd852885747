import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

from kalavara.logger import get_logger

logger = get_logger(__name__)


CONFIG_FILENAME = "config.yaml"

_CONFIG_KEYS = (
    "LOG_LEVEL",
    "LOG_DIR",
    "DATA_DIR",
    "DATABASE_URL",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "ORACLE_TIMEOUT",
    "PARSE_CONFIDENCE_THRESHOLD",
    "LLM_PARSE_BATCH_SIZE",
    "LLM_BODY_CHAR_LIMIT",
    "CATEGORIZE_BATCH_SIZE",
    "GMAIL_MAX_RESULTS",
    "GMAIL_API_URL",
)


def _resolve_dotenv_path() -> str | None:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        candidate = os.path.join(config_dir, ".env")
        if os.path.exists(candidate):
            return candidate
    resolved = find_dotenv(usecwd=True)
    return resolved or None


def _resolve_config_path() -> str:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        return os.path.join(config_dir, CONFIG_FILENAME)
    cwd = os.getcwd()
    candidate = os.path.join(cwd, "config", CONFIG_FILENAME)
    if os.path.exists(candidate):
        return candidate
    return os.path.join(cwd, CONFIG_FILENAME)


def _strip_inline_comment(raw_value: str) -> str:
    in_single = False
    in_double = False
    for index, char in enumerate(raw_value):
        if char == '"' and not in_single:
            in_double = not in_double
        elif char == "'" and not in_double:
            in_single = not in_single
        elif char == "#" and not in_single and not in_double:
            return raw_value[:index].rstrip()
    return raw_value


def _unquote_value(raw_value: str) -> str:
    if len(raw_value) >= 2 and raw_value[0] == raw_value[-1] and raw_value[0] in {'"', "'"}:
        return raw_value[1:-1]
    return raw_value


def read_config_file(path: str | None) -> dict[str, str]:
    if not path or not os.path.exists(path):
        return {}

    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or ":" not in stripped:
                continue
            key, raw_value = stripped.split(":", 1)
            key = key.strip()
            value = _unquote_value(_strip_inline_comment(raw_value).strip())
            if key and value:
                values[key] = value
    return values


def load_environment() -> None:
    """Merge .env and config.yaml into os.environ; real environment variables win."""
    dotenv_path = _resolve_dotenv_path()
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)

    file_values = read_config_file(_resolve_config_path())
    for key in _CONFIG_KEYS:
        if key not in os.environ and key in file_values:
            os.environ[key] = file_values[key]


def ensure_dirs(*paths: str | None) -> None:
    for path in paths:
        if path and path not in {".", "./"}:
            os.makedirs(path, exist_ok=True)


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


def get_env_float(
    name: str,
    default: float = 0.0,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if (min_value is not None and value < min_value) or (max_value is not None and value > max_value):
        logger.warning("[ENV] %s='%s' out of range, using default %s.", name, raw, default)
        return default
    return value


_SENSITIVE_ENV_KEYS = (
    "KEY",
    "TOKEN",
    "SECRET",
    "PASSWORD",
    "PASS",
    "AUTH",
    "BEARER",
    "PRIVATE",
)


def _should_mask_env_value(name: str, value: str) -> bool:
    upper_name = name.upper()
    if any(marker in upper_name for marker in _SENSITIVE_ENV_KEYS):
        return True
    if value.startswith(("sk-", "rk-", "ya29.")):
        return True
    if value.lower().startswith("bearer "):
        return True
    return False


def mask_value(name: str, value: str) -> str:
    sanitized = value.replace("\r", "\\r").replace("\n", "\\n")
    if not _should_mask_env_value(name, sanitized):
        return sanitized
    if len(sanitized) <= 4:
        return "****"
    return f"{sanitized[:2]}...{sanitized[-2:]}"


def log_environment() -> None:
    logger.info("[ENV] Logging configured environment variables (masked where needed).")
    for key in _CONFIG_KEYS:
        raw_value = os.getenv(key)
        value = "<unset>" if raw_value is None else mask_value(key, raw_value)
        logger.info("[ENV] %s=%s", key, value)


DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_GMAIL_MAX_RESULTS = 500


@dataclass(frozen=True)
class PipelineConfig:
    confidence_threshold: float = 0.7
    llm_batch_size: int = 25
    llm_body_char_limit: int = 800
    categorize_batch_size: int = 100
    oracle_timeout: float = 60.0

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        defaults = cls()
        return cls(
            confidence_threshold=get_env_float(
                "PARSE_CONFIDENCE_THRESHOLD",
                defaults.confidence_threshold,
                min_value=0.0,
                max_value=1.0,
            ),
            llm_batch_size=get_env_int("LLM_PARSE_BATCH_SIZE", defaults.llm_batch_size, min_value=1),
            llm_body_char_limit=get_env_int(
                "LLM_BODY_CHAR_LIMIT", defaults.llm_body_char_limit, min_value=1
            ),
            categorize_batch_size=get_env_int(
                "CATEGORIZE_BATCH_SIZE", defaults.categorize_batch_size, min_value=1
            ),
            oracle_timeout=get_env_float("ORACLE_TIMEOUT", defaults.oracle_timeout, min_value=1.0),
        )


load_environment()

DATA_DIR = os.getenv("DATA_DIR", ".")
LOG_DIR = os.getenv("LOG_DIR")
CONFIG_DIR = os.getenv("CONFIG_DIR")

ensure_dirs(DATA_DIR, LOG_DIR, CONFIG_DIR)

DATABASE_URL = os.getenv("DATABASE_URL") or f"sqlite:///{os.path.join(DATA_DIR, 'kalavara.db')}"
SYNC_LOG_PATH = os.path.join(LOG_DIR or DATA_DIR, "sync.log")
GMAIL_MAX_RESULTS = get_env_int("GMAIL_MAX_RESULTS", DEFAULT_GMAIL_MAX_RESULTS, min_value=1)

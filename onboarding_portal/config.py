import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class AppConfig:
    api_base_url: str = "http://localhost:8084/api"
    api_token: str = None
    api_timeout_s: int = 15
    group_lead_search_path: str = "/group/searchGL"
    select_debounce_ms: int = 400
    select_min_query: int = 3
    select_max_results: int = 4
    log_level: str = "INFO"
    logs_dir: Path = PROJECT_ROOT / "logs"


def _read_int_env(name: str, default: int, *, min_value: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= min_value else default


def _read_str_env(name: str, default: str = None) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def load_config() -> AppConfig:
    load_dotenv()
    base_url = _read_str_env("API_BASE_URL", AppConfig.api_base_url).rstrip("/")
    search_path = _read_str_env("GROUP_LEAD_SEARCH_PATH", AppConfig.group_lead_search_path)
    if not search_path.startswith("/"):
        search_path = "/" + search_path
    logs_dir = _read_str_env("LOGS_DIR")

    return AppConfig(
        api_base_url=base_url,
        api_token=_read_str_env("API_TOKEN"),
        api_timeout_s=_read_int_env("API_TIMEOUT_S", 15, min_value=1),
        group_lead_search_path=search_path,
        select_debounce_ms=_read_int_env("SELECT_DEBOUNCE_MS", 400, min_value=0),
        select_min_query=_read_int_env("SELECT_MIN_QUERY", 3, min_value=0),
        select_max_results=_read_int_env("SELECT_MAX_RESULTS", 4, min_value=1),
        log_level=_read_str_env("LOG_LEVEL", "INFO").upper(),
        logs_dir=Path(logs_dir) if logs_dir else AppConfig.logs_dir,
    )

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str
    log_path: str
    draw_max_attempts: int = 50
    draw_repair_attempts: int = 8
    draw_timeout_seconds: float = 5.0
    draw_lock_timeout_seconds: float = 10.0
    feasibility_search_budget: int = 5000


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}.") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative.")
    return value


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL")
    log_level = os.getenv("LOG_LEVEL", "INFO")
    log_path = os.getenv("LOG_PATH", "logs/santadraw.log")

    if not database_url:
        raise ValueError("DATABASE_URL is required. Set it in the environment or .env file.")

    return Settings(
        database_url=database_url,
        log_level=log_level,
        log_path=log_path,
        draw_max_attempts=_env_number("DRAW_MAX_ATTEMPTS", 50, int),
        draw_repair_attempts=_env_number("DRAW_REPAIR_ATTEMPTS", 8, int),
        draw_timeout_seconds=_env_number("DRAW_TIMEOUT_SECONDS", 5.0, float),
        draw_lock_timeout_seconds=_env_number("DRAW_LOCK_TIMEOUT_SECONDS", 10.0, float),
        feasibility_search_budget=_env_number("FEASIBILITY_SEARCH_BUDGET", 5000, int),
    )

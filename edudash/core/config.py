import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # App URLs
    BACKEND_URL: str = "http://localhost:8000"
    CORS_ORIGINS: str = "http://localhost:8081"  # comma-separated

    # Invitation codes
    INVITE_CODE_LENGTH: int = 8
    PARENT_CODE_EXPIRY_DAYS: int = 30
    PARENT_CODE_MAX_USES: int = 1000
    TEACHER_INVITE_EXPIRY_DAYS: int = 7

    # Fees
    FEE_CURRENCY: str = "ZAR"
    DEFAULT_PAYMENT_WINDOW_START: int = 1
    DEFAULT_PAYMENT_WINDOW_END: int = 7

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def cors_origins(settings_obj: Optional[Settings] = None) -> list[str]:
    cfg = settings_obj or settings
    return [origin.strip() for origin in cfg.CORS_ORIGINS.split(",") if origin.strip()]


def config_problems(cfg) -> List[str]:
    """Human-readable list of configuration problems; empty when usable."""
    problems = []
    if not getattr(cfg, "DATABASE_URL", None):
        problems.append("Missing required configuration: DATABASE_URL")

    start = cfg.DEFAULT_PAYMENT_WINDOW_START
    end = cfg.DEFAULT_PAYMENT_WINDOW_END
    if not (1 <= start <= 31 and 1 <= end <= 31):
        problems.append("DEFAULT_PAYMENT_WINDOW_START/END must be between 1 and 31")
    elif start > end:
        problems.append("DEFAULT_PAYMENT_WINDOW_START must not be after DEFAULT_PAYMENT_WINDOW_END")

    level = str(getattr(cfg, "LOG_LEVEL", "INFO")).upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        problems.append(f"Unknown LOG_LEVEL: {level}")
    return problems


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Check configuration at startup.

    Strict mode raises RuntimeError on the first problem; otherwise each
    problem is logged as a warning. Only key names are logged, never values.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("edudash")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    for problem in config_problems(cfg):
        if strict_mode:
            raise RuntimeError(problem)
        log.warning(problem)
    return True

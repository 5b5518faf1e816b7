import logging
import os
from functools import lru_cache
from pathlib import Path


logger = logging.getLogger(__name__)

SAVINGS_NORMALIZATIONS = ("face_value", "monthly_equivalent")


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        seed_defaults: bool,
        savings_normalization: str,
        suggestion_min_score: float,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.seed_defaults = seed_defaults
        self.savings_normalization = savings_normalization
        self.suggestion_min_score = suggestion_min_score


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("DUOBUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "duobudget.db"
    database_url = os.getenv("DUOBUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("DUOBUDGET_TIMEZONE", "Europe/Berlin")
    seed_defaults = _env_flag("DUOBUDGET_SEED_DEFAULTS", "1")
    savings_normalization = os.getenv(
        "DUOBUDGET_SAVINGS_NORMALIZATION", "face_value"
    ).strip().lower()
    if savings_normalization not in SAVINGS_NORMALIZATIONS:
        logger.warning(
            f"config_invalid: DUOBUDGET_SAVINGS_NORMALIZATION={savings_normalization!r} "
            f"fallback=face_value"
        )
        savings_normalization = "face_value"
    suggestion_min_score = float(os.getenv("DUOBUDGET_SUGGESTION_MIN_SCORE", "80"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        seed_defaults=seed_defaults,
        savings_normalization=savings_normalization,
        suggestion_min_score=suggestion_min_score,
    )

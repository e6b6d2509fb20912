"""
Engine settings.

Values come from the environment or a .env file through python-decouple.
"""

from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from decouple import config


@dataclass(frozen=True)
class EngineSettings:
    high_cost_threshold: Decimal = Decimal("10000")
    minor_cost_threshold: Decimal = Decimal("0")
    cycle_max_depth: int = 50
    cycle_check_timeout: float = 5.0
    money_places: int = 2
    log_level: str = "INFO"
    log_file: Optional[str] = None
    celery_broker_url: str = "memory://"
    celery_result_backend: str = "cache+memory://"
    celery_task_always_eager: bool = False


def load_settings() -> EngineSettings:
    """Read settings from the environment, falling back to defaults."""
    return EngineSettings(
        # =====================================================================
        # COSTING
        # =====================================================================
        high_cost_threshold=config('BOM_HIGH_COST_THRESHOLD', default='10000', cast=Decimal),
        minor_cost_threshold=config('BOM_MINOR_COST_THRESHOLD', default='0', cast=Decimal),
        money_places=config('BOM_MONEY_PLACES', default=2, cast=int),

        # =====================================================================
        # CYCLE DETECTION
        # =====================================================================
        cycle_max_depth=config('BOM_CYCLE_MAX_DEPTH', default=50, cast=int),
        cycle_check_timeout=config('BOM_CYCLE_CHECK_TIMEOUT', default=5.0, cast=float),

        # =====================================================================
        # LOGGING
        # =====================================================================
        log_level=config('BOM_LOG_LEVEL', default='INFO'),
        log_file=config('BOM_LOG_FILE', default='') or None,

        # =====================================================================
        # CELERY
        # =====================================================================
        celery_broker_url=config('CELERY_BROKER_URL', default='memory://'),
        celery_result_backend=config('CELERY_RESULT_BACKEND', default='cache+memory://'),
        celery_task_always_eager=config('CELERY_TASK_ALWAYS_EAGER', default=False, cast=bool),
    )


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    return load_settings()

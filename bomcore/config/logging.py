"""
Logging configuration for the BOM engine.
"""

import copy
import logging.config
from typing import Any, Dict, Optional

from .settings import EngineSettings, get_settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

LOGGING: Dict[str, Any] = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': LOG_FORMAT,
        },
        'simple': {
            'format': '%(levelname)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'bomcore': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'celery': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}


def build_logging_config(settings: Optional[EngineSettings] = None) -> Dict[str, Any]:
    """LOGGING with the level and optional file handler from settings applied."""
    settings = settings or get_settings()
    logging_config = copy.deepcopy(LOGGING)
    logging_config['loggers']['bomcore']['level'] = settings.log_level.upper()

    if settings.log_file:
        logging_config['handlers']['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'formatter': 'verbose',
            'filename': settings.log_file,
            'maxBytes': 1024 * 1024 * 5,  # 5 MB
            'backupCount': 5,
            'encoding': 'utf-8',
        }
        for logger_config in logging_config['loggers'].values():
            logger_config['handlers'].append('file')

    return logging_config


def configure_logging(settings: Optional[EngineSettings] = None) -> None:
    logging.config.dictConfig(build_logging_config(settings))

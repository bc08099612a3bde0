"""
Utilities package for Pantry Planner.

Contains configuration and shared logging helpers.
"""

from .config import Config, get_config, reload_config
from .logger import ContextLogger, setup_logging, get_logger, log_operation

__all__ = [
    'Config',
    'get_config',
    'reload_config',
    'setup_logging',
    'get_logger',
    'log_operation',
    'ContextLogger'
]

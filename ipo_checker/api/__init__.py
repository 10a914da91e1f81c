"""
Caller-facing layer: configuration, logging, captcha recognition, service.
"""

from .config import AppConfig, config, get_config
from .captcha_solver import CaptchaSolver, SolveResult
from .service import CheckerService, parse_targets

__all__ = [
    "AppConfig",
    "config",
    "get_config",
    "CaptchaSolver",
    "SolveResult",
    "CheckerService",
    "parse_targets",
]

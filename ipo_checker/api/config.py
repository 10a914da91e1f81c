"""
Unified Configuration Module for the IPO Allotment Checker

All configuration settings are centralized here.
Import from this module: from ipo_checker.api.config import config
"""

import os
from typing import List, Optional
from dataclasses import dataclass, field

from dotenv import load_dotenv

from ipo_checker.core.session_controller import SessionConfig

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


@dataclass
class AppConfig:
    """Unified application configuration."""

    # === Result Form ===
    IPO_RESULT_URL: str = os.getenv("IPO_RESULT_URL", "https://iporesult.cdsc.com.np/")

    # === Captcha Recognition ===
    CAPTCHA_API_URL: str = os.getenv("CAPTCHA_API_URL", "https://ipo-backend-zzjb.onrender.com/api")
    CAPTCHA_SOLVER_ENABLED: bool = _env_bool("CAPTCHA_SOLVER_ENABLED", "true")
    CAPTCHA_SOLVER_TIMEOUT_SECONDS: float = float(os.getenv("CAPTCHA_SOLVER_TIMEOUT_SECONDS", "30"))

    # === Check Loop ===
    MAX_ATTEMPTS: int = int(os.getenv("MAX_ATTEMPTS", "3"))
    CAPTCHA_WAIT_SECONDS: float = float(os.getenv("CAPTCHA_WAIT_SECONDS", "15"))
    RESULT_WAIT_SECONDS: float = float(os.getenv("RESULT_WAIT_SECONDS", "20"))
    COMPANY_SETTLE_SECONDS: float = float(os.getenv("COMPANY_SETTLE_SECONDS", "2"))

    # === Rate Limiting (delay between BOIDs) ===
    MIN_PACING_DELAY: float = float(os.getenv("MIN_PACING_DELAY", "1.0"))
    MAX_PACING_DELAY: float = float(os.getenv("MAX_PACING_DELAY", "3.0"))

    # === Browser ===
    HEADLESS: bool = _env_bool("HEADLESS", "true")
    BROWSER_TIMEOUT_MS: int = int(os.getenv("BROWSER_TIMEOUT_MS", "60000"))
    USER_AGENT: Optional[str] = os.getenv("USER_AGENT")
    PAGE_LOAD_ATTEMPTS: int = int(os.getenv("PAGE_LOAD_ATTEMPTS", "3"))

    # === Logging ===
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_DIR: str = os.getenv("LOG_DIR", "./logs")

    USER_AGENTS: List[str] = field(default_factory=lambda: list(USER_AGENTS))

    @property
    def session_config(self) -> SessionConfig:
        """Get Session Controller tunables."""
        return SessionConfig(
            max_attempts=self.MAX_ATTEMPTS,
            captcha_timeout=self.CAPTCHA_WAIT_SECONDS,
            result_timeout=self.RESULT_WAIT_SECONDS,
            company_settle_delay=self.COMPANY_SETTLE_SECONDS,
            min_pacing_delay=self.MIN_PACING_DELAY,
            max_pacing_delay=self.MAX_PACING_DELAY,
        )

    def validate(self) -> List[str]:
        """Validate configuration and return list of problems."""
        problems = []

        if not self.IPO_RESULT_URL.startswith(("http://", "https://")):
            problems.append(f"IPO_RESULT_URL is not an http(s) URL: {self.IPO_RESULT_URL!r}")
        if self.CAPTCHA_SOLVER_ENABLED and not self.CAPTCHA_API_URL:
            problems.append("CAPTCHA_API_URL (or set CAPTCHA_SOLVER_ENABLED=false)")
        if self.MAX_ATTEMPTS < 1:
            problems.append("MAX_ATTEMPTS must be at least 1")
        if self.PAGE_LOAD_ATTEMPTS < 1:
            problems.append("PAGE_LOAD_ATTEMPTS must be at least 1")
        if self.CAPTCHA_WAIT_SECONDS <= 0 or self.RESULT_WAIT_SECONDS <= 0:
            problems.append("CAPTCHA_WAIT_SECONDS and RESULT_WAIT_SECONDS must be positive")
        if self.MIN_PACING_DELAY <= 0 or self.MAX_PACING_DELAY < self.MIN_PACING_DELAY:
            problems.append("Pacing delay must be positive with MIN_PACING_DELAY <= MAX_PACING_DELAY")

        return problems


# User agent list - desktop and Android Chrome
USER_AGENTS = [
    # Chrome on Windows (most common)
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",

    # Chrome on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",

    # Chrome on Android (what the result page sees from phones)
    "Mozilla/5.0 (Linux; Android 13; Pixel 7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Mobile Safari/537.36",
    "Mozilla/5.0 (Linux; Android 13; Pixel 7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",

    # Chrome on Linux
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
]


# Global config instance
config = AppConfig()


def get_config() -> AppConfig:
    """Get the application configuration."""
    return config

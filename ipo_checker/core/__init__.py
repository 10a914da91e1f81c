"""
Core components for bulk IPO allotment checks.

Modules:
- models: targets, results, session state and summary
- errors: exception taxonomy shared by every layer
- classifier: maps the scraped result page text to a status
- manual_captcha: human-in-the-loop captcha prompts
- report: sinks that receive the finished report
- session_controller: the per-BOID state machine
"""

from .models import (
    CheckStatus,
    SessionState,
    CaptchaSource,
    CheckTarget,
    CheckResult,
    CheckSummary,
    CheckSession,
    CaptchaImage,
    CaptchaAttempt,
)
from .errors import (
    CheckerError,
    NoTargetsError,
    InvalidTargetError,
    BridgeTimeoutError,
    RemoteFormError,
    WaiterCollisionError,
    SessionDiscardedError,
    PageLoadError,
)
from .classifier import Classification, classify, is_captcha_rejection
from .manual_captcha import ManualCaptchaBroker, ManualCaptchaRequest
from .report import ReportSink, LoggingReportSink, MemoryReportSink, ConsoleReportSink
from .session_controller import SessionController, SessionConfig

__all__ = [
    "CheckStatus",
    "SessionState",
    "CaptchaSource",
    "CheckTarget",
    "CheckResult",
    "CheckSummary",
    "CheckSession",
    "CaptchaImage",
    "CaptchaAttempt",
    "CheckerError",
    "NoTargetsError",
    "InvalidTargetError",
    "BridgeTimeoutError",
    "RemoteFormError",
    "WaiterCollisionError",
    "SessionDiscardedError",
    "PageLoadError",
    "Classification",
    "classify",
    "is_captcha_rejection",
    "ManualCaptchaBroker",
    "ManualCaptchaRequest",
    "ReportSink",
    "LoggingReportSink",
    "MemoryReportSink",
    "ConsoleReportSink",
    "SessionController",
    "SessionConfig",
]

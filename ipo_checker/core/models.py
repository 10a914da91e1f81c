"""
Data Models for bulk allotment checks

All shared data models are defined here to keep the controller, the bridge and
the caller-facing service in agreement.
"""

import base64
import re
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime

from .errors import CheckerError, InvalidTargetError


BOID_PATTERN = re.compile(r"^13\d{14}$")


# ============== Enums ==============

class CheckStatus(str, Enum):
    """Terminal status of one BOID check."""
    ALLOTTED = "allotted"
    NOT_ALLOTTED = "not-allotted"
    CAPTCHA_ERROR = "captcha-error"
    ERROR = "error"
    SKIPPED = "skipped"


class SessionState(str, Enum):
    """Session Controller states."""
    IDLE = "idle"
    SELECTING_COMPANY = "selecting_company"
    EXTRACTING = "extracting"
    SOLVING = "solving"
    SUBMITTING = "submitting"
    CLASSIFYING = "classifying"
    COMPLETED = "completed"


class CaptchaSource(str, Enum):
    """Where the captcha text of an attempt came from."""
    AUTOMATED = "automated"
    MANUAL = "manual"
    SKIPPED = "skipped"


# ============== Data Models ==============

@dataclass(frozen=True)
class CheckTarget:
    """A BOID to check, with an optional nickname."""
    identifier: str
    label: Optional[str] = None

    @classmethod
    def create(cls, identifier: str, label: Optional[str] = None) -> "CheckTarget":
        """Build a target, enforcing the 16-digit "13..." BOID format."""
        identifier = str(identifier).strip()
        if not BOID_PATTERN.match(identifier):
            raise InvalidTargetError(identifier, "BOID must be 16 digits and start with 13")
        label = label.strip() if label else None
        return cls(identifier=identifier, label=label or None)

    @property
    def display_name(self) -> str:
        if self.label:
            return f"{self.label} ({self.identifier})"
        return self.identifier


@dataclass
class CaptchaImage:
    """Captcha image bytes as copied off the result page."""
    data: bytes
    mime_type: str = "image/png"

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_message(cls, payload: Dict[str, Any]) -> "CaptchaImage":
        """Decode a CAPTCHA_IMAGE_READY payload."""
        try:
            data = base64.b64decode(payload.get("imageBase64") or "", validate=True)
        except (ValueError, TypeError) as e:
            raise CheckerError(f"Malformed captcha image payload: {e}") from e
        if not data:
            raise CheckerError("Malformed captcha image payload: empty image")
        return cls(data=data, mime_type=payload.get("mimeType") or "image/png")


@dataclass
class CaptchaAttempt:
    """One pass through extract -> solve. Never persisted."""
    identifier: str
    attempt_number: int
    image: CaptchaImage
    recognized_text: Optional[str] = None
    source: CaptchaSource = CaptchaSource.AUTOMATED


@dataclass(frozen=True)
class CheckResult:
    """Terminal outcome for one target."""
    identifier: str
    label: Optional[str]
    status: CheckStatus
    share_quantity: int = 0
    error_detail: Optional[str] = None
    completed_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "boid": self.identifier,
            "label": self.label,
            "status": self.status.value,
            "shares": self.share_quantity,
            "error": self.error_detail,
            "completed_at": self.completed_at.isoformat(),
        }


@dataclass
class CheckSummary:
    """Aggregate counters of a finished session."""
    total: int = 0
    allotted: int = 0
    not_allotted: int = 0
    skipped: int = 0
    captcha_errors: int = 0
    errors: int = 0
    total_shares: int = 0

    @classmethod
    def from_results(cls, results: List[CheckResult], total: Optional[int] = None) -> "CheckSummary":
        summary = cls(total=len(results) if total is None else total)
        for result in results:
            if result.status == CheckStatus.ALLOTTED:
                summary.allotted += 1
                summary.total_shares += result.share_quantity
            elif result.status == CheckStatus.NOT_ALLOTTED:
                summary.not_allotted += 1
            elif result.status == CheckStatus.SKIPPED:
                summary.skipped += 1
            elif result.status == CheckStatus.CAPTCHA_ERROR:
                summary.captcha_errors += 1
            else:
                summary.errors += 1
        return summary

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "allotted": self.allotted,
            "notAllotted": self.not_allotted,
            "skipped": self.skipped,
            "captchaErrors": self.captcha_errors,
            "errors": self.errors,
            "totalShares": self.total_shares,
        }


@dataclass
class CheckSession:
    """
    One orchestration run.

    Owned by the Session Controller for its lifetime; results are appended in
    target order, exactly once per target.
    """
    targets: List[CheckTarget]
    company_name: Optional[str] = None
    current_index: int = 0
    results: List[CheckResult] = field(default_factory=list)
    summary: Optional[CheckSummary] = None
    state: SessionState = SessionState.IDLE
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    def record(self, result: CheckResult) -> None:
        """Append the terminal result of the current target."""
        if len(self.results) >= len(self.targets):
            raise CheckerError(f"Session already holds {len(self.results)} results")
        expected = self.targets[len(self.results)]
        if result.identifier != expected.identifier:
            raise CheckerError(
                f"Result for {result.identifier} recorded out of order (expected {expected.identifier})"
            )
        self.results.append(result)

    def complete(self) -> CheckSummary:
        self.summary = CheckSummary.from_results(self.results, total=len(self.targets))
        self.state = SessionState.COMPLETED
        self.finished_at = datetime.now()
        return self.summary

    @property
    def is_complete(self) -> bool:
        return self.state == SessionState.COMPLETED

    @property
    def progress(self) -> int:
        """Percent of targets that reached a terminal status."""
        if not self.targets:
            return 0
        return round(len(self.results) / len(self.targets) * 100)

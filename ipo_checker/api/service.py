"""
Bulk Check Service - caller-facing API.

Validates the BOID list, owns the live session and exposes the manual
captcha prompts a UI has to render.

Usage:
    service = CheckerService(bridge, solver)
    service.manual_captcha_requests.subscribe(show_prompt)

    async for result in service.start_run(["1301010000012345"], "Sarbottam Cement Limited"):
        print(result.identifier, result.status.value)

    print(service.last_summary)
"""

import dataclasses
import logging
from typing import Any, AsyncIterator, Iterable, List, Optional

from ipo_checker.browser.bridge import BrowserBridge
from ipo_checker.browser.scripts import refresh_captcha_script
from ipo_checker.core.errors import CheckerError, InvalidTargetError, NoTargetsError, SessionDiscardedError
from ipo_checker.core.manual_captcha import ManualCaptchaBroker
from ipo_checker.core.models import CheckResult, CheckSession, CheckSummary, CheckTarget
from ipo_checker.core.report import ReportSink
from ipo_checker.core.session_controller import SessionController
from .captcha_solver import CaptchaSolver
from .config import AppConfig, get_config
from .logging_config import log_check_result

logger = logging.getLogger(__name__)


def parse_targets(raw_targets: Optional[Iterable[Any]]) -> List[CheckTarget]:
    """
    Build validated targets from caller input.

    Accepts BOID strings, (boid, label) pairs, mappings with "boid" and
    "label"/"nickname", or CheckTarget instances.

    Raises:
        InvalidTargetError: malformed or duplicate BOID
    """
    targets: List[CheckTarget] = []
    seen = set()

    for item in raw_targets or []:
        if isinstance(item, CheckTarget):
            target = CheckTarget.create(item.identifier, item.label)
        elif isinstance(item, (str, int)):
            target = CheckTarget.create(str(item))
        elif isinstance(item, dict):
            identifier = item.get("boid") or item.get("identifier")
            if identifier is None:
                raise InvalidTargetError(repr(item), "missing boid")
            target = CheckTarget.create(str(identifier), item.get("label") or item.get("nickname"))
        elif isinstance(item, (tuple, list)) and 1 <= len(item) <= 2:
            target = CheckTarget.create(str(item[0]), item[1] if len(item) == 2 else None)
        else:
            raise InvalidTargetError(repr(item), "unsupported target entry")

        if target.identifier in seen:
            raise InvalidTargetError(target.identifier, "BOID already exists")
        seen.add(target.identifier)
        targets.append(target)

    return targets


class CheckerService:
    """Owns one live check session at a time."""

    def __init__(
        self,
        bridge: BrowserBridge,
        solver: Optional[CaptchaSolver] = None,
        config: Optional[AppConfig] = None,
        report_sink: Optional[ReportSink] = None,
        manual_broker: Optional[ManualCaptchaBroker] = None,
        sleep=None,
    ):
        self.bridge = bridge
        self.solver = solver
        self.config = config or get_config()
        self.report_sink = report_sink
        self.manual_captcha_requests = manual_broker or ManualCaptchaBroker()
        self._sleep = sleep
        self._controller: Optional[SessionController] = None
        self.last_summary: Optional[CheckSummary] = None

    @property
    def session(self) -> Optional[CheckSession]:
        return self._controller.session if self._controller else None

    @property
    def results(self) -> List[CheckResult]:
        return list(self.session.results) if self.session else []

    def start_run(
        self,
        targets: Iterable[Any],
        company_name: Optional[str] = None,
        solver_enabled: Optional[bool] = None,
    ) -> AsyncIterator[CheckResult]:
        """
        Start checking `targets` in order.

        Raises:
            NoTargetsError: empty list; no session is created
            InvalidTargetError: malformed or duplicate BOID

        Returns:
            Async iterator yielding one CheckResult per target
        """
        parsed = parse_targets(targets)
        if not parsed:
            raise NoTargetsError()

        if self._controller and not (self.session and self.session.is_complete):
            logger.warning("Discarding the unfinished session before starting a new run")
            self.reset()

        session_config = self.config.session_config
        if solver_enabled is None:
            solver_enabled = self.config.CAPTCHA_SOLVER_ENABLED
        session_config = dataclasses.replace(session_config, solver_enabled=solver_enabled)

        controller = SessionController(
            self.bridge,
            self.solver,
            self.manual_captcha_requests,
            config=session_config,
            report_sink=self.report_sink,
            sleep=self._sleep,
        )
        self._controller = controller
        self.last_summary = None
        return self._stream(controller, parsed, company_name)

    async def _stream(
        self,
        controller: SessionController,
        targets: List[CheckTarget],
        company_name: Optional[str],
    ) -> AsyncIterator[CheckResult]:
        try:
            async for result in controller.run(targets, company_name):
                log_check_result(result)
                yield result
        except SessionDiscardedError:
            logger.info("Session discarded, stopping run")
            return

        if controller.session and controller.session.is_complete:
            self.last_summary = controller.session.summary

    def cancel(self) -> None:
        """Stop the live run after the BOID currently being checked."""
        if self._controller:
            self._controller.cancel()

    def reset(self) -> None:
        """Discard the live session, abandoning any wait in flight."""
        if self._controller:
            self._controller.cancel()
        self.bridge.discard_pending()
        self.manual_captcha_requests.cancel_all()
        self._controller = None

    async def refresh_captcha(self) -> None:
        """Ask the page for a new captcha image (for manual prompt UIs)."""
        if self.session and not self.session.is_complete:
            raise CheckerError("Cannot refresh the captcha while a run is in progress")
        await self.bridge.send(refresh_captcha_script())

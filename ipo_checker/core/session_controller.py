"""
Session Controller - drives the bulk allotment check.

One BOID at a time: extract captcha -> solve -> submit -> classify, with a
bounded number of captcha attempts, a human fallback and a pacing delay
between BOIDs. The result form and its captcha are a single shared page, so
nothing here runs in parallel.

Usage:
    controller = SessionController(bridge, solver, manual_broker, SessionConfig())
    async for result in controller.run(targets, company_name="Sarbottam Cement Limited"):
        print(result.status)
    print(controller.session.summary)
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, List, Optional, TYPE_CHECKING

from ipo_checker.browser.scripts import (
    MessageType,
    extract_captcha_script,
    select_company_script,
    submit_check_script,
)
from .classifier import Classification, classify, is_captcha_rejection
from .errors import BridgeTimeoutError, CheckerError, NoTargetsError, SessionDiscardedError
from .manual_captcha import CAPTCHA_LENGTH, ManualCaptchaBroker
from .models import (
    CaptchaAttempt,
    CaptchaImage,
    CaptchaSource,
    CheckResult,
    CheckSession,
    CheckStatus,
    CheckTarget,
    SessionState,
)
from .report import ReportSink

if TYPE_CHECKING:
    from ipo_checker.api.captcha_solver import CaptchaSolver
    from ipo_checker.browser.bridge import BridgeMessage, BrowserBridge

logger = logging.getLogger(__name__)

TIMEOUT_DETAIL = "Timeout - no response"
SKIPPED_DETAIL = "Captcha skipped"


@dataclass
class SessionConfig:
    """Tunables for one bulk check run."""
    max_attempts: int = 3
    captcha_timeout: float = 15.0
    result_timeout: float = 20.0
    company_settle_delay: float = 2.0

    # Rate limiting between BOIDs
    min_pacing_delay: float = 1.0
    max_pacing_delay: float = 3.0

    # Automated recognition; when off every attempt goes to a person
    solver_enabled: bool = True

    def pacing_delay(self) -> float:
        return random.uniform(self.min_pacing_delay, self.max_pacing_delay)


class SessionController:
    """
    Per-BOID state machine.

    States: Idle -> SelectingCompany -> {Extracting -> Solving -> Submitting
    -> Classifying} per BOID -> Completed. Every target ends in exactly one
    CheckResult; a failing BOID never stops the rest of the queue.
    """

    def __init__(
        self,
        bridge: "BrowserBridge",
        solver: Optional["CaptchaSolver"],
        manual: ManualCaptchaBroker,
        config: Optional[SessionConfig] = None,
        report_sink: Optional[ReportSink] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.bridge = bridge
        self.solver = solver
        self.manual = manual
        self.config = config or SessionConfig()
        self.report_sink = report_sink
        self._sleep = sleep or asyncio.sleep
        self._cancelled = False
        self.session: Optional[CheckSession] = None

    def cancel(self) -> None:
        """Stop before the next BOID. The BOID in flight is not interrupted."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def run(self, targets: List[CheckTarget], company_name: Optional[str] = None) -> AsyncIterator[CheckResult]:
        """
        Start a run over `targets`.

        Raises:
            NoTargetsError: immediately, before any session exists

        Returns:
            Async iterator of results in target order
        """
        if not targets:
            raise NoTargetsError()
        return self._run(list(targets), company_name)

    async def _run(self, targets: List[CheckTarget], company_name: Optional[str]) -> AsyncIterator[CheckResult]:
        session = CheckSession(targets=targets, company_name=company_name)
        self.session = session
        self._cancelled = False

        logger.info(
            f"🚀 Starting bulk check of {len(targets)} BOIDs"
            + (f" for {company_name}" if company_name else "")
        )

        if company_name:
            session.state = SessionState.SELECTING_COMPANY
            await self.bridge.send(select_company_script(company_name))
            await self._sleep(self.config.company_settle_delay)

        for index, target in enumerate(targets):
            if self._cancelled:
                logger.info(f"Run cancelled after {index}/{len(targets)} BOIDs")
                return

            session.current_index = index
            logger.info(f"🔍 Checking {target.display_name} ({index + 1}/{len(targets)})")

            result = await self._check_target(target, first_in_run=(index == 0))
            session.record(result)
            self._log_result(result)
            yield result

            if index < len(targets) - 1 and not self._cancelled:
                await self._sleep(self.config.pacing_delay())

        summary = session.complete()
        logger.info(
            f"Bulk check complete: {summary.allotted} allotted, {summary.not_allotted} not allotted, "
            f"{summary.skipped} skipped, {summary.errors + summary.captcha_errors} failed"
        )
        if self.report_sink:
            self.report_sink.publish(list(session.results), summary)

    async def _check_target(self, target: CheckTarget, first_in_run: bool) -> CheckResult:
        """Run the attempt loop for one BOID and return its terminal result."""
        max_attempts = self.config.max_attempts
        attempt = 1

        while True:
            # The form loads with a captcha already shown; everything after that needs a fresh one
            should_refresh = not (first_in_run and attempt == 1)
            logger.debug(f"[Attempt {attempt}/{max_attempts}] {target.identifier} refresh={should_refresh}")

            try:
                image = await self._extract(target, should_refresh)
            except BridgeTimeoutError:
                return self._result(target, CheckStatus.ERROR, error_detail=TIMEOUT_DETAIL)
            except SessionDiscardedError:
                raise
            except CheckerError as e:
                return self._result(target, CheckStatus.ERROR, error_detail=getattr(e, "detail", e.message))

            captcha = await self._solve(target, image, attempt)
            if captcha.source == CaptchaSource.SKIPPED:
                return self._result(target, CheckStatus.SKIPPED, error_detail=SKIPPED_DETAIL)
            if captcha.recognized_text is None:
                logger.info(f"⚠️ Captcha not recognized for {target.identifier}, retrying with a fresh image")
                attempt += 1
                continue

            outcome = await self._submit_and_classify(target, captcha.recognized_text)
            if outcome is None:
                return self._result(target, CheckStatus.ERROR, error_detail=TIMEOUT_DETAIL)

            if outcome.is_captcha_error:
                if attempt < max_attempts:
                    logger.warning(
                        f"Attempt {attempt}/{max_attempts} rejected for {target.identifier}: "
                        f"{outcome.error_detail}. Retrying..."
                    )
                    attempt += 1
                    continue

                # Attempts exhausted: one last human read of the image already on screen
                logger.warning(f"All {max_attempts} attempts rejected for {target.identifier}, asking for manual entry")
                text = await self.manual.request(target.identifier, image, attempt, label=target.label)
                if text is None:
                    return self._result(target, CheckStatus.SKIPPED, error_detail=SKIPPED_DETAIL)
                outcome = await self._submit_and_classify(target, text)
                if outcome is None:
                    return self._result(target, CheckStatus.ERROR, error_detail=TIMEOUT_DETAIL)

            return self._result(
                target,
                outcome.status,
                share_quantity=outcome.share_quantity,
                error_detail=outcome.error_detail,
            )

    async def _extract(self, target: CheckTarget, should_refresh: bool) -> CaptchaImage:
        self.session.state = SessionState.EXTRACTING
        message = await self.bridge.request(
            extract_captcha_script(target.identifier, should_refresh),
            MessageType.CAPTCHA_IMAGE_READY,
            target.identifier,
            timeout=self.config.captcha_timeout,
        )
        image = CaptchaImage.from_message(message.payload)
        logger.debug(f"Captcha image for {target.identifier}: {image.size} bytes ({image.mime_type})")
        return image

    async def _solve(self, target: CheckTarget, image: CaptchaImage, attempt: int) -> CaptchaAttempt:
        """
        Get captcha text for this attempt.

        Returns an attempt without text when automated recognition failed and
        attempts remain; the caller retries with a fresh image.
        """
        self.session.state = SessionState.SOLVING
        record = CaptchaAttempt(identifier=target.identifier, attempt_number=attempt, image=image)

        if self.config.solver_enabled and self.solver is not None:
            result = await self.solver.solve(image.data, image.mime_type)
            if result.success and len(result.text) == CAPTCHA_LENGTH:
                record.recognized_text = result.text
                return record
            if attempt < self.config.max_attempts:
                return record

        text = await self.manual.request(target.identifier, image, attempt, label=target.label)
        record.recognized_text = text
        record.source = CaptchaSource.MANUAL if text is not None else CaptchaSource.SKIPPED
        return record

    async def _submit_and_classify(self, target: CheckTarget, captcha_text: str) -> Optional[Classification]:
        """Submit the form. None means the page never answered."""
        self.session.state = SessionState.SUBMITTING
        try:
            message = await self.bridge.request(
                submit_check_script(target.identifier, captcha_text),
                MessageType.BULK_CHECK_RESULT,
                target.identifier,
                timeout=self.config.result_timeout,
            )
        except BridgeTimeoutError:
            return None

        self.session.state = SessionState.CLASSIFYING
        return self._classify(message)

    def _classify(self, message: "BridgeMessage") -> Classification:
        payload = message.payload
        if message.is_error:
            detail = payload.get("error") or payload.get("message") or "Remote form error"
            if is_captcha_rejection(detail):
                return Classification(status=CheckStatus.CAPTCHA_ERROR, error_detail=detail)
            return Classification(status=CheckStatus.ERROR, error_detail=detail)

        text = payload.get("message")
        if not text and message.status in (CheckStatus.ALLOTTED.value, CheckStatus.NOT_ALLOTTED.value):
            shares = str(payload.get("shares") or 0)
            return Classification(
                status=CheckStatus(message.status),
                share_quantity=int(shares) if shares.isdigit() else 0,
            )
        return classify(text)

    def _result(
        self,
        target: CheckTarget,
        status: CheckStatus,
        share_quantity: int = 0,
        error_detail: Optional[str] = None,
    ) -> CheckResult:
        return CheckResult(
            identifier=target.identifier,
            label=target.label,
            status=status,
            share_quantity=share_quantity,
            error_detail=error_detail,
        )

    def _log_result(self, result: CheckResult) -> None:
        if result.status == CheckStatus.ALLOTTED:
            logger.info(f"✅ {result.identifier} allotted {result.share_quantity} shares")
        elif result.status == CheckStatus.NOT_ALLOTTED:
            logger.info(f"❌ {result.identifier} not allotted")
        elif result.status == CheckStatus.SKIPPED:
            logger.info(f"⏭️ {result.identifier} skipped")
        else:
            logger.error(f"⚠️ {result.identifier} {result.status.value}: {result.error_detail}")

"""
Manual Captcha Fallback

Human-in-the-loop captcha entry. The controller suspends on a
ManualCaptchaRequest until the UI submits the 5 digits or skips. No timeout
is applied: a person is on the other end.

Usage:
    broker = ManualCaptchaBroker()
    broker.subscribe(lambda request: ui.show(request))

    # in the UI
    request.enter("4")        # keystrokes; auto-submits on the 5th digit
    request.skip()            # resolves with None
"""

import asyncio
import logging
import re
from typing import Callable, List, Optional

from .errors import SessionDiscardedError
from .models import CaptchaImage

logger = logging.getLogger(__name__)

CAPTCHA_LENGTH = 5
CAPTCHA_PATTERN = re.compile(r"^\d{5}$")


class ManualCaptchaRequest:
    """A pending prompt asking a person to read one captcha image."""

    def __init__(
        self,
        identifier: str,
        image: CaptchaImage,
        attempt: int,
        label: Optional[str] = None,
    ):
        self.identifier = identifier
        self.label = label
        self.image = image
        self.attempt = attempt
        self._typed = ""
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def typed(self) -> str:
        return self._typed

    @property
    def done(self) -> bool:
        return self._future.done()

    def submit(self, text: str) -> None:
        """Resolve with exactly five digits."""
        text = (text or "").strip()
        if not CAPTCHA_PATTERN.match(text):
            raise ValueError(f"Captcha must be exactly {CAPTCHA_LENGTH} digits")
        if not self._future.done():
            self._future.set_result(text)

    def enter(self, chars: str) -> bool:
        """
        Append typed digits. Auto-submits on the fifth digit.

        Returns:
            True once the request has been submitted
        """
        for char in chars:
            if not char.isdigit():
                raise ValueError(f"Captcha accepts digits only, got {char!r}")
            self._typed += char
            if len(self._typed) == CAPTCHA_LENGTH:
                self.submit(self._typed)
                return True
        return False

    def backspace(self) -> None:
        self._typed = self._typed[:-1]

    def skip(self) -> None:
        """Give up on this BOID. Recorded as skipped, never as an error."""
        if not self._future.done():
            self._future.set_result(None)

    def discard(self) -> None:
        if not self._future.done():
            self._future.set_exception(SessionDiscardedError("Manual captcha prompt discarded"))

    async def wait(self) -> Optional[str]:
        return await self._future


class ManualCaptchaBroker:
    """
    Publishes manual captcha prompts to whoever renders them.

    Subscribers are called with each new request and must eventually call
    submit() or skip() on it.
    """

    def __init__(self):
        self._subscribers: List[Callable[[ManualCaptchaRequest], None]] = []
        self._pending: List[ManualCaptchaRequest] = []

    def subscribe(self, callback: Callable[[ManualCaptchaRequest], None]) -> Callable[[], None]:
        """Register a prompt renderer. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def has_subscribers(self) -> bool:
        return bool(self._subscribers)

    @property
    def pending(self) -> List[ManualCaptchaRequest]:
        return list(self._pending)

    async def request(
        self,
        identifier: str,
        image: CaptchaImage,
        attempt: int,
        label: Optional[str] = None,
    ) -> Optional[str]:
        """Ask a person for the captcha text. None means skipped."""
        if not self._subscribers:
            logger.warning(f"[Manual] No captcha prompt renderer attached, skipping {identifier}")
            return None

        request = ManualCaptchaRequest(identifier, image, attempt, label=label)
        self._pending.append(request)
        logger.info(f"[Manual] Waiting for captcha entry for {identifier} (attempt {attempt})")

        try:
            for callback in list(self._subscribers):
                callback(request)
            text = await request.wait()
        finally:
            if request in self._pending:
                self._pending.remove(request)

        if text is None:
            logger.info(f"[Manual] Captcha skipped for {identifier}")
        return text

    def cancel_all(self) -> None:
        """Reject every outstanding prompt."""
        for request in list(self._pending):
            request.discard()
        self._pending.clear()

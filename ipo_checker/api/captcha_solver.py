"""
CAPTCHA Recognition Service

Client for the image-recognition backend that reads the 5-digit result-form
captcha. Best effort only: every failure comes back as an unsuccessful
SolveResult so the controller can retry with a fresh image or ask a person.

    POST {base_url}/captcha/solve   (multipart field "image")
    -> { "success": bool, "captchaText"?: str, "error"?: str }
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)

SOLVE_PATH = "/captcha/solve"


@dataclass
class SolveResult:
    """Result of a recognition attempt."""
    success: bool
    text: str = ""
    error_message: Optional[str] = None
    solve_time_seconds: float = 0.0


class CaptchaSolver:
    """
    Remote captcha recognition.

    Usage:
        async with CaptchaSolver(base_url) as solver:
            result = await solver.solve(image_bytes, "image/png")
            if result.success:
                print(result.text)
    """

    def __init__(
        self,
        base_url: str,
        enabled: bool = True,
        timeout_seconds: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.enabled = enabled
        self.timeout_seconds = timeout_seconds
        self.session = session
        self._owns_session = False
        self.solved_count = 0
        self.failed_count = 0

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}{SOLVE_PATH}"

    def is_configured(self) -> bool:
        """Check if automated recognition can be used."""
        return self.enabled and bool(self.base_url)

    async def __aenter__(self):
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None
            self._owns_session = False

    async def solve(self, image_bytes: bytes, mime_type: str = "image/png") -> SolveResult:
        """
        Send the captcha image for recognition. Never raises.

        Args:
            image_bytes: Raw image as copied from the page canvas
            mime_type: MIME type reported by the page

        Returns:
            SolveResult with success=False for a disabled solver, network
            failures, non-2xx responses and malformed bodies
        """
        if not self.is_configured():
            return SolveResult(success=False, error_message="Automated captcha recognition disabled")

        start_time = time.time()
        try:
            result = await self._post_image(image_bytes, mime_type)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            result = SolveResult(success=False, error_message=f"Recognition request failed: {e!r}")

        result.solve_time_seconds = time.time() - start_time
        if result.success:
            self.solved_count += 1
            logger.info(f"[Solver] Captcha recognized as {result.text!r} in {result.solve_time_seconds:.1f}s")
        else:
            self.failed_count += 1
            logger.warning(f"[Solver] Recognition failed: {result.error_message}")
        return result

    async def _post_image(self, image_bytes: bytes, mime_type: str) -> SolveResult:
        form = aiohttp.FormData()
        extension = mime_type.split("/")[-1] if "/" in mime_type else "png"
        form.add_field("image", image_bytes, filename=f"captcha.{extension}", content_type=mime_type)

        if self.session is None:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            ) as session:
                return await self._send(session, form)
        return await self._send(self.session, form)

    async def _send(self, session: aiohttp.ClientSession, form: aiohttp.FormData) -> SolveResult:
        async with session.post(self.endpoint, data=form) as resp:
            if resp.status < 200 or resp.status >= 300:
                return SolveResult(success=False, error_message=f"Recognition service returned HTTP {resp.status}")
            try:
                data = await resp.json(content_type=None)
            except ValueError as e:
                return SolveResult(success=False, error_message=f"Malformed recognition response: {e}")

        if not isinstance(data, dict):
            return SolveResult(success=False, error_message="Malformed recognition response: not an object")
        if not data.get("success"):
            return SolveResult(success=False, error_message=data.get("error") or "Recognition unsuccessful")

        text = data.get("captchaText")
        if not isinstance(text, str) or not text.strip():
            return SolveResult(success=False, error_message="Recognition response missing captchaText")
        return SolveResult(success=True, text=text.strip())

"""
Pytest fixtures and configuration for the IPO Allotment Checker test suite.
"""

import asyncio
import base64
import json
import sys
from collections import deque
from pathlib import Path
from typing import Callable, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ipo_checker.api.captcha_solver import SolveResult
from ipo_checker.browser.bridge import BrowserBridge
from ipo_checker.browser.scripts import BrowserScript, MessageType, ScriptKind
from ipo_checker.core.manual_captcha import ManualCaptchaBroker
from ipo_checker.core.models import CheckTarget
from ipo_checker.core.session_controller import SessionConfig


ALLOTTED_TEXT = "Congratulation Alloted !!! Alloted quantity : 10"
NOT_ALLOTTED_TEXT = "Sorry, not alloted for the entered BOID."
CAPTCHA_ERROR_TEXT = "Invalid Captcha Provided. Please try again"

# Page replies for the scripted surface
SILENT = object()


class ScriptedSurface:
    """
    Stands in for the result page.

    Extraction scripts answer with a numbered captcha image unless an entry is
    queued in `extraction_plan` (SILENT, an error string or raw image bytes). Submission
    scripts answer with the next entry of `submission_plan`: page text, a raw
    payload dict, or SILENT.
    """

    def __init__(self, bridge: BrowserBridge):
        self.bridge = bridge
        self.injected: List[BrowserScript] = []
        self.extraction_plan = deque()
        self.submission_plan = deque()
        self.images_sent: List[bytes] = []
        self.on_inject: List[Callable[[BrowserScript], None]] = []

    def scripts(self, kind: ScriptKind) -> List[BrowserScript]:
        return [script for script in self.injected if script.kind == kind]

    def _post(self, message: dict) -> None:
        asyncio.get_running_loop().call_soon(self.bridge.handle_message, json.dumps(message))

    async def inject(self, script: BrowserScript) -> None:
        self.injected.append(script)
        for hook in self.on_inject:
            hook(script)

        if script.kind == ScriptKind.EXTRACT_CAPTCHA:
            reply = self.extraction_plan.popleft() if self.extraction_plan else None
            if reply is SILENT:
                return
            if isinstance(reply, str):
                self._post({
                    "type": MessageType.BULK_CHECK_RESULT,
                    "boid": script.identifier,
                    "status": "error",
                    "error": reply,
                })
                return
            if isinstance(reply, bytes):
                image = reply
            else:
                image = f"captcha-{len(self.images_sent) + 1}".encode()
            self.images_sent.append(image)
            self._post({
                "type": MessageType.CAPTCHA_IMAGE_READY,
                "boid": script.identifier,
                "imageBase64": base64.b64encode(image).decode(),
                "imageSize": len(image),
                "mimeType": "image/png",
            })

        elif script.kind == ScriptKind.SUBMIT_CHECK:
            reply = self.submission_plan.popleft() if self.submission_plan else NOT_ALLOTTED_TEXT
            if reply is SILENT:
                return
            if isinstance(reply, dict):
                self._post(dict({"type": MessageType.BULK_CHECK_RESULT, "boid": script.identifier}, **reply))
                return
            self._post({
                "type": MessageType.BULK_CHECK_RESULT,
                "boid": script.identifier,
                "status": "ok",
                "message": reply,
            })


class ManualResponder:
    """Manual captcha subscriber that answers from a queue (None = skip)."""

    def __init__(self, answers: Optional[list] = None):
        self.answers = deque(answers or [])
        self.requests = []

    def __call__(self, request) -> None:
        self.requests.append(request)
        answer = self.answers.popleft() if self.answers else None
        if answer is None:
            request.skip()
        else:
            request.submit(answer)


# === Fixtures ===

@pytest.fixture
def bridge():
    return BrowserBridge()


@pytest.fixture
def surface(bridge):
    scripted = ScriptedSurface(bridge)
    bridge.attach(scripted)
    return scripted


@pytest.fixture
def solver():
    """Solver that always recognizes 12345."""
    mock = MagicMock()
    mock.solve = AsyncMock(return_value=SolveResult(success=True, text="12345"))
    return mock


@pytest.fixture
def manual_broker():
    return ManualCaptchaBroker()


@pytest.fixture
def responder(manual_broker):
    answering = ManualResponder()
    manual_broker.subscribe(answering)
    return answering


@pytest.fixture
def fast_config():
    return SessionConfig(
        max_attempts=3,
        captcha_timeout=0.2,
        result_timeout=0.2,
        company_settle_delay=2.0,
        min_pacing_delay=1.0,
        max_pacing_delay=3.0,
    )


@pytest.fixture
def fake_sleep():
    return AsyncMock()


@pytest.fixture
def targets():
    return [
        CheckTarget.create("1300000000000001", "Mom"),
        CheckTarget.create("1300000000000002"),
    ]


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "timing: Tests that wait out a real (short) timeout")

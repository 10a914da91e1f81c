"""
Browser Automation Bridge

Sends generated scripts into the rendering surface and correlates the
messages that come back. The page channel is one-shot and unordered and the
only correlation key is the BOID, so pending waits are kept per BOID.

Usage:
    bridge = BrowserBridge()
    surface = PlaywrightSurface(bridge)       # feeds bridge.handle_message
    bridge.attach(surface)

    message = await bridge.request(
        extract_captcha_script(boid, should_refresh=True),
        MessageType.CAPTCHA_IMAGE_READY,
        boid,
        timeout=15,
    )
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Union

from ipo_checker.core.errors import (
    BridgeTimeoutError,
    CheckerError,
    RemoteFormError,
    SessionDiscardedError,
    WaiterCollisionError,
)
from .scripts import BrowserScript, MessageType

logger = logging.getLogger(__name__)


class RenderingSurface(Protocol):
    """Anything that can run a script in the result page."""

    async def inject(self, script: BrowserScript) -> None:
        ...


@dataclass
class BridgeMessage:
    """An inbound page message."""
    type: str
    boid: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> Optional[str]:
        return self.payload.get("status")

    @property
    def is_error(self) -> bool:
        return self.type == MessageType.BULK_CHECK_RESULT and self.status == "error"

    @classmethod
    def parse(cls, raw: Union[str, bytes, Dict[str, Any]]) -> "BridgeMessage":
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                raise CheckerError(f"Malformed bridge message: {e}") from e
        if not isinstance(raw, dict) or not raw.get("type"):
            raise CheckerError(f"Bridge message without type: {raw!r}")
        boid = raw.get("boid")
        return cls(type=str(raw["type"]), boid=str(boid) if boid is not None else None, payload=raw)


@dataclass
class PendingWait:
    """The outstanding correlation for one BOID."""
    expected_type: str
    expected_identifier: str
    future: asyncio.Future


class BrowserBridge:
    """
    Request/response on top of the fire-and-forget page channel.

    At most one wait is pending per BOID. Registering another one for the same
    BOID rejects the old waiter with WaiterCollisionError instead of leaving it
    orphaned.
    """

    def __init__(self, surface: Optional[RenderingSurface] = None):
        self.surface = surface
        self._pending: Dict[str, PendingWait] = {}
        self.messages_received = 0
        self.orphan_messages = 0

    def attach(self, surface: RenderingSurface) -> None:
        self.surface = surface

    @property
    def pending_identifiers(self):
        return list(self._pending)

    async def send(self, script: BrowserScript) -> None:
        """Inject a script without waiting for anything back."""
        if self.surface is None:
            raise CheckerError("No rendering surface attached to the bridge")
        logger.debug(f"[Bridge] Injecting {script.kind.value} ({script.identifier or '-'})")
        await self.surface.inject(script)

    def _register(self, expected_type: str, identifier: str) -> PendingWait:
        previous = self._pending.pop(identifier, None)
        if previous and not previous.future.done():
            logger.error(
                f"[Bridge] Wait for {previous.expected_type} ({identifier}) replaced before it resolved"
            )
            previous.future.set_exception(WaiterCollisionError(identifier, previous.expected_type))

        future = asyncio.get_running_loop().create_future()
        pending = PendingWait(expected_type=expected_type, expected_identifier=identifier, future=future)
        self._pending[identifier] = pending
        return pending

    async def _await(self, pending: PendingWait, timeout: float) -> BridgeMessage:
        try:
            return await asyncio.wait_for(pending.future, timeout=timeout)
        except asyncio.TimeoutError:
            raise BridgeTimeoutError(pending.expected_type, pending.expected_identifier, timeout) from None
        finally:
            if self._pending.get(pending.expected_identifier) is pending:
                del self._pending[pending.expected_identifier]

    async def wait_for_message(self, expected_type: str, identifier: str, timeout: float) -> BridgeMessage:
        """
        Wait for a message of `expected_type` tagged with `identifier`.

        Raises:
            BridgeTimeoutError: nothing arrived within `timeout` seconds
            RemoteFormError: the page reported an error for this BOID while a
                different message type was awaited
            WaiterCollisionError: a newer wait for the same BOID replaced this one
        """
        pending = self._register(expected_type, identifier)
        return await self._await(pending, timeout)

    async def request(
        self,
        script: BrowserScript,
        expected_type: str,
        identifier: str,
        timeout: float,
    ) -> BridgeMessage:
        """Register the wait, inject the script, then wait for the reply."""
        pending = self._register(expected_type, identifier)
        try:
            await self.send(script)
        except Exception:
            self._pending.pop(identifier, None)
            pending.future.cancel()
            raise
        return await self._await(pending, timeout)

    def handle_message(self, raw: Union[str, bytes, Dict[str, Any]]) -> None:
        """Entry point for every message the page posts."""
        try:
            message = BridgeMessage.parse(raw)
        except CheckerError as e:
            logger.warning(f"[Bridge] Dropping message: {e}")
            return

        self.messages_received += 1
        pending = self._pending.get(message.boid) if message.boid else None

        if pending is None or pending.future.done():
            self.orphan_messages += 1
            logger.debug(f"[Bridge] No waiter for {message.type} ({message.boid}), dropped")
            return

        if message.type == pending.expected_type:
            pending.future.set_result(message)
        elif message.is_error:
            pending.future.set_exception(
                RemoteFormError(message.boid, message.payload.get("error") or message.payload.get("message"))
            )
        else:
            logger.debug(
                f"[Bridge] Ignoring {message.type} for {message.boid} while waiting for {pending.expected_type}"
            )

    def discard_pending(self) -> None:
        """Reject every outstanding wait; used when the session is reset."""
        for pending in list(self._pending.values()):
            if not pending.future.done():
                pending.future.set_exception(SessionDiscardedError())
        self._pending.clear()

"""
Browser side of the allotment checker.

The Playwright surface is imported lazily by callers that need a real browser:
    from ipo_checker.browser.surface import PlaywrightSurface
"""

from .scripts import (
    BRIDGE_BINDING,
    BrowserScript,
    MessageType,
    ScriptKind,
    select_company_script,
    extract_captcha_script,
    submit_check_script,
    refresh_captcha_script,
)
from .bridge import BridgeMessage, BrowserBridge, PendingWait, RenderingSurface

__all__ = [
    "BRIDGE_BINDING",
    "BrowserScript",
    "MessageType",
    "ScriptKind",
    "select_company_script",
    "extract_captcha_script",
    "submit_check_script",
    "refresh_captcha_script",
    "BridgeMessage",
    "BrowserBridge",
    "PendingWait",
    "RenderingSurface",
]

"""
Automation Script Generator

Pure functions producing the page-side JavaScript for each step of the CDSC
result form: select company, extract captcha image, submit BOID + captcha,
refresh captcha. Scripts report back by calling the page binding
`ipoCheckerPostMessage` with a JSON message tagged with the BOID.

Message types posted by the scripts:
    CAPTCHA_IMAGE_READY { boid, imageBase64, imageSize, mimeType }
    BULK_CHECK_RESULT   { boid, status: "ok" | "error", message?, error? }
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

BRIDGE_BINDING = "ipoCheckerPostMessage"


class MessageType:
    CAPTCHA_IMAGE_READY = "CAPTCHA_IMAGE_READY"
    BULK_CHECK_RESULT = "BULK_CHECK_RESULT"


class ScriptKind(str, Enum):
    SELECT_COMPANY = "select_company"
    EXTRACT_CAPTCHA = "extract_captcha"
    SUBMIT_CHECK = "submit_check"
    REFRESH_CAPTCHA = "refresh_captcha"


# Result form selectors (iporesult.cdsc.com.np)
COMPANY_CLEAR_SELECTOR = ".ng-clear-wrapper"
COMPANY_INPUT_SELECTOR = "#companyShare input"
COMPANY_OPTION_SELECTOR = ".ng-option"
CAPTCHA_IMAGE_SELECTOR = 'img[alt="captcha"]'
CAPTCHA_REFRESH_SELECTORS = [
    '[title*="reload" i]',
    '[title*="refresh" i]',
    ".captcha-refresh",
    ".fa-refresh",
    ".fa-sync",
    ".fa-redo",
]
BOID_INPUT_SELECTOR = "#boid"
CAPTCHA_INPUT_SELECTOR = "#userCaptcha"
SUBMIT_SELECTOR = 'button[type="submit"]'

# Page-side timings (milliseconds)
REFRESH_POLL_INTERVAL_MS = 150
REFRESH_MAX_POLLS = 20
IMAGE_LOAD_TIMEOUT_MS = 2000
INPUT_SETTLE_MS = 300
RESULT_SETTLE_MS = 2500


@dataclass(frozen=True)
class BrowserScript:
    """An instruction for the rendering surface."""
    kind: ScriptKind
    source: str
    identifier: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)


def _js(value) -> str:
    """Encode a Python value as a JavaScript literal."""
    return json.dumps(value)


_PRELUDE = f"""
  const sleep = (ms) => new Promise((resolve) => setTimeout(resolve, ms));
  const post = (message) => window[{_js(BRIDGE_BINDING)}](JSON.stringify(
    Object.assign({{ timestamp: new Date().toISOString() }}, message)
  ));
  const refreshCaptcha = () => {{
    for (const selector of {_js(CAPTCHA_REFRESH_SELECTORS)}) {{
      const control = document.querySelector(selector);
      if (control) {{
        control.click();
        return true;
      }}
    }}
    return false;
  }};
"""


def select_company_script(company_name: str) -> BrowserScript:
    """
    Pick the IPO in the company dropdown (ng-select).

    The page sends nothing back for this step; callers wait a fixed settle
    delay instead.
    """
    source = f"""
(async function selectCompany() {{
{_PRELUDE}
  const companyName = {_js(company_name)};
  try {{
    const clearButton = document.querySelector({_js(COMPANY_CLEAR_SELECTOR)});
    if (clearButton) {{
      clearButton.click();
      await sleep(300);
    }}

    const input = document.querySelector({_js(COMPANY_INPUT_SELECTOR)});
    if (!input) throw new Error('Company dropdown not found');
    input.focus();
    input.click();
    input.value = companyName;
    input.dispatchEvent(new Event('input', {{ bubbles: true }}));
    await sleep(1000);

    const options = Array.from(document.querySelectorAll({_js(COMPANY_OPTION_SELECTOR)}));
    const match = options.find((option) => option.innerText.includes(companyName));
    if (!match) throw new Error('Company "' + companyName + '" not found in dropdown');
    match.click();
  }} catch (error) {{
    console.error('Company selection failed:', error.message);
  }}
}})();
"""
    return BrowserScript(kind=ScriptKind.SELECT_COMPANY, source=source, params={"company_name": company_name})


def extract_captcha_script(boid: str, should_refresh: bool) -> BrowserScript:
    """
    Copy the captcha image pixel-exact and post it back tagged with `boid`.

    With `should_refresh` the in-page refresh control is clicked first and the
    image source is polled until it changes; after the poll bound the image
    currently shown is used. The page itself is never reloaded, so the
    selected company survives.
    """
    source = f"""
(async function extractCaptcha() {{
{_PRELUDE}
  const boid = {_js(boid)};
  try {{
    let image = document.querySelector({_js(CAPTCHA_IMAGE_SELECTOR)});
    if (!image) throw new Error('Captcha image not found');

    if ({_js(bool(should_refresh))}) {{
      const previousSrc = image.src;
      if (refreshCaptcha()) {{
        for (let poll = 0; poll < {REFRESH_MAX_POLLS}; poll++) {{
          await sleep({REFRESH_POLL_INTERVAL_MS});
          const current = document.querySelector({_js(CAPTCHA_IMAGE_SELECTOR)});
          if (current && current.src !== previousSrc) break;
        }}
      }} else {{
        console.warn('Captcha refresh control not found, using current image');
      }}
      image = document.querySelector({_js(CAPTCHA_IMAGE_SELECTOR)}) || image;
    }}

    if (!image.complete || !image.naturalWidth) {{
      await new Promise((resolve) => {{
        image.addEventListener('load', resolve, {{ once: true }});
        setTimeout(resolve, {IMAGE_LOAD_TIMEOUT_MS});
      }});
    }}

    const canvas = document.createElement('canvas');
    canvas.width = image.naturalWidth;
    canvas.height = image.naturalHeight;
    const context = canvas.getContext('2d');
    context.imageSmoothingEnabled = false;
    context.drawImage(image, 0, 0, canvas.width, canvas.height);

    const blob = await new Promise((resolve, reject) => canvas.toBlob(
      (result) => result ? resolve(result) : reject(new Error('Captcha canvas encoding failed')),
      'image/png'
    ));
    const imageBase64 = await new Promise((resolve, reject) => {{
      const reader = new FileReader();
      reader.onload = () => resolve(String(reader.result).split(',')[1]);
      reader.onerror = () => reject(reader.error);
      reader.readAsDataURL(blob);
    }});

    post({{
      type: {_js(MessageType.CAPTCHA_IMAGE_READY)},
      boid: boid,
      imageBase64: imageBase64,
      imageSize: blob.size,
      mimeType: blob.type,
    }});
  }} catch (error) {{
    post({{ type: {_js(MessageType.BULK_CHECK_RESULT)}, boid: boid, status: 'error', error: error.message }});
  }}
}})();
"""
    return BrowserScript(
        kind=ScriptKind.EXTRACT_CAPTCHA,
        source=source,
        identifier=boid,
        params={"should_refresh": bool(should_refresh)},
    )


def submit_check_script(boid: str, captcha_text: str) -> BrowserScript:
    """
    Fill BOID and captcha, submit, and post back all visible page text.

    Values go through the native input setter followed by input/change
    events so the page's form validation sees them.
    """
    source = f"""
(async function submitCheck() {{
{_PRELUDE}
  const boid = {_js(boid)};
  const captchaText = {_js(captcha_text)};
  try {{
    const setValue = (element, value) => {{
      const setter = Object.getOwnPropertyDescriptor(HTMLInputElement.prototype, 'value').set;
      setter.call(element, value);
      element.dispatchEvent(new Event('input', {{ bubbles: true }}));
      element.dispatchEvent(new Event('change', {{ bubbles: true }}));
      element.dispatchEvent(new Event('blur', {{ bubbles: true }}));
    }};

    const boidInput = document.querySelector({_js(BOID_INPUT_SELECTOR)});
    if (!boidInput) throw new Error('BOID input not found');
    const captchaInput = document.querySelector({_js(CAPTCHA_INPUT_SELECTOR)});
    if (!captchaInput) throw new Error('Captcha input not found');

    setValue(boidInput, boid);
    setValue(captchaInput, captchaText);
    await sleep({INPUT_SETTLE_MS});

    const submitButton = document.querySelector({_js(SUBMIT_SELECTOR)});
    if (!submitButton) throw new Error('Submit button not found');
    submitButton.click();
    await sleep({RESULT_SETTLE_MS});

    const isVisible = (element) => {{
      if (!element) return false;
      const style = window.getComputedStyle(element);
      return style.display !== 'none' && style.visibility !== 'hidden' && element.getClientRects().length > 0;
    }};
    const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT);
    const parts = [];
    while (walker.nextNode()) {{
      const node = walker.currentNode;
      const text = node.textContent.trim();
      if (text && isVisible(node.parentElement)) parts.push(text);
    }}

    post({{ type: {_js(MessageType.BULK_CHECK_RESULT)}, boid: boid, status: 'ok', message: parts.join(' ') }});
  }} catch (error) {{
    post({{ type: {_js(MessageType.BULK_CHECK_RESULT)}, boid: boid, status: 'error', error: error.message }});
  }}
}})();
"""
    return BrowserScript(
        kind=ScriptKind.SUBMIT_CHECK,
        source=source,
        identifier=boid,
        params={"captcha_text": captcha_text},
    )


def refresh_captcha_script() -> BrowserScript:
    """Click the in-page captcha refresh control. Fire-and-forget."""
    source = f"""
(function forceCaptchaRefresh() {{
{_PRELUDE}
  if (!refreshCaptcha()) console.warn('Captcha refresh control not found');
}})();
"""
    return BrowserScript(kind=ScriptKind.REFRESH_CAPTCHA, source=source)

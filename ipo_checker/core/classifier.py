"""
Result Classifier

Maps the visible text scraped from the result page after a submission to a
terminal status. The page markup is not a stable contract, so classification
is done on text alone.

Known page texts:
    Allotted:     "Congratulation Alloted !!! Alloted quantity : 10"
    Not allotted: "Sorry, not alloted for the entered BOID."
    Bad captcha:  "Invalid Captcha Provided. Please try again"
"""

import re
from dataclasses import dataclass
from typing import Optional

from .models import CheckStatus

MAX_DETAIL_LENGTH = 200

CAPTCHA_ERROR_MARKERS = ("invalid captcha", "incorrect", "try again", "mismatch", "wrong")

# Keywords that mark a script-reported failure as a captcha rejection
CAPTCHA_REJECTION_MARKERS = ("captcha", "try again", "incorrect")

ALLOTTED_PATTERN = re.compile(r"congrat|(?<!not )allott?ed", re.IGNORECASE)
NOT_ALLOTTED_PATTERN = re.compile(r"not\s+allott?ed|sorry", re.IGNORECASE)
QUANTITY_PATTERN = re.compile(r"(?:quantity|shares)\D{0,20}?(\d+)", re.IGNORECASE)
SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")


@dataclass(frozen=True)
class Classification:
    """Status fields derived from a result page."""
    status: CheckStatus
    share_quantity: int = 0
    error_detail: Optional[str] = None

    @property
    def is_captcha_error(self) -> bool:
        return self.status == CheckStatus.CAPTCHA_ERROR


def _bounded(text: str, limit: int = MAX_DETAIL_LENGTH) -> str:
    text = " ".join(text.split())
    if len(text) > limit:
        return text[: limit - 3].rstrip() + "..."
    return text


def _matching_fragment(text: str, marker: str) -> str:
    """Return the sentence of `text` that contains `marker`."""
    for sentence in SENTENCE_SPLIT.split(text):
        if marker in sentence.lower():
            return _bounded(sentence.strip(" .!?"))
    return _bounded(text)


def classify(aggregated_text: Optional[str]) -> Classification:
    """
    Classify the aggregated page text of a submission.

    Rules are checked in order: captcha rejection, allotted, not allotted.
    Anything else is an error carrying the trimmed text for inspection.
    """
    # Page text keeps template line breaks and &nbsp; from the DOM
    text = " ".join((aggregated_text or "").split())
    lowered = text.lower()

    for marker in CAPTCHA_ERROR_MARKERS:
        if marker in lowered:
            return Classification(
                status=CheckStatus.CAPTCHA_ERROR,
                error_detail=_matching_fragment(text, marker),
            )

    if ALLOTTED_PATTERN.search(text):
        match = QUANTITY_PATTERN.search(text)
        quantity = int(match.group(1)) if match else 0
        return Classification(status=CheckStatus.ALLOTTED, share_quantity=quantity)

    if NOT_ALLOTTED_PATTERN.search(text):
        return Classification(status=CheckStatus.NOT_ALLOTTED)

    detail = _bounded(text) or "Empty response"
    return Classification(status=CheckStatus.ERROR, error_detail=detail)


def is_captcha_rejection(message: Optional[str]) -> bool:
    """True when a failure message points at the captcha rather than the BOID."""
    lowered = (message or "").lower()
    return any(marker in lowered for marker in CAPTCHA_REJECTION_MARKERS)

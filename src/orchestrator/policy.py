"""Turn policies: tool suppression, leakage detection and the loop guard.

Each policy is driven by configuration data rather than hard-coded
branches so it can be swapped or tested on its own.
"""

import json
import re
from typing import Any, Iterable, Optional

from shared.config import (
    DEFAULT_LEAK_MARKERS,
    DEFAULT_LEAK_PLACEHOLDERS,
    DEFAULT_TRIGGER_PHRASES,
)


class LoopGuardExceeded(RuntimeError):
    """Too many gateway rounds in a single user turn."""


class LoopGuard:
    """Per-turn counter bounding consecutive gateway rounds."""

    def __init__(self, bound: int = 3) -> None:
        if bound < 1:
            raise ValueError("Loop guard bound must be at least 1")
        self.bound = bound
        self.count = 0

    def reset(self) -> None:
        self.count = 0

    def advance(self) -> int:
        """
        Count one more round.

        Returns:
            The new count

        Raises:
            LoopGuardExceeded: If the count now exceeds the bound
        """
        self.count += 1
        if self.count > self.bound:
            raise LoopGuardExceeded(
                f"Round {self.count} exceeds the limit of {self.bound}"
            )
        return self.count


class TurnPolicy:
    """
    Classifies user input as social small talk.

    A turn is tool-suppressed when the input contains any trigger phrase
    as a whole word or phrase, case-insensitively.
    """

    def __init__(self, trigger_phrases: Optional[Iterable[str]] = None) -> None:
        phrases = [
            p.strip().lower()
            for p in (DEFAULT_TRIGGER_PHRASES if trigger_phrases is None else trigger_phrases)
            if p and p.strip()
        ]
        self.trigger_phrases = tuple(phrases)

        if phrases:
            alternatives = "|".join(
                r"\s+".join(re.escape(word) for word in phrase.split())
                for phrase in sorted(phrases, key=len, reverse=True)
            )
            self._pattern: Optional[re.Pattern[str]] = re.compile(
                rf"(?<!\w)(?:{alternatives})(?!\w)",
                re.IGNORECASE
            )
        else:
            self._pattern = None

    def is_tool_suppressed(self, text: str) -> bool:
        if self._pattern is None:
            return False
        return self._pattern.search(text) is not None

    def matched_phrase(self, text: str) -> Optional[str]:
        if self._pattern is None:
            return None
        match = self._pattern.search(text)
        return match.group(0).lower() if match else None


_FENCED_BLOCK = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)

STRUCTURAL_KEYS = frozenset({
    "name",
    "arguments",
    "parameters",
    "tool_calls",
    "tool_call",
    "function",
    "tool",
    "tool_result",
})


class LeakageDetector:
    """
    Decides whether terminal assistant text is prose fit for the user.

    Text leaks when it is empty, a structural placeholder, contains a raw
    tool-result marker, or decodes as a bare JSON document.
    """

    def __init__(
        self,
        placeholders: Optional[Iterable[str]] = None,
        markers: Optional[Iterable[str]] = None,
        structural_keys: Iterable[str] = STRUCTURAL_KEYS
    ) -> None:
        if placeholders is None:
            placeholders = DEFAULT_LEAK_PLACEHOLDERS
        if markers is None:
            markers = DEFAULT_LEAK_MARKERS

        self.placeholders = frozenset(p.strip().lower() for p in placeholders)
        self.markers = tuple(markers)
        self.structural_keys = frozenset(structural_keys)

    def is_leak(self, text: Optional[str]) -> bool:
        return self.reason(text) is not None

    def reason(self, text: Optional[str]) -> Optional[str]:
        """Name of the rule the text trips, or None for prose."""
        if text is None or not text.strip():
            return "empty"

        stripped = text.strip()

        if stripped.lower() in self.placeholders:
            return "placeholder"

        if any(marker in stripped for marker in self.markers):
            return "result_marker"

        fenced = _FENCED_BLOCK.match(stripped)
        if fenced:
            stripped = fenced.group(1)

        if stripped[:1] in ("{", "["):
            try:
                document = json.loads(stripped)
            except ValueError:
                return None
            if self._looks_like_call(document):
                return "serialized_call"
            return "serialized_data"

        return None

    def _looks_like_call(self, document: Any) -> bool:
        if isinstance(document, list):
            return any(self._looks_like_call(item) for item in document)
        if isinstance(document, dict):
            return bool(self.structural_keys.intersection(document))
        return False

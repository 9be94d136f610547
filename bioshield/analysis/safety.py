"""
Prompt-injection screening for untrusted feed text.

Feed descriptions and vendor names are interpolated into model prompts,
so they are cleaned of role markers and instruction overrides first.
"""

import re

import structlog

logger = structlog.get_logger(__name__)


DANGEROUS_PATTERNS = [
    "ignore previous instructions",
    "ignore all previous",
    "disregard previous",
    "you are now",
    "pretend you are",
    "system:",
    "assistant:",
    "user:",
    "###",
    "<|",
    "|>",
    "forget everything",
    "new instructions",
    "role play",
]

MAX_INPUT_LENGTH = 1000

# Suspicious once this many distinct patterns are present
SUSPICIOUS_THRESHOLD = 2

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


class PromptSafetyFilter:
    """Sanitizes and screens text before it reaches the model."""

    def __init__(self):
        self._patterns = [
            re.compile(re.escape(pattern), re.IGNORECASE) for pattern in DANGEROUS_PATTERNS
        ]

    def sanitize(self, text: str) -> str:
        """
        Clean untrusted text for inclusion in a prompt.

        Control characters other than newline and tab are dropped, every
        dangerous pattern is removed (repeatedly, so removals cannot splice
        a new occurrence together), runs of 3+ newlines collapse to 2, and
        the result is truncated to 1000 characters and trimmed.

        Args:
            text: Untrusted input.

        Returns:
            Sanitized text, at most 1000 characters.
        """
        if not text:
            return ""

        cleaned = _CONTROL_CHARS.sub("", text)

        changed = True
        while changed:
            changed = False
            for pattern in self._patterns:
                cleaned, count = pattern.subn("", cleaned)
                if count:
                    changed = True

        cleaned = _EXCESS_NEWLINES.sub("\n\n", cleaned)
        cleaned = cleaned[:MAX_INPUT_LENGTH]

        return cleaned.strip()

    def count_patterns(self, text: str) -> int:
        """Count distinct dangerous patterns present in the text."""
        if not text:
            return 0
        return sum(1 for pattern in self._patterns if pattern.search(text))

    def is_suspicious(self, text: str) -> bool:
        """Check whether the text carries two or more distinct injection patterns."""
        found = self.count_patterns(text)
        if found >= SUSPICIOUS_THRESHOLD:
            logger.warning("suspicious_input_detected", patterns=found)
            return True
        return False

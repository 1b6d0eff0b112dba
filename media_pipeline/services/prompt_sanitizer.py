"""Prompt Sanitizer - rewrites image prompts that tripped a content filter."""

import re
from typing import Iterable

MAX_LEVEL = 3

_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace and trim."""
    return _WHITESPACE.sub(" ", text).strip()


class PromptSanitizer:
    """
    Three escalating rewrites of an image prompt.

    Level 1 strips filtered terms, level 2 wraps the level-1 text in a neutral
    framing sentence, level 3 replaces the prompt with a fixed generic one.
    The term lists and both fixed texts are injected so they can be tuned
    without touching the retry logic.
    """

    def __init__(self, patterns: Iterable[str], framing_template: str, generic_prompt: str):
        """
        Initialize the sanitizer.

        Args:
            patterns: Regular expressions for terms to strip (matched case-insensitively)
            framing_template: Level-2 sentence containing a ``{prompt}`` placeholder
            generic_prompt: Level-3 replacement prompt
        """
        if "{prompt}" not in framing_template:
            raise ValueError("framing_template must contain a {prompt} placeholder")
        self.patterns = [re.compile(pattern, re.IGNORECASE) for pattern in patterns]
        self.framing_template = framing_template
        self.generic_prompt = normalize_whitespace(generic_prompt)

    @classmethod
    def from_settings(cls, settings) -> "PromptSanitizer":
        return cls(
            patterns=settings.content_filter_patterns,
            framing_template=settings.sanitize_framing_template,
            generic_prompt=settings.sanitize_generic_prompt,
        )

    def strip_terms(self, prompt: str) -> str:
        """Level 1: remove every filtered term."""
        sanitized = prompt
        for pattern in self.patterns:
            sanitized = pattern.sub("", sanitized)
        return normalize_whitespace(sanitized)

    def frame(self, prompt: str) -> str:
        """Level 2: level-1 text inside the neutral framing sentence."""
        return normalize_whitespace(self.framing_template.format(prompt=self.strip_terms(prompt)))

    def sanitize(self, prompt: str, level: int) -> str:
        """
        Rewrite ``prompt`` at the given level.

        Args:
            prompt: The original, unsanitized prompt
            level: 0 (unchanged) to 3 (generic replacement); higher values clamp to 3

        Returns:
            Sanitized prompt
        """
        if level < 0:
            raise ValueError(f"sanitization level must be >= 0, got {level}")
        level = min(level, MAX_LEVEL)

        if level == 0:
            return prompt
        if level == 1:
            return self.strip_terms(prompt)
        if level == 2:
            return self.frame(prompt)
        return self.generic_prompt

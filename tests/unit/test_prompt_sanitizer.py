"""Tests for the prompt sanitizer."""

import pytest

from media_pipeline.services.prompt_sanitizer import PromptSanitizer, normalize_whitespace


@pytest.fixture
def sanitizer(settings):
    """Sanitizer configured from default settings."""
    return PromptSanitizer.from_settings(settings)


def test_level_zero_returns_prompt_unchanged(sanitizer):
    """Test that level 0 is the original prompt."""
    prompt = "A  bloody   battle at dawn"
    assert sanitizer.sanitize(prompt, 0) == prompt


def test_level_one_strips_filtered_terms(sanitizer):
    """Test that level 1 removes violence, sexual and hate terms case-insensitively."""
    result = sanitizer.sanitize("A BLOODY battle with a gun near the explicit poster", 1)

    assert "bloody" not in result.lower()
    assert "battle" not in result.lower()
    assert "gun" not in result.lower()
    assert "explicit" not in result.lower()
    assert result == "A with a near the poster"


def test_level_one_respects_word_boundaries(sanitizer):
    """Test that terms inside longer words are kept."""
    result = sanitizer.sanitize("Warfarin pills and a skilled gunsmith", 1)
    assert result == "Warfarin pills and a skilled gunsmith"


def test_level_two_contains_level_one(sanitizer, settings):
    """Test that level 2 wraps the level-1 text in the framing sentence."""
    prompt = "Soldiers fight in a war zone"
    level_one = sanitizer.sanitize(prompt, 1)
    level_two = sanitizer.sanitize(prompt, 2)

    assert level_one in level_two
    assert level_two.startswith("Professional news broadcast style illustration:")
    assert level_two.endswith("appropriate for all audiences.")


def test_level_three_is_constant(sanitizer, settings):
    """Test that level 3 ignores the prompt entirely."""
    expected = normalize_whitespace(settings.sanitize_generic_prompt)
    assert sanitizer.sanitize("anything at all", 3) == expected
    assert sanitizer.sanitize("something else entirely", 3) == expected


def test_levels_above_three_clamp(sanitizer):
    """Test that higher levels behave like level 3."""
    assert sanitizer.sanitize("a prompt", 7) == sanitizer.sanitize("a prompt", 3)


def test_negative_level_rejected(sanitizer):
    """Test that negative levels raise ValueError."""
    with pytest.raises(ValueError):
        sanitizer.sanitize("a prompt", -1)


@pytest.mark.parametrize("level", [1, 2, 3])
def test_each_level_is_deterministic(sanitizer, level):
    """Test that sanitizing the same prompt twice gives the same output."""
    prompt = "Violent explosion over   the city"
    assert sanitizer.sanitize(prompt, level) == sanitizer.sanitize(prompt, level)


def test_strip_terms_is_idempotent(sanitizer):
    """Test that stripping an already stripped prompt changes nothing."""
    once = sanitizer.strip_terms("A violent attack on a naked hate rally")
    assert sanitizer.strip_terms(once) == once


def test_custom_patterns_are_used():
    """Test that injected word lists replace the defaults."""
    sanitizer = PromptSanitizer(
        patterns=[r"\bpenguin\b"],
        framing_template="Calm: {prompt}.",
        generic_prompt="Generic.",
    )
    assert sanitizer.sanitize("A penguin with a gun", 1) == "A with a gun"
    assert sanitizer.sanitize("A penguin", 2) == "Calm: A."


def test_framing_template_requires_placeholder():
    """Test that a template without {prompt} is rejected."""
    with pytest.raises(ValueError):
        PromptSanitizer(patterns=[], framing_template="no placeholder", generic_prompt="x")

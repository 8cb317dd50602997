"""Unit tests for content sanitization."""

import pytest

from exex.policy import sanitize_content


class TestSanitizeContent:
    """Tests for sanitize_content()."""

    @pytest.mark.parametrize(
        ("content", "expected"),
        [
            ("plain", "plain"),
            ("Hello\0World", "HelloWorld"),
            ("a\r\nb\r\n", "a\nb\n"),
            ("a\rb", "a\nb"),
            ("a\r\r\nb", "a\n\nb"),
            ("Hello\0World\r\nLine\r", "HelloWorld\nLine\n"),
            ("", ""),
        ],
    )
    def test_sanitize(self, content: str, expected: str) -> None:
        assert sanitize_content(content) == expected

    def test_idempotent(self) -> None:
        once = sanitize_content("x\r\n\0y\r")
        assert sanitize_content(once) == once

    def test_nul_between_cr_and_lf(self) -> None:
        # Removing the NUL must not leave a CRLF behind
        assert "\r" not in sanitize_content("a\r\0\nb")

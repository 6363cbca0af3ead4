"""Tests for session id and filename sanitization."""

import re

import pytest

from lyriclens_server.utils.path_sanitizer import sanitize_filename, sanitize_id

SAFE_ID = re.compile(r"^[A-Za-z0-9_-]*$")


class TestSanitizeId:
    """Tests for sanitize_id."""

    @pytest.mark.parametrize(
        "raw",
        [
            "../../etc/passwd",
            "abc def",
            "sess;rm -rf /",
            "ünïcødé-123",
            "a\x00b",
            "%2e%2e%2f",
            "C:\\Windows\\System32",
        ],
    )
    def test_output_contains_only_safe_characters(self, raw):
        """Anything outside [A-Za-z0-9_-] is removed."""
        assert SAFE_ID.match(sanitize_id(raw))

    @pytest.mark.parametrize("raw", ["../x/../y", "hello world!", "1712345678901", "a-b_c", "$$$"])
    def test_idempotent(self, raw):
        once = sanitize_id(raw)
        assert sanitize_id(once) == once

    def test_keeps_valid_id_unchanged(self):
        assert sanitize_id("Session_01-abc") == "Session_01-abc"

    def test_total_removal_yields_empty_id(self):
        assert sanitize_id("../..//") == ""

    def test_none_is_empty(self):
        assert sanitize_id(None) == ""


class TestSanitizeFilename:
    """Tests for sanitize_filename."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("frame000001.jpg", "frame000001.jpg"),
            ("../../frame000001.jpg", "frame000001.jpg"),
            ("/abs/path/frame000002.jpg", "frame000002.jpg"),
            ("dir\\sub\\frame000003.jpg", "frame000003.jpg"),
            ("..\\..\\evil.jpg", "evil.jpg"),
            ("a/../b/frame.jpg", "frame.jpg"),
        ],
    )
    def test_returns_last_segment(self, raw, expected):
        result = sanitize_filename(raw)
        assert result == expected
        assert "/" not in result and "\\" not in result

    @pytest.mark.parametrize("raw", ["..", ".", "a/..", "a/", "", None, "x/\x00.jpg"])
    def test_unusable_segments_become_empty(self, raw):
        """A result that would name the directory itself or its parent is rejected."""
        assert sanitize_filename(raw) == ""

"""Tests for the unified-diff patch engine."""

import pytest

from agentscript.capabilities.patch import (
    LineKind,
    apply_patch,
    check_patch,
    parse_unified_diff,
)
from agentscript.core import PatchConflictError, PatchParseError


ORIGINAL = "line1\nline2\nline3\nline4\nline5\n"


class TestParseUnifiedDiff:
    """Tests for parse_unified_diff."""

    def test_parses_headers_and_lines(self):
        """Test parsing a single hunk with file headers."""
        diff = (
            "--- a/file.txt\n"
            "+++ b/file.txt\n"
            "@@ -1,2 +1,2 @@\n"
            " line1\n"
            "-line2\n"
            "+LINE2\n"
        )

        hunks = parse_unified_diff(diff)

        assert len(hunks) == 1
        hunk = hunks[0]
        assert (hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count) == (1, 2, 1, 2)
        assert hunk.lines == [
            (LineKind.CONTEXT, "line1"),
            (LineKind.REMOVE, "line2"),
            (LineKind.ADD, "LINE2"),
        ]
        assert hunk.replacement() == ["line1", "LINE2"]

    def test_counts_default_to_one(self):
        """Test that omitted counts mean one line."""
        hunks = parse_unified_diff("@@ -3 +3 @@\n-line3\n+three\n")

        assert hunks[0].old_count == 1
        assert hunks[0].new_count == 1

    def test_no_newline_marker_ignored(self):
        """Test that '\\ No newline at end of file' is skipped."""
        diff = "@@ -1 +1 @@\n-a\n\\ No newline at end of file\n+b\n\\ No newline at end of file\n"

        hunks = parse_unified_diff(diff)

        assert hunks[0].replacement() == ["b"]

    def test_no_hunks_rejected(self):
        """Test that text without hunks is a parse error."""
        with pytest.raises(PatchParseError, match="failed to parse diff"):
            parse_unified_diff("just some text\n")

    def test_bad_hunk_header_rejected(self):
        """Test that a malformed @@ header is a parse error."""
        with pytest.raises(PatchParseError):
            parse_unified_diff("@@ -x +y @@\n a\n")

    def test_unexpected_line_rejected(self):
        """Test that a body line with an unknown prefix is a parse error."""
        with pytest.raises(PatchParseError):
            parse_unified_diff("@@ -1,2 +1,2 @@\n a\n*b\n")

    def test_count_mismatch_rejected(self):
        """Test that a header whose counts disagree with the body is rejected."""
        with pytest.raises(PatchParseError, match="does not match its body"):
            parse_unified_diff("@@ -1,3 +1,3 @@\n a\n-b\n+c\n")

    def test_multiple_files_split_into_hunks(self):
        """Test that a second file header starts a new preamble."""
        diff = (
            "--- a/x\n+++ b/x\n@@ -1 +1 @@\n-a\n+b\n"
            "--- a/y\n+++ b/y\n@@ -1 +1 @@\n-c\n+d\n"
        )

        assert len(parse_unified_diff(diff)) == 2


class TestApplyPatch:
    """Tests for apply_patch."""

    def test_replace_single_line(self):
        """Test a simple replacement."""
        diff = "@@ -2,1 +2,1 @@\n-line2\n+LINE TWO\n"

        assert apply_patch(ORIGINAL, diff) == "line1\nLINE TWO\nline3\nline4\nline5\n"

    def test_multiple_hunks_track_offset(self):
        """Test that a later hunk is shifted by lines added earlier."""
        diff = (
            "@@ -1,1 +1,3 @@\n"
            " line1\n"
            "+inserted a\n"
            "+inserted b\n"
            "@@ -4,1 +6,1 @@\n"
            "-line4\n"
            "+LINE4\n"
        )

        result = apply_patch(ORIGINAL, diff)

        assert result == "line1\ninserted a\ninserted b\nline2\nline3\nLINE4\nline5\n"

    def test_deletion_shifts_offset_back(self):
        """Test that removed lines shift later hunks up."""
        diff = (
            "@@ -1,2 +1,0 @@\n"
            "-line1\n"
            "-line2\n"
            "@@ -5,1 +3,1 @@\n"
            "-line5\n"
            "+end\n"
        )

        assert apply_patch(ORIGINAL, diff) == "line3\nline4\nend\n"

    def test_pure_insertion_after_line(self):
        """Test that an old count of zero inserts after old_start."""
        diff = "@@ -2,0 +3,1 @@\n+between\n"

        assert apply_patch(ORIGINAL, diff) == "line1\nline2\nbetween\nline3\nline4\nline5\n"

    def test_insertion_at_top(self):
        """Test inserting before the first line."""
        diff = "@@ -0,0 +1,1 @@\n+header\n"

        assert apply_patch("body\n", diff) == "header\nbody\n"

    def test_trailing_newline_preserved(self):
        """Test that a missing trailing newline stays missing."""
        diff = "@@ -1 +1 @@\n-a\n+b\n"

        assert apply_patch("a\n", diff) == "b\n"
        assert apply_patch("a", diff) == "b"

    def test_out_of_bounds_conflict(self):
        """Test that a hunk past the end of the buffer is a conflict."""
        diff = "@@ -10,1 +10,1 @@\n-x\n+y\n"

        with pytest.raises(PatchConflictError, match=r"out of bounds \(line 10\)"):
            apply_patch(ORIGINAL, diff)

    def test_zero_start_with_removal_conflict(self):
        """Test that a zero start line with removed lines is invalid."""
        diff = "@@ -0,1 +0,1 @@\n-x\n+y\n"

        with pytest.raises(PatchConflictError, match="invalid line number in patch"):
            apply_patch(ORIGINAL, diff)


class TestCheckPatch:
    """Tests for check_patch."""

    def test_clean_patch(self):
        """Test that a fitting patch reports ok."""
        check = check_patch(ORIGINAL, "@@ -1 +1 @@\n-line1\n+first\n")

        assert check.ok
        assert check.hunks == 1
        assert "cleanly" in str(check)

    def test_conflict_reported_not_raised(self):
        """Test that conflicts come back as a failed check."""
        check = check_patch("one\n", "@@ -5,1 +5,1 @@\n-x\n+y\n")

        assert not check.ok
        assert "out of bounds" in check.error

    def test_parse_error_still_raises(self):
        """Test that malformed diffs raise."""
        with pytest.raises(PatchParseError):
            check_patch(ORIGINAL, "not a diff")

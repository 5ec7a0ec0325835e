"""Tests for unified-diff helpers."""

import pytest

from prweave_core.utils.diff import (
    MalformedPatch,
    changed_lines,
    get_patch_line_content,
    new_side_lines,
    reviewable_lines,
    split_unified_diff,
)


class TestChangedLines:
    def test_splits_added_and_removed(self):
        patch = "@@ -1,2 +1,2 @@\n context\n-old value\n+new value"
        added, removed = changed_lines(patch)
        assert added == ["new value"]
        assert removed == ["old value"]

    def test_malformed_header_raises(self):
        with pytest.raises(MalformedPatch):
            changed_lines("@@ nonsense @@\n+x")

    def test_empty_patch(self):
        assert changed_lines("") == ([], [])


class TestNewSideLines:
    def test_drops_removed_lines(self):
        patch = "@@ -1,3 +1,3 @@\n keep\n-gone\n+added"
        assert new_side_lines(patch) == ["keep", "added"]


class TestReviewableLines:
    def test_added_and_context_lines(self):
        patch = "@@ -1,3 +1,3 @@\n context\n-removed\n+added\n context2"
        assert reviewable_lines(patch) == {1, 2, 3}

    def test_second_hunk_offsets(self):
        patch = "@@ -1,1 +1,2 @@\n a\n+b\n@@ -20,1 +21,2 @@\n c\n+d"
        assert reviewable_lines(patch) == {1, 2, 21, 22}


class TestGetPatchLineContent:
    PATCH = "@@ -1,3 +1,4 @@\n context\n-removed\n+added line\n context2\n"

    def test_returns_added_line_content(self):
        assert get_patch_line_content(self.PATCH, 2) == "added line"

    def test_returns_empty_string_when_line_not_found(self):
        assert get_patch_line_content(self.PATCH, 99) == ""


class TestSplitUnifiedDiff:
    DIFF = """\
diff --git a/src/app.py b/src/app.py
index 1111111..2222222 100644
--- a/src/app.py
+++ b/src/app.py
@@ -1,2 +1,3 @@
 import os
+import sys
 print(os.name)
diff --git a/src/util.py b/src/util.py
new file mode 100644
--- /dev/null
+++ b/src/util.py
@@ -0,0 +1,2 @@
+def helper():
+    return 1
"""

    def test_preserves_file_order(self):
        assert list(split_unified_diff(self.DIFF)) == ["src/app.py", "src/util.py"]

    def test_patch_starts_at_first_hunk(self):
        patches = split_unified_diff(self.DIFF)
        assert patches["src/app.py"].startswith("@@ -1,2 +1,3 @@")
        assert "+import sys" in patches["src/app.py"]
        assert "index 1111111" not in patches["src/app.py"]

    def test_rename_uses_new_path(self):
        diff = """\
diff --git a/old/name.py b/old/name.py
similarity index 90%
--- a/old/name.py
+++ b/new/name.py
@@ -1 +1 @@
-x = 1
+x = 2
"""
        assert list(split_unified_diff(diff)) == ["new/name.py"]

    def test_empty_diff(self):
        assert split_unified_diff("") == {}

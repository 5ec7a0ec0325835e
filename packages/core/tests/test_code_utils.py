"""Tests for file filtering and language detection utilities."""

from prweave_core.utils.code import detect_language, is_code_file, is_excluded


class TestIsCodeFile:
    def test_python_file_is_code(self):
        assert is_code_file("app/services/user.py") is True

    def test_js_file_is_code(self):
        assert is_code_file("src/components/Button.tsx") is True

    def test_image_is_not_code(self):
        assert is_code_file("assets/logo.png") is False

    def test_archive_is_not_code(self):
        assert is_code_file("dist/bundle.tar.gz") is False

    def test_lock_file_is_not_code(self):
        assert is_code_file("poetry.lock") is False

    def test_case_insensitive(self):
        assert is_code_file("image.PNG") is False


class TestDetectLanguage:
    def test_known_extensions(self):
        assert detect_language("src/app.py") == "python"
        assert detect_language("web/App.tsx") == "typescript"
        assert detect_language("cmd/main.go") == "go"

    def test_unknown_extension(self):
        assert detect_language("README.md") is None

    def test_no_extension(self):
        assert detect_language("Makefile") is None

    def test_dot_in_directory_only(self):
        assert detect_language("conf.d/settings") is None


class TestIsExcluded:
    def test_full_path_glob(self):
        assert is_excluded("src/generated/api.py", ["src/generated/*.py"])

    def test_basename_glob(self):
        assert is_excluded("static/js/app.min.js", ["*.min.js"])

    def test_directory_prefix(self):
        assert is_excluded("app/migrations/0001_initial.py", ["migrations/"])

    def test_not_excluded(self):
        assert not is_excluded("src/app.py", ["migrations/", "*.lock"])

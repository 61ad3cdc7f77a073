"""Unit tests for extracting file paths from a plan's "Files to Change" section."""

import pytest

from prflow.context.plan_parser import extract_files_from_plan, is_valid_file_path


class TestExtractFilesFromPlan:

    def test_only_path_like_bullets_are_returned(self):
        plan = (
            "# Plan\n\n"
            "## Files to Change\n"
            "- internal/foo.go\n"
            "- bar: not a file\n"
            "- some prose that should be ignored because it has no path markers\n"
        )

        files, _ = extract_files_from_plan(plan)

        assert files == ["internal/foo.go"]

    def test_section_ends_at_next_heading(self):
        plan = (
            "## Files to Change\n"
            "- src/app.py\n"
            "### Testing\n"
            "- tests/test_app.py\n"
        )

        files, _ = extract_files_from_plan(plan)

        assert files == ["src/app.py"]

    def test_level_four_heading_also_ends_section(self):
        plan = "### Files to Change\n- a/b.py\n#### Notes\n- c/d.py\n"

        files, _ = extract_files_from_plan(plan)

        assert files == ["a/b.py"]

    def test_heading_is_case_insensitive(self):
        files, _ = extract_files_from_plan("## files TO change\n* docs/README.md\n")

        assert files == ["docs/README.md"]

    def test_backticks_and_description_are_stripped(self):
        plan = (
            "## Files to Change\n"
            "- `src/server.py` - add the handler\n"
            "* `pkg/util.go`\n"
        )

        files, _ = extract_files_from_plan(plan)

        assert files == ["src/server.py", "pkg/util.go"]

    def test_colon_prose_suffix_is_trimmed(self):
        files, _ = extract_files_from_plan(
            "## Files to Change\n- src/config.py: add the new settings field\n"
        )

        assert files == ["src/config.py"]

    def test_missing_section_returns_headers_only(self):
        plan = "## Summary\ntext\n### Risks\n- none\n"

        files, headers = extract_files_from_plan(plan)

        assert files == []
        assert headers == ["Summary", "Risks"]

    def test_non_bullet_lines_are_ignored(self):
        plan = "## Files to Change\nsrc/not_a_bullet.py\n- src/bullet.py\n"

        files, _ = extract_files_from_plan(plan)

        assert files == ["src/bullet.py"]


class TestIsValidFilePath:

    @pytest.mark.parametrize("value", ["main.go", "src/app.py", "docs/", "Makefile.am"])
    def test_accepts_paths(self, value):
        assert is_valid_file_path(value)

    @pytest.mark.parametrize(
        "value",
        ["", "has space.py", "Makefile", "should.update", "will/change", "Could.py"],
    )
    def test_rejects_prose_and_bare_words(self, value):
        assert not is_valid_file_path(value)

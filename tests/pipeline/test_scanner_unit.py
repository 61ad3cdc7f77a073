"""Unit tests for project file scanning and project:context filtering."""

from prflow.config import ProjectContextSettings
from prflow.project.scanner import (
    ProjectFile,
    filter_project_context,
    format_project_context,
    scan_project,
    split_project_context,
)


def _tree(root, files):
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


class TestScanProject:

    def test_collects_matching_files_sorted(self, tmp_path):
        _tree(tmp_path, {"b.py": "b", "a.py": "a", "notes.txt": "skip", "pkg/c.md": "c"})

        entries = scan_project(ProjectContextSettings(), root=tmp_path)

        assert [e.path for e in entries] == ["a.py", "b.py", "pkg/c.md"]
        assert entries[0].content == "a"

    def test_excluded_and_hidden_directories_skipped(self, tmp_path):
        _tree(
            tmp_path,
            {
                "vendor/lib.go": "x",
                "node_modules/pkg/index.ts": "x",
                ".hidden/secret.py": "x",
                ".prflow/runs/PLAN.md": "x",
                "main.go": "package main",
            },
        )

        entries = scan_project(ProjectContextSettings(), root=tmp_path)

        assert [e.path for e in entries] == ["main.go"]

    def test_oversized_files_skipped(self, tmp_path):
        _tree(tmp_path, {"big.py": "x" * 2048, "small.py": "ok"})
        settings = ProjectContextSettings(max_file_size="1KB")

        entries = scan_project(settings, root=tmp_path)

        assert [e.path for e in entries] == ["small.py"]

    def test_stops_at_max_files(self, tmp_path):
        _tree(tmp_path, {f"f{i}.py": str(i) for i in range(5)})

        entries = scan_project(ProjectContextSettings(max_files=2), root=tmp_path)

        assert len(entries) == 2

    def test_empty_tree(self, tmp_path):
        assert scan_project(ProjectContextSettings(), root=tmp_path) == []


class TestFormatting:

    def test_format_project_context(self):
        text = format_project_context([ProjectFile("a.py", "print(1)")])

        assert text == "## Project Context\n\n### a.py\n\n```\nprint(1)\n```\n\n"

    def test_format_empty(self):
        assert format_project_context([]) == ""

    def test_split_ignores_headings_inside_fences(self):
        context = format_project_context(
            [ProjectFile("a.md", "### not a file\nbody"), ProjectFile("b.py", "x = 1")]
        )

        preamble, sections = split_project_context(context)

        assert preamble == "## Project Context\n\n"
        assert [path for path, _ in sections] == ["a.md", "b.py"]
        assert "### not a file" in sections[0][1]


class TestFilter:

    CONTEXT = format_project_context(
        [
            ProjectFile("src/a.py", "a"),
            ProjectFile("src/b.py", "b"),
            ProjectFile("README.md", "readme"),
        ]
    )

    def test_keeps_only_named_files(self):
        filtered = filter_project_context(self.CONTEXT, ["./src/b.py"])

        assert "### src/b.py" in filtered
        assert "### src/a.py" not in filtered
        assert filtered.startswith("## Project Context")

    def test_no_match_returns_unchanged(self):
        assert filter_project_context(self.CONTEXT, ["new/file.py"]) == self.CONTEXT

"""Tests for block resolution."""

import pytest

from parley.blocks import current_block, ensure_block_dir, is_block_completed


def write_block(project_dir, number, text):
    folder = project_dir / "block"
    folder.mkdir(exist_ok=True)
    (folder / f"{number}.md").write_text(text)


class TestCurrentBlock:
    """Test current_block."""

    def test_no_block_folder(self, tmp_path):
        assert current_block(tmp_path) == 0

    def test_empty_block_folder(self, tmp_path):
        (tmp_path / "block").mkdir()
        assert current_block(tmp_path) == 0

    def test_missing_project_folder(self, tmp_path):
        assert current_block(tmp_path / "does-not-exist") == 0
        assert current_block(None) == 0

    def test_highest_open_block(self, tmp_path):
        write_block(tmp_path, 1, "Status: DONE")
        write_block(tmp_path, 2, "Status: IN PROGRESS")
        assert current_block(tmp_path) == 2

    @pytest.mark.parametrize("token", ["COMPLETED", "CLOSED", "DONE", "done", "Completed"])
    def test_completed_block_advances(self, tmp_path, token):
        write_block(tmp_path, 3, f"# Block 3\n\nStatus:   {token}\n")
        assert current_block(tmp_path) == 4

    def test_numeric_not_lexical_order(self, tmp_path):
        write_block(tmp_path, 2, "open")
        write_block(tmp_path, 10, "open")
        assert current_block(tmp_path) == 10

    def test_non_marker_files_ignored(self, tmp_path):
        write_block(tmp_path, 1, "open")
        (tmp_path / "block" / "notes.md").write_text("Status: DONE")
        (tmp_path / "block" / "7.txt").write_text("x")
        assert current_block(tmp_path) == 1


class TestIsBlockCompleted:
    """Test is_block_completed."""

    def test_completed(self, tmp_path):
        write_block(tmp_path, 1, "Status: CLOSED")
        assert is_block_completed(tmp_path, 1)

    def test_open(self, tmp_path):
        write_block(tmp_path, 1, "Status: TODO")
        assert not is_block_completed(tmp_path, 1)

    def test_missing_marker(self, tmp_path):
        assert not is_block_completed(tmp_path, 5)

    def test_block_zero_is_never_completed(self, tmp_path):
        assert not is_block_completed(tmp_path, 0)


def test_ensure_block_dir(tmp_path):
    ensure_block_dir(tmp_path)
    ensure_block_dir(tmp_path)
    assert (tmp_path / "block").is_dir()

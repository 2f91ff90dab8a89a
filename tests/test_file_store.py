"""
Tests for LocalFileStore and the pass-scoped DocumentTree helpers.
"""

from md_calendar_sync.file_store import TEMP_PREFIX
from md_calendar_sync.file_store import DocumentTree
from md_calendar_sync.file_store import LocalFileStore


class FailingRenameStore(LocalFileStore):
    """Refuses every rename, as a flaky remote store might."""

    def rename(self, handle, new_name):
        raise OSError("rename refused")


class TestAtomicWrite:
    def test_replaces_existing_file(self, tmp_path):
        (tmp_path / "a.md").write_text("old")
        tree = DocumentTree(LocalFileStore())

        handle = tree.write(tmp_path, "a.md", b"new")

        assert handle == tmp_path / "a.md"
        assert (tmp_path / "a.md").read_text() == "new"
        assert [p.name for p in tmp_path.iterdir()] == ["a.md"]

    def test_rename_to_new_name_removes_original(self, tmp_path):
        original = tmp_path / "old.md"
        original.write_text("old")
        tree = DocumentTree(LocalFileStore())

        tree.write(tmp_path, "new.md", b"moved", original=original)

        assert not original.exists()
        assert (tmp_path / "new.md").read_text() == "moved"

    def test_failed_rename_keeps_temp_file(self, tmp_path):
        """Content is never lost: the temp file is returned when the final rename fails."""
        tree = DocumentTree(FailingRenameStore())

        handle = tree.write(tmp_path, "a.md", b"data")

        assert handle.name.startswith(TEMP_PREFIX)
        assert handle.read_bytes() == b"data"

    def test_missing_folder_returns_none(self, tmp_path):
        tree = DocumentTree(LocalFileStore())
        assert tree.write(tmp_path / "absent", "a.md", b"x") is None


class TestFolders:
    def test_get_or_create_folder_is_case_insensitive(self, tmp_path):
        (tmp_path / "Work").mkdir()
        tree = DocumentTree(LocalFileStore())

        assert tree.get_or_create_folder(tmp_path, "work") == tmp_path / "Work"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["Work"]

    def test_folder_path_reports_actual_names(self, tmp_path):
        (tmp_path / "Archive").mkdir()
        tree = DocumentTree(LocalFileStore())

        handle, names = tree.folder_path(tmp_path, ["archive", "2026"])

        assert handle == tmp_path / "Archive" / "2026"
        assert names == ["Archive", "2026"]

    def test_unique_name_adds_counter(self, tmp_path):
        (tmp_path / "Dentist.md").write_text("x")
        (tmp_path / "Dentist (1).md").write_text("x")
        tree = DocumentTree(LocalFileStore())

        assert tree.unique_name(tmp_path, "Dentist") == "Dentist (2).md"

    def test_unique_name_ignores_kept_file(self, tmp_path):
        (tmp_path / "Dentist.md").write_text("x")
        tree = DocumentTree(LocalFileStore())

        assert tree.unique_name(tmp_path, "Dentist", keep=tmp_path / "Dentist.md") == "Dentist.md"


class TestListing:
    def test_listing_is_sorted_and_cached(self, tmp_path):
        (tmp_path / "b.md").write_text("x")
        (tmp_path / "a.md").write_text("x")
        tree = DocumentTree(LocalFileStore())

        assert [i.name for i in tree.list_children(tmp_path)] == ["a.md", "b.md"]
        (tmp_path / "c.md").write_text("x")
        assert len(tree.list_children(tmp_path)) == 2
        tree.invalidate(tmp_path)
        assert len(tree.list_children(tmp_path)) == 3

    def test_listing_error_is_counted(self, tmp_path):
        tree = DocumentTree(LocalFileStore())
        assert tree.list_children(tmp_path / "absent") == []
        assert tree.listing_errors == 1

    def test_find_relative_path(self, tmp_path):
        (tmp_path / "2026" / "02").mkdir(parents=True)
        (tmp_path / "2026" / "02" / "x.md").write_text("x")
        tree = DocumentTree(LocalFileStore())

        assert tree.find(tmp_path, "2026/02/x.md") == tmp_path / "2026" / "02" / "x.md"
        assert tree.find(tmp_path, "2026/03/x.md") is None


class TestMoveAndCopy:
    def test_move_refuses_existing_target(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "dst").mkdir()
        (tmp_path / "src" / "a.md").write_text("one")
        (tmp_path / "dst" / "a.md").write_text("two")
        tree = DocumentTree(LocalFileStore())

        assert tree.move(tmp_path / "src" / "a.md", tmp_path / "dst") is None
        assert (tmp_path / "dst" / "a.md").read_text() == "two"

    def test_copy_into_picks_free_name(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "dst").mkdir()
        (tmp_path / "src" / "a.md").write_text("one")
        (tmp_path / "dst" / "a.md").write_text("two")
        tree = DocumentTree(LocalFileStore())

        copied = tree.copy_into(tmp_path / "src" / "a.md", tmp_path / "dst", "a.md")

        assert copied == tmp_path / "dst" / "a (1).md"
        assert copied.read_text() == "one"

    def test_delete_missing_file_is_false(self, tmp_path):
        tree = DocumentTree(LocalFileStore())
        assert tree.delete(tmp_path / "absent.md") is False

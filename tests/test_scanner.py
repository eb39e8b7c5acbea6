"""Tests for the local file collector and filesystem operations."""

from pathlib import Path

import pytest

from pygistsync.exceptions import GistSyncError, GistSyncNotFoundError
from pygistsync.sync import FileScanner, SyncOperations, flatten_path
from pygistsync.sync.scanner import file_extension


@pytest.fixture
def user_folder(tmp_path):
    root = tmp_path / "Code" / "User"
    (root / "snippets").mkdir(parents=True)
    (root / "a" / "b" / "c").mkdir(parents=True)
    (root / "settings.json").write_text("{}")
    (root / "keybindings.json").write_text("[]")
    (root / "notes.txt").write_text("skip me")
    (root / "snippets" / "python.json").write_text("{}")
    (root / "snippets" / "go.code-snippets").write_text("{}")
    (root / "a" / "b" / "deep.json").write_text("{}")
    (root / "a" / "b" / "c" / "too-deep.json").write_text("{}")
    return root


class TestFileExtension:
    def test_extension(self):
        assert file_extension("settings.JSON") == "json"
        assert file_extension("go.code-snippets") == "code-snippets"
        assert file_extension("archive.tar.gz") == "gz"
        assert file_extension("Makefile") is None


class TestFlattenPath:
    """Tests for building remote keys from local paths."""

    def test_relative_to_root(self):
        root = Path("/home/u/.config/Code/User")
        assert flatten_path(root / "settings.json", root) == "settings.json"
        assert flatten_path(root / "a" / "b.json", root) == "a|b.json"

    def test_sentinel_without_root(self):
        path = Path("/home/u/.config/Code/User/snippets/python.json")
        assert flatten_path(path) == "snippets|python.json"

    def test_last_sentinel_wins(self):
        path = Path("/User/data/User/a/b.json")
        assert flatten_path(path) == "a|b.json"

    def test_nested_user_folder_below_root(self):
        root = Path("/c/User")
        assert flatten_path(root / "User" / "x.json", root) == "User|x.json"

    def test_no_sentinel(self):
        assert flatten_path(Path("/tmp/other/x.json")) == "x.json"


class TestFileScanner:
    """Tests for FileScanner.list_files."""

    def test_list_files_allow_list_and_depth(self, user_folder):
        scanner = FileScanner()

        files = scanner.list_files(
            user_folder, 0, 2, ("json", "code-snippets")
        )

        names = sorted(f.gist_name for f in files)
        assert names == [
            "a|b|deep.json",
            "keybindings.json",
            "settings.json",
            "snippets|go.code-snippets",
            "snippets|python.json",
        ]

    def test_depth_zero_lists_root_only(self, user_folder):
        files = FileScanner().list_files(user_folder, 0, 0, ("json",))
        assert sorted(f.gist_name for f in files) == [
            "keybindings.json",
            "settings.json",
        ]

    def test_records_carry_path_and_content(self, user_folder):
        (user_folder / "settings.json").write_text('{"a": 1}')

        files = FileScanner().list_files(user_folder, 0, 2, ("json",))
        settings = next(f for f in files if f.gist_name == "settings.json")

        assert settings.file_name == "settings.json"
        assert settings.file_path == user_folder / "settings.json"
        assert settings.content == '{"a": 1}'

    def test_line_endings_preserved(self, user_folder):
        (user_folder / "settings.json").write_bytes(b'{\r\n  "a": 1\r\n}')

        files = FileScanner().list_files(user_folder, 0, 0, ("json",))
        settings = next(f for f in files if f.gist_name == "settings.json")

        assert settings.content == '{\r\n  "a": 1\r\n}'

    def test_missing_directory(self, tmp_path):
        with pytest.raises(GistSyncNotFoundError):
            FileScanner().list_files(tmp_path / "missing")

    def test_empty_extension_allow_listed(self, user_folder):
        (user_folder / "Makefile").write_text("all:")
        scanner = FileScanner()
        assert scanner.is_allowed("Makefile", ("json", ""))
        assert not scanner.is_allowed("Makefile", ("json",))

    def test_get_custom_file(self, tmp_path):
        rc_file = tmp_path / ".myrc"
        rc_file.write_text("set -o vi")

        custom = FileScanner().get_custom_file(rc_file, "myrc")

        assert custom.gist_name == "|customized_sync|myrc"
        assert custom.file_name == "myrc"
        assert FileScanner().get_custom_file(tmp_path / "missing", "x") is None


class TestSyncOperations:
    """Tests for local write primitives."""

    def test_create_dir_tree(self, tmp_path):
        target = SyncOperations().create_dir_tree(tmp_path, "a|b|c.json")
        assert target == tmp_path / "a" / "b" / "c.json"
        assert (tmp_path / "a" / "b").is_dir()

    def test_create_dir_tree_top_level(self, tmp_path):
        target = SyncOperations().create_dir_tree(tmp_path, "x.json")
        assert target == tmp_path / "x.json"

    def test_create_dir_tree_rejects_parent_segments(self, tmp_path):
        user_folder = tmp_path / "m" / "User"
        user_folder.mkdir(parents=True)
        with pytest.raises(GistSyncError, match="Invalid remote file name"):
            SyncOperations().create_dir_tree(user_folder, "..|..|escaped.json")
        assert not (tmp_path / "escaped.json").exists()
        assert not (tmp_path / "m" / "escaped.json").exists()

    @pytest.mark.parametrize(
        "gist_name", ["a||b.json", "|b.json", "a|.|b.json", "a/../../b.json"]
    )
    def test_create_dir_tree_rejects_bad_segments(self, tmp_path, gist_name):
        with pytest.raises(GistSyncError):
            SyncOperations().create_dir_tree(tmp_path, gist_name)

    def test_create_custom_dir_tree(self, tmp_path):
        target = tmp_path / "home" / "u" / ".myrc"
        assert SyncOperations().create_custom_dir_tree(target) == target
        assert target.parent.is_dir()

    def test_write_and_read(self, tmp_path):
        operations = SyncOperations()
        target = tmp_path / "x.json"
        assert operations.write_file(target, "{\r\n}") is True
        assert operations.read_file(target) == "{\r\n}"

    def test_write_empty_content_refused(self, tmp_path):
        target = tmp_path / "x.json"
        assert SyncOperations().write_file(target, "") is False
        assert not target.exists()

    def test_read_missing(self, tmp_path):
        assert SyncOperations().read_file(tmp_path / "missing.json") is None

"""Tests for installed extension enumeration and the extension differ."""

import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from pygistsync.environment import SELF_EXTENSION_ID, Environment, OsType
from pygistsync.exceptions import GistSyncError
from pygistsync.sync import (
    EditorCliInstaller,
    ExtensionInformation,
    ExtensionScanner,
    create_extension_file,
    diff_extensions,
    parse_extension_list,
    serialize_extension_list,
)


def ext(identifier, version="1.0.0"):
    publisher, name = identifier.split(".", 1)
    return ExtensionInformation(name=name, publisher=publisher, version=version)


def install(folder: Path, identifier, **extra):
    publisher, name = identifier.split(".", 1)
    extension_dir = folder / f"{identifier}-1.0.0"
    extension_dir.mkdir(parents=True)
    manifest = {"name": name, "publisher": publisher, "version": "1.0.0", **extra}
    (extension_dir / "package.json").write_text(json.dumps(manifest))
    return extension_dir


class TestExtensionInformation:
    def test_identifier(self):
        assert ext("ms-python.python").identifier == "ms-python.python"

    def test_to_dict_layout(self):
        info = ExtensionInformation(
            "python", "ms-python", "1.2.3", uuid="u-1", publisher_id="p-1"
        )
        assert info.to_dict() == {
            "metadata": {
                "id": "u-1",
                "publisherId": "p-1",
                "publisherDisplayName": "ms-python",
            },
            "name": "python",
            "publisher": "ms-python",
            "version": "1.2.3",
        }

    def test_parse_serialized_list(self):
        extensions = [ext("a.one"), ext("b.two", "2.0.0")]
        parsed = parse_extension_list(serialize_extension_list(extensions))
        assert [(e.identifier, e.version) for e in parsed] == [
            ("a.one", "1.0.0"),
            ("b.two", "2.0.0"),
        ]

    def test_parse_skips_malformed_entries(self):
        content = '[{"name": "x"}, {"name": "y", "publisher": "p"}]'
        parsed = parse_extension_list(content)
        assert [e.identifier for e in parsed] == ["p.y"]

    def test_parse_invalid(self):
        with pytest.raises(GistSyncError):
            parse_extension_list("not json")
        with pytest.raises(GistSyncError):
            parse_extension_list('{"name": "x"}')


class TestExtensionScanner:
    def test_installed_extensions(self, tmp_path):
        install(tmp_path, "ms-python.python", __metadata={"id": "uuid-1"})
        install(tmp_path, "eamodio.gitlens")
        (tmp_path / "broken-1.0.0").mkdir()
        (tmp_path / "broken-1.0.0" / "package.json").write_text("{ nope")

        installed = ExtensionScanner().installed_extensions(tmp_path)

        assert [e.identifier for e in installed] == [
            "eamodio.gitlens",
            "ms-python.python",
        ]
        assert installed[1].uuid == "uuid-1"

    def test_obsolete_extensions_skipped(self, tmp_path):
        install(tmp_path, "a.one")
        install(tmp_path, "b.two")
        (tmp_path / ".obsolete").write_text(json.dumps({"a.one-1.0.0": True}))

        installed = ExtensionScanner().installed_extensions(tmp_path)

        assert [e.identifier for e in installed] == ["b.two"]

    def test_missing_folder(self, tmp_path):
        assert ExtensionScanner().installed_extensions(tmp_path / "missing") == []

    def test_create_extension_file(self, tmp_path):
        env = Environment(tmp_path / "User", tmp_path / "ext", OsType.LINUX)

        setting_file = create_extension_file(
            env, [ext("a.one"), ext("b.two")], ["B.TWO"]
        )

        assert setting_file.gist_name == "extensions.json"
        assert setting_file.file_path == tmp_path / "User" / "extensions.json"
        assert [e.identifier for e in parse_extension_list(setting_file.content)] == [
            "a.one"
        ]


class TestDiffExtensions:
    def test_missing_extensions_added(self):
        to_add, to_remove = diff_extensions(
            [ext("a.one"), ext("b.two")], [ext("a.one")], [], False, SELF_EXTENSION_ID
        )
        assert [e.identifier for e in to_add] == ["b.two"]
        assert to_remove == []

    def test_comparison_is_case_insensitive(self):
        to_add, _ = diff_extensions(
            [ext("MS-Python.Python")],
            [ext("ms-python.python")],
            [],
            False,
            SELF_EXTENSION_ID,
        )
        assert to_add == []

    def test_removal_only_when_enabled(self):
        remote = [ext("a.one")]
        installed = [ext("a.one"), ext("c.three")]

        _, disabled = diff_extensions(remote, installed, [], False, SELF_EXTENSION_ID)
        _, enabled = diff_extensions(remote, installed, [], True, SELF_EXTENSION_ID)

        assert disabled == []
        assert [e.identifier for e in enabled] == ["c.three"]

    def test_self_and_ignored_never_removed(self):
        installed = [ext(SELF_EXTENSION_ID), ext("c.three"), ext("d.four")]
        to_add, to_remove = diff_extensions(
            [ext("e.five")], installed, ["c.three", "e.five"], True, SELF_EXTENSION_ID
        )
        assert to_add == []
        assert [e.identifier for e in to_remove] == ["d.four"]


class TestEditorCliInstaller:
    @patch("pygistsync.sync.extensions.subprocess.run")
    def test_apply(self, mock_run):
        installer = EditorCliInstaller("code-insiders")

        added, removed = installer.apply([ext("a.one")], [ext("b.two")])

        assert [e.identifier for e in added] == ["a.one"]
        assert [e.identifier for e in removed] == ["b.two"]
        commands = [call.args[0] for call in mock_run.call_args_list]
        assert commands == [
            ["code-insiders", "--install-extension", "a.one"],
            ["code-insiders", "--uninstall-extension", "b.two"],
        ]

    @patch("pygistsync.sync.extensions.subprocess.run")
    def test_failures_are_left_out(self, mock_run):
        mock_run.side_effect = [
            subprocess.CalledProcessError(1, "code"),
            None,
            FileNotFoundError("code"),
        ]
        installer = EditorCliInstaller()

        added, removed = installer.apply([ext("a.one"), ext("b.two")], [ext("c.three")])

        assert [e.identifier for e in added] == ["b.two"]
        assert removed == []

"""Tests for remote key classification and download routing."""

from pathlib import Path

import pytest

from pygistsync.environment import Environment, OsType
from pygistsync.sync import EntryKind, classify_key, route_entry


def make_env(os_type=OsType.LINUX):
    return Environment(
        user_folder=Path("/home/u/.config/Code/User"),
        extensions_folder=Path("/home/u/.vscode/extensions"),
        os_type=os_type,
    )


class TestClassifyKey:
    @pytest.mark.parametrize(
        "gist_name,kind",
        [
            ("settings.json", EntryKind.SETTINGS),
            ("keybindings.json", EntryKind.KEYBINDING),
            ("keybindingsMac.json", EntryKind.KEYBINDING),
            ("extensions.json", EntryKind.EXTENSION_LIST),
            ("cloudSettings", EntryKind.MARKER),
            ("|customized_sync|myrc", EntryKind.CUSTOM_FILE),
            ("|customized_sync|settings.json", EntryKind.CUSTOM_FILE),
            ("snippets|python.json", EntryKind.OTHER),
            ("launch.json", EntryKind.OTHER),
            ("init", EntryKind.UNSUPPORTED),
        ],
    )
    def test_classify(self, gist_name, kind):
        assert classify_key(gist_name, make_env()) == kind


class TestRouteEntry:
    def test_regular_file_accepted(self):
        decision = route_entry("a|b.json", "{}", make_env(), {})
        assert decision.accepted
        assert decision.kind == EntryKind.OTHER

    def test_empty_content_rejected(self):
        assert not route_entry("settings.json", "", make_env(), {}).accepted
        assert not route_entry("settings.json", None, make_env(), {}).accepted

    def test_marker_rejected(self):
        decision = route_entry("cloudSettings", '{"lastUpload": null}', make_env(), {})
        assert not decision.accepted
        assert decision.kind == EntryKind.MARKER

    def test_undotted_key_rejected(self):
        assert not route_entry("init", "// x", make_env(), {}).accepted

    def test_custom_file_mapped(self):
        decision = route_entry(
            "|customized_sync|myrc", "x", make_env(), {"myrc": "/home/u/.myrc"}
        )
        assert decision.accepted
        assert decision.custom_name == "myrc"

    def test_custom_file_unmapped(self):
        decision = route_entry("|customized_sync|myrc", "x", make_env(), {})
        assert not decision.accepted
        assert decision.reason == "No custom file mapping"

    @pytest.mark.parametrize(
        "os_type,accepted,rejected",
        [
            (OsType.LINUX, "keybindings.json", "keybindingsMac.json"),
            (OsType.WINDOWS, "keybindings.json", "keybindingsMac.json"),
            (OsType.MAC, "keybindingsMac.json", "keybindings.json"),
        ],
    )
    def test_keybinding_variants(self, os_type, accepted, rejected):
        env = make_env(os_type)
        assert route_entry(accepted, "[]", env, {}).accepted
        decision = route_entry(rejected, "[]", env, {})
        assert not decision.accepted
        assert os_type.value in decision.reason

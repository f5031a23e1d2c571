import json
import subprocess

import pytest

from wsprep.errors import ManifestError
from wsprep.services.preferences import PreferenceWriter


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None


class FakeDefaults:
    """In-memory ``defaults`` store."""

    def __init__(self, values=None):
        self.values = dict(values or {})
        self.commands = []

    def run(self, cmd, check=True, capture_output=False, **_kwargs):
        self.commands.append(cmd)
        if cmd[:2] == ["defaults", "read"]:
            key = (cmd[2], cmd[3])
            if key not in self.values:
                return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="does not exist")
            return subprocess.CompletedProcess(cmd, 0, stdout=f"{self.values[key]}\n", stderr="")
        if cmd[:2] == ["defaults", "write"]:
            value_type, value = cmd[4], cmd[5]
            if value_type == "-bool":
                value = "1" if value == "true" else "0"
            self.values[(cmd[2], cmd[3])] = value
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def sudo(self, cmd, **kwargs):
        self.commands.append(["sudo", *cmd])
        return self.run(cmd, **kwargs)


def _prefs_file(tmp_path, prefs):
    path = tmp_path / "darwin_prefs.json"
    path.write_text(json.dumps(prefs), encoding="utf-8")
    return path


PREFS = [
    {"domain": "com.apple.dock", "key": "autohide", "type": "bool", "value": True},
    {"domain": "com.apple.dock", "key": "tilesize", "type": "int", "value": 36},
    {
        "domain": "/Library/Preferences/com.apple.loginwindow",
        "key": "GuestEnabled",
        "type": "bool",
        "value": False,
        "sudo": True,
    },
]


def test_apply_file_writes_only_differences(tmp_path):
    store = FakeDefaults({("com.apple.dock", "tilesize"): "36"})
    writer = PreferenceWriter(store, DummyLogger())

    assert writer.apply_file(_prefs_file(tmp_path, PREFS)) == 2

    writes = [cmd for cmd in store.commands if cmd[:2] == ["defaults", "write"]]
    assert ["defaults", "write", "com.apple.dock", "autohide", "-bool", "true"] in writes
    assert all(cmd[3] != "tilesize" for cmd in writes)
    assert ["sudo", "defaults", "write", "/Library/Preferences/com.apple.loginwindow", "GuestEnabled", "-bool", "false"] in store.commands


def test_apply_file_is_idempotent(tmp_path):
    store = FakeDefaults()
    writer = PreferenceWriter(store, DummyLogger())
    path = _prefs_file(tmp_path, PREFS)

    writer.apply_file(path)

    assert writer.apply_file(path) == 0


@pytest.mark.parametrize(
    "prefs",
    [
        {"domain": "com.apple.dock"},
        [{"domain": "com.apple.dock", "key": "autohide"}],
        [{"domain": "com.apple.dock", "key": "autohide", "type": "dict", "value": {}}],
    ],
)
def test_load_rejects_malformed_preferences(tmp_path, prefs):
    with pytest.raises(ManifestError):
        PreferenceWriter(FakeDefaults(), DummyLogger()).load(_prefs_file(tmp_path, prefs))

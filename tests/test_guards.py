from wsprep.guards import ensure_exists, ensure_manifest_installed, ensure_state, has_entries, is_executable


def test_ensure_state_applies_only_on_difference():
    applied = []

    assert ensure_state(lambda: "old", "new", applied.append) is True
    assert ensure_state(lambda: "new", "new", applied.append) is False
    assert applied == ["new"]


def test_ensure_exists_creates_once(tmp_path):
    marker = tmp_path / "bashrc.local"
    calls = []

    def create():
        calls.append(True)
        marker.write_text("", encoding="utf-8")

    assert ensure_exists(marker, create) is True
    assert ensure_exists(marker, create) is False
    assert len(calls) == 1


def test_ensure_exists_with_entry_count_check(tmp_path):
    rubies = tmp_path / ".rubies"
    calls = []

    def create():
        calls.append(True)
        (rubies / "ruby-3.3.0").mkdir(parents=True)

    assert has_entries(rubies) is False
    rubies.mkdir()
    assert has_entries(rubies) is False

    ensure_exists(rubies, create, check=has_entries)
    ensure_exists(rubies, create, check=has_entries)

    assert len(calls) == 1


def test_is_executable(tmp_path):
    script = tmp_path / "rustc"
    script.write_text("#!/bin/sh\n", encoding="utf-8")

    assert is_executable(script) is False
    script.chmod(0o755)
    assert is_executable(script) is True
    assert is_executable(tmp_path) is False


def test_ensure_manifest_installed_delegates_to_installer(tmp_path):
    class FakeInstaller:
        def install_manifest(self, path):
            return [str(path)]

    assert ensure_manifest_installed(FakeInstaller(), tmp_path / "pkgs.json") == [str(tmp_path / "pkgs.json")]

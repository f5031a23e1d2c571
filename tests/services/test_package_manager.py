import subprocess

from wsprep.models import AppStoreCredential, Profile
from wsprep.services.command_runner import CommandRunner
from wsprep.services.package_manager import (
    AptDriver,
    HomebrewCaskDriver,
    HomebrewDriver,
    HomebrewTapDriver,
    MasDriver,
    PacmanDriver,
    driver_for,
)


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


class FakeRunner:
    def __init__(self, responses=None):
        self.commands = []
        self.displays = []
        self.responses = responses or {}

    def run(self, cmd, check=True, capture_output=False, display=None, **_kwargs):
        self.commands.append(cmd)
        self.displays.append(display)
        returncode, stdout = self.responses.get(tuple(cmd), (0, ""))
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="")

    def sudo(self, cmd, **kwargs):
        return self.run(["sudo", *cmd], **kwargs)

    def output(self, cmd, **kwargs):
        return self.run(cmd, capture_output=True, **kwargs).stdout.strip()

    def succeeds(self, cmd):
        return self.run(cmd, check=False, capture_output=True).returncode == 0


def test_driver_for_maps_supported_profiles():
    runner = FakeRunner()

    assert isinstance(driver_for(Profile.DARWIN, runner), HomebrewDriver)
    assert isinstance(driver_for(Profile.UBUNTU, runner), AptDriver)
    assert isinstance(driver_for(Profile.ARCH, runner), PacmanDriver)
    assert driver_for(Profile.UNKNOWN, runner) is None


def test_apt_driver_checks_dpkg_status_and_installs_with_sudo():
    runner = FakeRunner(
        responses={
            ("dpkg-query", "-W", "-f=${Status}", "git"): (0, "install ok installed"),
            ("dpkg-query", "-W", "-f=${Status}", "tmux"): (0, "deinstall ok config-files"),
        }
    )
    driver = AptDriver(runner)

    assert driver.is_unit_installed("git") is True
    assert driver.is_unit_installed("tmux") is False
    assert driver.is_unit_installed("missing") is False

    driver.install_unit("tmux")
    driver.update()

    assert runner.commands[-2] == ["sudo", "apt-get", "install", "-y", "tmux"]
    assert runner.commands[-1] == ["sudo", "apt-get", "update"]


def test_pacman_driver_recognises_package_groups():
    runner = FakeRunner(responses={("pacman", "-Qi", "base-devel"): (1, "")})
    driver = PacmanDriver(runner)

    assert driver.is_unit_installed("base-devel") is True
    assert runner.commands[-1] == ["pacman", "-Qg", "base-devel"]

    driver.install_unit("vim")
    assert runner.commands[-1] == ["sudo", "pacman", "-S", "--noconfirm", "--needed", "vim"]


def test_homebrew_variants_use_their_own_subcommands():
    runner = FakeRunner(responses={("brew", "tap"): (0, "homebrew/core\nhomebrew/services\n")})

    HomebrewCaskDriver(runner).install_unit("firefox")
    HomebrewDriver(runner).install_unit("jq")
    tap = HomebrewTapDriver(runner)

    assert runner.commands[:2] == [["brew", "install", "--cask", "firefox"], ["brew", "install", "jq"]]
    assert tap.is_unit_installed("homebrew/services") is True
    assert tap.is_unit_installed("homebrew/cask-versions") is False


def test_mas_driver_matches_app_ids_and_masks_password():
    runner = FakeRunner(responses={("mas", "list"): (0, "497799835  Xcode (15.0)\n409183694 Keynote\n")})
    driver = MasDriver(runner)

    assert driver.is_unit_installed("497799835") is True
    assert driver.is_unit_installed("4971") is False

    driver.sign_in(AppStoreCredential("me@example.com", "secret"))

    assert runner.commands[-1] == ["mas", "signin", "me@example.com", "secret"]
    assert "secret" not in runner.displays[-1]


def test_apt_driver_keeps_noninteractive_frontend_past_sudo(monkeypatch):
    argvs = []

    def fake_run(cmd, **_kwargs):
        argvs.append(cmd)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    driver = AptDriver(CommandRunner(logger=DummyLogger()))

    driver.install_unit("tzdata")
    driver.upgrade_all()

    assert argvs == [
        ["sudo", "env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "install", "-y", "tzdata"],
        ["sudo", "env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "-y", "upgrade"],
    ]

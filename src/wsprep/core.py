import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional

import requests
from rich.console import Console
from rich.markup import escape

from .errors import (
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_UNEXPECTED,
    EXIT_UNKNOWN_HOME,
    ExternalToolError,
    PrepError,
    PreconditionError,
    UnsupportedPlatformError,
)
from .errors_catalog import actionable_error
from .guards import ensure_exists, ensure_manifest_installed, ensure_state, has_entries, is_executable
from .models import Profile, RunContext, System
from .services.command_runner import CommandRunner
from .services.dotfiles import DotfileManager, homedir_for
from .services.external_installer import ExternalInstaller
from .services.package_installer import ManifestInstaller
from .services.package_manager import (
    DRIVERS,
    HomebrewCaskDriver,
    HomebrewTapDriver,
    MasDriver,
    PackageManagerDriver,
    driver_for,
)
from .services.preferences import PreferenceWriter
from .services.privilege import PrivilegeSession

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger("wsprep")

BASHRC_MARKER = Path("/etc/bash/bashrc.local")
BASHRC_INSTALLER_URL = "https://raw.githubusercontent.com/fnichol/bashrc/master/contrib/install-system-wide"
PROFILE_D = Path("/etc/profile.d")
RENV_URL = "https://raw.githubusercontent.com/fnichol/renv/master/renv.sh"
CHRUBY_SCRIPT = Path("/usr/local/share/chruby/chruby.sh")
CHRUBY_REPO = "https://github.com/postmodern/chruby.git"
RUBY_INSTALL_BIN = Path("/usr/local/bin/ruby-install")
RUBY_INSTALL_REPO = "https://github.com/postmodern/ruby-install.git"
RUSTUP_URL = "https://sh.rustup.rs"
NVM_RELEASES_URL = "https://api.github.com/repos/nvm-sh/nvm/releases/latest"
NVM_INSTALL_URL = "https://raw.githubusercontent.com/nvm-sh/nvm/{version}/install.sh"
HOMEBREW_INSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
HOMEBREW_BINARIES = (Path("/opt/homebrew/bin/brew"), Path("/usr/local/bin/brew"))
XCODE_CLT_PLACEHOLDER = Path("/tmp/.com.apple.dt.CommandLineTools.installondemand.in-progress")
SMB_PREFERENCES = "/Library/Preferences/SystemConfiguration/com.apple.smb.server"


def _always(_context: RunContext) -> bool:
    return True


def _has_target_hostname(context: RunContext) -> bool:
    return context.target_hostname is not None


def _workstation_only(context: RunContext) -> bool:
    return not context.base_only


@dataclass(frozen=True)
class Phase:
    name: str
    title: str
    method: str
    exit_code: int
    applies: Callable[[RunContext], bool] = _always

    def render_title(self, context: RunContext) -> str:
        return self.title.format(hostname=context.display_hostname, target=context.target_hostname)


PHASES = (
    Phase("init", "Setting up workstation '{hostname}'", "init", 11),
    Phase("set-hostname", "Setting hostname to '{target}'", "set_hostname", 12, _has_target_hostname),
    Phase("setup-package-system", "Setting up package system", "setup_package_system", 13),
    Phase("update-system", "Applying system updates", "update_system", 14),
    Phase("install-base-packages", "Installing base packages", "install_base_packages", 15),
    Phase("install-bashrc", "Installing system-wide bashrc", "install_bashrc", 16),
    Phase(
        "install-workstation-packages",
        "Installing workstation packages",
        "install_workstation_packages",
        17,
        _workstation_only,
    ),
    Phase("install-rust", "Setting up Rust", "install_rust", 18, _workstation_only),
    Phase("install-ruby", "Setting up Ruby", "install_ruby", 19, _workstation_only),
    Phase("install-node", "Setting up Node", "install_node", 20, _workstation_only),
    Phase("set-preferences", "Setting preferences", "set_preferences", 21, _workstation_only),
    Phase("install-dot-configs", "Installing dot configs", "install_dot_configs", 22, _workstation_only),
)


class Provisioner:
    """Runs the fixed provisioning pipeline against one ``RunContext``."""

    def __init__(
        self,
        context: RunContext,
        runner: Optional[CommandRunner] = None,
        privilege: Optional[PrivilegeSession] = None,
        external: Optional[ExternalInstaller] = None,
        package_driver: Optional[PackageManagerDriver] = None,
        preferences: Optional[PreferenceWriter] = None,
        dotfiles_factory: Optional[Callable[[Path], DotfileManager]] = None,
    ):
        self.context = context
        self.runner = runner or CommandRunner(logger=logger)
        self.privilege = privilege or PrivilegeSession(
            self.runner,
            logger,
            interval=context.keepalive_interval,
        )
        self.external = external or ExternalInstaller(
            self.runner,
            logger,
            console,
            requests_module=requests,
        )
        self.package_driver = package_driver or driver_for(context.profile, self.runner)
        self.preferences = preferences or PreferenceWriter(self.runner, logger)
        self.dotfiles_factory = dotfiles_factory or (
            lambda homedir: DotfileManager(self.runner, logger, console, homedir)
        )
        self.current_phase: Optional[Phase] = None
        self.ran_phases: List[str] = []

    def run(self) -> int:
        exit_code = EXIT_UNEXPECTED

        try:
            logger.debug(
                "Starting wsprep (system=%s, profile=%s)",
                self.context.system.value,
                self.context.profile.value,
            )
            for phase in PHASES:
                if not phase.applies(self.context):
                    logger.debug("Skipping phase %s", phase.name)
                    continue
                self._run_phase(phase)

            console.print("[bold green]Workstation setup complete.[/bold green]")
            exit_code = EXIT_OK

        except KeyboardInterrupt:
            self._report("Operation cancelled by user.")
            exit_code = EXIT_INTERRUPTED
        except ExternalToolError as exc:
            self._report(str(exc))
            exit_code = self.current_phase.exit_code if self.current_phase else exc.exit_code
        except PrepError as exc:
            self._report(str(exc))
            exit_code = exc.exit_code
        except Exception as exc:
            logger.exception("Unexpected error")
            self._report(f"Unexpected error: {exc}")
            exit_code = EXIT_UNEXPECTED
        finally:
            self.privilege.release()

        return exit_code

    def _run_phase(self, phase: Phase):
        self.current_phase = phase
        console.print(f"[bold blue]--> {escape(phase.render_title(self.context))}[/bold blue]")

        try:
            getattr(self, phase.method)()
        except UnsupportedPlatformError as exc:
            logger.warning(str(exc))

        self.ran_phases.append(phase.name)
        self.current_phase = None

    def _report(self, message: str):
        where = f" (phase {self.current_phase.name})" if self.current_phase else ""
        logger.debug("Run aborted%s: %s", where, message)
        err_console.print(f"\n[bold red]ERROR:[/bold red] [bold]{escape(message)}[/bold]\n")

    def _dispatch(self, action: str, handlers: Mapping, key=None):
        key = self.context.profile if key is None else key
        handler = handlers.get(key)
        if handler is None:
            raise UnsupportedPlatformError(f"{action} on {key.value} not yet supported, skipping")
        handler()

    def _installer(self, driver: PackageManagerDriver) -> ManifestInstaller:
        return ManifestInstaller(driver, logger, console)

    def _read_optional(self, cmd: List[str]) -> Optional[str]:
        result = self.runner.run(cmd, check=False, capture_output=True)
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip()

    def _info(self, message: str):
        console.print(f"  [cyan]{escape(message)}[/cyan]")

    # Phases

    def init(self):
        self.privilege.ensure_not_root()
        self.privilege.acquire()
        self.privilege.keep_alive()

        if self.context.system is System.DARWIN:
            # Close System Preferences so it cannot override settings written later.
            self.runner.run(["osascript", "-e", 'tell application "System Preferences" to quit'])

    def set_hostname(self):
        self._dispatch("Setting hostname", {Profile.DARWIN: self._set_darwin_hostname})

    def _set_darwin_hostname(self):
        name = self.context.target_hostname
        self.runner.need_cmd("scutil")

        for key in ("ComputerName", "LocalHostName"):
            ensure_state(
                partial(self._read_optional, ["scutil", "--get", key]),
                name,
                lambda value, key=key: self.runner.sudo(["scutil", "--set", key, value]),
                label=key,
            )
        ensure_state(
            partial(self._read_optional, ["defaults", "read", SMB_PREFERENCES, "NetBIOSName"]),
            name,
            lambda value: self.runner.sudo(
                ["defaults", "write", SMB_PREFERENCES, "NetBIOSName", "-string", value]
            ),
            label="NetBIOSName",
        )

    def setup_package_system(self):
        self._dispatch(
            "Setting up package system",
            {
                Profile.DARWIN: self._setup_homebrew,
                Profile.UBUNTU: self._refresh_package_index,
                Profile.ARCH: self._refresh_package_index,
            },
        )

    def _setup_homebrew(self):
        ensure_exists(
            "xcode-select",
            self._install_xcode_cli_tools,
            check=lambda _: self.runner.succeeds(["xcode-select", "-p"]),
        )
        ensure_exists("brew", self._install_homebrew, check=lambda _: self._brew_binary() is not None)
        self._put_brew_on_path()
        self._refresh_package_index()

    def _install_xcode_cli_tools(self):
        self._info("Installing Xcode command line tools")
        # softwareupdate only offers the tools while this placeholder exists.
        XCODE_CLT_PLACEHOLDER.touch()
        try:
            listing = self.runner.output(["softwareupdate", "--list"])
            labels = [
                line.split("Label:", 1)[1].strip()
                for line in listing.splitlines()
                if "Label: Command Line Tools" in line
            ]
            if not labels:
                raise ExternalToolError("softwareupdate does not offer the Xcode command line tools.")
            self.runner.sudo(["softwareupdate", "--install", labels[-1]])
        finally:
            if XCODE_CLT_PLACEHOLDER.exists():
                XCODE_CLT_PLACEHOLDER.unlink()

    def _install_homebrew(self):
        self._info("Installing Homebrew")
        self.external.run_script(HOMEBREW_INSTALL_URL, interpreter=("bash",), env={"NONINTERACTIVE": "1"})

    def _brew_binary(self) -> Optional[Path]:
        found = shutil.which("brew")
        if found:
            return Path(found)
        for candidate in HOMEBREW_BINARIES:
            if candidate.exists():
                return candidate
        return None

    def _put_brew_on_path(self):
        brew = self._brew_binary()
        if brew is None or shutil.which("brew"):
            return
        os.environ["PATH"] = os.pathsep.join([str(brew.parent), os.environ.get("PATH", "")])

    def _refresh_package_index(self):
        self.package_driver.update()

    def update_system(self):
        self._dispatch(
            "Applying system updates",
            {
                Profile.DARWIN: self._update_darwin,
                Profile.UBUNTU: self._nothing_to_do,
                Profile.ARCH: self._upgrade_packages,
            },
        )

    def _update_darwin(self):
        self.runner.run(["softwareupdate", "--install", "--all"])
        self._upgrade_packages()

    def _upgrade_packages(self):
        self.package_driver.upgrade_all()

    def install_base_packages(self):
        self._dispatch(
            "Installing packages",
            {profile: partial(self._install_profile_manifest, "base") for profile in DRIVERS},
        )

    def _install_profile_manifest(self, kind: str):
        path = self.context.data_file(f"{self.context.profile.data_prefix}_{kind}_pkgs.json")
        ensure_manifest_installed(self._installer(self.package_driver), path)

    def install_bashrc(self):
        ensure_exists(BASHRC_MARKER, self._install_bashrc)

    def _install_bashrc(self):
        self.runner.need_cmd("bash")
        self._info("Installing fnichol/bashrc")
        with tempfile.TemporaryDirectory(prefix="wsprep-") as tmp_dir:
            script = os.path.join(tmp_dir, "install.sh")
            self.external.download(BASHRC_INSTALLER_URL, script, "Downloading bashrc installer...")
            self.runner.sudo(["bash", script])

    def install_workstation_packages(self):
        handlers: Dict[Profile, Callable[[], None]] = {
            Profile.DARWIN: self._install_darwin_workstation,
            Profile.UBUNTU: partial(self._install_profile_manifest, "workstation"),
            Profile.ARCH: partial(self._install_profile_manifest, "workstation"),
        }
        self._dispatch("Installing packages", handlers)

    def _install_darwin_workstation(self):
        ensure_manifest_installed(
            self._installer(HomebrewTapDriver(self.runner)),
            self.context.data_file("darwin_taps.json"),
        )
        ensure_manifest_installed(
            self._installer(HomebrewCaskDriver(self.runner)),
            self.context.data_file("darwin_cask_pkgs.json"),
        )

        self._installer(self.package_driver).install_one("mas")
        mas = MasDriver(self.runner)
        credential = self.context.app_store_credential
        if credential is not None:
            ensure_state(
                partial(self._read_optional, ["mas", "account"]),
                credential.email,
                lambda _email: mas.sign_in(credential),
                label="App Store account",
            )
        ensure_manifest_installed(self._installer(mas), self.context.data_file("darwin_apps.json"))

        self._install_profile_manifest("workstation")

        for app in ("Dock", "Finder"):
            self.runner.run(["killall", app], check=False)

    def install_rust(self):
        cargo_bin = self.context.home / ".cargo" / "bin"
        rustc = cargo_bin / "rustc"
        rustup = cargo_bin / "rustup"

        def install():
            self._info("Installing Rust")
            self.external.run_script(RUSTUP_URL, args=("-y", "--default-toolchain", "stable"))
            self.runner.run([str(rustc), "--version"])
            self.runner.run([str(cargo_bin / "cargo"), "--version"])

        ensure_exists(rustc, install, check=is_executable)
        ensure_state(
            partial(self._has_rustfmt, rustup),
            True,
            lambda _: self.runner.run([str(rustup), "component", "add", "rustfmt"]),
            label="rustfmt component",
        )

    def _has_rustfmt(self, rustup: Path) -> bool:
        components = self.runner.output([str(rustup), "component", "list", "--installed"])
        return any(line.startswith("rustfmt") for line in components.splitlines())

    def install_ruby(self):
        self._dispatch(
            "Installing Ruby",
            {
                System.DARWIN: self._install_darwin_ruby_tools,
                System.LINUX: self._install_linux_ruby_tools,
            },
            key=self.context.system,
        )

        ensure_exists(self.context.home / ".rubies", self._build_ruby, check=has_entries)

        self.runner.sudo(["mkdir", "-p", str(PROFILE_D)])
        ensure_exists(PROFILE_D / "chruby.sh", self._install_chruby_profile)
        ensure_exists(PROFILE_D / "renv.sh", self._install_renv_profile)

    def _install_darwin_ruby_tools(self):
        installer = self._installer(self.package_driver)
        installer.install_one("chruby")
        installer.install_one("ruby-install")

    def _install_linux_ruby_tools(self):
        ensure_exists(CHRUBY_SCRIPT, partial(self._install_from_source, "chruby", CHRUBY_REPO))
        ensure_exists(RUBY_INSTALL_BIN, partial(self._install_from_source, "ruby-install", RUBY_INSTALL_REPO))

    def _install_from_source(self, name: str, repo: str):
        self.runner.need_cmd("git")
        self.runner.need_cmd("make")
        self._info(f"Installing {name}")
        with tempfile.TemporaryDirectory(prefix=f"wsprep-{name}-") as tmp_dir:
            self.runner.run(["git", "clone", "--depth", "1", repo, tmp_dir])
            self.runner.sudo(["make", "install"], cwd=tmp_dir)

    def _build_ruby(self):
        self._info("Building current stable version of Ruby")
        self.runner.run(["ruby-install", "ruby"])

    def _install_chruby_profile(self):
        target = PROFILE_D / "chruby.sh"
        self._info(f"Creating {target}")
        self.runner.sudo(["install", "-m", "0644", str(self.context.lib_path / "chruby.sh"), str(target)])

    def _install_renv_profile(self):
        target = PROFILE_D / "renv.sh"
        self._info(f"Creating {target}")
        with tempfile.TemporaryDirectory(prefix="wsprep-") as tmp_dir:
            script = os.path.join(tmp_dir, "renv.sh")
            self.external.download(RENV_URL, script, "Downloading renv...")
            self.runner.sudo(["install", "-m", "0644", script, str(target)])

    def install_node(self):
        nvm_dir = self.context.home / ".nvm"
        ensure_exists(nvm_dir / "nvm.sh", self._install_nvm)
        ensure_exists(
            nvm_dir / "versions" / "node",
            partial(self._install_node_lts, nvm_dir),
            check=has_entries,
        )

    def _install_nvm(self):
        self.runner.need_cmd("bash")
        self._info("Installing nvm")

        release = self.external.fetch_json(NVM_RELEASES_URL)
        version = release.get("tag_name") if isinstance(release, dict) else None
        if not version:
            raise ExternalToolError(f"Could not determine the latest nvm release from {NVM_RELEASES_URL}")

        bash_profile = self.context.home / ".bash_profile"
        bash_profile.touch()
        self.external.run_script(
            NVM_INSTALL_URL.format(version=version),
            interpreter=("bash",),
            env={"PROFILE": str(bash_profile)},
        )

    def _install_node_lts(self, nvm_dir: Path):
        self._info("Installing current stable version of Node")
        self.runner.run(
            ["bash", "-c", '. "$NVM_DIR/nvm.sh" && nvm install --lts'],
            env={"NVM_DIR": str(nvm_dir)},
        )

    def set_preferences(self):
        self._dispatch(
            "Setting preferences",
            {
                Profile.DARWIN: partial(
                    self.preferences.apply_file,
                    self.context.data_file("darwin_prefs.json"),
                ),
                Profile.UBUNTU: self._nothing_to_do,
            },
        )

    def _nothing_to_do(self):
        logger.debug("Nothing to do on %s", self.context.profile.value)

    def install_dot_configs(self):
        self.runner.need_cmd("git")
        self.runner.need_cmd("bash")

        user = self.context.user
        homedir = homedir_for(user)
        if homedir is None:
            raise PreconditionError(actionable_error("unknown_home", user=user), exit_code=EXIT_UNKNOWN_HOME)

        dotfiles = self.dotfiles_factory(homedir)
        dotfiles.install_homeshick()
        for repo in self.context.dotfile_repos:
            dotfiles.clone_repo(repo)
        dotfiles.link_all()

"""Platform package manager drivers."""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Type

from wsprep.models import AppStoreCredential, Profile


class PackageManagerDriver(ABC):
    """Installs single package units through one platform package command."""

    name = ""

    def __init__(self, runner):
        self.runner = runner

    @abstractmethod
    def update(self):
        """Refresh the package index."""

    @abstractmethod
    def upgrade_all(self):
        """Upgrade every installed unit."""

    @abstractmethod
    def install_unit(self, name: str):
        ...

    @abstractmethod
    def is_unit_installed(self, name: str) -> bool:
        ...


class HomebrewDriver(PackageManagerDriver):
    name = "homebrew"

    def update(self):
        self.runner.run(["brew", "update"])

    def upgrade_all(self):
        self.runner.run(["brew", "upgrade"])

    def install_unit(self, name: str):
        self.runner.run(["brew", "install", name])

    def is_unit_installed(self, name: str) -> bool:
        return self.runner.succeeds(["brew", "list", "--formula", "--versions", name])


class HomebrewCaskDriver(HomebrewDriver):
    name = "homebrew-cask"

    def install_unit(self, name: str):
        self.runner.run(["brew", "install", "--cask", name])

    def is_unit_installed(self, name: str) -> bool:
        return self.runner.succeeds(["brew", "list", "--cask", "--versions", name])


class HomebrewTapDriver(HomebrewDriver):
    name = "homebrew-tap"

    def install_unit(self, name: str):
        self.runner.run(["brew", "tap", name])

    def is_unit_installed(self, name: str) -> bool:
        taps = self.runner.output(["brew", "tap"]).splitlines()
        return name in (tap.strip() for tap in taps)


class MasDriver(PackageManagerDriver):
    """Mac App Store apps, addressed by their numeric app id."""

    name = "mas"

    def update(self):
        # The App Store has no separate index refresh.
        return None

    def upgrade_all(self):
        self.runner.run(["mas", "upgrade"])

    def install_unit(self, name: str):
        self.runner.run(["mas", "install", name])

    def is_unit_installed(self, name: str) -> bool:
        listing = self.runner.output(["mas", "list"])
        return any(line.split()[:1] == [name] for line in listing.splitlines())

    def sign_in(self, credential: AppStoreCredential):
        self.runner.run(
            ["mas", "signin", credential.email, credential.password],
            display=f"mas signin {credential.email} ********",
        )


class AptDriver(PackageManagerDriver):
    name = "apt"

    ENV = {"DEBIAN_FRONTEND": "noninteractive"}

    def update(self):
        self.runner.sudo(["apt-get", "update"])

    def upgrade_all(self):
        self.runner.sudo(["apt-get", "-y", "upgrade"], env=self.ENV)

    def install_unit(self, name: str):
        self.runner.sudo(["apt-get", "install", "-y", name], env=self.ENV)

    def is_unit_installed(self, name: str) -> bool:
        result = self.runner.run(
            ["dpkg-query", "-W", "-f=${Status}", name],
            check=False,
            capture_output=True,
        )
        return result.returncode == 0 and "install ok installed" in (result.stdout or "")


class PacmanDriver(PackageManagerDriver):
    name = "pacman"

    def update(self):
        self.runner.sudo(["pacman", "-Syy", "--noconfirm"])

    def upgrade_all(self):
        self.runner.sudo(["pacman", "-Su", "--noconfirm"])

    def install_unit(self, name: str):
        self.runner.sudo(["pacman", "-S", "--noconfirm", "--needed", name])

    def is_unit_installed(self, name: str) -> bool:
        # Package groups such as base-devel are only visible to -Qg.
        return self.runner.succeeds(["pacman", "-Qi", name]) or self.runner.succeeds(
            ["pacman", "-Qg", name]
        )


DRIVERS: Dict[Profile, Type[PackageManagerDriver]] = {
    Profile.DARWIN: HomebrewDriver,
    Profile.UBUNTU: AptDriver,
    Profile.ARCH: PacmanDriver,
}


def driver_for(profile: Profile, runner) -> Optional[PackageManagerDriver]:
    driver_cls = DRIVERS.get(profile)
    if driver_cls is None:
        return None
    return driver_cls(runner)

"""Host operating system and distribution detection."""

import platform
import socket
from pathlib import Path
from typing import Callable, Optional

from wsprep.models import PlatformInfo, Profile, System

LSB_RELEASE = "etc/lsb-release"
ARCH_RELEASE = "etc/arch-release"

DISTRIBUTION_PROFILES = {
    "Ubuntu": Profile.UBUNTU,
    "Arch": Profile.ARCH,
}


class PlatformProfileResolver:
    """Maps the running host onto one of the supported installation profiles.

    Resolution never fails: hosts that match no known profile resolve to
    ``Profile.UNKNOWN`` and each phase decides how to degrade.
    """

    def __init__(
        self,
        logger,
        root: str = "/",
        uname: Callable[[], str] = platform.system,
        gethostname: Callable[[], str] = socket.gethostname,
    ):
        self.logger = logger
        self.root = Path(root)
        self.uname = uname
        self.gethostname = gethostname

    def resolve(self) -> PlatformInfo:
        system = self.resolve_system()
        if system is System.DARWIN:
            profile = Profile.DARWIN
        elif system is System.LINUX:
            profile = self._linux_profile()
        else:
            profile = Profile.UNKNOWN

        info = PlatformInfo(system=system, profile=profile, hostname=self._hostname())
        self.logger.debug("Resolved platform: %s", info)
        return info

    def resolve_system(self) -> System:
        name = self.uname()
        for system in (System.DARWIN, System.LINUX):
            if name == system.value:
                return system
        return System.OTHER

    def _linux_profile(self) -> Profile:
        lsb_release = self.root / LSB_RELEASE
        if lsb_release.is_file():
            distrib_id = self._read_distrib_id(lsb_release)
            return DISTRIBUTION_PROFILES.get(distrib_id or "", Profile.UNKNOWN)
        if (self.root / ARCH_RELEASE).exists():
            return Profile.ARCH
        return Profile.UNKNOWN

    def _read_distrib_id(self, path: Path) -> Optional[str]:
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            self.logger.debug("Could not read %s: %s", path, exc)
            return None

        for line in content.splitlines():
            key, sep, value = line.partition("=")
            if sep and key.strip() == "DISTRIB_ID":
                return value.strip().strip("\"'")
        return None

    def _hostname(self) -> str:
        try:
            return self.gethostname() or "localhost"
        except OSError:
            return "localhost"

"""Shared domain models for wsprep."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from wsprep.errors import UsageError


class System(Enum):
    DARWIN = "Darwin"
    LINUX = "Linux"
    OTHER = "Other"


class Profile(Enum):
    DARWIN = "Darwin"
    UBUNTU = "Ubuntu"
    ARCH = "Arch"
    UNKNOWN = "Unknown"

    @property
    def data_prefix(self) -> str:
        return self.value.lower()


@dataclass(frozen=True)
class PlatformInfo:
    system: System
    profile: Profile
    hostname: str


@dataclass(frozen=True)
class AppStoreCredential:
    email: str
    password: str = field(repr=False)

    @classmethod
    def parse(cls, value: str) -> "AppStoreCredential":
        email, sep, password = value.partition(":")
        if not sep or not email or not password:
            raise UsageError("App Store credentials must be of the form <email>:<password>.")
        return cls(email=email, password=password)


@dataclass(frozen=True)
class RunContext:
    """Process-wide provisioning state, built once before any phase runs."""

    system: System
    profile: Profile
    hostname: str
    target_hostname: Optional[str]
    data_path: Path
    lib_path: Path
    home: Path
    user: str
    app_store_credential: Optional[AppStoreCredential] = None
    base_only: bool = False
    dotfile_repos: Tuple[str, ...] = ()
    keepalive_interval: float = 60.0

    @property
    def display_hostname(self) -> str:
        return self.target_hostname or self.hostname

    def data_file(self, name: str) -> Path:
        return self.data_path / name

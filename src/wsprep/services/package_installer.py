"""Declarative package manifest loading and installation."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from wsprep.errors import ExternalToolError, ManifestError
from wsprep.errors_catalog import actionable_error


@dataclass(frozen=True)
class PackageUnit:
    identifier: str
    name: str


def _parse_entry(entry, path: Path) -> PackageUnit:
    if isinstance(entry, str) and entry.strip():
        return PackageUnit(identifier=entry.strip(), name=entry.strip())

    if isinstance(entry, dict) and isinstance(entry.get("name"), str) and entry["name"].strip():
        name = entry["name"].strip()
        identifier = entry.get("id", name)
        if isinstance(identifier, bool) or not isinstance(identifier, (str, int)):
            raise ManifestError(
                actionable_error("invalid_manifest", path=str(path), reason=f"bad id for '{name}'")
            )
        return PackageUnit(identifier=str(identifier).strip(), name=name)

    raise ManifestError(
        actionable_error("invalid_manifest", path=str(path), reason=f"unsupported entry {entry!r}")
    )


def load_manifest(path: Union[str, Path]) -> List[PackageUnit]:
    """Read a manifest: a JSON array of names or ``{"name": ..., "id": ...}`` objects."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ManifestError(actionable_error("invalid_manifest", path=str(path), reason=str(exc))) from exc

    if not isinstance(data, list):
        raise ManifestError(
            actionable_error("invalid_manifest", path=str(path), reason="root must be an array")
        )

    units = [_parse_entry(entry, path) for entry in data]
    seen = set()
    for unit in units:
        if unit.identifier in seen:
            raise ManifestError(
                actionable_error(
                    "invalid_manifest", path=str(path), reason=f"duplicate entry '{unit.identifier}'"
                )
            )
        seen.add(unit.identifier)
    return units


class ManifestInstaller:
    """Installs manifest units one by one, skipping those already present."""

    def __init__(self, driver, logger, console):
        self.driver = driver
        self.logger = logger
        self.console = console

    def install_one(self, identifier: str, name: Optional[str] = None) -> bool:
        label = name or identifier
        if self.driver.is_unit_installed(identifier):
            self.logger.debug("%s already installed via %s", label, self.driver.name)
            return False

        self.console.print(f"  [cyan]Installing {label}[/cyan]")
        try:
            self.driver.install_unit(identifier)
        except ExternalToolError as exc:
            raise ExternalToolError(
                f"{actionable_error('package_install_failed', package=label)}\n{exc}",
                command=exc.command,
            ) from exc
        return True

    def install_manifest(self, path: Union[str, Path]) -> List[str]:
        units = load_manifest(path)
        self.logger.info("Installing %d package(s) from %s", len(units), Path(path).name)

        installed = []
        for unit in units:
            if self.install_one(unit.identifier, unit.name):
                installed.append(unit.identifier)
        return installed

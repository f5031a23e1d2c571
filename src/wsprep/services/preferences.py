"""macOS preferences through the ``defaults`` tool."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from wsprep.errors import ManifestError
from wsprep.errors_catalog import actionable_error
from wsprep.guards import ensure_state

VALUE_TYPES = {"bool", "int", "float", "string"}


def _normalize(value_type: str, value: Any) -> str:
    # `defaults read` prints booleans as 1/0.
    if value_type == "bool":
        return "1" if value else "0"
    return str(value)


def _write_value(value_type: str, value: Any) -> str:
    if value_type == "bool":
        return "true" if value else "false"
    return str(value)


class PreferenceWriter:
    """Applies preference entries of the form
    ``{"domain": ..., "key": ..., "type": ..., "value": ..., "sudo": false}``.
    """

    def __init__(self, runner, logger):
        self.runner = runner
        self.logger = logger

    def load(self, path: Union[str, Path]) -> List[Dict[str, Any]]:
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ManifestError(actionable_error("invalid_manifest", path=str(path), reason=str(exc))) from exc

        if not isinstance(data, list):
            raise ManifestError(
                actionable_error("invalid_manifest", path=str(path), reason="root must be an array")
            )
        for pref in data:
            if (
                not isinstance(pref, dict)
                or not {"domain", "key", "value"} <= set(pref)
                or pref.get("type", "string") not in VALUE_TYPES
            ):
                raise ManifestError(
                    actionable_error("invalid_manifest", path=str(path), reason=f"bad preference {pref!r}")
                )
        return data

    def apply_file(self, path: Union[str, Path]) -> int:
        changed = 0
        for pref in self.load(path):
            if self.apply(pref):
                changed += 1
        self.logger.info("Updated %d preference(s) from %s", changed, Path(path).name)
        return changed

    def apply(self, pref: Dict[str, Any]) -> bool:
        domain, key = pref["domain"], pref["key"]
        value_type = pref.get("type", "string")
        use_sudo = bool(pref.get("sudo", False))

        def write(_desired):
            cmd = ["defaults", "write", domain, key, f"-{value_type}", _write_value(value_type, pref["value"])]
            if use_sudo:
                self.runner.sudo(cmd)
            else:
                self.runner.run(cmd)

        return ensure_state(
            lambda: self.read(domain, key),
            _normalize(value_type, pref["value"]),
            write,
            label=f"{domain} {key}",
        )

    def read(self, domain: str, key: str) -> Optional[str]:
        result = self.runner.run(["defaults", "read", domain, key], check=False, capture_output=True)
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip()

"""Actionable error catalog for wsprep."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "app_store_login_required": {
        "what": "Not logged into the App Store.",
        "next": "Provide the `-a <email>:<password>` option or run with `-b` for a base-only setup.",
    },
    "running_as_root": {
        "what": "This program must be run as a non-root user.",
        "next": "Re-run as your regular user; sudo is requested when needed.",
    },
    "sudo_rejected": {
        "what": "Could not obtain sudo privileges.",
        "next": "Check that `{user}` is allowed to use sudo and that the password is correct.",
    },
    "command_not_found": {
        "what": "Required command not found: {command}",
        "next": "Install `{command}` and re-run.",
    },
    "unknown_home": {
        "what": "Failed to determine home dir for '{user}'.",
        "next": "Make sure the `USER` environment variable names an existing account.",
    },
    "package_install_failed": {
        "what": "Failed to install package '{package}'.",
        "next": "Check the package source for this platform, fix it, then re-run the whole command.",
    },
    "invalid_manifest": {
        "what": "Invalid manifest {path}: {reason}",
        "next": "Fix the manifest file; it must be a JSON array of unique package entries.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"

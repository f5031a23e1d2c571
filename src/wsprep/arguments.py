"""Run mode resolution and the pre-flight checks done before any phase."""

import getpass
import os
from pathlib import Path
from typing import Any, Dict, Optional

from wsprep.errors import EXIT_MISSING_CREDENTIAL, PreconditionError
from wsprep.errors_catalog import actionable_error
from wsprep.models import AppStoreCredential, PlatformInfo, RunContext, System

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_DATA_PATH = PACKAGE_DIR / "data"
DEFAULT_LIB_PATH = PACKAGE_DIR / "lib"
DEFAULT_DOTFILE_REPOS = ("fnichol/dotfiles", "fnichol/dotvim")
DEFAULT_KEEPALIVE_INTERVAL = 60.0

APP_STORE_PLIST = Path("Library") / "Preferences" / "com.apple.appstore.plist"


def build_run_context(
    platform: PlatformInfo,
    hostname: Optional[str] = None,
    base_only: bool = False,
    credential: Optional[AppStoreCredential] = None,
    config: Optional[Dict[str, Any]] = None,
    home: Optional[Path] = None,
    user: Optional[str] = None,
) -> RunContext:
    config = config or {}
    data_path = config.get("data_path")

    return RunContext(
        system=platform.system,
        profile=platform.profile,
        hostname=platform.hostname,
        target_hostname=hostname or None,
        data_path=Path(data_path).expanduser() if data_path else DEFAULT_DATA_PATH,
        lib_path=DEFAULT_LIB_PATH,
        home=home or Path(os.path.expanduser("~")),
        user=user or os.environ.get("USER") or getpass.getuser(),
        app_store_credential=credential,
        base_only=base_only,
        dotfile_repos=tuple(config.get("dotfile_repos") or DEFAULT_DOTFILE_REPOS),
        keepalive_interval=float(config.get("keepalive_interval", DEFAULT_KEEPALIVE_INTERVAL)),
    )


def has_app_store_session(context: RunContext) -> bool:
    return (context.home / APP_STORE_PLIST).is_file()


def check_app_store_precondition(context: RunContext):
    """Workstation runs on macOS install App Store apps, which needs a signed-in account.

    Checked up front so a missing credential never surfaces half way through
    a run that has already changed the machine.
    """
    if (
        context.system is System.DARWIN
        and not context.base_only
        and context.app_store_credential is None
        and not has_app_store_session(context)
    ):
        raise PreconditionError(
            actionable_error("app_store_login_required"),
            exit_code=EXIT_MISSING_CREDENTIAL,
        )

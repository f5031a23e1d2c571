"""Idempotency guards shared by the provisioning phases.

Every phase effect goes through one of three shapes:

``ensure_state``
    Compare the current value with the desired one and only write on a
    difference (hostname, preferences).
``ensure_exists``
    Perform a one-time creation only when the target is missing (installers,
    clones, marker files).
``ensure_manifest_installed``
    Delegate to the manifest installer, which checks each unit itself.
"""

import logging
import os
from pathlib import Path
from typing import Callable, List, TypeVar, Union

logger = logging.getLogger("wsprep")

T = TypeVar("T")
PathLike = Union[str, Path]


def ensure_state(
    current: Callable[[], T],
    desired: T,
    apply: Callable[[T], None],
    label: str = "state",
) -> bool:
    actual = current()
    if actual == desired:
        logger.debug("%s already set to %r", label, desired)
        return False

    logger.debug("Changing %s from %r to %r", label, actual, desired)
    apply(desired)
    return True


def ensure_exists(
    path: PathLike,
    create: Callable[[], None],
    check: Callable[[PathLike], bool] = os.path.exists,
) -> bool:
    if check(path):
        logger.debug("%s already present, skipping", path)
        return False

    create()
    return True


def has_entries(path: PathLike) -> bool:
    try:
        return any(Path(path).iterdir())
    except OSError:
        return False


def is_executable(path: PathLike) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def ensure_manifest_installed(installer, path: PathLike) -> List[str]:
    return installer.install_manifest(path)

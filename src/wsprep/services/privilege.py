"""Sudo session handling: escalate once, then keep the grant fresh."""

import getpass
import os
import threading
from typing import Callable, Optional

from wsprep.errors import (
    EXIT_RUNNING_AS_ROOT,
    ExternalToolError,
    PrepError,
    PreconditionError,
    PrivilegeError,
)
from wsprep.errors_catalog import actionable_error

RENEW_TIMEOUT = 30.0


class PrivilegeSession:
    """Holds a sudo grant for the lifetime of the process.

    The renewal loop runs in a daemon thread and never raises into the
    pipeline; if it stops working, later sudo calls simply prompt again.
    """

    def __init__(
        self,
        runner,
        logger,
        interval: float = 60.0,
        geteuid: Optional[Callable[[], int]] = None,
    ):
        self.runner = runner
        self.logger = logger
        self.interval = interval
        self.geteuid = geteuid or os.geteuid
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def ensure_not_root(self):
        if self.geteuid() == 0:
            raise PreconditionError(actionable_error("running_as_root"), exit_code=EXIT_RUNNING_AS_ROOT)

    def acquire(self):
        self.runner.need_cmd("sudo")
        try:
            self.runner.run(["sudo", "-v"])
        except ExternalToolError as exc:
            raise PrivilegeError(actionable_error("sudo_rejected", user=getpass.getuser())) from exc

    def keep_alive(self):
        if self.active:
            return

        self._stop.clear()
        self._thread = threading.Thread(
            target=self._renew_loop,
            name="wsprep-sudo-keepalive",
            daemon=True,
        )
        self._thread.start()

    def release(self):
        self._stop.set()

    def renew(self) -> bool:
        try:
            self.runner.run(["sudo", "-n", "true"], capture_output=True, timeout=RENEW_TIMEOUT)
        except PrepError as exc:
            self.logger.warning("Could not renew sudo session, later commands may prompt: %s", exc)
            return False
        return True

    def _renew_loop(self):
        while not self._stop.wait(self.interval):
            self.renew()

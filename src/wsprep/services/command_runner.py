"""Subprocess execution service for wsprep."""

import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional, Union

from wsprep.errors import ExternalToolError, MissingCommandError
from wsprep.errors_catalog import actionable_error


class CommandRunner:
    """Runs external commands with consistent error handling."""

    def __init__(self, logger):
        self.logger = logger

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        input_text: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Union[str, Path]] = None,
        display: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = display or " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        try:
            result = subprocess.run(
                cmd,
                text=True,
                input=input_text,
                capture_output=capture_output,
                timeout=timeout,
                env=dict(os.environ, **env) if env else None,
                cwd=cwd,
            )
        except FileNotFoundError as exc:
            raise MissingCommandError(actionable_error("command_not_found", command=cmd[0])) from exc
        except subprocess.TimeoutExpired as exc:
            raise ExternalToolError(
                f"Command timed out after {timeout}s: {cmd_str}", command=cmd
            ) from exc
        except OSError as exc:
            raise ExternalToolError(f"Failed to execute command: {cmd_str}. {exc}", command=cmd) from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0 or not check:
            return result

        stderr = (result.stderr or "").strip() if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"
        raise ExternalToolError(message, command=cmd)

    def sudo(
        self,
        cmd: List[str],
        env: Optional[Mapping[str, str]] = None,
        **kwargs,
    ) -> subprocess.CompletedProcess:
        # sudo resets the environment, so variables travel as `env K=V` arguments.
        prefix = ["sudo"]
        if env:
            prefix += ["env", *(f"{key}={value}" for key, value in env.items())]
        return self.run([*prefix, *cmd], **kwargs)

    def output(self, cmd: List[str], **kwargs) -> str:
        return self.run(cmd, capture_output=True, **kwargs).stdout.strip()

    def succeeds(self, cmd: List[str]) -> bool:
        return self.run(cmd, check=False, capture_output=True).returncode == 0

    def need_cmd(self, name: str) -> str:
        path = shutil.which(name)
        if path is None:
            raise MissingCommandError(actionable_error("command_not_found", command=name))
        return path

"""Downloads and third-party install scripts (rustup, nvm, bashrc, ...)."""

import os
from typing import Any, Mapping, Optional, Sequence

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from wsprep.errors import ExternalToolError


class ExternalInstaller:
    """Fetches remote resources and runs installer scripts as subprocesses.

    Script output is never parsed: a non-zero exit from the interpreter is
    raised as ``ExternalToolError`` by the command runner.
    """

    def __init__(self, runner, logger, console, requests_module, timeout: float = 60.0):
        self.runner = runner
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.timeout = timeout

    def fetch_text(self, url: str) -> str:
        self.logger.debug("Fetching %s", url)
        try:
            response = self.requests.get(url, timeout=self.timeout)
            response.raise_for_status()
        except self.requests.RequestException as exc:
            raise ExternalToolError(f"Download failed for {url}: {exc}") from exc
        return response.text

    def fetch_json(self, url: str) -> Any:
        self.logger.debug("Fetching %s", url)
        try:
            response = self.requests.get(
                url,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            return response.json()
        except self.requests.RequestException as exc:
            raise ExternalToolError(f"Download failed for {url}: {exc}") from exc
        except ValueError as exc:
            raise ExternalToolError(f"Invalid JSON returned by {url}: {exc}") from exc

    def download(self, url: str, dest_path: str, description: str = "Downloading..."):
        self.logger.info("Downloading %s to %s", url, dest_path)

        try:
            with self.requests.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                total_size = int(response.headers.get("Content-Length", 0))

                os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)

                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TaskProgressColumn(),
                    TimeElapsedColumn(),
                    console=self.console,
                    transient=True,
                ) as progress:
                    task = progress.add_task(f"[cyan]{description}", total=total_size or None)
                    with open(dest_path, "wb") as file_obj:
                        for chunk in response.iter_content(chunk_size=8192):
                            if not chunk:
                                continue
                            file_obj.write(chunk)
                            progress.update(task, advance=len(chunk))
        except self.requests.RequestException as exc:
            raise ExternalToolError(f"Download failed for {description}: {exc}") from exc

    def run_script(
        self,
        url: str,
        interpreter: Sequence[str] = ("sh", "-s", "--"),
        args: Sequence[str] = (),
        env: Optional[Mapping[str, str]] = None,
    ):
        """Pipe the script at ``url`` into ``interpreter``, like ``curl | sh``."""
        script = self.fetch_text(url)
        cmd = [*interpreter, *args]
        self.runner.need_cmd(cmd[0])
        self.runner.run(
            cmd,
            input_text=script,
            env=env,
            display=f"{url} | {' '.join(cmd)}",
        )

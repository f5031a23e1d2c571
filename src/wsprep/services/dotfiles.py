"""homeshick-based dotfile installation."""

import pwd
from pathlib import Path
from typing import Optional

from wsprep.guards import ensure_exists

HOMESHICK_URL = "https://github.com/andsens/homeshick.git"


def homedir_for(user: str) -> Optional[Path]:
    if not user:
        return None
    try:
        return Path(pwd.getpwnam(user).pw_dir)
    except KeyError:
        return None


class DotfileManager:
    """Clones dotfile castles with homeshick and links them into ``homedir``."""

    def __init__(self, runner, logger, console, homedir: Path, homeshick_url: str = HOMESHICK_URL):
        self.runner = runner
        self.logger = logger
        self.console = console
        self.homedir = homedir
        self.homeshick_url = homeshick_url

    @property
    def repos_dir(self) -> Path:
        return self.homedir / ".homesick" / "repos"

    @property
    def homeshick_script(self) -> Path:
        return self.repos_dir / "homeshick" / "homeshick.sh"

    def castle_dir(self, repo: str) -> Path:
        return self.repos_dir / repo.rstrip("/").split("/")[-1]

    def install_homeshick(self) -> bool:
        def clone():
            self.console.print(f"  [cyan]Installing homeshick for '{self.homedir.name}'[/cyan]")
            self.runner.run(
                ["git", "clone", "--depth", "1", self.homeshick_url, str(self.homeshick_script.parent)]
            )

        return ensure_exists(self.homeshick_script, clone)

    def clone_repo(self, repo: str, dest: Optional[Path] = None) -> bool:
        target = dest or self.castle_dir(repo)

        def clone():
            self.console.print(f"  [cyan]Installing repo {repo}[/cyan]")
            self._homeshick("--batch", "clone", repo)

        return ensure_exists(target, clone)

    def link_all(self):
        self.logger.info("Updating dotfile configuration links in %s", self.homedir)
        self._homeshick("--force", "link")

    def _homeshick(self, *args: str):
        # homeshick is a shell function, so it has to be sourced first.
        self.runner.run(
            [
                "bash",
                "-c",
                'source "$1" && shift && homeshick "$@"',
                "homeshick",
                str(self.homeshick_script),
                *args,
            ],
            env={"HOME": str(self.homedir)},
            display=f"homeshick {' '.join(args)}",
        )

import logging
import os
from pathlib import Path

import click
from rich.logging import RichHandler

from . import __version__
from .arguments import build_run_context, check_app_store_precondition
from .core import Provisioner
from .errors import EXIT_UNEXPECTED, EXIT_USAGE, PrepError, PreconditionError
from .models import AppStoreCredential
from .services.config_loader import ConfigLoader
from .services.platform_profile import PlatformProfileResolver

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


def _click_error(exc: PrepError) -> click.ClickException:
    error = click.ClickException(str(exc))
    error.exit_code = exc.exit_code
    return error


def _parse_credential(ctx, param, value):
    if value is None:
        return None
    try:
        return AppStoreCredential.parse(value)
    except PrepError as exc:
        raise click.BadParameter(str(exc), ctx=ctx, param=param) from exc


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


class PrepCommand(click.Command):
    """Reports invocation errors with exit code 1 instead of click's default 2."""

    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as exc:
            exc.exit_code = EXIT_USAGE
            raise


@click.command(cls=PrepCommand, context_settings=CONTEXT_SETTINGS)
@click.option(
    "-b",
    "--base-only",
    is_flag=True,
    default=None,
    help="Only sets up base system (not extra workstation setup)",
)
@click.option(
    "-a",
    "--app-store",
    "app_store_credential",
    metavar="<email>:<password>",
    callback=_parse_credential,
    help="macOS App Store credentials of the form <email>:<password>",
)
@click.option(
    "-c",
    "--config",
    required=False,
    type=click.Path(),
    help="Path to a YAML configuration file. Defaults to ~/.wsprep.yml if present.",
)
@click.option("-v", "--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.version_option(__version__, "-V", "--version", prog_name="wsprep")
@click.argument("hostname", required=False)
@click.pass_context
def main(ctx, base_only, app_store_credential, config, verbose, log_file, hostname):
    """Workstation Setup.

    Provisions this machine as a workstation. HOSTNAME is the name for this
    workstation.
    """
    logger = logging.getLogger("wsprep")
    home = Path(os.path.expanduser("~"))

    try:
        config_loader = ConfigLoader()
        config_values = config_loader.load(config or config_loader.default_path(home))
    except PrepError as exc:
        raise _click_error(exc) from exc

    try:
        hostname = _resolve_option(hostname, config_values, "hostname")
        base_only = bool(_resolve_option(base_only, config_values, "base_only", default=False))
        verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
        log_file = _resolve_option(log_file, config_values, "log_file")

        # DEBUG traces every command, like `set -x`.
        if verbose or os.environ.get("DEBUG"):
            logging.getLogger().setLevel(logging.DEBUG)
            logger.setLevel(logging.DEBUG)
        else:
            logger.setLevel(logging.INFO)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(logger.level)
            file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
            logger.addHandler(file_handler)

        platform_info = PlatformProfileResolver(logger=logger).resolve()
        context = build_run_context(
            platform_info,
            hostname=hostname,
            base_only=base_only,
            credential=app_store_credential,
            config=config_values,
            home=home,
        )
    except Exception as exc:
        logger.exception("Unexpected error while preparing the run")
        raise SystemExit(EXIT_UNEXPECTED) from exc

    try:
        check_app_store_precondition(context)
    except PreconditionError as exc:
        click.echo(ctx.get_help(), err=True)
        raise _click_error(exc) from exc

    raise SystemExit(Provisioner(context).run())


if __name__ == "__main__":
    main()

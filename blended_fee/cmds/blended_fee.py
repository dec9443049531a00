from __future__ import annotations

import click

from blended_fee import __version__
from blended_fee.cmds.configure import configure_cmd
from blended_fee.cmds.estimates import estimates_cmd
from blended_fee.util.default_root import DEFAULT_ROOT_PATH

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


@click.group(
    help=f"\n  Blend bitcoin fee estimates from several sources ({__version__})\n",
    epilog="Try 'blended_fee init' followed by 'blended_fee start'",
    context_settings=CONTEXT_SETTINGS,
)
@click.option("--root-path", default=DEFAULT_ROOT_PATH, help="Config file root", type=click.Path(), show_default=True)
@click.pass_context
def cli(ctx: click.Context, root_path: str) -> None:
    from pathlib import Path

    ctx.ensure_object(dict)
    ctx.obj["root_path"] = Path(root_path)


@cli.command("version", help="Show blended_fee version")
def version_cmd() -> None:
    print(__version__)


@cli.command("init", help="Create the default configuration file")
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing config.yaml")
@click.pass_context
def init_cmd(ctx: click.Context, force: bool) -> None:
    from blended_fee.util.config import config_path_for_filename, create_default_config

    root_path = ctx.obj["root_path"]
    path = config_path_for_filename(root_path, "config.yaml")
    if path.exists() and not force:
        print(f"{path} already exists, use --force to overwrite it")
        return
    create_default_config(root_path)
    print(f"Wrote default config to {path}")


@cli.command("start", help="Run the fee estimator HTTP service in the foreground")
@click.pass_context
def start_cmd(ctx: click.Context) -> None:
    import asyncio

    from blended_fee.server.fee_estimator_server import async_start

    asyncio.run(async_start(ctx.obj["root_path"]))


cli.add_command(configure_cmd)
cli.add_command(estimates_cmd)


def main() -> None:
    cli()  # pylint: disable=no-value-for-parameter


if __name__ == "__main__":
    main()

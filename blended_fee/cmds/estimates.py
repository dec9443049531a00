from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import aiohttp
import click

from blended_fee.estimator.fee_estimation import Estimates
from blended_fee.providers.registry import create_data_provider_manager
from blended_fee.util.config import SERVICE_NAME, load_config


def print_estimates(estimates: Estimates, json_flag: bool) -> None:
    if json_flag:
        print(json.dumps(estimates.to_json_dict()))
        return

    print("")
    print(f"      Block height: {estimates.current_block_height:>12}")
    print(f"        Block hash: {estimates.current_block_hash}")
    print(f" Min relay feerate: {estimates.min_relay_feerate:>12} sat/kvB")
    print("\nFee Rate Estimates:")
    for target, fee in sorted(estimates.fee_by_block_target.items()):
        unit = "block" if target == 1 else "blocks"
        print(f"    {target:>5} {unit:<6}: {fee:>10} sat/kvB")
    print("")


async def estimates_cmd_async(service_config: Dict[str, Any], json_flag: bool) -> None:
    async with aiohttp.ClientSession() as session:
        manager = create_data_provider_manager(session, service_config)
        estimates = await manager.get_data()
    print_estimates(estimates, json_flag)


@click.command("estimates", short_help="Fetch and blend fee estimates once")
@click.option(
    "-j",
    "--json",
    is_flag=True,
    type=bool,
    default=False,
    help="print json",
)
@click.pass_context
def estimates_cmd(ctx: click.Context, json: bool) -> None:
    import asyncio

    root_path: Path = ctx.obj["root_path"]
    service_config = load_config(root_path, "config.yaml", sub_config=SERVICE_NAME)
    asyncio.run(estimates_cmd_async(service_config, json))

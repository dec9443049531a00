from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from blended_fee.util.config import SERVICE_NAME, lock_and_load_config, save_config

LOG_LEVELS = ["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"]


def configure(
    root_path: Path,
    set_port: Optional[int],
    set_log_level: Optional[str],
    set_fee_minimum: Optional[float],
    set_fee_multiplier: Optional[float],
    set_max_height_delta: Optional[int],
    set_cache_ttl: Optional[float],
    enable_provider: Optional[str],
    disable_provider: Optional[str],
) -> None:
    config_yaml = "config.yaml"
    with lock_and_load_config(root_path, config_yaml) as config:
        service_config = config[SERVICE_NAME]
        change_made = False
        if set_port is not None:
            service_config["port"] = set_port
            print("Port updated")
            change_made = True
        if set_log_level is not None:
            if set_log_level in LOG_LEVELS:
                service_config.setdefault("logging", {})["log_level"] = set_log_level
                print(f"Logging level updated. Check {root_path}/log/debug.log")
                change_made = True
            else:
                print(f"Logging level not updated. Use one of: {LOG_LEVELS}")
        settings = service_config.setdefault("settings", {})
        if set_fee_minimum is not None:
            settings["fee_minimum"] = set_fee_minimum
            print("Fee minimum updated")
            change_made = True
        if set_fee_multiplier is not None:
            settings["fee_multiplier"] = set_fee_multiplier
            print("Fee multiplier updated")
            change_made = True
        if set_max_height_delta is not None:
            settings["max_height_delta"] = set_max_height_delta
            print("Max height delta updated")
            change_made = True
        if set_cache_ttl is not None:
            service_config.setdefault("cache", {})["ttl"] = set_cache_ttl
            print("Cache TTL updated")
            change_made = True
        for provider_type, enabled in ((enable_provider, True), (disable_provider, False)):
            if provider_type is None:
                continue
            matching = [p for p in service_config.get("providers", []) if p.get("type") == provider_type]
            if len(matching) == 0:
                print(f"No {provider_type} provider configured")
                continue
            for provider_config in matching:
                provider_config["enabled"] = enabled
            print(f"Provider {provider_type} {'enabled' if enabled else 'disabled'}")
            change_made = True

        if change_made:
            print("Restart any running fee estimator services for changes to take effect")
            save_config(root_path, config_yaml, config)


@click.command("configure", help="Modify configuration", no_args_is_help=True)
@click.option("--set-port", help="Set the port the HTTP service listens on", type=int)
@click.option("--set-log-level", "--log-level", "-log-level", help="Set the log level", type=str)
@click.option("--set-fee-minimum", help="Set the fee floor in sat/vB", type=float)
@click.option("--set-fee-multiplier", help="Set the multiplier applied to every estimate", type=float)
@click.option("--set-max-height-delta", help="Set how many blocks a source may lag behind", type=int)
@click.option("--set-cache-ttl", help="Set how long a result is cached, in seconds", type=float)
@click.option("--enable-provider", help="Enable every provider of this type", type=str)
@click.option("--disable-provider", help="Disable every provider of this type", type=str)
@click.pass_context
def configure_cmd(
    ctx: click.Context,
    set_port: Optional[int],
    set_log_level: Optional[str],
    set_fee_minimum: Optional[float],
    set_fee_multiplier: Optional[float],
    set_max_height_delta: Optional[int],
    set_cache_ttl: Optional[float],
    enable_provider: Optional[str],
    disable_provider: Optional[str],
) -> None:
    configure(
        ctx.obj["root_path"],
        set_port,
        set_log_level,
        set_fee_minimum,
        set_fee_multiplier,
        set_max_height_delta,
        set_cache_ttl,
        enable_provider,
        disable_provider,
    )

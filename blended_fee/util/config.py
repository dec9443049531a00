from __future__ import annotations

import contextlib
import copy
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

import importlib_resources
import yaml
from filelock import FileLock, Timeout

from blended_fee.util.errors import ConfigError

log = logging.getLogger(__name__)

SERVICE_NAME = "fee_estimator"


def initial_config_file(filename: Union[str, Path]) -> str:
    """Contents of the packaged `initial-<filename>` template."""
    resource = importlib_resources.files(__package__).joinpath(f"initial-{filename}")
    return resource.read_text(encoding="utf-8")


def config_path_for_filename(root_path: Path, filename: Union[str, Path]) -> Path:
    path = Path(filename)
    return path if path.is_absolute() else root_path / "config" / path


def _write_atomically(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


def create_default_config(root_path: Path, filename: str = "config.yaml") -> Path:
    path = config_path_for_filename(root_path, filename)
    _write_atomically(path, initial_config_file(filename))
    return path


@contextlib.contextmanager
def lock_config(root_path: Path, filename: Union[str, Path], timeout: float = -1) -> Iterator[None]:
    """Hold the lockfile next to the config, shared by every process using this root."""
    path = config_path_for_filename(root_path, filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(path.with_name(f"{path.name}.lock"))
    try:
        lock.acquire(timeout=timeout, poll_interval=0.05)
    except Timeout as e:
        raise ConfigError(f"Timed out waiting for config lock: {e}") from e
    try:
        yield
    finally:
        lock.release()


def save_config(root_path: Path, filename: Union[str, Path], config_data: Dict[str, Any]) -> None:
    # caller holds the config lock
    _write_atomically(config_path_for_filename(root_path, filename), yaml.safe_dump(config_data, sort_keys=False))


def _read_config(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"can't find {path}, please run `blended_fee init` to create a config file")
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} does not contain a mapping")
    return data


@contextlib.contextmanager
def lock_and_load_config(root_path: Path, filename: Union[str, Path]) -> Iterator[Dict[str, Any]]:
    with lock_config(root_path, filename):
        yield _read_config(config_path_for_filename(root_path, filename))


def load_config(
    root_path: Path,
    filename: Union[str, Path] = "config.yaml",
    sub_config: Optional[str] = None,
) -> Dict[str, Any]:
    path = config_path_for_filename(root_path, filename)
    with lock_config(root_path, filename):
        config = _read_config(path)
    if sub_config is None:
        return config
    if sub_config not in config:
        raise ConfigError(f"Section {sub_config!r} missing from {path}")
    section: Dict[str, Any] = config[sub_config]
    return section


def load_default_config() -> Dict[str, Any]:
    config: Dict[str, Any] = yaml.safe_load(initial_config_file("config.yaml"))
    return config


def add_property(d: Dict[str, Any], dotted_key: str, value: Any) -> None:
    """Set `value` at a dotted path such as `settings.fee_minimum`, creating sections on the way."""
    *sections, key = dotted_key.split(".")
    for section in sections:
        d = d.setdefault(section, {})
    d[key] = value


def override_config(config: Dict[str, Any], config_overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    new_config = copy.deepcopy(config)
    for dotted_key, value in (config_overrides or {}).items():
        add_property(new_config, dotted_key, value)
    return new_config


@dataclass(frozen=True)
class EstimatorSettings:
    """
    The blending knobs of the `fee_estimator` section.

    Attributes:
        timeout (float): default per-request timeout for providers, in seconds
        max_height_delta (int): how many blocks a source may lag the best source and still be blended
        fee_multiplier (float): scale applied to every estimate before conversion to sat/kvB
        fee_minimum (float): hard floor in sat/vB
        cache_ttl (float): seconds a merged result is served from the cache
        cache_check_period (float): seconds between sweeps of an expired cache entry
    """

    timeout: float = 5
    max_height_delta: int = 1
    fee_multiplier: float = 1
    fee_minimum: float = 1
    cache_ttl: float = 15
    cache_check_period: float = 20

    @classmethod
    def from_config(cls, service_config: Dict[str, Any]) -> EstimatorSettings:
        settings = service_config.get("settings", {})
        cache = service_config.get("cache", {})
        try:
            return cls(
                timeout=float(settings.get("timeout", cls.timeout)),
                max_height_delta=int(settings.get("max_height_delta", cls.max_height_delta)),
                fee_multiplier=float(settings.get("fee_multiplier", cls.fee_multiplier)),
                fee_minimum=float(settings.get("fee_minimum", cls.fee_minimum)),
                cache_ttl=float(cache.get("ttl", cls.cache_ttl)),
                cache_check_period=float(cache.get("check_period", cls.cache_check_period)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid estimator settings: {e}") from e

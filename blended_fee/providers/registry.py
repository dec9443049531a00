from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

import aiohttp

from blended_fee.estimator.data_provider_manager import DataProviderManager
from blended_fee.estimator.fee_estimation import Estimates, SourceCategory
from blended_fee.estimator.provider_interface import Provider
from blended_fee.estimator.result_cache import ResultCache
from blended_fee.providers.bitcoind import BitcoindProvider
from blended_fee.providers.esplora import EsploraProvider
from blended_fee.providers.mempool import MempoolProvider
from blended_fee.util.config import EstimatorSettings
from blended_fee.util.errors import ConfigError

log = logging.getLogger(__name__)

ProviderFactory = Callable[[aiohttp.ClientSession, Dict[str, Any], float, SourceCategory], Provider]

DEFAULT_CATEGORIES: Dict[str, SourceCategory] = {
    "mempool": SourceCategory.LIVE,
    "esplora": SourceCategory.HISTORICAL,
    "bitcoind": SourceCategory.HISTORICAL,
}


def _require(provider_config: Dict[str, Any], key: str) -> Any:
    value = provider_config.get(key)
    if value is None:
        raise ConfigError(f"Provider {provider_config.get('type')!r} is missing required setting {key!r}")
    return value


def _create_mempool(
    session: aiohttp.ClientSession, provider_config: Dict[str, Any], timeout: float, category: SourceCategory
) -> Provider:
    return MempoolProvider(
        session=session,
        url=_require(provider_config, "url"),
        depth=int(provider_config.get("depth", 6)),
        timeout=timeout,
        fallback_url=provider_config.get("fallback_url"),
        name=provider_config.get("name", "mempool"),
        category=category,
    )


def _create_esplora(
    session: aiohttp.ClientSession, provider_config: Dict[str, Any], timeout: float, category: SourceCategory
) -> Provider:
    return EsploraProvider(
        session=session,
        url=_require(provider_config, "url"),
        depth=int(provider_config.get("depth", 1008)),
        timeout=timeout,
        fallback_url=provider_config.get("fallback_url"),
        name=provider_config.get("name", "esplora"),
        category=category,
    )


def _create_bitcoind(
    session: aiohttp.ClientSession, provider_config: Dict[str, Any], timeout: float, category: SourceCategory
) -> Provider:
    mode = str(provider_config.get("mode", "ECONOMICAL")).upper()
    if mode not in ("ECONOMICAL", "CONSERVATIVE"):
        raise ConfigError(f"Invalid bitcoind estimate mode: {mode!r}")
    return BitcoindProvider(
        session=session,
        url=_require(provider_config, "url"),
        user=provider_config.get("user"),
        password=provider_config.get("password"),
        targets=[int(target) for target in _require(provider_config, "targets")],
        timeout=timeout,
        mode=mode,  # type: ignore[arg-type]
        name=provider_config.get("name", "bitcoind"),
        category=category,
    )


PROVIDER_FACTORIES: Dict[str, ProviderFactory] = {
    "mempool": _create_mempool,
    "esplora": _create_esplora,
    "bitcoind": _create_bitcoind,
}


def create_provider(
    session: aiohttp.ClientSession, provider_config: Dict[str, Any], default_timeout: float
) -> Provider:
    provider_type = provider_config.get("type")
    factory = PROVIDER_FACTORIES.get(str(provider_type))
    if factory is None:
        raise ConfigError(f"Unknown provider type: {provider_type!r}")

    try:
        category_name = provider_config.get("category")
        category = (
            SourceCategory.from_str(category_name) if category_name is not None else DEFAULT_CATEGORIES[provider_type]
        )
        timeout = float(provider_config.get("timeout", default_timeout))
        return factory(session, provider_config, timeout, category)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid settings for provider {provider_type!r}: {e}") from e


def create_providers(
    session: aiohttp.ClientSession, providers_config: List[Dict[str, Any]], default_timeout: float
) -> List[Provider]:
    providers: List[Provider] = []
    for provider_config in providers_config:
        if not provider_config.get("enabled", True):
            log.info(f"Skipping disabled provider {provider_config.get('type')!r}")
            continue
        provider = create_provider(session, provider_config, default_timeout)
        log.info(f"Using provider {provider!r} ({provider.category.name.lower()})")
        providers.append(provider)
    return providers


def create_data_provider_manager(
    session: aiohttp.ClientSession, service_config: Dict[str, Any]
) -> DataProviderManager:
    settings = EstimatorSettings.from_config(service_config)
    cache: ResultCache[Estimates] = ResultCache(ttl=settings.cache_ttl, check_period=settings.cache_check_period)
    manager = DataProviderManager(
        max_height_delta=settings.max_height_delta,
        fee_multiplier=settings.fee_multiplier,
        fee_minimum=settings.fee_minimum,
        cache=cache,
    )
    for provider in create_providers(session, service_config.get("providers", []), settings.timeout):
        manager.register_provider(provider)
    if len(manager.providers) == 0:
        raise ConfigError("No providers are enabled")
    return manager

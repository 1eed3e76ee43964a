"""Frozen dataclasses for configuration and YAML loader with env-var interpolation."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from . import consts
from .exceptions import ConfigError

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _interpolate_env(value: str) -> str:
    """Replace ${ENV_VAR} placeholders with environment variable values."""

    def _replace(match: re.Match) -> str:
        env_key = match.group(1)
        env_val = os.environ.get(env_key)
        if env_val is None:
            raise ConfigError(f"Environment variable '{env_key}' is not set")
        return env_val

    return _ENV_PATTERN.sub(_replace, value)


def _walk_and_interpolate(obj: Any) -> Any:
    """Recursively interpolate env vars in strings throughout a nested structure."""
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(v) for v in obj]
    return obj


@dataclass(frozen=True)
class AzureConfig:
    subscription_id: str = ""
    network_resource_subscription_id: str = ""  # empty: network resources share subscription_id
    resource_group: str = ""
    location: str = ""
    vm_type: str = consts.VM_TYPE_STANDARD  # "standard" or "vmssflex"
    primary_availability_set_name: str = ""
    primary_scale_set_name: str = ""
    default_node_mask_cidr_ipv4: int = consts.DEFAULT_NODE_MASK_CIDR_IPV4
    default_node_mask_cidr_ipv6: int = consts.DEFAULT_NODE_MASK_CIDR_IPV6

    @property
    def network_subscription_id(self) -> str:
        return self.network_resource_subscription_id or self.subscription_id


@dataclass(frozen=True)
class LoadBalancerConfig:
    sku: str = consts.LOAD_BALANCER_SKU_STANDARD  # "standard" or "basic"
    exclude_master_from_standard_lb: bool = True
    enable_multiple_standard_load_balancers: bool = False
    node_pools_without_dedicated_slb: list[str] = field(default_factory=list)
    ipv6_dual_stack_enabled: bool = False

    @property
    def use_standard_sku(self) -> bool:
        return self.sku.lower() == consts.LOAD_BALANCER_SKU_STANDARD

    @property
    def use_single_standard_load_balancer(self) -> bool:
        return self.use_standard_sku and not self.enable_multiple_standard_load_balancers

    @property
    def vm_sets_sharing_primary_slb(self) -> frozenset[str]:
        return frozenset(name.strip().lower() for name in self.node_pools_without_dedicated_slb if name.strip())


@dataclass(frozen=True)
class CacheConfig:
    vm_ttl_seconds: int = consts.VM_CACHE_TTL_DEFAULT_SECONDS
    availability_sets_ttl_seconds: int = consts.VMAS_CACHE_TTL_DEFAULT_SECONDS
    vmss_flex_ttl_seconds: int = consts.VMSS_FLEX_CACHE_TTL_DEFAULT_SECONDS
    vmss_flex_vm_ttl_seconds: int = consts.VMSS_FLEX_VM_CACHE_TTL_DEFAULT_SECONDS


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"  # "json" or "text"
    azure_sdk_level: str = "WARNING"


@dataclass(frozen=True)
class AppConfig:
    azure: AzureConfig = field(default_factory=AzureConfig)
    load_balancer: LoadBalancerConfig = field(default_factory=LoadBalancerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _build_nested(cls: type, data: dict[str, Any]) -> Any:
    """Construct a frozen dataclass, recursively building nested dataclass fields."""
    if not isinstance(data, dict):
        return data
    field_types = {f.name: f.type for f in cls.__dataclass_fields__.values()}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in field_types:
            continue
        ft = field_types[key]
        # Resolve string annotations to actual types in the module scope
        if isinstance(ft, str):
            ft = globals().get(ft, ft)
        if isinstance(ft, type) and hasattr(ft, "__dataclass_fields__"):
            if not isinstance(value, dict):
                raise ConfigError(f"'{key}' must be a mapping")
            kwargs[key] = _build_nested(ft, value)
        else:
            kwargs[key] = value
    return cls(**kwargs)


def load_config(path: str | Path) -> AppConfig:
    """Load and validate configuration from a YAML file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must be a YAML mapping")

    raw = _walk_and_interpolate(raw)
    try:
        config = _build_nested(AppConfig, raw)
    except TypeError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
    validate(config)
    return config


def validate(config: AppConfig) -> None:
    """Validate configuration values."""
    if not config.azure.subscription_id:
        raise ConfigError("azure.subscription_id is required")

    if not config.azure.resource_group:
        raise ConfigError("azure.resource_group is required")

    if config.azure.vm_type not in (consts.VM_TYPE_STANDARD, consts.VM_TYPE_VMSS_FLEX):
        raise ConfigError("azure.vm_type must be 'standard' or 'vmssflex'")

    if not 1 <= config.azure.default_node_mask_cidr_ipv4 <= 32:
        raise ConfigError("azure.default_node_mask_cidr_ipv4 must be between 1 and 32")

    if not 1 <= config.azure.default_node_mask_cidr_ipv6 <= 128:
        raise ConfigError("azure.default_node_mask_cidr_ipv6 must be between 1 and 128")

    if config.load_balancer.sku.lower() not in (consts.LOAD_BALANCER_SKU_BASIC, consts.LOAD_BALANCER_SKU_STANDARD):
        raise ConfigError("load_balancer.sku must be 'basic' or 'standard'")

    if config.azure.vm_type == consts.VM_TYPE_VMSS_FLEX and not config.load_balancer.use_standard_sku:
        raise ConfigError("load_balancer.sku must be 'standard' when azure.vm_type is 'vmssflex'")

    for name in ("vm_ttl_seconds", "availability_sets_ttl_seconds", "vmss_flex_ttl_seconds", "vmss_flex_vm_ttl_seconds"):
        if getattr(config.cache, name) < 1:
            raise ConfigError(f"cache.{name} must be >= 1")

    if config.logging.format not in ("json", "text"):
        raise ConfigError("logging.format must be 'json' or 'text'")

    for name in ("level", "azure_sdk_level"):
        if not isinstance(logging.getLevelName(getattr(config.logging, name).upper()), int):
            raise ConfigError(f"logging.{name} must be a logging level name")

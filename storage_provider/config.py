"""
Storage settings resolved from config.yaml, .env and the process environment.

Each provider is configured from its own group of keys (matched
case-insensitively); cloud providers are only registered when at least one of
their keys is set. A "storage_providers" mapping in config.yaml is merged on
top, which also allows custom providers via "provider_class": "module:Class".
"""

from typing import Any, Dict, Mapping, Optional

from storage_provider.core.config_loader import raw_config
from storage_provider.driver import Driver
from storage_provider.utils.logger import configure_logging

PROVIDER_CONFIG_KEYS = {
    "local": {
        "base_path": "local_storage_dir",
        "base_url": "local_storage_base_url",
    },
    "s3": {
        "access_key_id": "aws_s3_access_key_id",
        "secret_access_key": "aws_s3_secret_access_key",
        "region": "aws_s3_region",
        "bucket": "aws_s3_bucket",
        "endpoint": "aws_s3_endpoint",
        "prefix": "aws_s3_prefix",
        "cdn_domain": "aws_s3_cdn_domain",
        "path_style": "aws_s3_path_style",
        "timeout": "aws_s3_timeout",
    },
    "aliyun": {
        "access_key_id": "aliyun_oss_access_key_id",
        "access_key_secret": "aliyun_oss_access_key_secret",
        "bucket": "aliyun_oss_bucket",
        "region": "aliyun_oss_region",
        "endpoint": "aliyun_oss_endpoint",
        "internal": "aliyun_oss_internal",
        "secure": "aliyun_oss_secure",
        "cname": "aliyun_oss_cname",
        "timeout": "aliyun_oss_timeout",
        "prefix": "aliyun_oss_prefix",
        "cdn_domain": "aliyun_oss_cdn_domain",
    },
    "qcloud": {
        "secret_id": "qcloud_cos_secret_id",
        "secret_key": "qcloud_cos_secret_key",
        "bucket": "qcloud_cos_bucket",
        "region": "qcloud_cos_region",
        "domain": "qcloud_cos_domain",
        "timeout": "qcloud_cos_timeout",
        "prefix": "qcloud_cos_prefix",
        "cdn_domain": "qcloud_cos_cdn_domain",
    },
}

DEFAULT_PROVIDER = "local"


def build_provider_settings(config: Optional[Mapping[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
    """
    Builds the {name: {"provider_class": ..., **options}} mapping consumed by Driver.from_config.
    The local provider is always present.
    """
    config = raw_config if config is None else config
    settings: Dict[str, Dict[str, Any]] = {}

    for name, keys in PROVIDER_CONFIG_KEYS.items():
        options = {
            field: config[key]
            for field, key in keys.items()
            if config.get(key) not in (None, "")
        }
        if name != "local" and not options:
            continue
        settings[name] = {"provider_class": name, **options}

    declared = config.get("storage_providers")
    if isinstance(declared, dict):
        for name, options in declared.items():
            settings[name] = {**settings.get(name, {}), **(options or {})}

    return settings


def create_driver(config: Optional[Mapping[str, Any]] = None) -> Driver:
    """
    Creates a Driver from loaded settings. The default provider comes from
    STORAGE_DEFAULT_PROVIDER and falls back to "local".
    """
    configure_logging()
    if config is None:
        return Driver.from_config(STORAGE_PROVIDERS, default_provider=STORAGE_DEFAULT_PROVIDER)
    default_provider = config.get("storage_default_provider") or DEFAULT_PROVIDER
    return Driver.from_config(build_provider_settings(config), default_provider=default_provider)


STORAGE_DEFAULT_PROVIDER = raw_config.get("storage_default_provider") or DEFAULT_PROVIDER
STORAGE_PROVIDERS = build_provider_settings()

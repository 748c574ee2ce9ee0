# storage_provider/providers/__init__.py

import importlib
from typing import Type

from storage_provider.exceptions import ProviderNotFoundError
from .base import (
    ConnectionResult,
    DeleteResult,
    ProviderConfig,
    StorageContext,
    StorageProvider,
    UploadResult,
)
from .local import LocalStorageConfig, LocalStorageProvider

# SDK-backed providers are imported on first use, so only the SDKs that are
# actually configured need to be importable.
PROVIDER_CLASS_MAP = {
    "local": "storage_provider.providers.local:LocalStorageProvider",
    "s3": "storage_provider.providers.s3:S3Provider",
    "aliyun": "storage_provider.providers.aliyun:AliyunOSSProvider",
    "qcloud": "storage_provider.providers.qcloud:QCloudCOSProvider",
}

_LAZY_EXPORTS = {
    "S3Provider": "storage_provider.providers.s3",
    "S3Config": "storage_provider.providers.s3",
    "AliyunOSSProvider": "storage_provider.providers.aliyun",
    "AliyunOSSConfig": "storage_provider.providers.aliyun",
    "QCloudCOSProvider": "storage_provider.providers.qcloud",
    "QCloudCOSConfig": "storage_provider.providers.qcloud",
}


def load_provider_class(provider_class: str) -> Type[StorageProvider]:
    """
    Resolves a provider class from a short name ("s3", "aliyun", ...) or a
    "package.module:ClassName" path, importing its module on demand.

    Raises:
        ProviderNotFoundError: If the name is unknown or the class does not exist.
    """
    target = PROVIDER_CLASS_MAP.get(provider_class, provider_class)
    if ":" not in target:
        raise ProviderNotFoundError(provider_class)

    module_name, class_name = target.split(":", 1)
    module = importlib.import_module(module_name)
    try:
        return getattr(module, class_name)
    except AttributeError:
        raise ProviderNotFoundError(provider_class) from None


def __getattr__(name):
    if name in _LAZY_EXPORTS:
        return getattr(importlib.import_module(_LAZY_EXPORTS[name]), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ConnectionResult",
    "DeleteResult",
    "LocalStorageConfig",
    "LocalStorageProvider",
    "PROVIDER_CLASS_MAP",
    "ProviderConfig",
    "StorageContext",
    "StorageProvider",
    "UploadResult",
    "load_provider_class",
    *_LAZY_EXPORTS,
]

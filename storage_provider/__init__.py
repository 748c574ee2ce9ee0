"""
Storage provider interfaces and their implementations.

Supports Amazon S3 (and S3-compatible services), Aliyun OSS, Tencent COS and
the local filesystem behind one async interface, plus a Driver that routes
path-based calls to named providers.
"""

from .driver import Driver
from .exceptions import (
    BackendError,
    ConfigurationError,
    InvalidPathError,
    NotFoundError,
    ProviderNotFoundError,
    RegistryError,
    StorageError,
)
from .providers import (
    LocalStorageProvider,
    StorageContext,
    StorageProvider,
    load_provider_class,
)

__all__ = [
    "BackendError",
    "ConfigurationError",
    "Driver",
    "InvalidPathError",
    "LocalStorageProvider",
    "NotFoundError",
    "ProviderNotFoundError",
    "RegistryError",
    "StorageContext",
    "StorageError",
    "StorageProvider",
    "load_provider_class",
]

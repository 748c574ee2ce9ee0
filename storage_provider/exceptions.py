"""
Custom exceptions for the storage provider layer.
"""


class StorageError(Exception):
    """Base class for exceptions raised by this package."""
    pass


class ConfigurationError(StorageError):
    """A provider was constructed with missing or invalid configuration."""
    pass


class InvalidPathError(StorageError, ValueError):
    """A file name or path cannot be mapped to an object key."""
    pass


class NotFoundError(StorageError):
    """The requested object does not exist in the backend."""

    def __init__(self, key: str, provider: str):
        super().__init__(f"File not found: {key} (provider: {provider})")
        self.key = key
        self.provider = provider


class BackendError(StorageError):
    """The backend answered with a response the adapter cannot use."""

    def __init__(self, message: str, provider: str):
        super().__init__(message)
        self.provider = provider


class RegistryError(StorageError):
    """Base class for driver registry failures."""
    pass


class ProviderNotFoundError(RegistryError, LookupError):
    """No provider is registered under the requested name."""

    def __init__(self, name):
        if name is None:
            message = "No default storage provider has been set."
        else:
            message = f"Storage provider '{name}' not found."
        super().__init__(message)
        self.name = name

from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type

from storage_provider.exceptions import InvalidPathError, ProviderNotFoundError
from storage_provider.providers import load_provider_class
from storage_provider.providers.base import (
    ConnectionResult,
    DeleteResult,
    StorageContext,
    StorageProvider,
    UploadResult,
)
from storage_provider.utils.logger import logger
from storage_provider.utils.paths import split_path

ProviderFactory = Callable[[], StorageProvider]


def _build_provider(provider_class: str, init_args: Dict[str, Any]) -> StorageProvider:
    return load_provider_class(provider_class)(**init_args)


class Driver:
    """
    Registry of named storage providers with one designated default.

    Providers are registered either as live instances or as zero-argument
    factories that are invoked on first use. The path-based helpers
    (upload_file, download_file, ...) split a combined path into a directory
    and a file name and delegate to the default provider, or to the provider
    named by `provider`.

    The registry is owned by the Driver instance and is not synchronised;
    register/remove calls are expected to be rare administrative operations.
    """

    def __init__(
        self,
        default_provider: Optional[str] = None,
        providers: Optional[Mapping[str, StorageProvider]] = None,
        factories: Optional[Mapping[str, ProviderFactory]] = None,
    ):
        self._providers: Dict[str, StorageProvider] = {}
        self._factories: Dict[str, ProviderFactory] = {}
        self._default: Optional[str] = None

        for name, instance in (providers or {}).items():
            self.register_provider(name, instance)
        for name, factory in (factories or {}).items():
            self.register_factory(name, factory)

        if default_provider:
            self.set_default_provider(default_provider)
        elif self.provider_names:
            self._default = self.provider_names[0]

        logger.info(f"Driver initialized. Providers: {self.provider_names}, default: {self._default}")

    @classmethod
    def from_config(
        cls,
        settings: Mapping[str, Mapping[str, Any]],
        default_provider: Optional[str] = None,
    ) -> "Driver":
        """
        Builds a Driver from a {name: {"provider_class": ..., **options}} mapping.
        Providers are constructed lazily, so a misconfigured provider only fails
        when it is first used.

        Args:
            settings: Provider settings keyed by registry name. "provider_class"
                      defaults to the registry name ("local", "s3", "aliyun", "qcloud").
            default_provider (str): Name of the default provider.
        """
        factories = {}
        for name, options in settings.items():
            init_args = dict(options)
            provider_class = init_args.pop("provider_class", name)
            factories[name] = partial(_build_provider, provider_class, init_args)
        return cls(default_provider=default_provider, factories=factories)

    # --- Registry ---

    @property
    def provider_names(self) -> List[str]:
        return list(dict.fromkeys([*self._providers, *self._factories]))

    @property
    def default_provider_name(self) -> Optional[str]:
        return self._default

    def has_provider(self, name: str) -> bool:
        return name in self._providers or name in self._factories

    def register_provider(self, name: str, instance: StorageProvider) -> None:
        """
        Registers a live provider instance, replacing any provider with the same name.
        """
        if isinstance(instance, type):
            raise TypeError(
                f"register_provider expects a provider instance, got class {instance.__name__}; "
                "use register_custom_provider for classes."
            )
        self._factories.pop(name, None)
        self._providers[name] = instance
        logger.info(f"Registered storage provider '{name}' ({type(instance).__name__}).")

    def register_factory(self, name: str, factory: ProviderFactory) -> None:
        """
        Registers a factory that builds the provider on first use,
        replacing any provider with the same name.
        """
        self._providers.pop(name, None)
        self._factories[name] = factory
        logger.debug(f"Registered lazy storage provider '{name}'.")

    def register_custom_provider(self, name: str, provider_class: Type[StorageProvider], **options) -> None:
        """Registers a custom provider class, constructed with `options` on first use."""
        self.register_factory(name, partial(provider_class, **options))

    def remove_provider(self, name: str) -> None:
        """
        Removes a provider. Does nothing if the name is unknown.
        Removing the default provider leaves the default pointer dangling:
        later default calls raise ProviderNotFoundError.
        """
        removed = self._providers.pop(name, None) is not None
        removed = self._factories.pop(name, None) is not None or removed
        if removed:
            logger.info(f"Removed storage provider '{name}'.")
        if removed and name == self._default:
            logger.warning(f"Removed provider '{name}' was the default provider.")

    def set_default_provider(self, name: str) -> None:
        if not self.has_provider(name):
            raise ProviderNotFoundError(name)
        self._default = name
        logger.info(f"Default storage provider set to '{name}'.")

    def get_provider(self, name: Optional[str] = None) -> StorageProvider:
        """
        Returns the provider registered under `name`, or the default provider.
        Lazy providers are built here and cached.

        Raises:
            ProviderNotFoundError: If no provider is registered under the name.
        """
        name = name or self._default
        if name is None:
            raise ProviderNotFoundError(None)
        if name in self._providers:
            return self._providers[name]

        factory = self._factories.get(name)
        if factory is None:
            raise ProviderNotFoundError(name)

        logger.info(f"Initializing storage provider '{name}'...")
        instance = factory()
        del self._factories[name]
        self._providers[name] = instance
        return instance

    def get_default_provider(self) -> StorageProvider:
        return self.get_provider(None)

    # --- Path-based operations ---

    @staticmethod
    def _resolve_path(path: str, context: Optional[StorageContext]) -> Tuple[str, StorageContext]:
        directory, file_name = split_path(path)
        if not file_name:
            raise InvalidPathError(f"Path does not name a file: {path!r}")
        resolved: StorageContext = dict(context or {})
        resolved["directory"] = directory
        return file_name, resolved

    async def upload_file(
        self,
        file: bytes,
        path: str,
        context: Optional[StorageContext] = None,
        provider: Optional[str] = None,
    ) -> UploadResult:
        """
        Uploads `file` to `path`, e.g. "media/2024/05/a.png".

        Returns:
            UploadResult: The provider's upload result.
        """
        file_name, context = self._resolve_path(path, context)
        return await self.get_provider(provider).upload(file, file_name, context)

    async def download_file(
        self,
        path: str,
        context: Optional[StorageContext] = None,
        provider: Optional[str] = None,
    ) -> bytes:
        file_name, context = self._resolve_path(path, context)
        return await self.get_provider(provider).download(file_name, context)

    async def delete_file(
        self,
        path: str,
        context: Optional[StorageContext] = None,
        provider: Optional[str] = None,
    ) -> DeleteResult:
        file_name, context = self._resolve_path(path, context)
        return await self.get_provider(provider).delete(file_name, context)

    async def get_file_url(
        self,
        path: str,
        context: Optional[StorageContext] = None,
        provider: Optional[str] = None,
    ) -> str:
        file_name, context = self._resolve_path(path, context)
        return await self.get_provider(provider).get_url(file_name, context)

    async def list_files(
        self,
        directory: str = "",
        context: Optional[StorageContext] = None,
        provider: Optional[str] = None,
    ) -> List[str]:
        resolved: StorageContext = dict(context or {})
        resolved["directory"] = directory
        return await self.get_provider(provider).list(resolved)

    async def test_connection(self, provider: Optional[str] = None) -> ConnectionResult:
        return await self.get_provider(provider).test_connection()

    def __repr__(self) -> str:
        return f"<Driver providers={self.provider_names} default={self._default!r}>"

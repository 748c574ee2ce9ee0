import mimetypes
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypedDict, TypeVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from storage_provider.exceptions import ConfigurationError, InvalidPathError
from storage_provider.utils.logger import logger

DEFAULT_EXPIRES_IN = 60 * 5  # Signed URLs default to 5 minutes
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class StorageContext(TypedDict, total=False):
    """
    Per-call options accepted by every provider operation.

    directory: sub-path under the provider prefix.
    expires_in: lifetime in seconds of a signed URL.
    signed: ask for a signed URL with the default lifetime.
    extra_args: backend request parameters passed through to the SDK call.
    """
    directory: str
    expires_in: int
    signed: bool
    extra_args: Dict[str, Any]


class _UploadResultBase(TypedDict):
    url: str
    path: str
    provider: str


class UploadResult(_UploadResultBase, total=False):
    etag: str


class _DeleteResultBase(TypedDict):
    success: bool


class DeleteResult(_DeleteResultBase, total=False):
    message: str


class ConnectionResult(TypedDict):
    success: bool
    message: str


class ProviderConfig(BaseModel):
    """Settings shared by every provider configuration model."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid", populate_by_name=True)

    name: Optional[str] = None


ConfigT = TypeVar("ConfigT", bound=ProviderConfig)


class StorageProvider(ABC):
    """
    Abstract base class for a storage provider.
    This defines the contract that all storage implementations must follow.
    """

    name: str = "base"

    @abstractmethod
    async def upload(self, file: bytes, file_name: str, context: Optional[StorageContext] = None) -> UploadResult:
        """
        Uploads a file, silently replacing any existing object with the same key.

        Args:
            file (bytes): The file content.
            file_name (str): The name of the file inside the context directory.
            context (StorageContext): Optional per-call options (directory, extra_args).

        Returns:
            UploadResult: {"url", "path", "provider"} plus "etag" when the backend reports one.
        """
        pass

    @abstractmethod
    async def download(self, file_name: str, context: Optional[StorageContext] = None) -> bytes:
        """
        Downloads a whole file into memory.

        Raises:
            NotFoundError: If the derived key does not exist.
        """
        pass

    @abstractmethod
    async def delete(self, file_name: str, context: Optional[StorageContext] = None) -> DeleteResult:
        """
        Deletes a file. Deleting a missing file never raises.

        Returns:
            DeleteResult: {"success": True} or {"success": False, "message": ...}.
        """
        pass

    @abstractmethod
    async def list(self, context: Optional[StorageContext] = None) -> List[str]:
        """
        Lists the files directly inside the context directory.

        Returns:
            List[str]: File names relative to the directory, in backend order.
                       Only the first page of results is fetched.
        """
        pass

    @abstractmethod
    async def get_url(self, file_name: str, context: Optional[StorageContext] = None) -> str:
        """
        Returns the public URL of a file, or a time-limited signed URL when
        "expires_in" or "signed" is present in the context and the backend
        supports signing.
        """
        pass

    @abstractmethod
    async def test_connection(self) -> ConnectionResult:
        """
        Probes the backend. Never raises.

        Returns:
            ConnectionResult: {"success": bool, "message": str}
        """
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


def load_config(
    model: Type[ConfigT],
    config: Union[ConfigT, Mapping[str, Any], None],
    options: Mapping[str, Any],
    provider: str,
) -> ConfigT:
    """
    Validates provider settings, failing fast before any client is created.

    Args:
        model: The pydantic model describing the provider's settings.
        config: A model instance or a mapping of settings (may be None).
        options: Keyword settings that override entries of `config`.
        provider (str): Provider label used in error messages.

    Raises:
        ConfigurationError: If a required field is missing or empty, or a value is invalid.
    """
    if isinstance(config, model) and not options:
        return config

    data = config.model_dump(exclude_unset=True) if isinstance(config, BaseModel) else dict(config or {})
    data.update(options)
    try:
        return model(**data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) or err["msg"] for err in e.errors())
        logger.error(f"Invalid {provider} configuration ({fields}): {e}")
        raise ConfigurationError(f"{provider}: Missing or invalid configuration: {fields}") from e


def require_file_name(file_name: str) -> None:
    if not isinstance(file_name, str) or not file_name.strip():
        raise InvalidPathError("file_name must be a non-empty string")


def context_directory(context: Optional[StorageContext]) -> str:
    return (context or {}).get("directory") or ""


def wants_signed_url(context: Optional[StorageContext]) -> bool:
    context = context or {}
    return context.get("expires_in") is not None or bool(context.get("signed"))


def context_expires_in(context: Optional[StorageContext]) -> int:
    expires_in = (context or {}).get("expires_in")
    if expires_in is None:
        return DEFAULT_EXPIRES_IN
    if int(expires_in) <= 0:
        raise ValueError(f"expires_in must be a positive number of seconds, got {expires_in!r}")
    return int(expires_in)


def context_extra_args(context: Optional[StorageContext], reserved: Iterable[str], provider: str) -> Dict[str, Any]:
    """
    Returns the caller's backend pass-through parameters with the reserved
    request fields (bucket, key, body...) removed.
    """
    extra_args = dict((context or {}).get("extra_args") or {})
    for field in reserved:
        if field in extra_args:
            logger.warning(f"[{provider}] Ignoring reserved request field '{field}' in extra_args.")
            extra_args.pop(field)
    return extra_args


def guess_content_type(file_name: str) -> str:
    return mimetypes.guess_type(file_name)[0] or DEFAULT_CONTENT_TYPE

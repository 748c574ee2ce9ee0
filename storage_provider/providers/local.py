import asyncio
import os
from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, Field

from storage_provider.exceptions import InvalidPathError, NotFoundError
from storage_provider.utils.logger import logger
from storage_provider.utils.paths import build_list_prefix, build_object_key, build_public_url
from .base import (
    ConnectionResult,
    DeleteResult,
    ProviderConfig,
    StorageContext,
    StorageProvider,
    UploadResult,
    context_directory,
    load_config,
    require_file_name,
    wants_signed_url,
)


class LocalStorageConfig(ProviderConfig):
    base_path: str = Field(
        "./storage",
        min_length=1,
        validation_alias=AliasChoices("base_path", "base_directory"),
    )
    base_url: Optional[str] = None


class LocalStorageProvider(StorageProvider):
    """
    Storage provider for the local filesystem.
    Object keys are files under base_path; public URLs are built from base_url,
    or are file:// URLs when no base_url is configured.
    """

    name = "local"

    def __init__(self, config: Optional[LocalStorageConfig] = None, **options):
        self.config = load_config(LocalStorageConfig, config, options, "LocalStorageProvider")
        self.name = self.config.name or "local"
        self.base_path = os.path.abspath(self.config.base_path)
        logger.info(f"LocalStorageProvider initialized at {self.base_path}")

    def object_key(self, file_name: str, directory: str = "") -> str:
        return build_object_key(None, directory, file_name)

    def public_url(self, key: str) -> str:
        if self.config.base_url:
            return build_public_url(key, self.config.base_url)
        return Path(self._file_path(key)).as_uri()

    def _file_path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.base_path, *key.split("/")))
        if os.path.commonpath([path, self.base_path]) != self.base_path:
            raise InvalidPathError(f"Path escapes the storage directory: {key}")
        return path

    @staticmethod
    def _write_file(file_path: str, data: bytes) -> None:
        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        with open(file_path, "wb") as f:
            f.write(data)

    @staticmethod
    def _read_file(file_path: str) -> bytes:
        with open(file_path, "rb") as f:
            return f.read()

    @staticmethod
    def _list_dir(dir_path: str) -> List[str]:
        with os.scandir(dir_path) as entries:
            return [entry.name for entry in entries if entry.is_file()]

    async def upload(self, file: bytes, file_name: str, context: Optional[StorageContext] = None) -> UploadResult:
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        file_path = self._file_path(key)
        try:
            logger.info(f"Writing {key} to local storage...")
            await asyncio.to_thread(self._write_file, file_path, file)
        except OSError as e:
            logger.error(f"Failed to write {file_path}: {e}")
            raise

        return {"url": self.public_url(key), "path": key, "provider": self.name}

    async def download(self, file_name: str, context: Optional[StorageContext] = None) -> bytes:
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        file_path = self._file_path(key)
        try:
            return await asyncio.to_thread(self._read_file, file_path)
        except FileNotFoundError as e:
            raise NotFoundError(key, self.name) from e
        except OSError as e:
            logger.error(f"Failed to read {file_path}: {e}")
            raise

    async def delete(self, file_name: str, context: Optional[StorageContext] = None) -> DeleteResult:
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        file_path = self._file_path(key)
        try:
            await asyncio.to_thread(os.remove, file_path)
        except FileNotFoundError:
            logger.info(f"Deletion requested for {key}, but the file does not exist.")
            return {"success": False, "message": "File not found"}
        except OSError as e:
            logger.error(f"Failed to delete {file_path}: {e}")
            raise

        logger.info(f"Deleted {key} from local storage.")
        return {"success": True}

    async def list(self, context: Optional[StorageContext] = None) -> List[str]:
        dir_path = self._file_path(build_list_prefix(None, context_directory(context)))
        try:
            return await asyncio.to_thread(self._list_dir, dir_path)
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error(f"Failed to list {dir_path}: {e}")
            raise

    async def get_url(self, file_name: str, context: Optional[StorageContext] = None) -> str:
        require_file_name(file_name)
        if wants_signed_url(context):
            logger.debug("Local storage cannot sign URLs, returning the public URL.")
        return self.public_url(self.object_key(file_name, context_directory(context)))

    async def test_connection(self) -> ConnectionResult:
        try:
            await asyncio.to_thread(os.makedirs, self.base_path, exist_ok=True)
            writable = await asyncio.to_thread(os.access, self.base_path, os.W_OK)
        except Exception as e:
            logger.error(f"Local storage test connection error: {e}")
            return {"success": False, "message": f"Connection failed: {e}"}

        if not writable:
            return {"success": False, "message": f"Connection failed: {self.base_path} is not writable"}
        return {"success": True, "message": "Local storage directory accessible"}

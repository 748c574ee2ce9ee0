import asyncio
from typing import Any, Dict, List, Optional

import oss2
from oss2.exceptions import NoSuchKey
from pydantic import Field, model_validator

from storage_provider.exceptions import NotFoundError
from storage_provider.utils.logger import logger
from storage_provider.utils.paths import (
    build_list_prefix,
    build_object_key,
    build_public_url,
    split_endpoint,
    strip_list_prefix,
)
from .base import (
    ConnectionResult,
    DeleteResult,
    ProviderConfig,
    StorageContext,
    StorageProvider,
    UploadResult,
    context_directory,
    context_expires_in,
    context_extra_args,
    guess_content_type,
    load_config,
    require_file_name,
    wants_signed_url,
)

RESERVED_HEADERS = ("Authorization", "Host", "Content-Length")
LIST_MAX_KEYS = 1000


class AliyunOSSConfig(ProviderConfig):
    access_key_id: str = Field(..., min_length=1)
    access_key_secret: str = Field(..., min_length=1)
    bucket: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    endpoint: Optional[str] = None
    internal: bool = False
    secure: bool = True
    cname: bool = False
    timeout: float = Field(60, gt=0)
    prefix: str = ""
    cdn_domain: Optional[str] = None

    @model_validator(mode="after")
    def _cname_requires_endpoint(self):
        if self.cname and not self.endpoint:
            raise ValueError("cname requires endpoint to be set to the bucket's custom domain")
        return self


class AliyunOSSProvider(StorageProvider):
    """
    Storage provider for Aliyun OSS (Object Storage Service).
    Wraps an oss2.Bucket bound to the configured bucket and endpoint.
    """

    name = "aliyun-oss"

    def __init__(self, config: Optional[AliyunOSSConfig] = None, **options):
        self.config = load_config(AliyunOSSConfig, config, options, "AliyunOSSProvider")
        self.name = self.config.name or "aliyun-oss"
        self.prefix = self.config.prefix
        self.scheme, self.endpoint_host = self._resolve_endpoint()

        auth = oss2.Auth(self.config.access_key_id, self.config.access_key_secret)
        self.bucket = oss2.Bucket(
            auth,
            f"{self.scheme}://{self.endpoint_host}",
            self.config.bucket,
            is_cname=self.config.cname,
            connect_timeout=self.config.timeout,
        )
        logger.info(f"AliyunOSSProvider initialized for bucket '{self.config.bucket}' at {self.endpoint_host}.")

    def _resolve_endpoint(self):
        scheme = "https" if self.config.secure else "http"
        if self.config.endpoint:
            return split_endpoint(self.config.endpoint, scheme)

        region = self.config.region
        if not region.startswith("oss-"):
            region = f"oss-{region}"
        if self.config.internal:
            region = f"{region}-internal"
        return scheme, f"{region}.aliyuncs.com"

    def object_key(self, file_name: str, directory: str = "") -> str:
        return build_object_key(self.prefix, directory, file_name)

    def default_base_url(self) -> str:
        if self.config.cname:
            return f"{self.scheme}://{self.endpoint_host}"
        return f"{self.scheme}://{self.config.bucket}.{self.endpoint_host}"

    def public_url(self, key: str) -> str:
        return build_public_url(key, self.default_base_url(), self.config.cdn_domain)

    def _get_object_bytes(self, key: str, headers: Dict[str, Any]) -> bytes:
        return self.bucket.get_object(key, headers=headers or None).read()

    async def upload(self, file: bytes, file_name: str, context: Optional[StorageContext] = None) -> UploadResult:
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        headers = {"Content-Type": guess_content_type(file_name)}
        headers.update(context_extra_args(context, RESERVED_HEADERS, self.name))

        try:
            logger.info(f"Uploading {key} to OSS bucket '{self.config.bucket}'...")
            result = await asyncio.to_thread(self.bucket.put_object, key, file, headers=headers)
        except Exception as e:
            logger.error(f"Aliyun OSS upload error for {key}: {e}")
            raise

        upload_result: UploadResult = {"url": self.public_url(key), "path": key, "provider": self.name}
        etag = getattr(result, "etag", None)
        if etag:
            upload_result["etag"] = etag
        return upload_result

    async def download(self, file_name: str, context: Optional[StorageContext] = None) -> bytes:
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        headers = context_extra_args(context, RESERVED_HEADERS, self.name)
        try:
            return await asyncio.to_thread(self._get_object_bytes, key, headers)
        except NoSuchKey as e:
            raise NotFoundError(key, self.name) from e
        except Exception as e:
            logger.error(f"Aliyun OSS download error for {key}: {e}")
            raise

    async def delete(self, file_name: str, context: Optional[StorageContext] = None) -> DeleteResult:
        """
        Deletes a file from OSS. OSS answers 204 for missing keys, so the
        NoSuchKey branch only covers OSS-compatible services.
        """
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        try:
            await asyncio.to_thread(self.bucket.delete_object, key)
        except NoSuchKey:
            logger.info(f"Deletion requested for {key}, but it does not exist in OSS.")
            return {"success": False, "message": "File not found"}
        except Exception as e:
            logger.error(f"Aliyun OSS delete error for {key}: {e}")
            raise

        logger.info(f"Deleted {key} from OSS bucket '{self.config.bucket}'.")
        return {"success": True}

    async def list(self, context: Optional[StorageContext] = None) -> List[str]:
        """
        Lists the first page of files directly under the context directory.
        Pass {"extra_args": {"marker": ...}} to continue a truncated listing.
        """
        list_prefix = build_list_prefix(self.prefix, context_directory(context))
        params = {"max_keys": LIST_MAX_KEYS}
        params.update(context_extra_args(context, ("prefix", "delimiter"), self.name))
        try:
            result = await asyncio.to_thread(self.bucket.list_objects, prefix=list_prefix, delimiter="/", **params)
        except Exception as e:
            logger.error(f"Aliyun OSS list error under '{list_prefix}': {e}")
            raise

        names = [strip_list_prefix(obj.key, list_prefix) for obj in result.object_list]
        return [name for name in names if name]

    async def get_url(self, file_name: str, context: Optional[StorageContext] = None) -> str:
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        if not wants_signed_url(context):
            return self.public_url(key)

        expires_in = context_expires_in(context)
        params = context_extra_args(context, (), self.name)
        try:
            url = self.bucket.sign_url('GET', key, expires_in, params=params or None, slash_safe=True)
        except Exception as e:
            logger.error(f"Aliyun OSS get signed URL error for {key}: {e}")
            raise
        logger.debug(f"Generated signed URL for {key} (expires in {expires_in}s)")
        return url

    async def test_connection(self) -> ConnectionResult:
        try:
            await asyncio.to_thread(self.bucket.list_objects, max_keys=1)
        except Exception as e:
            logger.error(f"Aliyun OSS test connection error: {e}")
            reason = getattr(e, "message", None) or str(e) or "Unknown error"
            return {"success": False, "message": f"Connection failed: {reason}"}
        return {"success": True, "message": "Connection successful"}

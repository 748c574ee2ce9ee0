import asyncio
from typing import Any, Dict, List, Optional

from pydantic import Field
from qcloud_cos import CosConfig, CosS3Client
from qcloud_cos.cos_exception import CosServiceError

from storage_provider.exceptions import BackendError, NotFoundError
from storage_provider.utils.logger import logger
from storage_provider.utils.paths import (
    build_list_prefix,
    build_object_key,
    build_public_url,
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

RESERVED_REQUEST_FIELDS = ("Bucket", "Key", "Body")
LIST_MAX_KEYS = 1000


class QCloudCOSConfig(ProviderConfig):
    secret_id: str = Field(..., min_length=1)
    secret_key: str = Field(..., min_length=1)
    bucket: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    domain: Optional[str] = None
    scheme: str = Field("https", pattern="^https?$")
    timeout: Optional[int] = Field(None, gt=0)
    prefix: str = ""
    cdn_domain: Optional[str] = None


def _is_not_found(error: CosServiceError) -> bool:
    return error.get_error_code() == "NoSuchKey" or error.get_status_code() == 404


class QCloudCOSProvider(StorageProvider):
    """
    Storage provider for Tencent Cloud COS (Cloud Object Storage).
    The bucket name carries the APPID suffix, e.g. "examplebucket-1250000000".
    """

    name = "qcloud-cos"

    def __init__(self, config: Optional[QCloudCOSConfig] = None, **options):
        self.config = load_config(QCloudCOSConfig, config, options, "QCloudCOSProvider")
        self.name = self.config.name or "qcloud-cos"
        self.bucket = self.config.bucket
        self.region = self.config.region
        self.prefix = self.config.prefix

        cos_kwargs: Dict[str, Any] = {
            "Region": self.region,
            "SecretId": self.config.secret_id,
            "SecretKey": self.config.secret_key,
            "Scheme": self.config.scheme,
        }
        if self.config.domain:
            cos_kwargs["Domain"] = self.config.domain
        if self.config.timeout:
            cos_kwargs["Timeout"] = self.config.timeout

        self.client = CosS3Client(CosConfig(**cos_kwargs))
        logger.info(f"QCloudCOSProvider initialized for bucket '{self.bucket}' in {self.region}.")

    def object_key(self, file_name: str, directory: str = "") -> str:
        return build_object_key(self.prefix, directory, file_name)

    def default_base_url(self) -> str:
        if self.config.domain:
            return f"{self.config.scheme}://{self.config.domain}"
        return f"{self.config.scheme}://{self.bucket}.cos.{self.region}.myqcloud.com"

    def public_url(self, key: str) -> str:
        return build_public_url(key, self.default_base_url(), self.config.cdn_domain)

    def _get_object_bytes(self, key: str, extra_args: Dict[str, Any]) -> bytes:
        response = self.client.get_object(Bucket=self.bucket, Key=key, **extra_args)
        body = response.get("Body") if response else None
        if body is None:
            raise BackendError(f"Invalid response body for {key}", self.name)
        return body.get_raw_stream().read()

    async def upload(self, file: bytes, file_name: str, context: Optional[StorageContext] = None) -> UploadResult:
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        params = {"ContentType": guess_content_type(file_name)}
        params.update(context_extra_args(context, RESERVED_REQUEST_FIELDS, self.name))

        try:
            logger.info(f"Uploading {key} to COS bucket '{self.bucket}'...")
            response = await asyncio.to_thread(
                self.client.put_object, Bucket=self.bucket, Body=file, Key=key, **params
            )
        except Exception as e:
            logger.error(f"Upload failed for {key}: {e}")
            raise

        if response is None:
            raise BackendError("Failed to upload file to QCloud COS", self.name)

        result: UploadResult = {"url": self.public_url(key), "path": key, "provider": self.name}
        etag = response.get("ETag")
        if etag:
            result["etag"] = etag.strip('"')
        return result

    async def download(self, file_name: str, context: Optional[StorageContext] = None) -> bytes:
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        extra_args = context_extra_args(context, RESERVED_REQUEST_FIELDS, self.name)
        try:
            return await asyncio.to_thread(self._get_object_bytes, key, extra_args)
        except CosServiceError as e:
            if _is_not_found(e):
                raise NotFoundError(key, self.name) from e
            logger.error(f"Download failed for {key}: {e}")
            raise
        except Exception as e:
            logger.error(f"Download failed for {key}: {e}")
            raise

    async def delete(self, file_name: str, context: Optional[StorageContext] = None) -> DeleteResult:
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        extra_args = context_extra_args(context, RESERVED_REQUEST_FIELDS, self.name)
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key, **extra_args)
        except CosServiceError as e:
            if _is_not_found(e):
                logger.info(f"Deletion requested for {key}, but it does not exist in COS.")
                return {"success": False, "message": "File not found"}
            logger.error(f"Delete failed for {key}: {e}")
            raise
        except Exception as e:
            logger.error(f"Delete failed for {key}: {e}")
            raise

        logger.info(f"Deleted {key} from COS bucket '{self.bucket}'.")
        return {"success": True}

    async def list(self, context: Optional[StorageContext] = None) -> List[str]:
        """
        Lists the first page of files directly under the context directory.
        Pass {"extra_args": {"Marker": ...}} to continue a truncated listing.
        """
        list_prefix = build_list_prefix(self.prefix, context_directory(context))
        params = {"MaxKeys": LIST_MAX_KEYS}
        params.update(context_extra_args(context, ("Bucket", "Prefix", "Delimiter"), self.name))
        try:
            response = await asyncio.to_thread(
                self.client.list_objects, Bucket=self.bucket, Prefix=list_prefix, Delimiter="/", **params
            )
        except Exception as e:
            logger.error(f"List failed under '{list_prefix}': {e}")
            raise

        names = [strip_list_prefix(item["Key"], list_prefix) for item in (response or {}).get("Contents", [])]
        return [name for name in names if name]

    async def get_url(self, file_name: str, context: Optional[StorageContext] = None) -> str:
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        if not wants_signed_url(context):
            return self.public_url(key)

        expires_in = context_expires_in(context)
        params = context_extra_args(context, (), self.name)
        try:
            url = self.client.get_presigned_url(
                Bucket=self.bucket, Key=key, Method='GET', Expired=expires_in, Params=params
            )
        except Exception as e:
            logger.error(f"Get URL failed for {key}: {e}")
            raise
        logger.debug(f"Generated signed URL for {key} (expires in {expires_in}s)")
        return url

    async def test_connection(self) -> ConnectionResult:
        try:
            await asyncio.to_thread(self.client.list_objects, Bucket=self.bucket, MaxKeys=1)
        except CosServiceError as e:
            logger.error(f"QCloud COS test connection error: {e}")
            reason = e.get_error_msg() or e.get_error_code() or "Unknown error"
            return {"success": False, "message": f"Connection failed: {reason}"}
        except Exception as e:
            logger.error(f"QCloud COS test connection error: {e}")
            return {"success": False, "message": f"Connection failed: {str(e) or 'Unknown error'}"}
        return {"success": True, "message": "Connection successful"}

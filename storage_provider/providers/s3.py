import asyncio
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, EndpointConnectionError
from pydantic import AliasChoices, Field

from storage_provider.exceptions import BackendError, NotFoundError
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

RESERVED_REQUEST_FIELDS = ("Bucket", "Key", "Body")
NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}

CONNECTION_ERROR_MESSAGES = {
    "NoSuchBucket": "Bucket \"{bucket}\" does not exist",
    "AccessDenied": "Access denied, please check your permissions",
    "InvalidAccessKeyId": "Invalid Access Key ID",
    "SignatureDoesNotMatch": "Invalid Secret Access Key",
}


class S3Config(ProviderConfig):
    access_key_id: str = Field(..., min_length=1)
    secret_access_key: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    bucket: str = Field(..., min_length=1)
    endpoint: Optional[str] = None
    prefix: str = ""
    cdn_domain: Optional[str] = None
    path_style: bool = Field(False, validation_alias=AliasChoices("path_style", "force_path_style"))
    timeout: Optional[float] = Field(None, gt=0)


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3Provider(StorageProvider):
    """
    Storage provider for Amazon S3 and S3-compatible services (MinIO, R2, ...).
    Uses boto3 to interact with the S3 API.
    """

    name = "s3"

    def __init__(self, config: Optional[S3Config] = None, **options):
        self.config = load_config(S3Config, config, options, "S3Provider")
        self.name = self.config.name or "s3"
        self.bucket = self.config.bucket
        self.prefix = self.config.prefix

        config_kwargs: Dict[str, Any] = {
            "signature_version": "s3v4",
            "s3": {"addressing_style": "path" if self.config.path_style else "virtual"},
        }
        if self.config.timeout:
            config_kwargs["connect_timeout"] = self.config.timeout
            config_kwargs["read_timeout"] = self.config.timeout

        self.s3_client = boto3.client(
            's3',
            endpoint_url=self.config.endpoint,
            aws_access_key_id=self.config.access_key_id,
            aws_secret_access_key=self.config.secret_access_key,
            region_name=self.config.region,
            config=Config(**config_kwargs),
        )
        logger.info(f"S3Provider initialized for bucket '{self.bucket}'.")

    def object_key(self, file_name: str, directory: str = "") -> str:
        return build_object_key(self.prefix, directory, file_name)

    def default_base_url(self) -> str:
        """
        The bucket's own URL, honouring the path-style / virtual-hosted-style flag.
        """
        bucket, region = self.bucket, self.config.region
        if self.config.endpoint:
            scheme, host = split_endpoint(self.config.endpoint)
            if self.config.path_style:
                return f"{scheme}://{host}/{bucket}"
            return f"{scheme}://{bucket}.{host}"
        if self.config.path_style:
            return f"https://s3.{region}.amazonaws.com/{bucket}"
        return f"https://{bucket}.s3.{region}.amazonaws.com"

    def public_url(self, key: str) -> str:
        return build_public_url(key, self.default_base_url(), self.config.cdn_domain)

    def _get_object_bytes(self, key: str, extra_args: Dict[str, Any]) -> bytes:
        response = self.s3_client.get_object(Bucket=self.bucket, Key=key, **extra_args)
        body = response.get("Body")
        if body is None:
            raise BackendError(f"Invalid response body for {key}", self.name)
        return body.read()

    async def upload(self, file: bytes, file_name: str, context: Optional[StorageContext] = None) -> UploadResult:
        """
        Uploads a file to the configured S3 bucket.

        Args:
            file (bytes): The file content.
            file_name (str): The name of the file.
            context (StorageContext): "directory" and optional "extra_args"
                (e.g. {"ACL": "public-read", "ContentType": "..."}).

        Returns:
            UploadResult: The public URL, the object key and the ETag.
        """
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        params = {"ContentType": guess_content_type(file_name)}
        params.update(context_extra_args(context, RESERVED_REQUEST_FIELDS, self.name))

        try:
            logger.info(f"Uploading {key} to S3 bucket '{self.bucket}'...")
            response = await asyncio.to_thread(
                self.s3_client.put_object, Bucket=self.bucket, Key=key, Body=file, **params
            )
        except Exception as e:
            logger.error(f"Failed to upload {key} to S3: {e}")
            raise

        result: UploadResult = {"url": self.public_url(key), "path": key, "provider": self.name}
        etag = (response or {}).get("ETag")
        if etag:
            result["etag"] = etag.strip('"')
        logger.info(f"Successfully uploaded to S3: {result['url']}")
        return result

    async def download(self, file_name: str, context: Optional[StorageContext] = None) -> bytes:
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        extra_args = context_extra_args(context, RESERVED_REQUEST_FIELDS, self.name)
        try:
            return await asyncio.to_thread(self._get_object_bytes, key, extra_args)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                raise NotFoundError(key, self.name) from e
            logger.error(f"Failed to download {key} from S3: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to download {key} from S3: {e}")
            raise

    async def delete(self, file_name: str, context: Optional[StorageContext] = None) -> DeleteResult:
        """
        Deletes a file from S3. S3 reports success for missing keys; compatible
        services that answer NoSuchKey are reported as {"success": False}.
        """
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        extra_args = context_extra_args(context, RESERVED_REQUEST_FIELDS, self.name)
        try:
            await asyncio.to_thread(self.s3_client.delete_object, Bucket=self.bucket, Key=key, **extra_args)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                logger.info(f"Deletion requested for {key}, but it does not exist in S3.")
                return {"success": False, "message": "File not found"}
            logger.error(f"Failed to delete {key} from S3: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to delete {key} from S3: {e}")
            raise

        logger.info(f"Deleted {key} from S3 bucket '{self.bucket}'.")
        return {"success": True}

    async def list(self, context: Optional[StorageContext] = None) -> List[str]:
        """
        Lists the first page of files directly under the context directory.
        Pass {"extra_args": {"ContinuationToken": ...}} to fetch later pages.
        """
        list_prefix = build_list_prefix(self.prefix, context_directory(context))
        extra_args = context_extra_args(context, ("Bucket", "Prefix", "Delimiter"), self.name)
        try:
            response = await asyncio.to_thread(
                self.s3_client.list_objects_v2,
                Bucket=self.bucket,
                Prefix=list_prefix,
                Delimiter="/",
                **extra_args,
            )
        except Exception as e:
            logger.error(f"Failed to list S3 objects under '{list_prefix}': {e}")
            raise

        names = [strip_list_prefix(obj["Key"], list_prefix) for obj in response.get("Contents", [])]
        return [name for name in names if name]

    async def get_url(self, file_name: str, context: Optional[StorageContext] = None) -> str:
        """
        Returns the public (CDN or bucket) URL, or a presigned GET URL when
        "expires_in" or "signed" is given in the context.
        """
        require_file_name(file_name)
        key = self.object_key(file_name, context_directory(context))
        if not wants_signed_url(context):
            return self.public_url(key)

        expires_in = context_expires_in(context)
        params = context_extra_args(context, RESERVED_REQUEST_FIELDS, self.name)
        params.update({"Bucket": self.bucket, "Key": key})
        try:
            url = self.s3_client.generate_presigned_url('get_object', Params=params, ExpiresIn=expires_in)
        except Exception as e:
            logger.error(f"Failed to generate a presigned URL for {key}: {e}")
            raise
        logger.debug(f"Generated presigned URL for {key} (expires in {expires_in}s)")
        return url

    async def test_connection(self) -> ConnectionResult:
        try:
            # Only request one item to minimize data transfer
            await asyncio.to_thread(self.s3_client.list_objects_v2, Bucket=self.bucket, MaxKeys=1)
        except ClientError as e:
            logger.error(f"S3 connection test failed: {e}")
            code = _error_code(e)
            template = CONNECTION_ERROR_MESSAGES.get(code)
            reason = template.format(bucket=self.bucket) if template else str(e)
            return {"success": False, "message": f"Connection failed: {reason}"}
        except EndpointConnectionError as e:
            logger.error(f"S3 connection test failed: {e}")
            return {
                "success": False,
                "message": "Connection failed: Network connection failed, please check region settings or network connection",
            }
        except Exception as e:
            logger.error(f"S3 connection test failed: {e}")
            return {"success": False, "message": f"Connection failed: {str(e) or 'Unknown error'}"}

        return {
            "success": True,
            "message": "S3 connection successful, credentials valid and bucket accessible",
        }

import io
import unittest
from types import SimpleNamespace
from unittest.mock import patch

from storage_provider.exceptions import ConfigurationError, NotFoundError
from storage_provider.providers.aliyun import AliyunOSSProvider

OSS_OPTIONS = {
    "access_key_id": "mock-access-key",
    "access_key_secret": "mock-secret-key",
    "bucket": "mock-bucket",
    "region": "oss-cn-hangzhou",
}


class FakeNoSuchKey(Exception):
    pass


class FakeBucket:
    """In-memory stand-in for oss2.Bucket."""

    def __init__(self):
        self.storage = {}
        self.headers = {}

    def put_object(self, key, data, headers=None):
        self.storage[key] = data
        self.headers[key] = headers
        return SimpleNamespace(etag=f"etag-{len(data)}")

    def get_object(self, key, headers=None):
        if key not in self.storage:
            raise FakeNoSuchKey(key)
        return io.BytesIO(self.storage[key])

    def delete_object(self, key):
        self.storage.pop(key, None)

    def list_objects(self, prefix='', delimiter='', marker='', max_keys=100):
        keys = [
            key for key in self.storage
            if key.startswith(prefix) and not (delimiter and delimiter in key[len(prefix):])
        ]
        return SimpleNamespace(object_list=[SimpleNamespace(key=key) for key in keys[:max_keys]])

    def sign_url(self, method, key, expires, headers=None, params=None, slash_safe=False):
        return f"https://mock-bucket.oss-cn-hangzhou.aliyuncs.com/{key}?Expires={expires}&Signature=mock"


class TestAliyunOSSConfiguration(unittest.TestCase):

    @patch('storage_provider.providers.aliyun.oss2')
    def test_missing_credentials_fail_fast(self, mock_oss2):
        options = dict(OSS_OPTIONS)
        options.pop("access_key_secret")

        with self.assertRaises(ConfigurationError):
            AliyunOSSProvider(**options)
        mock_oss2.Bucket.assert_not_called()

    @patch('storage_provider.providers.aliyun.oss2')
    def test_endpoint_resolution(self, mock_oss2):
        cases = [
            ({}, "https://oss-cn-hangzhou.aliyuncs.com", "https://mock-bucket.oss-cn-hangzhou.aliyuncs.com/a.png"),
            ({"region": "cn-beijing", "secure": False}, "http://oss-cn-beijing.aliyuncs.com",
             "http://mock-bucket.oss-cn-beijing.aliyuncs.com/a.png"),
            ({"internal": True}, "https://oss-cn-hangzhou-internal.aliyuncs.com",
             "https://mock-bucket.oss-cn-hangzhou-internal.aliyuncs.com/a.png"),
            ({"endpoint": "https://static.example.com", "cname": True}, "https://static.example.com",
             "https://static.example.com/a.png"),
            ({"cdn_domain": "https://cdn.example.com"}, "https://oss-cn-hangzhou.aliyuncs.com",
             "https://cdn.example.com/a.png"),
        ]
        for options, endpoint, url in cases:
            with self.subTest(options=options):
                provider = AliyunOSSProvider(**{**OSS_OPTIONS, **options})
                self.assertEqual(mock_oss2.Bucket.call_args[0][1], endpoint)
                self.assertEqual(provider.public_url("a.png"), url)

    @patch('storage_provider.providers.aliyun.oss2')
    def test_cname_without_endpoint_fails_fast(self, mock_oss2):
        with self.assertRaises(ConfigurationError) as ctx:
            AliyunOSSProvider(**OSS_OPTIONS, cname=True)

        self.assertIn("cname requires endpoint", str(ctx.exception))
        mock_oss2.Bucket.assert_not_called()

    @patch('storage_provider.providers.aliyun.oss2')
    def test_bucket_options(self, mock_oss2):
        AliyunOSSProvider(**OSS_OPTIONS, endpoint="static.example.com", cname=True, timeout=30)

        mock_oss2.Auth.assert_called_once_with("mock-access-key", "mock-secret-key")
        kwargs = mock_oss2.Bucket.call_args[1]
        self.assertTrue(kwargs["is_cname"])
        self.assertEqual(kwargs["connect_timeout"], 30)


class TestAliyunOSSProvider(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        oss2_patcher = patch('storage_provider.providers.aliyun.oss2')
        self.mock_oss2 = oss2_patcher.start()
        self.addCleanup(oss2_patcher.stop)
        error_patcher = patch('storage_provider.providers.aliyun.NoSuchKey', FakeNoSuchKey)
        error_patcher.start()
        self.addCleanup(error_patcher.stop)

        self.bucket = FakeBucket()
        self.mock_oss2.Bucket.return_value = self.bucket
        self.provider = AliyunOSSProvider(**OSS_OPTIONS, prefix="uploads")

    async def test_upload(self):
        result = await self.provider.upload(b"Mock upload content", "test-upload.txt", {"directory": "docs"})

        self.assertEqual(result, {
            "url": "https://mock-bucket.oss-cn-hangzhou.aliyuncs.com/uploads/docs/test-upload.txt",
            "path": "uploads/docs/test-upload.txt",
            "provider": "aliyun-oss",
            "etag": "etag-19",
        })
        self.assertEqual(self.bucket.headers["uploads/docs/test-upload.txt"], {"Content-Type": "text/plain"})

    async def test_upload_headers_pass_through(self):
        await self.provider.upload(b"x", "a.txt", {"extra_args": {"x-oss-object-acl": "public-read"}})

        self.assertEqual(self.bucket.headers["uploads/a.txt"]["x-oss-object-acl"], "public-read")

    async def test_round_trip(self):
        content = b"Mock download content"
        await self.provider.upload(content, "test-download.txt")

        self.assertEqual(await self.provider.download("test-download.txt"), content)

    async def test_download_missing_key_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            await self.provider.download("missing.txt")

    async def test_delete_twice(self):
        await self.provider.upload(b"Content to delete", "test-delete.txt")

        self.assertEqual(await self.provider.delete("test-delete.txt"), {"success": True})
        self.assertEqual(await self.provider.delete("test-delete.txt"), {"success": True})
        with self.assertRaises(NotFoundError):
            await self.provider.download("test-delete.txt")

    async def test_list_is_scoped_to_directory(self):
        await self.provider.upload(b"a", "a.txt", {"directory": "sub"})
        await self.provider.upload(b"b", "b.txt")

        self.assertEqual(await self.provider.list({"directory": "sub"}), ["a.txt"])
        self.assertEqual(await self.provider.list(), ["b.txt"])

    async def test_get_url(self):
        self.assertEqual(
            await self.provider.get_url("test-url.txt"),
            "https://mock-bucket.oss-cn-hangzhou.aliyuncs.com/uploads/test-url.txt",
        )

        signed = await self.provider.get_url("test-url.txt", {"expires_in": 120})
        self.assertIn("uploads/test-url.txt", signed)
        self.assertIn("Expires=120", signed)

    async def test_connection(self):
        self.assertEqual(await self.provider.test_connection(), {"success": True, "message": "Connection successful"})

        with patch.object(self.bucket, "list_objects", side_effect=RuntimeError("denied")):
            result = await self.provider.test_connection()
        self.assertEqual(result, {"success": False, "message": "Connection failed: denied"})


if __name__ == '__main__':
    unittest.main()

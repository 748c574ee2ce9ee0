import os
import tempfile
import unittest
from unittest.mock import patch

from storage_provider.config import build_provider_settings, create_driver
from storage_provider.core.config_loader import load_raw_config
from storage_provider.exceptions import ProviderNotFoundError
from storage_provider.providers.local import LocalStorageProvider


class TestBuildProviderSettings(unittest.TestCase):

    def test_local_provider_is_always_present(self):
        settings = build_provider_settings({})

        self.assertEqual(settings, {"local": {"provider_class": "local"}})

    def test_cloud_providers_are_registered_when_configured(self):
        settings = build_provider_settings({
            "local_storage_dir": "/srv/files",
            "aws_s3_bucket": "bucket",
            "aws_s3_region": "us-east-1",
            "aws_s3_prefix": "",
            "qcloud_cos_secret_id": "id",
        })

        self.assertEqual(settings["local"], {"provider_class": "local", "base_path": "/srv/files"})
        self.assertEqual(settings["s3"], {"provider_class": "s3", "bucket": "bucket", "region": "us-east-1"})
        self.assertEqual(settings["qcloud"], {"provider_class": "qcloud", "secret_id": "id"})
        self.assertNotIn("aliyun", settings)

    def test_declared_providers_are_merged(self):
        settings = build_provider_settings({
            "aws_s3_bucket": "bucket",
            "storage_providers": {
                "s3": {"prefix": "uploads"},
                "archive": {"provider_class": "local", "base_path": "/srv/archive"},
            },
        })

        self.assertEqual(settings["s3"], {"provider_class": "s3", "bucket": "bucket", "prefix": "uploads"})
        self.assertEqual(settings["archive"], {"provider_class": "local", "base_path": "/srv/archive"})


class TestCreateDriver(unittest.TestCase):

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.base_path = tmp.name

    def test_defaults_to_local(self):
        driver = create_driver({"local_storage_dir": self.base_path})

        self.assertEqual(driver.default_provider_name, "local")
        self.assertIsInstance(driver.get_default_provider(), LocalStorageProvider)

    def test_configured_default_provider(self):
        driver = create_driver({
            "local_storage_dir": self.base_path,
            "aws_s3_bucket": "bucket",
            "storage_default_provider": "s3",
        })

        self.assertEqual(driver.default_provider_name, "s3")
        self.assertEqual(driver.provider_names, ["local", "s3"])

    @patch('storage_provider.config.configure_logging')
    def test_configures_logging(self, mock_configure_logging):
        create_driver({"local_storage_dir": self.base_path})

        mock_configure_logging.assert_called_once_with()

    def test_unknown_default_provider(self):
        with self.assertRaises(ProviderNotFoundError):
            create_driver({"storage_default_provider": "aliyun"})


class TestLoadRawConfig(unittest.TestCase):

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.config_file = os.path.join(tmp.name, "config.yaml")

    def _write(self, text):
        with open(self.config_file, "w") as f:
            f.write(text)

    def test_yaml_keys_are_lowercased_and_env_overrides(self):
        self._write("AWS_S3_BUCKET: yaml-bucket\nAWS_S3_REGION: eu-west-1\n")

        with patch.dict(os.environ, {"AWS_S3_BUCKET": "env-bucket"}, clear=True):
            config = load_raw_config(self.config_file)

        self.assertEqual(config["aws_s3_bucket"], "env-bucket")
        self.assertEqual(config["aws_s3_region"], "eu-west-1")

    def test_missing_file_is_ignored(self):
        with patch.dict(os.environ, {"QCLOUD_COS_REGION": "ap-guangzhou"}, clear=True):
            config = load_raw_config(os.path.join(os.path.dirname(self.config_file), "missing.yaml"))

        self.assertEqual(config["qcloud_cos_region"], "ap-guangzhou")

    def test_invalid_yaml_is_logged_and_ignored(self):
        self._write("storage_providers: [unclosed\n")

        with self.assertLogs("storage_provider", level="WARNING"):
            config = load_raw_config(self.config_file)
        self.assertNotIn("storage_providers", config)


if __name__ == '__main__':
    unittest.main()

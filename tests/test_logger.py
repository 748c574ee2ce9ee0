import logging
import unittest
from unittest.mock import patch

from storage_provider.utils.logger import LOG_FORMAT, configure_logging, logger


class TestConfigureLogging(unittest.TestCase):

    def test_logger_name(self):
        self.assertEqual(logger.name, "storage_provider")

    @patch('storage_provider.utils.logger.logging.basicConfig')
    def test_level_from_environment(self, mock_basic_config):
        with patch.dict('os.environ', {"STORAGE_LOG_LEVEL": "debug"}):
            configure_logging()

        kwargs = mock_basic_config.call_args[1]
        self.assertEqual(kwargs["level"], "DEBUG")
        self.assertEqual(kwargs["format"], LOG_FORMAT)
        self.assertIsInstance(kwargs["handlers"][0], logging.StreamHandler)

    @patch('storage_provider.utils.logger.logging.basicConfig')
    def test_explicit_level(self, mock_basic_config):
        configure_logging("warning")

        self.assertEqual(mock_basic_config.call_args[1]["level"], "WARNING")


if __name__ == '__main__':
    unittest.main()

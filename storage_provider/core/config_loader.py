import os
import yaml
from dotenv import load_dotenv
from typing import Any, Dict, Optional

from storage_provider.utils.logger import logger

DEFAULT_CONFIG_FILE = "config.yaml"


def load_raw_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads storage settings from a YAML file and .env, then merges them.
    Environment variables override YAML settings. The matching is case-insensitive.
    Returns a dictionary with all keys converted to lowercase for consistent access.
    """
    # Load the .env file into the environment
    load_dotenv()

    config = {}
    config_file = config_file or os.getenv("STORAGE_CONFIG_FILE", DEFAULT_CONFIG_FILE)

    # 1. Load base configuration from the YAML file (optional)
    try:
        with open(config_file, "r") as f:
            yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                # Store YAML config with lowercase keys
                config.update({k.lower(): v for k, v in yaml_config.items()})
    except FileNotFoundError:
        # It's okay if the YAML file doesn't exist
        pass
    except yaml.YAMLError as e:
        logger.warning(f"Could not parse {config_file}. Error: {e}")

    # 2. Load and override with environment variables
    for key, value in os.environ.items():
        config[key.lower()] = value

    return config

# Create a singleton config object to be imported by other modules
raw_config = load_raw_config()

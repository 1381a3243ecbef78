import json
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE_PATH = Path(__file__).resolve().parents[1] / 'configs' / 'sim_config.json'
CONFIG_FILE_PATH = Path(os.getenv('DERBY_SIM_CONFIG', str(DEFAULT_CONFIG_FILE_PATH)))

_TRUTHY = ("1", "true", "yes", "on")


def load_config(path=None):
    """
    Loads the simulator config file. Returns None when it is missing or broken,
    in which case every lookup falls back to its default.
    """
    path = Path(path) if path else CONFIG_FILE_PATH
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except FileNotFoundError:
        logger.warning("Config file not found at %s, using defaults", path)
        return None
    except json.JSONDecodeError as e:
        logger.error("Could not parse config file %s: %s", path, e)
        return None


# Load the config ONCE when the module is first imported
SIM_CONFIG = load_config()


def get_config(key_path, default=None):
    """
    Safely gets a value from the loaded config using a 'dot.path'.
    Example: get_config('race_engine.timestep')
    """
    if not SIM_CONFIG:
        return default

    try:
        value = SIM_CONFIG
        for key in key_path.split('.'):
            value = value[key]
        return value
    except (KeyError, TypeError):
        logger.debug("Config key %s not set, using default %r", key_path, default)
        return default


def legacy_mode_enabled() -> bool:
    config_flag = bool(get_config("race_engine.legacy_mode", False))
    env_value = os.getenv("DERBY_SIM_LEGACY_MODE")
    if env_value is not None:
        config_flag = env_value.lower() in _TRUTHY
    return config_flag

"""Configuration handling for the Chorus gateway."""

import yaml
import logging
import os
from pathlib import Path
from typing import Dict, Any

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

log_dir = Path(__file__).parent.parent.parent / "logs"


def get_fanout_logger() -> logging.Logger:
    """
    Logger for fan-out progress. The first call attaches a file handler
    appending to logs/fanout.log.
    """
    fanout_logger = logging.getLogger("fanout")
    if not any(
        isinstance(handler, logging.FileHandler) for handler in fanout_logger.handlers
    ):
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(str(log_dir / "fanout.log"), mode="a")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
        )
        fanout_logger.setLevel(logging.INFO)
        fanout_logger.addHandler(file_handler)
        fanout_logger.propagate = True
    return fanout_logger


DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "server": {
        "host": "127.0.0.1",
        "port": 10301,
        "shutdown_timeout": 3,
        "cors_origins": ["*"],
    },
    "settings": {
        "timeout": 30,
        "max_concurrency": 0,
        "service_name": "chorus-gateway",
    },
}


def config_path() -> Path:
    """Location of the YAML config, overridable through CHORUS_CONFIG."""
    override = os.environ.get("CHORUS_CONFIG")
    if override:
        return Path(override)
    return Path(__file__).parent.parent.parent / "config.yaml"


def load_config() -> Dict[str, Dict[str, Any]]:
    """
    Load configuration from config.yaml.

    Sections found in the file are merged over DEFAULT_CONFIG key by key, so a
    partial file only overrides what it names. A missing or unreadable file
    falls back to the defaults.
    """
    merged = {section: dict(values) for section, values in DEFAULT_CONFIG.items()}
    path = config_path()
    try:
        loaded = yaml.safe_load(path.read_text()) or {}
        logger.info(f"Successfully loaded configuration from {path}")
    except Exception as e:
        logger.error(f"Error loading {path}: {str(e)}")
        return merged

    if not isinstance(loaded, dict):
        logger.error(f"Ignoring {path}: top level must be a mapping")
        return merged

    for section, values in loaded.items():
        if isinstance(values, dict):
            merged.setdefault(section, {}).update(values)
        else:
            logger.warning(f"Ignoring config section {section!r}: not a mapping")
    return merged


config = load_config()

HOST = config["server"]["host"]
PORT = int(config["server"]["port"])
SHUTDOWN_TIMEOUT = config["server"]["shutdown_timeout"]
CORS_ORIGINS = config["server"]["cors_origins"]

TIMEOUT = config["settings"].get("timeout", 30)
if not TIMEOUT or TIMEOUT <= 0:
    logger.warning("Default timeout not set in config.yaml, using 30 seconds")
    TIMEOUT = 30

MAX_CONCURRENCY = int(config["settings"].get("max_concurrency") or 0)
SERVICE_NAME = config["settings"]["service_name"]

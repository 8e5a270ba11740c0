"""Environment and utility functions."""

import logging
import os
import sys
from pathlib import Path

import keyring
from keyring.errors import KeyringError

from ..config import API_KEY_NAMES, ENV_FILE, LOG_DATE_FORMAT, LOG_FORMAT

SERVICE_NAME = "photo_retoucher"
KEYRING_USERNAME = "api_key"

logger = logging.getLogger(__name__)


def _read_key_from_file(env_file: str = ENV_FILE) -> str | None:
    """Internal helper to read the API key from a .env file."""
    env_path = Path(env_file)
    if not env_path.exists():
        return None
    try:
        with open(env_path, encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith('#') or '=' not in line:
                    continue
                name, value = line.split('=', 1)
                if name.strip() in API_KEY_NAMES:
                    value = value.strip().strip('"').strip("'")
                    if value and value != 'your_key_here':
                        return value
    except OSError as e:
        logger.debug(f"Failed to read {env_file}: {e}")
    return None


def retrieve_key_secure() -> str | None:
    """Retrieve the API key from the system keyring, if one is stored."""
    try:
        return keyring.get_password(SERVICE_NAME, KEYRING_USERNAME)
    except KeyringError as e:
        logger.debug(f"Keyring unavailable: {e}")
        return None


def load_api_key(env_file: str = ENV_FILE) -> str | None:
    """Load the service API key from environment, keyring, or .env file.

    Provisioning keys is outside this package; this only looks them up.

    Returns:
        Key string or None if not found
    """
    for name in API_KEY_NAMES:
        key = os.getenv(name)
        if key:
            return key

    key = retrieve_key_secure()
    if key:
        return key

    return _read_key_from_file(env_file)


# Default log file location
DEFAULT_LOG_FILE = "photo_retoucher.log"


def setup_logging(level: int = logging.INFO, log_file: str | None = DEFAULT_LOG_FILE) -> None:
    """Set up logging configuration.

    Logs are written to both console (stderr) and a file.

    Args:
        level: Logging level
        log_file: Path to log file (None to disable file logging)
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
            handlers.append(file_handler)
        except OSError as e:
            # Fall back to console-only if file logging fails
            print(f"Warning: Could not open log file '{log_file}': {e}", file=sys.stderr)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True  # Replace any existing handlers
    )

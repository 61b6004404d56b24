"""Runtime configuration for StrongBox.

Values are resolved in this order, later wins:

1. built-in defaults
2. an optional JSON file::

       {
         "files_path": "files/",
         "aes_key": "<64 hex characters>",
         "database": "strongbox.db",
         "hashing": {"time_cost": 3, "memory_cost": 65536, "parallelism": 1},
         "sanitize_filenames": true
       }

3. environment variables ``STRONGBOX_FILES_PATH``, ``STRONGBOX_AES_KEY`` and
   ``STRONGBOX_DB_PATH``

If no key is configured after that, the OS keyring entry written by
``strongbox keygen --store`` is used.
"""

from __future__ import annotations

import binascii
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .core.exceptions import ConfigurationError
from .security import keystore
from .security.cipher import KEY_SIZE

logger = logging.getLogger(__name__)

DEFAULT_FILES_PATH = "files"
DEFAULT_DB_PATH = "strongbox.db"

ENV_FILES_PATH = "STRONGBOX_FILES_PATH"
ENV_AES_KEY = "STRONGBOX_AES_KEY"
ENV_DB_PATH = "STRONGBOX_DB_PATH"


def normalize_files_path(path: Optional[str]) -> str:
    """Default to ``files`` and always end with a path separator."""
    path = str(path) if path else DEFAULT_FILES_PATH
    if not path.endswith(os.sep):
        path += os.sep
    return path


def parse_key(value: str) -> bytes:
    """Decode a hex key; its size is checked again by the cipher."""
    try:
        key = bytes.fromhex(value.strip())
    except (ValueError, AttributeError) as e:
        raise ConfigurationError("AES key must be a hex string") from e
    if len(key) != KEY_SIZE:
        raise ConfigurationError(
            f"AES key must be {KEY_SIZE} bytes ({KEY_SIZE * 2} hex characters), got {len(key)} bytes"
        )
    return key


@dataclass
class HashingParams:
    """Argon2id cost parameters used to stretch client digests."""

    time_cost: int = 3
    memory_cost: int = 65536
    parallelism: int = 1


@dataclass
class Configuration:
    """Everything needed to build the services."""

    aes_key: bytes = field(repr=False)
    files_path: str = normalize_files_path(None)
    db_path: str = DEFAULT_DB_PATH
    hashing: HashingParams = field(default_factory=HashingParams)
    sanitize_filenames: bool = True

    def __post_init__(self):
        self.files_path = normalize_files_path(self.files_path)


def _read_config_file(path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in configuration file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must hold a JSON object")
    return data


def _key_from_keyring() -> Optional[bytes]:
    try:
        return keystore.load_key()
    except RuntimeError as e:
        logger.warning("Keyring lookup skipped: %s", e)
        return None


def load_configuration(
    path: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    use_keyring: bool = True,
) -> Configuration:
    """Build a Configuration from defaults, ``path``, the environment and the keyring."""
    env = os.environ if environ is None else environ
    data = _read_config_file(path) if path else {}

    files_path = env.get(ENV_FILES_PATH) or data.get("files_path")
    db_path = env.get(ENV_DB_PATH) or data.get("database") or DEFAULT_DB_PATH

    key_hex = env.get(ENV_AES_KEY) or data.get("aes_key")
    if key_hex:
        key = parse_key(key_hex)
    else:
        key = _key_from_keyring() if use_keyring else None
        if key is not None and len(key) != KEY_SIZE:
            raise ConfigurationError("AES key stored in the keyring has the wrong size")
    if key is None:
        raise ConfigurationError(
            f"No AES key configured; set {ENV_AES_KEY} or run 'strongbox keygen --store'"
        )

    hashing_data = data.get("hashing") or {}
    try:
        hashing = HashingParams(
            time_cost=int(hashing_data.get("time_cost", HashingParams.time_cost)),
            memory_cost=int(hashing_data.get("memory_cost", HashingParams.memory_cost)),
            parallelism=int(hashing_data.get("parallelism", HashingParams.parallelism)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid hashing parameters: {e}") from e

    sanitize_filenames = data.get("sanitize_filenames", True)
    if not isinstance(sanitize_filenames, bool):
        raise ConfigurationError("sanitize_filenames must be true or false")

    return Configuration(
        aes_key=key,
        files_path=files_path,
        db_path=db_path,
        hashing=hashing,
        sanitize_filenames=sanitize_filenames,
    )

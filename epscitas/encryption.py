"""
This module manages the symmetric key that protects the persisted session.

It uses the `cryptography` library (Fernet symmetric encryption) so that the
session token and user record kept on disk are not readable in plain text.
The module is responsible for:
- Generating a key file the first time the client runs.
- Loading the key from that file.
- Building the `Fernet` instance used by `SessionStorage`.

Security Note: the key file must stay out of version control, next to the
session file it protects.
"""
# epscitas/encryption.py

import logging
import os

from cryptography.fernet import Fernet

logger = logging.getLogger(__name__)


def write_key(key_file: str) -> bytes:
    """Generates a new Fernet key and saves it to `key_file`.

    Returns:
        bytes: The key that was written.
    """
    key = Fernet.generate_key()
    directory = os.path.dirname(key_file)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(key_file, "wb") as fh:
        fh.write(key)
    return key


def load_key(key_file: str) -> bytes:
    """Loads the Fernet key stored in `key_file`.

    Raises:
        FileNotFoundError: If the key has not been generated yet.
    """
    with open(key_file, "rb") as fh:
        return fh.read().strip()


def get_encryptor(key_file: str) -> Fernet:
    """Returns a `Fernet` built from `key_file`, generating the key on first use."""
    try:
        key = load_key(key_file)
    except FileNotFoundError:
        logger.info("Encryption key %s not found, generating a new one", key_file)
        key = write_key(key_file)
    return Fernet(key)

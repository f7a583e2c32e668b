"""
API credentials: environment first, then the system keyring.
"""

import os
import logging
from typing import Dict, Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "scanctl"

# provider -> (environment variable, keyring username)
PROVIDERS: Dict[str, tuple] = {
    "gemini": ("GEMINI_API_KEY", "gemini-api-key"),
    "github": ("GITHUB_TOKEN", "github-token"),
}


def _provider(provider: str) -> tuple:
    try:
        return PROVIDERS[provider.lower()]
    except KeyError:
        raise ValueError(f"Unknown credential provider: {provider}") from None


def get_api_key(provider: str) -> Optional[str]:
    """Look up a credential for ``provider`` ('gemini' or 'github')."""
    env_name, username = _provider(provider)

    key = os.getenv(env_name)
    if key:
        return key

    try:
        return keyring.get_password(KEYRING_SERVICE, username)
    except KeyringError as e:
        logger.warning(f"Could not read {provider} credential from keyring: {e}")
        return None


def store_api_key(provider: str, key: str) -> None:
    """Save a credential in the system keyring.

    Raises:
        keyring.errors.KeyringError: If no usable keyring backend is available
    """
    _, username = _provider(provider)
    keyring.set_password(KEYRING_SERVICE, username, key)


def clear_api_key(provider: str) -> bool:
    """Remove a stored credential. Returns False if none was stored."""
    _, username = _provider(provider)
    try:
        keyring.delete_password(KEYRING_SERVICE, username)
        return True
    except PasswordDeleteError:
        return False


def mask_api_key(key: Optional[str]) -> str:
    """Mask an API key for display, showing only first/last few characters."""
    if not key or len(key) < 8:
        return "***"
    return f"{key[:4]}...{key[-4:]}"

"""
credentials.py — Where the Gemini API key comes from.

The key is looked up through an explicit CredentialProvider handed to the
session and orchestrator; nothing reads it from ambient global state.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

API_KEY_ENV = "GEMINI_API_KEY"


class CredentialProvider(Protocol):
    """Interface for obtaining the opaque API credential."""

    def has_credential(self) -> bool:
        """Return True if a usable credential is available."""

    def request_credential(self) -> None:
        """Ask the user (or environment) to supply a credential."""

    def get_credential(self) -> Optional[str]:
        """Return the credential, or None if absent."""


@dataclass
class EnvCredentialProvider:
    """Reads the key from an environment variable. Cannot prompt."""

    env_var: str = API_KEY_ENV

    def has_credential(self) -> bool:
        return bool(self.get_credential())

    def request_credential(self) -> None:
        logger.warning("%s is not set; add it to the environment or .env", self.env_var)

    def get_credential(self) -> Optional[str]:
        value = os.environ.get(self.env_var, "").strip()
        return value or None


@dataclass
class StaticCredentialProvider:
    """Holds a key supplied up front (bot sessions, tests)."""

    api_key: Optional[str] = None

    def has_credential(self) -> bool:
        return bool(self.api_key)

    def request_credential(self) -> None:
        return None

    def get_credential(self) -> Optional[str]:
        return self.api_key or None

"""
Credential sources.

Credentials belong to an external key store; the orchestrator only reads
them, in the order the store lists them. Two sources are provided:

- ``FileCredentialSource`` reads an ordered JSON list on every call, so edits
  made by the key store are picked up without a restart.
- ``StaticCredentialSource`` holds a fixed list (environment keys, tests).
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Iterable

import aiofiles

from core.config import APIConfig, Config

from .models import Credential

logger = logging.getLogger(__name__)


class CredentialSource(ABC):
    """Read-only, ordered view over stored provider credentials."""

    @abstractmethod
    async def list_credentials(self) -> list[Credential]:
        """All stored credentials in list order, usable or not."""


class StaticCredentialSource(CredentialSource):
    def __init__(self, credentials: Iterable[Credential]):
        self._credentials = list(credentials)

    async def list_credentials(self) -> list[Credential]:
        return list(self._credentials)


class FileCredentialSource(CredentialSource):
    """
    Credentials stored as JSON, either a bare list or ``{"keys": [...]}``.

    Example record:
        {"id": "k1", "name": "Sora", "provider": "openai", "apiKey": "sk-...",
         "enabled": true, "videoEnabled": true, "videoModels": ["sora-2"]}
    """

    def __init__(self, path: str):
        self.path = path

    async def list_credentials(self) -> list[Credential]:
        try:
            async with aiofiles.open(self.path, "r") as f:
                raw = await f.read()
        except FileNotFoundError:
            logger.warning(f"Credential file not found: {self.path}")
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Credential file {self.path} is not valid JSON: {e}")
            return []

        records = data.get("keys", []) if isinstance(data, dict) else data
        credentials = []
        for record in records:
            if not isinstance(record, dict):
                logger.warning(f"Skipping malformed credential record in {self.path}")
                continue
            credentials.append(Credential.from_dict(record))
        return credentials


def credentials_from_env(api: APIConfig) -> list[Credential]:
    """One video-enabled credential per provider key present in the environment."""
    credentials = []
    if api.openai_api_key:
        credentials.append(Credential(
            id="env-openai",
            name="OPENAI_API_KEY",
            provider="openai",
            api_key=api.openai_api_key,
            video_enabled=True,
        ))
    if api.wavespeed_api_key:
        credentials.append(Credential(
            id="env-wavespeed",
            name="WAVESPEED_API_KEY",
            provider="wavespeed",
            api_key=api.wavespeed_api_key,
            video_enabled=True,
        ))
    return credentials


def create_credential_source(config: Config) -> CredentialSource:
    if config.api.credentials_file:
        logger.info(f"Reading video credentials from {config.api.credentials_file}")
        return FileCredentialSource(config.api.credentials_file)
    return StaticCredentialSource(credentials_from_env(config.api))

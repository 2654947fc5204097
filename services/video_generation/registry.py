"""
Provider registry and credential resolver.

Built once at process start and passed to submission, streaming and
scheduling code. Adapters are looked up by provider tag.
"""

import logging
from typing import Optional

from core.config import Config, get_config

from .credentials import CredentialSource, create_credential_source
from .models import Credential, VideoModelDescriptor
from .providers import PROVIDER_CLASSES, VideoProvider

logger = logging.getLogger(__name__)


# Retired model ids -> consolidated successors. Exact-match keys only, and no
# value is itself a key, so canonical_model_id is idempotent.
LEGACY_MODEL_ALIASES = {
    "sora": "sora-2",
    "wan-2.1/t2v-480p": "wan-2.1/t2v",
    "wan-2.1/t2v-720p": "wan-2.1/t2v",
    "wan-2.1/i2v-480p": "wan-2.1/i2v",
    "wan-2.1/i2v-720p": "wan-2.1/i2v",
    "wan-2.2/t2v-480p": "wan-2.2/t2v",
    "wan-2.2/t2v-720p": "wan-2.2/t2v",
    "wan-2.2/i2v-480p": "wan-2.2/i2v",
    "wan-2.2/i2v-720p": "wan-2.2/i2v",
}


def canonical_model_id(model_id: str) -> str:
    """Map a legacy model id to its successor. Unknown ids pass through."""
    return LEGACY_MODEL_ALIASES.get(model_id, model_id)


class ProviderRegistry:
    """
    Selects adapters and enabled credentials.

    Usage:
        registry = ProviderRegistry.from_config(get_config())

        credential = await registry.resolve("openai")
        provider = registry.get(credential.provider)
        models = registry.models_for(credential)
    """

    def __init__(self, providers: dict[str, VideoProvider], credentials: CredentialSource):
        self.providers = providers
        self.credentials = credentials

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "ProviderRegistry":
        config = config or get_config()
        api = config.api
        bases = {
            "openai": api.openai_api_base,
            "wavespeed": api.wavespeed_api_base,
        }
        providers = {
            name: provider_cls(
                api_base=bases.get(name),
                timeout=api.request_timeout,
                download_timeout=api.download_timeout,
            )
            for name, provider_cls in PROVIDER_CLASSES.items()
        }
        logger.info(f"Video provider registry ready: {', '.join(providers)}")
        return cls(providers, create_credential_source(config))

    def get(self, provider_name: str) -> Optional[VideoProvider]:
        return self.providers.get(provider_name)

    async def resolve(self, preferred_provider: Optional[str] = None) -> Optional[Credential]:
        """First enabled, video-capable credential in list order, optionally for one provider."""
        for credential in await self.credentials.list_credentials():
            if not credential.usable_for_video:
                continue
            if preferred_provider and credential.provider != preferred_provider:
                continue
            return credential
        return None

    async def resolve_all(self) -> list[Credential]:
        """Every enabled, video-capable credential in list order."""
        return [c for c in await self.credentials.list_credentials() if c.usable_for_video]

    def models_for(self, credential: Credential) -> list[VideoModelDescriptor]:
        """The adapter's catalog, narrowed to the credential's allow-list when it has one."""
        provider = self.get(credential.provider)
        if provider is None:
            return []

        models = provider.list_models()
        if not credential.video_models:
            return list(models)

        allowed = {canonical_model_id(model_id) for model_id in credential.video_models}
        return [model for model in models if model.id in allowed]

    def find_model(self, provider_name: str, model_id: str) -> Optional[VideoModelDescriptor]:
        provider = self.get(provider_name)
        if provider is None:
            return None
        return provider.get_model(canonical_model_id(model_id))

    async def close(self):
        for provider in self.providers.values():
            await provider.close()

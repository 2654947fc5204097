"""
Provider Registry Tests

Covers:
1. Credential resolution order and filtering
2. Per-credential model allow-lists with legacy ids
3. Legacy model aliases
4. Credential sources (static, JSON file, environment)

Run with:
    python -m pytest tests/test_registry.py -v
"""

import json
import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import APIConfig  # noqa: E402
from services.video_generation import (  # noqa: E402
    LEGACY_MODEL_ALIASES,
    Credential,
    ProviderRegistry,
    canonical_model_id,
)
from services.video_generation.credentials import (  # noqa: E402
    FileCredentialSource,
    StaticCredentialSource,
    credentials_from_env,
)
from services.video_generation.providers import OpenAIVideoProvider, WaveSpeedVideoProvider  # noqa: E402


def make_registry(*credentials: Credential) -> ProviderRegistry:
    return ProviderRegistry(
        {"openai": OpenAIVideoProvider(), "wavespeed": WaveSpeedVideoProvider()},
        StaticCredentialSource(credentials),
    )


class TestLegacyAliases:
    """Test legacy model id handling."""

    def test_sora_maps_to_sora_2(self):
        assert canonical_model_id("sora") == "sora-2"

    def test_wan_resolution_suffixes(self):
        assert canonical_model_id("wan-2.1/t2v-480p") == "wan-2.1/t2v"
        assert canonical_model_id("wan-2.2/i2v-720p") == "wan-2.2/i2v"

    def test_unknown_ids_pass_through(self):
        assert canonical_model_id("sora-2-pro") == "sora-2-pro"
        assert canonical_model_id("made-up") == "made-up"

    def test_idempotent(self):
        for legacy in LEGACY_MODEL_ALIASES:
            once = canonical_model_id(legacy)
            assert canonical_model_id(once) == once

    def test_every_alias_points_into_a_catalog(self):
        catalog = {m.id for m in OpenAIVideoProvider().list_models() + WaveSpeedVideoProvider().list_models()}
        for legacy, current in LEGACY_MODEL_ALIASES.items():
            assert current in catalog, legacy


class TestResolve:
    """Test credential selection."""

    @pytest.mark.asyncio
    async def test_first_usable_credential_in_list_order(self):
        registry = make_registry(
            Credential(id="a", provider="openai", api_key="k", video_enabled=False),
            Credential(id="b", provider="wavespeed", api_key="k", video_enabled=True, enabled=False),
            Credential(id="c", provider="wavespeed", api_key="k", video_enabled=True),
            Credential(id="d", provider="openai", api_key="k", video_enabled=True),
        )
        credential = await registry.resolve()
        assert credential.id == "c"

    @pytest.mark.asyncio
    async def test_preferred_provider(self):
        registry = make_registry(
            Credential(id="c", provider="wavespeed", api_key="k", video_enabled=True),
            Credential(id="d", provider="openai", api_key="k", video_enabled=True),
        )
        credential = await registry.resolve("openai")
        assert credential.id == "d"

    @pytest.mark.asyncio
    async def test_no_usable_credential(self):
        registry = make_registry(
            Credential(id="a", provider="openai", api_key="k", video_enabled=False),
        )
        assert await registry.resolve() is None
        assert await registry.resolve("wavespeed") is None

    @pytest.mark.asyncio
    async def test_resolve_all_keeps_order(self):
        registry = make_registry(
            Credential(id="a", provider="openai", api_key="k", video_enabled=True),
            Credential(id="b", provider="openai", api_key="k", video_enabled=False),
            Credential(id="c", provider="wavespeed", api_key="k", video_enabled=True),
        )
        assert [c.id for c in await registry.resolve_all()] == ["a", "c"]


class TestModelsFor:
    """Test per-credential model filtering."""

    def test_empty_allow_list_means_full_catalog(self):
        registry = make_registry()
        credential = Credential(id="a", provider="openai", api_key="k", video_enabled=True)
        assert [m.id for m in registry.models_for(credential)] == ["sora-2", "sora-2-pro"]

    def test_allow_list_filters_catalog(self):
        registry = make_registry()
        credential = Credential(
            id="a", provider="openai", api_key="k", video_enabled=True, video_models=["sora-2-pro"],
        )
        assert [m.id for m in registry.models_for(credential)] == ["sora-2-pro"]

    def test_allow_list_accepts_legacy_ids(self):
        registry = make_registry()
        credential = Credential(
            id="a",
            provider="wavespeed",
            api_key="k",
            video_enabled=True,
            video_models=["wan-2.1/t2v-480p", "wan-2.1/t2v-720p", "flux-dev"],
        )
        assert [m.id for m in registry.models_for(credential)] == ["wan-2.1/t2v", "flux-dev"]

    def test_unknown_provider(self):
        registry = make_registry()
        credential = Credential(id="a", provider="runway", api_key="k", video_enabled=True)
        assert registry.models_for(credential) == []

    def test_find_model_resolves_aliases(self):
        registry = make_registry()
        assert registry.find_model("openai", "sora").id == "sora-2"
        assert registry.find_model("openai", "nope") is None
        assert registry.find_model("runway", "sora-2") is None


class TestCredentialRecords:
    """Test parsing stored credential records."""

    def test_camel_case_record(self):
        credential = Credential.from_dict({
            "id": "k1",
            "name": "Sora",
            "provider": "openai",
            "apiKey": "sk-1",
            "enabled": True,
            "videoEnabled": True,
            "videoModels": ["sora"],
        })
        assert credential.api_key == "sk-1"
        assert credential.usable_for_video
        assert credential.video_models == ["sora"]

    def test_snake_case_record(self):
        credential = Credential.from_dict({
            "id": 7, "provider": "wavespeed", "api_key": "ws", "video_enabled": True,
        })
        assert credential.id == "7"
        assert credential.usable_for_video

    def test_missing_flags(self):
        """Enabled defaults on, video capability defaults off."""
        credential = Credential.from_dict({"id": "k", "provider": "openai", "apiKey": "sk"})
        assert credential.enabled
        assert not credential.video_enabled
        assert not credential.usable_for_video

    def test_repr_hides_key(self):
        credential = Credential(id="k", provider="openai", api_key="sk-secret")
        assert "sk-secret" not in repr(credential)


class TestCredentialSources:
    """Test where credentials come from."""

    @pytest.mark.asyncio
    async def test_file_source_list(self, tmp_path):
        path = tmp_path / "keys.json"
        path.write_text(json.dumps([
            {"id": "k1", "provider": "openai", "apiKey": "sk", "videoEnabled": True},
            {"id": "k2", "provider": "wavespeed", "apiKey": "ws", "videoEnabled": False},
        ]))

        credentials = await FileCredentialSource(str(path)).list_credentials()
        assert [c.id for c in credentials] == ["k1", "k2"]

    @pytest.mark.asyncio
    async def test_file_source_keys_envelope(self, tmp_path):
        path = tmp_path / "keys.json"
        path.write_text(json.dumps({"keys": [{"id": "k1", "provider": "openai", "apiKey": "sk"}, "junk"]}))

        credentials = await FileCredentialSource(str(path)).list_credentials()
        assert [c.id for c in credentials] == ["k1"]

    @pytest.mark.asyncio
    async def test_file_source_reads_edits(self, tmp_path):
        """The file is re-read on every call."""
        path = tmp_path / "keys.json"
        path.write_text(json.dumps([]))
        source = FileCredentialSource(str(path))
        assert await source.list_credentials() == []

        path.write_text(json.dumps([{"id": "k1", "provider": "openai", "apiKey": "sk"}]))
        assert len(await source.list_credentials()) == 1

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        source = FileCredentialSource(str(tmp_path / "missing.json"))
        assert await source.list_credentials() == []

    @pytest.mark.asyncio
    async def test_invalid_json(self, tmp_path):
        path = tmp_path / "keys.json"
        path.write_text("{not json")
        assert await FileCredentialSource(str(path)).list_credentials() == []

    def test_env_credentials(self):
        api = APIConfig(openai_api_key="sk-env", wavespeed_api_key="")
        credentials = credentials_from_env(api)

        assert len(credentials) == 1
        assert credentials[0].provider == "openai"
        assert credentials[0].usable_for_video

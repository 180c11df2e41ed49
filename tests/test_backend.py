"""
Tests for backend profile routing, retries and image fallbacks.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from worlddirector.core.guardrails import BackendProfile, GenerationRole
from worlddirector.generation.backend import ChatResult, GenerationBackend, GenerationError


def make_backend(**kwargs):
    profiles = {
        "local": BackendProfile(name="local", provider="local", model="llama3",
                                roles=[GenerationRole.DEFAULT, GenerationRole.LOGIC]),
        "writer": BackendProfile(name="writer", provider="openai", base_url="https://api.example",
                                 model="gpt", roles=[GenerationRole.CREATIVE]),
        "art": BackendProfile(name="art", provider="pollinations", model="flux",
                              roles=[GenerationRole.IMAGE]),
    }
    profiles.update(kwargs)
    return GenerationBackend(profiles, timeout=1, retries=1)


class TestProfileRouting:
    """Test role to profile resolution."""

    def test_role_holder_wins(self):
        backend = make_backend()
        assert backend.profile_for_role(GenerationRole.CREATIVE).name == "writer"
        assert backend.profile_for_role(GenerationRole.LOGIC).name == "local"

    def test_falls_back_to_default(self):
        backend = make_backend()
        backend.update_profiles({"local": backend.profiles["local"]})
        assert backend.profile_for_role(GenerationRole.CREATIVE).name == "local"

    def test_image_prefers_non_local(self):
        local_art = BackendProfile(name="local_art", provider="local", roles=[GenerationRole.IMAGE])
        backend = GenerationBackend({"local_art": local_art, "art": make_backend().profiles["art"]})
        assert backend.profile_for_role(GenerationRole.IMAGE).name == "art"

    def test_no_profiles(self):
        backend = GenerationBackend({})
        assert backend.profile_for_role(GenerationRole.DEFAULT) is None
        with pytest.raises(GenerationError):
            asyncio.run(backend.chat("hi"))


class TestChat:
    """Test retry behaviour of chat requests."""

    def test_retry_then_success(self):
        backend = make_backend()
        reply = ChatResult(text="{}", model="llama3")
        dispatch = AsyncMock(side_effect=[httpx.ConnectError("refused"), reply])
        with patch.object(backend, "_dispatch_chat", dispatch):
            assert asyncio.run(backend.chat("hi")) is reply
        assert dispatch.await_count == 2

    def test_gives_up_after_retries(self):
        backend = make_backend()
        dispatch = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch.object(backend, "_dispatch_chat", dispatch):
            with pytest.raises(GenerationError, match="after 2 attempts"):
                asyncio.run(backend.chat("hi", role=GenerationRole.CREATIVE))
        assert dispatch.await_count == 2


class TestImages:
    """Test image generation never raises."""

    def test_pollinations_url(self):
        result = asyncio.run(make_backend().generate_image("A neon alley?"))
        assert result.url.startswith("https://image.pollinations.ai/prompt/A%20neon%20alley")
        assert "model=flux" in result.url

    def test_failure_yields_empty_url(self):
        backend = make_backend(art=BackendProfile(name="art", provider="openai", base_url="https://img.example",
                                                  roles=[GenerationRole.IMAGE]))
        with patch.object(backend, "_image_openai", AsyncMock(side_effect=httpx.ConnectError("down"))):
            assert asyncio.run(backend.generate_image("a sword")).url == ""

    def test_no_image_profile(self):
        backend = GenerationBackend({})
        assert asyncio.run(backend.generate_image("a sword")).url == ""

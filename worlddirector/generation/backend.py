"""
Generation backend - routes chat and image requests to the profile assigned to each role.
Local profiles talk to Ollama; hosted profiles use OpenAI-compatible or Gemini HTTP APIs.
"""

import asyncio
import logging
import urllib.parse
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import ollama

from util.logging import logger
from ..core.config import GENERATION_RETRIES, GENERATION_TIMEOUT_SEC
from ..core.guardrails import BackendProfile, GenerationRole

log = logging.getLogger(__name__)

POLLINATIONS_TEXT_URL = "https://gen.pollinations.ai/v1"
POLLINATIONS_IMAGE_URL = "https://image.pollinations.ai/prompt"


@dataclass
class ChatResult:
    """Text returned by a backend for one prompt."""
    text: str
    model: str
    usage: Dict[str, int] = None

    def __post_init__(self):
        if self.usage is None:
            self.usage = {}


@dataclass
class ImageResult:
    url: str
    model: str


class GenerationError(Exception):
    """A backend request failed after all attempts."""
    pass


# Transport and response-shape failures that are worth one more attempt
RETRYABLE_ERRORS = (
    GenerationError,
    ollama.ResponseError,
    httpx.HTTPError,
    asyncio.TimeoutError,
    ConnectionError,
    KeyError,
    IndexError,
    TypeError,
)


class GenerationBackend:
    """Chat/image contract over a table of backend profiles."""

    def __init__(self, profiles: Dict[str, BackendProfile], timeout: float = GENERATION_TIMEOUT_SEC,
                 retries: int = GENERATION_RETRIES):
        self.profiles = dict(profiles)
        self.timeout = timeout
        self.retries = retries

    def update_profiles(self, profiles: Dict[str, BackendProfile]) -> None:
        self.profiles = dict(profiles)
        logger.info(f"Generation backend updated with {len(self.profiles)} profiles")

    def profile_for_role(self, role: GenerationRole) -> Optional[BackendProfile]:
        """Pick the profile for a role.

        Order: a profile holding the role (for images, a non-local one first),
        then a profile holding the default role, then the first profile.
        """
        profiles = list(self.profiles.values())
        role = GenerationRole(role)

        holders = [p for p in profiles if role in p.roles]
        if role == GenerationRole.IMAGE:
            non_local = [p for p in holders if p.provider != "local"]
            if non_local:
                return non_local[0]
        if holders:
            return holders[0]

        defaults = [p for p in profiles if GenerationRole.DEFAULT in p.roles]
        if defaults:
            return defaults[0]

        return profiles[0] if profiles else None

    async def chat(self, prompt: str, system_prompt: str = "You are a helpful assistant.",
                   role: GenerationRole = GenerationRole.DEFAULT) -> ChatResult:
        """Send one prompt to the profile for ``role``.

        Each attempt is bounded by the configured timeout; a failed attempt is
        retried up to ``retries`` times before GenerationError is raised.
        """
        profile = self.profile_for_role(role)
        if profile is None:
            raise GenerationError(f"No backend profile found for role: {GenerationRole(role).value}")

        log.debug("Routing [%s] request to %s (%s/%s)", GenerationRole(role).value, profile.name,
                  profile.provider, profile.model)

        last_error: Optional[BaseException] = None
        for attempt in range(self.retries + 1):
            try:
                return await asyncio.wait_for(self._dispatch_chat(profile, prompt, system_prompt), self.timeout)
            except RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning(f"Chat attempt {attempt + 1} via {profile.name} failed: {e!r}")

        raise GenerationError(f"Chat via {profile.name} failed after {self.retries + 1} attempts: {last_error!r}")

    async def _dispatch_chat(self, profile: BackendProfile, prompt: str, system_prompt: str) -> ChatResult:
        if profile.provider == "local":
            return await self._chat_ollama(profile, prompt, system_prompt)
        if profile.provider == "gemini":
            return await self._chat_gemini(profile, prompt, system_prompt)
        if profile.provider == "pollinations":
            return await self._chat_openai_compatible(profile, prompt, system_prompt, POLLINATIONS_TEXT_URL)
        return await self._chat_openai_compatible(profile, prompt, system_prompt, profile.base_url)

    async def _chat_ollama(self, profile: BackendProfile, prompt: str, system_prompt: str) -> ChatResult:
        client = ollama.AsyncClient(host=profile.base_url or None)
        response = await client.chat(
            model=profile.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            options={"temperature": 0.7},
        )
        content = response["message"]["content"]
        if not content:
            raise GenerationError(f"Empty response from {profile.model}")
        return ChatResult(
            text=content,
            model=profile.model,
            usage={
                "prompt_tokens": response.get("prompt_eval_count") or 0,
                "completion_tokens": response.get("eval_count") or 0,
            },
        )

    async def _chat_openai_compatible(self, profile: BackendProfile, prompt: str, system_prompt: str,
                                      base_url: str) -> ChatResult:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{base_url.rstrip('/')}/chat/completions",
                headers={"Authorization": f"Bearer {profile.api_key or 'not-needed'}"},
                json={
                    "model": profile.model,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": prompt},
                    ],
                    "temperature": 0.7,
                },
            )
            response.raise_for_status()
            data = response.json()

        choices = data.get("choices") or []
        if not choices or not choices[0].get("message"):
            raise GenerationError("Chat completion response missing choices")
        usage = data.get("usage") or {}
        return ChatResult(
            text=choices[0]["message"].get("content") or "",
            model=profile.model,
            usage={
                "prompt_tokens": usage.get("prompt_tokens", 0),
                "completion_tokens": usage.get("completion_tokens", 0),
            },
        )

    async def _chat_gemini(self, profile: BackendProfile, prompt: str, system_prompt: str) -> ChatResult:
        url = f"{profile.base_url.rstrip('/')}/models/{profile.model}:generateContent"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                url,
                params={"key": profile.api_key},
                json={
                    "contents": [
                        {"role": "user", "parts": [{"text": f"{system_prompt}\n\nUser Request: {prompt}"}]}
                    ],
                    "generationConfig": {"temperature": 0.7, "maxOutputTokens": 2048},
                },
            )
            response.raise_for_status()
            data = response.json()

        usage = data.get("usageMetadata") or {}
        return ChatResult(
            text=data["candidates"][0]["content"]["parts"][0]["text"],
            model=profile.model,
            usage={
                "prompt_tokens": usage.get("promptTokenCount", 0),
                "completion_tokens": usage.get("candidatesTokenCount", 0),
            },
        )

    async def generate_image(self, prompt: str) -> ImageResult:
        """Produce an image for ``prompt``. Never raises; failure yields an empty url."""
        profile = self.profile_for_role(GenerationRole.IMAGE)
        if profile is None:
            logger.warning("No image profile configured")
            return ImageResult(url="", model="none")

        try:
            if profile.provider == "pollinations":
                url = self._pollinations_url(profile, prompt)
            elif profile.provider == "stable-diffusion":
                url = await asyncio.wait_for(self._image_stable_diffusion(profile, prompt), self.timeout)
            else:
                url = await asyncio.wait_for(self._image_openai(profile, prompt), self.timeout)
        except (httpx.HTTPError, asyncio.TimeoutError, KeyError, IndexError, ValueError) as e:
            logger.error(f"Image generation via {profile.name} failed: {e!r}")
            url = ""

        return ImageResult(url=url, model=profile.model)

    @staticmethod
    def _pollinations_url(profile: BackendProfile, prompt: str) -> str:
        clean = prompt.strip().replace("?", "").rstrip(".,!;:")[:800]
        query = urllib.parse.urlencode({
            "width": 1024,
            "height": 1024,
            "model": profile.model or "flux",
            "nologo": "true",
        })
        return f"{POLLINATIONS_IMAGE_URL}/{urllib.parse.quote(clean)}?{query}"

    async def _image_openai(self, profile: BackendProfile, prompt: str) -> str:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{profile.base_url.rstrip('/')}/images/generations",
                headers={"Authorization": f"Bearer {profile.api_key or 'not-needed'}"},
                json={"model": profile.model, "prompt": prompt, "n": 1, "size": "1024x1024"},
            )
            response.raise_for_status()
            data = response.json()
        return (data.get("data") or [{}])[0].get("url", "")

    async def _image_stable_diffusion(self, profile: BackendProfile, prompt: str) -> str:
        headers = {"Authorization": f"Bearer {profile.api_key}"} if profile.api_key else {}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{profile.base_url.rstrip('/')}/sdapi/v1/txt2img",
                headers=headers,
                json={
                    "prompt": f"{prompt}, best quality, ultra detailed",
                    "negative_prompt": "photograph, dslr",
                    "steps": 30,
                    "width": 1024,
                    "height": 1024,
                    "cfg_scale": 7,
                },
            )
            response.raise_for_status()
            data = response.json()
        images = data.get("images") or []
        return f"data:image/png;base64,{images[0]}" if images else ""

    async def health_check(self) -> Dict[str, Any]:
        """Reachability of the default chat profile."""
        profile = self.profile_for_role(GenerationRole.DEFAULT)
        if profile is None:
            return {"healthy": False, "reason": "no profiles configured"}

        try:
            if profile.provider == "local":
                await asyncio.wait_for(ollama.AsyncClient(host=profile.base_url or None).list(), self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    await client.get(profile.base_url)
            return {"healthy": True, "profile": profile.name, "provider": profile.provider}
        except (ollama.ResponseError, httpx.HTTPError, asyncio.TimeoutError, ConnectionError) as e:
            return {"healthy": False, "profile": profile.name, "reason": str(e)}

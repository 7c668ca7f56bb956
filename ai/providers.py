"""
AI Provider Client (Async)
==========================

One client for the supported providers, built on httpx.AsyncClient. Every
provider is reached over its REST API; streaming responses are decoded by the
parsers in ``ai.streaming``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional, Tuple

import httpx

from ai.streaming import AnthropicSseParser, GeminiSseParser, OpenAiSseParser, iter_sse_fragments

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"
OPENAI_MODELS_URL = "https://api.openai.com/v1/models"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

TEMPERATURE = 0.5
MAX_TOKENS = 4000


class AiProvider(str, Enum):
    GEMINI = "gemini"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"


@dataclass(frozen=True)
class ProviderInfo:
    name: str
    default_model: str
    requires_model_field: bool = False


AI_PROVIDERS = {
    AiProvider.GEMINI: ProviderInfo("Google Gemini", "gemini-2.5-flash"),
    AiProvider.OPENAI: ProviderInfo("OpenAI", "gpt-4o"),
    AiProvider.ANTHROPIC: ProviderInfo("Anthropic (Claude)", "claude-3-haiku-20240307"),
    AiProvider.OPENROUTER: ProviderInfo("OpenRouter", "mistralai/mistral-7b-instruct", requires_model_field=True),
}


class AiProviderError(Exception):
    """A provider call failed (non-2xx response, network error or unexpected body)."""


@dataclass(frozen=True)
class AiSettings:
    provider: AiProvider
    api_key: str
    model: str = ""

    @property
    def resolved_model(self) -> str:
        if self.provider == AiProvider.OPENROUTER and self.model:
            return self.model
        return AI_PROVIDERS[self.provider].default_model


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or "Unknown error"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message") or "Unknown error"
    if isinstance(data, list) and data and isinstance(data[0], dict):
        # Gemini sometimes wraps the error object in a list.
        return (data[0].get("error") or {}).get("message") or "Unknown error"
    return str(error or "Unknown error")


class AiClient:
    def __init__(self, settings: AiSettings, client: Optional[httpx.AsyncClient] = None, timeout: float = 120.0):
        self.settings = settings
        self.info = AI_PROVIDERS[settings.provider]
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _build_request(self, prompt: str, json_mode: bool, stream: bool) -> Tuple[str, dict, dict, dict]:
        """Returns (url, query params, headers, JSON body) for the configured provider."""
        provider, model, key = self.settings.provider, self.settings.resolved_model, self.settings.api_key
        messages = [{"role": "user", "content": prompt}]

        if provider == AiProvider.GEMINI:
            method = "streamGenerateContent" if stream else "generateContent"
            params = {"key": key, "alt": "sse"} if stream else {"key": key}
            body = {
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {"temperature": TEMPERATURE},
            }
            if json_mode:
                body["generationConfig"]["responseMimeType"] = "application/json"
            return f"{GEMINI_BASE_URL}/models/{model}:{method}", params, {}, body

        if provider == AiProvider.ANTHROPIC:
            headers = {"x-api-key": key, "anthropic-version": ANTHROPIC_VERSION}
            body = {"model": model, "messages": messages, "temperature": TEMPERATURE, "max_tokens": MAX_TOKENS}
            if stream:
                body["stream"] = True
            return ANTHROPIC_URL, {}, headers, body

        headers = {"Authorization": f"Bearer {key}"}
        body = {"model": model, "messages": messages, "temperature": TEMPERATURE}
        if provider == AiProvider.OPENAI:
            body["max_tokens"] = MAX_TOKENS
        if json_mode and not stream:
            body["response_format"] = {"type": "json_object"}
        if stream:
            body["stream"] = True
        return (OPENAI_URL if provider == AiProvider.OPENAI else OPENROUTER_URL), {}, headers, body

    def _parse_completion(self, data) -> str:
        provider = self.settings.provider
        try:
            if provider == AiProvider.GEMINI:
                parts = data["candidates"][0]["content"]["parts"]
                return "".join(part.get("text", "") for part in parts)
            if provider == AiProvider.ANTHROPIC:
                return data["content"][0]["text"]
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise AiProviderError(f"Unexpected response from {self.info.name}: missing {e}") from e

    def _new_parser(self):
        if self.settings.provider == AiProvider.GEMINI:
            return GeminiSseParser()
        if self.settings.provider == AiProvider.ANTHROPIC:
            return AnthropicSseParser()
        return OpenAiSseParser()

    async def complete(self, prompt: str, json_mode: bool = False) -> str:
        url, params, headers, body = self._build_request(prompt, json_mode, stream=False)
        try:
            response = await self.client.post(url, params=params, headers=headers, json=body)
        except httpx.TransportError as e:
            raise AiProviderError(f"Could not reach {self.info.name}: {e}") from e

        if response.is_error:
            raise AiProviderError(f"API Error: {response.status_code} - {_error_message(response)}")
        try:
            data = response.json()
        except ValueError as e:
            raise AiProviderError(f"{self.info.name} returned a response that is not JSON.") from e
        return self._parse_completion(data)

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        """Yields text fragments in the order the provider sends them."""
        url, params, headers, body = self._build_request(prompt, json_mode=False, stream=True)
        try:
            async with self.client.stream("POST", url, params=params, headers=headers, json=body) as response:
                if response.is_error:
                    await response.aread()
                    raise AiProviderError(f"API Error: {response.status_code} - {_error_message(response)}")
                async for fragment in iter_sse_fragments(response.aiter_text(), self._new_parser()):
                    yield fragment
        except httpx.TransportError as e:
            raise AiProviderError(f"Could not reach {self.info.name}: {e}") from e

    async def validate_api_key(self) -> bool:
        """Cheap request to check the key. Only an explicit auth failure counts as invalid for chat APIs."""
        provider, key = self.settings.provider, self.settings.api_key
        if not key:
            return False
        try:
            if provider == AiProvider.GEMINI:
                response = await self.client.get(f"{GEMINI_BASE_URL}/models", params={"key": key})
                return response.is_success
            if provider == AiProvider.OPENAI:
                response = await self.client.get(OPENAI_MODELS_URL, headers={"Authorization": f"Bearer {key}"})
                return response.is_success

            url, params, headers, body = self._build_request("h", json_mode=False, stream=False)
            body["max_tokens"] = 1
            response = await self.client.post(url, params=params, headers=headers, json=body)
            return response.status_code != 401
        except httpx.HTTPError as e:
            logger.error(f"Validation error for {provider.value}: {e}")
            return False

    async def close(self):
        await self.client.aclose()

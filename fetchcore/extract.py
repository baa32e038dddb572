from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict

import requests

from .errors import ProviderFailure

SYSTEM_PROMPT = (
    "You extract information from web page content. Answer only from the "
    "content provided. If the requested information is not present, say so."
)


def build_user_message(content: str, prompt: str) -> str:
    return f"{prompt}\n\n<content>\n{content}\n</content>"


class ExtractionClient(ABC):
    """Answers a natural-language prompt about fetched content."""

    def __init__(self, api_key: str, model: str, timeout: float = 120.0) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout

    def extract(self, content: str, prompt: str) -> str:
        response = requests.post(
            self.endpoint(),
            json=self.payload(content, prompt),
            headers=self.headers(),
            timeout=self._timeout,
        )
        if not 200 <= response.status_code < 300:
            raise ProviderFailure(f"extraction request failed: HTTP {response.status_code}")
        text = self.parse(response.json())
        if not text:
            raise ProviderFailure("extraction returned no text")
        return text.strip()

    @abstractmethod
    def endpoint(self) -> str:
        ...

    @abstractmethod
    def headers(self) -> Dict[str, str]:
        ...

    @abstractmethod
    def payload(self, content: str, prompt: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def parse(self, body: Dict[str, Any]) -> str:
        ...


class AnthropicExtractionClient(ExtractionClient):
    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5",
        base_url: str = "https://api.anthropic.com",
        max_tokens: int = 4096,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(api_key, model, timeout)
        self._base_url = base_url.rstrip("/")
        self._max_tokens = max_tokens

    def endpoint(self) -> str:
        return f"{self._base_url}/v1/messages"

    def headers(self) -> Dict[str, str]:
        return {"x-api-key": self._api_key, "anthropic-version": "2023-06-01"}

    def payload(self, content: str, prompt: str) -> Dict[str, Any]:
        return {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": build_user_message(content, prompt)}],
        }

    def parse(self, body: Dict[str, Any]) -> str:
        blocks = body.get("content") or []
        return "".join(b.get("text", "") for b in blocks if b.get("type") == "text")


class OpenAICompatibleExtractionClient(ExtractionClient):
    """Chat-completions client; works with OpenAI and compatible gateways."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4.1-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 120.0,
    ) -> None:
        super().__init__(api_key, model, timeout)
        self._base_url = base_url.rstrip("/")

    def endpoint(self) -> str:
        return f"{self._base_url}/chat/completions"

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def payload(self, content: str, prompt: str) -> Dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_message(content, prompt)},
            ],
        }

    def parse(self, body: Dict[str, Any]) -> str:
        choices = body.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""

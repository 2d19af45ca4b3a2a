from __future__ import annotations

import logging

import httpx

from runbuddy.models import ChatMessage

logger = logging.getLogger(__name__)


class AIBackendError(Exception):
    """The AI backend returned an error or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class RateLimitError(AIBackendError):
    """The AI backend rejected the request with HTTP 429."""


class OpenAIClient:
    """Chat-completions client for OpenAI-compatible endpoints."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
    ):
        self._http = http_client
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._model = model

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _build_message_dicts(self, messages: list[ChatMessage]) -> list[dict]:
        msg_dicts = []
        for m in messages:
            if m.images:
                parts: list[dict] = [{"type": "text", "text": m.content}]
                parts.extend({"type": "image_url", "image_url": {"url": url}} for url in m.images)
                msg_dicts.append({"role": m.role, "content": parts})
            else:
                msg_dicts.append({"role": m.role, "content": m.content})
        return msg_dicts

    async def chat(
        self,
        messages: list[ChatMessage],
        max_tokens: int = 160,
        temperature: float = 0.7,
        model: str | None = None,
    ) -> str:
        """Return the first choice's content, stripped.

        Raises RateLimitError on 429 and AIBackendError on any other failure.
        """
        url = f"{self._base_url}/chat/completions"
        payload = {
            "model": model or self._model,
            "messages": self._build_message_dicts(messages),
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        try:
            resp = await self._http.post(url, json=payload, headers=self._headers)
        except httpx.HTTPError as exc:
            raise AIBackendError(f"openai_transport_error {exc!r}") from exc

        if resp.status_code == 429:
            raise RateLimitError(f"openai_rate_limited {resp.text[:180]}", status_code=429)
        if resp.status_code >= 400:
            raise AIBackendError(
                f"openai_error {resp.status_code} {resp.text[:180]}", status_code=resp.status_code
            )

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AIBackendError("openai_malformed_body") from exc
        if not isinstance(content, str):
            raise AIBackendError("openai_malformed_body")

        logger.debug("LLM raw response: %s", content[:500])
        return content.strip()

    async def is_available(self) -> bool:
        try:
            resp = await self._http.get(
                f"{self._base_url}/models",
                headers=self._headers,
                timeout=5.0,
            )
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

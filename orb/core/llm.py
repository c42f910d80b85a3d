from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

import httpx

from orb.core.config import Settings
from orb.core.errors import AiCallFailed

logger = logging.getLogger(__name__)


def _extract_text(payload: Any) -> str:
    """Reply text of an OpenAI-style body; malformed choices raise AiCallFailed."""
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices") or []
    if not isinstance(choices, list):
        raise AiCallFailed("AI service returned malformed choices")
    choice = choices[0] if choices else {}
    if not isinstance(choice, dict):
        raise AiCallFailed("AI service returned a malformed choice")
    message = choice.get("message") or {}
    delta = choice.get("delta") or {}
    if not isinstance(message, dict) or not isinstance(delta, dict):
        raise AiCallFailed("AI service returned a malformed message")
    content = message.get("content") or choice.get("text") or delta.get("content") or ""
    return str(content)


class LLMClient:
    """Chat client for an OpenAI-compatible completion endpoint.

    Only the reply text is read from the response; everything else is kept
    under ``raw`` for diagnostics.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()
        endpoint = self.settings.llm_chat_endpoint or "/v1/chat/completions"
        self.base_url = (self.settings.llm_base_url or "").rstrip("/")
        self.chat_endpoint = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        self.model = self.settings.llm_model
        self.api_key = self.settings.llm_api_key
        self.extra_headers = dict(self.settings.llm_extra_headers or {})
        self.timeout = float(self.settings.llm_timeout_sec)
        self.default_temperature = float(self.settings.llm_temperature)
        self.max_tokens = int(self.settings.llm_max_output_tokens)

    async def chat(
        self,
        messages: Sequence[dict[str, str]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        extra_options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not messages:
            raise ValueError("empty message list")
        if not self.model:
            raise AiCallFailed("llm_model is not configured")
        url = f"{self.base_url}{self.chat_endpoint}"
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": list(messages),
            "temperature": temperature if temperature is not None else self.default_temperature,
            "max_tokens": max_tokens if max_tokens is not None else self.max_tokens,
            "stream": False,
        }
        if extra_options:
            payload.update(extra_options)
        headers = {"Content-Type": "application/json"}
        headers.update(self.extra_headers)
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
            try:
                resp = await client.post(url, json=payload, headers=headers)
                resp.raise_for_status()
            except httpx.HTTPStatusError as exc:
                detail = exc.response.text.strip() or exc.response.reason_phrase or "HTTP error"
                logger.warning("AI service answered %s", exc.response.status_code)
                raise AiCallFailed(
                    f"AI service answered {exc.response.status_code} {exc.response.reason_phrase}: {detail}"
                ) from exc
            except httpx.RequestError as exc:
                logger.warning("AI service unreachable at %s: %s", url, exc)
                raise AiCallFailed(f"cannot reach the AI service at {url}") from exc
            try:
                data = resp.json()
            except ValueError as exc:
                raise AiCallFailed("AI service returned a non-JSON body") from exc
        return {
            "text": _extract_text(data),
            "raw": data,
            "provider": "openai_compatible",
        }

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        history: Iterable[tuple[str, str]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        messages = build_chat_messages(system=system, history=history, prompt=prompt)
        return await self.chat(messages, temperature=temperature, max_tokens=max_tokens)


def build_chat_messages(
    *,
    system: str | None = None,
    history: Iterable[tuple[str, str]] | None = None,
    prompt: str,
) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if system:
        messages.append({"role": "system", "content": system})
    if history:
        for role, content in history:
            role_norm = role if role in {"user", "assistant", "system"} else "user"
            messages.append({"role": role_norm, "content": content})
    messages.append({"role": "user", "content": prompt})
    return messages

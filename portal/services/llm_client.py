# portal/services/llm_client.py
"""
Minimal OpenAI-compatible chat completion client (OpenAI and Groq share the surface).

One HTTP call per `complete()`; retries and fallbacks are the caller's business.
Tests usually monkeypatch `complete`.
"""
from typing import Any, Dict, Mapping, Optional

import httpx

from portal.core.config import settings

SYSTEM_PROMPT = (
    "You are an expert test creator. Generate relevant, well-formed assessment questions "
    "and answer with a strict JSON array only."
)


class LLMError(RuntimeError):
    pass


def _extract_content(body: Mapping[str, Any]) -> str:
    try:
        return body["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError) as exc:
        raise LLMError("malformed completion response") from exc


async def complete(prompt: str, max_tokens: int, temperature: float,
                   credentials: Optional[Dict[str, str]] = None) -> str:
    creds = credentials or settings.ai_credentials()
    if not creds:
        raise LLMError("no AI credentials configured")
    payload = {
        "model": creds["model"],
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    headers = {"Authorization": f"Bearer {creds['api_key']}", "Content-Type": "application/json"}
    async with httpx.AsyncClient(timeout=settings.AI_TIMEOUT_SEC) as client:
        resp = await client.post(f"{creds['base_url']}/chat/completions", json=payload, headers=headers)
        resp.raise_for_status()
        return _extract_content(resp.json())

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any

import httpx

from ..core.config import Settings
from .errors import InferenceError

logger = logging.getLogger(__name__)

GENERATION_CONFIG = {
    "temperature": 0,
    "topK": 32,
    "topP": 1,
    "maxOutputTokens": 2048,
}


def build_request_body(prompt: str, png_bytes: bytes) -> dict[str, Any]:
    return {
        "contents": [
            {
                "parts": [
                    {"text": prompt},
                    {
                        "inline_data": {
                            "mime_type": "image/png",
                            "data": base64.b64encode(png_bytes).decode("utf-8"),
                        }
                    },
                ]
            }
        ],
        "generationConfig": dict(GENERATION_CONFIG),
    }


def extract_response_text(payload: Any) -> str:
    """Return ``candidates[0].content.parts[0].text`` or raise InferenceError."""
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise InferenceError(f"Unexpected model response shape: {type(e).__name__}: {e}") from e
    if not isinstance(text, str):
        raise InferenceError("Unexpected model response shape: text part is not a string")
    return text


class GeminiClient:
    """One-shot ``generateContent`` calls against the Gemini REST API.

    No retries here; the escalation controller decides whether to ask again.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self.model = settings.gemini_model
        self.timeout_s = settings.inference_timeout_sec
        self._api_key = settings.gemini_api_key
        self._url = f"{settings.gemini_base_url.rstrip('/')}/models/{self.model}:generateContent"
        self._http = http_client

        logger.info("Gemini client ready (model=%s, api key %s)", self.model, "present" if self._api_key else "missing")

    async def infer(self, prompt: str, png_bytes: bytes) -> str:
        body = build_request_body(prompt, png_bytes)
        try:
            payload = await asyncio.wait_for(self._post(body), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            logger.error("Gemini call timed out after %.1fs", self.timeout_s)
            raise InferenceError(f"Model call timed out after {self.timeout_s}s", timeout=True) from e
        except httpx.TimeoutException as e:
            logger.error("Gemini transport timeout: %s", e)
            raise InferenceError(f"Model call timed out: {e}", timeout=True) from e
        except httpx.HTTPError as e:
            logger.error("Gemini transport failure: %s", e)
            raise InferenceError(f"Model call failed: {type(e).__name__}: {e}") from e

        return extract_response_text(payload)

    async def _post(self, body: dict[str, Any]) -> Any:
        if self._http is not None:
            return await self._send(self._http, body)
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_s, connect=10.0)) as client:
            return await self._send(client, body)

    async def _send(self, client: httpx.AsyncClient, body: dict[str, Any]) -> Any:
        logger.debug("POST %s", self._url)
        resp = await client.post(
            self._url,
            params={"key": self._api_key},
            json=body,
            headers={"Content-Type": "application/json"},
        )
        if resp.status_code >= 400:
            logger.error("Gemini returned HTTP %s: %s", resp.status_code, resp.text[:500])
            raise InferenceError(f"Model call failed with HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise InferenceError("Model response is not JSON") from e

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from src.medscribe.config import settings

logger = logging.getLogger("medscribe.inference")


class InferenceFailure(RuntimeError):
    """Raised for every kind of hosted-inference failure.

    ``code`` is a short machine-readable reason (``timeout``, ``network``,
    ``http_status``, ``malformed_response``, ``upstream_error``).
    """

    def __init__(self, code: str, message: str, provider_name: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider_name = provider_name

    def to_details(self) -> dict:
        return {"code": self.code, "message": self.message, "provider": self.provider_name}


class HuggingFaceInferenceClient:
    """Thin async client for the Hugging Face hosted inference API.

    Every model is addressed as ``{api_url}/{model}``. Binary inputs (audio,
    images) are posted as the raw request body; text inputs go as JSON.
    Responses must be JSON; a top-level ``error`` key is an upstream failure.
    """

    name = "huggingface"

    def __init__(
        self,
        *,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_url = (api_url or settings.hf_api_url).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.hf_api_key
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.transcription_timeout_seconds
        self._transport = transport

    def endpoint(self, model: str) -> str:
        return f"{self._api_url}/{model}"

    def fail(self, code: str, message: str) -> InferenceFailure:
        logger.warning("Hosted inference call failed (%s): %s", code, message)
        return InferenceFailure(code, message, self.name)

    async def post_json(self, model: str, payload: Any) -> Any:
        return await self._post(model, json=payload)

    async def post_bytes(self, model: str, data: bytes, content_type: str) -> Any:
        return await self._post(model, content=data, headers={"Content-Type": content_type})

    async def _post(self, model: str, *, headers: Optional[dict] = None, **body: Any) -> Any:
        headers = dict(headers or {})
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint(model), headers=headers, **body)
        except httpx.TimeoutException as exc:
            raise self.fail("timeout", f"Request to {model} timed out after {self._timeout}s") from exc
        except httpx.HTTPError as exc:
            raise self.fail("network", f"Request to {model} failed: {exc}") from exc

        if response.is_error:
            raise self.fail(
                "http_status",
                f"{model} returned HTTP {response.status_code}: {response.text[:200]}",
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise self.fail("malformed_response", f"{model} response is not valid JSON") from exc

        if isinstance(payload, dict) and "error" in payload:
            raise self.fail("upstream_error", str(payload["error"]))
        return payload

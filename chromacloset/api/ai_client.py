"""Async wrapper around the OpenAI-compatible AI service endpoints."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Mapping, Sequence

import httpx
from openai import AsyncOpenAI, BadRequestError, OpenAIError

from chromacloset.config.settings import Settings

logger = logging.getLogger(__name__)


class AIServiceError(RuntimeError):
    """Raised when the AI service is unreachable or responds with an error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class AIMalformedResponse(AIServiceError):
    """Raised when the AI service answers with a body that is not JSON."""


class AIServiceClient:
    """Provides chat, vision and image generation calls against one base URL."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        openai_client: AsyncOpenAI | None = None,
    ) -> None:
        base_url = settings.ai_base_url.rstrip("/")
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=settings.ai_request_timeout,
            headers={
                "Authorization": f"Bearer {settings.ai_api_key}",
            },
            transport=transport,
        )
        self._openai = openai_client or AsyncOpenAI(
            api_key=settings.ai_api_key or "unset",
            base_url=base_url,
            timeout=settings.ai_request_timeout,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    async def close(self) -> None:
        """Close the underlying HTTP clients."""

        await self._client.aclose()
        await self._openai.close()

    async def _request_json(
        self,
        method: str,
        endpoint: str,
        *,
        json_body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, endpoint, json=json_body)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise AIServiceError("The AI service did not respond in time.") from exc
        except httpx.HTTPStatusError as exc:
            raise AIServiceError(
                f"The AI service returned {exc.response.status_code}: {exc.response.text}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise AIServiceError(f"Could not reach the AI service: {exc}") from exc

        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise AIMalformedResponse("The AI service returned a non-JSON body.") from exc
        if not isinstance(payload, dict):
            raise AIMalformedResponse("The AI service returned an unexpected JSON shape.")
        return payload

    async def chat_completion(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        model: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Call the OpenAI-compatible chat completions endpoint."""

        payload = {
            "model": model or self._settings.ai_chat_model,
            "messages": list(messages),
        }
        payload.update(kwargs)
        return await self._request_json("POST", "/chat/completions", json_body=payload)

    async def generate_image(self, prompt: str, *, size: str | None = None) -> tuple[bytes | None, str | None]:
        """Generate an image from text and return ``(image_bytes, image_url)``."""

        kwargs: dict[str, Any] = {
            "model": self._settings.ai_image_model,
            "prompt": prompt,
            "size": size or self._settings.ai_image_size,
            "response_format": "b64_json",
        }
        try:
            try:
                result = await self._openai.images.generate(**kwargs)
            except BadRequestError as exc:
                fallback = self._fallback_image_model(kwargs["model"], str(exc))
                if not fallback:
                    raise
                logger.warning("Model %s unavailable, retrying with %s", kwargs["model"], fallback)
                kwargs["model"] = fallback
                result = await self._openai.images.generate(**kwargs)
        except OpenAIError as exc:
            raise AIServiceError(f"Image generation failed: {exc}") from exc
        return self._normalise_image_response(result)

    async def ping(self) -> bool:
        """Return ``True`` if the service answers the model listing call."""

        payload = await self._request_json("GET", self._settings.ai_health_path)
        return bool(payload.get("data"))

    def _normalise_image_response(self, result: Any) -> tuple[bytes | None, str | None]:
        data_attr = getattr(result, "data", None)
        if not isinstance(data_attr, list) or not data_attr:
            logger.warning("Image response has no data entries.")
            return None, None
        primary = data_attr[0]
        image_base64 = getattr(primary, "b64_json", None)
        image_url = getattr(primary, "url", None)
        if image_base64 is None and isinstance(primary, Mapping):
            image_base64 = primary.get("b64_json")
            image_url = image_url or primary.get("url")
        if image_base64:
            try:
                return base64.b64decode(image_base64), image_url
            except (ValueError, binascii.Error):
                logger.warning("Image response carried invalid base64 data.")
        return None, image_url

    def _fallback_image_model(self, current: str, error_message: str) -> str | None:
        if current.endswith("-preview"):
            return current.replace("-preview", "")
        if "gemini-2.5-flash-image" in current and "not found" in error_message.lower():
            return "gpt-image-1"
        return None

    @staticmethod
    def first_choice_content(response: Mapping[str, Any]) -> str | None:
        """Return the text of the first choice, or ``None`` if the shape is unexpected."""

        choices = response.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        first = choices[0]
        if not isinstance(first, Mapping):
            return None
        message = first.get("message")
        if not isinstance(message, Mapping):
            return None
        content = message.get("content")
        if isinstance(content, list):
            parts = [part.get("text", "") for part in content if isinstance(part, Mapping)]
            content = "".join(parts)
        return content if isinstance(content, str) else None

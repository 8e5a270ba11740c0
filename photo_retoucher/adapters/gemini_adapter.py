"""Gemini image editing adapter over the REST ``generateContent`` endpoint."""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from typing import Any

import requests

from ..application.ports.image_service import EditRequest
from ..config import DEFAULT_REQUEST_TIMEOUT_S, GEMINI_API_BASE, GEMINI_MODEL_ID
from ..domain.entities.asset import ResultImage
from ..domain.value_objects.config import EngineConfig
from ..exceptions import (
    CredentialError,
    EmptyResponseError,
    ServiceError,
    TerminalServiceError,
    TransientServiceError,
)
from ..utils.env import load_api_key

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 503})
TRANSIENT_API_STATUSES = frozenset({"RESOURCE_EXHAUSTED", "UNAVAILABLE"})
CREDENTIAL_STATUS_CODES = frozenset({401, 403})
CREDENTIAL_API_STATUSES = frozenset({"UNAUTHENTICATED", "PERMISSION_DENIED"})

# Fallback when the service gives no structured status
TRANSIENT_MESSAGE_PATTERN = re.compile(
    r"overload|rate.?limit|try again later|resource.?exhausted", re.IGNORECASE
)
CREDENTIAL_MESSAGE_PATTERN = re.compile(r"api.?key", re.IGNORECASE)

SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


def classify_service_error(
    status_code: int | None,
    message: str,
    api_status: str | None = None
) -> ServiceError:
    """Map a failed call onto the service error taxonomy.

    Structured signals (HTTP code, API status) win; message text is only
    consulted when neither is conclusive.
    """
    message = message or f"Service error (HTTP {status_code})"
    if status_code in CREDENTIAL_STATUS_CODES or api_status in CREDENTIAL_API_STATUSES:
        return CredentialError(message, status_code=status_code)
    if status_code in TRANSIENT_STATUS_CODES or api_status in TRANSIENT_API_STATUSES:
        return TransientServiceError(message, status_code=status_code)
    if CREDENTIAL_MESSAGE_PATTERN.search(message):
        return CredentialError(message, status_code=status_code)
    if TRANSIENT_MESSAGE_PATTERN.search(message):
        return TransientServiceError(message, status_code=status_code)
    return TerminalServiceError(message, status_code=status_code)


def _error_from_response(response: requests.Response) -> ServiceError:
    api_status = None
    message = ""
    try:
        body = response.json()
        error = body.get("error") if isinstance(body, dict) else None
    except ValueError:
        message = response.text.strip()[:500]
    else:
        if isinstance(error, dict):
            api_status = error.get("status")
            message = error.get("message") or ""
    return classify_service_error(response.status_code, message, api_status)


def _encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def build_payload(request: EditRequest) -> dict[str, Any]:
    """Build the ``generateContent`` body for one edit request.

    Parts are ordered source image, mask overlay (if any), then text.
    """
    parts: list[dict[str, Any]] = [
        {"inlineData": {"mimeType": request.source_mime, "data": _encode(request.source_bytes)}}
    ]
    if request.mask_bytes is not None:
        parts.append({"inlineData": {"mimeType": "image/png", "data": _encode(request.mask_bytes)}})
    parts.append({"text": request.prompt})

    image_config = {"imageSize": request.resolution.value}
    if request.aspect_ratio:
        image_config["aspectRatio"] = request.aspect_ratio

    return {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {
            "responseModalities": ["TEXT", "IMAGE"],
            "imageConfig": image_config,
        },
        "safetySettings": [
            {"category": category, "threshold": "BLOCK_NONE"}
            for category in SAFETY_CATEGORIES
        ],
    }


def extract_image(body: dict[str, Any]) -> ResultImage:
    """Return the first inline image of a response.

    Raises:
        EmptyResponseError: If no candidate carries image data
    """
    texts: list[str] = []
    finish_reason = None
    for candidate in body.get("candidates") or []:
        finish_reason = finish_reason or candidate.get("finishReason")
        for part in (candidate.get("content") or {}).get("parts") or []:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return ResultImage(data=base64.b64decode(inline["data"]), mime_type=mime_type)
            if part.get("text"):
                texts.append(part["text"].strip())

    block_reason = (body.get("promptFeedback") or {}).get("blockReason")
    reason = " ".join(texts) or block_reason or finish_reason
    message = "The service returned no image"
    if reason:
        message = f"{message}: {reason}"
    raise EmptyResponseError(message)


class GeminiImageService:
    """Edit images with a Gemini image model.

    The blocking HTTP call runs in a worker thread so many requests can be
    in flight from one event loop.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model_id: str = GEMINI_MODEL_ID,
        api_base: str = GEMINI_API_BASE,
        timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    ):
        self._api_key = api_key
        self._model_id = model_id
        self._api_base = api_base.rstrip("/")
        self._timeout_s = timeout_s

    @classmethod
    def from_config(cls, config: EngineConfig, api_key: str | None = None) -> GeminiImageService:
        return cls(
            api_key=api_key,
            model_id=config.model_id,
            api_base=config.api_base,
            timeout_s=config.request_timeout_s,
        )

    @property
    def name(self) -> str:
        return self._model_id

    @property
    def endpoint(self) -> str:
        return f"{self._api_base}/models/{self._model_id}:generateContent"

    def _resolve_api_key(self) -> str:
        if self._api_key is None:
            self._api_key = load_api_key()
        if not self._api_key:
            raise CredentialError(
                "No API key configured. Set GEMINI_API_KEY or store a key in the system keyring."
            )
        return self._api_key

    async def edit(self, request: EditRequest) -> ResultImage:
        return await asyncio.to_thread(self.edit_sync, request)

    def edit_sync(self, request: EditRequest) -> ResultImage:
        """Blocking variant of :meth:`edit`."""
        api_key = self._resolve_api_key()
        payload = build_payload(request)
        logger.debug(
            f"POST {self.endpoint} (masked={request.is_masked}, "
            f"size={request.resolution.value}, aspect={request.aspect_ratio})"
        )

        try:
            response = requests.post(
                self.endpoint,
                json=payload,
                headers={"x-goog-api-key": api_key},
                timeout=self._timeout_s
            )
        except requests.Timeout as e:
            raise TransientServiceError(f"Request timed out: {e}") from e
        except requests.RequestException as e:
            raise TerminalServiceError(f"Could not reach the image service: {e}") from e

        if response.status_code != 200:
            error = _error_from_response(response)
            logger.debug(f"Service returned HTTP {response.status_code}: {error.message}")
            raise error

        try:
            body = response.json()
        except ValueError as e:
            raise TerminalServiceError("Malformed response from the image service") from e
        return extract_image(body)

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Protocol, Sequence

from google import genai
from google.genai import types

from . import config
from .errors import ConfigurationError
from .validation import ImageInput

logger = logging.getLogger(__name__)


class ImageEditClient(Protocol):
    """Anything that can send one prompt + inline images to an image model."""

    model: str

    def ensure_configured(self) -> None:
        ...

    async def edit(self, prompt: str, images: Sequence[ImageInput]) -> Any:
        ...


class GeminiImageClient:
    """Thin wrapper around the google-genai async client.

    The SDK client is created lazily on first use so the app can start (and
    serve the catalog) without an API key. Its pooled connections belong to
    the event loop that opened them, so a new client is built whenever the
    running loop changes (e.g. one ``asyncio.run`` per serverless call).
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self.api_key = config.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or config.GEMINI_MODEL
        self.timeout_seconds = config.GEMINI_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self.base_url = config.GEMINI_BASE_URL if base_url is None else base_url
        self._client: Optional[genai.Client] = None
        self._client_loop: Optional[asyncio.AbstractEventLoop] = None

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise ConfigurationError(
                "Gemini API key not configured",
                details="Set GEMINI_API_KEY in the environment.",
            )

    def _get_client(self) -> genai.Client:
        loop = asyncio.get_running_loop()
        if self._client is None or self._client_loop is not loop:
            self.ensure_configured()
            http_options = types.HttpOptions(
                timeout=int(self.timeout_seconds * 1000),
                base_url=self.base_url or None,
            )
            self._client = genai.Client(api_key=self.api_key, http_options=http_options)
            self._client_loop = loop
            logger.info("Initialized Gemini client for model %s", self.model)
        return self._client

    @staticmethod
    def build_contents(prompt: str, images: Sequence[ImageInput]) -> List[types.Content]:
        parts = [types.Part.from_text(text=prompt)]
        parts.extend(
            types.Part.from_bytes(data=image.data, mime_type=image.mime_type) for image in images
        )
        return [types.Content(role="user", parts=parts)]

    async def edit(self, prompt: str, images: Sequence[ImageInput]) -> types.GenerateContentResponse:
        client = self._get_client()
        return await client.aio.models.generate_content(
            model=self.model,
            contents=self.build_contents(prompt, images),
        )

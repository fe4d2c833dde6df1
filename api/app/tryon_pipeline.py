from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from . import config
from .errors import NoImageProducedError, UpstreamError, ValidationError
from .gemini_client import GeminiImageClient, ImageEditClient
from .metrics import Timer, increment
from .prompts import DEFAULT_TEMPLATES, PromptTemplates
from .retry import RetryExhausted, RetryPolicy, SleepFn
from .utils import request_fingerprint
from .validation import ImageInput, validate_image


logger = logging.getLogger(__name__)


@dataclass
class TryOnRequest:
    subject_image: Optional[ImageInput]
    garment_image: Optional[ImageInput] = None
    garment_description: str = ""


@dataclass
class TryOnResult:
    image_bytes: bytes
    mime_type: str
    text: Optional[str] = None
    attempts: int = 1


@dataclass
class _ExtractedImage:
    data: Optional[bytes] = None
    mime_type: Optional[str] = None
    texts: List[str] = field(default_factory=list)


def extract_first_image(response: Any) -> _ExtractedImage:
    """Walk candidates and their parts in order; stop at the first inline image."""
    found = _ExtractedImage()
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            text = getattr(part, "text", None)
            if text:
                found.texts.append(text.strip())
            inline = getattr(part, "inline_data", None)
            data = getattr(inline, "data", None) if inline is not None else None
            if data:
                found.data = data
                found.mime_type = getattr(inline, "mime_type", None) or config.DEFAULT_RESULT_MIME_TYPE
                return found
    return found


def _block_reason(response: Any) -> Optional[str]:
    feedback = getattr(response, "prompt_feedback", None)
    reason = getattr(feedback, "block_reason", None)
    if reason is None:
        return None
    return str(getattr(reason, "value", reason))


class TryOnPipeline:
    """Validates a try-on request, asks the image model for an edit, returns the image."""

    def __init__(
        self,
        *,
        client: Optional[ImageEditClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        templates: PromptTemplates = DEFAULT_TEMPLATES,
        max_upload_bytes: Optional[int] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.client = client or GeminiImageClient()
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self.templates = templates
        self.max_upload_bytes = max_upload_bytes
        self._sleep = sleep

    @property
    def model_name(self) -> str:
        return self.client.model

    def prepare(self, request: TryOnRequest) -> Tuple[str, List[ImageInput]]:
        """Validate inputs and build the prompt. Raises ValidationError."""
        subject = validate_image(request.subject_image, field="person", max_bytes=self.max_upload_bytes)
        images = [subject]
        if request.garment_image is not None:
            images.append(
                validate_image(request.garment_image, field="garment", max_bytes=self.max_upload_bytes)
            )
        try:
            prompt = self.templates.build(
                garment_description=request.garment_description,
                has_garment_image=len(images) > 1,
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        return prompt, images

    async def generate(self, request: TryOnRequest) -> TryOnResult:
        prompt, images = self.prepare(request)
        self.client.ensure_configured()

        fingerprint = request_fingerprint(image.data for image in images)
        logger.info(
            "tryon %s: sending %d image(s) to %s", fingerprint, len(images), self.model_name
        )

        attempts = 0

        async def _call() -> Any:
            nonlocal attempts
            attempts += 1
            increment("upstream_attempts_total", self.model_name)
            return await self.client.edit(prompt, images)

        timer = Timer("tryon_upstream_seconds", self.model_name)
        try:
            response = await self.retry_policy.run(_call, label=f"tryon {fingerprint}", sleep=self._sleep)
        except RetryExhausted as exc:
            timer.stop()
            increment("tryon_results_total", "upstream_error")
            logger.error(
                "tryon %s: upstream failed after %d attempt(s): %s",
                fingerprint,
                exc.attempts,
                exc.last_error,
            )
            raise UpstreamError(
                "Image generation service request failed",
                details=str(exc.last_error),
                attempts=exc.attempts,
            ) from exc.last_error
        duration = timer.stop()

        extracted = extract_first_image(response)
        model_text = " ".join(text for text in extracted.texts if text) or None
        if extracted.data is None:
            increment("tryon_results_total", "no_image")
            explanation = model_text or _block_reason(response)
            logger.error(
                "tryon %s: model returned no image (attempts=%d, text=%r)",
                fingerprint,
                attempts,
                explanation,
            )
            raise NoImageProducedError(
                "Failed to generate image from Gemini API",
                model_text=explanation,
            )

        increment("tryon_results_total", "success")
        logger.info(
            "tryon %s: received %s (%d bytes) after %d attempt(s) in %.2fs",
            fingerprint,
            extracted.mime_type,
            len(extracted.data),
            attempts,
            duration,
        )
        return TryOnResult(
            image_bytes=extracted.data,
            mime_type=extracted.mime_type,
            text=model_text,
            attempts=attempts,
        )

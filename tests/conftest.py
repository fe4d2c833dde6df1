from __future__ import annotations

import io
from typing import List

import pytest
from google.genai import types
from PIL import Image

from api.app import metrics
from api.app.retry import RetryPolicy
from api.app.tryon_pipeline import TryOnPipeline


def make_image(width: int = 64, height: int = 96, color=(128, 128, 128), fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=color).save(buffer, format=fmt)
    return buffer.getvalue()


def image_part(data: bytes, mime_type=None) -> types.Part:
    return types.Part(inline_data=types.Blob(data=data, mime_type=mime_type))


def text_part(text: str) -> types.Part:
    return types.Part(text=text)


def make_response(*parts: types.Part) -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=list(parts)))]
    )


class FakeImageClient:
    """Plays back a fixed list of responses/exceptions, one per call."""

    model = "fake-image-model"

    def __init__(self, *outcomes, configured: bool = True) -> None:
        self.outcomes = list(outcomes)
        self.configured = configured
        self.calls: List[tuple] = []

    def ensure_configured(self) -> None:
        if not self.configured:
            from api.app.errors import ConfigurationError

            raise ConfigurationError("Gemini API key not configured")

    async def edit(self, prompt, images):
        self.calls.append((prompt, list(images)))
        outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


RESULT_PNG = make_image(color=(10, 200, 30))


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_pipeline(sleeper):
    def _make(*outcomes, configured: bool = True, **kwargs) -> TryOnPipeline:
        client = FakeImageClient(*outcomes, configured=configured)
        kwargs.setdefault("retry_policy", RetryPolicy(max_attempts=2, delay_seconds=1.0))
        return TryOnPipeline(client=client, sleep=sleeper, **kwargs)

    return _make

from __future__ import annotations

import asyncio

import pytest

from api.app import metrics
from api.app.errors import ConfigurationError, NoImageProducedError, UpstreamError, ValidationError
from api.app.tryon_pipeline import TryOnRequest, extract_first_image
from api.app.validation import ImageInput

from conftest import RESULT_PNG, image_part, make_image, make_response, text_part


def person(mime_type: str = "image/png", data: bytes = None) -> ImageInput:
    return ImageInput(data=data if data is not None else make_image(), mime_type=mime_type)


def garment() -> ImageInput:
    return ImageInput(data=make_image(color=(200, 50, 120), fmt="JPEG"), mime_type="image/jpeg")


def test_success_returns_first_image(make_pipeline):
    pipeline = make_pipeline(make_response(image_part(RESULT_PNG, "image/png")))
    result = asyncio.run(
        pipeline.generate(TryOnRequest(subject_image=person(), garment_image=garment()))
    )
    assert result.image_bytes == RESULT_PNG
    assert result.mime_type == "image/png"
    assert result.attempts == 1

    prompt, images = pipeline.client.calls[0]
    assert "second image" in prompt
    assert [image.mime_type for image in images] == ["image/png", "image/jpeg"]


def test_description_only_request_sends_one_image(make_pipeline):
    pipeline = make_pipeline(make_response(image_part(RESULT_PNG)))
    asyncio.run(
        pipeline.generate(TryOnRequest(subject_image=person(), garment_description="red linen dress"))
    )
    prompt, images = pipeline.client.calls[0]
    assert len(images) == 1
    assert "red linen dress" in prompt
    assert "EDIT operation" in prompt


def test_missing_mime_type_defaults_to_png(make_pipeline):
    pipeline = make_pipeline(make_response(image_part(RESULT_PNG, None)))
    result = asyncio.run(
        pipeline.generate(TryOnRequest(subject_image=person(), garment_description="tracksuit"))
    )
    assert result.mime_type == "image/png"


def test_first_image_part_wins_even_when_not_first_part(make_pipeline):
    second_image = make_image(color=(1, 2, 3))
    response = make_response(
        text_part("Here is the edited photo."),
        image_part(RESULT_PNG, "image/png"),
        image_part(second_image, "image/png"),
    )
    pipeline = make_pipeline(response)
    result = asyncio.run(
        pipeline.generate(TryOnRequest(subject_image=person(), garment_description="tracksuit"))
    )
    assert result.image_bytes == RESULT_PNG
    assert result.text == "Here is the edited photo."


def test_retries_once_then_succeeds(make_pipeline, sleeper):
    pipeline = make_pipeline(
        ConnectionError("connection reset"),
        make_response(image_part(RESULT_PNG)),
    )
    result = asyncio.run(
        pipeline.generate(TryOnRequest(subject_image=person(), garment_description="tracksuit"))
    )
    assert result.image_bytes == RESULT_PNG
    assert result.attempts == 2
    assert len(pipeline.client.calls) == 2
    assert sleeper.delays == [1.0]


def test_two_failures_raise_upstream_error(make_pipeline, sleeper):
    pipeline = make_pipeline(ConnectionError("down"), TimeoutError("still down"))
    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(
            pipeline.generate(TryOnRequest(subject_image=person(), garment_description="tracksuit"))
        )
    assert excinfo.value.attempts == 2
    assert "still down" in excinfo.value.details
    assert len(pipeline.client.calls) == 2
    assert sleeper.delays == [1.0]
    assert metrics.counter_value("tryon_results_total", "upstream_error") == 1


def test_no_image_is_not_retried(make_pipeline, sleeper):
    pipeline = make_pipeline(make_response(text_part("I can't edit this photo.")))
    with pytest.raises(NoImageProducedError) as excinfo:
        asyncio.run(
            pipeline.generate(TryOnRequest(subject_image=person(), garment_description="tracksuit"))
        )
    assert excinfo.value.model_text == "I can't edit this photo."
    assert len(pipeline.client.calls) == 1
    assert sleeper.delays == []


def test_empty_response_raises_no_image(make_pipeline):
    from google.genai import types

    pipeline = make_pipeline(types.GenerateContentResponse(candidates=[]))
    with pytest.raises(NoImageProducedError):
        asyncio.run(
            pipeline.generate(TryOnRequest(subject_image=person(), garment_description="tracksuit"))
        )


@pytest.mark.parametrize(
    "image",
    [
        None,
        ImageInput(data=b"", mime_type="image/png"),
        ImageInput(data=b"GIF89a....", mime_type="image/gif"),
        ImageInput(data=b"x" * (10 * 1024 * 1024 + 1), mime_type="image/jpeg"),
    ],
)
def test_invalid_subject_makes_no_call(make_pipeline, image):
    pipeline = make_pipeline(make_response(image_part(RESULT_PNG)))
    with pytest.raises(ValidationError):
        asyncio.run(pipeline.generate(TryOnRequest(subject_image=image, garment_description="tracksuit")))
    assert pipeline.client.calls == []


def test_invalid_garment_is_rejected(make_pipeline):
    pipeline = make_pipeline(make_response(image_part(RESULT_PNG)))
    bad_garment = ImageInput(data=b"%PDF-1.4", mime_type="application/pdf")
    with pytest.raises(ValidationError):
        asyncio.run(pipeline.generate(TryOnRequest(subject_image=person(), garment_image=bad_garment)))
    assert pipeline.client.calls == []


def test_limit_is_inclusive(make_pipeline):
    pipeline = make_pipeline(make_response(image_part(RESULT_PNG)), max_upload_bytes=1024)
    exact = ImageInput(data=b"x" * 1024, mime_type="image/jpeg")
    result = asyncio.run(pipeline.generate(TryOnRequest(subject_image=exact, garment_description="tracksuit")))
    assert result.image_bytes == RESULT_PNG


def test_missing_description_without_garment_image(make_pipeline):
    pipeline = make_pipeline(make_response(image_part(RESULT_PNG)))
    with pytest.raises(ValidationError):
        asyncio.run(pipeline.generate(TryOnRequest(subject_image=person())))
    assert pipeline.client.calls == []


def test_unconfigured_client_fails_before_call(make_pipeline):
    pipeline = make_pipeline(make_response(image_part(RESULT_PNG)), configured=False)
    with pytest.raises(ConfigurationError):
        asyncio.run(pipeline.generate(TryOnRequest(subject_image=person(), garment_description="tracksuit")))
    assert pipeline.client.calls == []


def test_extract_scans_later_candidates():
    from google.genai import types

    response = types.GenerateContentResponse(
        candidates=[
            types.Candidate(content=types.Content(role="model", parts=[text_part("thinking")])),
            types.Candidate(content=types.Content(role="model", parts=[image_part(RESULT_PNG, "image/jpeg")])),
        ]
    )
    extracted = extract_first_image(response)
    assert extracted.data == RESULT_PNG
    assert extracted.mime_type == "image/jpeg"
    assert extracted.texts == ["thinking"]

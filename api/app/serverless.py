"""
Serverless (Netlify/Lambda style) entry point for the try-on flow.

The handler takes an event dict with ``httpMethod``, ``headers`` and a JSON
``body`` of ``{personImage, garmentImage?, garmentDescription?}`` (plain
base64) and returns the generated image base64-encoded with
``isBase64Encoded`` set.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any, Dict, Optional

from . import config
from .errors import NoImageProducedError, TryOnError, ValidationError
from .tryon_pipeline import TryOnPipeline, TryOnRequest
from .validation import decode_base64_image

logger = logging.getLogger(__name__)

_PIPELINE: Optional[TryOnPipeline] = None


def get_pipeline() -> TryOnPipeline:
    global _PIPELINE
    if _PIPELINE is None:
        _PIPELINE = TryOnPipeline()
    return _PIPELINE


def _origin(event: Dict[str, Any]) -> str:
    headers = event.get("headers") or {}
    return headers.get("origin") or headers.get("Origin") or "*"


def _json_response(event: Dict[str, Any], status_code: int, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {
            "Access-Control-Allow-Origin": _origin(event),
            "Content-Type": "application/json",
        },
        "body": json.dumps(payload),
    }


def _parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    body = event.get("body") or ""
    if event.get("isBase64Encoded") and body:
        body = base64.b64decode(body).decode("utf-8")
    parsed = json.loads(body)
    if not isinstance(parsed, dict):
        raise ValueError("body must be a JSON object")
    return parsed


async def run_tryon(payload: Dict[str, Any], pipeline: TryOnPipeline):
    if not payload.get("personImage"):
        raise ValidationError("Person image is required")
    subject = decode_base64_image(payload["personImage"], field="person")
    garment = None
    if payload.get("garmentImage"):
        garment = decode_base64_image(payload["garmentImage"], field="garment")
    description = payload.get("garmentDescription") or config.DEFAULT_GARMENT_DESCRIPTION
    return await pipeline.generate(
        TryOnRequest(subject_image=subject, garment_image=garment, garment_description=description)
    )


def handler(event: Dict[str, Any], context: Any = None, *, pipeline: Optional[TryOnPipeline] = None) -> Dict[str, Any]:
    method = (event.get("httpMethod") or "").upper()

    if method == "OPTIONS":
        return {
            "statusCode": 200,
            "headers": {
                "Access-Control-Allow-Origin": _origin(event),
                "Access-Control-Allow-Methods": "POST, OPTIONS",
                "Access-Control-Allow-Headers": "Content-Type",
                "Access-Control-Max-Age": "86400",
            },
            "body": "",
        }

    if method != "POST":
        return _json_response(event, 405, {"error": "Method not allowed"})

    try:
        payload = _parse_body(event)
    except ValueError as exc:
        logger.warning("Rejected serverless request with invalid JSON: %s", exc)
        return _json_response(event, 400, {"error": "Invalid JSON data"})

    try:
        result = asyncio.run(run_tryon(payload, pipeline or get_pipeline()))
    except ValidationError as exc:
        logger.warning("Rejected serverless request: %s", exc.message)
        return _json_response(event, exc.status_code, {"error": exc.message})
    except NoImageProducedError as exc:
        logger.error("Try-on produced no image: %s", exc.model_text)
        return _json_response(event, exc.status_code, {"error": exc.message})
    except TryOnError as exc:
        logger.error("Try-on generation error (%s): %s %s", exc.error_kind, exc.message, exc.details or "")
        return _json_response(event, exc.status_code, exc.to_payload())
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Try-on generation error")
        return _json_response(event, 500, {"error": "Internal server error", "details": str(exc)})

    return {
        "statusCode": 200,
        "headers": {
            "Access-Control-Allow-Origin": _origin(event),
            "Content-Type": result.mime_type,
            "Cache-Control": "no-cache",
        },
        "body": base64.b64encode(result.image_bytes).decode("ascii"),
        "isBase64Encoded": True,
    }

from __future__ import annotations

import io
import logging
import time
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, File, Form, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from . import config as app_config
from .catalog import ProductCatalog, ShopifyCatalog, get_catalog
from .config import (
    CORS_ALLOW_ORIGIN_REGEX,
    CORS_ALLOW_ORIGINS,
    CORS_WILDCARD_PATHS,
    OUTPUTS_DIR,
)
from .errors import ConfigurationError, NoImageProducedError, TryOnError, UpstreamError
from .metrics import increment, observe_latency, snapshot
from .tryon_pipeline import TryOnPipeline, TryOnRequest
from .validation import ImageInput, decode_base64_image, to_data_url


logging.basicConfig(
    level=app_config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

_PIPELINE: Optional[TryOnPipeline] = None


def get_tryon_pipeline() -> TryOnPipeline:
    global _PIPELINE
    if _PIPELINE is None:
        _PIPELINE = TryOnPipeline()
    return _PIPELINE


def get_product_catalog() -> ProductCatalog:
    return get_catalog()


def get_shopify_catalog() -> ShopifyCatalog:
    return ShopifyCatalog()


class GenerateRequest(BaseModel):
    userImageBase64: Optional[str] = None
    productName: Optional[str] = None


app = FastAPI(
    title="Try-On Storefront API",
    version="0.2.0",
    description="Catalog listing and AI virtual try-on backed by a hosted image-editing model.",
)


class PathScopedCORSMiddleware:
    """Site-wide CORS policy, with an open ``*`` policy for a few public paths."""

    def __init__(self, app, *, wildcard_paths=(), **options) -> None:
        self.default = CORSMiddleware(app, **options)
        self.wildcard = CORSMiddleware(
            app,
            allow_origins=["*"],
            allow_methods=["POST", "OPTIONS"],
            allow_headers=["Content-Type"],
        )
        self.wildcard_paths = frozenset(wildcard_paths)

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] == "http" and scope["path"] in self.wildcard_paths:
            await self.wildcard(scope, receive, send)
            return
        await self.default(scope, receive, send)


app.add_middleware(
    PathScopedCORSMiddleware,
    wildcard_paths=CORS_WILDCARD_PATHS,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_origin_regex=CORS_ALLOW_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/outputs", StaticFiles(directory=OUTPUTS_DIR), name="outputs")


@app.middleware("http")
async def log_and_measure_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration = time.perf_counter() - start
    label = f"{request.method} {request.url.path}"
    increment("requests_total", label)
    observe_latency("http_request_seconds", label, duration)
    response.headers["X-Process-Time"] = f"{duration:.3f}s"
    logger.info("%s %s -> %s (%.3fs)", request.method, request.url.path, response.status_code, duration)
    return response


@app.exception_handler(TryOnError)
async def tryon_error_handler(request: Request, exc: TryOnError):
    if exc.status_code < 500:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    else:
        logger.error(
            "%s %s failed (%s): %s %s",
            request.method,
            request.url.path,
            exc.error_kind,
            exc.message,
            exc.details or "",
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("%s %s invalid request: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request body", "details": str(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("%s %s raised an unhandled error", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "details": str(exc) or type(exc).__name__},
    )


def _internal_error(exc: Exception) -> TryOnError:
    logger.exception("Unexpected error while handling request")
    return TryOnError("Internal server error", details=str(exc) or type(exc).__name__)


async def _read_upload(upload: Optional[UploadFile]) -> Optional[ImageInput]:
    if upload is None:
        return None
    data = await upload.read()
    if not data:
        return None
    return ImageInput(data=data, mime_type=upload.content_type or "")


@app.get("/healthz")
async def healthz():
    return {"ok": True}


@app.get("/metrics")
async def metrics():
    return JSONResponse(status_code=status.HTTP_200_OK, content=snapshot())


@app.get("/api/products")
async def list_products(catalog: ProductCatalog = Depends(get_product_catalog)):
    products = await catalog.list_products()
    return {"data": [product.model_dump() for product in products]}


@app.get("/api/shopify-products")
async def list_shopify_products(catalog: ShopifyCatalog = Depends(get_shopify_catalog)):
    try:
        products = await catalog.list_products()
    except ConfigurationError as exc:
        logger.error("Shopify catalog unavailable: %s", exc.message)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": exc.message})
    except UpstreamError as exc:
        logger.error("Shopify API Error: %s", exc.details)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": exc.message, "details": exc.details},
        )
    return {
        "products": [product.model_dump() for product in products],
        "count": len(products),
        "source": "shopify",
    }


@app.post("/api/tryon")
async def tryon(
    person: Optional[UploadFile] = File(default=None),
    garment: Optional[UploadFile] = File(default=None),
    description: Optional[str] = Form(default=None),
    pipeline: TryOnPipeline = Depends(get_tryon_pipeline),
):
    person_image = await _read_upload(person)
    garment_image = await _read_upload(garment)
    if person_image is None or garment_image is None:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Both person and garment images are required"},
        )

    try:
        result = await pipeline.generate(
            TryOnRequest(
                subject_image=person_image,
                garment_image=garment_image,
                garment_description=description or "",
            )
        )
    except TryOnError:
        raise
    except Exception as exc:  # pylint: disable=broad-except
        raise _internal_error(exc) from exc

    return StreamingResponse(
        io.BytesIO(result.image_bytes),
        media_type=result.mime_type,
        headers={"Cache-Control": "no-cache"},
    )


@app.options("/api/tryon")
async def tryon_preflight():
    return Response(
        status_code=status.HTTP_200_OK,
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        },
    )


@app.post("/api/generate")
async def generate(
    payload: GenerateRequest,
    pipeline: TryOnPipeline = Depends(get_tryon_pipeline),
):
    if not payload.productName or not payload.userImageBase64:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Product name and user image are required"},
        )

    try:
        subject = decode_base64_image(payload.userImageBase64, field="person")
        result = await pipeline.generate(
            TryOnRequest(subject_image=subject, garment_description=payload.productName)
        )
    except TryOnError:
        raise
    except Exception as exc:  # pylint: disable=broad-except
        raise _internal_error(exc) from exc

    return {
        "success": True,
        "data": {"generatedImage": to_data_url(result.image_bytes, result.mime_type)},
    }


@app.get("/api/test-ai")
async def test_ai(pipeline: TryOnPipeline = Depends(get_tryon_pipeline)):
    """Run one try-on against the bundled sample photo and save the output."""
    sample = app_config.TEST_PERSON_IMAGE
    model_used = pipeline.model_name
    try:
        if not sample.exists():
            raise ConfigurationError(f"Sample photo not found at {sample}")
        subject = ImageInput(data=sample.read_bytes(), mime_type="")
        logger.info("Sending diagnostic request to %s", model_used)
        result = await pipeline.generate(
            TryOnRequest(subject_image=subject, garment_description=app_config.TEST_GARMENT_DESCRIPTION)
        )
    except NoImageProducedError as exc:
        logger.warning("Diagnostic call answered without an image: %s", exc.model_text)
        return {
            "status": "partial_success",
            "message": "API call successful but no image generated. This model may not support image generation.",
            "response": exc.model_text,
            "model_used": model_used,
        }
    except Exception as exc:  # pylint: disable=broad-except
        logger.error("Diagnostic call failed: %s", exc)
        details = exc.details if isinstance(exc, TryOnError) and exc.details else str(exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "message": "Gemini API test failed.", "details": details},
        )

    extension = "jpg" if result.mime_type == "image/jpeg" else "png"
    output_path = app_config.OUTPUTS_DIR / f"test-output.{extension}"
    output_path.write_bytes(result.image_bytes)
    logger.info("Diagnostic image written to %s", output_path)
    return {
        "status": "success",
        "message": f"Test successful! Image generated and saved to /outputs/{output_path.name}.",
        "output_path": f"/outputs/{output_path.name}",
        "model_used": model_used,
    }


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Base path for the API package
BASE_PATH = Path(__file__).resolve().parent

LOG_LEVEL = os.environ.get("TRYON_LOG_LEVEL", "INFO").upper()

# Upstream generative image model
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash-image-preview")
GEMINI_TIMEOUT_SECONDS = float(os.environ.get("GEMINI_TIMEOUT_SECONDS", "120"))
# Override for the API endpoint (proxies, local stand-ins); empty uses the SDK default.
GEMINI_BASE_URL = os.environ.get("GEMINI_BASE_URL", "")

MAX_UPLOAD_BYTES = int(os.environ.get("TRYON_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
ALLOWED_MIME_TYPES = ("image/jpeg", "image/png")
DEFAULT_RESULT_MIME_TYPE = "image/png"

RETRY_MAX_ATTEMPTS = int(os.environ.get("TRYON_RETRY_MAX_ATTEMPTS", "2"))
RETRY_DELAY_SECONDS = float(os.environ.get("TRYON_RETRY_DELAY_SECONDS", "1.0"))
RETRY_BACKOFF = float(os.environ.get("TRYON_RETRY_BACKOFF", "1.0"))

DEFAULT_GARMENT_DESCRIPTION = os.environ.get(
    "TRYON_DEFAULT_GARMENT_DESCRIPTION", "black plush tracksuit (jacket + pants)"
)

# "static" serves the bundled mock list, "shopify" proxies the store.
CATALOG_SOURCE = os.environ.get("TRYON_CATALOG_SOURCE", "static").lower()

SHOPIFY_STORE_DOMAIN = os.environ.get("SHOPIFY_STORE_DOMAIN", "tialorens.myshopify.com")
SHOPIFY_ACCESS_TOKEN = os.environ.get("SHOPIFY_ACCESS_TOKEN", "")
SHOPIFY_API_VERSION = os.environ.get("SHOPIFY_API_VERSION", "2023-10")
SHOPIFY_TIMEOUT_SECONDS = float(os.environ.get("SHOPIFY_TIMEOUT_SECONDS", "30"))

_DEFAULT_CORS_ORIGINS = [
    "http://localhost",
    "http://localhost:3000",
    "http://127.0.0.1",
    "http://127.0.0.1:3000",
]

_cors_env = os.environ.get("TRYON_CORS_ORIGINS")
if _cors_env:
    CORS_ALLOW_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip()]
else:
    CORS_ALLOW_ORIGINS = _DEFAULT_CORS_ORIGINS

CORS_ALLOW_ORIGIN_REGEX = os.environ.get(
    "TRYON_CORS_ORIGIN_REGEX", r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"
) or None

# Paths that answer any origin (the upload form is embedded on the storefront).
CORS_WILDCARD_PATHS = ("/api/tryon",)

# Directory where diagnostic outputs (e.g., /api/test-ai results) are written.
OUTPUTS_DIR = Path(
    os.environ.get("TRYON_OUTPUTS_DIR", BASE_PATH.parent / "outputs")
)
OUTPUTS_DIR.mkdir(exist_ok=True, parents=True)

# Sample photo used by the diagnostic endpoint.
TEST_PERSON_IMAGE = Path(
    os.environ.get("TRYON_TEST_PERSON_IMAGE", BASE_PATH.parent / "public" / "test-person.jpg")
)
TEST_GARMENT_DESCRIPTION = "stylish black plush tracksuit from Tia Lorens"

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence, Union

import httpx
from pydantic import BaseModel

from . import config
from .errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

PLACEHOLDER_IMAGE = "/placeholder.jpg"


class Product(BaseModel):
    id: str
    name: str
    price: int
    originalPrice: Optional[int] = None
    image: str
    category: str
    description: str
    inStock: bool
    isOnSale: bool


class ShopifyProduct(BaseModel):
    id: Union[int, str]
    name: str
    price: str
    image: str
    description: str
    handle: str
    shopifyUrl: str


class ProductCatalog(Protocol):
    async def list_products(self) -> Sequence[BaseModel]:
        ...


MOCK_PRODUCTS = (
    Product(
        id="prod_001",
        name="Tia Lorens Black Plush Tracksuit",
        price=8590,
        originalPrice=9500,
        image="/products/black-plush-tracksuit.jpg",
        category="Plišane trenerke",
        description="Dodaj eleganciju i udobnost svom stilu uz Tia Lorens Black Plush trenerku.",
        inStock=True,
        isOnSale=True,
    ),
    Product(
        id="prod_002",
        name="Elegant Summer Dress",
        price=7200,
        originalPrice=None,
        image=PLACEHOLDER_IMAGE,
        category="Ženski kompleti",
        description="Savršena haljina za letnje dane i posebne prilike.",
        inStock=True,
        isOnSale=False,
    ),
    Product(
        id="prod_003",
        name="Premium Yoga Set",
        price=6800,
        originalPrice=8000,
        image=PLACEHOLDER_IMAGE,
        category="Ženske helanke",
        description="Visokokvalitetni set za jogu i fitnes aktivnosti.",
        inStock=False,
        isOnSale=True,
    ),
)


class StaticCatalog:
    """In-memory catalog. Returns copies so callers cannot mutate the source list."""

    def __init__(self, products: Sequence[Product] = MOCK_PRODUCTS) -> None:
        self._products = tuple(products)

    async def list_products(self) -> List[Product]:
        return [product.model_copy() for product in self._products]


class ShopifyCatalog:
    """Reads products from the Shopify Admin REST API."""

    def __init__(
        self,
        *,
        domain: Optional[str] = None,
        access_token: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.domain = domain or config.SHOPIFY_STORE_DOMAIN
        self.access_token = config.SHOPIFY_ACCESS_TOKEN if access_token is None else access_token
        self.api_version = api_version or config.SHOPIFY_API_VERSION
        self.timeout_seconds = config.SHOPIFY_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self._transport = transport

    @property
    def products_url(self) -> str:
        return f"https://{self.domain}/admin/api/{self.api_version}/products.json"

    @property
    def storefront_base(self) -> str:
        return f"https://{self.domain.replace('.myshopify.com', '')}.com"

    def to_product(self, raw: dict) -> ShopifyProduct:
        variants = raw.get("variants") or []
        images = raw.get("images") or []
        first_price = variants[0].get("price") if variants else None
        handle = raw.get("handle") or ""
        return ShopifyProduct(
            id=raw.get("id"),
            name=raw.get("title") or "",
            price=f"${first_price}" if first_price else "Price not available",
            image=(images[0].get("src") if images else None) or PLACEHOLDER_IMAGE,
            description=raw.get("body_html") or "",
            handle=handle,
            shopifyUrl=f"{self.storefront_base}/products/{handle}",
        )

    async def list_products(self) -> List[ShopifyProduct]:
        if not self.access_token:
            raise ConfigurationError("Shopify access token not configured")

        headers = {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.get(self.products_url, headers=headers)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Shopify API error: %s - %s", exc.response.status_code, exc.response.text[:200]
            )
            raise UpstreamError(
                "Failed to fetch Shopify products",
                details=f"Shopify API error: {exc.response.status_code} {exc.response.reason_phrase}",
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Shopify request failed: %s", exc)
            raise UpstreamError("Failed to fetch Shopify products", details=str(exc)) from exc

        try:
            products = [self.to_product(item) for item in payload.get("products") or []]
        except (AttributeError, IndexError, KeyError, TypeError, ValueError) as exc:
            logger.error("Unexpected Shopify products payload: %s", exc)
            raise UpstreamError(
                "Failed to fetch Shopify products",
                details=f"Unexpected Shopify response: {exc}",
            ) from exc
        logger.info("Fetched %d products from %s", len(products), self.domain)
        return products


def get_catalog(source: Optional[str] = None) -> ProductCatalog:
    source = (source or config.CATALOG_SOURCE).lower()
    if source == "shopify":
        return ShopifyCatalog()
    if source != "static":
        logger.warning("Unsupported TRYON_CATALOG_SOURCE %s; falling back to static.", source)
    return StaticCatalog()

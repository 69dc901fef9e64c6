from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from prestasync.config.settings import get_settings
from prestasync.config.endpoints import get_endpoints, build_url
from prestasync.models.database import Site
from prestasync.models.prestashop import StatsPayload, PriceHistoryPayload
from prestasync.core.exceptions import NetworkError, HttpStatusError, MalformedResponseError
from prestasync.utils.helpers import sanitize_error_body, truncate_string

logger = structlog.get_logger()

class PrestaShopClient:
    """Client for the PrestaSynch module API of one PrestaShop store.

    TLS verification is off by default: merchants routinely connect staging
    stores and self-signed certificates. The client never retries; callers
    choose their own retry policy.
    """

    def __init__(self, site: Site, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = get_settings()
        self.endpoints = get_endpoints()
        self.site_id = site.id
        self.base_url = site.url
        self.api_key = site.api_key
        self.http_auth = None
        if site.http_auth_enabled and site.http_auth_username and site.http_auth_password:
            self.http_auth = httpx.BasicAuth(site.http_auth_username, site.http_auth_password)

        self._client = httpx.AsyncClient(
            timeout=self.settings.PRESTASHOP_TIMEOUT,
            verify=self.settings.PRESTASHOP_VERIFY_TLS,
            follow_redirects=True,
            headers={"User-Agent": self.settings.PRESTASHOP_USER_AGENT},
            auth=self.http_auth,
            transport=transport,
        )

    async def close(self):
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Api-Key": self.api_key,
        }
        return headers

    async def request(self, endpoint: str, method: str = "GET", body: Optional[Any] = None) -> Any:
        """Send a request to the store and return the decoded JSON payload"""
        url = build_url(self.base_url, endpoint)

        logger.info("Making PrestaShop API request", site_id=self.site_id, method=method, url=url)

        try:
            response = await self._client.request(
                method=method,
                url=url,
                headers=self._headers(),
                json=body,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("PrestaShop API transport error", site_id=self.site_id, url=url, error=str(e))
            raise NetworkError(f"Could not reach PrestaShop store at {self.base_url}: {e}") from e

        if not response.is_success:
            body_text = sanitize_error_body(
                response.text,
                response.headers.get("content-type", ""),
                self.settings.ERROR_BODY_PREVIEW_LENGTH,
            )
            logger.error("PrestaShop API error", site_id=self.site_id, status_code=response.status_code, response=body_text)
            raise HttpStatusError(response.status_code, body_text)

        text = response.text
        if not text.strip():
            raise MalformedResponseError("Empty response received from PrestaShop API")

        try:
            # Decimal keeps prices exact all the way to the database
            return response.json(parse_float=Decimal)
        except ValueError as e:
            preview = sanitize_error_body(text, response.headers.get("content-type", ""), 200)
            logger.error("Non-JSON response received", site_id=self.site_id, response_preview=preview)
            raise MalformedResponseError(f"Invalid JSON returned by PrestaShop API: {truncate_string(str(e), 200)}") from e

    async def ping(self) -> Dict[str, Any]:
        response = await self.request(self.endpoints.ping())
        if not isinstance(response, dict):
            raise MalformedResponseError("Invalid response format from PrestaShop ping API")
        return response

    async def get_products(self) -> List[Any]:
        """Fetch the raw product feed (principal and attribute rows)"""
        return await self._get_product_list(self.endpoints.products())

    async def get_products_with_attributes(self) -> List[Any]:
        """Fetch the variant feed computed by the module"""
        return await self._get_product_list(self.endpoints.products_with_attributes())

    async def _get_product_list(self, endpoint: str) -> List[Any]:
        response = await self.request(endpoint)
        if not isinstance(response, dict) or not isinstance(response.get("products"), list):
            raise MalformedResponseError("Invalid response format from PrestaShop API")

        logger.info("Fetched products from PrestaShop", site_id=self.site_id, count=len(response["products"]))
        return response["products"]

    async def get_stats(self) -> StatsPayload:
        response = await self.request(self.endpoints.stats())
        if not isinstance(response, dict) or not isinstance(response.get("stats"), dict):
            raise MalformedResponseError("Invalid response format from PrestaShop Stats API")

        try:
            return StatsPayload.model_validate(response["stats"])
        except PydanticValidationError as e:
            raise MalformedResponseError(f"Invalid stats payload: {e.errors(include_url=False)}") from e

    async def get_price_history(self, id_product: int) -> PriceHistoryPayload:
        response = await self.request(self.endpoints.price_history(id_product))
        if not isinstance(response, dict) or not response.get("product") or not response.get("history"):
            raise MalformedResponseError("Invalid response format from PrestaShop Price History API")

        try:
            return PriceHistoryPayload.model_validate(response)
        except PydanticValidationError as e:
            raise MalformedResponseError(f"Invalid price history payload: {e.errors(include_url=False)}") from e

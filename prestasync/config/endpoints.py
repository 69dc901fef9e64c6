"""
Centralized endpoint management for the PrestaSynch store module.

Every store exposes a single PHP entry point; the operation is selected with
the ``action`` query parameter. This module keeps the action names and the
path construction in one place so the client never concatenates query
strings by hand.
"""

from typing import Dict, Optional
from urllib.parse import urlencode


class PrestaSynchActions:
    """Actions understood by the PrestaSynch module API"""

    PING = "ping"
    PRODUCTS = "products"
    PRODUCTS_WITH_ATTRIBUTES = "products_with_attributes"
    STATS = "stats"
    PRICE_HISTORY = "price_history"


class PrestaSynchEndpoints:
    """
    Builds endpoint paths relative to a store base URL.

    Example:
        endpoints = PrestaSynchEndpoints("modules/prestasynch/api.php")
        endpoints.price_history(42)
        # -> "modules/prestasynch/api.php?action=price_history&id_product=42"
    """

    def __init__(self, module_path: str = "modules/prestasynch/api.php"):
        self.module_path = module_path.strip("/")
        self.actions = PrestaSynchActions()

    def action(self, name: str, params: Optional[Dict[str, object]] = None) -> str:
        """Build the endpoint path for a module action"""
        query = {"action": name}
        if params:
            query.update(params)
        return f"{self.module_path}?{urlencode(query)}"

    def ping(self) -> str:
        return self.action(PrestaSynchActions.PING)

    def products(self) -> str:
        return self.action(PrestaSynchActions.PRODUCTS)

    def products_with_attributes(self) -> str:
        return self.action(PrestaSynchActions.PRODUCTS_WITH_ATTRIBUTES)

    def stats(self) -> str:
        return self.action(PrestaSynchActions.STATS)

    def price_history(self, id_product: int) -> str:
        return self.action(PrestaSynchActions.PRICE_HISTORY, {"id_product": id_product})


def build_url(base_url: str, endpoint: str) -> str:
    """Join a store base URL and an endpoint path with exactly one separator"""
    return f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"


def get_endpoints() -> PrestaSynchEndpoints:
    from prestasync.config.settings import get_settings
    return PrestaSynchEndpoints(get_settings().PRESTASHOP_MODULE_PATH)

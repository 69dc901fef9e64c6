from typing import Optional

class PrestaSyncException(Exception):
    """Base exception for the dashboard"""
    pass

class RemoteStoreError(PrestaSyncException):
    """Exception raised for PrestaShop store API errors"""
    pass

class NetworkError(RemoteStoreError):
    """DNS, connect, TLS or timeout failure while reaching a store"""
    pass

class HttpStatusError(RemoteStoreError):
    """Store answered with a non-2xx status"""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"PrestaShop API request failed with status {status_code}: {body}")

class MalformedResponseError(RemoteStoreError):
    """Store answered 2xx but the payload is not JSON or has an unexpected shape"""
    pass

class SyncError(PrestaSyncException):
    """Exception raised during synchronization process"""
    pass

class SyncInProgressError(SyncError):
    """Another sync or reset currently holds the site lock"""

    def __init__(self, site_id: int):
        self.site_id = site_id
        super().__init__(f"A synchronization is already running for site {site_id}")

class NoProductsFoundError(SyncError):
    """The store returned an empty product list"""
    pass

class SiteNotFoundError(PrestaSyncException):
    def __init__(self, site_id: Optional[int] = None):
        self.site_id = site_id
        super().__init__(f"Site with id {site_id} not found")

class ProductNotFoundError(PrestaSyncException):
    def __init__(self, product_id: Optional[int] = None):
        self.product_id = product_id
        super().__init__(f"Product with id {product_id} not found")

class StockAlertNotFoundError(PrestaSyncException):
    def __init__(self, alert_id: Optional[int] = None):
        self.alert_id = alert_id
        super().__init__(f"Stock alert with id {alert_id} not found")

class InvalidProductError(PrestaSyncException):
    """Product cannot be used for a remote operation, e.g. it has no PrestaShop id"""
    pass

class ValidationError(PrestaSyncException):
    """Exception raised for data validation errors"""
    pass

"""
CSS Catalog Reader

Lazily lists every CSS product of one CSS domain through the Comparison
Shopping Service API. Pages are fetched by the client library's pager as the
caller iterates.
"""

from typing import Iterator, Optional

import structlog
from google.api_core import exceptions as api_exceptions
from google.auth import credentials as ga_credentials
from google.auth import exceptions as auth_exceptions
from google.shopping import css_v1

from feedviz.accounts.account_info import AccountInfo
from feedviz.exceptions import AuthenticationError, UpstreamError
from feedviz.metrics import PRODUCTS_READ

logger = structlog.get_logger(__name__)

_AUTH_ERRORS = (
    api_exceptions.Unauthenticated,
    api_exceptions.PermissionDenied,
    auth_exceptions.RefreshError,
)
_UPSTREAM_ERRORS = (
    api_exceptions.GoogleAPIError,
    auth_exceptions.TransportError,
)


class CatalogReader:
    """
    Reads CSS products for ``accounts/{domain_id}``.

    Example:
        reader = CatalogReader(account_info, credentials=credentials)
        for product in reader.list_css_products():
            ...
    """

    def __init__(
        self,
        account_info: AccountInfo,
        credentials: Optional[ga_credentials.Credentials] = None,
        client: Optional[css_v1.CssProductsServiceClient] = None,
        page_size: Optional[int] = None,
    ):
        self.account_info = account_info
        self.credentials = credentials
        self.page_size = page_size
        self._client = client

    @property
    def client(self) -> css_v1.CssProductsServiceClient:
        if self._client is None:
            self._client = css_v1.CssProductsServiceClient(credentials=self.credentials)
        return self._client

    def list_css_products(self) -> Iterator[css_v1.CssProduct]:
        """
        Iterate over every product of the account.

        Raises:
            ConfigError: the account has no domain ID (raised immediately)
            AuthenticationError: credentials were rejected (raised while iterating)
            UpstreamError: any other API or transport failure (raised while iterating)
        """
        request = css_v1.ListCssProductsRequest(parent=self.account_info.parent)
        if self.page_size:
            request.page_size = self.page_size
        return self._iterate(request)

    def _iterate(self, request: css_v1.ListCssProductsRequest) -> Iterator[css_v1.CssProduct]:
        count = 0
        context = {"parent": request.parent}
        try:
            for product in self.client.list_css_products(request=request):
                count += 1
                PRODUCTS_READ.inc()
                yield product
        except _AUTH_ERRORS as e:
            raise AuthenticationError(
                "CSS API rejected the credentials",
                context={**context, "products_read": count},
                original_exception=e,
            ) from e
        except _UPSTREAM_ERRORS as e:
            raise UpstreamError(
                "Listing CSS products failed",
                context={**context, "products_read": count},
                original_exception=e,
            ) from e

        logger.info("Listed CSS products", parent=request.parent, count=count)

"""
Unit Tests - CSS Catalog Reader
"""
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions

from feedviz.accounts.account_info import AccountInfo
from feedviz.exceptions import AuthenticationError, ConfigError, UpstreamError
from feedviz.ingestion.catalog_reader import CatalogReader

from tests.conftest import make_product


@pytest.fixture
def account_info(tmp_path):
    return AccountInfo.create(tmp_path, merchant_id=789, domain_id=456, group_id=123)


def pages_then_error(products, error):
    """Pager stand-in that fails after yielding some products"""
    yield from products
    raise error


class TestCatalogReader:
    """Tests for CatalogReader"""

    def test_lists_products(self, account_info):
        """Test every product is yielded for accounts/{domainId}"""
        expected = [make_product(i) for i in range(3)]
        client = MagicMock()
        client.list_css_products.return_value = iter(expected)

        products = list(CatalogReader(account_info, client=client).list_css_products())

        assert products == expected
        request = client.list_css_products.call_args.kwargs["request"]
        assert request.parent == "accounts/456"

    def test_page_size(self, account_info):
        """Test the page size is passed through when set"""
        client = MagicMock()
        client.list_css_products.return_value = iter([])

        list(CatalogReader(account_info, client=client, page_size=250).list_css_products())

        assert client.list_css_products.call_args.kwargs["request"].page_size == 250

    def test_lazy(self, account_info):
        """Test nothing is fetched until iteration starts"""
        client = MagicMock()
        client.list_css_products.return_value = iter([make_product()])

        products = CatalogReader(account_info, client=client).list_css_products()

        client.list_css_products.assert_not_called()
        assert next(products).raw_provided_id == "sku-0"

    def test_empty_catalog(self, account_info):
        """Test an empty catalog yields nothing"""
        client = MagicMock()
        client.list_css_products.return_value = iter([])

        assert list(CatalogReader(account_info, client=client).list_css_products()) == []

    def test_missing_domain(self, tmp_path):
        """Test a missing domain ID fails before any request"""
        client = MagicMock()
        reader = CatalogReader(AccountInfo.create(tmp_path, merchant_id=789), client=client)

        with pytest.raises(ConfigError):
            reader.list_css_products()
        client.list_css_products.assert_not_called()

    @pytest.mark.parametrize(
        "error",
        [
            api_exceptions.Unauthenticated("bad token"),
            api_exceptions.PermissionDenied("no access"),
            auth_exceptions.RefreshError("expired"),
        ],
    )
    def test_authentication_errors(self, account_info, error):
        """Test rejected credentials map to AuthenticationError"""
        client = MagicMock()
        client.list_css_products.side_effect = error

        with pytest.raises(AuthenticationError):
            list(CatalogReader(account_info, client=client).list_css_products())

    def test_failure_mid_iteration(self, account_info):
        """Test a failing later page surfaces as UpstreamError after earlier products"""
        client = MagicMock()
        client.list_css_products.return_value = pages_then_error(
            [make_product(0), make_product(1)], api_exceptions.ServiceUnavailable("down")
        )
        seen = []

        with pytest.raises(UpstreamError) as exc_info:
            for product in CatalogReader(account_info, client=client).list_css_products():
                seen.append(product)

        assert len(seen) == 2
        assert exc_info.value.context["products_read"] == 2
        assert isinstance(exc_info.value.__cause__, api_exceptions.ServiceUnavailable)

    def test_transport_error(self, account_info):
        """Test transport failures map to UpstreamError"""
        client = MagicMock()
        client.list_css_products.side_effect = auth_exceptions.TransportError("connection reset")

        with pytest.raises(UpstreamError):
            list(CatalogReader(account_info, client=client).list_css_products())

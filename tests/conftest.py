"""
Test Suite Configuration
"""
import threading
import time
from concurrent.futures import Future
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest
from google.api_core import exceptions as api_exceptions
from google.protobuf import timestamp_pb2
from google.shopping import css_v1
from google.shopping.type import Price

from feedviz.config.settings import AccountSettings, Settings, WarehouseSettings


# =============================================================================
# FAKES
# =============================================================================

class FakeBigQueryClient:
    """In-memory stand-in for google.cloud.bigquery.Client"""

    def __init__(self, project: str = "test-project"):
        self.project = project
        self.datasets: Dict[str, Any] = {}
        self.tables: Dict[tuple, Any] = {}
        self.create_calls: List[tuple] = []
        self.inserts: List[List[dict]] = []
        self.insert_errors: Dict[int, List[dict]] = {}
        self.fail_on_create: Optional[Exception] = None
        self.fail_on_insert: Optional[Exception] = None
        self.closed = False

    def get_dataset(self, ref):
        if ref.dataset_id not in self.datasets:
            raise api_exceptions.NotFound(f"Dataset {ref.dataset_id} not found")
        return self.datasets[ref.dataset_id]

    def get_table(self, ref):
        key = (ref.dataset_id, ref.table_id)
        if key not in self.tables:
            raise api_exceptions.NotFound(f"Table {ref.table_id} not found")
        return self.tables[key]

    def create_dataset(self, dataset):
        if self.fail_on_create:
            raise self.fail_on_create
        self.create_calls.append(("dataset", dataset.dataset_id))
        self.datasets[dataset.dataset_id] = dataset
        return dataset

    def create_table(self, table):
        if self.fail_on_create:
            raise self.fail_on_create
        self.create_calls.append(("table", table.dataset_id, table.table_id))
        self.tables[(table.dataset_id, table.table_id)] = table
        return table

    def insert_rows_json(self, table, rows):
        if self.fail_on_insert:
            raise self.fail_on_insert
        call_index = len(self.inserts)
        self.inserts.append(list(rows))
        return self.insert_errors.get(call_index, [])

    def close(self):
        self.closed = True


class FakeWriteStream:
    """
    Records appends and hands out controllable futures.

    With ``auto_complete`` every future settles as soon as it is returned;
    ``failures`` maps an append index to the exception it fails with.
    """

    stream_name = "projects/test-project/datasets/css_feedviz/tables/css_products/streams/_default"

    def __init__(self, auto_complete: bool = True, failures: Optional[Dict[int, Exception]] = None):
        self.auto_complete = auto_complete
        self.failures = failures or {}
        self.appends: List[tuple] = []
        self.futures: List[Future] = []
        self.max_outstanding = 0
        self.closed = False
        self.outstanding_at_close: Optional[int] = None
        self._lock = threading.Lock()

    def append(self, rows, offset):
        future: Future = Future()
        with self._lock:
            index = len(self.appends)
            self.appends.append((list(rows), offset))
            self.futures.append(future)
            outstanding = sum(1 for f in self.futures if not f.done())
            self.max_outstanding = max(self.max_outstanding, outstanding)
        if self.auto_complete:
            self.settle(index)
        return future

    def settle(self, index: int, error: Optional[Exception] = None) -> None:
        error = error or self.failures.get(index)
        future = self.futures[index]
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(None)

    def close(self):
        self.outstanding_at_close = sum(1 for f in self.futures if not f.done())
        self.closed = True

    @property
    def offsets(self) -> List[int]:
        return [offset for _, offset in self.appends]


def settle_in_background(
    stream: FakeWriteStream,
    expected: int,
    order: Optional[List[int]] = None,
    errors: Optional[Dict[int, Exception]] = None,
) -> threading.Thread:
    """Settle ``expected`` appends from another thread once all are submitted."""

    def run():
        deadline = time.monotonic() + 5
        while len(stream.futures) < expected and time.monotonic() < deadline:
            time.sleep(0.005)
        for index in order or range(expected):
            stream.settle(index, (errors or {}).get(index))

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread


def settle_as_submitted(stream: FakeWriteStream, expected: int, delay: float = 0.01) -> threading.Thread:
    """Settle each append shortly after it is submitted, in order."""

    def run():
        deadline = time.monotonic() + 5
        for index in range(expected):
            while len(stream.futures) <= index and time.monotonic() < deadline:
                time.sleep(0.001)
            time.sleep(delay)
            stream.settle(index)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread


# =============================================================================
# PRODUCTS
# =============================================================================

def make_product(index: int = 0, full: bool = False) -> css_v1.CssProduct:
    """Build a CSS product; ``full`` sets every repeated and timestamp field."""
    attributes = dict(
        title=f"Product {index}",
        brand="Acme",
        low_price=Price(amount_micros=1_990_000 + index, currency_code="EUR"),
        high_price=Price(amount_micros=2_990_000, currency_code="EUR"),
        number_of_offers=3,
        multipack=2,
        adult=False,
    )
    status = {}
    if full:
        attributes.update(
            additional_image_links=["https://example.com/a.jpg"],
            product_types=["Home > Kitchen"],
            size_types=["regular"],
            product_details=[
                css_v1.ProductDetail(section_name="General", attribute_name="Material", attribute_value="Steel")
            ],
            product_weight=css_v1.ProductWeight(value=1.5, unit="kg"),
            product_length=css_v1.ProductDimension(value=30.0, unit="cm"),
            product_highlights=["Dishwasher safe"],
            certifications=[
                css_v1.Certification(name="EPREL", authority="European Commission", code="123456")
            ],
            expiration_date=timestamp_pb2.Timestamp(seconds=1_735_689_600),
            included_destinations=["Shopping_ads"],
        )
        status = dict(
            destination_statuses=[
                css_v1.CssProductStatus.DestinationStatus(
                    destination="Shopping_ads",
                    approved_countries=["DE"],
                    pending_countries=["AT"],
                    disapproved_countries=["CH"],
                )
            ],
            item_level_issues=[
                css_v1.CssProductStatus.ItemLevelIssue(
                    code="missing_gtin",
                    servability="unaffected",
                    resolution="merchant_action",
                    attribute="gtin",
                    destination="Shopping_ads",
                    description="Missing GTIN",
                    detail="Add a GTIN",
                    documentation="https://support.google.com",
                    applicable_countries=["DE", "AT"],
                )
            ],
            creation_date=timestamp_pb2.Timestamp(seconds=1_704_164_645),
            last_update_date=timestamp_pb2.Timestamp(seconds=1_704_164_645, nanos=500_000_000),
        )
    return css_v1.CssProduct(
        name=f"accounts/456/cssProducts/de~DE~{index}",
        raw_provided_id=f"sku-{index}",
        content_language="de",
        feed_label="DE",
        attributes=css_v1.Attributes(**attributes),
        css_product_status=css_v1.CssProductStatus(**status),
    )


@pytest.fixture
def transfer_time() -> datetime:
    return datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def products() -> Callable[[int], List[css_v1.CssProduct]]:
    """Factory for lists of CSS products"""
    return lambda count: [make_product(i) for i in range(count)]


@pytest.fixture
def bigquery_client() -> FakeBigQueryClient:
    return FakeBigQueryClient()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Create test settings pointing at a temporary config directory"""
    return Settings(
        app_env="testing",
        account=AccountSettings(config_dir=str(tmp_path), domain_id=456),
        warehouse=WarehouseSettings(dataset_name="css_feedviz_test"),
    )

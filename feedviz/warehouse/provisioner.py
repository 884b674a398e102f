"""
Warehouse provisioning

Ensures the destination dataset and the partitioned css_products table exist
before any row is written. Safe to run on every transfer: existing objects are
left untouched.
"""

import structlog
from google.api_core import exceptions as api_exceptions
from google.cloud import bigquery

from feedviz.exceptions import ProvisioningError
from feedviz.warehouse.schema import (
    CSS_PRODUCTS_TABLE,
    SchemaVariant,
    css_products_schema,
    time_partitioning,
)

logger = structlog.get_logger(__name__)


class WarehouseProvisioner:
    """
    Idempotent creator of the css_products dataset and table.

    Example:
        provisioner = WarehouseProvisioner(bigquery.Client(), SchemaVariant.HOURLY)
        table_ref = provisioner.ensure_ready("css_feedviz", "EU")
    """

    def __init__(
        self,
        client: bigquery.Client,
        variant: SchemaVariant = SchemaVariant.HOURLY,
        table_name: str = CSS_PRODUCTS_TABLE,
    ):
        self.client = client
        self.variant = SchemaVariant(variant)
        self.table_name = table_name

    def _dataset_ref(self, dataset_name: str) -> bigquery.DatasetReference:
        return bigquery.DatasetReference(self.client.project, dataset_name)

    def dataset_exists(self, dataset_name: str) -> bool:
        try:
            self.client.get_dataset(self._dataset_ref(dataset_name))
            return True
        except api_exceptions.NotFound:
            return False

    def table_exists(self, dataset_name: str) -> bool:
        try:
            self.client.get_table(self._dataset_ref(dataset_name).table(self.table_name))
            return True
        except api_exceptions.NotFound:
            return False

    def create_dataset(self, dataset_name: str, location: str) -> bigquery.Dataset:
        dataset = bigquery.Dataset(self._dataset_ref(dataset_name))
        dataset.location = location
        created = self.client.create_dataset(dataset)
        logger.info("Created dataset", dataset=dataset_name, location=location)
        return created

    def create_table(self, dataset_name: str) -> bigquery.Table:
        table = bigquery.Table(
            self._dataset_ref(dataset_name).table(self.table_name),
            schema=list(css_products_schema(self.variant)),
        )
        table.time_partitioning = time_partitioning(self.variant)
        created = self.client.create_table(table)
        logger.info(
            "Created table",
            dataset=dataset_name,
            table=self.table_name,
            partitioning=table.time_partitioning.type_,
            expiration_ms=table.time_partitioning.expiration_ms,
        )
        return created

    def ensure_ready(self, dataset_name: str, location: str) -> bigquery.TableReference:
        """
        Create the dataset and table if they are missing.

        Args:
            dataset_name: Destination dataset
            location: Location used when the dataset has to be created

        Returns:
            Reference of the css_products table

        Raises:
            ProvisioningError: an existence check or a create call failed
        """
        context = {"dataset": dataset_name, "table": self.table_name, "variant": self.variant.value}
        try:
            if not self.dataset_exists(dataset_name):
                self.create_dataset(dataset_name, location)
            if not self.table_exists(dataset_name):
                self.create_table(dataset_name)
        except api_exceptions.GoogleAPIError as e:
            raise ProvisioningError(
                "Failed to provision the css_products table",
                context=context,
                original_exception=e,
            ) from e

        logger.debug("Warehouse ready", **context)
        return self._dataset_ref(dataset_name).table(self.table_name)

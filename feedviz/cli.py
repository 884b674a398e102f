"""
Command line entry point: ``feedviz-transfer``

Runs one CSS products transfer. Arguments override the environment and
``.env`` configuration for this invocation only.
"""

import argparse
import sys
from typing import List, Optional

import structlog

from feedviz.config.logging import configure_logging
from feedviz.config.settings import IngestionMode, Settings, get_settings
from feedviz.exceptions import FeedvizError
from feedviz.pipeline import TransferPipeline, TransferStatus

logger = structlog.get_logger(__name__)


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="feedviz-transfer",
        description="Transfer CSS products from the CSS API into BigQuery",
    )
    parser.add_argument("--config-dir", help="Directory with account-info.json and service-account.json")
    parser.add_argument("--account-info-file", help="Account info file name inside the config directory")
    parser.add_argument("--dataset-name", help="Destination BigQuery dataset")
    parser.add_argument("--dataset-location", help="Location used when creating the dataset")
    parser.add_argument("--project-id", help="GCP project of the dataset")
    parser.add_argument("--merchant-id", type=int, help="CSS merchant ID (skips account-info.json)")
    parser.add_argument("--domain-id", type=int, help="CSS domain ID (skips account-info.json)")
    parser.add_argument("--group-id", type=int, help="CSS group ID (skips account-info.json)")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in IngestionMode],
        help="stream (hourly table) or insert (legacy daily table)",
    )
    parser.add_argument("--batch-size", type=_positive_int, help="Rows per append or insert call")
    parser.add_argument("--max-in-flight", type=_positive_int, help="Bound on outstanding appends")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return a copy of ``settings`` with every argument that was given applied."""

    def given(**values):
        return {k: v for k, v in values.items() if v is not None}

    account = given(
        config_dir=args.config_dir,
        account_info_file=args.account_info_file,
        merchant_id=args.merchant_id,
        domain_id=args.domain_id,
        group_id=args.group_id,
    )
    warehouse = given(
        dataset_name=args.dataset_name,
        dataset_location=args.dataset_location,
        project_id=args.project_id,
        ingestion_mode=IngestionMode(args.mode) if args.mode else None,
        batch_size=args.batch_size,
        max_in_flight=args.max_in_flight,
    )
    monitoring = given(log_level=args.log_level)

    return settings.model_copy(
        update={
            "account": settings.account.model_copy(update=account),
            "warehouse": settings.warehouse.model_copy(update=warehouse),
            "monitoring": settings.monitoring.model_copy(update=monitoring),
        }
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = apply_overrides(get_settings(), args)
    configure_logging(settings=settings)

    try:
        result = TransferPipeline(settings).run()
    except FeedvizError:
        return 1

    if result.status is TransferStatus.PARTIAL:
        logger.warning("Some rows were rejected by BigQuery", rejected=len(result.errors))
    return 0


if __name__ == "__main__":
    sys.exit(main())

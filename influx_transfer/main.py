import argparse
from dataclasses import replace
import logging

from sqlalchemy.exc import SQLAlchemyError

from influx_transfer.config import Settings, get_settings, validate_settings
from influx_transfer.database import build_database_url, engine_scope
from influx_transfer.schemas import RunStatistics, TransferResult, TransferState
from influx_transfer.source import InfluxSource
from influx_transfer.transfer import TransferCoordinator
from influx_transfer.writer import BatchWriter


logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Copy aggregated InfluxDB measurements into PostgreSQL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="run one transfer")
    run_parser.add_argument("--range-start", help="Flux range start, e.g. -24h or 2026-01-01T00:00:00Z")
    run_parser.add_argument("--range-stop", help="Flux range stop (defaults to now)")
    run_parser.add_argument("--batch-size", type=int, help="Rows per destination transaction")
    run_parser.add_argument(
        "--create-table",
        action="store_true",
        help="Create the destination table if it does not exist",
    )

    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides: dict[str, object] = {}
    if args.range_start:
        overrides["range_start"] = args.range_start
    if args.range_stop:
        overrides["range_stop"] = args.range_stop
    if args.batch_size is not None:
        overrides["batch_size"] = args.batch_size
    return replace(settings, **overrides)


def run_transfer(settings: Settings, *, create_table: bool = False) -> TransferResult:
    try:
        validate_settings(settings)
        database_url = build_database_url(
            settings.database_url,
            user=settings.postgres_user,
            password=settings.postgres_password,
        )
        with engine_scope(database_url, create_table=create_table) as engine, InfluxSource.from_settings(settings) as source:
            writer = BatchWriter(
                engine,
                max_retries=settings.max_batch_retries,
                backoff_seconds=settings.retry_backoff_seconds,
            )
            coordinator = TransferCoordinator(
                source,
                writer,
                batch_size=settings.batch_size,
                version_tag_key=settings.influx_version_tag,
            )
            return coordinator.run()
    except (ValueError, SQLAlchemyError) as exc:
        # Setup failed before any row was read.
        logger.exception("transfer setup failed")
        return TransferResult(
            state=TransferState.ABORTED,
            statistics=RunStatistics(),
            error=f"{type(exc).__name__}: {exc}",
        )


def format_summary(result: TransferResult) -> str:
    stats = result.statistics
    summary = (
        "state={state} read={read} mapped={mapped} skipped={skipped} committed={committed_rows} "
        "batches_committed={committed} batches_rolled_back={rolled_back}"
    ).format(
        state=result.state.value,
        read=stats.rows_read,
        mapped=stats.rows_mapped,
        skipped=stats.rows_skipped,
        committed_rows=stats.rows_committed,
        committed=stats.batches_committed,
        rolled_back=stats.batches_rolled_back,
    )
    if result.error:
        summary += f" error={result.error!r}"
    return summary


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = apply_overrides(get_settings(), args)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    result = run_transfer(settings, create_table=args.create_table)
    print(format_summary(result))
    if result.state is TransferState.ABORTED:
        raise SystemExit(1)


if __name__ == "__main__":
    main()

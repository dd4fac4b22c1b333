from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

from emigrant_pipeline.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from emigrant_pipeline.forecast.series import ForecastError
from emigrant_pipeline.logging.error_log import ErrorLogBuffer
from emigrant_pipeline.logging.init import enable_debug, log_summary, setup_logging
from emigrant_pipeline.models.config_models import PipelineConfig
from emigrant_pipeline.models.datasets import DatasetKind
from emigrant_pipeline.models.processing_result import BatchStatsAccumulator, IngestResult
from emigrant_pipeline.storage.collection import CollectionStore, ExternalStoreError
from emigrant_pipeline.storage.factory import open_store
from emigrant_pipeline.tabular.reader import ReshapeError, read_csv_rows
from emigrant_pipeline.tabular.reshape import preview, reshape_rows
from emigrant_pipeline.services.orchestrator import ProcessingError, ingest_file, ingest_occupation, run_forecast
from emigrant_pipeline.services.summary import format_number, render_forecast_summary, render_ingest_summary

"""CLI entrypoint.

Subcommands:
- ingest --kind K FILE...          reshape CSV uploads and upsert them
- ingest-occupation OCC EDU        occupation + education pair, merged by year
- forecast --kind K --field F      train on a stored series and forecast
- inspect FILE [--kind K]          print raw rows / reshaped preview, store nothing

Exit codes: 0 success, 2 partial failure or recoverable data error, 1 fatal
(config, store unavailable).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

_SUMMARY_PREFIX = "SUMMARY "


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _kind(value: str) -> DatasetKind:
    try:
        return DatasetKind.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="emigrant-pipeline",
        description="Emigrant statistics CSV ingestion and forecasting",
    )
    p.add_argument("--config", type=Path, default=None, help=f"Config YAML (default: {DEFAULT_CONFIG_PATH})")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Reshape CSV files and upsert them into the store")
    ingest.add_argument("--kind", type=_kind, required=True, help="gender|education|age|geographic|total")
    ingest.add_argument("files", nargs="+", type=Path)

    occupation = sub.add_parser("ingest-occupation", help="Upsert the occupation dataset (occupation + education CSV)")
    occupation.add_argument("occupation_file", type=Path)
    occupation.add_argument("education_file", type=Path)

    forecast = sub.add_parser("forecast", help="Train on a stored series and forecast future years")
    forecast.add_argument("--kind", type=_kind, required=True)
    forecast.add_argument("--field", required=True, help="Numeric field to forecast (e.g. total, male, count)")
    forecast.add_argument("--start", type=int, default=None, help="First year used for training")
    forecast.add_argument("--end", type=int, default=None, help="Last year used for training")
    forecast.add_argument("--horizon", type=int, default=None, help="Years to forecast (default: config)")
    forecast.add_argument("--save-artifact", action="store_true", help="Save model + metadata under artifact_dir")
    forecast.add_argument(
        "--tune",
        action="store_true",
        help="Try the built-in LSTM and MLP configurations and keep the best by validation RMSE",
    )
    forecast.add_argument(
        "--ingest",
        type=Path,
        nargs="+",
        default=[],
        metavar="FILE",
        help="Ingest these CSV files (same kind) before training",
    )

    inspect = sub.add_parser("inspect", help="Print the first rows of a CSV, or its reshaped preview")
    inspect.add_argument("file", type=Path)
    inspect.add_argument("--kind", type=_kind, default=None)
    inspect.add_argument("--limit", type=int, default=10)

    return p.parse_args(argv)


def _resolve_config(path: Path | None, logger: logging.Logger) -> PipelineConfig:
    """Explicit --config must exist; a missing default file means built-in defaults."""
    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            logger.debug("no %s, using built-in defaults (memory store)", DEFAULT_CONFIG_PATH)
            return PipelineConfig()
        path = DEFAULT_CONFIG_PATH
    return load_config(path)


def _exit_code(results: list[IngestResult]) -> int:
    if any(r.status != "success" for r in results):
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _log_ingest_result(logger: logging.Logger, result: IngestResult) -> None:
    if result.status == "success":
        logger.info(f"{result.source}: stored {result.stored_count} {result.kind} records")
    elif result.status == "partial":
        logger.warning(f"{result.source}: stored {result.stored_count}, failed {result.failed_count}")
    else:
        logger.error(f"{result.source}: {result.error}")


def _timing_callback(timings: BatchStatsAccumulator):
    def record(metrics) -> None:
        timings.add_batch_time(metrics.elapsed_seconds)
    return record


def _finish_ingest(
    logger: logging.Logger,
    results: list[IngestResult],
    error_log: ErrorLogBuffer,
    timings: BatchStatsAccumulator,
) -> int:
    count, avg, p95 = timings.get_stats()
    if count:
        logger.debug(f"store timings ops={count} mean={avg:.4f}s p95={p95:.4f}s")
    log_path = error_log.flush()
    if log_path is not None:
        logger.info(f"error log: {log_path}")
    log_summary(render_ingest_summary(results)[len(_SUMMARY_PREFIX):])
    return _exit_code(results)


def _ingest(args: argparse.Namespace, store: CollectionStore, cfg: PipelineConfig, logger: logging.Logger) -> int:
    error_log = ErrorLogBuffer(Path(cfg.logs_dir))
    timings = BatchStatsAccumulator()
    results: list[IngestResult] = []
    for path in args.files:
        result = ingest_file(path, args.kind, store, error_log, metrics_callback=_timing_callback(timings))
        _log_ingest_result(logger, result)
        results.append(result)
    return _finish_ingest(logger, results, error_log, timings)


def _ingest_occupation(args: argparse.Namespace, store: CollectionStore, cfg: PipelineConfig, logger: logging.Logger) -> int:
    error_log = ErrorLogBuffer(Path(cfg.logs_dir))
    timings = BatchStatsAccumulator()
    result = ingest_occupation(
        args.occupation_file,
        args.education_file,
        store,
        error_log,
        metrics_callback=_timing_callback(timings),
    )
    _log_ingest_result(logger, result)
    return _finish_ingest(logger, [result], error_log, timings)


def _forecast(args: argparse.Namespace, store: CollectionStore, cfg: PipelineConfig, logger: logging.Logger) -> int:
    for path in args.ingest:
        result = ingest_file(path, args.kind, store)
        _log_ingest_result(logger, result)
        if result.status == "failed":
            return EXIT_PARTIAL_FAILURE

    artifact_dir = Path(cfg.artifact_dir) if args.save_artifact else None
    try:
        result = run_forecast(
            store,
            args.kind,
            args.field,
            replace(cfg.forecast, tune=True) if args.tune else cfg.forecast,
            horizon=args.horizon,
            start_year=args.start,
            end_year=args.end,
            artifact_dir=artifact_dir,
        )
    except (ForecastError, ProcessingError) as e:
        logger.error(f"forecast: {e}")
        return EXIT_PARTIAL_FAILURE

    training = result.training
    for index, candidate in enumerate(training.candidates, start=1):
        logger.info(
            f"candidate {index}: {candidate.model_type} units={candidate.units} "
            f"dropout={format_number(candidate.dropout)} lr={format_number(candidate.learning_rate)} "
            f"rmse={format_number(candidate.rmse)}"
        )
    logger.info(
        f"trained {training.model_type} on {len(training.trained_years)} years "
        f"({training.trained_years[0]}-{training.trained_years[-1]}), "
        f"epochs={training.epochs_run} rmse={format_number(training.rmse)}"
    )
    for point in result.forecasts:
        logger.info(f"forecast {point.year}: {format_number(point.value)}")
    for comparison in result.backtest.comparisons:
        logger.info(
            f"backtest {comparison.year}: actual={format_number(comparison.actual)} "
            f"predicted={format_number(comparison.predicted)} error={format_number(comparison.percent_error)}%"
        )
    if result.artifact_path:
        logger.info(f"artifact saved: {result.artifact_path}")
    log_summary(render_forecast_summary(result)[len(_SUMMARY_PREFIX):])
    return EXIT_SUCCESS_ALL


def _inspect(args: argparse.Namespace, logger: logging.Logger) -> int:
    try:
        rows = read_csv_rows(args.file)
        if args.kind is None:
            print(f"FILE: {args.file.name} rows={len(rows)}")
            for row in rows[:args.limit]:
                print("  ", row)
            return EXIT_SUCCESS_ALL
        records = reshape_rows(args.kind, rows)
    except ReshapeError as e:
        logger.error(f"{args.file.name}: {e}")
        return EXIT_PARTIAL_FAILURE

    print(f"FILE: {args.file.name} kind={args.kind.value} records={len(records)}")
    for record in preview(records, args.limit):
        print("  ", json.dumps(record, ensure_ascii=False))
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # only read sys.argv when argv is None; main([]) in tests must not see pytest's args
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        enable_debug()
    _load_env_file(Path(".env"), override=True)

    if args.command == "inspect":
        return _inspect(args, logger)

    try:
        cfg = _resolve_config(args.config, logger)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.command == "forecast" and args.horizon is not None and args.horizon < 1:
        logger.error("forecast: --horizon must be >= 1")
        return EXIT_FATAL

    handlers = {
        "ingest": _ingest,
        "ingest-occupation": _ingest_occupation,
        "forecast": _forecast,
    }
    try:
        with open_store(cfg.store) as store:
            logger.debug(f"store backend={cfg.store.backend}")
            return handlers[args.command](args, store, cfg, logger)
    except ExternalStoreError as e:
        logger.error(f"store: {e}")
        return EXIT_FATAL
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

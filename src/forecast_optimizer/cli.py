"""
Command line interface for the forecast parameter optimizer.

Runs grid or AI-refined parameter searches on a CSV series, lists the
registered models and watches the job status feed.
"""

import argparse
import json
import logging
import sys
import threading
from pathlib import Path

import pandas as pd

from .config import JsonFileSettingsStore, OptimizerConfig
from .core.event_system import create_default_event_system
from .exceptions import DataValidationError, NoCompatibleModelsError, OptimizerError, SearchFailedError
from .jobs.feed import HttpJobStatusFeed
from .jobs.status import JobStatusAggregator
from .models.registry import create_default_registry
from .optimization.ai_optimizer import AIOptimizer
from .optimization.data_validator import DataValidator, ValueAccessor
from .optimization.grid_optimizer import GridOptimizer
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _load_series(args) -> pd.DataFrame:
    frame = pd.read_csv(args.csv)
    if args.value_column not in frame.columns:
        raise DataValidationError([f"Column '{args.value_column}' not found in {args.csv}"])
    if args.date_column:
        if args.date_column not in frame.columns:
            raise DataValidationError([f"Column '{args.date_column}' not found in {args.csv}"])
        frame = frame.rename(columns={args.date_column: 'timestamp'})
    if args.sku_column and args.sku:
        frame = frame[frame[args.sku_column].astype(str) == args.sku]
    return frame


def _print_results(results, top: int) -> None:
    print(f"{'Model':<32} {'Accuracy':>9} {'MAPE':>9} {'RMSE':>12}  Parameters")
    for result in GridOptimizer.top_results(results, top):
        print(
            f"{result.model_type:<32} {result.accuracy:>8.2f}% {result.mape:>8.2f}% "
            f"{result.rmse:>12.3f}  {json.dumps(result.parameters, default=str)}"
        )


def cmd_search(args, config: OptimizerConfig):
    """Run a parameter search on a CSV series."""
    if args.scoring:
        config.search.scoring = args.scoring

    frame = _load_series(args)
    settings = JsonFileSettingsStore(args.settings) if args.settings else None

    event_bus = create_default_event_system()
    optimizer = GridOptimizer(
        registry=create_default_registry(),
        config=config,
        settings=settings,
        event_bus=event_bus,
        validator=DataValidator(ValueAccessor.for_column(args.value_column), config.search)
    )

    logger.info(f"Running {args.method} search on {len(frame)} rows from {args.csv}")
    if args.method == 'ai':
        outcome = AIOptimizer(optimizer).run(
            frame, args.models,
            frequency=args.frequency,
            seasonal_period=args.seasonal_period
        )
        results = outcome.summary.results
        payload = outcome.to_dict()
        logger.info(f"AI confidence: {outcome.confidence:.1f}%")
    else:
        summary = optimizer.run_grid_search(
            frame, args.models,
            frequency=args.frequency,
            seasonal_period=args.seasonal_period
        )
        results = summary.results
        payload = {'type': 'grid', **summary.to_dict()}

    _print_results(results, args.top)

    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, 'w') as f:
            json.dump(payload, f, indent=2, default=str)
        logger.info(f"Results written to {output}")


def cmd_models(args, config: OptimizerConfig):
    """List registered models and their data requirements."""
    registry = create_default_registry()
    for model_id in registry.available_models():
        spec = registry.get_spec(model_id)
        print(
            f"{model_id:<32} {spec.category:<12} "
            f"min observations: {spec.required_observations(args.seasonal_period):<4} "
            f"{spec.display_name}"
        )


def cmd_status(args, config: OptimizerConfig):
    """Poll the job status feed and log batch progress."""
    url = args.url or config.polling.status_url
    feed = HttpJobStatusFeed(url, timeout=config.polling.request_timeout_seconds)
    aggregator = JobStatusAggregator(feed, config.polling)

    stop_event = threading.Event()
    polls = 0
    try:
        while polls < args.polls and not aggregator.is_paused:
            aggregator.poll_once()
            polls += 1
            summary = aggregator.summary
            logger.info(
                f"{summary.batch_completed}/{summary.batch_total} batch jobs finished, "
                f"{summary.running} running, {summary.pending} pending ({summary.progress}%)"
            )
            if stop_event.wait(aggregator.current_delay):
                break
    finally:
        feed.close()

    if aggregator.should_surface_error():
        raise OptimizerError(f"Job status feed unavailable: {aggregator.last_error}")


def create_parser():
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog='forecast-optimizer',
        description='Forecast model parameter optimizer',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  forecast-optimizer search --csv sales.csv --value-column Sales
  forecast-optimizer search --csv sales.csv --models holt_winters --frequency monthly --method ai
  forecast-optimizer models --seasonal-period 12
  forecast-optimizer status --polls 10
        """)

    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')
    parser.add_argument('--env-file', type=str,
                        help='Path to a .env file with FORECAST_OPT_* settings')
    parser.add_argument('--log-dir', type=str, default='logs',
                        help='Directory for log files')
    parser.add_argument('--no-log-file', action='store_true',
                        help='Only log to the console')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    search_parser = subparsers.add_parser('search', help='Search model parameters for a series')
    search_parser.add_argument('--csv', required=True, help='CSV file with the sales series')
    search_parser.add_argument('--value-column', default='Sales', help='Column holding the values')
    search_parser.add_argument('--date-column', help='Column holding the timestamps')
    search_parser.add_argument('--sku-column', help='Column identifying the entity')
    search_parser.add_argument('--sku', help='Only use rows of this entity')
    search_parser.add_argument('--models', nargs='+', help='Model ids to search (default: all)')
    search_parser.add_argument('--seasonal-period', type=int, help='Explicit seasonal period')
    search_parser.add_argument('--frequency', choices=['daily', 'weekly', 'monthly', 'quarterly', 'yearly'],
                               help='Series frequency used to derive the seasonal period')
    search_parser.add_argument('--settings', help='JSON file with global settings')
    search_parser.add_argument('--method', choices=['grid', 'ai'], default='grid',
                               help='Search method')
    search_parser.add_argument('--scoring', choices=['holdout', 'walk_forward', 'cross_validation'],
                               help='How each combination is scored')
    search_parser.add_argument('--top', type=int, default=10, help='Number of results to print')
    search_parser.add_argument('--output', help='Write the full result as JSON')
    search_parser.set_defaults(func=cmd_search)

    models_parser = subparsers.add_parser('models', help='List registered models')
    models_parser.add_argument('--seasonal-period', type=int, default=12,
                               help='Seasonal period used for data requirements')
    models_parser.set_defaults(func=cmd_models)

    status_parser = subparsers.add_parser('status', help='Watch the job status feed')
    status_parser.add_argument('--url', help='Job status endpoint')
    status_parser.add_argument('--polls', type=int, default=12, help='Number of polls')
    status_parser.set_defaults(func=cmd_status)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging(
        component_name=f"optimizer_{args.command}",
        log_level='DEBUG' if args.verbose else 'INFO',
        log_dir=args.log_dir,
        enable_file=not args.no_log_file
    )
    config = OptimizerConfig.from_env(args.env_file)

    try:
        args.func(args, config)
    except KeyboardInterrupt:
        logger.info("Command interrupted by user")
        sys.exit(1)
    except (DataValidationError, NoCompatibleModelsError) as e:
        logger.error(f"Input rejected: {e}")
        sys.exit(2)
    except SearchFailedError as e:
        logger.error(str(e))
        sys.exit(3)
    except OptimizerError as e:
        logger.error(f"Command failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()

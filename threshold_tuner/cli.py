from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import List, Optional

import requests

from .clients import ItsiObjectStore, SplunkSearchClient, build_session
from .config import TunerConfig, load_config, resolve_config_path
from .constants import INSUFFICIENT_DATA_ACTIONS, INSUFFICIENT_DATA_SKIP, LOG_CONTEXT_KEY
from .errors import ThresholdTunerError
from .logs import setup_logging
from .recommend import ThresholdRecommendationWorkflow
from .reset import ThresholdResetWorkflow

logger = logging.getLogger(__name__)

RESET_DESCRIPTION = """\
Reset the thresholding configuration for specified KPIs/services.

Matching KPIs will be updated to use the following thresholding configuration:
  adaptive thresholds:     disabled
  aggregate thresholds:    normal severity
  entity thresholds:       normal severity
  time variate thresholds: disabled
  outlier detection:       disabled

To prevent accidental resetting of thresholds for all services, at least one service
selector must be provided using the '--service' flag."""

RECOMMEND_DESCRIPTION = """\
Performs historical data analysis on matching KPIs that are configured to use ML-assisted
thresholds and updates their threshold configuration based on the recommendations.

  * Only KPIs configured for ML-assisted thresholds are analyzed.
  * By default the analysis starts from the KPI's stored start date; '--use-latest-data'
    analyzes the most recent data instead.
  * KPIs without a recommendation (insufficient data, constant value) are skipped unless
    '--insufficient-data-action reset' is given."""


def _add_selector_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-s",
        "--service",
        action="append",
        default=[],
        dest="services",
        help="Service selector (service ID, title, or a wildcard pattern; can be used multiple times).",
    )
    parser.add_argument(
        "-k",
        "--kpi",
        action="append",
        default=[],
        dest="kpis",
        help="KPI selector (KPI ID, title, or a wildcard pattern; can be used multiple times).",
    )
    parser.add_argument("--dry-run", action="store_true", help="Run the command without actually changing anything.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="threshold-tuner", description="Manage Splunk ITSI KPI thresholds.")
    parser.add_argument("--config", help="Config file (default is $HOME/.threshold-tuner.yaml).")
    parser.add_argument("-v", "--verbose", action="store_true", default=None, help="Enable verbose output.")
    parser.add_argument("--concurrency", type=int, help="Number of concurrent operations (default 10).")
    parser.add_argument("--host", help="ITSI host (default localhost).")
    parser.add_argument("--port", type=int, help="ITSI management port (default 8089).")
    parser.add_argument("--insecure", action="store_true", default=None, help="Disable TLS certificate verification.")
    parser.add_argument("--access-token", help="Access token for authentication.")
    parser.add_argument("--user", help="Username for authentication (default admin).")
    parser.add_argument("--password", help="Password for authentication.")

    commands = parser.add_subparsers(dest="command", required=True)
    threshold = commands.add_parser("threshold", aliases=["thld"], help="Manage KPI thresholds.")
    actions = threshold.add_subparsers(dest="action", required=True)

    reset = actions.add_parser(
        "reset",
        help="Reset thresholds for selected KPIs/services.",
        description=RESET_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_selector_args(reset)

    recommend = actions.add_parser(
        "recommend",
        help="Apply ML-assisted thresholds.",
        description=RECOMMEND_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_selector_args(recommend)
    recommend.add_argument(
        "--use-latest-data",
        action="store_true",
        help="Use the latest KPI data for analysis (ignore the stored starting date).",
    )
    recommend.add_argument(
        "--insufficient-data-action",
        choices=INSUFFICIENT_DATA_ACTIONS,
        default=INSUFFICIENT_DATA_SKIP,
        help="Action to take for KPIs with insufficient data (default skip).",
    )

    return parser


def resolve_config(args: argparse.Namespace) -> TunerConfig:
    config = load_config(args.config)
    config = config.updated(
        {
            "verbose": args.verbose,
            "concurrency": args.concurrency,
            "host": args.host,
            "port": args.port,
            "insecure": args.insecure,
            "access_token": args.access_token,
            "user": args.user,
            "password": args.password,
        }
    )

    if config.concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    if not config.access_token:
        if config.user and not config.password:
            config.password = getpass.getpass("Enter password: ")
        if not config.user or not config.password:
            raise ValueError("Must provide user/password or access token")

    return config


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.action == "reset" and not args.services:
        print("No services specified. You must provide one or more service selectors using the --service argument.")
        return 1

    try:
        config = resolve_config(args)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    setup_logging(config.verbose)
    if config.verbose:
        logger.debug(f"Using config file: {resolve_config_path(args.config)}")
        logger.debug("Configuration", extra={LOG_CONTEXT_KEY: config.to_dict()})

    session = build_session(config)
    store = ItsiObjectStore(session, config.base_url)

    if args.action == "reset":
        workflow = ThresholdResetWorkflow(config, store, args.services, args.kpis, args.dry_run)
    else:
        workflow = ThresholdRecommendationWorkflow(
            config,
            store,
            SplunkSearchClient(session, config.base_url),
            args.services,
            args.kpis,
            args.dry_run,
            use_latest_data=args.use_latest_data,
            insufficient_data_action=args.insufficient_data_action,
        )

    try:
        workflow.execute()
    except (ThresholdTunerError, requests.RequestException) as e:
        print(f"Workflow has completed with errors: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

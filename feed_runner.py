#!/usr/bin/env python3
"""Rakuten Advertising transaction feed.

Polls recent transactions and forwards the ones not yet recorded locally:
get token → fetch transaction pages → dedupe → forward to direct tracking.

Usage:
    python feed_runner.py
    python feed_runner.py --days-back 7 --target-timezone Europe/Amsterdam
"""

import argparse
import logging
import sys
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from auth import load_credentials
from config import DAYS_BACK, REFERENCE_FILE, TARGET_TIMEZONE, TOKEN_FILE
from errors import FatalApiError, FeedError
from reconcile import EventOutcome, run_feed
from store import JsonReferenceStore, JsonTokenStore


def setup_logging(verbose=False):
    """Configure logging with timestamps."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Forward new Rakuten Advertising transactions to direct tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python feed_runner.py\n"
            "  python feed_runner.py --days-back 7 --target-timezone Europe/Amsterdam\n"
        ),
    )
    parser.add_argument(
        "--days-back",
        type=int,
        default=DAYS_BACK,
        help=f"Days of transactions to poll (default: {DAYS_BACK})",
    )
    parser.add_argument(
        "--target-timezone",
        default=TARGET_TIMEZONE,
        help=f"Timezone for forwarded transaction dates (default: {TARGET_TIMEZONE})",
    )
    parser.add_argument(
        "--token-file",
        default=TOKEN_FILE,
        help="JSON file holding the OAuth token between runs",
    )
    parser.add_argument(
        "--reference-file",
        default=REFERENCE_FILE,
        help="JSON file with programs, advertisers, tracking segments and recorded transactions",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log skipped transactions as well",
    )
    return parser.parse_args(argv)


def validate_timezone(name):
    """Fail early on an unknown timezone name."""
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: '{name}'")


def print_summary(summary):
    """Print a summary of the run."""
    print("\n" + "=" * 50)
    print("FEED RUN COMPLETE")
    print("=" * 50)
    print(f"  Pages:     {summary.pages}")
    print(f"  Events:    {summary.events}")
    print(f"  Forwarded: {summary.forwarded}")
    for outcome in EventOutcome:
        if outcome is EventOutcome.FORWARDED or not summary.outcomes[outcome]:
            continue
        print(f"  {outcome.value.replace('_', ' ').capitalize() + ':':<19}{summary.outcomes[outcome]}")
    print("=" * 50)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        if args.days_back < 0:
            raise ValueError(f"--days-back must not be negative, got {args.days_back}")
        validate_timezone(args.target_timezone)
        credentials = load_credentials()
        references = JsonReferenceStore(args.reference_file)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)
    except OSError as e:
        logger.error("Could not read reference data: %s", e)
        sys.exit(1)

    try:
        summary = run_feed(
            credentials,
            JsonTokenStore(args.token_file),
            references,
            references,
            days_back=args.days_back,
            target_timezone=args.target_timezone,
        )
    except FatalApiError as e:
        logger.error("API error: %s", e)
        if e.response is not None:
            logger.error("Response body: %s", e.response.text)
        sys.exit(1)
    except FeedError as e:
        logger.error("Feed error: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)

    print_summary(summary)


if __name__ == "__main__":
    main()

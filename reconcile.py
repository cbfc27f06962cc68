"""Poll, dedupe and forward Rakuten transactions.

One run gets a token, computes the trailing date window, pages through the
partner's transactions and forwards every sale that is not yet recorded
locally to the advertiser's direct tracking domain.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from auth import get_token
from config import DAYS_BACK, TARGET_TIMEZONE, TRANSACTION_SOURCE
from dates import format_partner_date, init_dates
from errors import MalformedResponse
from models import CompositeTag, Credentials, DateWindow, Token, decode_event
from tracking import build_tracking_query, forward_transaction
from transactions import iter_transaction_pages

logger = logging.getLogger(__name__)


class EventOutcome(str, Enum):
    NOT_A_SALE = "not_a_sale"
    MALFORMED_EVENT = "malformed_event"
    MALFORMED_TAG = "malformed_tag"
    ALREADY_RECORDED = "already_recorded"
    BAD_DATE = "bad_date"
    MISSING_REFERENCE = "missing_reference"
    FORWARDED = "forwarded"
    UNCONFIRMED = "unconfirmed"


@dataclass
class FeedSession:
    """State owned by a single run."""

    credentials: Credentials
    token: Token
    window: DateWindow
    target_timezone: str = TARGET_TIMEZONE


@dataclass
class RunSummary:
    pages: int = 0
    events: int = 0
    outcomes: Counter = field(default_factory=Counter)

    def record(self, outcome):
        self.events += 1
        self.outcomes[outcome] += 1

    @property
    def forwarded(self):
        return self.outcomes[EventOutcome.FORWARDED]


def _resolve_tracking_domain(references, program_id):
    """Follow program -> advertiser -> tracking segment, or return None."""
    try:
        program = references.get_program(int(program_id))
    except ValueError:
        logger.warning("Program id '%s' is not numeric", program_id)
        return None
    if program is None:
        logger.warning("Program %s not found", program_id)
        return None

    advertiser = references.get_advertiser(program.advertiser_id)
    if advertiser is None:
        logger.warning("Advertiser %s of program %s not found", program.advertiser_id, program_id)
        return None

    segment = references.get_tracking_segment(advertiser.tracking_segment_id)
    if segment is None:
        logger.warning(
            "Tracking segment %s of advertiser %s not found",
            advertiser.tracking_segment_id,
            advertiser.id,
        )
        return None

    return segment.domain


def process_event(session, data, ledger, references):
    """Reconcile one raw event and forward it when it is new."""
    try:
        event = decode_event(data)
    except MalformedResponse as e:
        logger.warning("Dropping malformed event: %s. Event: %s", e, data)
        return EventOutcome.MALFORMED_EVENT

    if not event.is_sale:
        logger.debug("Transaction %s is not a sale, skipping", event.etransaction_id)
        return EventOutcome.NOT_A_SALE

    tag = CompositeTag.parse(event.u1)
    if tag is None:
        logger.warning("Invalid u1 tag '%s'. Event: %s", event.u1, data)
        return EventOutcome.MALFORMED_TAG

    existing = ledger.find_transactions(
        TRANSACTION_SOURCE,
        tag.program_id,
        session.window.local_start,
        session.window.local_end,
        event.etransaction_id,
    )
    if existing:
        logger.debug("Transaction %s already recorded", event.etransaction_id)
        return EventOutcome.ALREADY_RECORDED

    transaction_date = format_partner_date(event.transaction_date, session.target_timezone)
    if transaction_date is None:
        logger.warning("Unparsable transaction date '%s'. Event: %s", event.transaction_date, data)
        return EventOutcome.BAD_DATE

    domain = _resolve_tracking_domain(references, tag.program_id)
    if domain is None:
        logger.warning("No tracking domain for transaction %s. Event: %s", event.etransaction_id, data)
        return EventOutcome.MISSING_REFERENCE

    params = build_tracking_query(tag, event, transaction_date)
    if forward_transaction(domain, params) is None:
        return EventOutcome.UNCONFIRMED
    return EventOutcome.FORWARDED


def run_feed(
    credentials,
    token_store,
    ledger,
    references,
    days_back=DAYS_BACK,
    target_timezone=TARGET_TIMEZONE,
    now=None,
):
    """Run one poll-dedupe-forward pass.

    FatalApiError and MalformedResponse from the token or transactions
    endpoints propagate and end the run.
    """
    token = get_token(credentials, token_store)
    session = FeedSession(
        credentials=credentials,
        token=token,
        window=init_dates(days_back, now),
        target_timezone=target_timezone,
    )

    summary = RunSummary()
    for events in iter_transaction_pages(session.token, session.window):
        summary.pages += 1
        for data in events:
            summary.record(process_event(session, data, ledger, references))

    logger.info(
        "Run finished: %d pages, %d events, %d forwarded",
        summary.pages,
        summary.events,
        summary.forwarded,
    )
    return summary

"""Local collaborators of the feed: token persistence and reference lookups.

The abstract classes describe what the reconciliation needs from the local
data layer. The JSON-file implementations back the command-line runner.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from errors import MalformedResponse
from models import Advertiser, Program, Token, TrackingSegment, decode_token

logger = logging.getLogger(__name__)


class TokenStore(ABC):
    """Persists the OAuth token blob between runs."""

    @abstractmethod
    def load(self) -> Optional[Token]:
        """Return the stored token, or None when nothing is stored."""

    @abstractmethod
    def save(self, token: Token) -> None:
        pass


class TransactionLedger(ABC):
    """Transactions already recorded locally."""

    @abstractmethod
    def find_transactions(
        self,
        source: str,
        program_id: str,
        start: datetime,
        end: datetime,
        tag: str,
    ) -> List[Dict[str, Any]]:
        """Return recorded transactions matching the scope key (empty if none)."""


class ReferenceStore(ABC):
    """Read-only program, advertiser and tracking segment lookups."""

    @abstractmethod
    def get_program(self, program_id: int) -> Optional[Program]:
        pass

    @abstractmethod
    def get_advertiser(self, advertiser_id: int) -> Optional[Advertiser]:
        pass

    @abstractmethod
    def get_tracking_segment(self, segment_id: int) -> Optional[TrackingSegment]:
        pass


class JsonTokenStore(TokenStore):
    """Token store backed by a single JSON file."""

    def __init__(self, path):
        self.path = path

    def load(self):
        if not os.path.exists(self.path):
            logger.info("No stored token at %s", self.path)
            return None

        with open(self.path, "r", encoding="utf-8") as f:
            content = f.read().strip()
        if not content:
            return None

        # An unreadable blob counts as no token so the password grant takes over
        try:
            return decode_token(json.loads(content))
        except (ValueError, MalformedResponse) as e:
            logger.warning("Ignoring unreadable token in %s: %s", self.path, e)
            return None

    def save(self, token):
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".token-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(token.model_dump(exclude_none=True), f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise
        logger.info("Token saved to %s", self.path)


def _as_utc(value):
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_recorded_at(row):
    value = row.get("date")
    try:
        # fromisoformat only understands a trailing Z from Python 3.11 on
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return _as_utc(datetime.fromisoformat(value))
    except (AttributeError, TypeError, ValueError):
        logger.warning("Skipping ledger row with invalid date: %s", row)
        return None


class JsonReferenceStore(TransactionLedger, ReferenceStore):
    """Ledger and reference data read from one JSON document.

    Expected shape::

        {
          "programs": [{"id": 1, "advertiser_id": 2}],
          "advertisers": [{"id": 2, "tracking_segment_id": 3}],
          "tracking_segments": [{"id": 3, "domain": "track.example.com"}],
          "transactions": [{"source": "advertiser", "program_id": "1",
                            "tag": "T-1", "date": "2024-01-02T10:00:00"}]
        }
    """

    def __init__(self, path):
        self.path = path
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        self.programs = {p.id: p for p in map(Program.model_validate, data.get("programs", []))}
        self.advertisers = {a.id: a for a in map(Advertiser.model_validate, data.get("advertisers", []))}
        self.tracking_segments = {
            s.id: s for s in map(TrackingSegment.model_validate, data.get("tracking_segments", []))
        }
        self.transactions = data.get("transactions", [])

        logger.info(
            "Loaded reference data from %s: %d programs, %d advertisers, %d segments, %d transactions",
            path,
            len(self.programs),
            len(self.advertisers),
            len(self.tracking_segments),
            len(self.transactions),
        )

    def find_transactions(self, source, program_id, start, end, tag):
        start, end = _as_utc(start), _as_utc(end)
        matches = []
        for row in self.transactions:
            if row.get("source") != source:
                continue
            if str(row.get("program_id")) != str(program_id) or str(row.get("tag")) != str(tag):
                continue
            recorded_at = _parse_recorded_at(row)
            if recorded_at is None:
                continue
            if start <= recorded_at <= end:
                matches.append(row)
        return matches

    def get_program(self, program_id):
        return self.programs.get(program_id)

    def get_advertiser(self, advertiser_id):
        return self.advertisers.get(advertiser_id)

    def get_tracking_segment(self, segment_id):
        return self.tracking_segments.get(segment_id)

"""
Tests for event reconciliation and the full feed run.

Covers every per-event drop, deduplication against the local ledger and
end-to-end runs with mocked partner and tracking endpoints.
"""

import json
from unittest.mock import Mock, patch

import pytest

from config import MAX_TRANSACTIONS, TRANSACTION_SOURCE, TRANSACTIONS_URL
from errors import FatalApiError
from reconcile import EventOutcome, process_event, run_feed
from store import JsonReferenceStore, TransactionLedger
from tests.helpers import TRACKING_DOMAIN, MemoryTokenStore, make_response

TRACKING_URL = f"https://{TRACKING_DOMAIN}/d"


def _empty_ledger():
    ledger = Mock(spec=TransactionLedger)
    ledger.find_transactions.return_value = []
    return ledger


class TestProcessEvent:
    def test_forwards_new_sale(self, session, event_data, references):
        ledger = _empty_ledger()
        with patch("reconcile.forward_transaction", return_value="AM-1") as forward:
            outcome = process_event(session, event_data, ledger, references)

        assert outcome is EventOutcome.FORWARDED
        domain, params = forward.call_args.args
        assert domain == TRACKING_DOMAIN
        assert params["td"] == "2024-01-02 11:00:00"
        assert params["ci"] == "12345"

    def test_dedupe_lookup_scope(self, session, event_data, references):
        ledger = _empty_ledger()
        with patch("reconcile.forward_transaction", return_value="AM-1"):
            process_event(session, event_data, ledger, references)

        ledger.find_transactions.assert_called_once_with(
            TRANSACTION_SOURCE,
            "12345",
            session.window.local_start,
            session.window.local_end,
            "T-1001",
        )

    def test_already_recorded(self, session, event_data, references):
        ledger = _empty_ledger()
        ledger.find_transactions.return_value = [{"tag": "T-1001"}]
        with patch("reconcile.forward_transaction") as forward:
            outcome = process_event(session, event_data, ledger, references)

        assert outcome is EventOutcome.ALREADY_RECORDED
        forward.assert_not_called()

    def test_non_sale_is_skipped(self, session, event_data, references):
        ledger = _empty_ledger()
        with patch("reconcile.forward_transaction") as forward:
            outcome = process_event(session, dict(event_data, is_event="Y"), ledger, references)

        assert outcome is EventOutcome.NOT_A_SALE
        forward.assert_not_called()
        ledger.find_transactions.assert_not_called()

    def test_malformed_tag(self, session, event_data, references):
        ledger = _empty_ledger()
        with patch("reconcile.forward_transaction") as forward:
            outcome = process_event(session, dict(event_data, u1="12345"), ledger, references)

        assert outcome is EventOutcome.MALFORMED_TAG
        forward.assert_not_called()

    def test_malformed_event(self, session, references):
        with patch("reconcile.forward_transaction") as forward:
            outcome = process_event(session, {"etransaction_id": "T-1"}, _empty_ledger(), references)

        assert outcome is EventOutcome.MALFORMED_EVENT
        forward.assert_not_called()

    def test_bad_date(self, session, event_data, references):
        with patch("reconcile.forward_transaction") as forward:
            outcome = process_event(
                session, dict(event_data, transaction_date="02/01/2024"), _empty_ledger(), references
            )

        assert outcome is EventOutcome.BAD_DATE
        forward.assert_not_called()

    @pytest.mark.parametrize(
        "u1, missing",
        [
            ("99999|67", None),
            ("abc|67", None),
            ("12345|67", "advertisers"),
            ("12345|67", "tracking_segments"),
        ],
    )
    def test_missing_reference(self, session, event_data, references, u1, missing):
        if missing == "advertisers":
            references.advertisers.clear()
        elif missing == "tracking_segments":
            references.tracking_segments.clear()

        with patch("reconcile.forward_transaction") as forward:
            outcome = process_event(session, dict(event_data, u1=u1), _empty_ledger(), references)

        assert outcome is EventOutcome.MISSING_REFERENCE
        forward.assert_not_called()

    def test_unconfirmed(self, session, event_data, references):
        with patch("reconcile.forward_transaction", return_value=None):
            outcome = process_event(session, event_data, _empty_ledger(), references)

        assert outcome is EventOutcome.UNCONFIRMED


class TestRunFeed:
    @pytest.fixture
    def token_store(self, stored_token):
        return MemoryTokenStore(stored_token)

    @pytest.fixture
    def token_response(self, token_payload):
        return make_response(200, token_payload)

    def test_end_to_end_forwards_once(
        self, credentials, token_store, token_response, references, event_data, now
    ):
        def fake_get(url, **kwargs):
            if url == TRANSACTIONS_URL:
                return make_response(200, [event_data], url=url)
            if url == TRACKING_URL:
                return make_response(200, {"affiliatemarketing_id": "AM-1"}, url=url)
            raise AssertionError(f"unexpected GET {url}")

        with patch("auth.requests.post", return_value=token_response), \
                patch("requests.get", side_effect=fake_get) as get:
            summary = run_feed(credentials, token_store, references, references, now=now)

        tracking_calls = [c for c in get.call_args_list if c.args[0] == TRACKING_URL]
        assert len(tracking_calls) == 1

        params = tracking_calls[0].kwargs["params"]
        assert set(params) == {"ci", "dci", "ti", "td", "cur", "a", "r", "oa", "sku", "qty", "e1"}
        assert all(value is not None for value in params.values())
        assert params["ti"] == "T-1001"

        transaction_call = next(c for c in get.call_args_list if c.args[0] == TRANSACTIONS_URL)
        assert transaction_call.kwargs["headers"]["Authorization"] == "Bearer new-access"

        assert summary.pages == 1
        assert summary.events == 1
        assert summary.forwarded == 1
        assert token_store.saved[-1].access_token == "new-access"

    def test_recorded_transaction_is_not_forwarded(
        self, credentials, token_store, token_response, reference_data, tmp_path, event_data, now
    ):
        reference_data["transactions"] = [
            {"source": TRANSACTION_SOURCE, "program_id": "12345", "tag": "T-1001", "date": "2024-01-02T10:00:00"}
        ]
        path = tmp_path / "recorded.json"
        path.write_text(json.dumps(reference_data), encoding="utf-8")
        references = JsonReferenceStore(str(path))

        with patch("auth.requests.post", return_value=token_response), \
                patch("requests.get", return_value=make_response(200, [event_data], url=TRANSACTIONS_URL)) as get:
            summary = run_feed(credentials, token_store, references, references, now=now)

        assert get.call_count == 1
        assert summary.outcomes[EventOutcome.ALREADY_RECORDED] == 1
        assert summary.forwarded == 0

    def test_pages_until_short_page(self, credentials, token_store, token_response, references, event_data, now):
        non_sale = dict(event_data, is_event="Y")
        pages = [
            make_response(200, [non_sale] * MAX_TRANSACTIONS, url=TRANSACTIONS_URL),
            make_response(200, [non_sale] * MAX_TRANSACTIONS, url=TRANSACTIONS_URL),
            make_response(200, [non_sale] * 400, url=TRANSACTIONS_URL),
        ]
        with patch("auth.requests.post", return_value=token_response), \
                patch("requests.get", side_effect=pages) as get:
            summary = run_feed(credentials, token_store, references, references, now=now)

        assert get.call_count == 3
        assert summary.pages == 3
        assert summary.events == 2400
        assert summary.outcomes[EventOutcome.NOT_A_SALE] == 2400

    def test_fatal_fetch_ends_run(self, credentials, token_store, token_response, references, now):
        with patch("auth.requests.post", return_value=token_response), \
                patch("requests.get", return_value=make_response(500, text="down", url=TRANSACTIONS_URL)) as get:
            with pytest.raises(FatalApiError):
                run_feed(credentials, token_store, references, references, now=now)

        assert get.call_count == 1

    def test_bad_event_does_not_stop_the_page(
        self, credentials, token_store, token_response, references, event_data, now
    ):
        page = [dict(event_data, u1="broken"), event_data]

        def fake_get(url, **kwargs):
            if url == TRANSACTIONS_URL:
                return make_response(200, page, url=url)
            return make_response(200, {"affiliatemarketing_id": "AM-2"}, url=url)

        with patch("auth.requests.post", return_value=token_response), \
                patch("requests.get", side_effect=fake_get):
            summary = run_feed(credentials, token_store, references, references, now=now)

        assert summary.outcomes[EventOutcome.MALFORMED_TAG] == 1
        assert summary.forwarded == 1

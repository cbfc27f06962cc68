import json
from datetime import datetime, timezone

import pytest

from dates import init_dates
from models import Credentials, Token
from reconcile import FeedSession
from store import JsonReferenceStore
from tests.helpers import TRACKING_DOMAIN


@pytest.fixture
def credentials():
    return Credentials(
        username="publisher@example.com",
        password="s3cret",
        api_key="YWJjOmRlZg==",
        account_id=3621437,
    )


@pytest.fixture
def stored_token():
    return Token(access_token="old-access", refresh_token="old-refresh", token_type="bearer", expires_in=3600)


@pytest.fixture
def token_payload():
    return {
        "access_token": "new-access",
        "refresh_token": "new-refresh",
        "token_type": "bearer",
        "expires_in": 3600,
    }


@pytest.fixture
def now():
    return datetime(2024, 1, 3, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def window(now):
    return init_dates(3, now=now)


@pytest.fixture
def session(credentials, stored_token, window):
    return FeedSession(credentials=credentials, token=stored_token, window=window, target_timezone="CET")


@pytest.fixture
def event_data():
    return {
        "etransaction_id": "T-1001",
        "advertiser_id": 42,
        "is_event": "N",
        "u1": "12345|67",
        "currency": "EUR",
        "commissions": "1.50",
        "sale_amount": "30.00",
        "product_name": "Blue Shirt",
        "sku_number": "SKU-1",
        "quantity": 2,
        "order_id": "ORD-1",
        "transaction_date": "Tue Jan 02 2024 10:00:00 +0000 (UTC)",
    }


@pytest.fixture
def reference_data():
    return {
        "programs": [{"id": 12345, "advertiser_id": 7, "name": "Shirts NL"}],
        "advertisers": [{"id": 7, "tracking_segment_id": 3, "name": "Shirt Shop"}],
        "tracking_segments": [{"id": 3, "domain": TRACKING_DOMAIN}],
        "transactions": [],
    }


@pytest.fixture
def reference_file(tmp_path, reference_data):
    path = tmp_path / "reference.json"
    path.write_text(json.dumps(reference_data), encoding="utf-8")
    return path


@pytest.fixture
def references(reference_file):
    return JsonReferenceStore(str(reference_file))

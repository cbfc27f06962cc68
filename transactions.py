import logging

import requests

from config import MAX_TRANSACTIONS, REQUEST_TIMEOUT, TRANSACTIONS_URL
from errors import FatalApiError, MalformedResponse
from models import decode_event_page

logger = logging.getLogger(__name__)


def get_transactions(token, window, page=1):
    """Fetch one page of transactions inside the date window.

    Returns the decoded list of raw event dicts for that page.
    """
    headers = {
        "Authorization": f"Bearer {token.access_token}",
        "Accept": "text/json",
    }
    params = {
        "page": page,
        "limit": MAX_TRANSACTIONS,
        "transaction_date_start": window.partner_start,
        "transaction_date_end": window.partner_end,
    }

    logger.info("Fetching transactions page %d (%s to %s)", page, window.partner_start, window.partner_end)
    try:
        resp = requests.get(TRANSACTIONS_URL, params=params, headers=headers, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
    except requests.exceptions.HTTPError as e:
        raise FatalApiError(f"Error retrieving transactions: {e}", response=e.response) from e
    except requests.exceptions.RequestException as e:
        raise FatalApiError(f"Error retrieving transactions: {e}") from e

    try:
        data = resp.json()
    except ValueError as e:
        raise MalformedResponse(f"Transactions response is not JSON: {resp.text[:200]}") from e

    events = decode_event_page(data)
    logger.info("Page %d returned %d transactions", page, len(events))
    return events


def iter_transaction_pages(token, window):
    """Yield pages starting at 1 until a page shorter than the cap comes back."""
    page = 1
    while True:
        events = get_transactions(token, window, page)
        yield events
        if len(events) < MAX_TRANSACTIONS:
            return
        page += 1

import logging

import requests
import urllib3
from urllib3.exceptions import InsecureRequestWarning

from config import TRACKING_RESPONSE_FIELD, TRACKING_TIMEOUT

logger = logging.getLogger(__name__)

# Tracking domains are called without certificate verification
urllib3.disable_warnings(InsecureRequestWarning)


def build_tracking_query(tag, event, transaction_date):
    """Map an event onto the direct tracking parameter names."""
    return {
        "ci": tag.program_id,
        "dci": tag.dci,
        "ti": event.etransaction_id,
        "td": transaction_date,
        "cur": event.currency,
        "a": str(event.commissions),
        "r": str(event.sale_amount),
        "oa": event.product_name,
        "sku": event.sku_number,
        "qty": event.quantity,
        "e1": event.order_id,
    }


def forward_transaction(domain, params):
    """Send a transaction to https://{domain}/d.

    Returns the ``affiliatemarketing_id`` from the response, or None when
    the call failed or the id is missing. Failures only affect this
    transaction and are logged, never raised.
    """
    url = f"https://{domain}/d"
    logger.info("Forwarding transaction %s to %s", params.get("ti"), url)

    try:
        resp = requests.get(
            url,
            params=params,
            timeout=TRACKING_TIMEOUT,
            verify=False,
            allow_redirects=True,
        )
        resp.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.warning("Direct tracking call failed: %s, query: %s", e, params)
        return None

    try:
        data = resp.json()
    except ValueError:
        data = None

    tracking_id = data.get(TRACKING_RESPONSE_FIELD) if isinstance(data, dict) else None
    if not tracking_id:
        logger.warning(
            "Direct tracking response has no %s. Response: %s, query: %s",
            TRACKING_RESPONSE_FIELD,
            resp.text,
            params,
        )
        return None

    logger.info("Transaction %s tracked as %s", params.get("ti"), tracking_id)
    return tracking_id

import logging

import requests

from config import (
    RAKUTEN_USERNAME,
    RAKUTEN_PASSWORD,
    RAKUTEN_API_KEY,
    RAKUTEN_ACCOUNT_ID,
    REFRESH_SCOPE,
    REQUEST_TIMEOUT,
    TOKEN_URL,
)
from errors import FatalApiError, MalformedResponse
from models import Credentials, decode_token

logger = logging.getLogger(__name__)

INVALID_GRANT = "invalid_grant"


def load_credentials():
    """Build credentials from the environment, failing on missing settings."""
    if not RAKUTEN_USERNAME:
        raise ValueError("RAKUTEN_USERNAME is not set in .env")
    if not RAKUTEN_PASSWORD:
        raise ValueError("RAKUTEN_PASSWORD is not set in .env")
    if not RAKUTEN_API_KEY:
        raise ValueError("RAKUTEN_API_KEY is not set in .env")
    if not RAKUTEN_ACCOUNT_ID:
        raise ValueError("RAKUTEN_ACCOUNT_ID is not set in .env")

    try:
        account_id = int(RAKUTEN_ACCOUNT_ID)
    except ValueError:
        raise ValueError(f"RAKUTEN_ACCOUNT_ID must be an integer, got '{RAKUTEN_ACCOUNT_ID}'")

    return Credentials(
        username=RAKUTEN_USERNAME,
        password=RAKUTEN_PASSWORD,
        api_key=RAKUTEN_API_KEY,
        account_id=account_id,
    )


def _post_token(credentials, form):
    """POST a grant to the token endpoint.

    The API key is already encoded by Rakuten and goes into the Basic
    header as is.
    """
    headers = {
        "Authorization": f"Basic {credentials.api_key}",
        "Content-Type": "application/x-www-form-urlencoded",
    }
    resp = requests.post(TOKEN_URL, headers=headers, data=form, timeout=REQUEST_TIMEOUT)
    resp.raise_for_status()
    return resp


def _decode_token_response(resp):
    try:
        data = resp.json()
    except ValueError as e:
        raise MalformedResponse(f"Token response is not JSON: {resp.text[:200]}") from e
    return decode_token(data)


def _is_invalid_grant(resp):
    if resp is None or resp.status_code != 400:
        return False
    try:
        body = resp.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("error") == INVALID_GRANT


def retrieve_new_token(credentials):
    """Request a new token with the password grant.

    POST https://api.rakutenmarketing.com/token
    scope is the account (website) id.
    """
    logger.info("Requesting new access token...")
    form = {
        "grant_type": "password",
        "username": credentials.username,
        "password": credentials.password,
        "scope": credentials.account_id,
    }
    try:
        resp = _post_token(credentials, form)
    except requests.exceptions.HTTPError as e:
        raise FatalApiError(f"Error retrieving new token: {e}", response=e.response) from e
    except requests.exceptions.RequestException as e:
        raise FatalApiError(f"Error retrieving new token: {e}") from e

    token = _decode_token_response(resp)
    logger.info("Access token obtained")
    return token


def refresh_token(credentials, token):
    """Exchange the refresh token for a new token.

    Returns None when the partner reports the grant invalid, so the caller
    can fall back to the password grant. Any other failure is fatal.
    """
    logger.info("Refreshing access token...")
    form = {
        "grant_type": "refresh_token",
        "refresh_token": (token.refresh_token if token else None) or "",
        "scope": REFRESH_SCOPE,
    }
    try:
        resp = _post_token(credentials, form)
    except requests.exceptions.HTTPError as e:
        if _is_invalid_grant(e.response):
            logger.info("Refresh grant rejected as invalid, falling back to password grant")
            return None
        raise FatalApiError(f"Error refreshing token: {e}", response=e.response) from e
    except requests.exceptions.RequestException as e:
        raise FatalApiError(f"Error refreshing token: {e}") from e

    refreshed = _decode_token_response(resp)
    logger.info("Access token refreshed")
    return refreshed


def load_token(credentials, token_store):
    """Load the stored token, retrieving a new one when none is stored."""
    token = token_store.load()
    if token is None:
        token = retrieve_new_token(credentials)
    return token


def get_token(credentials, token_store):
    """Produce a usable token: load, refresh, fall back, then persist."""
    token = load_token(credentials, token_store)
    token = refresh_token(credentials, token)
    if token is None:
        token = retrieve_new_token(credentials)
    token_store.save(token)
    return token


def initialize(credentials, token_store):
    """Start from scratch: retrieve a new token and persist it."""
    token = retrieve_new_token(credentials)
    token_store.save(token)
    return token

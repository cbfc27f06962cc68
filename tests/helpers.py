"""Shared test helpers: canned HTTP responses and an in-memory token store."""

import json

import requests

from store import TokenStore

TRACKING_DOMAIN = "track.example.com"


def make_response(status_code=200, json_body=None, text="", url="https://api.rakutenmarketing.com/token"):
    """Build a real requests.Response so raise_for_status and json() behave as in production."""
    resp = requests.Response()
    resp.status_code = status_code
    resp.url = url
    resp.encoding = "utf-8"
    if json_body is not None:
        resp._content = json.dumps(json_body).encode("utf-8")
    else:
        resp._content = text.encode("utf-8")
    return resp


class MemoryTokenStore(TokenStore):
    """Token store that keeps everything in memory and remembers saves."""

    def __init__(self, token=None):
        self.token = token
        self.saved = []

    def load(self):
        return self.token

    def save(self, token):
        self.token = token
        self.saved.append(token)

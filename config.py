import os
from dotenv import load_dotenv

load_dotenv()

# Rakuten Advertising credentials
RAKUTEN_USERNAME = os.getenv("RAKUTEN_USERNAME", "")
RAKUTEN_PASSWORD = os.getenv("RAKUTEN_PASSWORD", "")
RAKUTEN_API_KEY = os.getenv("RAKUTEN_API_KEY", "")
RAKUTEN_ACCOUNT_ID = os.getenv("RAKUTEN_ACCOUNT_ID", "")

# API endpoints
API_BASE_URL = "https://api.rakutenmarketing.com"
TOKEN_URL = f"{API_BASE_URL}/token"
TRANSACTIONS_URL = f"{API_BASE_URL}/events/1.0/transactions"

# Refresh grants are always issued against the production scope
REFRESH_SCOPE = "Production"

# Pagination
MAX_TRANSACTIONS = 1000   # page size cap; a shorter page is the last one

# Date window
DAYS_BACK = int(os.getenv("RAKUTEN_DAYS_BACK", "3"))
PARTNER_TIMEZONE = "GMT"
PARTNER_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
TARGET_TIMEZONE = os.getenv("RAKUTEN_TARGET_TIMEZONE", "CET")

# Timeouts (seconds)
REQUEST_TIMEOUT = 30
TRACKING_TIMEOUT = 30

# Local dedupe lookups are scoped to this source
TRANSACTION_SOURCE = "advertiser"

# Direct tracking confirmation field
TRACKING_RESPONSE_FIELD = "affiliatemarketing_id"

# Local files used by the command-line runner
TOKEN_FILE = os.getenv("RAKUTEN_TOKEN_FILE", "token.json")
REFERENCE_FILE = os.getenv("RAKUTEN_REFERENCE_FILE", "reference.json")

"""
Configuration constants for the live team auction.
"""

# Bidding
BID_INCREMENT = 100  # 100 units = 10 lakh
DEFAULT_PURSE = 10000  # 10000 units = 10 crore

# Roster Construction
MIN_PLAYERS_PER_TEAM = 6
MAX_PLAYERS_PER_TEAM = 12

# Capped category: share of the original purse that may be spent on it in round 1
CAPPED_CATEGORY = 'blue'
CAP_BUDGET_PERCENT = 65

# Purses above this are assumed to be in rupees and converted to units
PURSE_NORMALIZATION_THRESHOLD = 50000
RUPEES_PER_UNIT = 10000

# Auction identifiers (no 0/O or 1/I to keep them readable on a projector)
AUCTION_ID_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
AUCTION_ID_LENGTH = 6

# ===== SYNCHRONIZATION =====

# Remote store (Firebase Realtime Database style REST endpoint)
REMOTE_STORE_URL = None  # e.g. "https://my-auctions-default-rtdb.firebaseio.com"
REMOTE_COLLECTION = 'auctions'
REMOTE_TIMEOUT = 5  # seconds per request, after which the local tier is used
REMOTE_POLL_INTERVAL = 1.0  # seconds between observer polls
REMOTE_FLUSH_TIMEOUT = 10  # seconds to wait for queued remote writes on shutdown

# Local fallback storage
SNAPSHOT_DIR = 'data/auctions'
ATTACHMENT_DIR = 'data/attachments'
EXPORT_DIR = 'data/exports'

# Snapshot schema
SNAPSHOT_VERSION = 1

# Logging
LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# ===== API SERVER CONFIGURATION =====

API_HOST = '127.0.0.1'
API_PORT = 8000

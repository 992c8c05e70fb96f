"""
Fixed deployment parameters for the Mastodon stack.

Anything that is not one of the four per-deployment parameters in
`tootcamp.config.StackConfig` lives here.
"""

# --- Network ---
MAX_AZS = 3
SUBNET_NAME = "public"
SUBNET_CIDR_MASK = 19

# --- Data stores ---
REDIS_PORT = 6379
POSTGRES_PORT = 5432
SEARCH_PORT = 80
CANONICAL_PORTS = frozenset({REDIS_PORT, POSTGRES_PORT, SEARCH_PORT})

REDIS_NODE_TYPE = "cache.t4g.micro"
REDIS_NODE_COUNT = 1

POSTGRES_ENGINE_VERSION = "13.7"
POSTGRES_INSTANCE_CLASS = "db.t4g.micro"
POSTGRES_STORAGE_TYPE = "gp2"
POSTGRES_ALLOCATED_STORAGE_GB = "10"
DB_NAME = "mastodon"
DB_USER = "mastodon"

SEARCH_INSTANCE_TYPE = "t3.small.search"
SEARCH_DATA_NODES = 1
SEARCH_VOLUME_SIZE_GB = 10

# --- Object storage ---
# User uploaded media is served straight from the bucket.
PUBLIC_READ_ACCESS = True

# --- Mail ---
SES_USER_NAME = "ses-user"
SMTP_PORT = "587"

# --- Containers ---
IMAGE_DIRECTORY = "."
STREAMING_SUBDOMAIN = "stream"
HEALTH_CHECK_PATH = "/health"
HTTPS_PORT = 443
WEB_PORT = 3000
STREAMING_PORT = 4000

# Placeholder secrets. These must move to a secret store before production use;
# see tootcamp.environment.
PLACEHOLDER_DB_PASSWORD = "mastodon"
PLACEHOLDER_SECRET_KEY_BASE = "<REDACTED>"
PLACEHOLDER_OTP_SECRET = "<REDACTED>"
PLACEHOLDER_VAPID_PRIVATE_KEY = "<REDACTED>"
PLACEHOLDER_VAPID_PUBLIC_KEY = "<REDACTED>"

# eBay hosts
EBAY_API_BASE_URL = "https://api.ebay.com"
EBAY_SANDBOX_API_BASE_URL = "https://api.sandbox.ebay.com"
EBAY_AUTH_URL = "https://auth.ebay.com/oauth2/authorize"
EBAY_SANDBOX_AUTH_URL = "https://auth.sandbox.ebay.com/oauth2/authorize"
EBAY_TRADING_DOMAIN = "api.ebay.com"
EBAY_SANDBOX_TRADING_DOMAIN = "api.sandbox.ebay.com"

EBAY_SCOPES = [
    "https://api.ebay.com/oauth/api_scope",
    "https://api.ebay.com/oauth/api_scope/sell.inventory",
    "https://api.ebay.com/oauth/api_scope/sell.inventory.readonly",
    "https://api.ebay.com/oauth/api_scope/sell.fulfillment",
    "https://api.ebay.com/oauth/api_scope/sell.fulfillment.readonly",
    "https://api.ebay.com/oauth/api_scope/sell.account.readonly",
]

# Tokens (seconds)
TOKEN_REFRESH_BUFFER = 300
DEFAULT_ACCESS_TOKEN_LIFETIME = 7200
DEFAULT_REFRESH_TOKEN_LIFETIME = 47304000

# eBay limits
max_offers_to_resolve = 100
listings_page_size = 50
sku_batch_size = 5
orders_page_size = 50
max_order_pages = 20
max_trading_listings_per_page = 200

# Auto sync
auto_sync_max_pages = 10
auto_sync_max_connections = 25
webhook_sync_max_pages = 2
webhook_sync_max_connections = 25

# Orders not yet fully shipped
NOT_STARTED_FILTER = "orderfulfillmentstatus:{NOT_STARTED|IN_PROGRESS}"

# DB Keys & Collections
users_key = "users"
connections_key = "ebayConnections"
orders_key = "ebayOrders"
inventory_key = "inventory"
webhook_events_key = "ebayWebhookEvents"

ADMIN_ROLES = ("admin", "sub_admin")

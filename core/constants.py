# Fetch Settings
MAX_RESPONSE_BYTES = 2 * 1024 * 1024  # 2 MB
DEFAULT_FETCH_TIMEOUT = 30  # Seconds per fetch
DEFAULT_ENCLOSURE_PROBE_TIMEOUT = 5
FLARESOLVERR_TIMEOUT = 60000  # Milliseconds, passed to the proxy as maxTimeout
FLARESOLVERR_TIMEOUT_PADDING = 5  # Seconds added to the client timeout

# Headless Browser Settings
BROWSER_NAVIGATION_TIMEOUT = 60000  # Milliseconds
BROWSER_NETWORK_IDLE_TIMEOUT = 10000  # Milliseconds
BROWSER_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
]

# Hides the most common automation fingerprints before any page script runs
BROWSER_STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = window.chrome || { runtime: {} };
"""

USER_AGENT_POOL = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
]

VIEWPORT_POOL = [
    {"width": 1920, "height": 1080},
    {"width": 1536, "height": 864},
    {"width": 1440, "height": 900},
    {"width": 1366, "height": 768},
]

# Feed Settings
FEED_GENERATOR = "Generated by mkfd"
FEED_AUTHOR = "mkfd"
DEFAULT_ENCLOSURE_TYPE = "application/octet-stream"
DEFAULT_API_FEED_TITLE = "API RSS Feed"
DEFAULT_API_FEED_DESCRIPTION = "RSS feed generated from API data"

# Namespaces kept stable when renderings are parsed and re-serialized
RSS_NAMESPACES = {
    "atom": "http://www.w3.org/2005/Atom",
    "content": "http://purl.org/rss/1.0/modules/content/",
    "dc": "http://purl.org/dc/elements/1.1/",
    "media": "http://search.yahoo.com/mrss/",
}

# Webhook Settings
DEFAULT_WEBHOOK_TIMEOUT = 10
WEBHOOK_TEMPLATE_ITEM_LIMIT = 10
DISCORD_EMBED_COLOR = 5814783
DISCORD_XML_TRUNCATE_LENGTH = 1500
DISCORD_MAX_ITEM_FIELDS = 5
DISCORD_MAX_FIELD_LENGTH = 1024
DISCORD_MAX_FIELD_NAME_LENGTH = 256
DISCORD_DESCRIPTION_BUDGET = 800
DISCORD_WEBHOOK_HOSTS = ("discord.com/api/webhooks", "discordapp.com/api/webhooks")

# Default Configuration Values
DEFAULT_UPDATE_INTERVAL = 900
DEFAULT_FEEDS_DIR = "public/feeds"
DEFAULT_FEED_HISTORY_DIR = "feed-history"
DEFAULT_FEED_CONFIG_DIR = "configs"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = "mkfd.log"
DEFAULT_LOG_FORMAT = "text"  # text or json
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_LOG_BACKUP_COUNT = 5
DEFAULT_LOG_TIMEZONE = "UTC"

# Assembly Settings
MAX_CONCURRENT_DRILL_CHAINS = 4  # Per feed build
MAX_CONCURRENT_ENCLOSURE_PROBES = 5

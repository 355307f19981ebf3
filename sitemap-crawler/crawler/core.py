"""
FILE DESCRIPTION: Foundational module for global configuration and logging.
KEY FUNCTIONS/CLASSES: setup_logger, CompanyFormatter, env-driven crawl defaults
"""

import logging
import sys
import os
from datetime import datetime
from pathlib import Path
from dotenv import load_dotenv

# === CONFIGURATION SECTION ===

# Load .env from the repository root before anything reads the environment
load_dotenv(Path(__file__).resolve().parents[2] / '.env')


def _env_bool(name, default):
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Network timeout for HTTP requests (seconds)
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", 30))

# Browser-like identity for the lightweight fetcher and the render browser
USER_AGENT = os.getenv(
    "CRAWLER_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
)

# Crawl budget defaults
MAX_DEPTH = int(os.getenv("MAX_DEPTH", 2))
MAX_PAGES = int(os.getenv("MAX_PAGES", 30))
MAX_CHILDREN_PER_PAGE = int(os.getenv("MAX_CHILDREN_PER_PAGE", 10))
MAX_RETRIES = int(os.getenv("MAX_RETRIES", 2))          # frontier-level re-dispatches
CRAWL_DELAY = float(os.getenv("CRAWL_DELAY", 1.5))      # seconds between dispatches
CRAWL_CONCURRENCY = int(os.getenv("CRAWL_CONCURRENCY", 1))

# Lightweight fetcher retry/backoff (internal to the fetch strategy)
FETCH_RETRIES = int(os.getenv("FETCH_RETRIES", 2))
RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", 2.0))
MAX_REDIRECTS = int(os.getenv("MAX_REDIRECTS", 5))

# Below this many characters of visible body text a page is treated as client-rendered
MIN_CONTENT_LENGTH = int(os.getenv("MIN_CONTENT_LENGTH", 200))

# Playwright / JS Rendering Waiting Periods (seconds)
RENDER_ENABLED = _env_bool("RENDER_ENABLED", True)
JS_GOTO_TIMEOUT = float(os.getenv("JS_GOTO_TIMEOUT", 30))
JS_IDLE_TIMEOUT = float(os.getenv("JS_IDLE_TIMEOUT", 10))
JS_SETTLE_TIME = float(os.getenv("JS_SETTLE_TIME", 1))

# Persistence (MySQL)
DB_CONFIG = {
    "host": os.getenv("MYSQL_HOST", "localhost"),
    "port": int(os.getenv("MYSQL_PORT", 3306)),
    "user": os.getenv("MYSQL_USER", "root"),
    "password": os.getenv("MYSQL_PASSWORD", ""),
    "database": os.getenv("MYSQL_DATABASE", "sitemapdb"),
    "charset": "utf8mb4",
}
PERSISTENCE_ENABLED = _env_bool("PERSISTENCE_ENABLED", bool(os.getenv("MYSQL_HOST")))

LOG_FILE = os.getenv("CRAWLER_LOG_FILE")


# === LOGGING SECTION ===

class CompanyFormatter(logging.Formatter):
    """
    FLOW: Receives a log record -> Extracts timestamp -> Formats according to company standard
    (e.g., [ Tue Jan 06 05:32:41 AM UTC 2026 ]) -> Prepends level and context -> Returns final string.
    """
    def format(self, record):
        dt = datetime.fromtimestamp(record.created)
        timestamp = dt.strftime("%a %b %d %I:%M:%S %p UTC %Y")
        context = getattr(record, 'context', 'root')
        message = f"[ {timestamp} ] : {record.levelname} : {context} : {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def setup_logger(name="crawler", log_file=None, level=logging.INFO):
    """
    FLOW: Initializes/Retrieves logger -> Checks for existing handlers to prevent duplicates ->
    Sets propagation for child loggers -> Attaches Console and optional File handlers with CompanyFormatter.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    if name != "crawler":
        logger.propagate = True
        setup_logger("crawler", log_file=log_file, level=level)
        return logger

    formatter = CompanyFormatter()

    # Console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


# Global logger instance
logger = setup_logger(log_file=LOG_FILE)

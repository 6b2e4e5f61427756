"""Utility modules for the alert monitor."""
from utils.logger import setup_logging
from utils.formatters import format_pct, format_count, format_number, format_condition, format_timestamp, time_ago
from utils.rate_limiter import RateLimiter
from utils.http_client import HTTPClient, APIError

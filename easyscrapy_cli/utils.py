"""Shared utility functions for EasyScrapy."""

import logging
import secrets
from datetime import datetime, UTC
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def ensure_aware(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def generate_id(prefix: str, nbytes: int = 12) -> str:
    """Return a prefixed opaque identifier, e.g. ``sess_Vh3k...``."""
    return f"{prefix}_{secrets.token_urlsafe(nbytes)}"


def validate_url(url: str) -> bool:
    """
    Validate that a URL is well-formed and uses http/https.

    Args:
        url: URL string to validate.

    Returns:
        True if valid, False otherwise.
    """
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except Exception:
        return False


def parse_timestamp(timestamp_str: str | int | float | None) -> datetime | None:
    """
    Parse an ISO timestamp string (or a unix epoch) to datetime.

    Args:
        timestamp_str: ISO format timestamp string or epoch seconds.

    Returns:
        Parsed datetime or None if parsing fails.
    """
    if timestamp_str is None or timestamp_str == "":
        return None

    if isinstance(timestamp_str, str) and timestamp_str.isdigit():
        timestamp_str = int(timestamp_str)

    if isinstance(timestamp_str, (int, float)):
        try:
            return datetime.fromtimestamp(timestamp_str, tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            logger.debug("Failed to parse epoch '%s': %s", timestamp_str, e)
            return None

    try:
        return ensure_aware(datetime.fromisoformat(timestamp_str.replace("Z", "+00:00")))
    except ValueError as e:
        logger.debug("Failed to parse timestamp '%s': %s", timestamp_str, e)
        return None


def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: If True, set DEBUG level; otherwise INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

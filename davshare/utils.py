"""
Utility functions for davshare
"""

from datetime import datetime
from typing import Optional, Tuple

from .models import LISTING_DATE_FORMAT


def format_timestamp(timestamp: float, format_str: str = LISTING_DATE_FORMAT) -> str:
    """Format timestamp to readable string"""
    try:
        dt = datetime.fromtimestamp(timestamp)
        return dt.strftime(format_str)
    except (ValueError, OSError, OverflowError):
        return ""


def normalize_path(path: str) -> str:
    """Normalize path separators for cross-platform compatibility"""
    return path.replace('\\', '/')


def file_extension(filename: str) -> str:
    """Return the suffix from the last dot of the final name, dot included.

    Unlike os.path.splitext, a leading dot counts (".bashrc" -> ".bashrc").
    """
    base = normalize_path(filename).rsplit('/', 1)[-1]
    index = base.rfind('.')
    if index < 0:
        return ""
    return base[index:]


def split_extension(filename: str) -> Tuple[str, str]:
    """Split a filename into (stem, extension) using file_extension"""
    ext = file_extension(filename)
    return filename[:len(filename) - len(ext)], ext


def base_filename(filename: Optional[str]) -> str:
    """Final path component of a client supplied filename"""
    if not filename:
        return ""
    return normalize_path(filename).rstrip('/').rsplit('/', 1)[-1]


def create_response_headers(
    content_length: Optional[int] = None,
    content_type: str = "application/octet-stream",
) -> dict:
    """Create standard response headers"""
    headers = {
        "Content-Type": content_type,
        "Cache-Control": "no-cache",
        "X-Content-Type-Options": "nosniff",
    }

    if content_length is not None:
        headers["Content-Length"] = str(content_length)

    return headers


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human readable string"""
    if seconds < 1:
        return f"{seconds*1000:.1f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m{secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h{minutes}m"

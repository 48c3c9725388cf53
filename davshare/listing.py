"""
Directory listing page rendering for davshare
"""

import json
import logging
from pathlib import Path
from typing import List

import aiofiles

from .models import DirEntry

logger = logging.getLogger(__name__)

PLACEHOLDER = "${files}"

# Keep JSON safe inside an HTML document
_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
}


class TemplateError(Exception):
    """Raised when the listing template cannot be read"""
    pass


def serialize_entries(entries: List[DirEntry]) -> str:
    """JSON array of listing entries with HTML-sensitive characters escaped"""
    payload = json.dumps([entry.to_dict() for entry in entries], ensure_ascii=False, separators=(",", ":"))
    for char, escaped in _HTML_ESCAPES.items():
        payload = payload.replace(char, escaped)
    return payload


def render_listing(template: str, entries: List[DirEntry], authenticated: bool) -> str:
    """Fill the listing template.

    The first ``${files}`` receives the JSON entries and the second one the
    upload-form switch: ``disable`` when authentication is on, empty
    otherwise.
    """
    page = template.replace(PLACEHOLDER, serialize_entries(entries), 1)
    return page.replace(PLACEHOLDER, "disable" if authenticated else "", 1)


async def load_template(template_path: Path) -> str:
    """Read the listing template; it is read per request so edits apply live"""
    try:
        async with aiofiles.open(template_path, 'r', encoding='utf-8') as f:
            return await f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise TemplateError(f"Failed Read File({template_path}): {e}") from e

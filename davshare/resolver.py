"""
Request path to filesystem path mapping for davshare.

The anonymous password tag lives here and nowhere else: in open mode a file
``report.pdf`` uploaded with password ``xyz`` is stored as ``report.pdf__xyz``
and can only be fetched again with ``?pass=xyz``. Anyone who can list the raw
directory outside the server sees the password, so callers go through
PathResolver and never build tagged names themselves.
"""

import posixpath
from pathlib import Path
from typing import Sequence
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from .models import AccessMode, AccessScope, TAG_DELIMITER


class PathNotFound(Exception):
    """Raised when a request path cannot be resolved to an existing file"""
    pass


def clean_url_path(url_path: str) -> str:
    """Normalise a URL path as a rooted path.

    ``..`` segments cannot climb above ``/``, backslashes count as
    separators and the result never ends with a slash (except ``/``).
    """
    path = (url_path or "").replace("\\", "/")
    cleaned = posixpath.normpath("/" + path)
    # normpath keeps a leading '//' as-is
    return "/" + cleaned.lstrip("/")


class PathResolver:
    """Maps (scope, url path) to filesystem paths for one access mode"""

    def __init__(self, mode: AccessMode):
        self.mode = mode

    @property
    def tagging(self) -> bool:
        return self.mode is AccessMode.OPEN

    def candidate(self, scope: AccessScope, url_path: str) -> Path:
        """join(root, identity, url_path) without touching the filesystem"""
        rel = clean_url_path(url_path).lstrip("/")
        base = scope.root / scope.identity if scope.identity else scope.root
        return base / rel if rel else base

    def dav_path(self, scope: AccessScope, url_path: str) -> str:
        """Rewrite a request path under the caller's identity prefix"""
        cleaned = clean_url_path(url_path)
        if not scope.identity:
            rewritten = cleaned
        else:
            rewritten = clean_url_path(f"/{scope.identity}{cleaned}")
        # Keep a trailing slash, WebDAV clients use it for collections
        if url_path.endswith("/") and rewritten != "/":
            rewritten += "/"
        return rewritten

    def dav_destination(self, scope: AccessScope, destination: str) -> str:
        """Rewrite the path of a COPY/MOVE Destination header value"""
        parts = urlsplit(destination)
        path = quote(self.dav_path(scope, unquote(parts.path)))
        return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))

    def tagged(self, path: Path, password: str) -> Path:
        """Append the anonymous password tag to the final path component.

        Raises ValueError if the password would add a path separator.
        """
        if "/" in password or "\\" in password:
            raise ValueError(f"invalid password tag for {path.name}")
        return path.with_name(f"{path.name}{TAG_DELIMITER}{password}")

    def untag(self, name: str) -> str:
        """Strip the password tag (after the last delimiter) from a name.

        Names without a delimiter are returned unchanged.
        """
        if not self.tagging:
            return name
        head, sep, _ = name.rpartition(TAG_DELIMITER)
        if not sep:
            return name
        return head

    def tagged_download(self, candidate: Path, passwords: Sequence[str]) -> Path:
        """Fallback for open mode when the direct candidate does not exist.

        Exactly one ``pass`` value is required.
        """
        if len(passwords) != 1:
            raise PathNotFound(f"{candidate}: expected one pass value, got {len(passwords)}")
        try:
            return self.tagged(candidate, passwords[0])
        except ValueError as e:
            raise PathNotFound(f"{candidate}: {e}") from e

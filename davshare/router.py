"""
Request dispatch for davshare.

Every request goes through DispatchMiddleware: the access gate establishes
the caller's scope, ``route`` picks a target, and the request is either
handed to the FastAPI browse/upload routes, rewritten and handed to the
WebDAV engine, or refused.
"""

import logging
from enum import Enum
from typing import Optional
from urllib.parse import quote

from starlette.concurrency import run_in_threadpool
from starlette.requests import HTTPConnection
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from .auth import AccessGate, AuthFailure, remote_addr
from .models import AccessMode, AccessScope, Config
from .resolver import PathResolver

logger = logging.getLogger(__name__)

TRANSLATE_PASSTHROUGH = "f"


class Target(Enum):
    """Where a request is dispatched to"""
    BROWSE = "browse"
    UPLOAD = "upload"
    WEBDAV = "webdav"
    UNHANDLED = "unhandled"


def route(mode: AccessMode, method: str, translate: Optional[str], anonymous_dav: bool = False) -> Target:
    """Pick the dispatch target for a request.

    ``Translate: f`` is the WebDAV client convention for "send me the raw
    resource", so those requests always go to the WebDAV engine, GET
    included. Without it GET browses, POST uploads and every other method
    belongs to WebDAV. WebDAV is served to authenticated modes, and to
    open mode only when anonymous_dav is set; otherwise the request is
    unhandled.
    """
    if translate != TRANSLATE_PASSTHROUGH:
        if method == "GET":
            return Target.BROWSE
        if method == "POST":
            return Target.UPLOAD
    if mode.authenticated or anonymous_dav:
        return Target.WEBDAV
    return Target.UNHANDLED


def get_access_scope(conn: HTTPConnection) -> AccessScope:
    """Scope established by DispatchMiddleware for this request"""
    return conn.state.access_scope


class DispatchMiddleware:
    """Access gate plus router in front of the FastAPI routes"""

    def __init__(self, app: ASGIApp, config: Config, webdav_app: Optional[ASGIApp] = None):
        self.app = app
        self.mode = config.access_mode
        self.anonymous_dav = config.dav.anonymous
        self.gate = AccessGate(config)
        self.resolver = PathResolver(self.mode)
        self.webdav_app = webdav_app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        conn = HTTPConnection(scope)
        method = scope["method"]
        try:
            access = await run_in_threadpool(self.gate.check, conn)
        except AuthFailure as e:
            logger.warning(f"IP:{remote_addr(conn)} \"{method}\" {conn.url} not authorized: {e}")
            response = PlainTextResponse(
                "Not authorized",
                status_code=401,
                headers={"WWW-Authenticate": self.gate.challenge},
            )
            await response(scope, receive, send)
            return

        scope.setdefault("state", {})["access_scope"] = access

        target = route(self.mode, method, conn.headers.get("Translate"), self.anonymous_dav)
        if target is Target.WEBDAV and self.webdav_app is None:
            logger.error("WebDAV engine is not available")
            target = Target.UNHANDLED

        if target is Target.WEBDAV:
            await self.webdav_app(self._rewrite(scope, access), receive, send)
            return

        if target is Target.UNHANDLED:
            logger.warning(f"IP:{remote_addr(conn)} \"{method}\" {conn.url} unknown method, WebDAV is not served")
            response = PlainTextResponse(
                "Method Not Allowed",
                status_code=405,
                headers={"Allow": "GET, POST"},
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)

    def _rewrite(self, scope: Scope, access: AccessScope) -> Scope:
        """Copy of scope with path and Destination under the caller's identity"""
        path = self.resolver.dav_path(access, scope["path"])
        headers = []
        for name, value in scope["headers"]:
            if name == b"destination":
                value = self.resolver.dav_destination(access, value.decode("latin-1")).encode("latin-1")
            headers.append((name, value))

        rewritten = dict(scope)
        rewritten["path"] = path
        rewritten["raw_path"] = quote(path).encode("ascii")
        rewritten["headers"] = headers
        return rewritten

"""
Browse and upload routes for davshare
"""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import quote

import aiofiles.os
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, Response, StreamingResponse

from .auth import remote_addr
from .fs import (
    FileSystemError,
    UploadStepFailure,
    list_directory,
    open_file_for_download,
    save_uploads,
)
from .listing import TemplateError, load_template, render_listing
from .models import AccessScope, Config
from .resolver import PathNotFound, PathResolver
from .router import get_access_scope
from .utils import create_response_headers

logger = logging.getLogger(__name__)

files_router = APIRouter(tags=["files"])

FORCE_DOWNLOAD = "application/force-download"


def get_config(request: Request) -> Config:
    return request.app.state.config


def get_resolver(request: Request) -> PathResolver:
    return request.app.state.resolver


def not_found(detail: str = "Failed Read Dir/File") -> HTTPException:
    return HTTPException(status_code=404, detail=detail)


def _needs_extended_filename(filename: str) -> bool:
    """Whether filename cannot go inside a quoted-string as is"""
    for char in filename:
        if char in '"\\' or ord(char) < 0x20 or ord(char) == 0x7f or ord(char) > 0xff:
            return True
    return False


def _content_disposition(filename: str) -> str:
    """Attachment header value; unsafe names use the RFC 5987 form"""
    filename = filename.replace("\r", "").replace("\n", "")
    if _needs_extended_filename(filename):
        return f"attachment; filename*=UTF-8''{quote(filename, safe='')}"
    return f'attachment; filename="{filename}"'


async def _download(request: Request, file_path: Path) -> StreamingResponse:
    """Stream a file as a forced download named after the request path"""
    try:
        file_generator, total_size = await open_file_for_download(file_path)
    except FileSystemError as e:
        logger.warning(f"IP:{remote_addr(request)} \"GET\" {request.url}: {e}")
        raise not_found()

    filename = Path(request.scope["path"]).name or file_path.name
    headers = create_response_headers(
        content_length=total_size,
        content_type=FORCE_DOWNLOAD,
    )
    headers["Content-Disposition"] = _content_disposition(filename)

    return StreamingResponse(
        file_generator,
        status_code=200,
        headers=headers,
        media_type=FORCE_DOWNLOAD,
    )


async def _listing(
    request: Request,
    dir_path: Path,
    url_path: str,
    config: Config,
    resolver: PathResolver,
) -> HTMLResponse:
    """Render the directory listing page"""
    try:
        entries = await list_directory(dir_path, url_path, resolver)
        template = await load_template(config.storage.template_file)
    except (FileSystemError, TemplateError) as e:
        logger.error(f"IP:{remote_addr(request)} \"GET\" {request.url}: {e}")
        raise not_found()

    page = render_listing(template, entries, authenticated=config.access_mode.authenticated)
    return HTMLResponse(page)


@files_router.get("/{path:path}")
async def browse(
    request: Request,
    scope: AccessScope = Depends(get_access_scope),
    config: Config = Depends(get_config),
    resolver: PathResolver = Depends(get_resolver),
):
    """Directory listing or file download"""

    url_path = request.scope["path"]
    candidate = resolver.candidate(scope, url_path)

    if await aiofiles.os.path.isdir(candidate):
        return await _listing(request, candidate, url_path, config, resolver)

    exists = await aiofiles.os.path.exists(candidate)
    if not resolver.tagging:
        if not exists:
            logger.warning(f"IP:{remote_addr(request)} \"GET\" {request.url}: not found ({candidate})")
            raise not_found()
        return await _download(request, candidate)

    # Open mode: files are only reachable through their password tag
    if exists:
        logger.warning(f"IP:{remote_addr(request)} \"GET\" {request.url}: untagged access refused")
        raise not_found("Failed Access Dir/File")

    try:
        tagged = resolver.tagged_download(candidate, request.query_params.getlist("pass"))
    except PathNotFound as e:
        logger.warning(f"IP:{remote_addr(request)} \"GET\" {request.url}: {e}")
        raise not_found("Failed Access Dir/File")
    return await _download(request, tagged)


@files_router.post("/{path:path}")
async def upload(
    request: Request,
    scope: AccessScope = Depends(get_access_scope),
    config: Config = Depends(get_config),
    resolver: PathResolver = Depends(get_resolver),
):
    """Multipart upload of one or more ``file`` parts"""

    directory = resolver.candidate(scope, request.scope["path"])

    try:
        async with request.form() as form:
            uploads = form.getlist("file")
            passwords = [value for value in form.getlist("pass") if isinstance(value, str)]
            await save_uploads(
                directory,
                uploads,
                passwords,
                resolver,
                max_size=config.storage.maxUploadSize,
            )
    except UploadStepFailure as e:
        logger.error(
            f"IP:{remote_addr(request)} \"POST\" {request.url}: {e} "
            f"({len(e.saved)} earlier file(s) kept)"
        )
        return Response(status_code=204)

    return Response(status_code=200)


def setup_file_routes(app: FastAPI):
    """Setup browse/upload routes"""
    app.include_router(files_router)
    logger.info("File routes setup complete")

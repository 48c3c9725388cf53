"""
Filesystem operations for davshare: listing, upload and download
"""

import logging
from pathlib import Path
from typing import AsyncGenerator, List, Optional, Sequence, Tuple

import aiofiles
import aiofiles.os
from starlette.datastructures import UploadFile

from .models import DirEntry, DIRECTORY_EXTENSION
from .resolver import PathResolver, clean_url_path
from .utils import base_filename, file_extension, format_timestamp, split_extension

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class FileSystemError(Exception):
    """Generic filesystem error"""
    pass


class UploadStepFailure(FileSystemError):
    """Raised when one uploaded part cannot be read or stored.

    The request stops at the first failing part; parts already written stay
    on disk.
    """

    def __init__(self, message: str, saved: Optional[List[Path]] = None):
        super().__init__(message)
        self.saved = list(saved or [])


async def list_directory(
    dir_path: Path,
    url_path: str,
    resolver: PathResolver,
) -> List[DirEntry]:
    """
    List directory contents for the browser listing

    Args:
        dir_path: Existing directory on disk
        url_path: Request path the directory was reached by
        resolver: Resolver of the active access mode, used to un-tag names

    Returns:
        Root and parent entries followed by one entry per child, in the
        order the filesystem returns them

    Raises:
        FileSystemError: If the directory cannot be read
    """

    entries = [
        DirEntry(name="/", path="/", extension=DIRECTORY_EXTENSION, is_dir=True),
        DirEntry(name="../", path="../", extension=DIRECTORY_EXTENSION, is_dir=True),
    ]

    try:
        names = await aiofiles.os.listdir(dir_path)
    except OSError as e:
        raise FileSystemError(f"Failed to read directory {dir_path}: {e}")

    for raw_name in names:
        entry_path = dir_path / raw_name
        try:
            stat = await aiofiles.os.stat(entry_path)
            is_dir = await aiofiles.os.path.isdir(entry_path)
        except OSError as e:
            logger.warning(f"Failed to stat {entry_path}: {e}")
            continue

        name = resolver.untag(raw_name)
        entry = DirEntry(
            name=name,
            path=clean_url_path(f"{url_path}/{name}"),
            extension=file_extension(name),
            is_dir=is_dir,
            date=format_timestamp(stat.st_mtime),
            size=stat.st_size,
        )
        if is_dir:
            entry.name += "/"
            entry.extension = DIRECTORY_EXTENSION
        entries.append(entry)

    return entries


async def next_free_path(directory: Path, filename: str) -> Path:
    """
    Find a name in directory that does not exist yet

    Tries ``name.ext``, then ``name-1.ext``, ``name-2.ext`` and so on with no
    upper bound. Two concurrent uploads can still pick the same name.
    """
    candidate = directory / filename
    stem, ext = split_extension(filename)
    counter = 1
    while await aiofiles.os.path.exists(candidate):
        candidate = directory / f"{stem}-{counter}{ext}"
        counter += 1
    return candidate


async def _write_upload(source: UploadFile, dest: Path, max_size: Optional[int]) -> int:
    bytes_written = 0
    try:
        async with aiofiles.open(dest, 'wb') as f:
            while True:
                chunk = await source.read(CHUNK_SIZE)
                if not chunk:
                    break

                bytes_written += len(chunk)
                if max_size is not None and bytes_written > max_size:
                    raise UploadStepFailure(f"File too large (max: {max_size} bytes): {dest.name}")

                await f.write(chunk)
    except UploadStepFailure:
        await _remove_partial(dest)
        raise
    except OSError as e:
        await _remove_partial(dest)
        raise UploadStepFailure(f"Failed Save UploadFile {dest}: {e}")
    return bytes_written


async def _remove_partial(dest: Path) -> None:
    try:
        await aiofiles.os.remove(dest)
    except OSError:
        pass


async def save_uploads(
    directory: Path,
    uploads: Sequence,
    passwords: Sequence[str],
    resolver: PathResolver,
    max_size: Optional[int] = None,
) -> List[Path]:
    """
    Store uploaded files in directory, in order

    Args:
        directory: Target directory on disk
        uploads: Multipart ``file`` values
        passwords: Multipart ``pass`` values, positional to uploads
            (only used when the resolver tags names)
        resolver: Resolver of the active access mode
        max_size: Optional per-file size ceiling in bytes

    Returns:
        Paths written, in upload order

    Raises:
        UploadStepFailure: On the first part that cannot be stored; later
            parts are not attempted and earlier ones are kept
    """

    saved: List[Path] = []
    for index, upload in enumerate(uploads):
        if not isinstance(upload, UploadFile):
            raise UploadStepFailure(f"Failed Read UploadFile: part {index} is not a file", saved)

        filename = base_filename(upload.filename)
        if filename in ("", ".", ".."):
            raise UploadStepFailure(f"Failed Read UploadFile: invalid filename {upload.filename!r}", saved)

        save_path = await next_free_path(directory, filename)
        if resolver.tagging:
            if index >= len(passwords):
                raise UploadStepFailure(f"Failed Save UploadFile: no pass for {filename}", saved)
            try:
                save_path = resolver.tagged(save_path, passwords[index])
            except ValueError as e:
                raise UploadStepFailure(f"Failed Save UploadFile: {e}", saved)

        try:
            size = await _write_upload(upload, save_path, max_size)
        except UploadStepFailure as e:
            e.saved = list(saved)
            raise

        logger.info(f"Upload File is Saved. {save_path} ({size} bytes)")
        saved.append(save_path)

    return saved


async def open_file_for_download(file_path: Path) -> Tuple[AsyncGenerator[bytes, None], int]:
    """
    Open a regular file for streaming

    Returns:
        (file_generator, total_size) tuple

    Raises:
        FileSystemError: If the path is not a readable regular file
    """

    try:
        if not await aiofiles.os.path.isfile(file_path):
            raise FileSystemError(f"Not a file: {file_path}")
        stat = await aiofiles.os.stat(file_path)
        # Open before responding so permission errors surface as 404
        handle = await aiofiles.open(file_path, 'rb')
    except OSError as e:
        raise FileSystemError(f"Failed Read File {file_path}: {e}")

    async def file_generator():
        try:
            while True:
                chunk = await handle.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            await handle.close()

    return file_generator(), stat.st_size

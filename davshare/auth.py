"""
Authentication and the per-request access gate for davshare
"""

import base64
import binascii
import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple

from passlib.context import CryptContext
from starlette.requests import HTTPConnection

from .models import AccessMode, AccessScope, Config, UserInfo

logger = logging.getLogger(__name__)

# Stored passwords are unsalted lowercase hex SHA-256 digests
pwd_context = CryptContext(schemes=["hex_sha256"])


class CredentialStoreError(Exception):
    """Raised when the credential store cannot be read or parsed"""
    pass


class AuthFailure(Exception):
    """Any authentication failure; the reason is for the operator log only"""
    pass


def hash_password(password: str) -> str:
    """Return the lowercase hex SHA-256 digest of a password"""
    return pwd_context.hash(password)


def parse_basic_auth(authorization: str) -> Optional[Tuple[str, str]]:
    """Parse Basic Auth header"""
    if not authorization:
        return None

    scheme, _, encoded = authorization.partition(" ")
    if scheme.lower() != "basic":
        return None

    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError) as e:
        logger.warning(f"Failed to parse Basic Auth header: {e}")
        return None

    if ':' not in decoded:
        return None

    username, password = decoded.split(':', 1)
    return username, password


def create_basic_auth_header(username: str, password: str) -> str:
    """Create Basic Auth header value"""
    credentials = f"{username}:{password}"
    encoded = base64.b64encode(credentials.encode('utf-8')).decode('ascii')
    return f"Basic {encoded}"


def load_users(store_path: Path) -> List[UserInfo]:
    """Read the credential store from disk.

    The store is read on every call so edits apply without a restart.
    """
    try:
        with open(store_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise CredentialStoreError(f"read file: {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CredentialStoreError(f"json unmarshal: {e}") from e

    if not isinstance(data, dict):
        raise CredentialStoreError("json unmarshal: store must be an object")

    entries = data.get("Users") or []
    if not isinstance(entries, list):
        raise CredentialStoreError("json unmarshal: Users must be a list")

    users = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise CredentialStoreError("json unmarshal: user entry must be an object")
        users.append(UserInfo(
            name=str(entry.get("name", "")),
            pass_hash=str(entry.get("password", ""))
        ))
    return users


def authenticate_user(store_path: Path, username: str, password: str) -> Optional[UserInfo]:
    """Authenticate user by username and password against the store.

    Raises CredentialStoreError if the store is unusable.
    """
    digest = hash_password(password)
    for user in load_users(store_path):
        if user.name == username and user.pass_hash == digest:
            return user
    return None


def remote_addr(conn: HTTPConnection) -> str:
    if conn.client:
        return f"{conn.client.host}:{conn.client.port}"
    return "-"


class AccessGate:
    """Decides who the caller is and which directory they may reach"""

    def __init__(self, config: Config):
        self.mode = config.access_mode
        self.root = Path(config.storage.root)
        self.store_path = config.storage.users_file
        self.realm = config.auth.realm

    @property
    def challenge(self) -> str:
        return f'Basic realm="{self.realm}"'

    def check(self, conn: HTTPConnection) -> AccessScope:
        """Return the caller's scope or raise AuthFailure"""
        if self.mode is AccessMode.OPEN:
            return AccessScope(identity="", root=self.root)

        credentials = parse_basic_auth(conn.headers.get("Authorization", ""))
        if not credentials or not credentials[0]:
            raise AuthFailure("missing credentials")

        username, password = credentials
        try:
            user = authenticate_user(self.store_path, username, password)
        except CredentialStoreError as e:
            logger.error(f"Failed Basic Authorized ({e})")
            raise AuthFailure(str(e)) from e

        logger.info(f"IP:{remote_addr(conn)} \"LOGIN\" {username}")
        if user is None:
            logger.warning(f"Authentication failed for user: {username}")
            raise AuthFailure(f"invalid credentials for {username}")

        if self.mode is AccessMode.SHARED:
            return AccessScope(identity="", root=self.root)

        self._ensure_user_dir(username)
        return AccessScope(identity=username, root=self.root)

    def _ensure_user_dir(self, username: str) -> None:
        user_dir = self.root / username
        if user_dir.is_dir():
            return
        try:
            os.mkdir(user_dir, 0o777)
        except FileExistsError:
            return
        except OSError as e:
            logger.error(f"Failed Create Dir({user_dir}): {e}")
            raise AuthFailure(f"failed to create user dir: {e}") from e
        logger.info(f"Created user directory: {user_dir}")

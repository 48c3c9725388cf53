"""
Data models and constants for davshare
"""

from enum import Enum
from typing import Dict, Any
from dataclasses import dataclass, field
from pathlib import Path


# Delimiter between a filename and its anonymous password tag
TAG_DELIMITER = "__"

# Extension reported for directories in listings
DIRECTORY_EXTENSION = "Directory"

# Listing date format (2006/01/02-15:04:05)
LISTING_DATE_FORMAT = "%Y/%m/%d-%H:%M:%S"

DEFAULT_REALM = "Check Login User"
DEFAULT_MAX_UPLOAD_SIZE = 512000000

USERS_FILE = "users.json"
TEMPLATE_FILE = "template.html"
CERT_FILE = "cert.pem"
KEY_FILE = "key.pem"


class AccessMode(Enum):
    """Process-wide access model"""
    OPEN = "open"
    PRIVATE = "private"
    SHARED = "shared"

    @property
    def authenticated(self) -> bool:
        return self is not AccessMode.OPEN


@dataclass(frozen=True)
class UserInfo:
    """User entry from the credential store"""
    name: str
    pass_hash: str


@dataclass(frozen=True)
class AccessScope:
    """Identity and root directory granted to one request"""
    identity: str
    root: Path


@dataclass
class DirEntry:
    """Directory listing record"""
    name: str
    path: str
    extension: str
    is_dir: bool
    date: str = ""
    size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "extension": self.extension,
            "isDir": self.is_dir,
            "date": self.date,
            "size": self.size,
        }


@dataclass(frozen=True)
class TlsConfig:
    """TLS configuration"""
    enabled: bool = False
    certfile: str = ""
    keyfile: str = ""


@dataclass(frozen=True)
class ServerConfig:
    """Listener configuration"""
    addr: str = "0.0.0.0"
    httpPort: int = 80
    httpsPort: int = 443
    tls: TlsConfig = field(default_factory=TlsConfig)


@dataclass(frozen=True)
class StorageConfig:
    """Served tree and config directory"""
    root: Path = Path("./files")
    configDir: Path = Path("./config")
    maxUploadSize: int = DEFAULT_MAX_UPLOAD_SIZE

    def __post_init__(self):
        # Frozen dataclass: normalise through object.__setattr__
        if isinstance(self.root, str):
            object.__setattr__(self, "root", Path(self.root))
        if isinstance(self.configDir, str):
            object.__setattr__(self, "configDir", Path(self.configDir))

    @property
    def users_file(self) -> Path:
        return self.configDir / USERS_FILE

    @property
    def template_file(self) -> Path:
        return self.configDir / TEMPLATE_FILE


@dataclass(frozen=True)
class AuthConfig:
    """Authentication toggles"""
    basic: bool = False
    share: bool = False
    realm: str = DEFAULT_REALM


@dataclass(frozen=True)
class DavConfig:
    """WebDAV passthrough configuration"""
    anonymous: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration"""
    json: bool = False
    file: str = ""
    level: str = "INFO"
    max_size_mb: int = 100
    backup_count: int = 5


@dataclass(frozen=True)
class Config:
    """Main configuration, built once at startup"""
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    dav: DavConfig = field(default_factory=DavConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def access_mode(self) -> AccessMode:
        if not self.auth.basic:
            # Sharing requires authentication
            return AccessMode.OPEN
        if self.auth.share:
            return AccessMode.SHARED
        return AccessMode.PRIVATE

    @property
    def dav_enabled(self) -> bool:
        """Whether WebDAV passthrough is served for this access mode"""
        if self.access_mode.authenticated:
            return True
        return self.dav.anonymous

    @property
    def certfile(self) -> Path:
        if self.server.tls.certfile:
            return Path(self.server.tls.certfile)
        return self.storage.configDir / CERT_FILE

    @property
    def keyfile(self) -> Path:
        if self.server.tls.keyfile:
            return Path(self.server.tls.keyfile)
        return self.storage.configDir / KEY_FILE

"""
Configuration loading and boot checks for davshare
"""

import dataclasses
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union

import yaml

from .models import (
    Config, ServerConfig, TlsConfig, StorageConfig, AuthConfig,
    DavConfig, LoggingConfig, AccessMode, DEFAULT_REALM, DEFAULT_MAX_UPLOAD_SIZE
)

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when the configuration file cannot be used"""
    pass


class BootPrerequisiteError(Exception):
    """Raised when a file required at startup is missing"""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Failed boot prerequisite file ({path}): {reason}")
        self.path = path
        self.reason = reason


def _parse_config(data: Dict[str, Any]) -> Config:
    """Parse configuration data into Config object"""

    # Server configuration
    server_data = data.get('server') or {}
    tls_data = server_data.get('tls') or {}
    server = ServerConfig(
        addr=server_data.get('addr', '0.0.0.0'),
        httpPort=int(server_data.get('httpPort', 80)),
        httpsPort=int(server_data.get('httpsPort', 443)),
        tls=TlsConfig(
            enabled=bool(tls_data.get('enabled', False)),
            certfile=tls_data.get('certfile', '') or '',
            keyfile=tls_data.get('keyfile', '') or ''
        )
    )

    # Storage
    storage_data = data.get('storage') or {}
    storage = StorageConfig(
        root=Path(storage_data.get('root', './files')),
        configDir=Path(storage_data.get('configDir', './config')),
        maxUploadSize=int(storage_data.get('maxUploadSize', DEFAULT_MAX_UPLOAD_SIZE))
    )

    # Authentication
    auth_data = data.get('auth') or {}
    auth = AuthConfig(
        basic=bool(auth_data.get('basic', False)),
        share=bool(auth_data.get('share', False)),
        realm=auth_data.get('realm', DEFAULT_REALM)
    )

    # WebDAV
    dav_data = data.get('dav') or {}
    dav = DavConfig(
        anonymous=bool(dav_data.get('anonymous', False))
    )

    # Logging
    logging_data = data.get('logging') or {}
    logging_config = LoggingConfig(
        json=bool(logging_data.get('json', False)),
        file=logging_data.get('file', '') or '',
        level=logging_data.get('level', 'INFO'),
        max_size_mb=int(logging_data.get('max_size_mb', 100)),
        backup_count=int(logging_data.get('backup_count', 5))
    )

    return Config(
        server=server,
        storage=storage,
        auth=auth,
        dav=dav,
        logging=logging_config
    )


def load_config(config_path: Union[str, Path, None] = "davshare.yaml") -> Config:
    """Load configuration from a YAML file; a missing file yields defaults"""
    if not config_path:
        return Config()

    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Configuration file not found: {path}, using defaults")
        return Config()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load configuration {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration {path} must be a mapping")

    try:
        config = _parse_config(data)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration {path}: {e}") from e

    logger.info(f"Configuration loaded from {path}")
    return config


def apply_overrides(config: Config, **overrides: Optional[Any]) -> Config:
    """Return a copy of config with command line overrides applied.

    Keys are ``section__field`` (e.g. ``auth__basic``); ``None`` values
    leave the configured value untouched.
    """
    sections: Dict[str, Dict[str, Any]] = {}
    for key, value in overrides.items():
        if value is None:
            continue
        section, _, name = key.partition("__")
        if section == "tls":
            tls = sections.setdefault("server", {}).get("tls", config.server.tls)
            sections["server"]["tls"] = dataclasses.replace(tls, **{name: value})
            continue
        sections.setdefault(section, {})[name] = value

    changes = {
        section: dataclasses.replace(getattr(config, section), **values)
        for section, values in sections.items()
    }
    return dataclasses.replace(config, **changes)


def check_boot_prerequisites(config: Config) -> bool:
    """Verify files needed at startup.

    Raises BootPrerequisiteError when the credential store is missing while
    authentication is enabled. Returns whether the HTTPS listener can start;
    missing TLS material only disables that listener.
    """
    if config.auth.share and not config.auth.basic:
        logger.warning("Share directory requires basic authentication; sharing disabled")

    if config.access_mode.authenticated:
        users_file = config.storage.users_file
        if not users_file.is_file():
            raise BootPrerequisiteError(users_file, "not found")

    if not config.server.tls.enabled:
        return False

    https_ok = True
    for path in (config.certfile, config.keyfile):
        if not path.is_file():
            logger.error(f"Failed boot prerequisite file ({path}): not found")
            https_ok = False

    if not https_ok:
        logger.warning("Skip HTTPS server boot")
    return https_ok


def describe_config(config: Config) -> str:
    """Boot banner with the effective configuration"""
    mode = config.access_mode
    lines = [
        "davshare boot config",
        f"File Directory         : {config.storage.root}",
        f"Config Files Directory : {config.storage.configDir}",
        f"HTTP Port              : {config.server.httpPort}",
        f"HTTPS Port             : {config.server.httpsPort}",
        f"Secure (TLS)           : {config.server.tls.enabled}",
        f"Basic Authentication   : {mode.authenticated}",
        f"Share User Directory   : {mode is AccessMode.SHARED}",
        f"WebDAV Passthrough     : {config.dav_enabled}",
    ]
    return "\n".join(lines)

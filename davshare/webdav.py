"""
WebDAV engine for davshare using WsgiDAV
"""

import logging
import os
from pathlib import Path
from typing import Dict, Any

from asgiref.wsgi import WsgiToAsgi
from wsgidav.fs_dav_provider import FilesystemProvider
from wsgidav.wsgidav_app import WsgiDAVApp

from .models import Config

logger = logging.getLogger(__name__)


def build_webdav_config(root: Path) -> Dict[str, Any]:
    """WsgiDAV configuration serving root at "/".

    Requests reach the engine after the access gate has run and with their
    path already rewritten under the caller's identity, so WsgiDAV itself
    accepts every request anonymously.
    """
    return {
        "provider_mapping": {
            "/": FilesystemProvider(str(root), readonly=False),
        },
        "simple_dc": {
            "user_mapping": {"*": True},
        },
        "http_authenticator": {
            "domain_controller": None,
            "accept_basic": True,
            "accept_digest": False,
            "default_to_digest": False,
            "trusted_auth_header": None,
        },
        # In-memory lock table and dead properties
        "lock_storage": True,
        "property_manager": True,
        "dir_browser": {"enable": False},
        "verbose": 3 if os.getenv("DAVSHARE_DEBUG") else 1,
        # Leave logging configuration to setup_logging
        "logging": {"enable": None},
    }


def create_webdav_app(config: Config):
    """Create the WebDAV engine as an ASGI application"""

    root = Path(config.storage.root).resolve()
    app = WsgiDAVApp(build_webdav_config(root))

    def webdav_wrapper(environ, start_response):
        try:
            return app(environ, start_response)
        except Exception as e:
            logger.error(
                f"IP:{environ.get('REMOTE_ADDR', '-')} \"{environ.get('REQUEST_METHOD')}\" "
                f"{environ.get('PATH_INFO')}, ERR: {e}"
            )
            raise

    logger.info(f"WebDAV engine created for {root}")
    return WsgiToAsgi(webdav_wrapper)

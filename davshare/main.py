"""
Main application factory and server entry point for davshare
"""

import argparse
import asyncio
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import List, Optional

import uvicorn
from fastapi import FastAPI

from . import __version__
from .api import setup_file_routes
from .auth import hash_password
from .config import (
    BootPrerequisiteError, ConfigError, apply_overrides, check_boot_prerequisites,
    describe_config, load_config
)
from .middleware import setup_middleware
from .models import Config
from .resolver import PathResolver
from .webdav import create_webdav_app


logger = logging.getLogger(__name__)


def setup_logging(config: Config):
    """Setup logging configuration"""
    log_config = config.logging

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_config.level.upper(), logging.INFO))

    # Clear existing handlers
    root_logger.handlers.clear()

    # Create formatter
    if log_config.json:
        formatter = logging.Formatter(
            '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","msg":"%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler if configured
    if log_config.file:
        log_file = Path(log_config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=log_config.max_size_mb * 1024 * 1024,
            backupCount=log_config.backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def create_directories(config: Config):
    """Create the served root if it does not exist"""
    root = Path(config.storage.root)
    root.mkdir(parents=True, exist_ok=True)
    logger.info(f"Ensured file directory exists: {root}")


def create_app(config: Optional[Config] = None) -> FastAPI:
    """Create FastAPI application"""

    if config is None:
        config = load_config(os.getenv("DAVSHARE_CONFIG", "davshare.yaml"))

    create_directories(config)

    app = FastAPI(
        title="davshare",
        description="File server with WebDAV passthrough and anonymous file sharing",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    # Immutable per-process state shared by all requests
    app.state.config = config
    app.state.resolver = PathResolver(config.access_mode)

    webdav_app = None
    if config.dav_enabled:
        webdav_app = create_webdav_app(config)
        logger.info("WebDAV passthrough enabled")
    else:
        logger.info("WebDAV passthrough disabled for unauthenticated access")

    setup_middleware(app, config, webdav_app)
    setup_file_routes(app)

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"davshare serving {config.storage.root} ({config.access_mode.value} mode)")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("davshare shutdown complete")

    return app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="davshare file server")
    parser.add_argument("--config", "-c", default=os.getenv("DAVSHARE_CONFIG", "davshare.yaml"),
                        help="Configuration file path")
    parser.add_argument("--dir", default=None, help="File directory")
    parser.add_argument("--config-dir", default=None,
                        help="Directory holding users.json, template.html, cert.pem and key.pem")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--http", type=int, default=None, help="HTTP port")
    parser.add_argument("--https", type=int, default=None, help="HTTPS port")
    parser.add_argument("--ssl", action="store_true", default=None, help="Also listen for HTTPS")
    parser.add_argument("--basic", action="store_true", default=None,
                        help="Enable basic auth (each user gets <dir>/<username>/)")
    parser.add_argument("--share", action="store_true", default=None,
                        help="Share <dir>/ between authenticated users (requires --basic)")
    parser.add_argument("--max-upload", type=int, default=None, help="Per-file upload size ceiling in bytes")
    parser.add_argument("--hash-password", metavar="PASSWORD", default=None,
                        help="Print the SHA-256 digest to store in users.json and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    return parser


def build_config(args: argparse.Namespace) -> Config:
    """Load the config file and apply command line overrides"""
    config = load_config(args.config)
    return apply_overrides(
        config,
        storage__root=Path(args.dir) if args.dir else None,
        storage__configDir=Path(args.config_dir) if args.config_dir else None,
        storage__maxUploadSize=args.max_upload,
        server__addr=args.host,
        server__httpPort=args.http,
        server__httpsPort=args.https,
        tls__enabled=args.ssl,
        auth__basic=args.basic,
        auth__share=args.share,
        logging__level="DEBUG" if args.debug else None,
    )


def build_servers(app: FastAPI, config: Config, https_ok: bool) -> List[uvicorn.Server]:
    """HTTP listener, plus the HTTPS listener when its key material exists"""
    common = dict(
        host=config.server.addr,
        access_log=False,  # We handle access logging ourselves
        server_header=False,
        log_config=None,
    )
    servers = [uvicorn.Server(uvicorn.Config(app, port=config.server.httpPort, **common))]
    if https_ok:
        servers.append(uvicorn.Server(uvicorn.Config(
            app,
            port=config.server.httpsPort,
            ssl_certfile=str(config.certfile),
            ssl_keyfile=str(config.keyfile),
            **common,
        )))
    return servers


async def serve(servers: List[uvicorn.Server]):
    await asyncio.gather(*(server.serve() for server in servers))


def main(argv: Optional[List[str]] = None):
    """Main entry point for running the server"""
    args = build_parser().parse_args(argv)

    if args.hash_password is not None:
        print(f"{args.hash_password} => {hash_password(args.hash_password)}")
        return 0

    if args.debug:
        os.environ["DAVSHARE_DEBUG"] = "1"

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"davshare: {e}", file=sys.stderr)
        return 1

    setup_logging(config)
    print(describe_config(config))

    try:
        https_ok = check_boot_prerequisites(config)
    except BootPrerequisiteError as e:
        logger.critical(str(e))
        return 1

    app = create_app(config)
    servers = build_servers(app, config, https_ok)
    if https_ok:
        logger.info(f"HTTPS server listening on {config.server.addr}:{config.server.httpsPort}")
    logger.info(f"HTTP server listening on {config.server.addr}:{config.server.httpPort}")

    asyncio.run(serve(servers))
    return 0


if __name__ == "__main__":
    sys.exit(main())

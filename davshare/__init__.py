"""
davshare: small file server with per-user sandboxes, password-tagged sharing
Built with FastAPI + Uvicorn + WsgiDAV
"""

__version__ = "1.0.0"
__author__ = "davshare"
__description__ = "File server with WebDAV passthrough and anonymous file sharing"

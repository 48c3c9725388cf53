"""Shared fixtures for davshare tests."""

from __future__ import annotations

import json
import re
from pathlib import Path

import pytest

from davshare.auth import create_basic_auth_header, hash_password
from davshare.models import AuthConfig, Config, DavConfig, StorageConfig

TEST_TEMPLATE = '<html><script>var files = ${files};</script><form class="${files}"></form></html>'

USERS = {
    "alice": "wonderland",
    "bob": "builder",
}


def write_users(config_dir: Path, users=None) -> Path:
    users = USERS if users is None else users
    store = config_dir / "users.json"
    store.write_text(
        json.dumps({"Users": [{"name": name, "password": hash_password(pw)} for name, pw in users.items()]}),
        encoding="utf-8",
    )
    return store


def make_config(tmp_path: Path, *, basic=False, share=False, anonymous_dav=False, max_upload=None) -> Config:
    root = tmp_path / "files"
    config_dir = tmp_path / "config"
    root.mkdir(exist_ok=True)
    config_dir.mkdir(exist_ok=True)
    (config_dir / "template.html").write_text(TEST_TEMPLATE, encoding="utf-8")
    write_users(config_dir)

    storage = StorageConfig(root=root, configDir=config_dir)
    if max_upload is not None:
        storage = StorageConfig(root=root, configDir=config_dir, maxUploadSize=max_upload)

    return Config(
        storage=storage,
        auth=AuthConfig(basic=basic, share=share),
        dav=DavConfig(anonymous=anonymous_dav),
    )


def auth_headers(username: str, password: str = None) -> dict:
    if password is None:
        password = USERS[username]
    return {"Authorization": create_basic_auth_header(username, password)}


def listing_payload(html: str) -> list:
    """Extract the JSON entries injected into TEST_TEMPLATE"""
    match = re.search(r"var files = (.*);</script>", html, re.S)
    assert match, html
    return json.loads(match.group(1))


def form_class(html: str) -> str:
    match = re.search(r'<form class="([^"]*)">', html)
    assert match, html
    return match.group(1)


@pytest.fixture()
def client_factory(tmp_path):
    """Build a TestClient for a given access mode."""

    pytest.importorskip("httpx", reason="httpx is required for TestClient")
    from fastapi.testclient import TestClient

    from davshare.main import create_app

    clients = []

    def factory(**kwargs):
        config = make_config(tmp_path, **kwargs)
        client = TestClient(create_app(config))
        client.__enter__()
        clients.append(client)
        return client, config

    yield factory

    for client in clients:
        client.__exit__(None, None, None)

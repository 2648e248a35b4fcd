"""Shared fixtures for the submission relay tests."""

import httpx
import pytest

import submission_handler


@pytest.fixture
def download_dir(tmp_path, monkeypatch):
    """Point downloads at a per-test directory."""
    target = tmp_path / "downloads"
    monkeypatch.setattr(submission_handler, "DOWNLOAD_DIR", str(target))
    return target


@pytest.fixture
def http_handler(monkeypatch):
    """Route httpx.Client requests made by the handler through a MockTransport."""
    real_client = httpx.Client

    def install(handler):
        monkeypatch.setattr(
            submission_handler.httpx,
            "Client",
            lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
        )

    return install

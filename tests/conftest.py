"""Shared fixtures for the signing server tests."""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from signing_server.logging_setup import APP_LOGGERS
from signing_server.main import create_app
from signing_server.services.key_material import SigningKey
from signing_server.store.fixture import FixtureStoreProvider

FIXTURES = Path(__file__).parent / "fixtures"

# RFC 8032 section 7.1, TEST 1
RFC8032_SEED = bytes.fromhex("9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60")
RFC8032_PUBLIC = bytes.fromhex("d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a")
RFC8032_EMPTY_MESSAGE_SIGNATURE = bytes.fromhex(
    "e5564300c360ac729086e2cc806e828a84877f1eb8e5d974d873e065224901555fb8821590a33bacc61e39701cf9b46bd25bf5f0595bbe24655141438e7a100b"
)

KEY_NAME = "test-1"

HELLO_PATH = "/nix/store/mdi7lvrn2mx7rfzv3fdq3v5yw8swiks6-hello-2.12.1"
GLIBC_PATH = "/nix/store/aw2fw9ag10wr9pf0qk4nk5sxi0q0bn56-glibc-2.37-8"

HELLO_FINGERPRINT = (
    "1;/nix/store/mdi7lvrn2mx7rfzv3fdq3v5yw8swiks6-hello-2.12.1;"
    "sha256:0nhc4jn0g0njfs3ipfcq8jg68f35sm8k67s6pcv8fjm17avcyymi;226552;"
    "/nix/store/aw2fw9ag10wr9pf0qk4nk5sxi0q0bn56-glibc-2.37-8,"
    "/nix/store/mdi7lvrn2mx7rfzv3fdq3v5yw8swiks6-hello-2.12.1"
)

# Signature of HELLO_FINGERPRINT by the RFC 8032 key named KEY_NAME
HELLO_SIGNATURE = (
    "test-1:SS+iAAUBWQyskxsntC7X2rNTKXHrmkvXsvTinBARe6t7Wn0Bkqgj0EPfS6Nw33zVTNTxqvmB7+YaPsOhMWgRAA=="
)

GLIBC_FINGERPRINT = (
    "1;/nix/store/aw2fw9ag10wr9pf0qk4nk5sxi0q0bn56-glibc-2.37-8;"
    f"sha256:{'0' * 52};29960;"
    "/nix/store/aw2fw9ag10wr9pf0qk4nk5sxi0q0bn56-glibc-2.37-8"
)


def key_file_contents(name: str, seed: bytes, public: bytes) -> str:
    """Render a Nix secret key file."""
    return f"{name}:{base64.b64encode(seed + public).decode('ascii')}"


@pytest.fixture
def secret_key_contents() -> str:
    return key_file_contents(KEY_NAME, RFC8032_SEED, RFC8032_PUBLIC)


@pytest.fixture
def expected_public_key() -> str:
    return f"{KEY_NAME}:{base64.b64encode(RFC8032_PUBLIC).decode('ascii')}"


@pytest.fixture
def secret_key_file(tmp_path: Path, secret_key_contents: str) -> Path:
    """Secret key file with a trailing newline, as written by nix key generate-secret."""
    path = tmp_path / "secret-key"
    path.write_text(secret_key_contents + "\n", encoding="utf-8")
    return path


@pytest.fixture
def signing_key(secret_key_contents: str) -> SigningKey:
    return SigningKey.parse(secret_key_contents)


@pytest.fixture
def path_info_json() -> list[dict]:
    with open(FIXTURES / "path_info.json", "r", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def fixture_provider(path_info_json: list[dict]) -> FixtureStoreProvider:
    return FixtureStoreProvider.from_nix_json(path_info_json)


@pytest.fixture
def client(signing_key: SigningKey, fixture_provider: FixtureStoreProvider) -> TestClient:
    """Test client over an app serving the fixture store."""
    return TestClient(create_app(signing_key, fixture_provider))


@pytest.fixture
def restore_logging() -> Iterator[None]:
    """Put the root logger back the way pytest left it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    for name in APP_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)

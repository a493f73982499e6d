"""
Tests for the command-line interface.
"""

from __future__ import annotations

import base64
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from conftest import FIXTURES, HELLO_FINGERPRINT, HELLO_PATH, HELLO_SIGNATURE, RFC8032_SEED
from signing_cli.__main__ import _provider, app
from signing_server.logging_setup import LOG_ENV
from signing_server.services.key_material import SigningKey
from signing_server.store.nix_cli import NixCliStoreProvider

runner = CliRunner()

PATH_INFO_JSON = str(FIXTURES / "path_info.json")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, restore_logging: None) -> None:
    monkeypatch.delenv(LOG_ENV, raising=False)


class TestKeyCommands:
    """Tests for public-key and sign."""

    def test_public_key(self, secret_key_file: Path, expected_public_key: str) -> None:
        result = runner.invoke(app, ["public-key", "--secret-key-file", str(secret_key_file)])

        assert result.exit_code == 0
        assert result.stdout.strip() == expected_public_key

    def test_public_key_bad_file(self, tmp_path: Path) -> None:
        bad = tmp_path / "secret-key"
        bad.write_text(f"test-1:{base64.b64encode(RFC8032_SEED).decode()}")

        result = runner.invoke(app, ["public-key", "-k", str(bad)])

        assert result.exit_code == 1

    def test_sign_fingerprint(self, secret_key_file: Path, signing_key: SigningKey) -> None:
        result = runner.invoke(
            app, ["sign", "-k", str(secret_key_file), "--fingerprint", HELLO_FINGERPRINT]
        )

        assert result.exit_code == 0
        assert result.stdout.strip() == signing_key.sign_fingerprint(HELLO_FINGERPRINT)

    def test_sign_store_path(self, secret_key_file: Path) -> None:
        result = runner.invoke(
            app,
            [
                "sign",
                "-k",
                str(secret_key_file),
                "--store-path",
                HELLO_PATH,
                "--path-info-json",
                PATH_INFO_JSON,
            ],
        )

        assert result.exit_code == 0
        assert result.stdout.strip() == HELLO_SIGNATURE

    def test_sign_requires_one_input(self, secret_key_file: Path) -> None:
        result = runner.invoke(app, ["sign", "-k", str(secret_key_file)])
        assert result.exit_code == 1

    def test_sign_rejects_bad_fingerprint(self, secret_key_file: Path) -> None:
        result = runner.invoke(app, ["sign", "-k", str(secret_key_file), "-f", "2;nope"])
        assert result.exit_code == 1


class TestFingerprintCommand:
    """Tests for fingerprint."""

    def test_fingerprint(self) -> None:
        result = runner.invoke(app, ["fingerprint", HELLO_PATH, "--path-info-json", PATH_INFO_JSON])

        assert result.exit_code == 0
        assert result.stdout.strip() == HELLO_FINGERPRINT

    def test_unknown_path(self) -> None:
        result = runner.invoke(
            app, ["fingerprint", "/nix/store/missing", "--path-info-json", PATH_INFO_JSON]
        )
        assert result.exit_code == 1

    def test_nix_provider_honours_store_dir(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test local lookups use the same store directory as the server."""
        monkeypatch.setenv("NIX_STORE_DIR", str(tmp_path / "store"))

        provider = _provider(None)

        assert isinstance(provider, NixCliStoreProvider)
        assert provider.store_dir == str(tmp_path / "store")

    def test_custom_store_path_reaches_nix(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a path under NIX_STORE_DIR is not rejected as outside the store."""
        store = tmp_path / "store"
        store.mkdir()
        monkeypatch.setenv("NIX_STORE_DIR", str(store))

        result = runner.invoke(app, ["fingerprint", str(store / "missing")])

        assert result.exit_code == 1
        assert "does not exist" in result.output


class TestServeCommand:
    """Tests for serve startup failures. Nothing binds in these tests."""

    def test_bad_key_exits_nonzero(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a corrupt key stops startup before uvicorn runs."""
        bad = tmp_path / "secret-key"
        bad.write_text("test-1:AAAA")

        def fail_run(*args, **kwargs) -> None:
            raise AssertionError("uvicorn must not start")

        monkeypatch.setattr("signing_server.main.uvicorn.run", fail_run)

        result = runner.invoke(app, ["serve", "--secret-key-file", str(bad), "--bind", "127.0.0.1:0"])

        assert result.exit_code == 1

    def test_bad_bind_exits_nonzero(self, secret_key_file: Path) -> None:
        result = runner.invoke(app, ["serve", "-k", str(secret_key_file), "--bind", "nowhere"])
        assert result.exit_code == 1

    def test_bad_directive_exits_nonzero(self, secret_key_file: Path) -> None:
        result = runner.invoke(
            app, ["serve", "-k", str(secret_key_file), "--log-directives", "x=shouty"]
        )
        assert result.exit_code == 1

    def test_serve_passes_config(
        self, secret_key_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test options reach uvicorn and the logging setup."""
        calls: dict = {}

        def fake_run(app, **kwargs) -> None:
            calls.update(kwargs)

        monkeypatch.setattr("signing_server.main.uvicorn.run", fake_run)

        result = runner.invoke(
            app,
            [
                "serve",
                "-k",
                str(secret_key_file),
                "--bind",
                "[::1]:8081",
                "-vv",
                "--logger",
                "json",
            ],
        )

        assert result.exit_code == 0
        assert calls["host"] == "::1"
        assert calls["port"] == 8081
        assert calls["log_config"] is None


class TestProbeCommand:
    """Tests for probe."""

    def _serve(self, monkeypatch: pytest.MonkeyPatch, text: str) -> None:
        def fake_get(url: str, timeout: float) -> httpx.Response:
            return httpx.Response(200, text=text, request=httpx.Request("GET", url))

        monkeypatch.setattr(httpx, "get", fake_get)

    def test_probe_match(
        self,
        monkeypatch: pytest.MonkeyPatch,
        secret_key_file: Path,
        expected_public_key: str,
    ) -> None:
        self._serve(monkeypatch, expected_public_key)

        result = runner.invoke(app, ["probe", "--url", "http://signer:8080", "-k", str(secret_key_file)])

        assert result.exit_code == 0
        assert "matches" in result.stdout

    def test_probe_mismatch(self, monkeypatch: pytest.MonkeyPatch, secret_key_file: Path) -> None:
        self._serve(monkeypatch, "other-1:AAAA")

        result = runner.invoke(app, ["probe", "-k", str(secret_key_file)])

        assert result.exit_code == 1

    def test_probe_unreachable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_get(url: str, timeout: float) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(httpx, "get", fake_get)

        result = runner.invoke(app, ["probe"])

        assert result.exit_code == 1

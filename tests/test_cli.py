import json

import pytest

from gridd.__main__ import main
from gridd.splinter import app_auth_handler
from gridd.splinter.addressing import (
    contract_address,
    contract_registry_address,
    namespace_registry_address,
)
from gridd.splinter.errors import NodeLookupError, ReconnectExhaustedError


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch):
    monkeypatch.setattr(
        "gridd.splinter.observability.configure_logging", lambda *args, **kwargs: None
    )
    for name in ("GRIDD_KEY_DIR", "GRIDD_KEY_NAME", "GRIDD_SPLINTERD_URL", "GRIDD_SCAR_DIR"):
        monkeypatch.delenv(name, raising=False)


class TestAddresses:

    def test_name_and_version(self, capsys):
        assert main(["addresses", "grid_product", "1.0"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["contract_registry"] == contract_registry_address("grid_product")
        assert out["contract"] == contract_address("grid_product", "1.0")
        assert out["namespace_registry"] == namespace_registry_address("grid_product")

    def test_short_name_has_no_namespace_address(self, capsys):
        assert main(["addresses", "pike"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert "namespace_registry" not in out
        assert "contract" not in out


class TestRun:

    def test_missing_config_file(self, tmp_path, capsys):
        assert main(["run", "--config", str(tmp_path / "missing.yaml")]) == 2
        assert "not found" in capsys.readouterr().err

    def test_missing_keys(self, tmp_path):
        assert main(["run", "--key-dir", str(tmp_path), "--key-name", "nobody"]) == 2

    def test_clean_close(self, key_dir, monkeypatch):
        seen = {}

        def fake_run(config, keys):
            seen["config"] = config
            seen["keys"] = keys

        monkeypatch.setattr(app_auth_handler, "run", fake_run)
        code = main([
            "run",
            "--key-dir", str(key_dir),
            "--key-name", "gridd",
            "--splinterd-url", "http://splinterd-alpha:8085",
        ])
        assert code == 0
        assert seen["config"].splinterd_url == "http://splinterd-alpha:8085"
        assert seen["keys"].public_key

    def test_reconnect_exhausted(self, key_dir, monkeypatch):
        def fake_run(config, keys):
            raise ReconnectExhaustedError("gave up", attempts=11)

        monkeypatch.setattr(app_auth_handler, "run", fake_run)
        assert main(["run", "--key-dir", str(key_dir), "--key-name", "gridd"]) == 1

    def test_node_lookup_failure(self, key_dir, monkeypatch):
        def fake_run(config, keys):
            raise NodeLookupError("unreachable")

        monkeypatch.setattr(app_auth_handler, "run", fake_run)
        assert main(["run", "--key-dir", str(key_dir), "--key-name", "gridd"]) == 2


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage" in capsys.readouterr().out

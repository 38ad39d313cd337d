"""
Configuration tests: YAML files, schema validation, environment precedence
and secret masking.
"""

from __future__ import annotations

import pytest
import yaml

from ticketmint.config import (
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    get_config_manager,
    validate_document,
)
from ticketmint.keys import DEFAULT_PROGRAM_ID, b58encode

from conftest import keypair


SIGNER = keypair(2)


def _write(tmp_path, document, name="ticketmint.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(document), encoding="utf-8")
    return path


class TestDefaults:

    def test_defaults(self):
        mgr = get_config_manager()
        assert mgr.get("program.program_id") == str(DEFAULT_PROGRAM_ID)
        assert mgr.get("signing.private_key") == ""
        assert mgr.get("observability.log_level") == "info"
        assert mgr.get("observability.log_format") == "json"
        assert mgr.validate() == []

    def test_singleton(self):
        assert ConfigManager() is get_config_manager()
        ConfigManager.reset()
        assert ConfigManager() is not None

    def test_invalid_path(self):
        with pytest.raises(ConfigError):
            get_config_manager().get("program.nope")
        with pytest.raises(ConfigError):
            get_config_manager().set("program", "x")


class TestFiles:

    def test_load(self, tmp_path):
        path = _write(tmp_path, {
            "signing": {"private_key": SIGNER.to_base58(), "public_key": str(SIGNER.pubkey)},
            "observability": {"log_level": "debug"},
        })
        mgr = get_config_manager()
        mgr.load_from_file(path)
        assert mgr.get("signing.public_key") == str(SIGNER.pubkey)
        assert mgr.get("observability.log_level") == "debug"
        assert mgr.loaded_paths == [path]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            get_config_manager().load_from_file(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("program: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            get_config_manager().load_from_file(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        get_config_manager().load_from_file(path)
        assert get_config_manager().loaded_paths == []

    def test_schema_errors_apply_nothing(self, tmp_path):
        path = _write(tmp_path, {
            "observability": {"log_level": "debug", "log_format": "xml"},
            "program": {"program_id": "abc"},
            "extra": 1,
        })
        mgr = get_config_manager()
        with pytest.raises(ConfigValidationError) as exc:
            mgr.load_from_file(path)
        assert len(exc.value.errors) == 3
        assert mgr.get("observability.log_level") == "info"

    def test_value_errors_apply_nothing(self, tmp_path):
        mismatched = b58encode(SIGNER.seed + keypair(3).pubkey.to_bytes())
        path = _write(tmp_path, {
            "program": {"program_id": str(keypair(4).pubkey)},
            "signing": {"private_key": mismatched},
        })
        mgr = get_config_manager()
        with pytest.raises(ConfigValidationError) as exc:
            mgr.load_from_file(path)
        assert exc.value.errors == ["signing.private_key: validation failed for value ***"]
        assert mismatched not in str(exc.value)
        assert mgr.get("program.program_id") == str(DEFAULT_PROGRAM_ID)
        assert mgr.get("signing.private_key") == ""
        assert mgr.loaded_paths == []

    def test_load_defaults_from_working_directory(self, tmp_path, monkeypatch):
        _write(tmp_path, {"observability": {"log_format": "text"}})
        monkeypatch.chdir(tmp_path)
        mgr = get_config_manager()
        mgr.load_defaults()
        assert mgr.get("observability.log_format") == "text"


class TestDocumentValidation:

    def test_valid(self):
        assert validate_document({"ledger": {"collection_address": str(SIGNER.pubkey)}}) == []

    def test_null_and_empty_optional_keys(self):
        assert validate_document({"signing": {"private_key": None, "public_key": ""}}) == []

    @pytest.mark.parametrize(
        "document",
        [
            {"program": {"program_id": "short"}},
            {"signing": {"private_key": "abc"}},
            {"ledger": {"collection_address": 5}},
            {"observability": {"log_level": "loud"}},
            {"unknown": {}},
            ["not", "a", "mapping"],
        ],
    )
    def test_invalid(self, document):
        assert validate_document(document)


class TestPrecedence:

    def test_environment_overrides_runtime_and_file(self, tmp_path, monkeypatch):
        mgr = get_config_manager()
        mgr.load_from_file(_write(tmp_path, {"observability": {"log_level": "debug"}}))
        mgr.set("observability.log_level", "warning")
        assert mgr.get("observability.log_level") == "warning"
        monkeypatch.setenv("TICKETMINT_LOG_LEVEL", "error")
        assert mgr.get("observability.log_level") == "error"

    def test_invalid_environment_value_reported(self, monkeypatch):
        monkeypatch.setenv("TICKETMINT_LOG_FORMAT", "xml")
        errors = get_config_manager().validate()
        assert errors == ["observability.log_format: validation failed for value xml"]

    def test_runtime_validation(self):
        with pytest.raises(ConfigValidationError):
            get_config_manager().set("program.program_id", "not base58!")

    def test_change_callback(self):
        changes = []
        get_config_manager().config.observability.log_level.on_change(lambda old, new: changes.append((old, new)))
        get_config_manager().set("observability.log_level", "debug")
        assert changes == [(None, "debug")]


class TestSecrets:

    def test_masked_in_dict(self):
        mgr = get_config_manager()
        mgr.set("signing.private_key", SIGNER.to_base58())
        assert mgr.config.to_dict()["signing"]["private_key"] == "***"
        assert mgr.config.to_dict(redact_secrets=False)["signing"]["private_key"] == SIGNER.to_base58()
        assert SIGNER.to_base58() not in mgr.config.to_yaml()

    def test_masked_in_validation_errors(self, monkeypatch):
        monkeypatch.setenv("TICKETMINT_SIGNING_PRIVATE_KEY", "1111")
        errors = get_config_manager().validate()
        assert errors == ["signing.private_key: validation failed for value ***"]

    def test_masked_in_set_error(self):
        with pytest.raises(ConfigValidationError) as exc:
            get_config_manager().set("signing.private_key", "secret-but-bad")
        assert "secret-but-bad" not in str(exc.value)

    def test_empty_secret_not_masked(self):
        assert get_config_manager().config.to_dict()["signing"]["private_key"] == ""


class TestExportSchema:

    def test_describes_values(self):
        schema = get_config_manager().export_schema()
        level = schema["properties"]["observability"]["log_level"]
        assert level["env_var"] == "TICKETMINT_LOG_LEVEL"
        assert level["default"] == "info"
        assert schema["properties"]["signing"]["private_key"]["env_var"] == "TICKETMINT_SIGNING_PRIVATE_KEY"

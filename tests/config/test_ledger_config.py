"""
Tests for configuration loading (ledger_kernel/config.py).

Layering: defaults < YAML file < environment.
"""

import pytest
import yaml

from ledger_kernel.config import (
    DEFAULT_DATABASE_URL,
    LedgerConfig,
    config_from_mapping,
    load_config,
    load_yaml_config,
)


def _write_yaml(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestDefaults:

    def test_defaults(self):
        config = load_config(environ={})
        assert config == LedgerConfig()
        assert config.database_url == DEFAULT_DATABASE_URL
        assert config.reference_prefix == "TXN"
        assert config.reference_max_attempts == 10
        assert config.strict_line_sides is False

    def test_config_is_frozen(self):
        config = LedgerConfig()
        with pytest.raises(Exception):
            config.reference_prefix = "JRN"


class TestValidation:

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError, match="at least 1"):
            LedgerConfig(reference_max_attempts=0)

    @pytest.mark.parametrize("prefix", ["", "TX-N"])
    def test_bad_prefix_rejected(self, prefix):
        with pytest.raises(ValueError, match="reference_prefix"):
            LedgerConfig(reference_prefix=prefix)

    def test_unknown_keys_listed(self):
        with pytest.raises(ValueError, match="bogus, other"):
            config_from_mapping({"other": 1, "bogus": 2})

    def test_bad_boolean(self):
        with pytest.raises(ValueError, match="strict_line_sides"):
            config_from_mapping({"strict_line_sides": "maybe"})


class TestYamlFile:

    def test_ledger_section(self, tmp_path):
        path = _write_yaml(
            tmp_path / "ledger.yaml",
            {"ledger": {"reference_prefix": "JRN", "strict_line_sides": True}},
        )
        config = load_config(path, environ={})
        assert config.reference_prefix == "JRN"
        assert config.strict_line_sides is True

    def test_whole_document_without_section(self, tmp_path):
        path = _write_yaml(tmp_path / "flat.yaml", {"reference_max_attempts": 3})
        assert load_config(path, environ={}).reference_max_attempts == 3

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError, match="mapping"):
            load_yaml_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml", environ={})

    def test_config_file_from_environment(self, tmp_path):
        path = _write_yaml(tmp_path / "env.yaml", {"ledger": {"pool_size": 5}})
        config = load_config(environ={"LEDGER_CONFIG_FILE": str(path)})
        assert config.pool_size == 5


class TestEnvironmentOverrides:

    def test_database_url(self):
        config = load_config(environ={"DATABASE_URL": "postgresql://u:p@db/ledger"})
        assert config.database_url == "postgresql://u:p@db/ledger"

    def test_prefixed_fields_coerced(self):
        config = load_config(
            environ={
                "LEDGER_REFERENCE_MAX_ATTEMPTS": "4",
                "LEDGER_STRICT_LINE_SIDES": "yes",
                "LEDGER_SQLITE_BUSY_TIMEOUT": "2.5",
            }
        )
        assert config.reference_max_attempts == 4
        assert config.strict_line_sides is True
        assert config.sqlite_busy_timeout == 2.5

    def test_environment_wins_over_file(self, tmp_path):
        path = _write_yaml(tmp_path / "ledger.yaml", {"ledger": {"reference_prefix": "JRN"}})
        config = load_config(path, environ={"LEDGER_REFERENCE_PREFIX": "GL"})
        assert config.reference_prefix == "GL"

    def test_unrelated_variables_ignored(self):
        config = load_config(environ={"LEDGER_NOT_A_FIELD": "1", "HOME": "/root"})
        assert config == LedgerConfig()

"""LedgerConfig defaults, validation and YAML loading."""

import pytest

from commodity_kernel.config import LedgerConfig, load_config


class TestLedgerConfig:

    def test_defaults(self):
        config = LedgerConfig()
        assert config.database_url.startswith("sqlite:///")
        assert config.default_currency == "USD"
        assert config.weight_unit == "MT"
        assert config.max_conflict_retries == 3
        assert config.require_active_contract is True

    def test_normalizes_case(self):
        config = LedgerConfig(default_currency="eur", log_level="debug")
        assert config.default_currency == "EUR"
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"database_url": ""},
            {"max_conflict_retries": -1},
            {"sqlite_busy_timeout": 0},
            {"default_currency": "EURO"},
            {"log_level": "LOUD"},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            LedgerConfig(**overrides)

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ValueError, match="Unknown ledger config keys"):
            LedgerConfig.from_dict({"database_url": "sqlite://", "colour": "blue"})


class TestLoadConfig:

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text(
            "database_url: sqlite:///x.db\n"
            "default_currency: kes\n"
            "max_conflict_retries: 5\n"
            "require_active_contract: false\n"
        )
        config = load_config(path)
        assert config.database_url == "sqlite:///x.db"
        assert config.default_currency == "KES"
        assert config.max_conflict_retries == 5
        assert config.require_active_contract is False

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == LedgerConfig()

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(path)

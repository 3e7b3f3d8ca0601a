"""Tests for the YAML configuration entrypoint."""

from decimal import Decimal

import pytest
import yaml

from pos_config import CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH, get_active_config
from pos_config.loader import compute_checksum, load_yaml_file, parse_config
from pos_config.schema import PosConfig
from pos_kernel.exceptions import InvalidConfigError


def _write(tmp_path, text: str):
    path = tmp_path / "pos.yaml"
    path.write_text(text)
    return path


class TestDefaultConfig:
    def test_packaged_default_loads(self, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        config = get_active_config()
        assert config.money_places == 2
        assert config.log_level == "INFO"
        assert config.paid_hours_per_day == Decimal("12")
        assert config.strict_references is False
        assert [t.name for t in config.taxes] == ["Sales Tax"]
        assert config.taxes[0].rate == Decimal("0")

    def test_default_path_exists(self):
        assert DEFAULT_CONFIG_PATH.is_file()

    def test_trace_emitted(self, captured_logs, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "POS_CONFIG_TRACE"]
        (trace,) = traces
        assert trace["checksum"] == compute_checksum(load_yaml_file(DEFAULT_CONFIG_PATH))
        assert trace["config_path"] == str(DEFAULT_CONFIG_PATH)


class TestOverrides:
    def test_explicit_path(self, tmp_path):
        path = _write(tmp_path, "log_level: warning\nstrict_references: true\n")
        config = get_active_config(path)
        assert config.log_level == "WARNING"
        assert config.strict_references is True
        assert config.taxes == ()

    def test_env_var(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "paid_hours_per_day: 8\n")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))
        assert get_active_config().paid_hours_per_day == Decimal("8")

    def test_explicit_path_beats_env(self, tmp_path, monkeypatch):
        env_path = tmp_path / "env.yaml"
        env_path.write_text("money_places: 0\n")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(env_path))
        path = _write(tmp_path, "money_places: 3\n")
        assert get_active_config(path).money_places == 3

    def test_empty_file_is_all_defaults(self, tmp_path):
        assert get_active_config(_write(tmp_path, "")) == PosConfig()

    def test_float_tax_rate_keeps_digits(self, tmp_path):
        path = _write(tmp_path, "taxes:\n  - name: City\n    rate: 2.5\n")
        assert get_active_config(path).taxes[0].rate == Decimal("2.5")


class TestValidation:
    @pytest.mark.parametrize("data,key", [
        ({"currency_code": "PHP"}, "currency_code"),
        ({"money_places": -1}, "money_places"),
        ({"money_places": "2"}, "money_places"),
        ({"paid_hours_per_day": 0}, "paid_hours_per_day"),
        ({"paid_hours_per_day": 25}, "paid_hours_per_day"),
        ({"strict_references": "yes please"}, "strict_references"),
        ({"log_level": "LOUD"}, "log_level"),
        ({"taxes": {"name": "VAT"}}, "taxes"),
        ({"taxes": [{"name": "VAT", "rate": -1}]}, "taxes"),
        ({"taxes": [{"name": "VAT", "rate": 1}, {"name": "vat", "rate": 2}]}, "taxes"),
        ({"colour": "blue"}, "colour"),
    ])
    def test_rejected(self, data, key):
        with pytest.raises(InvalidConfigError) as exc_info:
            parse_config(data)
        assert exc_info.value.key == key
        assert exc_info.value.code == "INVALID_CONFIG"

    def test_non_mapping_document(self, tmp_path):
        with pytest.raises(InvalidConfigError):
            get_active_config(_write(tmp_path, "- a\n- b\n"))

    def test_malformed_yaml(self, tmp_path):
        with pytest.raises(yaml.YAMLError):
            get_active_config(_write(tmp_path, "taxes: [\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestChecksum:
    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_value_sensitive(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


def test_log_level_number():
    assert PosConfig(log_level="debug").log_level_number == 10

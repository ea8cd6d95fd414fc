"""
Tests for the configuration loader and money helpers.
"""
import pytest

from jobcost.config import JobCostConfig, get_config, reload_config, ConfigurationError
from jobcost.money import (
    cents_to_display,
    parse_money_to_cents,
    percent_of,
    round_cents,
)


class TestJobCostConfig:
    """Tests for JobCostConfig class."""

    def test_load_default_config(self):
        config = get_config()
        assert config.version == "1.0.0"
        assert config.default_margin_convention == "price"
        assert config.default_holdback_percent == 10.0

    def test_actual_cost_settings(self):
        config = get_config()
        assert config.breakdown_tolerance == 0.01
        assert config.breakdown_tolerance_cents == 1
        assert "approved" in config.counted_labor_statuses
        assert "draft" not in config.counted_labor_statuses
        assert config.excluded_payment_statuses == ["cancelled"]

    def test_health_status_thresholds(self):
        config = get_config()
        assert config.get_health_status(None) is None
        assert config.get_health_status(1.2) == "ahead_of_schedule"
        assert config.get_health_status(1.0) == "on_track"
        assert config.get_health_status(0.9) == "at_risk"
        assert config.get_health_status(0.5) == "critical"

    def test_dictionary_access(self):
        config = get_config()
        assert "evm" in config
        assert config["progress"]["default_holdback_percent"] == 10.0
        assert config.get("missing", "fallback") == "fallback"

    def test_reload_config_returns_new_instance(self):
        first = get_config()
        second = reload_config()
        assert first is not second
        assert second.version == first.version

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            JobCostConfig(tmp_path / "absent.yaml")

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("sov: [unclosed")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            JobCostConfig(path)

    def test_unknown_margin_convention_rejected(self, tmp_path):
        path = tmp_path / "conv.yaml"
        path.write_text("sov:\n  default_margin_convention: markup\n")
        with pytest.raises(ConfigurationError, match="default_margin_convention"):
            JobCostConfig(path)

    def test_defaults_when_sections_absent(self, tmp_path):
        path = tmp_path / "min.yaml"
        path.write_text("version: '2.0'\n")
        config = JobCostConfig(path)
        assert config.version == "2.0"
        assert config.cost_code_number_width == 3
        assert config.no_data_label == "No Data"


class TestMoney:
    """Tests for integer-cent conversion."""

    def test_parse_numbers(self):
        assert parse_money_to_cents(133333.33) == 13333333
        assert parse_money_to_cents(10) == 1000
        assert parse_money_to_cents(None) == 0
        assert parse_money_to_cents(float('nan')) == 0

    def test_parse_strings(self):
        assert parse_money_to_cents("$1,234.56") == 123456
        assert parse_money_to_cents("($1,000.00)") == -100000
        assert parse_money_to_cents("-25.5") == -2550
        assert parse_money_to_cents("") == 0

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_money_to_cents("twelve dollars")

    def test_round_half_up(self):
        assert round_cents(0.5) == 1
        assert round_cents(2.5) == 3
        assert round_cents(-0.4) == 0

    def test_percent_of(self):
        assert percent_of(13333333, 20) == 2666667
        assert percent_of(13333333, 45) == 6000000
        assert percent_of(-1000, 10) == -100

    def test_display(self):
        assert cents_to_display(13333333) == "$133,333.33"
        assert cents_to_display(-2500) == "-$25.00"

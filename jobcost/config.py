"""
Configuration loader for the Job Cost engine.

Loads settings from jobcost_config.yaml and provides typed access
to all configuration sections.
"""
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml


# Default config path relative to project root
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "jobcost_config.yaml"
CONFIG_ENV_VAR = "JOBCOST_CONFIG"

MARGIN_CONVENTIONS = ("price", "cost")


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""
    pass


class JobCostConfig:
    """
    Configuration manager for the Job Cost engine.

    Loads YAML configuration and provides typed access to all sections.
    Use get_config() to obtain the singleton instance.
    """

    def __init__(self, config_path: Optional[Path] = None):
        env_path = os.environ.get(CONFIG_ENV_VAR)
        self._config_path = config_path or (Path(env_path) if env_path else DEFAULT_CONFIG_PATH)
        self._config: dict = {}
        self._load()

    def _load(self) -> None:
        """Load configuration from YAML file."""
        if not self._config_path.exists():
            raise ConfigurationError(f"Config file not found: {self._config_path}")

        try:
            with open(self._config_path, 'r') as f:
                self._config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self._config, dict):
            raise ConfigurationError("Config file must contain a YAML mapping")

        if self.default_margin_convention not in MARGIN_CONVENTIONS:
            raise ConfigurationError(
                f"sov.default_margin_convention must be one of {MARGIN_CONVENTIONS}, "
                f"got {self.default_margin_convention!r}"
            )

    @property
    def version(self) -> str:
        """Configuration file version."""
        return self._config.get("version", "unknown")

    # =========================================================================
    # Database / Logging
    # =========================================================================

    @property
    def database_url(self) -> str:
        return self._config.get("database", {}).get("url", "sqlite:///./jobcost.db")

    @property
    def logging_level(self) -> str:
        return self._config.get("logging", {}).get("level", "INFO")

    @property
    def logging_format(self) -> str:
        return self._config.get("logging", {}).get(
            "format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    # =========================================================================
    # Schedule of Values
    # =========================================================================

    @property
    def sov(self) -> dict:
        return self._config.get("sov", {})

    @property
    def default_margin_convention(self) -> str:
        """Margin convention applied to jobs that do not set one."""
        return self.sov.get("default_margin_convention", "price")

    @property
    def cost_code_number_width(self) -> int:
        return int(self.sov.get("cost_code_number_width", 3))

    # =========================================================================
    # Progress Reports
    # =========================================================================

    @property
    def default_holdback_percent(self) -> float:
        """Retention withheld from each period's billing unless overridden."""
        return float(self._config.get("progress", {}).get("default_holdback_percent", 10.0))

    # =========================================================================
    # Actual Costs
    # =========================================================================

    @property
    def actual_costs(self) -> dict:
        return self._config.get("actual_costs", {})

    @property
    def breakdown_tolerance(self) -> float:
        """Allowed gap between invoice breakdown sum and total, in currency units."""
        return float(self.actual_costs.get("breakdown_tolerance", 0.01))

    @property
    def breakdown_tolerance_cents(self) -> int:
        return int(round(self.breakdown_tolerance * 100))

    @property
    def counted_labor_statuses(self) -> list[str]:
        return self.actual_costs.get("counted_labor_statuses", ["approved", "paid"])

    @property
    def excluded_payment_statuses(self) -> list[str]:
        return self.actual_costs.get("excluded_payment_statuses", ["cancelled"])

    # =========================================================================
    # Earned Value
    # =========================================================================

    @property
    def health_thresholds(self) -> dict:
        defaults = {"ahead_of_schedule": 1.10, "on_track": 0.95, "at_risk": 0.85}
        defaults.update(self._config.get("evm", {}).get("health_thresholds", {}))
        return defaults

    def get_health_status(self, ratio: Optional[float]) -> Optional[str]:
        """
        Classify an earned-vs-burned ratio (EV / AC).

        Returns:
            'ahead_of_schedule', 'on_track', 'at_risk', 'critical',
            or None when the ratio is undefined
        """
        if ratio is None:
            return None
        thresholds = self.health_thresholds
        if ratio >= thresholds["ahead_of_schedule"]:
            return "ahead_of_schedule"
        if ratio >= thresholds["on_track"]:
            return "on_track"
        if ratio >= thresholds["at_risk"]:
            return "at_risk"
        return "critical"

    @property
    def no_data_label(self) -> str:
        return self._config.get("evm", {}).get("no_data_label", "No Data")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a top-level config value by key."""
        return self._config.get(key, default)

    def __getitem__(self, key: str) -> Any:
        """Dictionary-style access to config."""
        return self._config[key]

    def __contains__(self, key: str) -> bool:
        """Check if key exists in config."""
        return key in self._config


@lru_cache(maxsize=1)
def get_config(config_path: Optional[str] = None) -> JobCostConfig:
    """
    Get the singleton configuration instance.

    Args:
        config_path: Optional path to config file. Only used on first call.

    Returns:
        JobCostConfig singleton instance
    """
    path = Path(config_path) if config_path else None
    return JobCostConfig(path)


def reload_config() -> JobCostConfig:
    """Reload configuration from disk and return new instance."""
    get_config.cache_clear()
    return get_config()

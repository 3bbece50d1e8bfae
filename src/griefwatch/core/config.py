"""
Configuration Management for Griefwatch

Provides configuration loading from multiple sources:
- Default values
- Configuration files (YAML, TOML, JSON)
- Environment variables

Configuration precedence (highest to lowest):
1. Environment variables (GRIEFWATCH_*)
2. Configuration file
3. Default values

The engine never reads configuration on its own; callers pass a
GriefwatchConfig (or one of its sections) into every analysis call.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Dataclasses
# ============================================================================


@dataclass
class DetectorWeights:
    """Base score of each griefing pattern before situational multipliers."""

    refuse_to_buy: float = 0.40
    perma_force_buy: float = 0.20
    troll_buys: float = 0.15
    weapon_donation: float = 0.20
    hoard_money: float = 0.15
    buy_then_suicide: float = 0.15


@dataclass
class EconomyConfig:
    """Thresholds for economy reconstruction, buy-state inference and griefing detectors."""

    # Money thresholds
    min_money_to_buy: int = 3000  # Enough for rifle + armor
    hoard_money_threshold: int = 4000
    min_force_buy_money: int = 2400  # Galil/FAMAS + armor
    min_rifle_buy_money: int = 3000  # AK/M4 + armor

    # Equipment value thresholds
    low_equip_value_ratio: float = 0.45  # Ratio to team median for "low equip"
    high_equip_value_threshold: int = 3500
    saved_rifle_value: int = 2000  # Carried-over value that counts as a saved rifle

    # Team buy state inference (equipment path)
    full_buy_equip_value: int = 4000
    force_buy_equip_value: int = 2000
    # Median equipment below this means weapon identities are not observed
    weapons_untracked_equip_value: int = 1500

    # Team buy state inference (money path)
    full_buy_money: int = 3000
    force_buy_money: int = 2000
    full_buy_money_ratio: float = 0.6
    force_buy_money_ratio: float = 0.5
    full_buy_median_money: int = 3500

    # Impact thresholds
    early_death_seconds: float = 18.0
    low_damage_threshold: float = 25.0

    # Pattern detection
    min_repeat_count: int = 2
    repeat_multiplier: float = 0.25
    flag_score_threshold: float = 0.5

    # AWP saving guard
    awp_price: int = 4750
    awp_save_money_threshold: int = 3000
    awp_save_confidence_factor: float = 0.5

    # Money model
    prefer_observed_money: bool = True  # Observed money supersedes the reconstruction
    rounds_per_half: int | None = None  # e.g. 12 for MR12; None = only round 1 is a pistol round

    weights: DetectorWeights = field(default_factory=DetectorWeights)


@dataclass
class AFKConfig:
    """Configuration for round-start AFK detection."""

    movement_epsilon: float = 3.0  # Map units
    afk_threshold_seconds: float = 5.0
    grace_period_seconds: float = 5.0


@dataclass
class DisconnectConfig:
    """Configuration for disconnect / reconnect tracking."""

    gap_threshold_seconds: float = 2.0  # Absence shorter than this is a frame gap
    freeze_time_seconds: float = 20.0  # Fallback when a round has no freeze end tick


@dataclass
class FriendlyFireConfig:
    """Configuration for team kill / team damage detection."""

    group_window_seconds: float = 5.0
    group_window_ticks: int = 64
    ignore_final_seconds: float = 10.0  # Server shutdown noise at the end of a replay
    max_health: int = 100
    full_health_grace_seconds: float = 5.0


@dataclass
class ExportConfig:
    """Configuration for report export."""

    default_format: str = "json"
    json_indent: int = 2
    csv_delimiter: str = ","


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: str | None = None
    file_max_bytes: int = 10 * 1024 * 1024  # 10MB
    file_backup_count: int = 5


@dataclass
class GriefwatchConfig:
    """Main configuration container."""

    economy: EconomyConfig = field(default_factory=EconomyConfig)
    afk: AFKConfig = field(default_factory=AFKConfig)
    disconnects: DisconnectConfig = field(default_factory=DisconnectConfig)
    friendly_fire: FriendlyFireConfig = field(default_factory=FriendlyFireConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Version of the config format
    config_version: str = "1.0"


# ============================================================================
# Configuration Loading
# ============================================================================


def get_default_config_paths() -> list[Path]:
    """Get the default paths to search for configuration files."""
    paths = []

    # Current directory
    paths.append(Path.cwd() / "griefwatch.yaml")
    paths.append(Path.cwd() / "griefwatch.toml")
    paths.append(Path.cwd() / "griefwatch.json")
    paths.append(Path.cwd() / ".griefwatch.yaml")

    # User home directory
    home = Path.home()
    paths.append(home / ".config" / "griefwatch" / "config.yaml")
    paths.append(home / ".config" / "griefwatch" / "config.toml")

    # XDG config directory
    xdg_config = os.environ.get("XDG_CONFIG_HOME", str(home / ".config"))
    paths.append(Path(xdg_config) / "griefwatch" / "config.yaml")

    return paths


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a YAML file."""
    import yaml

    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a TOML file."""
    import tomllib

    with open(path, "rb") as f:
        return tomllib.load(f)


def load_json_config(path: Path) -> dict[str, Any]:
    """Load configuration from a JSON file."""
    with open(path) as f:
        return json.load(f)


def load_config_file(path: Path) -> dict[str, Any]:
    """Load configuration from a file, detecting format from extension."""
    if not path.exists():
        return {}

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return load_yaml_config(path)
    elif suffix == ".toml":
        return load_toml_config(path)
    elif suffix == ".json":
        return load_json_config(path)
    else:
        logger.warning(f"Unknown config file format: {suffix}")
        return {}


def _convert_env_value(value: str) -> Any:
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}

    env_mappings = {
        "GRIEFWATCH_LOG_LEVEL": ("logging", "level"),
        "GRIEFWATCH_LOG_FILE": ("logging", "file"),
        "GRIEFWATCH_EXPORT_FORMAT": ("export", "default_format"),
        "GRIEFWATCH_AFK_THRESHOLD": ("afk", "afk_threshold_seconds"),
        "GRIEFWATCH_MOVEMENT_EPSILON": ("afk", "movement_epsilon"),
        "GRIEFWATCH_DISCONNECT_GAP": ("disconnects", "gap_threshold_seconds"),
        "GRIEFWATCH_FLAG_THRESHOLD": ("economy", "flag_score_threshold"),
        "GRIEFWATCH_MIN_REPEAT_COUNT": ("economy", "min_repeat_count"),
        "GRIEFWATCH_ROUNDS_PER_HALF": ("economy", "rounds_per_half"),
    }

    for env_var, (section, key) in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            config.setdefault(section, {})[key] = _convert_env_value(value)

    return config


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two configuration dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def _apply_section(target: Any, data: dict[str, Any], path: str) -> None:
    """Copy known keys onto a config dataclass, recursing into nested sections."""
    known = {f.name for f in fields(target)}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {path}.{key}")
            continue
        current = getattr(target, key)
        if is_dataclass(current) and isinstance(value, dict):
            _apply_section(current, value, f"{path}.{key}")
        else:
            setattr(target, key, value)


def dict_to_config(data: dict[str, Any]) -> GriefwatchConfig:
    """Convert a dictionary to GriefwatchConfig."""
    config = GriefwatchConfig()

    for section in ("economy", "afk", "disconnects", "friendly_fire", "export", "logging"):
        if isinstance(data.get(section), dict):
            _apply_section(getattr(config, section), data[section], section)

    if "config_version" in data:
        config.config_version = str(data["config_version"])

    return config


def load_config(config_file: Path | None = None, include_env: bool = True) -> GriefwatchConfig:
    """
    Load configuration from all sources.

    Args:
        config_file: Explicit path to a config file (optional)
        include_env: Whether to include environment variables

    Returns:
        Merged GriefwatchConfig
    """
    config_data: dict[str, Any] = {}

    if config_file:
        config_data = load_config_file(config_file)
        logger.info(f"Loaded config from: {config_file}")
    else:
        for path in get_default_config_paths():
            if path.exists():
                config_data = load_config_file(path)
                logger.info(f"Loaded config from: {path}")
                break

    if include_env:
        config_data = merge_configs(config_data, load_env_config())

    return dict_to_config(config_data)


# ============================================================================
# Configuration Saving
# ============================================================================


def config_to_dict(config: GriefwatchConfig) -> dict[str, Any]:
    """Convert GriefwatchConfig to a dictionary."""
    return asdict(config)


def save_config(config: GriefwatchConfig, path: Path) -> None:
    """
    Save configuration to a file.

    Args:
        config: Configuration to save
        path: Path to save to (format detected from extension)

    Raises:
        ValueError: If the extension is not .yaml/.yml or .json
    """
    data = config_to_dict(config)
    suffix = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        import yaml

        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    elif suffix == ".json":
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
    else:
        raise ValueError(f"Unknown config format: {suffix}")

    logger.info(f"Saved config to: {path}")


# ============================================================================
# Logging
# ============================================================================


def setup_logging(config: LoggingConfig) -> None:
    """Configure the root logger from a LoggingConfig."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(config.level).upper(), logging.INFO))

    formatter = logging.Formatter(config.format)
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)

    if config.file:
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.file_max_bytes,
            backupCount=config.file_backup_count,
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


# ============================================================================
# Configuration Templates
# ============================================================================

DEFAULT_CONFIG_YAML = """# Griefwatch Configuration

# Economy reconstruction and griefing detectors
economy:
  min_money_to_buy: 3000
  hoard_money_threshold: 4000
  low_equip_value_ratio: 0.45
  high_equip_value_threshold: 3500
  full_buy_equip_value: 4000
  force_buy_equip_value: 2000
  early_death_seconds: 18
  low_damage_threshold: 25
  min_repeat_count: 2
  repeat_multiplier: 0.25
  flag_score_threshold: 0.5
  awp_price: 4750
  awp_save_money_threshold: 3000
  prefer_observed_money: true
  # rounds_per_half: 12  # Treat round 13 as a pistol round (MR12)
  weights:
    refuse_to_buy: 0.40
    perma_force_buy: 0.20
    troll_buys: 0.15
    weapon_donation: 0.20
    hoard_money: 0.15
    buy_then_suicide: 0.15

# Round-start AFK detection
afk:
  movement_epsilon: 3.0
  afk_threshold_seconds: 5.0
  grace_period_seconds: 5.0

# Disconnect / reconnect tracking
disconnects:
  gap_threshold_seconds: 2.0
  freeze_time_seconds: 20.0

# Team kill / team damage detection
friendly_fire:
  group_window_seconds: 5.0
  ignore_final_seconds: 10.0

# Export settings
export:
  default_format: json
  json_indent: 2
  csv_delimiter: ","

# Logging settings
logging:
  level: INFO
  # file: /path/to/griefwatch.log
"""


def generate_default_config(path: Path) -> None:
    """Generate a default configuration file."""
    suffix = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        path.write_text(DEFAULT_CONFIG_YAML)
    else:
        save_config(GriefwatchConfig(), path)

    logger.info(f"Generated default config at: {path}")

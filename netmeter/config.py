"""Configuration management for netmeter."""

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from netmeter.models import IPService, ResponseFormat

logger = logging.getLogger(__name__)


# Default paths
CONFIG_DIR = Path.home() / ".config" / "netmeter"
CONFIG_FILE = CONFIG_DIR / "config.yaml"
DATA_DIR = Path.home() / ".local" / "share" / "netmeter"
STATS_FILE = DATA_DIR / "netmeter_stats.json"
LOG_FILE = DATA_DIR / "netmeter.log"

DEFAULT_IP_SERVICES = [
    IPService(name="ipify", url="https://api.ipify.org?format=json",
              format=ResponseFormat.JSON, json_key="ip"),
    IPService(name="icanhazip", url="https://icanhazip.com",
              format=ResponseFormat.TEXT),
    IPService(name="httpbin", url="https://httpbin.org/ip",
              format=ResponseFormat.JSON, json_key="origin"),
]


class PathsConfig(BaseModel):
    """Path configuration."""

    config_dir: Path = CONFIG_DIR
    data_dir: Path = DATA_DIR
    stats_file: Path = STATS_FILE
    log_file: Path = LOG_FILE


class NetmeterConfig(BaseModel):
    """Main netmeter configuration."""

    model_config = ConfigDict(populate_by_name=True)

    sample_interval_ms: int = Field(default=500, gt=0, alias="sampleIntervalMs")
    publish_interval_ms: int = Field(default=1000, gt=0, alias="publishIntervalMs")
    interface_cache_ttl: float = 5.0
    path_poll_sec: float = 2.0
    http_timeout: float = 5.0
    external_ip_services: list[IPService] = Field(
        default_factory=lambda: list(DEFAULT_IP_SERVICES)
    )
    log_level: str = "INFO"
    paths: PathsConfig = Field(default_factory=PathsConfig)

    @property
    def stats_path(self) -> Path:
        return self.paths.stats_file


def load_config(path: Optional[Path] = None) -> NetmeterConfig:
    """Load configuration from a YAML file.

    Missing or invalid files fall back to defaults.

    Args:
        path: Config file, defaults to ~/.config/netmeter/config.yaml

    Returns:
        NetmeterConfig object
    """
    path = path or CONFIG_FILE
    config_data = {}

    if path.exists():
        try:
            with open(path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
            logger.info(f"Config loaded from {path}")
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load YAML config: {e}")

    try:
        return NetmeterConfig(**config_data)
    except ValidationError as e:
        logger.warning(f"Invalid config in {path}, using defaults: {e}")
        return NetmeterConfig()


def save_config(config: NetmeterConfig, path: Optional[Path] = None) -> None:
    """Save configuration to a YAML file.

    Args:
        config: NetmeterConfig object to save
        path: Target file, defaults to ~/.config/netmeter/config.yaml
    """
    path = path or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)

    # Paths stay at their defaults
    data = config.model_dump(mode='json', exclude={'paths'})

    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f, default_flow_style=False, allow_unicode=True)

    logger.info(f"Config saved to {path}")


def set_config_value(key: str, value: str, path: Optional[Path] = None) -> NetmeterConfig:
    """Set a specific config value.

    Args:
        key: Config key
        value: New value (will be type-converted)
        path: Optional config file

    Returns:
        Updated config
    """
    config = load_config(path)
    data = config.model_dump(exclude={'paths'})

    # Type conversion
    if key in ('sample_interval_ms', 'publish_interval_ms'):
        data[key] = int(value)
    elif key in ('interface_cache_ttl', 'path_poll_sec', 'http_timeout'):
        data[key] = float(value)
    elif key == 'log_level':
        data[key] = value.upper()
    else:
        raise ValueError(f"Unknown or read-only config key: {key}")

    try:
        new_config = NetmeterConfig(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid value for {key}: {value}") from e
    save_config(new_config, path)

    return new_config


def setup_logging(config: Optional[NetmeterConfig] = None) -> logging.Logger:
    """Configure logging.

    Args:
        config: Optional config object

    Returns:
        Logger instance
    """
    if config is None:
        config = load_config()

    level = getattr(logging, config.log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    try:
        config.paths.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.paths.log_file, encoding='utf-8')
        handlers.append(file_handler)
    except OSError:
        pass  # Console only

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
        force=True
    )

    return logging.getLogger('netmeter')

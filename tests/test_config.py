import pytest
import yaml

from netmeter.config import NetmeterConfig, load_config, save_config, set_config_value
from netmeter.publisher import MetricsPublisher


def test_defaults_when_file_missing(tmp_path):
    config = load_config(tmp_path / "missing.yaml")

    assert config.sample_interval_ms == 500
    assert config.publish_interval_ms == 1000
    assert len(config.external_ip_services) == 3


def test_accepts_camel_case_interval_keys(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({'sampleIntervalMs': 250, 'publishIntervalMs': 2000}))

    config = load_config(path)

    assert config.sample_interval_ms == 250
    assert config.publish_interval_ms == 2000


def test_invalid_values_fall_back_to_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({'sample_interval_ms': 0}))

    assert load_config(path).sample_interval_ms == 500


def test_save_and_reload(tmp_path):
    path = tmp_path / "config.yaml"
    save_config(NetmeterConfig(sample_interval_ms=200, log_level="DEBUG"), path)

    config = load_config(path)

    assert config.sample_interval_ms == 200
    assert config.log_level == "DEBUG"


def test_set_config_value(tmp_path):
    path = tmp_path / "config.yaml"

    set_config_value('publish_interval_ms', '1500', path)
    set_config_value('log_level', 'warning', path)

    config = load_config(path)
    assert config.publish_interval_ms == 1500
    assert config.log_level == "WARNING"


def test_set_config_value_rejects_bad_input(tmp_path):
    path = tmp_path / "config.yaml"

    with pytest.raises(ValueError):
        set_config_value('sample_interval_ms', '-5', path)
    with pytest.raises(ValueError):
        set_config_value('paths', '/tmp', path)


def test_publisher_replaces_whole_snapshot():
    publisher = MetricsPublisher()
    first = publisher.snapshot

    second = publisher.publish(upload_speed=10.0)

    assert first.upload_speed == 0.0
    assert second.upload_speed == 10.0
    assert second.version == first.version + 1
    assert publisher.snapshot is second

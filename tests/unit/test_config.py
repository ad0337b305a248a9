"""Tests for configuration loading."""

import pytest
import yaml

from fipcontroller.config import CONFIG_PATH_ENV, Config, load_config
from fipcontroller.errors import ConfigurationError
from fipcontroller.models import AddressType


class TestConfig:
    """Tests for the Config model."""

    def test_defaults(self, make_config):
        config = make_config()

        assert config.hcloud_endpoint == "https://api.hetzner.cloud/v1"
        assert config.node_address_type is AddressType.EXTERNAL
        assert config.floating_ips == []
        assert config.lease_name == "fip"
        assert config.namespace == "default"
        assert (config.lease_duration, config.lease_renew_deadline, config.lease_retry_period) == (
            30,
            15,
            2,
        )
        assert config.reconcile_interval == 30
        assert config.log_level == "INFO"

    def test_backoff(self, make_config):
        backoff = make_config(backoff_duration=2, backoff_factor=1.5, backoff_steps=3).backoff

        assert (backoff.duration, backoff.factor, backoff.steps) == (2, 1.5, 3)

    def test_token_required(self):
        with pytest.raises(ValueError):
            Config(hcloud_api_token="")

    def test_address_type_case_insensitive(self, make_config):
        assert make_config(node_address_type="Internal").node_address_type is AddressType.INTERNAL

    def test_unknown_address_type(self, make_config):
        with pytest.raises(ValueError):
            make_config(node_address_type="hostname")

    @pytest.mark.parametrize(
        "level,expected",
        [("debug", "DEBUG"), ("warn", "WARNING"), ("trace", "DEBUG"), ("fatal", "CRITICAL")],
    )
    def test_log_level_aliases(self, make_config, level, expected):
        assert make_config(log_level=level).log_level == expected

    def test_unknown_log_level(self, make_config):
        with pytest.raises(ValueError):
            make_config(log_level="loud")

    @pytest.mark.parametrize(
        "timings",
        [
            {"lease_duration": 10, "lease_renew_deadline": 15},
            {"lease_renew_deadline": 2, "lease_retry_period": 2},
        ],
    )
    def test_lease_timings_validated(self, make_config, timings):
        with pytest.raises(ValueError):
            make_config(**timings)

    def test_redacted(self, make_config):
        data = make_config().redacted()

        assert data["hcloud_api_token"] == "[REDACTED]"
        assert data["pod_name"] == "test-pod"

    def test_token_not_in_repr(self, make_config):
        assert "test-token" not in repr(make_config())


class TestLoadConfig:
    """Tests for load_config."""

    def test_from_environment(self):
        config = load_config(
            environ={
                "HCLOUD_API_TOKEN": "env-token",
                "NODE_ADDRESS_TYPE": "internal",
                "FLOATING_IPS": "192.0.2.1, 192.0.2.2,",
                "LEASE_NAME": "fip-lock",
                "NAMESPACE": "kube-system",
                "POD_NAME": "fip-controller-abc",
                "BACKOFF_STEPS": "7",
                "METRICS_PORT": "9090",
            }
        )

        assert config.hcloud_api_token == "env-token"
        assert config.node_address_type is AddressType.INTERNAL
        assert config.floating_ips == ["192.0.2.1", "192.0.2.2"]
        assert config.lease_name == "fip-lock"
        assert config.namespace == "kube-system"
        assert config.pod_name == "fip-controller-abc"
        assert config.backoff_steps == 7
        assert config.metrics_port == 9090

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "hcloud_api_token": "file-token",
                    "floating_ips": ["192.0.2.1"],
                    "reconcile_interval": 10,
                }
            )
        )

        config = load_config(path, environ={})

        assert config.hcloud_api_token == "file-token"
        assert config.floating_ips == ["192.0.2.1"]
        assert config.reconcile_interval == 10

    def test_environment_overrides_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("hcloud_api_token: file-token\nnamespace: from-file\n")

        config = load_config(path, environ={"NAMESPACE": "from-env"})

        assert config.hcloud_api_token == "file-token"
        assert config.namespace == "from-env"

    def test_path_from_environment(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("hcloud_api_token: file-token\n")

        config = load_config(environ={CONFIG_PATH_ENV: str(path)})

        assert config.hcloud_api_token == "file-token"

    def test_empty_values_ignored(self):
        config = load_config(environ={"HCLOUD_API_TOKEN": "t", "NAMESPACE": ""})

        assert config.namespace == "default"

    def test_missing_token(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(environ={})

        fields = [e["field"] for e in exc_info.value.details["errors"]]
        assert "hcloud_api_token" in fields

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "missing.yaml", environ={})

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Could not read"):
            load_config(tmp_path, environ={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("hcloud_api_token: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_config(path, environ={})

    def test_yaml_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError):
            load_config(path, environ={})

    def test_invalid_number(self):
        with pytest.raises(ConfigurationError):
            load_config(environ={"HCLOUD_API_TOKEN": "t", "LEASE_DURATION": "soon"})

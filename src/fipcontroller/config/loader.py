"""Configuration loader for the floating IP controller.

Settings come from an optional YAML file and are overridden by environment
variables, then validated against Pydantic models.
"""

import os
import socket
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from fipcontroller.errors import ConfigurationError
from fipcontroller.logging import normalize_level
from fipcontroller.models import AddressType
from fipcontroller.retries import Backoff

CONFIG_PATH_ENV = "FIPCONTROLLER_CONFIG"

# environment variable -> config field
ENV_FIELDS: Dict[str, str] = {
    "HCLOUD_API_TOKEN": "hcloud_api_token",
    "HCLOUD_ENDPOINT": "hcloud_endpoint",
    "NODE_ADDRESS_TYPE": "node_address_type",
    "FLOATING_IPS": "floating_ips",
    "LEASE_NAME": "lease_name",
    "NAMESPACE": "namespace",
    "POD_NAME": "pod_name",
    "LEASE_DURATION": "lease_duration",
    "LEASE_RENEW_DEADLINE": "lease_renew_deadline",
    "LEASE_RETRY_PERIOD": "lease_retry_period",
    "BACKOFF_DURATION": "backoff_duration",
    "BACKOFF_FACTOR": "backoff_factor",
    "BACKOFF_STEPS": "backoff_steps",
    "RECONCILE_INTERVAL": "reconcile_interval",
    "LOG_LEVEL": "log_level",
    "LOG_FORMAT": "log_format",
    "METRICS_PORT": "metrics_port",
    "KUBERNETES_API_SERVER": "kubernetes_api_server",
    "KUBERNETES_TOKEN_FILE": "kubernetes_token_file",
    "KUBERNETES_CA_FILE": "kubernetes_ca_file",
}


class Config(BaseModel):
    """Complete controller configuration."""

    # Hetzner Cloud
    hcloud_api_token: str = Field(min_length=1, repr=False)
    hcloud_endpoint: str = Field(default="https://api.hetzner.cloud/v1")

    # Matching
    node_address_type: AddressType = Field(default=AddressType.EXTERNAL)
    floating_ips: List[str] = Field(default_factory=list)

    # Leader election
    lease_name: str = Field(default="fip", min_length=1)
    namespace: str = Field(default="default", min_length=1)
    pod_name: str = Field(default_factory=socket.gethostname, min_length=1)
    lease_duration: float = Field(default=30, gt=0, description="Lease TTL in seconds")
    lease_renew_deadline: float = Field(default=15, gt=0, description="Renew deadline in seconds")
    lease_retry_period: float = Field(default=2, gt=0, description="Acquire/renew poll period in seconds")

    # Assignment retries
    backoff_duration: float = Field(default=1.0, ge=0, description="Initial retry delay in seconds")
    backoff_factor: float = Field(default=1.2, ge=1.0)
    backoff_steps: int = Field(default=5, ge=1, le=100)

    reconcile_interval: float = Field(default=30, gt=0)

    # Observability
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", pattern=r"^(console|json)$")
    metrics_port: Optional[int] = Field(default=None, ge=1, le=65535)

    # Kubernetes API (defaults to the in-cluster service account)
    kubernetes_api_server: Optional[str] = Field(default=None)
    kubernetes_token_file: Optional[Path] = Field(default=None)
    kubernetes_ca_file: Optional[Path] = Field(default=None)

    @field_validator("node_address_type", mode="before")
    @classmethod
    def _lower_address_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("floating_ips", mode="before")
    @classmethod
    def _split_floating_ips(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = normalize_level(value)
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return level

    @model_validator(mode="after")
    def _check_timings(self) -> "Config":
        if self.lease_duration <= self.lease_renew_deadline:
            raise ValueError("lease_duration must be greater than lease_renew_deadline")
        if self.lease_renew_deadline <= self.lease_retry_period:
            raise ValueError("lease_renew_deadline must be greater than lease_retry_period")
        return self

    @property
    def backoff(self) -> Backoff:
        """Retry policy for assignment calls."""
        return Backoff(
            duration=self.backoff_duration,
            factor=self.backoff_factor,
            steps=self.backoff_steps,
        )

    def redacted(self) -> Dict[str, Any]:
        """Dump the configuration with secrets masked."""
        data = self.model_dump(mode="json")
        data["hcloud_api_token"] = "[REDACTED]"
        return data


def load_config(
    path: Optional[Path | str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """Load configuration from a YAML file and environment variables.

    Args:
        path: YAML file to read. Defaults to ``$FIPCONTROLLER_CONFIG`` when
            set; no file is read otherwise.
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        Validated Config object.

    Raises:
        ConfigurationError: If the file is missing or unreadable, or the
            resulting configuration is invalid.
    """
    environ = os.environ if environ is None else environ
    data: Dict[str, Any] = {}

    if path is None and environ.get(CONFIG_PATH_ENV):
        path = environ[CONFIG_PATH_ENV]

    if path is not None:
        config_file = Path(path)
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        try:
            with open(config_file) as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Could not read config file {config_file}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_file}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {config_file}")

    for env_name, field_name in ENV_FIELDS.items():
        value = environ.get(env_name)
        if value is not None and value != "":
            data[field_name] = value

    try:
        return Config(**data)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
            for err in e.errors()
        ]
        raise ConfigurationError("controller config invalid", details={"errors": errors}) from e

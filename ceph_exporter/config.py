# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Exporter configuration.

Settings are layered, lowest precedence first: environment variables (a local
``.env`` file included), the YAML config file, then command line flags.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ceph_exporter.errors import ConfigError
from ceph_exporter.exporter import COLLECTOR_MODES

logger = logging.getLogger(__name__)

DEFAULT_CLUSTER_LABEL = "ceph"
DEFAULT_CEPH_CONFIG = "/etc/ceph/ceph.conf"
DEFAULT_CEPH_USER = "admin"
DEFAULT_EXPORTER_CONFIG = "/etc/ceph/exporter.yml"
TLS_VALIDATION_MODES = ("strict", "normal", "none")


def check_mode(name: str, value: Any) -> int:
    """
    Validate a subsystem collection mode.

    Raises:
        ConfigError: If the value is not 0 (disabled), 1 (foreground) or 2 (background)
    """
    if isinstance(value, bool) or isinstance(value, float) and not value.is_integer():
        raise ConfigError(f"{name} must be one of {COLLECTOR_MODES}, got {value!r}")
    try:
        mode = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be one of {COLLECTOR_MODES}, got {value!r}") from e
    if mode not in COLLECTOR_MODES:
        raise ConfigError(f"{name} must be one of {COLLECTOR_MODES}, got {value!r}")
    return mode


def split_endpoints(value: Any) -> List[str]:
    """Accept a list of hosts or a comma separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return [host.strip() for host in value.split(",") if host.strip()]
    return [str(host).strip() for host in value if str(host).strip()]


class ClusterConfig(BaseModel):
    """One monitored cluster; unset fields inherit the top level settings."""
    cluster_label: Optional[str] = None
    user: Optional[str] = None
    config_file: Optional[str] = None
    api_endpoints: Optional[List[str]] = None
    api_user: Optional[str] = None
    api_key: Optional[str] = None

    @field_validator("api_endpoints", mode="before")
    @classmethod
    def _endpoints(cls, value):
        return None if value is None else split_endpoints(value)

    class Config:
        extra = 'ignore'


class FileConfig(BaseModel):
    # Cluster defaults
    cluster_label: Optional[str] = None
    config_file: Optional[str] = None
    user: Optional[str] = None

    # restful module
    api_endpoints: Optional[List[str]] = None
    api_user: Optional[str] = None
    api_key: Optional[str] = None
    tls_ca: Optional[str] = None
    tls_validation: Optional[str] = None

    # Optional subsystems
    rgw_mode: Optional[int] = None
    mds_mode: Optional[int] = None

    # Metrics endpoint
    telemetry_addr: Optional[str] = None
    telemetry_port: Optional[int] = None
    tls_cert_file: Optional[str] = None
    tls_key_file: Optional[str] = None

    # Advanced settings
    command_timeout: Optional[float] = None
    background_timeout: Optional[float] = None
    background_interval: Optional[float] = None
    threads: Optional[int] = None

    clusters: Optional[List[ClusterConfig]] = None

    @field_validator("api_endpoints", mode="before")
    @classmethod
    def _endpoints(cls, value):
        return None if value is None else split_endpoints(value)

    @field_validator("rgw_mode", "mds_mode", mode="before")
    @classmethod
    def _mode(cls, value, info):
        if value is None:
            return None
        try:
            return check_mode(info.field_name, value)
        except ConfigError as e:
            raise ValueError(str(e)) from e

    class Config:
        extra = 'ignore'


class EnvConfig(BaseSettings):
    # Cluster defaults
    CEPH_CLUSTER: str = Field(default=DEFAULT_CLUSTER_LABEL)
    CEPH_CONFIG: str = Field(default=DEFAULT_CEPH_CONFIG)
    CEPH_USER: str = Field(default=DEFAULT_CEPH_USER)

    # restful module; CEPH_API is a comma separated host list
    CEPH_API: Optional[str] = Field(default=None)
    CEPH_API_USER: Optional[str] = Field(default=None)
    CEPH_API_KEY: Optional[str] = Field(default=None)
    TLS_CA: Optional[str] = Field(default=None)
    TLS_VALIDATION: str = Field(default="strict")

    # Optional subsystems (0 disabled, 1 foreground, 2 background)
    RGW_MODE: int = Field(default=0)
    MDS_MODE: int = Field(default=0)

    # Metrics endpoint
    TELEMETRY_ADDR: str = Field(default="0.0.0.0")
    TELEMETRY_PORT: int = Field(default=9128)
    TLS_CERT_FILE: Optional[str] = Field(default=None)
    TLS_KEY_FILE: Optional[str] = Field(default=None)

    # Advanced settings (rarely changed)
    COMMAND_TIMEOUT: float = Field(default=60.0)
    BACKGROUND_TIMEOUT: float = Field(default=60.0)
    BACKGROUND_INTERVAL: float = Field(default=300.0)
    THREADS: int = Field(default=4)
    EXPORTER_CONFIG: str = Field(default=DEFAULT_EXPORTER_CONFIG)

    @field_validator("RGW_MODE", "MDS_MODE", mode="before")
    @classmethod
    def _mode(cls, value, info):
        try:
            return check_mode(info.field_name, value)
        except ConfigError as e:
            raise ValueError(str(e)) from e

    class Config:
        case_sensitive = False
        extra = 'ignore'  # Ignore unrelated variables


class Settings:
    """
    Effective exporter settings.

    Args:
        exporter_config: YAML file overriding the environment; None uses
            EXPORTER_CONFIG when that file exists
        from_env: Whether to read environment variables at all
    """

    def __init__(self, exporter_config: Optional[str] = None, from_env: bool = True):
        env = EnvConfig() if from_env else EnvConfig.model_construct()

        self.cluster_label: str = env.CEPH_CLUSTER
        self.config_file: str = env.CEPH_CONFIG
        self.user: str = env.CEPH_USER
        self.api_endpoints: List[str] = split_endpoints(env.CEPH_API)
        self.api_user: Optional[str] = env.CEPH_API_USER
        self.api_key: Optional[str] = env.CEPH_API_KEY
        self.tls_ca: Optional[str] = env.TLS_CA
        self.tls_validation: str = env.TLS_VALIDATION
        self.rgw_mode: int = env.RGW_MODE
        self.mds_mode: int = env.MDS_MODE
        self.telemetry_addr: str = env.TELEMETRY_ADDR
        self.telemetry_port: int = env.TELEMETRY_PORT
        self.tls_cert_file: Optional[str] = env.TLS_CERT_FILE
        self.tls_key_file: Optional[str] = env.TLS_KEY_FILE
        self.command_timeout: float = env.COMMAND_TIMEOUT
        self.background_timeout: float = env.BACKGROUND_TIMEOUT
        self.background_interval: float = env.BACKGROUND_INTERVAL
        self.threads: int = env.THREADS
        self.cluster_entries: List[ClusterConfig] = []

        if exporter_config is None and os.path.isfile(env.EXPORTER_CONFIG):
            exporter_config = env.EXPORTER_CONFIG
        self.exporter_config = exporter_config
        if exporter_config:
            self._load_file(exporter_config)

    def _load_file(self, config_file: str) -> None:
        """
        Overlay the values set in a YAML file.

        Raises:
            ConfigError: If the file is missing, is not YAML or holds invalid values
        """
        logger.debug(f"Loading configuration from file: {config_file}")
        try:
            with open(config_file, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"cannot read config file {config_file}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"config file {config_file} must hold a mapping")

        # ceph_exporter's exporter.yml lists clusters under "cluster"
        if isinstance(data.get('cluster'), list) and 'clusters' not in data:
            data['clusters'] = data.pop('cluster')

        try:
            file_config = FileConfig(**data)
        except ValueError as e:
            raise ConfigError(f"invalid config file {config_file}: {e}") from e

        for key, value in file_config.model_dump(exclude={'clusters'}).items():
            if value is not None:
                setattr(self, key, value)
        self.cluster_entries = list(file_config.clusters or [])
        logger.info(f"Loaded configuration from {config_file}")

    def apply_overrides(self, **overrides) -> None:
        """
        Apply command line values; None means "not given".

        Raises:
            ConfigError: If the resulting settings are invalid
        """
        for key, value in overrides.items():
            if value is None:
                continue
            if not hasattr(self, key):
                raise ConfigError(f"unknown setting {key!r}")
            if key == 'api_endpoints':
                value = split_endpoints(value)
            setattr(self, key, value)
        self.validate()

    def validate(self) -> None:
        self.rgw_mode = check_mode("rgw_mode", self.rgw_mode)
        self.mds_mode = check_mode("mds_mode", self.mds_mode)
        if self.tls_validation not in TLS_VALIDATION_MODES:
            raise ConfigError(f"tls_validation must be one of {TLS_VALIDATION_MODES}, got {self.tls_validation!r}")
        if bool(self.tls_cert_file) != bool(self.tls_key_file):
            raise ConfigError("tls_cert_file and tls_key_file must be set together")
        if self.threads < 1:
            raise ConfigError(f"threads must be at least 1, got {self.threads}")
        labels = [cluster.cluster_label for cluster in self.clusters]
        if len(set(labels)) != len(labels):
            raise ConfigError(f"duplicate cluster labels in {labels}")

    @property
    def clusters(self) -> List[ClusterConfig]:
        """Configured clusters, with unset fields taken from the top level settings."""
        defaults: Dict[str, Any] = {
            'cluster_label': self.cluster_label,
            'user': self.user,
            'config_file': self.config_file,
            'api_endpoints': self.api_endpoints,
            'api_user': self.api_user,
            'api_key': self.api_key,
        }
        entries = self.cluster_entries or [ClusterConfig()]
        resolved = []
        for entry in entries:
            values = dict(defaults)
            values.update({k: v for k, v in entry.model_dump().items() if v is not None})
            resolved.append(ClusterConfig(**values))
        return resolved

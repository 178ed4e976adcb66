"""Plugin configuration using pydantic-settings.

Configuration hierarchy:
- RbdConfig: Ceph pool and rbd CLI settings
- CommandConfig: External command timeouts and confirmation polling
- VolumeConfig: Mount layout, Create defaults, unmount policy
- LoggingConfig: Logging behavior
- ServerConfig: Plugin socket
- PluginConfig: Main config aggregating all sub-configs

RbdConfig keeps the RBD_CONF_ prefix used by existing plugin deployments.
Everything else uses RBD_PLUGIN_.
Example: RBD_CONF_POOL=volumes RBD_PLUGIN_VOLUME_MOUNT_ROOT=/srv/volumes
"""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class RbdConfig(BaseSettings):
    """Ceph RBD settings.

    map_options is read from a ';'-separated string, e.g.
    RBD_CONF_MAP_OPTIONS="--exclusive;--options;noshare"
    """

    model_config = SettingsConfigDict(env_prefix="RBD_CONF_")

    pool: str = Field(default="rbd", description="Pool holding the volume images")
    # Reserved: rbd currently picks these up from ceph.conf and the keyring
    cluster: str = Field(default="ceph", description="Ceph cluster name")
    keyring_user: str = Field(default="swarm", description="Ceph client user")

    order: str = Field(default="22", description="Object size order for rbd create")
    rbd_options: str = Field(
        default="layering,exclusive-lock,object-map,fast-diff,deep-flatten",
        description="Image features for rbd create (empty disables --image-feature)",
    )
    # Exclusive lock by default so two hosts cannot map the same image
    map_options: Annotated[list[str], NoDecode] = Field(
        default=["--exclusive"],
        description="Extra arguments for rbd map",
    )

    @field_validator("map_options", mode="before")
    @classmethod
    def _split_map_options(cls, value: object) -> object:
        if isinstance(value, str):
            return [opt for opt in value.split(";") if opt]
        return value


class CommandConfig(BaseSettings):
    """External command settings."""

    model_config = SettingsConfigDict(env_prefix="RBD_PLUGIN_COMMAND_")

    timeout: float = Field(default=30.0, description="rbd/mount/umount timeout (seconds)")
    mkfs_timeout: float = Field(default=120.0, description="mkfs timeout (seconds)")
    poll_attempts: int = Field(
        default=5,
        description="Checks after unmap/umount before giving up on confirmation",
    )
    poll_interval: float = Field(default=1.0, description="Seconds between checks")


class VolumeConfig(BaseSettings):
    """Volume layout and lifecycle settings."""

    model_config = SettingsConfigDict(env_prefix="RBD_PLUGIN_VOLUME_")

    mount_root: str = Field(default="/mnt/volumes", description="Mount points live under <root>/<pool>/")

    # Create defaults (overridden per volume via -o size=... etc.)
    default_size: str = Field(default="200M", description="Image size for rbd create")
    default_fstype: str = Field(default="xfs", description="Filesystem type for mkfs")
    default_mkfs_options: str = Field(default="", description="Extra mkfs arguments")

    # always: tear down on every Unmount that finds a mount
    # last_reference: keep the mount while other containers still use it
    unmount_policy: Literal["always", "last_reference"] = Field(default="always")

    state_file: str = Field(
        default="",
        description="JSON file for mount references (empty keeps them in memory only)",
    )


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Supports both text and JSON formats for different environments:
    - text: Human-readable for local development
    - json: Structured logging for production (log aggregation)
    """

    model_config = SettingsConfigDict(env_prefix="RBD_PLUGIN_LOGGING_")

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="text", description="Log format (text, json)")
    service_name: str = Field(default="rbd-volume-plugin", description="Service identifier in logs")
    slow_threshold_ms: float = Field(
        default=10000.0,
        description="Threshold for slow driver request warnings (milliseconds)",
    )


class ServerConfig(BaseSettings):
    """Plugin socket configuration."""

    model_config = SettingsConfigDict(env_prefix="RBD_PLUGIN_SERVER_")

    socket_path: str = Field(
        default="/run/docker/plugins/rbd.sock",
        description="Unix socket Docker discovers the plugin on",
    )


class PluginConfig(BaseSettings):
    """Main plugin configuration aggregating all sub-configs.

    Environment variable prefix: RBD_PLUGIN_
    Sub-configs use their own prefixes (RBD_CONF_, RBD_PLUGIN_COMMAND_, etc.)
    """

    model_config = SettingsConfigDict(
        env_prefix="RBD_PLUGIN_",
        env_nested_delimiter="__",
    )

    rbd: RbdConfig = Field(default_factory=RbdConfig)
    command: CommandConfig = Field(default_factory=CommandConfig)
    volume: VolumeConfig = Field(default_factory=VolumeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


@lru_cache
def get_plugin_config() -> PluginConfig:
    """Get cached plugin configuration singleton."""
    return PluginConfig()

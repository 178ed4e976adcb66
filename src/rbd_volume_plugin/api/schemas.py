"""Docker volume plugin protocol schemas.

Field names follow the protocol (https://docs.docker.com/engine/extend/plugins_volume/)
through aliases. Every VolumeDriver response carries "Err": an empty string
means success.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ProtocolModel(BaseModel):
    """Base for protocol payloads: aliased names, unknown fields ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =============================================================================
# Plugin
# =============================================================================


class ActivateResponse(ProtocolModel):
    implements: list[str] = Field(default=["VolumeDriver"], alias="Implements")


class Capabilities(ProtocolModel):
    scope: Literal["global", "local"] = Field(default="global", alias="Scope")


class CapabilitiesResponse(ProtocolModel):
    capabilities: Capabilities = Field(default_factory=Capabilities, alias="Capabilities")


# =============================================================================
# Requests
# =============================================================================


class CreateOptions(ProtocolModel):
    """Driver options from `docker volume create -o key=value`."""

    size: str | None = None
    fstype: str | None = None
    mkfs_options: str | None = None


class NameRequest(ProtocolModel):
    """Remove, Path and Get requests."""

    name: str = Field(alias="Name", min_length=1)


class CreateRequest(NameRequest):
    opts: CreateOptions | None = Field(default=None, alias="Opts")


class MountRequest(NameRequest):
    """Mount and Unmount requests. ID identifies the calling container."""

    id: str = Field(default="", alias="ID")


# =============================================================================
# Responses
# =============================================================================


class ErrResponse(ProtocolModel):
    err: str = Field(default="", alias="Err")


class MountResponse(ErrResponse):
    """Mount and Path responses.

    Docker reads "Mountpoint"; "MountPoint" is kept for older clients of
    this plugin.
    """

    mountpoint: str = Field(alias="Mountpoint")
    mount_point: str = Field(alias="MountPoint")

    @classmethod
    def for_path(cls, path: str) -> "MountResponse":
        return cls(mountpoint=path, mount_point=path)


class VolumeStatus(ProtocolModel):
    size: int


class Volume(ProtocolModel):
    name: str = Field(alias="Name")
    mountpoint: str | None = Field(default=None, alias="Mountpoint")
    status: VolumeStatus | None = Field(default=None, alias="Status")


class GetResponse(ErrResponse):
    volume: Volume | None = Field(default=None, alias="Volume")


class ListResponse(ErrResponse):
    volumes: list[Volume] = Field(default_factory=list, alias="Volumes")


# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str

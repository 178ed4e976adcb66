"""VolumeDriver endpoints.

Docker calls these over the plugin socket. Failures never change the HTTP
status: they are PluginErrors, which the handler in main.py turns into
{"Err": "<message>"}.
"""

import logging

from fastapi import APIRouter, Depends

from rbd_volume_plugin.api.dependencies import get_lifecycle, protocol_body
from rbd_volume_plugin.api.schemas import (
    CapabilitiesResponse,
    CreateOptions,
    CreateRequest,
    ErrResponse,
    GetResponse,
    ListResponse,
    MountRequest,
    MountResponse,
    NameRequest,
    Volume,
    VolumeStatus,
)
from rbd_volume_plugin.lifecycle import VolumeLifecycle

logger = logging.getLogger(__name__)

router = APIRouter(tags=["volume-driver"])


@router.post("/VolumeDriver.Create", response_model=ErrResponse)
async def create_volume(
    req: CreateRequest = Depends(protocol_body(CreateRequest)),
    lifecycle: VolumeLifecycle = Depends(get_lifecycle),
) -> ErrResponse:
    """Create the image and its filesystem. Opts: size, fstype, mkfs_options."""
    opts = req.opts or CreateOptions()
    logger.info("Creating rbd volume %s", req.name)
    result = await lifecycle.create(
        req.name,
        size=opts.size,
        fstype=opts.fstype,
        mkfs_options=opts.mkfs_options,
    )
    logger.debug("Create %s: %s", req.name, result.status.value)
    return ErrResponse()


@router.post("/VolumeDriver.Remove", response_model=ErrResponse)
async def remove_volume(
    req: NameRequest = Depends(protocol_body(NameRequest)),
    lifecycle: VolumeLifecycle = Depends(get_lifecycle),
) -> ErrResponse:
    """Unmount, unmap and trash the image (`docker volume rm`)."""
    logger.info("Removing rbd volume %s", req.name)
    await lifecycle.remove(req.name)
    return ErrResponse()


@router.post("/VolumeDriver.Mount", response_model=MountResponse)
async def mount_volume(
    req: MountRequest = Depends(protocol_body(MountRequest)),
    lifecycle: VolumeLifecycle = Depends(get_lifecycle),
) -> MountResponse:
    """Map and mount the volume for a starting container."""
    logger.info("Mounting rbd volume %s for %s", req.name, req.id)
    path = await lifecycle.mount(req.name, req.id)
    return MountResponse.for_path(path)


@router.post("/VolumeDriver.Unmount", response_model=ErrResponse)
async def unmount_volume(
    req: MountRequest = Depends(protocol_body(MountRequest)),
    lifecycle: VolumeLifecycle = Depends(get_lifecycle),
) -> ErrResponse:
    """Release the volume for a stopping container."""
    logger.info("Unmounting rbd volume %s for %s", req.name, req.id)
    result = await lifecycle.unmount(req.name, req.id)
    logger.info(
        "Unmount %s for %s: %s (%d references left)",
        req.name,
        req.id,
        result.status.value,
        result.references,
    )
    return ErrResponse()


@router.post("/VolumeDriver.Path", response_model=MountResponse)
async def volume_path(
    req: NameRequest = Depends(protocol_body(NameRequest)),
    lifecycle: VolumeLifecycle = Depends(get_lifecycle),
) -> MountResponse:
    path = await lifecycle.path(req.name)
    return MountResponse.for_path(path)


@router.post("/VolumeDriver.Get", response_model=GetResponse, response_model_exclude_none=True)
async def get_volume(
    req: NameRequest = Depends(protocol_body(NameRequest)),
    lifecycle: VolumeLifecycle = Depends(get_lifecycle),
) -> GetResponse:
    """Describe one volume. An unknown name answers with no Volume and no Err."""
    info = await lifecycle.get(req.name)
    if info is None:
        return GetResponse()
    return GetResponse(
        volume=Volume(
            name=info.name,
            mountpoint=info.mountpoint,
            status=VolumeStatus(size=info.size),
        )
    )


@router.post("/VolumeDriver.List", response_model=ListResponse, response_model_exclude_none=True)
async def list_volumes(
    lifecycle: VolumeLifecycle = Depends(get_lifecycle),
) -> ListResponse:
    names = await lifecycle.list()
    return ListResponse(volumes=[Volume(name=name) for name in names])


@router.post("/VolumeDriver.Capabilities", response_model=CapabilitiesResponse)
async def capabilities() -> CapabilitiesResponse:
    """Images live in the Ceph cluster, so volumes are visible from every host."""
    return CapabilitiesResponse()

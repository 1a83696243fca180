"""
Node information endpoints.

URL Pattern: /api/v1/info
"""
from fastapi import APIRouter, Depends

from mongoagent.api.dependencies import get_node_information
from mongoagent.models.info import NodeInfo, ShardsInfo, StoreInfo
from mongoagent.replicaset.status import NodeInformation

router = APIRouter()


@router.get("/node", response_model=NodeInfo)
async def node_info(info: NodeInformation = Depends(get_node_information)):
    """
    Identity and status of the managed node.

    The status is always reported, `unavailable` when MongoDB cannot be reached.
    """
    return await info.node_info()


@router.get("/shards", response_model=ShardsInfo)
async def shards_info(info: NodeInformation = Depends(get_node_information)):
    """The replica set as seen from this node, with replication lag."""
    return await info.shards()


@router.get("/store", response_model=StoreInfo)
async def store_info(info: NodeInformation = Depends(get_node_information)):
    """Cluster wide attributes: oplog size and feature compatibility version."""
    return await info.store_info()

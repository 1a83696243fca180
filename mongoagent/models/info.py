"""
Pydantic models for node information reported to the orchestrator.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from mongoagent.models.topology import NodeStatus


class StoreVersion(BaseModel):
    """Version of the MongoDB server the agent manages."""

    number: str
    checkout: Optional[str] = None
    extra: Optional[str] = None


class NodeInfo(BaseModel):
    """Identity and status of the managed node."""

    agent_version: str
    node_id: str
    node_status: NodeStatus
    node_status_message: Optional[str] = None
    store_id: str = "mongo.replica"
    store_version: Optional[StoreVersion] = None
    attributes: Dict[str, str] = Field(default_factory=dict)


class ShardInfo(BaseModel):
    """The replica set, seen from the local member."""

    shard_id: str
    role: str
    commit_offset_ms: int
    lag_ms: Optional[int] = None


class ShardsInfo(BaseModel):
    shards: List[ShardInfo] = Field(default_factory=list)


class StoreInfo(BaseModel):
    """Cluster wide attributes of the replica set."""

    cluster_id: str
    attributes: Dict[str, object] = Field(default_factory=dict)

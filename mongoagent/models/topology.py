"""
Pydantic models for replica set topology and reconciliation plans.

The configuration document is owned by MongoDB: the agent keeps the raw
document it read so that fields it does not model (protocolVersion,
settings, member priorities and tags, ...) survive a reconfiguration.
"""
import copy
from enum import Enum, IntEnum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class MemberState(IntEnum):
    """
    Possible states of a MongoDB replica set member.

    https://www.mongodb.com/docs/manual/reference/replica-states/
    """
    STARTUP = 0
    PRIMARY = 1
    SECONDARY = 2
    RECOVERING = 3
    STARTUP2 = 5
    UNKNOWN = 6
    ARBITER = 7
    DOWN = 8
    ROLLBACK = 9
    REMOVED = 10

    @classmethod
    def parse(cls, value: Any) -> "MemberState":
        """Parse a state code, mapping unrecognised codes to UNKNOWN."""
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.UNKNOWN


class NodeStatus(str, Enum):
    """Status of the node as reported to the orchestrator."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    JOINING_CLUSTER = "joining_cluster"
    NOT_IN_CLUSTER = "not_in_cluster"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class Member(BaseModel):
    """One node's entry in a replica set configuration."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int = Field(..., alias="_id", ge=0)
    host: str = Field(..., min_length=1)
    arbiter_only: bool = Field(default=False, alias="arbiterOnly")
    votes: int = Field(default=1, ge=0)

    @property
    def voting(self) -> bool:
        """Data bearing member with a vote."""
        return self.votes > 0 and not self.arbiter_only


class ReplicaSetConfig(BaseModel):
    """Replica set configuration document with typed views of its members."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    version: int = Field(..., ge=1)
    members: List[Member]
    document: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "ReplicaSetConfig":
        """
        Build a configuration from the document returned by replSetGetConfig.

        Raises:
            pydantic.ValidationError: If required attributes are missing or malformed
        """
        return cls(
            name=document.get("_id"),
            version=document.get("version"),
            members=document.get("members"),
            document=copy.deepcopy(dict(document)),
        )

    def to_document(self) -> Dict[str, Any]:
        """Return a copy of the full configuration document."""
        return copy.deepcopy(self.document)

    def member_ids(self) -> List[int]:
        return [member.id for member in self.members]

    def find_host(self, host: str) -> Optional[Member]:
        """Find the member registered with the given host, if any."""
        wanted = normalise_host(host)
        for member in self.members:
            if normalise_host(member.host) == wanted:
                return member
        return None

    def lowest_unused_id(self) -> int:
        """Smallest non-negative integer not assigned to a member."""
        used = set(self.member_ids())
        candidate = 0
        while candidate in used:
            candidate += 1
        return candidate


def normalise_host(host: str) -> str:
    """Host strings compare case-insensitively."""
    return host.strip().lower()


class CurrentTopology(BaseModel):
    """Live replica set configuration plus the local member's role."""

    kind: Literal["initialized"] = "initialized"
    config: ReplicaSetConfig
    local_state: MemberState = MemberState.UNKNOWN

    @property
    def is_primary(self) -> bool:
        return self.local_state == MemberState.PRIMARY


class NotInitialized(BaseModel):
    """The node has no replica set configuration yet."""

    kind: Literal["not_initialized"] = "not_initialized"
    replica_set_name: Optional[str] = None


Topology = Union[CurrentTopology, NotInitialized]


class NoOp(BaseModel):
    """The requested change is already satisfied."""

    kind: Literal["noop"] = "noop"
    reason: str


class Mutate(BaseModel):
    """The next configuration to submit to the database."""

    kind: Literal["mutate"] = "mutate"
    config: ReplicaSetConfig
    initiate: bool = False
    observed_version: Optional[int] = None


class Invalid(BaseModel):
    """The request cannot be satisfied from the current state."""

    kind: Literal["invalid"] = "invalid"
    reason: str


Plan = Union[NoOp, Mutate, Invalid]


class Applied(BaseModel):
    """The database accepted the configuration."""

    kind: Literal["applied"] = "applied"
    version: int


class Conflict(BaseModel):
    """The database observed a concurrent configuration change."""

    kind: Literal["conflict"] = "conflict"
    reason: str
    code: Optional[int] = None


class Rejected(BaseModel):
    """The database refused the configuration."""

    kind: Literal["rejected"] = "rejected"
    reason: str
    code: Optional[int] = None


ApplyOutcome = Union[Applied, Conflict, Rejected]

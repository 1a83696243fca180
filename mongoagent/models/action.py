"""
Action models for intake and status reporting.

Records are held in memory only to answer status queries: whether an action
has been done is always decided from the live replica set topology.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, Field, field_validator

from mongoagent.core.state_machine import ActionState


class ActionKind(str, Enum):
    """Cluster topology actions understood by the agent."""
    CLUSTER_INIT = "cluster.init"
    CLUSTER_ADD = "cluster.add"


class ActionRequest(BaseModel):
    """Action submitted by the orchestrator."""

    kind: str = Field(..., min_length=1, description="Action kind, e.g. cluster.add")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Kind specific arguments")
    correlation_id: str = Field(..., min_length=1, description="Caller supplied identifier")

    @field_validator("parameters", mode="before")
    @classmethod
    def default_parameters(cls, v: Any) -> Any:
        """Actions without arguments may send null parameters."""
        return {} if v is None else v


class ActionErrorInfo(BaseModel):
    """Machine-readable kind plus human-readable message."""

    kind: str
    message: str


class ActionRecord(BaseModel):
    """Tracks one submitted action through its lifecycle."""

    # Identity
    id: str = Field(default_factory=lambda: f"act-{uuid4().hex[:12]}")
    kind: ActionKind
    parameters: Dict[str, Any] = Field(default_factory=dict)
    correlation_id: str

    # Status tracking
    state: ActionState = ActionState.NEW
    error: Optional[ActionErrorInfo] = None
    attempts: int = 0
    cancel_requested: bool = False

    # Timing
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def get_duration_seconds(self) -> Optional[float]:
        """Get action duration in seconds."""
        if not self.started_at:
            return None
        end = self.finished_at or datetime.utcnow()
        return (end - self.started_at).total_seconds()

    def is_terminal(self) -> bool:
        """Check if action is in terminal state."""
        return self.state in (ActionState.DONE, ActionState.FAILED)


class InitArgs(BaseModel):
    """Arguments to customise replica set initialisation."""

    settings: Optional[Dict[str, Any]] = Field(
        default=None, description="Settings passed to replSetInitiate"
    )


class AddArgs(BaseModel):
    """Arguments to add a new member to the replica set."""

    id: Optional[int] = Field(default=None, ge=0, description="Member _id to assign")
    host: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("host", "node"),
        description="Value of the new member host attribute",
    )

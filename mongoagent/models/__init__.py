from mongoagent.models.action import ActionKind, ActionRecord, ActionRequest
from mongoagent.models.topology import MemberState, NodeStatus

__all__ = [
    "ActionKind",
    "ActionRecord",
    "ActionRequest",
    "MemberState",
    "NodeStatus",
]

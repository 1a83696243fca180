"""
Topology action API endpoints.

Submitting an action returns as soon as it is running; callers poll the
action record until it reaches Done or Failed.

URL Pattern: /api/v1/actions
"""
from typing import List

from fastapi import APIRouter, Depends, Path, status

from mongoagent.api.dependencies import get_action_manager
from mongoagent.config.logging import get_logger
from mongoagent.core.action_manager import ActionManager
from mongoagent.core.exceptions import ActionError
from mongoagent.exceptions import AgentException
from mongoagent.models.action import ActionRecord, ActionRequest

router = APIRouter()
logger = get_logger(__name__)


@router.post("/", response_model=ActionRecord, status_code=status.HTTP_202_ACCEPTED)
async def submit_action(
    request: ActionRequest,
    manager: ActionManager = Depends(get_action_manager),
):
    """
    Submit a topology action.

    **Kinds (replica-set mode):**
    - `cluster.init`: initialise a one-member replica set of this node.
      Optional `settings` are merged over the configured defaults.
    - `cluster.add`: add `host` as a voting member, optionally with a given `id`.

    Only one action runs at a time: a submission while another action is
    running is rejected with 409 and the running action is unaffected.
    """
    logger.info(
        "action_submission_requested",
        kind=request.kind,
        correlation_id=request.correlation_id,
    )

    try:
        return await manager.submit(request)
    except ActionError as e:
        raise AgentException.from_action_error(e) from e


@router.get("/", response_model=List[ActionRecord])
async def list_actions(manager: ActionManager = Depends(get_action_manager)):
    """List recent actions, newest first."""
    return manager.list_actions()


@router.get("/{action_id}", response_model=ActionRecord)
async def get_action(
    action_id: str = Path(..., description="Action ID"),
    manager: ActionManager = Depends(get_action_manager),
):
    """
    Get the status of an action.

    Terminal states are `Done` and `Failed`; a failed action carries an
    error with a machine-readable `kind` and a human-readable `message`.
    """
    return manager.get(action_id)


@router.post("/{action_id}/cancel", response_model=ActionRecord)
async def cancel_action(
    action_id: str = Path(..., description="Action ID"),
    manager: ActionManager = Depends(get_action_manager),
):
    """
    Cancel a running action.

    Cancellation takes effect at the next retry boundary. A configuration
    already submitted to the database is not rolled back.
    """
    return manager.cancel(action_id)

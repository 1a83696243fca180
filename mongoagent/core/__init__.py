"""
Core functionality for topology action management.

This package provides the foundation for safe topology changes:
- State machine for the action lifecycle
- Single-flight guard so one configuration change is in flight at a time
- Action orchestration and tracking
- Error taxonomy shared by readers, planners and appliers
"""

# Users should import directly from submodules:
# from mongoagent.core.state_machine import ActionState, ActionStateMachine
# from mongoagent.core.single_flight import SingleFlight
# from mongoagent.core.action_manager import ActionManager

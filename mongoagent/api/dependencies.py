"""
Request dependencies resolving the agent components created at startup.
"""
from fastapi import Request

from mongoagent.core.action_manager import ActionManager
from mongoagent.replicaset.status import NodeInformation
from mongoagent.services.mongo_driver import MongoDriver


def get_action_manager(request: Request) -> ActionManager:
    return request.app.state.manager


def get_driver(request: Request) -> MongoDriver:
    return request.app.state.driver


def get_node_information(request: Request) -> NodeInformation:
    return request.app.state.node_information

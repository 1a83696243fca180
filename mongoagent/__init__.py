"""
Node-local agent reconciling MongoDB replica set topology.
"""

__version__ = "0.1.0"

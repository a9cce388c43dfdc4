"""
Replication control for replica-set secondaries.
"""

from .controller import ReplicationController, ReplicationGuard

__all__ = ["ReplicationController", "ReplicationGuard"]

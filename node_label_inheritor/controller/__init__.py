"""Control-loop runtime: work queue, watch triggers, workers and leader election.

Submodules
----------
queue      -- WorkQueue: dedup, single flight per key, exponential backoff.
watcher    -- PodWatcher / NodeWatcher: list+watch triggers with periodic resync.
controller -- LabelInheritanceController: worker pool around the reconciler.
leader     -- LeaderElector: coordination.k8s.io Lease election.
"""

from node_label_inheritor.controller.controller import LabelInheritanceController
from node_label_inheritor.controller.leader import LeaderElector
from node_label_inheritor.controller.queue import QueueShutDownError, WorkQueue
from node_label_inheritor.controller.watcher import NodeWatcher, PodWatcher

__all__ = [
    "LabelInheritanceController",
    "LeaderElector",
    "NodeWatcher",
    "PodWatcher",
    "QueueShutDownError",
    "WorkQueue",
]

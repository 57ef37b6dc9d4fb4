"""
Snapshot selection for clone sources.
"""
from dbaas_harness.config.logging import get_logger
from dbaas_harness.exceptions import NotFoundError
from dbaas_harness.models.ndb import SnapshotCollection

logger = get_logger(__name__)

# Group positions in a cluster's snapshot list, in order of preference
DAILY_GROUP = 0
CONTINUOUS_GROUP = 1
MANUAL_GROUP = 2
SNAPSHOT_PRECEDENCE = (DAILY_GROUP, CONTINUOUS_GROUP, MANUAL_GROUP)


def select_snapshot_id(collection: SnapshotCollection, cluster_id: str) -> str:
    """
    Pick the snapshot a clone should be taken from.

    Groups are scanned daily, then continuous, then manual (then any further
    groups in position order) and the first snapshot of the first non-empty
    group wins.

    Args:
        collection: Snapshots of a time machine grouped by cluster
        cluster_id: Cluster the clone source lives on

    Returns:
        The selected snapshot id

    Raises:
        NotFoundError: If the cluster has no groups or no snapshot at all
    """
    groups = collection.snapshots_per_nx_cluster.get(cluster_id)
    if not groups:
        logger.error("select_snapshot_id() failed! no snapshot groups", cluster_id=cluster_id)
        raise NotFoundError("snapshot groups for cluster", cluster_id, operation="select_snapshot_id")

    order = [i for i in SNAPSHOT_PRECEDENCE if i < len(groups)]
    order += [i for i in range(len(groups)) if i not in SNAPSHOT_PRECEDENCE]

    for index in order:
        for snapshot in groups[index].snapshots:
            if snapshot.id:
                logger.info(
                    "snapshot_selected",
                    cluster_id=cluster_id,
                    snapshot_id=snapshot.id,
                    group_type=groups[index].type,
                )
                return snapshot.id

    logger.error("select_snapshot_id() failed! all snapshot groups are empty", cluster_id=cluster_id)
    raise NotFoundError("snapshot for cluster", cluster_id, operation="select_snapshot_id")

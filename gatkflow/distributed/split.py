"""Split files by contig for distributed processing and gather the results.

A BAM file is split into one piece per contig, each piece is processed
independently by a transform running on the parallel runner, and the results
are collected back into a dictionary of contig to artifact. Contigs are
processed in no particular order and every call waits for all contigs to
finish; any failure aborts the whole call.
"""
import collections

from gatkflow import utils
from gatkflow.distributed.multi import queue_aware_logging
from gatkflow.log import logger
from gatkflow.pipeline import lifecycle

def scatter_gather(in_artifact, transform, run_parallel, config, drop=None, extra=None):
    """Split an alignment by contig, apply transform to each piece and gather results.

    drop -- contig keys to leave out before processing, like `unmapped`.
    extra -- additional arguments passed to transform after the shard and config.
    """
    shards = lifecycle.split_by_contig(in_artifact, config)
    for contig in (drop or []):
        if shards.pop(contig, None) is not None:
            logger.debug("Dropping %s reads from %s" % (contig, in_artifact.basename))
    shards = collections.OrderedDict((c, lifecycle.relocate(x, config.out_dir))
                                     for c, x in shards.items())
    shards = gather(shards, index_shard, run_parallel, config)
    return gather(shards, transform, run_parallel, config, extra)

def gather(shards, transform, run_parallel, config, extra=None):
    """Apply transform to already split pieces in parallel, collecting contig to result.
    """
    items = [[transform, contig, shard, config] + list(extra or []) for contig, shard in shards.items()]
    results = dict(run_parallel(apply_transform, items))
    missing = set(shards) - set(results)
    assert not missing, "Did not get results for contigs: %s" % sorted(missing)
    return collections.OrderedDict((c, results[c]) for c in shards)

@utils.map_wrap
@queue_aware_logging
def apply_transform(transform, contig, shard, config, *extra):
    return [(contig, transform(shard, config, *extra))]

def index_shard(shard, config):
    return lifecycle.index(shard, config)

"""Perform realignment of BAM files around indels using the GATK toolkit.
"""
import os

from gatkflow import broad, utils
from gatkflow.broad import gatkrun
from gatkflow.distributed import split
from gatkflow.distributed.transaction import file_transaction
from gatkflow.log import logger
from gatkflow.pipeline import artifact, config_utils, lifecycle

def create_targets(in_artifact, config):
    """Generate a list of interval regions for realignment around indels.
    """
    logger.info("Creating indel realignment targets for %s" % in_artifact.basename)
    lifecycle.index(in_artifact, config)
    out_file = "%s-realign.intervals" % os.path.splitext(in_artifact.path)[0]
    # interval files can be empty after running on small inputs, so only check age
    if not (os.path.exists(out_file) and
            os.path.getmtime(out_file) >= os.path.getmtime(in_artifact.path)):
        with file_transaction(config, out_file) as tx_out_file:
            call = gatkrun.realigner_target_creator(
                in_artifact.path, config.ref_file, tx_out_file,
                config_utils.get_extra_args(config, "RealignerTargetCreator"),
                config.cores_per_node)
            broad.invoke(call, config, stage="indel-target-creation")
    targets = artifact.Artifact(out_file, artifact.INDEL_TARGET)
    return lifecycle.relocate(targets, config.out_dir)

def realign_indels(in_artifact, targets, config, run_parallel):
    """Realign reads around indels, split by contig.

    Reads without a contig cannot be realigned and are left out of the
    per-contig outputs.
    """
    logger.info("Realigning indels in %s by contig" % in_artifact.basename)
    return split.scatter_gather(in_artifact, realign_contig, run_parallel, config,
                                drop=[artifact.UNMAPPED], extra=[targets])

def realign_contig(shard, config, targets):
    out_file = "%s-realign.bam" % os.path.splitext(shard.path)[0]
    if not utils.file_uptodate(out_file, shard.path):
        with file_transaction(config, out_file) as tx_out_file:
            call = gatkrun.indel_realigner(shard.path, config.ref_file, targets.path, tx_out_file,
                                           config_utils.get_extra_args(config, "IndelRealigner"))
            broad.invoke(call, config, stage="indel-realignment", region=shard.contig)
    return shard.derive(out_file, artifact.REALIGNED_ALIGNMENT)

"""Perform quality score recalibration with the GATK toolkit.

Corrects read quality scores post-alignment to provide improved estimates of
error rates based on alignments to the reference genome. The covariates table
is built once from all realigned reads; applying it runs per contig.
"""
import os

from gatkflow import broad, utils
from gatkflow.broad import gatkrun
from gatkflow.distributed import split
from gatkflow.distributed.transaction import file_transaction
from gatkflow.log import logger
from gatkflow.pipeline import artifact, config_utils, lifecycle

MERGED_NAME = "merged-realigned.bam"

def create_recal_table(realigned, config):
    """Merge realigned contigs and calculate the recalibration table.

    Returns the merged alignment together with the table.
    """
    logger.info("Creating targets on which to perform BQSR")
    merged = lifecycle.merge(list(realigned.values()), MERGED_NAME, config)
    lifecycle.index(merged, config)
    out_file = "%s-recal_data.table" % os.path.splitext(merged.path)[0]
    if not utils.file_uptodate(out_file, merged.path):
        with file_transaction(config, out_file) as tx_out_file:
            call = gatkrun.base_recalibrator(merged.path, config.ref_file, config.known_sites,
                                             tx_out_file,
                                             config_utils.get_extra_args(config, "BaseRecalibrator"),
                                             config.cores_per_node)
            broad.invoke(call, config, stage="BQSR-target-creation")
    table = artifact.Artifact(out_file, artifact.RECAL_TABLE)
    return merged, lifecycle.relocate(table, config.out_dir)

def apply_recal(merged, table, config, run_parallel):
    """Apply the recalibration table per contig, including reads without a contig.
    """
    logger.info("Performing BQSR")
    return split.scatter_gather(merged, recalibrate_contig, run_parallel, config, extra=[table])

def recalibrate_contig(shard, config, table):
    out_file = "%s-recal.bam" % os.path.splitext(shard.path)[0]
    if not utils.file_uptodate(out_file, shard.path):
        with file_transaction(config, out_file) as tx_out_file:
            call = gatkrun.print_reads(shard.path, config.ref_file, table.path, tx_out_file,
                                       config_utils.get_extra_args(config, "PrintReads"),
                                       config.cores_per_node)
            broad.invoke(call, config, stage="BQSR-apply", region=shard.contig)
    return shard.derive(out_file, artifact.RECALIBRATED_ALIGNMENT)

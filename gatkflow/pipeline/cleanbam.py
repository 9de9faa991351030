"""Clean input alignments: coordinate sort, merge and mark duplicates.
"""
import os

from gatkflow import bam, broad, utils
from gatkflow.broad import picardrun
from gatkflow.distributed.multi import queue_aware_logging
from gatkflow.distributed.transaction import file_transaction, tx_tmpdir
from gatkflow.log import logger
from gatkflow.pipeline import artifact, config_utils, lifecycle

def sort_alignments(raw_artifacts, config, run_parallel):
    """Convert raw SAM/BAM inputs into coordinate sorted BAM files in the output directory.
    """
    logger.info("Converting %s input files to sorted BAM files" % len(raw_artifacts))
    sorted_artifacts = run_parallel(sort_alignment, [[x, config] for x in raw_artifacts])
    return [lifecycle.relocate(x, config.out_dir) for x in sorted_artifacts]

@utils.map_wrap
@queue_aware_logging
def sort_alignment(raw_artifact, config):
    work_dir = utils.safe_makedir(os.path.join(config.work_dir, "align"))
    out_file = os.path.join(work_dir, "%s-sorted.bam" %
                            os.path.splitext(raw_artifact.basename)[0])
    bam.sort(raw_artifact.path, out_file, config)
    return [raw_artifact.derive(out_file, artifact.SORTED_ALIGNMENT)]

def mark_duplicates(in_artifact, config):
    """Mark duplicate reads with Picard, keeping the metrics next to the output.
    """
    logger.info("Marking duplicates in %s" % in_artifact.basename)
    base = os.path.splitext(in_artifact.path)[0]
    out_file = "%s-dedup.bam" % base
    metrics_file = "%s-dedup-metrics.txt" % base
    if not utils.file_uptodate(out_file, in_artifact.path):
        with tx_tmpdir(config) as tmp_dir:
            with file_transaction(config, out_file, metrics_file) as (tx_out_file, tx_metrics_file):
                call = picardrun.mark_duplicates(in_artifact.path, tx_out_file, tx_metrics_file, tmp_dir,
                                                 config_utils.get_extra_args(config, "MarkDuplicates"))
                broad.invoke(call, config, stage="dedup")
    utils.move_plus(metrics_file, config.out_dir)
    deduped = in_artifact.derive(out_file, artifact.DEDUPED_ALIGNMENT)
    return lifecycle.relocate(deduped, config.out_dir)

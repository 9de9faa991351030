"""Perform GATK variant quality score recalibration (VQSR), SNPs then indels.

Each variant class is recalibrated only when its VariantRecalibrator has
configured arguments, since training resources are specific to a site and
genome build. With neither configured, calls pass through unchanged.
"""

from gatkflow import broad, utils
from gatkflow.broad import gatkrun
from gatkflow.distributed.transaction import file_transaction
from gatkflow.log import logger
from gatkflow.pipeline import artifact, config_utils, lifecycle

MODES = ("SNP", "INDEL")

def recalibrate_variants(in_artifact, config):
    """Run VQSR for each configured variant class on the joint called variants.
    """
    cur = in_artifact
    for mode in MODES:
        if config_utils.get_extra_args(config, "%sVariantRecalibrator" % mode) is not None:
            target = create_vqsr_target(cur, mode, config)
            cur = apply_vqsr(cur, target, mode, config)
        else:
            logger.info("No %sVariantRecalibrator arguments configured, skipping %s VQSR" %
                        (mode, mode))
    return cur

def create_vqsr_target(in_artifact, mode, config):
    """Build the recalibration model for one variant class, keeping recal and tranches files.
    """
    logger.info("Creating %s VQSR targets for %s" % (mode, in_artifact.basename))
    base = utils.splitext_plus(in_artifact.path)[0]
    recal_file = "%s-%s.recal" % (base, mode)
    tranches_file = "%s-%s.tranches" % (base, mode)
    if not utils.file_uptodate(recal_file, in_artifact.path):
        with file_transaction(config, recal_file, tranches_file) as (tx_recal, tx_tranches):
            call = gatkrun.variant_recalibrator(
                in_artifact.path, config.ref_file, tx_recal, tx_tranches, mode,
                config_utils.get_extra_args(config, "%sVariantRecalibrator" % mode),
                config.cores_per_node)
            broad.invoke(call, config, stage="VQSR-target-creation")
    utils.move_plus(tranches_file, config.out_dir)
    target = artifact.Artifact(recal_file, artifact.VQSR_TARGET_PAIR)
    return lifecycle.relocate(target, config.out_dir)

def apply_vqsr(in_artifact, target, mode, config):
    """Apply a recalibration model to one variant class.
    """
    logger.info("Applying %s VQSR to %s" % (mode, in_artifact.basename))
    out_file = utils.append_stem(in_artifact.path, "-%srecal" % mode)
    if not utils.file_uptodate(out_file, in_artifact.path):
        with file_transaction(config, out_file) as tx_out_file:
            call = gatkrun.apply_recalibration(
                in_artifact.path, config.ref_file, target.path, artifact.tranches_file(target),
                mode, tx_out_file, config_utils.get_extra_args(config, "ApplyRecalibration"),
                config.cores_per_node)
            broad.invoke(call, config, stage="VQSR-apply")
    out = artifact.Artifact(out_file, artifact.RECALIBRATED_VCF)
    return lifecycle.index(lifecycle.relocate(out, config.out_dir), config)

"""Perform joint genotyping using GATK GenotypeGVCFs with gVCF inputs.

Per-contig gVCFs are first merged into a single file, then genotyped together
into the final multi-sample call set in the output directory.
"""
import os

from gatkflow import broad, utils
from gatkflow.broad import gatkrun
from gatkflow.distributed.transaction import file_transaction
from gatkflow.log import logger
from gatkflow.pipeline import artifact, config_utils, lifecycle

MERGED_GVCF_NAME = "merged.g.vcf.gz"
OUT_NAME = "merged.vcf.gz"

def joint_genotype(gvcfs, config):
    """Merge contig gVCFs and run joint genotyping, returning the merged call set.
    """
    logger.info("Joint genotyping %s gVCF files" % len(gvcfs))
    merged = lifecycle.merge(list(gvcfs.values()), MERGED_GVCF_NAME, config)
    lifecycle.index(merged, config)
    out_file = os.path.join(utils.safe_makedir(config.out_dir), OUT_NAME)
    if not utils.file_uptodate(out_file, merged.path):
        with file_transaction(config, out_file) as tx_out_file:
            call = gatkrun.genotype_gvcfs([merged.path], config.ref_file, tx_out_file,
                                          config_utils.get_extra_args(config, "GenotypeGVCFs"),
                                          config.cores_per_node)
            broad.invoke(call, config, stage="joint-genotyping")
    return lifecycle.index(artifact.Artifact(out_file, artifact.MERGED_VCF), config)

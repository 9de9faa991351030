"""GATK variant calling with HaplotypeCaller, producing per-contig gVCF files.
"""
import collections
import os

from gatkflow import broad, utils
from gatkflow.broad import gatkrun
from gatkflow.distributed import split
from gatkflow.distributed.transaction import file_transaction
from gatkflow.log import logger
from gatkflow.pipeline import artifact, config_utils

def haplotype_caller(recalibrated, config, run_parallel):
    """Call variants on each recalibrated contig in gVCF mode.

    Reads without a contig have no reference positions to call on, so the
    `unmapped` piece is not called.
    """
    logger.info("Calling variants with HaplotypeCaller on %s contigs" %
                len([c for c in recalibrated if c != artifact.UNMAPPED]))
    shards = collections.OrderedDict((c, x) for c, x in recalibrated.items()
                                     if c != artifact.UNMAPPED)
    return split.gather(shards, call_contig, run_parallel, config)

def call_contig(shard, config):
    out_file = "%s.g.vcf.gz" % os.path.splitext(shard.path)[0]
    if not utils.file_uptodate(out_file, shard.path):
        with file_transaction(config, out_file) as tx_out_file:
            call = gatkrun.haplotype_caller(shard.path, config.ref_file, tx_out_file,
                                            config_utils.get_extra_args(config, "HaplotypeCaller"),
                                            config.cores_per_node, region=shard.contig)
            broad.invoke(call, config, stage="haplotype-calling", region=shard.contig)
    return shard.derive(out_file, artifact.GVCF)

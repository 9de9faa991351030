"""Functionality to sort, index, merge and split aligned BAM files.
"""
import collections
import os
import re
from contextlib import closing

import pysam

from gatkflow import broad, utils
from gatkflow.broad import picardrun
from gatkflow.distributed.transaction import file_transaction, tx_tmpdir
from gatkflow.log import logger

UNMAPPED = "unmapped"

def is_bam(in_file):
    return in_file.endswith(".bam")

def is_sam(in_file):
    return in_file.endswith(".sam")

def sort(in_file, out_file, config):
    """Coordinate sort a SAM or BAM file into a BAM file, skipping if already present.
    """
    assert is_bam(in_file) or is_sam(in_file), "%s is not a SAM or BAM file" % in_file
    if not utils.file_uptodate(out_file, in_file):
        with file_transaction(config, out_file) as tx_out_file:
            tx_sort_stem = os.path.splitext(tx_out_file)[0]
            params = ["-@", config.cores_per_node, "-O", "BAM",
                      "-T", "%s-sort" % tx_sort_stem, "-o", tx_out_file, in_file]
            broad.invoke(broad.ToolCall("samtools", "sort", params, outputs=[tx_out_file]),
                         config, stage="alignment-cleanup")
    return out_file

def index(in_bam, config, check_timestamp=True):
    """Index a BAM file, skipping if an up to date index is present.
    """
    assert is_bam(in_bam), "%s is not a BAM file" % in_bam
    index_file = "%s.bai" % in_bam
    alt_index_file = "%s.bai" % os.path.splitext(in_bam)[0]
    if check_timestamp:
        bai_exists = utils.file_uptodate(index_file, in_bam) or utils.file_uptodate(alt_index_file, in_bam)
    else:
        bai_exists = utils.file_exists(index_file) or utils.file_exists(alt_index_file)
    if not bai_exists:
        # Remove old index files and re-run to prevent linking into tx directory
        for fname in [index_file, alt_index_file]:
            utils.remove_safe(fname)
        with file_transaction(config, index_file) as tx_index_file:
            params = ["-@", config.cores_per_node, in_bam, tx_index_file]
            broad.invoke(broad.ToolCall("samtools", "index", params, outputs=[tx_index_file]),
                         config)
    return index_file if utils.file_exists(index_file) else alt_index_file

def merge(in_files, out_file, config):
    """Merge BAM files with Picard, combining headers and sequence dictionaries.

    An existing output is reused only when it is newer than every input.
    """
    if not utils.file_uptodate_all(out_file, in_files):
        with tx_tmpdir(config) as tmp_dir:
            with file_transaction(config, out_file) as tx_out_file:
                broad.invoke(picardrun.merge_sam_files(in_files, tx_out_file, tmp_dir), config)
    return out_file

def shard_name(in_bam, contig):
    """Deterministic file name for a single contig piece of a BAM file.
    """
    safe_contig = re.sub(r"[^\w.\-]", "_", contig)
    return "%s-%s.bam" % (os.path.splitext(in_bam)[0], safe_contig)

def split_by_contig(in_bam, config):
    """Split a coordinate sorted BAM file into one file per contig with reads.

    Reads without a reference contig go to an additional `unmapped` file, which
    is always written. Unmapped reads placed next to their mapped mate stay
    with that contig. Returns an ordered dictionary of contig to file.
    """
    assert is_bam(in_bam), "%s is not a BAM file" % in_bam
    out = collections.OrderedDict()
    with tx_tmpdir(config) as tmp_dir:
        tx_base = os.path.join(tmp_dir, os.path.basename(in_bam))
        handles = collections.OrderedDict()
        with closing(pysam.AlignmentFile(in_bam, "rb", check_sq=False)) as in_handle:
            try:
                handles[UNMAPPED] = pysam.AlignmentFile(shard_name(tx_base, UNMAPPED), "wb",
                                                        template=in_handle)
                for read in in_handle.fetch(until_eof=True):
                    contig = read.reference_name if read.reference_id >= 0 else UNMAPPED
                    if contig not in handles:
                        handles[contig] = pysam.AlignmentFile(shard_name(tx_base, contig), "wb",
                                                              template=in_handle)
                    handles[contig].write(read)
            finally:
                for handle in handles.values():
                    handle.close()
        for contig in [c for c in handles if c != UNMAPPED] + [UNMAPPED]:
            out[contig] = utils.move_plus(shard_name(tx_base, contig), os.path.dirname(in_bam))
    logger.debug("Split %s into %s contigs" % (os.path.basename(in_bam), len(out)))
    return out

def count_reads(in_bam):
    """Total reads in a BAM file, mapped and unmapped.
    """
    with closing(pysam.AlignmentFile(in_bam, "rb", check_sq=False)) as in_handle:
        return sum(1 for _ in in_handle.fetch(until_eof=True))

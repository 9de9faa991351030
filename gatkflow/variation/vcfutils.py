"""Utilities for merging and indexing bgzipped VCF files.
"""
import os

from gatkflow import broad, utils
from gatkflow.broad import picardrun
from gatkflow.distributed.transaction import file_transaction

def ref_dict(ref_file):
    """Sequence dictionary sitting next to a reference FASTA, as used by Picard and GATK.
    """
    return "%s.dict" % utils.splitext_plus(ref_file)[0]

def merge_variant_files(orig_files, out_file, config):
    """Combine VCF files sharing a reference into a single output file.

    Used to join per-contig outputs back together, keeping combined sample headers.
    """
    if not utils.file_uptodate_all(out_file, orig_files):
        with file_transaction(config, out_file) as tx_out_file:
            for orig_file in orig_files:
                tabix_index(orig_file, config)
            broad.invoke(picardrun.merge_vcfs(orig_files, tx_out_file, ref_dict(config.ref_file)),
                         config)
    if out_file.endswith(".gz"):
        tabix_index(out_file, config)
    return out_file

def tabix_index(in_file, config):
    """Index a bgzipped VCF using tabix, skipping when an up to date index exists.
    """
    assert in_file.endswith(".vcf.gz"), "Expect bgzipped VCF for tabix indexing: %s" % in_file
    in_file = os.path.abspath(in_file)
    out_file = in_file + ".tbi"
    if not utils.file_uptodate(out_file, in_file):
        # Remove old index files to prevent linking into tx directory
        utils.remove_safe(out_file)
        with file_transaction(config, out_file) as tx_out_file:
            tx_in_file = os.path.splitext(tx_out_file)[0]
            os.symlink(in_file, tx_in_file)
            broad.invoke(broad.ToolCall("tabix", None, ["-f", "-p", "vcf", tx_in_file],
                                        outputs=[tx_out_file]), config)
    return out_file

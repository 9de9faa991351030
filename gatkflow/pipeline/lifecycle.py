"""Manage intermediate pipeline files: merge, split by contig, index and relocate.

Operations take and return `Artifact` records and never modify an existing
file in place. Output names derive from input names plus fixed suffixes so
concurrent contigs and separate runs never write to the same path.
"""
import collections
import os

from gatkflow import bam, utils
from gatkflow.log import logger
from gatkflow.pipeline import artifact
from gatkflow.variation import vcfutils

def merge(artifacts, out_name, config):
    """Merge same kind artifacts into a single file named out_name in the work directory.

    A single artifact is returned unchanged without running a merge.
    """
    assert len(artifacts) > 0, "Need at least one artifact to merge into %s" % out_name
    kinds = set(x.kind for x in artifacts)
    assert len(kinds) == 1, "Cannot merge artifacts of different kinds: %s" % sorted(kinds)
    if len(artifacts) == 1:
        return artifacts[0]
    kind = kinds.pop()
    out_file = os.path.join(utils.safe_makedir(os.path.join(config.work_dir, "merged")), out_name)
    in_files = [x.path for x in sort_by_contig(artifacts, config)]
    logger.info("Merging %s files into %s" % (len(in_files), out_name))
    if artifact.is_alignment(artifacts[0]):
        bam.merge(in_files, out_file, config)
    elif artifact.is_variant(artifacts[0]):
        vcfutils.merge_variant_files(in_files, out_file, config)
    else:
        raise AssertionError("Cannot merge artifacts of kind %s" % kind)
    return artifact.Artifact(out_file, kind)

def split_by_contig(in_artifact, config):
    """Split an alignment into one artifact per contig, plus an `unmapped` artifact.
    """
    assert artifact.is_alignment(in_artifact), "Can only split alignments: %s" % (in_artifact,)
    shards = bam.split_by_contig(in_artifact.path, config)
    return collections.OrderedDict((contig, artifact.Artifact(path, in_artifact.kind, contig))
                                   for contig, path in shards.items())

def index(in_artifact, config):
    """Create or refresh the index for an alignment or variant file.

    Up to date indexes are left alone, so indexing twice has no further effect.
    """
    if artifact.is_alignment(in_artifact):
        bam.index(in_artifact.path, config)
    elif artifact.is_variant(in_artifact):
        vcfutils.tabix_index(in_artifact.path, config)
    else:
        raise AssertionError("No index available for %s files" % in_artifact.kind)
    return in_artifact

def relocate(in_artifact, dest_dir):
    """Move an artifact, with index files, into dest_dir.
    """
    new_path = utils.move_plus(in_artifact.path, dest_dir)
    return in_artifact._replace(path=new_path)

def ref_contigs(ref_file):
    """Contig names in reference order, read from the FASTA index.
    """
    fai_file = "%s.fai" % ref_file
    out = []
    if os.path.exists(fai_file):
        with open(fai_file) as in_handle:
            out = [line.split("\t")[0] for line in in_handle if line.strip()]
    return out

def sort_by_contig(artifacts, config):
    """Order artifacts by reference contig order, untagged and unknown contigs last.
    """
    order = {c: i for i, c in enumerate(ref_contigs(config.ref_file))}
    def _sort_key(x):
        if x.contig in order:
            return (0, order[x.contig], "")
        return (1 if x.contig != artifact.UNMAPPED else 2, 0, x.contig or x.path)
    return sorted(artifacts, key=_sort_key)

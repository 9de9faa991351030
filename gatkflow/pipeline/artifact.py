"""File backed units of pipeline state passed between stages.

An Artifact is never modified in place: every transformation, including a
move into the output directory, returns a new Artifact.
"""
import collections
import os

RAW_ALIGNMENT = "raw-alignment"
SORTED_ALIGNMENT = "sorted-alignment"
DEDUPED_ALIGNMENT = "deduped-alignment"
INDEL_TARGET = "indel-target"
REALIGNED_ALIGNMENT = "realigned-alignment"
RECAL_TABLE = "recal-table"
RECALIBRATED_ALIGNMENT = "recalibrated-alignment"
GVCF = "gvcf"
MERGED_VCF = "merged-vcf"
VQSR_TARGET_PAIR = "vqsr-target-pair"
RECALIBRATED_VCF = "recalibrated-vcf"

ALIGNMENT_KINDS = frozenset([RAW_ALIGNMENT, SORTED_ALIGNMENT, DEDUPED_ALIGNMENT,
                             REALIGNED_ALIGNMENT, RECALIBRATED_ALIGNMENT])
VARIANT_KINDS = frozenset([GVCF, MERGED_VCF, RECALIBRATED_VCF])
KINDS = ALIGNMENT_KINDS | VARIANT_KINDS | frozenset([INDEL_TARGET, RECAL_TABLE, VQSR_TARGET_PAIR])

UNMAPPED = "unmapped"

class Artifact(collections.namedtuple("Artifact", ["path", "kind", "contig"])):
    __slots__ = ()

    def __new__(cls, path, kind, contig=None):
        assert kind in KINDS, "Unexpected artifact kind: %s" % kind
        return super(Artifact, cls).__new__(cls, os.path.abspath(path), kind, contig)

    @property
    def basename(self):
        return os.path.basename(self.path)

    def derive(self, path, kind=None):
        """New artifact for a file produced from this one, keeping the contig tag.
        """
        return Artifact(path, kind or self.kind, self.contig)

def tranches_file(recal_artifact):
    """Tranches file paired with a variant recalibration file.
    """
    assert recal_artifact.kind == VQSR_TARGET_PAIR, recal_artifact
    return "%s.tranches" % os.path.splitext(recal_artifact.path)[0]

def is_alignment(artifact):
    return artifact.kind in ALIGNMENT_KINDS

def is_variant(artifact):
    return artifact.kind in VARIANT_KINDS

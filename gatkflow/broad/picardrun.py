"""Convenience functions for building common Picard tool calls.
"""
from gatkflow.broad import NO_RETRY, ToolCall

def _opts(options):
    return ["%s=%s" % (x, y) for x, y in options] + ["VALIDATION_STRINGENCY=SILENT"]

def mark_duplicates(align_bam, out_file, metrics_file, tmp_dir, extra_args=None):
    options = [("INPUT", align_bam),
               ("OUTPUT", out_file),
               ("METRICS_FILE", metrics_file),
               ("TMP_DIR", tmp_dir),
               ("CREATE_INDEX", "true")]
    return ToolCall("picard", "MarkDuplicates", _opts(options), extra_args,
                    [out_file, metrics_file], NO_RETRY)

def merge_sam_files(in_files, out_file, tmp_dir):
    """Merge multiple BAM files together, combining headers and sequence dictionaries.
    """
    options = [("OUTPUT", out_file),
               ("SORT_ORDER", "coordinate"),
               ("MERGE_SEQUENCE_DICTIONARIES", "true"),
               ("USE_THREADING", "true"),
               ("TMP_DIR", tmp_dir)]
    for in_file in in_files:
        options.append(("INPUT", in_file))
    return ToolCall("picard", "MergeSamFiles", _opts(options), None, [out_file], NO_RETRY)

def merge_vcfs(in_files, out_file, dict_file):
    """Merge VCF files sharing a sequence dictionary, combining sample headers.
    """
    options = [("OUTPUT", out_file),
               ("SEQUENCE_DICTIONARY", dict_file),
               ("CREATE_INDEX", "true")]
    for in_file in in_files:
        options.append(("INPUT", in_file))
    return ToolCall("picard", "MergeVcfs", _opts(options), None, [out_file], NO_RETRY)

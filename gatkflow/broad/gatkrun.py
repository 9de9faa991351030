"""Build GATK3 tool calls for preprocessing and variant discovery.

Each function is pure: it returns a `ToolCall` and leaves running it to
`gatkflow.broad.invoke`.
"""
from gatkflow.broad import GATK_RETRY, ToolCall

def _threads(flag, cores):
    return [flag, str(cores)] if cores and int(cores) > 1 else []

def realigner_target_creator(align_bam, ref_file, out_file, extra_args=None, cores=1):
    """Generate a list of interval regions for realignment around indels.
    """
    params = ["-I", align_bam,
              "-R", ref_file,
              "-o", out_file] + _threads("-nt", cores)
    return ToolCall("gatk", "RealignerTargetCreator", params, extra_args, [out_file], GATK_RETRY)

def indel_realigner(align_bam, ref_file, intervals, out_file, extra_args=None):
    """Realign reads around indels within the target intervals. Single threaded in GATK3.
    """
    params = ["-I", align_bam,
              "-R", ref_file,
              "-targetIntervals", intervals,
              "-o", out_file]
    return ToolCall("gatk", "IndelRealigner", params, extra_args, [out_file], GATK_RETRY)

def base_recalibrator(align_bam, ref_file, known_sites, out_file, extra_args=None, cores=1):
    """Produce the table of covariates for base quality score recalibration.
    """
    params = ["-I", align_bam,
              "-R", ref_file,
              "-knownSites", known_sites,
              "-o", out_file] + _threads("-nct", cores)
    return ToolCall("gatk", "BaseRecalibrator", params, extra_args, [out_file], GATK_RETRY)

def print_reads(align_bam, ref_file, recal_table, out_file, extra_args=None, cores=1):
    """Write a BAM file with quality scores recalibrated by the covariates table.
    """
    params = ["-I", align_bam,
              "-R", ref_file,
              "-BQSR", recal_table,
              "-o", out_file] + _threads("-nct", cores)
    return ToolCall("gatk", "PrintReads", params, extra_args, [out_file], GATK_RETRY)

def haplotype_caller(align_bam, ref_file, out_file, extra_args=None, cores=1, region=None):
    """Call variants in GVCF mode, emitting reference confidence blocks between variants.
    """
    params = ["-I", align_bam,
              "-R", ref_file,
              "--emitRefConfidence", "GVCF",
              "-o", out_file] + _threads("-nct", cores)
    if region:
        params += ["-L", region]
    return ToolCall("gatk", "HaplotypeCaller", params, extra_args, [out_file], GATK_RETRY)

def genotype_gvcfs(gvcf_files, ref_file, out_file, extra_args=None, cores=1):
    params = ["-R", ref_file, "-o", out_file]
    for gvcf_file in gvcf_files:
        params += ["--variant", gvcf_file]
    params += _threads("-nt", cores)
    return ToolCall("gatk", "GenotypeGVCFs", params, extra_args, [out_file], GATK_RETRY)

def variant_recalibrator(in_file, ref_file, recal_file, tranches_file, mode,
                         extra_args=None, cores=1):
    """Build the recalibration model for one variant class.

    Training resources and annotations are site specific and come from the
    configured extra arguments.
    """
    assert mode in ("SNP", "INDEL"), mode
    params = ["-R", ref_file,
              "-input", in_file,
              "-mode", mode,
              "-recalFile", recal_file,
              "-tranchesFile", tranches_file] + _threads("-nt", cores)
    return ToolCall("gatk", "VariantRecalibrator", params, extra_args,
                    [recal_file, tranches_file], GATK_RETRY)

def apply_recalibration(in_file, ref_file, recal_file, tranches_file, mode, out_file,
                        extra_args=None, cores=1):
    assert mode in ("SNP", "INDEL"), mode
    params = ["-R", ref_file,
              "-input", in_file,
              "-mode", mode,
              "-recalFile", recal_file,
              "-tranchesFile", tranches_file,
              "-o", out_file] + _threads("-nt", cores)
    return ToolCall("gatk", "ApplyRecalibration", params, extra_args, [out_file], GATK_RETRY)

"""Main entry point for running the GATK variant calling pipeline.

Handles sequencing stages from raw alignments in an input directory through
to recalibrated variant calls, tracking progress through the run states and
reporting the failing stage on errors.
"""
import argparse
import collections
import glob
import os

from gatkflow import log, utils
from gatkflow.distributed import prun
from gatkflow.log import logger
from gatkflow.pipeline import artifact, cleanbam, config_utils, lifecycle, version
from gatkflow.variation import gatk, gatkfilter, gatkjoint, realign, recalibrate

INPUT_EXTS = (".sam", ".bam")

class PipelineFailure(Exception):
    """Fatal condition during a run, naming the failing stage and tool.
    """
    def __init__(self, msg, stage=None, tool=None):
        super(PipelineFailure, self).__init__(msg)
        self.stage = stage
        self.tool = tool

class NoInputError(PipelineFailure):
    pass

class IllegalTransition(Exception):
    pass

# ## Run states

class RunState(object):
    """Linear progress of a single run with an absorbing failure state.
    """
    INITIALIZED = "Initialized"
    PREPROCESSING = "Preprocessing"
    VARIANT_DISCOVERY = "VariantDiscovery"
    RECALIBRATION = "Recalibration"
    COMPLETED = "Completed"
    FAILED = "Failed"

    TRANSITIONS = {INITIALIZED: PREPROCESSING,
                   PREPROCESSING: VARIANT_DISCOVERY,
                   VARIANT_DISCOVERY: RECALIBRATION,
                   RECALIBRATION: COMPLETED}

    def __init__(self):
        self.state = self.INITIALIZED

    @property
    def is_terminal(self):
        return self.state in (self.COMPLETED, self.FAILED)

    def advance(self, new_state):
        if self.TRANSITIONS.get(self.state) != new_state:
            raise IllegalTransition("Cannot move from %s to %s" % (self.state, new_state))
        logger.debug("Pipeline state: %s -> %s" % (self.state, new_state))
        self.state = new_state
        return self.state

    def fail(self):
        if self.is_terminal:
            raise IllegalTransition("Cannot fail a run in terminal state %s" % self.state)
        self.state = self.FAILED
        return self.state

# ## Running the pipeline

def find_inputs(input_dir):
    """Raw SAM and BAM alignments in the input directory, sorted by name.
    """
    fnames = sorted(f for f in glob.glob(os.path.join(input_dir, "*"))
                    if f.endswith(INPUT_EXTS) and os.path.isfile(f))
    return [artifact.Artifact(f, artifact.RAW_ALIGNMENT) for f in fnames]

def shared_stems(inputs):
    """Input names which differ only by extension, so would sort to the same file.
    """
    stems = collections.Counter(os.path.splitext(x.basename)[0] for x in inputs)
    return sorted(x.basename for x in inputs if stems[os.path.splitext(x.basename)[0]] > 1)

def _run_stage(state, stage, fn, *args):
    logger.info("Running stage: %s" % stage)
    try:
        return fn(*args)
    except Exception as e:
        state.fail()
        stage = getattr(e, "stage", None) or stage
        tool = getattr(e, "tool", None)
        raise PipelineFailure("Pipeline failed in %s%s: %s" %
                              (stage, " running %s" % tool if tool else "", e),
                              stage=stage, tool=tool) from e

def run_pipeline(input_dir, config, run_parallel=None):
    """Run all stages on the alignments in input_dir, returning the final variant calls.
    """
    if run_parallel is None:
        with prun.start(config.parallel, config) as run_parallel:
            return run_pipeline(input_dir, config, run_parallel)
    state = RunState()
    raw = find_inputs(input_dir)
    if len(raw) == 0:
        state.fail()
        raise NoInputError("No SAM or BAM input files found in %s" % input_dir,
                           stage="input-discovery")
    dups = shared_stems(raw)
    if dups:
        state.fail()
        raise PipelineFailure("Input files differ only by extension: %s" % ", ".join(dups),
                              stage="input-discovery")
    logger.info("Found %s input files in %s" % (len(raw), input_dir))
    utils.safe_makedir(config.out_dir)
    utils.safe_makedir(config.work_dir)

    state.advance(RunState.PREPROCESSING)
    sorted_bams = _run_stage(state, "alignment-cleanup", cleanbam.sort_alignments,
                             raw, config, run_parallel)
    merged = _run_stage(state, "alignment-cleanup", lifecycle.merge,
                        sorted_bams, "merged-sorted.bam", config)
    deduped = _run_stage(state, "dedup", cleanbam.mark_duplicates, merged, config)
    targets = _run_stage(state, "indel-target-creation", realign.create_targets, deduped, config)
    realigned = _run_stage(state, "indel-realignment", realign.realign_indels,
                           deduped, targets, config, run_parallel)
    merged, recal_table = _run_stage(state, "BQSR-target-creation", recalibrate.create_recal_table,
                                     realigned, config)
    recalibrated = _run_stage(state, "BQSR-apply", recalibrate.apply_recal,
                              merged, recal_table, config, run_parallel)

    state.advance(RunState.VARIANT_DISCOVERY)
    gvcfs = _run_stage(state, "haplotype-calling", gatk.haplotype_caller,
                       recalibrated, config, run_parallel)
    called = _run_stage(state, "joint-genotyping", gatkjoint.joint_genotype, gvcfs, config)

    state.advance(RunState.RECALIBRATION)
    final = _run_stage(state, "VQSR", gatkfilter.recalibrate_variants, called, config)
    final = _run_stage(state, "VQSR", lifecycle.relocate, final, config.out_dir)
    state.advance(RunState.COMPLETED)
    logger.info("Finished variant calling: %s" % final.path)
    return final

# ## Commandline

def parse_cl_args(in_args):
    description = "Run GATK variant calling from raw alignments to recalibrated variants."
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("-R", "--reference", required=True,
                        help="Reference genome FASTA, indexed with .fai and .dict files")
    parser.add_argument("-I", "--input", required=True,
                        help="Directory of raw SAM or BAM alignment files")
    parser.add_argument("-O", "--output", required=True,
                        help="Output directory for results and retained intermediates")
    parser.add_argument("-S", "--known-sites", required=True, dest="known_sites",
                        help="Known variant sites VCF used for base recalibration")
    parser.add_argument("-C", "--config", required=True,
                        help="YAML or properties file with extra arguments for each tool")
    parser.add_argument("-c", "--cores-per-node", required=True, type=int, dest="cores_per_node",
                        help="Cores used by each tool invocation")
    parser.add_argument("-n", "--numcores", type=int, default=1,
                        help="Total cores to use for processing")
    parser.add_argument("-t", "--paralleltype", choices=["local", "multicore"],
                        help="Approach to parallelization")
    parser.add_argument("-w", "--workdir", default=os.getcwd(),
                        help="Directory to process in. Defaults to current working directory")
    parser.add_argument("-v", "--version", action="version", version=version.__version__)
    args = parser.parse_args(in_args)
    if args.paralleltype is None:
        args.paralleltype = "multicore" if args.numcores > 1 else "local"
    return args

def run_main(in_args=None):
    """Run the pipeline from commandline arguments, returning the exit status.
    """
    args = parse_cl_args(in_args)
    workdir = utils.safe_makedir(os.path.abspath(args.workdir))
    parallel = {"type": args.paralleltype, "cores": args.numcores}
    try:
        tool_config = config_utils.load_config(args.config)
    except config_utils.ConfigurationError as e:
        logger.error(str(e))
        return 1
    log_config = {"log_dir": tool_config.get("log_dir") or os.path.join(workdir, log.DEFAULT_LOG_DIR)}
    parallel = log.create_base_logger(log_config, parallel)
    handler = log.setup_local_logging(log_config, parallel)
    try:
        config = config_utils.make_config(args.reference, args.known_sites, args.cores_per_node,
                                          args.output, tool_config, work_dir=workdir,
                                          parallel=parallel)
        out = run_pipeline(args.input, config)
        log.logger_stdout.info(out.path)
    except (config_utils.ConfigurationError, PipelineFailure) as e:
        logger.error(str(e))
        return 1
    finally:
        handler.pop_thread()
    return 0

"""Run external commandline tools, with GATK and Picard from Broad as the main users.

Every tool call is described by a `ToolCall` record: program, tool name, base
arguments, a free-form extra argument string from the configuration and the
output files the call declares. `invoke` turns the record into a commandline,
runs it and applies the call's `RetryPolicy`.

  Picard -- BAM and VCF manipulation.
  GATK -- Next-generation sequence processing.
  samtools -- sorting, indexing and slicing of alignments.
"""
import collections
import re
import shlex
import subprocess

from gatkflow.log import logger
from gatkflow.pipeline import config_utils
from gatkflow.provenance import do

RetryPolicy = collections.namedtuple("RetryPolicy", ["retries", "transient_patterns"])

NO_RETRY = RetryPolicy(0, ())
# GATK3 walkers intermittently die with internal errors on shared filesystems
# which succeed when re-run with identical arguments.
GATK_RETRY = RetryPolicy(1, ("ReviewedGATKException",))

class ToolCall(collections.namedtuple("ToolCall", ["program", "tool", "base_args", "extra_args",
                                                   "outputs", "policy"])):
    __slots__ = ()

    def __new__(cls, program, tool, base_args, extra_args=None, outputs=(), policy=NO_RETRY):
        return super(ToolCall, cls).__new__(cls, program, tool, tuple(str(x) for x in base_args),
                                            extra_args, tuple(outputs), policy)

class ToolError(subprocess.CalledProcessError):
    """Failure of an external tool, keeping the tool's own diagnostic output.
    """
    def __init__(self, returncode, cmd, output=None, program=None, tool=None, stage=None):
        super(ToolError, self).__init__(returncode, cmd, output)
        self.program = program
        self.tool = tool
        self.stage = stage

    def __reduce__(self):
        # keep tool details when errors travel back from worker processes
        return (self.__class__, (self.returncode, self.cmd, self.output,
                                 self.program, self.tool, self.stage))

    def __str__(self):
        return "%s %s failed%s with exit status %s: %s\n%s" % (
            self.program, self.tool, " in %s" % self.stage if self.stage else "",
            self.returncode, self.cmd, self.output or "")

class TransientToolError(ToolError):
    pass

class FatalToolError(ToolError):
    pass

def extra_arg_list(extra_args):
    """Tokenize a configured extra argument string using shell rules.
    """
    if not extra_args:
        return []
    return shlex.split(extra_args)

def build_cl(call, config):
    """Commandline for a tool call: program prefix, base arguments then extra arguments.

    Extra arguments are appended verbatim after the base arguments and never
    replace them.
    """
    return _program_prefix(call.program, call.tool, config) + list(call.base_args) + \
        extra_arg_list(call.extra_args)

def _program_prefix(program, tool, config):
    resources = config_utils.get_resources(program, config)
    jar = resources.get("jar") if isinstance(resources, dict) else None
    if program == "gatk":
        jvm_opts = config_utils.get_jvm_opts("gatk", config)
        if jar:
            return ["java"] + jvm_opts + ["-jar", config_utils.expand_path(jar), "-T", tool]
        return [config_utils.get_program("gatk", config, default="gatk3")] + jvm_opts + ["-T", tool]
    elif program == "picard":
        jvm_opts = config_utils.get_jvm_opts("picard", config)
        if jar:
            return ["java"] + jvm_opts + ["-jar", config_utils.expand_path(jar), tool]
        return [config_utils.get_program("picard", config)] + jvm_opts + [tool]
    else:
        return [config_utils.get_program(program, config)] + ([tool] if tool else [])

def classify(error, policy):
    """Classify a failed call as `transient` or `fatal` based on its diagnostic output.
    """
    output = getattr(error, "output", None) or ""
    if isinstance(output, bytes):
        output = output.decode("utf-8", errors="replace")
    for pattern in policy.transient_patterns:
        if re.search(pattern, output):
            return "transient"
    return "fatal"

def invoke(call, config, stage=None, region=None):
    """Run a tool call, retrying transient failures as allowed by its policy.

    Returns the declared output files. Raises FatalToolError for any other
    failure, or when transient failures persist after the allowed retries.
    """
    cl = build_cl(call, config)
    checks = [do.file_exists(x) for x in call.outputs]
    descr = "%s: %s" % (call.program, call.tool) if call.tool else call.program
    attempt = 0
    while True:
        try:
            do.run(cl, descr, checks=checks, region=region, log_error=False)
            return list(call.outputs)
        except subprocess.CalledProcessError as e:
            cause = e
            if classify(e, call.policy) == "transient":
                cause = TransientToolError(e.returncode, e.cmd, e.output, program=call.program,
                                           tool=call.tool, stage=stage)
                if attempt < call.policy.retries:
                    attempt += 1
                    logger.warning("Transient failure in %s, retrying (%s of %s)" %
                                   (descr, attempt, call.policy.retries))
                    continue
            logger.error(str(cause))
            raise FatalToolError(e.returncode, e.cmd, e.output, program=call.program,
                                 tool=call.tool, stage=stage) from cause
        except IOError as e:
            raise FatalToolError(1, " ".join(cl), str(e), program=call.program,
                                 tool=call.tool, stage=stage) from e

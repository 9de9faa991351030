"""Run external commandlines, logging the command and its output.

Tool output is streamed line by line to the debug log. When a command exits
with an error, the raised CalledProcessError keeps the final lines of output
so callers can report and classify the failure.
"""
import collections
import os
import subprocess

from gatkflow import utils
from gatkflow.log import logger, logger_cl, logger_stdout

DIAGNOSTIC_LINES = 100

def run(cmd, descr=None, checks=None, region=None, log_error=True,
        log_stdout=False, env=None):
    """Run a commandline given as a list of arguments, checking for errors.

    checks -- functions returning False when an expected output is missing.
    region -- contig or region being processed, added to the description.
    """
    cmd = [str(x) for x in cmd]
    if descr:
        logger.debug(_descr_str(descr, region))
    logger_cl.debug(" ".join(cmd))
    try:
        _do_run(cmd, log_stdout, env)
        for check in checks or []:
            if not check():
                raise IOError("External command failed: %s" % " ".join(cmd))
    except Exception:
        if log_error:
            logger.exception()
        raise

def _descr_str(descr, region):
    return "%s : %s" % (descr, region) if region else descr

def _do_run(cmd, log_stdout=False, env=None):
    log_fn = logger_stdout.debug if log_stdout else logger.debug
    tail = collections.deque(maxlen=DIAGNOSTIC_LINES)
    proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                            close_fds=True, env=env)
    with proc.stdout:
        for line in iter(proc.stdout.readline, b""):
            line = line.decode("utf-8", errors="replace").rstrip()
            if line:
                tail.append(line)
                log_fn(line)
    exitcode = proc.wait()
    if exitcode != 0:
        raise subprocess.CalledProcessError(exitcode, " ".join(cmd),
                                            output="\n".join(tail) + "\n")

# ## Output checks

def file_nonempty(target_file):
    def check():
        ok = utils.file_exists(target_file)
        if not ok:
            logger.info("Did not find non-empty output file %s" % target_file)
        return ok
    return check

def file_exists(target_file):
    def check():
        ok = os.path.exists(target_file)
        if not ok:
            logger.info("Did not find output file %s" % target_file)
        return ok
    return check

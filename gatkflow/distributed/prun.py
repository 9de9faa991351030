"""Generalized running of parallel tasks in multiple environments.
"""
import contextlib

from gatkflow.distributed import multi
from gatkflow.log import logger

@contextlib.contextmanager
def start(parallel, config):
    """Start the machines used for running parallel functions.

    Yields a function used to process items in parallel with a given function.
    `local` runs serially in the current process; `multicore` runs on local
    cores with joblib.
    """
    ptype = parallel.get("type", "local")
    if ptype not in ("local", "multicore"):
        raise ValueError("Unexpected type of parallel run: %s" % ptype)
    logger.debug("Starting %s parallel runner with %s concurrent jobs" %
                 (ptype, multi.num_jobs(parallel, config)))
    yield multi.runner(parallel, config)

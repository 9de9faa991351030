"""Run tasks in parallel on a single machine using multiple cores.
"""
import functools

import joblib

from gatkflow.log import logger, setup_local_logging

def runner(parallel, config):
    """Run functions on multiple cores on the current machine.

    The returned function takes a task function and a list of argument lists.
    Every task returns a list; results are flattened in input order. All
    tasks finish before it returns, and the first failure is raised.
    """
    def run_parallel(fn, items):
        items = [x for x in items if x is not None]
        if len(items) == 0:
            return []
        logger.info("%s: %s" % (parallel.get("type", "local"), fn.__name__))
        return run_multicore(fn, items, config, parallel=parallel)
    return run_parallel

def num_jobs(parallel, config):
    """Concurrent tasks to run, each using cores_per_node threads.
    """
    if parallel is None or parallel.get("type", "local") == "local":
        return 1
    return max(1, int(parallel.get("cores", 1)) // config.cores_per_node)

def queue_aware_logging(f):
    """Ensure multiprocessing logging goes through the shared logging queue.

    Worker processes push records onto the queue read by the subscriber in
    the main process, so their messages land in the run's log files.
    """
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        config = None
        for arg in args:
            if hasattr(arg, "parallel") and hasattr(arg, "cores_per_node"):
                config = arg
                break
        assert config, "Could not find configuration in function arguments."
        if config.parallel.get("log_queue"):
            handler = setup_local_logging(parallel=config.parallel)
        else:
            handler = None
        try:
            out = f(*args, **kwargs)
        finally:
            if handler is not None:
                handler.pop_thread()
        return out
    return wrapper

def run_multicore(fn, items, config, parallel=None):
    """Apply fn to each argument list, serially or across joblib worker processes.
    """
    n = num_jobs(parallel, config)
    if n == 1:
        results = (fn(*x) for x in items)
    else:
        results = joblib.Parallel(n, batch_size=1, backend="multiprocessing")(
            joblib.delayed(fn)(*x) for x in items)
    out = []
    for data in results:
        out.extend(data or [])
    return out

"""Logging for pipeline runs, with separate channels for commandlines and tool output.

Records from the main logger go to `gatkflow.log` and `gatkflow-debug.log`;
commandlines go to `gatkflow-commands.log`. Worker processes in multicore
runs forward records through a shared queue to the driver's handlers.
"""
import multiprocessing
import os
import sys

import logbook
import logbook.queues

from gatkflow import utils

LOG_NAME = "gatkflow"
DEFAULT_LOG_DIR = "log"

logger = logbook.Logger(LOG_NAME)
logger_cl = logbook.Logger(LOG_NAME + "-commands")
logger_stdout = logbook.Logger(LOG_NAME + "-stdout")
mpq = multiprocessing.Queue(-1)

def _channel_is(name):
    return lambda record, handler: record.channel == name

_is_cl = _channel_is(logger_cl.name)
_is_stdout = _channel_is(logger_stdout.name)

def _is_main(record, handler):
    return record.channel not in (logger_cl.name, logger_stdout.name)

class CloseableNestedSetup(logbook.NestedSetup):
    def close(self):
        for obj in self.objects:
            if hasattr(obj, "close"):
                obj.close()

class IOSafeMultiProcessingSubscriber(logbook.queues.MultiProcessingSubscriber):
    """Keep receiving worker records after interrupted system calls.
    """
    def recv(self, timeout=None):
        try:
            return super(IOSafeMultiProcessingSubscriber, self).recv(timeout)
        except IOError as e:
            if "Interrupted system call" not in str(e):
                raise
            return None

def _file_handlers(log_dir, format_str):
    utils.safe_makedir(log_dir)
    fname = lambda suffix: os.path.join(log_dir, "%s%s.log" % (LOG_NAME, suffix))
    return [logbook.FileHandler(fname(""), format_string=format_str, level="INFO",
                                filter=_is_main),
            logbook.FileHandler(fname("-debug"), format_string=format_str, level="DEBUG",
                                bubble=True, filter=_is_main),
            logbook.FileHandler(fname("-commands"), format_string=format_str, level="DEBUG",
                                filter=_is_cl)]

def _create_log_handler(config):
    logbook.set_datetime_format("utc")
    format_str = "{record.message}"
    if config.get("include_time", True):
        format_str = "[{record.time:%Y-%m-%dT%H:%MZ}] " + format_str
    handlers = [logbook.NullHandler()]
    log_dir = config.get("log_dir", DEFAULT_LOG_DIR)
    if log_dir:
        handlers.extend(_file_handlers(log_dir, format_str))
    handlers.append(logbook.StreamHandler(sys.stdout, format_string="{record.message}",
                                          level="DEBUG", filter=_is_stdout))
    handlers.append(logbook.StreamHandler(sys.stderr, format_string=format_str, bubble=True,
                                          level=config.get("log_level", "INFO"), filter=_is_main))
    return CloseableNestedSetup(handlers)

def create_base_logger(config=None, parallel=None):
    """Start the receiving end of worker logging for multicore runs.

    Marks the parallel settings with `log_queue` so workers know to forward
    their records, and returns the updated settings.
    """
    config = config or {}
    parallel = parallel if parallel is not None else {}
    if parallel.get("type", "local") == "multicore" and parallel.get("cores", 1) > 1:
        subscriber = IOSafeMultiProcessingSubscriber(mpq)
        subscriber.dispatch_in_background(_create_log_handler(config))
        parallel["log_queue"] = True
    return parallel

def setup_local_logging(config=None, parallel=None):
    """Push log handlers for the current thread, returning them for `pop_thread`.

    Workers in multicore runs send records to the driver's queue; everything
    else writes directly to the log files.
    """
    parallel = parallel or {}
    if parallel.get("log_queue"):
        handler = logbook.queues.MultiProcessingHandler(mpq)
    else:
        handler = _create_log_handler(config or {})
    handler.push_thread()
    return handler

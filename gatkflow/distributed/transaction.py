"""Write outputs inside transactions so restarts never see partial files.

Tools write into a private temporary directory. Only when the wrapped block
finishes are the results, along with any index files, moved to their final
paths. A failed or interrupted tool leaves the final location untouched.
"""
import contextlib
import os
import shutil
import tempfile

import toolz as tz

from gatkflow import utils

DEFAULT_TMP = "gatkflowtx"
INCOMPLETE_FLAG = ".gatkflowtmp"

@contextlib.contextmanager
def tx_tmpdir(config=None, base_dir=None, remove=True):
    """Provide a fresh temporary directory, removed on exit unless `remove` is False.

    Placed under `resources: tmp: dir` when configured, otherwise below the
    run's work directory or the current directory.
    """
    parent = utils.get_abspath(_tmp_parent(config, base_dir))
    utils.safe_makedir(parent)
    tmp_dir = tempfile.mkdtemp(dir=parent)
    try:
        yield tmp_dir
    finally:
        if remove:
            utils.remove_safe(tmp_dir)

def _tmp_parent(config, base_dir):
    if isinstance(config, dict):
        resources = config.get("resources")
    else:
        resources = getattr(config, "resources", None)
    configured = tz.get_in(["tmp", "dir"], resources or {})
    if configured:
        return configured
    work_dir = base_dir or getattr(config, "work_dir", None) or os.getcwd()
    return os.path.join(work_dir, DEFAULT_TMP)

@contextlib.contextmanager
def file_transaction(*args):
    """Yield temporary names for output files, moving them into place on success.

    The first argument may be the run configuration, which picks the
    temporary directory. A single output yields one name, several yield a tuple.
    """
    config, final_files = _split_args(args)
    with tx_tmpdir(config) as tmp_dir:
        tx_files = [os.path.join(tmp_dir, os.path.basename(x)) for x in final_files]
        yield tx_files[0] if len(tx_files) == 1 else tuple(tx_files)
        for tx_file, final_file in zip(tx_files, final_files):
            if os.path.exists(tx_file):
                _commit(tx_file, final_file)

def _commit(tx_file, final_file):
    out_dir = utils.safe_makedir(os.path.dirname(final_file))
    if os.path.isdir(tx_file) and os.path.isdir(final_file):
        utils.remove_safe(final_file)
    _move_file_with_sizecheck(tx_file, final_file)
    for tx_index in utils.index_files(tx_file):
        if os.path.exists(tx_index):
            _move_file_with_sizecheck(tx_index, os.path.join(out_dir, os.path.basename(tx_index)))

def _move_file_with_sizecheck(tx_file, final_file):
    """Move a finished file into place, failing if the size changes along the way.

    A zero-length `<final>.gatkflowtmp` marker sits beside the destination
    during the move and is only removed once sizes match.
    """
    flag = final_file + INCOMPLETE_FLAG
    open(flag, "wb").close()
    expected = utils.get_size(tx_file)
    shutil.move(tx_file, final_file)
    found = utils.get_size(final_file)
    if expected != found:
        raise IOError("Incomplete transfer of %s to %s: expected %s bytes, found %s"
                      % (tx_file, final_file, expected, found))
    utils.remove_safe(flag)

def _is_config(x):
    return isinstance(x, dict) or (hasattr(x, "_fields") and "work_dir" in x._fields)

def _split_args(args):
    config = None
    if args and (_is_config(args[0]) or not isinstance(args[0], (str, list, tuple))):
        config, args = args[0], args[1:]
    final_files = []
    for arg in args:
        final_files.extend(arg if isinstance(arg, (list, tuple)) else [arg])
    return config, [x for x in final_files if x]

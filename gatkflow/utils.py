"""File and naming helpers shared by pipeline stages.
"""
import functools
import os
import shutil
import time

# index suffixes written next to alignment and variant files
INDEX_EXTS = {".vcf": ".idx", ".bam": ".bai", ".vcf.gz": ".tbi", ".bed.gz": ".tbi"}
COMPRESSED_EXTS = (".gz", ".bz2", ".zip")

def map_wrap(f):
    """Wrap a task function so it can be passed by name into parallel map processing.
    """
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        return f(*args, **kwargs)
    return wrapper

def safe_makedir(dname, retries=5, wait=2):
    """Create a directory when missing, tolerating other workers creating it concurrently.
    """
    if not dname:
        return dname
    attempt = 0
    while not os.path.isdir(dname):
        try:
            os.makedirs(dname)
        except OSError:
            attempt += 1
            if attempt > retries:
                raise
            time.sleep(wait)
    return dname

def file_exists(fname):
    """True when fname is present with content.
    """
    try:
        return bool(fname) and os.path.getsize(fname) > 0
    except OSError:
        return False

def file_uptodate(fname, cmp_fname):
    """True when fname has content and is at least as new as cmp_fname.
    """
    if not (file_exists(fname) and file_exists(cmp_fname)):
        return False
    return os.path.getmtime(fname) >= os.path.getmtime(cmp_fname)

def file_uptodate_all(fname, cmp_fnames):
    """True when fname is up to date with every file in cmp_fnames.
    """
    return all(file_uptodate(fname, x) for x in cmp_fnames)

def get_size(path):
    """Bytes used by a file, or by everything below a directory.
    """
    if not os.path.isdir(path):
        return os.path.getsize(path)
    return sum(get_size(os.path.join(path, x)) for x in os.listdir(path))

def get_abspath(path, pardir=None):
    path = os.path.expandvars(path)
    return os.path.normpath(os.path.join(pardir or os.getcwd(), path))

def remove_safe(f):
    """Remove a file or directory tree, ignoring ones already gone.
    """
    if os.path.isdir(f) and not os.path.islink(f):
        shutil.rmtree(f, ignore_errors=True)
    elif os.path.lexists(f):
        os.remove(f)

# ## File names

def splitext_plus(fname):
    """Split off the extension, treating `.vcf.gz` style double extensions as one.
    """
    base, ext = os.path.splitext(fname)
    if ext in COMPRESSED_EXTS:
        base, inner_ext = os.path.splitext(base)
        ext = inner_ext + ext
    return base, ext

def append_stem(fname, word):
    """Add word to the end of a file's stem, keeping its extension.

    append_stem("/path/merged.vcf.gz", "-SNPrecal") -> "/path/merged-SNPrecal.vcf.gz"
    """
    base, ext = splitext_plus(fname)
    return base + word + ext

def index_files(fname):
    """Index files that may accompany fname.
    """
    out = [fname + idx_ext for ext, idx_ext in INDEX_EXTS.items() if fname.endswith(ext)]
    # samtools and picard also write foo.bai next to foo.bam
    if fname.endswith(".bam"):
        out.append(os.path.splitext(fname)[0] + ".bai")
    return out

def file_plus_index(fname):
    return [fname] + [x for x in index_files(fname) if os.path.exists(x)]

def move_plus(orig, new_dir):
    """Move a file and its existing index files into new_dir, returning the new path.
    """
    orig = os.path.abspath(orig)
    new = os.path.join(os.path.abspath(new_dir), os.path.basename(orig))
    if new == orig:
        return orig
    if not os.path.exists(orig):
        raise RuntimeError("File not found: %s" % orig)
    safe_makedir(os.path.dirname(new))
    for fname in file_plus_index(orig):
        shutil.move(fname, os.path.join(os.path.dirname(new), os.path.basename(fname)))
    return new

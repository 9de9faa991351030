"""Pytest fixtures: small reference files, BAM builders and a fake tool runner.

External tools are never executed. `fake_invoke` replaces `broad.invoke`
with a function that writes each call's declared outputs, copying or
concatenating BAM inputs where later stages read them with pysam.
"""
import os
import shutil
from contextlib import closing

import pysam
import pytest

from gatkflow.pipeline import config_utils

CONTIGS = [("chr1", 10000), ("chr2", 8000)]


def _header():
    return {"HD": {"VN": "1.6", "SO": "coordinate"},
            "SQ": [{"SN": name, "LN": length} for name, length in CONTIGS],
            "RG": [{"ID": "rg1", "SM": "sample1"}]}


def write_bam(fname, reads):
    """Write a BAM file from (name, contig, position) tuples; a None contig is unmapped.
    """
    contig_ids = dict((name, i) for i, (name, _) in enumerate(CONTIGS))
    with closing(pysam.AlignmentFile(fname, "wb", header=_header())) as out_handle:
        for name, contig, pos in reads:
            read = pysam.AlignedSegment()
            read.query_name = name
            read.query_sequence = "ACGT" * 10
            read.query_qualities = pysam.qualitystring_to_array("I" * 40)
            if contig is None:
                read.flag = 4
                read.reference_id = -1
                read.reference_start = -1
            else:
                read.flag = 0
                read.reference_id = contig_ids[contig]
                read.reference_start = pos
                read.mapping_quality = 60
                read.cigarstring = "40M"
            out_handle.write(read)
    return fname


def read_names(fname):
    with closing(pysam.AlignmentFile(fname, "rb", check_sq=False)) as in_handle:
        return sorted(x.query_name for x in in_handle.fetch(until_eof=True))


@pytest.fixture
def ref_files(tmp_path):
    ref_dir = tmp_path / "ref"
    ref_dir.mkdir()
    ref_file = ref_dir / "genome.fa"
    ref_file.write_text("".join(">%s\n%s\n" % (name, "A" * 60) for name, _ in CONTIGS))
    (ref_dir / "genome.fa.fai").write_text(
        "".join("%s\t%s\t0\t60\t61\n" % (name, length) for name, length in CONTIGS))
    (ref_dir / "genome.dict").write_text("@HD\tVN:1.6\n")
    known_sites = ref_dir / "dbsnp.vcf.gz"
    known_sites.write_text("known sites")
    return str(ref_file), str(known_sites)


@pytest.fixture
def make_config(tmp_path, ref_files):
    """Build run configurations inside the test directory.
    """
    def _make(tools=None, resources=None, cores_per_node=1, parallel=None):
        ref_file, known_sites = ref_files
        return config_utils.make_config(ref_file, known_sites, cores_per_node,
                                        str(tmp_path / "out"),
                                        {"tools": tools or {}, "resources": resources or {}},
                                        work_dir=str(tmp_path / "work"), parallel=parallel)
    return _make


@pytest.fixture
def config(make_config):
    return make_config()


def _after(args, flag):
    return [args[i + 1] for i, x in enumerate(args) if x == flag]


def _picard_opts(args, key):
    prefix = "%s=" % key
    return [x[len(prefix):] for x in args if x.startswith(prefix)]


def _copy_bam(in_file, out_file):
    shutil.copy(in_file, out_file)


def _concat_bams(in_files, out_file):
    with closing(pysam.AlignmentFile(in_files[0], "rb", check_sq=False)) as template:
        with closing(pysam.AlignmentFile(out_file, "wb", template=template)) as out_handle:
            for in_file in in_files:
                with closing(pysam.AlignmentFile(in_file, "rb", check_sq=False)) as in_handle:
                    for read in in_handle.fetch(until_eof=True):
                        out_handle.write(read)


def run_fake_tool(call):
    """Produce the declared outputs of a tool call without running the tool.
    """
    args = list(call.base_args)
    if call.program == "samtools" and call.tool == "sort":
        _copy_bam(args[-1], _after(args, "-o")[0])
    elif call.tool == "MarkDuplicates":
        _copy_bam(_picard_opts(args, "INPUT")[0], _picard_opts(args, "OUTPUT")[0])
    elif call.tool == "MergeSamFiles":
        _concat_bams(_picard_opts(args, "INPUT"), _picard_opts(args, "OUTPUT")[0])
    elif call.tool in ("IndelRealigner", "PrintReads"):
        _copy_bam(_after(args, "-I")[0], _after(args, "-o")[0])
    for out_file in call.outputs:
        if not os.path.exists(out_file):
            with open(out_file, "w") as out_handle:
                out_handle.write("%s %s\n" % (call.program, call.tool))
    return list(call.outputs)


@pytest.fixture
def fake_invoke(mocker):
    """Patch tool invocation, recording every call made.
    """
    def _invoke(call, config, stage=None, region=None):
        return run_fake_tool(call)
    return mocker.patch("gatkflow.broad.invoke", side_effect=_invoke)


@pytest.fixture
def invoked(fake_invoke):
    """Tool names of all calls made so far, in order.
    """
    return lambda: [c[0][0].tool for c in fake_invoke.call_args_list]


@pytest.fixture
def bam_writer():
    return write_bam


@pytest.fixture
def bam_reads():
    return read_names


@pytest.fixture
def fake_tool():
    return run_fake_tool

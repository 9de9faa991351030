import os
import subprocess
import time

import pytest

from gatkflow import broad
from gatkflow.pipeline import artifact, main
from gatkflow.pipeline.main import RunState


@pytest.fixture
def input_dir(tmp_path, bam_writer):
    in_dir = tmp_path / "input"
    in_dir.mkdir()
    bam_writer(str(in_dir / "chr1.bam"), [("a1", "chr1", 100), ("a2", "chr1", 2000)])
    bam_writer(str(in_dir / "chr2.bam"), [("b1", "chr2", 300)])
    bam_writer(str(in_dir / "unmapped.bam"), [("u1", None, -1), ("u2", None, -1)])
    (in_dir / "notes.txt").write_text("not an alignment")
    return str(in_dir)


@pytest.fixture
def empty_dir(tmp_path):
    in_dir = tmp_path / "empty"
    in_dir.mkdir()
    return str(in_dir)


class TestRunState(object):

    def test_linear_progress(self):
        state = RunState()
        for new_state in [RunState.PREPROCESSING, RunState.VARIANT_DISCOVERY,
                          RunState.RECALIBRATION, RunState.COMPLETED]:
            assert state.advance(new_state) == new_state
        assert state.is_terminal

    def test_no_skipping(self):
        with pytest.raises(main.IllegalTransition):
            RunState().advance(RunState.RECALIBRATION)

    def test_no_reentry(self):
        state = RunState()
        state.advance(RunState.PREPROCESSING)
        with pytest.raises(main.IllegalTransition):
            state.advance(RunState.PREPROCESSING)

    def test_failed_is_absorbing(self):
        state = RunState()
        state.advance(RunState.PREPROCESSING)
        assert state.fail() == RunState.FAILED
        with pytest.raises(main.IllegalTransition):
            state.advance(RunState.VARIANT_DISCOVERY)
        with pytest.raises(main.IllegalTransition):
            state.fail()

    def test_cannot_fail_completed(self):
        state = RunState()
        for new_state in [RunState.PREPROCESSING, RunState.VARIANT_DISCOVERY,
                          RunState.RECALIBRATION, RunState.COMPLETED]:
            state.advance(new_state)
        with pytest.raises(main.IllegalTransition):
            state.fail()


def test_find_inputs_sorted(input_dir):
    inputs = main.find_inputs(input_dir)
    assert [x.basename for x in inputs] == ["chr1.bam", "chr2.bam", "unmapped.bam"]
    assert all(x.kind == artifact.RAW_ALIGNMENT for x in inputs)


class TestRunPipeline(object):

    def test_end_to_end(self, input_dir, config, fake_invoke, invoked, bam_reads):
        final = main.run_pipeline(input_dir, config)
        assert final.kind == artifact.MERGED_VCF
        assert final.path == os.path.join(config.out_dir, "merged.vcf.gz")

        out_files = set(os.listdir(config.out_dir))
        expected = ["chr1-sorted.bam", "chr2-sorted.bam", "unmapped-sorted.bam",
                    "merged-sorted-dedup.bam", "merged-sorted-dedup-metrics.txt",
                    "merged-sorted-dedup-realign.intervals",
                    "merged-sorted-dedup-chr1-realign.bam", "merged-sorted-dedup-chr2-realign.bam",
                    "merged-realigned-recal_data.table",
                    "merged-realigned-chr1-recal.bam", "merged-realigned-chr2-recal.bam",
                    "merged-realigned-unmapped-recal.bam",
                    "merged-realigned-chr1-recal.g.vcf.gz", "merged-realigned-chr2-recal.g.vcf.gz",
                    "merged.vcf.gz", "merged.vcf.gz.tbi"]
        for fname in expected:
            assert fname in out_files, fname
        assert "merged-sorted-dedup-unmapped-realign.bam" not in out_files
        assert "merged-realigned-unmapped-recal.g.vcf.gz" not in out_files

        # unmapped reads skip realignment, so never reach recalibration
        assert bam_reads(os.path.join(config.out_dir, "merged-sorted-dedup-unmapped.bam")) == ["u1", "u2"]
        assert bam_reads(os.path.join(config.out_dir, "merged-realigned-chr1-recal.bam")) == ["a1", "a2"]
        assert bam_reads(os.path.join(config.out_dir, "merged-realigned-unmapped-recal.bam")) == []

        tools = invoked()
        assert tools.count("sort") == 3
        assert tools.count("MarkDuplicates") == 1
        assert tools.count("IndelRealigner") == 2
        assert tools.count("PrintReads") == 3
        assert tools.count("HaplotypeCaller") == 2
        assert tools.count("GenotypeGVCFs") == 1
        assert "VariantRecalibrator" not in tools
        for earlier, later in [("MarkDuplicates", "RealignerTargetCreator"),
                               ("RealignerTargetCreator", "IndelRealigner"),
                               ("BaseRecalibrator", "PrintReads"),
                               ("PrintReads", "HaplotypeCaller"),
                               ("HaplotypeCaller", "GenotypeGVCFs")]:
            assert max(i for i, x in enumerate(tools) if x == earlier) < \
                min(i for i, x in enumerate(tools) if x == later)

    def test_with_vqsr(self, input_dir, make_config, fake_invoke):
        config = make_config(tools={"SNPVariantRecalibrator": "-an QD", "INDELVariantRecalibrator": "-an QD"})
        final = main.run_pipeline(input_dir, config)
        assert final.kind == artifact.RECALIBRATED_VCF
        assert final.path == os.path.join(config.out_dir, "merged-SNPrecal-INDELrecal.vcf.gz")

    def test_empty_input(self, empty_dir, config, fake_invoke):
        with pytest.raises(main.NoInputError) as excinfo:
            main.run_pipeline(empty_dir, config)
        assert excinfo.value.stage == "input-discovery"
        assert fake_invoke.call_count == 0

    def test_tool_failure_names_stage_and_tool(self, input_dir, config, mocker, fake_tool):
        def _fail_on_print_reads(call, config, stage=None, region=None):
            if call.tool == "PrintReads":
                raise broad.FatalToolError(1, "gatk3 -T PrintReads", "java.lang.OutOfMemoryError",
                                           program="gatk", tool="PrintReads", stage=stage)
            return fake_tool(call)
        mocker.patch("gatkflow.broad.invoke", side_effect=_fail_on_print_reads)
        with pytest.raises(main.PipelineFailure) as excinfo:
            main.run_pipeline(input_dir, config)
        assert excinfo.value.stage == "BQSR-apply"
        assert excinfo.value.tool == "PrintReads"
        assert isinstance(excinfo.value.__cause__, subprocess.CalledProcessError)
        assert not os.path.exists(os.path.join(config.out_dir, "merged.vcf.gz"))

    def test_rerun_with_added_input(self, tmp_path, config, invoked, bam_writer, bam_reads):
        in_dir = tmp_path / "lanes"
        in_dir.mkdir()
        bam_writer(str(in_dir / "s1.bam"), [("a1", "chr1", 100)])
        bam_writer(str(in_dir / "s2.bam"), [("b1", "chr2", 300)])
        main.run_pipeline(str(in_dir), config)
        past = time.time() - 100
        for base_dir in [config.work_dir, config.out_dir]:
            for root, _, files in os.walk(base_dir):
                for fname in files:
                    os.utime(os.path.join(root, fname), (past, past))
        bam_writer(str(in_dir / "s3.bam"), [("c1", "chr1", 700)])
        main.run_pipeline(str(in_dir), config)
        assert bam_reads(os.path.join(config.out_dir, "merged-sorted-dedup.bam")) == ["a1", "b1", "c1"]
        assert bam_reads(os.path.join(config.out_dir, "merged-realigned-chr1-recal.bam")) == ["a1", "c1"]
        tools = invoked()
        for tool in ["MarkDuplicates", "RealignerTargetCreator", "BaseRecalibrator", "GenotypeGVCFs"]:
            assert tools.count(tool) == 2, tool

    def test_inputs_differing_by_extension(self, tmp_path, config, fake_invoke, bam_writer):
        in_dir = tmp_path / "lanes"
        in_dir.mkdir()
        bam_writer(str(in_dir / "lane1.bam"), [("a1", "chr1", 100)])
        (in_dir / "lane1.sam").write_text("@HD\tVN:1.6\n")
        with pytest.raises(main.PipelineFailure) as excinfo:
            main.run_pipeline(str(in_dir), config)
        assert excinfo.value.stage == "input-discovery"
        assert "lane1.bam" in str(excinfo.value) and "lane1.sam" in str(excinfo.value)
        assert fake_invoke.call_count == 0

    def test_final_move_failure_names_stage(self, input_dir, config, fake_invoke, mocker):
        missing = artifact.Artifact(os.path.join(config.work_dir, "gone.vcf.gz"), artifact.MERGED_VCF)
        mocker.patch("gatkflow.variation.gatkfilter.recalibrate_variants", return_value=missing)
        with pytest.raises(main.PipelineFailure) as excinfo:
            main.run_pipeline(input_dir, config)
        assert excinfo.value.stage == "VQSR"
        assert isinstance(excinfo.value.__cause__, RuntimeError)



class TestRunMain(object):

    @pytest.fixture
    def tool_config(self, tmp_path):
        fname = tmp_path / "tools.properties"
        fname.write_text("HaplotypeCaller=--min_base_quality_score 20\n")
        return str(fname)

    def _args(self, ref_files, in_dir, tmp_path, tool_config):
        ref_file, known_sites = ref_files
        return ["-R", ref_file, "-I", in_dir, "-O", str(tmp_path / "out"), "-S", known_sites,
                "-C", tool_config, "-c", "2", "-w", str(tmp_path / "work")]

    def test_success(self, ref_files, input_dir, tmp_path, tool_config, fake_invoke):
        assert main.run_main(self._args(ref_files, input_dir, tmp_path, tool_config)) == 0
        assert os.path.exists(str(tmp_path / "out" / "merged.vcf.gz"))
        assert os.path.exists(str(tmp_path / "work" / "log" / "gatkflow.log"))

    def test_empty_input_exit_status(self, ref_files, empty_dir, tmp_path, tool_config, fake_invoke):
        assert main.run_main(self._args(ref_files, empty_dir, tmp_path, tool_config)) == 1
        assert fake_invoke.call_count == 0

    def test_bad_cores(self, ref_files, input_dir, tmp_path, tool_config, fake_invoke):
        args = self._args(ref_files, input_dir, tmp_path, tool_config)
        args[args.index("-c") + 1] = "0"
        assert main.run_main(args) == 1
        assert fake_invoke.call_count == 0

    def test_missing_config_file(self, ref_files, input_dir, tmp_path, fake_invoke):
        args = self._args(ref_files, input_dir, tmp_path, str(tmp_path / "missing.yaml"))
        assert main.run_main(args) == 1

    def test_missing_required_option(self):
        with pytest.raises(SystemExit):
            main.parse_cl_args(["-R", "ref.fa"])

    def test_parallel_type_from_cores(self):
        args = main.parse_cl_args(["-R", "r", "-I", "i", "-O", "o", "-S", "s", "-C", "c",
                                   "-c", "2", "-n", "8"])
        assert args.paralleltype == "multicore"
        assert args.cores_per_node == 2


def test_shared_stems():
    inputs = [artifact.Artifact("/in/%s" % x, artifact.RAW_ALIGNMENT)
              for x in ["a.bam", "a.sam", "b.bam"]]
    assert main.shared_stems(inputs) == ["a.bam", "a.sam"]
    assert main.shared_stems(inputs[1:]) == []

import os, sys
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest import mock

HERE = Path(os.path.realpath(__file__)).parent
sys.path = [str(p) for p in set([
    HERE.parent.joinpath("src")
]+sys.path)]

from comphifi.cli import main
from comphifi.constants import ASM_DIR, ASSEMBLER_BINARIES, GAPCLOSE_DIR, GAP_CLOSED, SCAFFOLDS, FINAL_EVAL_DIR
from comphifi.models import Artifacts, Checkpoint, ConfigError, RunConfig, ScaffoldState, StageFailure
from comphifi.pipeline import Pipeline, STAGE_NAMES
from comphifi.steps.common import ConfigureLogging
from stubs import MakeStubs, MakeInputs, ReadCalls, FASTA, FILLED_FASTA

ASSEMBLY_TOOLS = set(ASSEMBLER_BINARIES.values())

class PipelineTestCase(unittest.TestCase):
    STUB_OPTIONS = {}

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.root = Path(tmp.name).resolve()
        self.out = self.root.joinpath("out")
        self.inputs = MakeInputs(self.root)
        path, self.calls = MakeStubs(self.root, **self.STUB_OPTIONS)
        env = mock.patch.dict(os.environ, {"PATH": path})
        env.start()
        self.addCleanup(env.stop)
        self.addCleanup(ConfigureLogging)
        return

    def config(self, **kwargs):
        params = dict(
            output=self.out,
            hifi=[self.inputs["r1.fq"]],
            hic1=self.inputs["h1.fq"],
            hic2=self.inputs["h2.fq"],
            genome_size="5M",
            cpu=2,
        )|kwargs
        return RunConfig(**params)

    def read(self, p: Path):
        with open(p) as f:
            return f.read()

    def clear_calls(self):
        if self.calls.exists(): self.calls.unlink()

class TestFullRun(PipelineTestCase):
    def test_stages_run_in_order(self):
        p = Pipeline(self.config())
        state = p.Run()
        self.assertEqual(ScaffoldState.COMPLETE, state)
        self.assertEqual(STAGE_NAMES, p.visited)
        self.assertEqual(["assembly", "evaluation", "scaffold", "gap_close", "final_evaluation"], p.visited)
        cp = Checkpoint.Load(self.out)
        self.assertEqual(ScaffoldState.COMPLETE, cp.state)
        return

    def test_every_tool_is_called(self):
        Pipeline(self.config()).Run()
        called = ReadCalls(self.calls)
        for tool in ASSEMBLY_TOOLS|{"bwa", "juicer.sh", "run-asm-pipeline.sh", "run-asm-pipeline-post-review.sh", "quartet", "busco"}:
            self.assertIn(tool, called)
        self.assertNotIn("meryl", called)
        self.assertLess(called.index("hifiasm"), called.index("juicer.sh"))
        self.assertLess(called.index("run-asm-pipeline.sh"), called.index("run-asm-pipeline-post-review.sh"))
        self.assertLess(called.index("quartet"), called.index("busco"))
        return

    def test_cli_scenario(self):
        main([
            "run", "--hifi", str(self.inputs["r1.fq"]),
            "--hic1", str(self.inputs["h1.fq"]), "--hic2", str(self.inputs["h2.fq"]),
            "--genomeSize", "5M", "--cpu", "2", "-o", str(self.out),
        ])
        final = self.out.joinpath("04.gapClose/species.gapclosed.fa")
        self.assertTrue(final.exists())
        self.assertGreater(final.stat().st_size, 0)
        evals = self.out.joinpath(FINAL_EVAL_DIR)
        self.assertTrue(evals.joinpath("quast/report.tsv").exists())
        self.assertTrue(evals.joinpath("busco.short_summary.txt").exists())
        self.assertTrue(self.out.joinpath("02.asm_eval/summary.tsv").exists())
        self.assertTrue(self.out.joinpath("logs/comphifi.log").exists())
        return

    def test_assemblies_are_published(self):
        p = Pipeline(self.config())
        p.Run()
        asms = p.artifacts.Assemblies()
        self.assertEqual({"hifiasm", "verkko", "canu", "flye", "nextdenovo"}, set(asms))
        for name, path in asms.items():
            self.assertTrue(path.is_symlink(), name)
            self.assertEqual(self.out.joinpath("01.assemblies", f"{name}.asm.fa"), path)
        with open(self.out.joinpath("04.gapClose/all_contigs.fa")) as f:
            ids = [l[1:].strip() for l in f if l.startswith(">")]
        self.assertEqual(["verkko_ctg1", "canu_ctg1", "flye_ctg1", "nextdenovo_ctg1"], ids)
        return

    def test_merqury_when_enabled(self):
        p = Pipeline(self.config(merqury=True))
        p.Run()
        self.assertIn("merqury.sh", ReadCalls(self.calls))
        self.assertTrue(self.out.joinpath(FINAL_EVAL_DIR, "merqury/species.qv").exists())
        return

    def test_rerun_skips_completed_stages(self):
        Pipeline(self.config()).Run()
        self.clear_calls()
        p = Pipeline(self.config())
        self.assertEqual(ScaffoldState.COMPLETE, p.Run())
        self.assertEqual([], p.visited)
        self.assertEqual([], ReadCalls(self.calls))
        return

    def test_overwrite_reruns_everything(self):
        Pipeline(self.config()).Run()
        self.clear_calls()
        p = Pipeline(self.config(overwrite=True))
        p.Run()
        self.assertEqual(STAGE_NAMES, p.visited)
        self.assertIn("hifiasm", ReadCalls(self.calls))
        return

    def test_rerun_with_fewer_assemblers(self):
        Pipeline(self.config()).Run()
        self.clear_calls()
        p = Pipeline(self.config(assemblers=["hifiasm"]))
        self.assertEqual(["hifiasm"], list(p.artifacts.Assemblies()))
        self.assertEqual(["hifiasm"], list(Artifacts.Load(self.out).Assemblies()))
        p = Pipeline(self.config(assemblers=["hifiasm"], overwrite=True))
        self.assertEqual(ScaffoldState.COMPLETE, p.Run())
        called = ReadCalls(self.calls)
        self.assertNotIn("quartet", called)
        self.assertNotIn("verkko", called)
        self.assertEqual(["hifiasm"], list(p.artifacts.Assemblies()))
        self.assertEqual(self.read(p.artifacts.Get(SCAFFOLDS)), self.read(p.artifacts.Get(GAP_CLOSED)))
        return

    def test_new_primary_is_scaffolded_again(self):
        Pipeline(self.config()).Run()
        self.clear_calls()
        self.out.joinpath(ASM_DIR, "hifiasm.asm.fa").unlink()
        p = Pipeline(self.config())
        self.assertEqual(ScaffoldState.COMPLETE, p.Run())
        self.assertEqual(STAGE_NAMES, p.visited)
        called = ReadCalls(self.calls)
        for tool in ["hifiasm", "bwa", "juicer.sh", "run-asm-pipeline.sh", "run-asm-pipeline-post-review.sh"]:
            self.assertIn(tool, called)
        for tool in ["verkko", "canu", "flye", "nextDenovo"]:
            self.assertNotIn(tool, called)
        return

    def test_api_runs_single_step(self):
        config = self.config()
        config.Save()
        Pipeline(config).Run()
        self.clear_calls()
        main(["api", "--step", "evaluation", "-o", str(self.out)])
        self.assertEqual(["quast"], ReadCalls(self.calls))
        return

    def test_primary_only(self):
        p = Pipeline(self.config(assemblers=["hifiasm"]))
        p.Run()
        self.assertNotIn("quartet", ReadCalls(self.calls))
        self.assertEqual(self.read(p.artifacts.Get(SCAFFOLDS)), self.read(p.artifacts.Get(GAP_CLOSED)))
        return

class TestReview(PipelineTestCase):
    def pause(self):
        p = Pipeline(self.config(review=True))
        return p, p.Run()

    def test_stops_at_checkpoint(self):
        p, state = self.pause()
        self.assertEqual(ScaffoldState.AWAITING_REVIEW, state)
        self.assertEqual(["assembly", "evaluation", "scaffold"], p.visited)
        cp = Checkpoint.Load(self.out)
        self.assertEqual(ScaffoldState.AWAITING_REVIEW, cp.state)
        self.assertEqual(["assembly", "evaluation"], cp.completed)
        self.assertTrue(cp.draft_assembly.exists())
        self.assertTrue(cp.draft_fasta.exists())
        self.assertEqual([], cp.Problems())

        called = ReadCalls(self.calls)
        for tool in ["run-asm-pipeline-post-review.sh", "quartet", "busco"]:
            self.assertNotIn(tool, called)
        self.assertIsNone(p.artifacts.Get(GAP_CLOSED))
        self.assertFalse(self.out.joinpath("04.gapClose/species.gapclosed.fa").exists())
        return

    def test_cli_exits_cleanly_at_checkpoint(self):
        main([
            "run", "--hifi", str(self.inputs["r1.fq"]),
            "--hic1", str(self.inputs["h1.fq"]), "--hic2", str(self.inputs["h2.fq"]),
            "--genomeSize", "5M", "--cpu", "2", "-o", str(self.out), "--review",
        ])
        self.assertEqual(ScaffoldState.AWAITING_REVIEW, Checkpoint.Load(self.out).state)
        return

    def test_resume_skips_assembly(self):
        _, _ = self.pause()
        cp = Checkpoint.Load(self.out)
        reviewed = cp.workdir.joinpath("species.hifiasm.final.review.assembly")
        shutil.copy(cp.draft_assembly, reviewed)
        self.clear_calls()

        p = Pipeline(self.config(review=True))
        state = p.Resume(reviewed.name)
        self.assertEqual(ScaffoldState.COMPLETE, state)
        self.assertEqual(["scaffold", "gap_close", "final_evaluation"], p.visited)

        called = ReadCalls(self.calls)
        self.assertEqual(set(), ASSEMBLY_TOOLS & set(called))
        for tool in ["juicer.sh", "run-asm-pipeline.sh", "bwa"]:
            self.assertNotIn(tool, called)
        self.assertEqual("run-asm-pipeline-post-review.sh", called[0])
        with open(self.calls) as f:
            self.assertIn(reviewed.name, f.readline())
        self.assertTrue(self.out.joinpath("04.gapClose/species.gapclosed.fa").exists())
        self.assertEqual(ScaffoldState.COMPLETE, Checkpoint.Load(self.out).state)
        return

    def test_resume_through_cli(self):
        _, _ = self.pause()
        cp = Checkpoint.Load(self.out)
        shutil.copy(cp.draft_assembly, cp.workdir.joinpath("reviewed.assembly"))
        main(["resume", "--assembly", "reviewed.assembly", "-o", str(self.out)])
        self.assertTrue(self.out.joinpath(FINAL_EVAL_DIR, "busco.short_summary.txt").exists())
        return

    def test_resume_requires_reviewed_file(self):
        _, _ = self.pause()
        self.clear_calls()
        with self.assertRaises(ConfigError):
            Pipeline(self.config(review=True)).Resume("not_there.assembly")
        with self.assertRaises(ConfigError):
            Pipeline(self.config(review=True)).Resume("../elsewhere/reviewed.assembly")
        self.assertEqual([], ReadCalls(self.calls))
        return

    def test_resume_without_checkpoint(self):
        with self.assertRaises(ConfigError):
            Pipeline(self.config()).Resume("reviewed.assembly")
        return

    def test_resume_cli_requires_assembly_flag(self):
        with self.assertRaises(SystemExit) as e:
            main(["resume", "-o", str(self.out)])
        self.assertEqual(1, e.exception.code)
        return

class TestGapCloseFallback(PipelineTestCase):
    STUB_OPTIONS = dict(fill=False)

    def test_scaffolds_published_unchanged(self):
        p = Pipeline(self.config())
        p.Run()
        self.assertIn("quartet", ReadCalls(self.calls))
        scaffolds = p.artifacts.Get(SCAFFOLDS)
        gap_closed = p.artifacts.Get(GAP_CLOSED)
        with open(scaffolds, "rb") as a, open(gap_closed, "rb") as b:
            self.assertEqual(a.read(), b.read())
        self.assertEqual(FASTA, self.read(gap_closed))
        return

class TestGapCloseFilled(PipelineTestCase):
    def test_filled_genome_published(self):
        p = Pipeline(self.config())
        p.Run()
        self.assertEqual(FILLED_FASTA, self.read(p.artifacts.Get(GAP_CLOSED)))
        return

class TestAssemblerFailure(PipelineTestCase):
    STUB_OPTIONS = dict(failing=["verkko"])

    def test_fail_fast(self):
        p = Pipeline(self.config())
        with self.assertRaises(StageFailure) as e:
            p.Run()
        self.assertEqual("assembly", e.exception.stage)
        self.assertEqual(["assembly"], p.visited)
        called = ReadCalls(self.calls)
        self.assertNotIn("canu", called)
        self.assertNotIn("quast", called)
        return

    def test_keep_going(self):
        p = Pipeline(self.config(keep_going=True))
        self.assertEqual(ScaffoldState.COMPLETE, p.Run())
        self.assertNotIn("verkko", p.artifacts.Assemblies())
        self.assertIn("canu", p.artifacts.Assemblies())
        return

    def test_keep_going_overwrite_drops_earlier_result(self):
        MakeStubs(self.root)
        Pipeline(self.config()).Run()
        published = self.out.joinpath(ASM_DIR, "verkko.asm.fa")
        self.assertTrue(published.is_symlink())

        MakeStubs(self.root, failing=["verkko"])
        p = Pipeline(self.config(keep_going=True, overwrite=True))
        self.assertEqual(ScaffoldState.COMPLETE, p.Run())
        self.assertNotIn("verkko", p.artifacts.Assemblies())
        self.assertNotIn("verkko", Artifacts.Load(self.out).Assemblies())
        self.assertFalse(published.is_symlink() or published.exists())
        pool = self.read(self.out.joinpath(GAPCLOSE_DIR, "all_contigs.fa"))
        self.assertNotIn(">verkko_", pool)
        self.assertIn(">canu_", pool)
        return

    def test_cli_exit_code(self):
        with self.assertRaises(SystemExit) as e:
            main([
                "run", "--hifi", str(self.inputs["r1.fq"]),
                "--hic1", str(self.inputs["h1.fq"]), "--hic2", str(self.inputs["h2.fq"]),
                "--genomeSize", "5M", "--cpu", "2", "-o", str(self.out),
            ])
        self.assertEqual(1, e.exception.code)
        return

class TestPrimaryFailure(PipelineTestCase):
    STUB_OPTIONS = dict(failing=["hifiasm"])

    def test_keep_going_still_needs_primary(self):
        with self.assertRaises(StageFailure):
            Pipeline(self.config(keep_going=True)).Run()
        self.assertNotIn("verkko", ReadCalls(self.calls))
        return


if __name__ == '__main__':
    unittest.main()

"""
End-to-end tests: pipeline orchestration and the ``splicetracks`` command.
"""

import shlex
import sys
from functools import partial
from pathlib import Path

import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

import fake_scorers
from SpliceTracks.cli import main
from SpliceTracks.pipeline import PipelineSettings, run_pipeline
from SpliceTracks.reference import FastaSequenceProvider, load_chrom_sizes


@pytest.fixture
def reference(tmp_path):
    sequences = {
        "chr1": fake_scorers.random_sequence(510, seed=21),
        "chr2": fake_scorers.random_sequence(260, seed=22),
        "scaffold_a": "ACGTAGGTAAGT",
        "scaffold_b": "TTTAGGC",
        "scaffold_c": "G",
    }
    return sequences, fake_scorers.write_fasta(tmp_path / "genome.fa", sequences)


def _track_values(path):
    """Values of a wiggle track keyed by (chrom, position)."""
    values, chrom, position = {}, None, 0
    for line in path.read_text().splitlines():
        if line.startswith("fixedStep"):
            fields = dict(f.split("=") for f in line.split()[1:])
            chrom, position = fields["chrom"], int(fields["start"])
            continue
        values[(chrom, position)] = line
        position += 1
    return values


def _expected_track(sequences, strand, event):
    expected = {}
    for name, sequence in sequences.items():
        acc, don = fake_scorers.expected_values(sequence, strand)
        for i, value in enumerate(acc if event == "acceptor" else don):
            expected[(name, i + 1)] = value
    return expected


# ──────────────────────────────────────────────────────────────────────────────
# run_pipeline
# ──────────────────────────────────────────────────────────────────────────────

class TestRunPipeline:

    def test_four_tracks(self, reference, tmp_path):
        sequences, fasta = reference
        out = tmp_path / "run"
        summary = run_pipeline(
            FastaSequenceProvider(fasta).sequences(),
            str(fasta),
            out,
            provider_factory=partial(FastaSequenceProvider, str(fasta)),
            scorer_factory=fake_scorers.build,
            settings=PipelineSettings(chunk_size=200, overlap=25, workers=1),
        )
        assert summary.ok
        assert set(summary.tracks) == {"+", "-"}
        for strand, name in (("+", "plus"), ("-", "minus")):
            for event in ("acceptor", "donor"):
                path = out / "tracks" / f"{name}.{event}.wig"
                assert summary.tracks[strand][event] == path
                assert _track_values(path) == _expected_track(sequences, strand, event)

    def test_dispatch_files(self, reference, tmp_path):
        _, fasta = reference
        out = tmp_path / "run"
        records = FastaSequenceProvider(fasta).sequences()
        summary = run_pipeline(
            records, str(fasta), out,
            provider_factory=partial(FastaSequenceProvider, str(fasta)),
            scorer_factory=fake_scorers.build,
            settings=PipelineSettings(chunk_size=200, overlap=25, workers=1),
            scorer_target="fake_scorers:build",
        )
        assert load_chrom_sizes(out / "chrom.sizes") == records
        plan = pd.read_csv(out / "plan.tsv", sep="\t")
        assert len(plan) == len(summary.units)
        assert plan["bases"].sum() == sum(r.length for r in records)
        assert len((out / "jobs.jsonl").read_text().splitlines()) == len(summary.jobs)
        assert len((out / "jobList").read_text().splitlines()) == len(summary.jobs)

    def test_failed_strand_does_not_block_other(self, reference, tmp_path):
        sequences, fasta = reference
        out = tmp_path / "run"
        summary = run_pipeline(
            FastaSequenceProvider(fasta).sequences(),
            str(fasta),
            out,
            provider_factory=partial(fake_scorers.MinusFailingProvider, str(fasta)),
            scorer_factory=fake_scorers.build,
            settings=PipelineSettings(chunk_size=200, overlap=25, workers=1),
        )
        assert not summary.ok
        assert set(summary.tracks) == {"+"}
        assert set(summary.errors) == {"-"}
        plus = _track_values(out / "tracks" / "plus.donor.wig")
        assert plus == _expected_track(sequences, "+", "donor")
        assert not list((out / "tracks").glob("minus.*"))


# ──────────────────────────────────────────────────────────────────────────────
# Command line
# ──────────────────────────────────────────────────────────────────────────────

class TestCommandLine:

    def test_run(self, reference, tmp_path):
        sequences, fasta = reference
        out = tmp_path / "cli"
        status = main([
            "run", str(fasta),
            "--scorer", "fake_scorers:build",
            "--out-dir", str(out),
            "--chunk-size", "200", "--overlap", "25",
            "--workers", "1",
        ])
        assert status == 0
        assert (out / "splicetracks.log").exists()
        assert _track_values(out / "tracks" / "minus.acceptor.wig") == \
            _expected_track(sequences, "-", "acceptor")

    def test_plan_jobs_aggregate(self, reference, tmp_path):
        sequences, fasta = reference
        out = tmp_path / "cluster"
        assert main([
            "plan", str(fasta),
            "--scorer", "fake_scorers:build",
            "--out-dir", str(out),
            "--chunk-size", "200", "--overlap", "25",
        ]) == 0

        # Run the job list the way a scheduler would, in reverse order
        for line in reversed((out / "jobList").read_text().splitlines()):
            argv = shlex.split(line)
            assert argv[0] == "splicetracks"
            assert main(argv[1:]) == 0

        assert main([
            "aggregate",
            "--manifest", str(out / "jobs.jsonl"),
            "--chrom-sizes", str(out / "chrom.sizes"),
            "--artifact-dir", str(out / "results"),
            "--out-dir", str(out / "tracks"),
        ]) == 0
        assert _track_values(out / "tracks" / "plus.acceptor.wig") == \
            _expected_track(sequences, "+", "acceptor")

    def test_aggregate_with_missing_artifact_fails(self, reference, tmp_path):
        _, fasta = reference
        out = tmp_path / "cluster"
        main(["plan", str(fasta), "--scorer", "fake_scorers:build", "--out-dir", str(out)])
        status = main([
            "aggregate",
            "--manifest", str(out / "jobs.jsonl"),
            "--chrom-sizes", str(out / "chrom.sizes"),
            "--artifact-dir", str(out / "results"),
            "--out-dir", str(out / "tracks"),
            "--strand", "+",
        ])
        assert status == 1

    def test_run_job_unknown_id(self, reference, tmp_path):
        _, fasta = reference
        out = tmp_path / "cluster"
        main(["plan", str(fasta), "--scorer", "fake_scorers:build", "--out-dir", str(out)])
        status = main([
            "run-job",
            "--manifest", str(out / "jobs.jsonl"),
            "--job-id", "9999",
            "--scorer", "fake_scorers:build",
            "--out-dir", str(out / "results"),
        ])
        assert status == 1

    def test_planning_error_exit_status(self, tmp_path):
        sizes = tmp_path / "bad.sizes"
        sizes.write_text("chr1\t-3\n")
        status = main([
            "plan", str(tmp_path / "unused.fa"),
            "--chrom-sizes", str(sizes),
            "--scorer", "fake_scorers:build",
            "--out-dir", str(tmp_path / "out"),
        ])
        assert status == 1

    @pytest.mark.parametrize("target", [
        "fake_scorers:build_nothing",
        "fake_scorers:absent",
        "no_such_scorer_module:build",
        "fake_scorers",
    ])
    def test_run_job_bad_scorer_target(self, reference, tmp_path, target):
        _, fasta = reference
        out = tmp_path / "cluster"
        main(["plan", str(fasta), "--scorer", "fake_scorers:build", "--out-dir", str(out)])
        status = main([
            "run-job",
            "--manifest", str(out / "jobs.jsonl"),
            "--job-id", "0",
            "--scorer", target,
            "--out-dir", str(out / "results"),
        ])
        assert status == 1
        assert not list((out / "results").glob("job_*"))

    def test_aggregate_malformed_manifest(self, tmp_path):
        sizes = tmp_path / "chrom.sizes"
        sizes.write_text("chr1\t100\n")
        manifest = tmp_path / "jobs.jsonl"
        manifest.write_text("not a job\n")
        out = tmp_path / "tracks"
        status = main([
            "aggregate",
            "--manifest", str(manifest),
            "--chrom-sizes", str(sizes),
            "--artifact-dir", str(tmp_path),
            "--out-dir", str(out),
        ])
        assert status == 1
        assert "malformed job descriptor" in (out / "splicetracks.log").read_text()

    def test_missing_manifest(self, tmp_path):
        sizes = tmp_path / "chrom.sizes"
        sizes.write_text("chr1\t100\n")
        status = main([
            "aggregate",
            "--manifest", str(tmp_path / "absent.jsonl"),
            "--chrom-sizes", str(sizes),
            "--artifact-dir", str(tmp_path),
            "--out-dir", str(tmp_path / "tracks"),
        ])
        assert status == 1

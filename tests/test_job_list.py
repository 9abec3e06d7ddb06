"""
Tests for job list generation and the dispatch files (manifest, jobList).
"""

import json
import shlex
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from SpliceTracks import job_list
from SpliceTracks.models import BatchUnit, JobDescriptor, RangeUnit, SequenceRecord


@pytest.fixture
def units():
    return [
        RangeUnit("chr1", 1, 60, 1, 50, 100),
        RangeUnit("chr1", 41, 100, 51, 100, 100),
        BatchUnit(sequences=(SequenceRecord("s1", 7), SequenceRecord("s2", 9))),
    ]


class TestGenerate:

    def test_plus_list_then_minus_list(self, units):
        jobs = job_list.generate(units, "genome.fa", resolution=3, floor=0.05)
        assert len(jobs) == 6
        assert [j.strand for j in jobs] == ["+", "+", "+", "-", "-", "-"]
        assert [j.unit for j in jobs] == units + units

    def test_sequential_ids(self, units):
        jobs = job_list.generate(units, "genome.fa")
        assert [j.sequential_id for j in jobs] == list(range(6))

    def test_parameters_carried(self, units):
        job = job_list.generate(units, "genome.fa", resolution=3, floor=0.05)[0]
        assert (job.reference, job.resolution, job.floor) == ("genome.fa", 3, 0.05)

    def test_no_units(self):
        assert job_list.generate([], "genome.fa") == []

    def test_invalid_strand_rejected(self, units):
        with pytest.raises(ValueError):
            JobDescriptor(units[0], "x", 0, "g.fa", 2, 0.01)


class TestNaming:

    def test_artifact_names_unique(self, units):
        jobs = job_list.generate(units, "genome.fa")
        names = [job_list.artifact_name(j) for j in jobs]
        assert names[0] == "job_000000.plus.txt"
        assert names[3] == "job_000003.minus.txt"
        assert len(set(names)) == len(names)

    def test_jobs_by_strand(self, units):
        jobs = job_list.generate(units, "genome.fa")
        grouped = job_list.jobs_by_strand(list(reversed(jobs)))
        assert [j.sequential_id for j in grouped["+"]] == [0, 1, 2]
        assert [j.sequential_id for j in grouped["-"]] == [3, 4, 5]


class TestManifest:

    def test_round_trip(self, units, tmp_path):
        jobs = job_list.generate(units, "genome.fa", resolution=1, floor=0.2)
        path = job_list.write_manifest(jobs, tmp_path / "jobs.jsonl")
        assert job_list.read_manifest(path) == jobs

    def test_one_line_per_job(self, units, tmp_path):
        jobs = job_list.generate(units, "genome.fa")
        path = job_list.write_manifest(jobs, tmp_path / "jobs.jsonl")
        lines = path.read_text().splitlines()
        assert len(lines) == 6
        assert json.loads(lines[5])["unit"]["sequences"] == [["s1", 7], ["s2", 9]]

    def test_duplicate_id(self, units, tmp_path):
        job = job_list.generate(units, "genome.fa")[0]
        line = json.dumps(job.to_dict())
        path = tmp_path / "jobs.jsonl"
        path.write_text(line + "\n" + line + "\n")
        with pytest.raises(ValueError, match="duplicate"):
            job_list.read_manifest(path)

    def test_malformed_line(self, tmp_path):
        path = tmp_path / "jobs.jsonl"
        path.write_text('{"strand": "+"}\n')
        with pytest.raises(ValueError, match="malformed"):
            job_list.read_manifest(path)

    def test_unknown_unit_kind(self, units, tmp_path):
        data = job_list.generate(units, "genome.fa")[0].to_dict()
        data["unit"]["kind"] = "mystery"
        path = tmp_path / "jobs.jsonl"
        path.write_text(json.dumps(data) + "\n")
        with pytest.raises(ValueError):
            job_list.read_manifest(path)

    def test_find_job(self, units):
        jobs = job_list.generate(units, "genome.fa")
        assert job_list.find_job(jobs, 4) is jobs[4]
        with pytest.raises(KeyError):
            job_list.find_job(jobs, 99)


class TestJobListFile:

    def test_commands(self, units, tmp_path):
        jobs = job_list.generate(units, "genome.fa")
        path = job_list.write_job_list(
            jobs, tmp_path / "jobList",
            manifest=tmp_path / "jobs.jsonl",
            out_dir=tmp_path / "my results",
            scorer="pkg.mod:build",
        )
        lines = path.read_text().splitlines()
        assert len(lines) == len(jobs)
        argv = shlex.split(lines[2])
        assert argv[:2] == ["splicetracks", "run-job"]
        assert argv[argv.index("--job-id") + 1] == "2"
        assert argv[argv.index("--out-dir") + 1] == str(tmp_path / "my results")
        assert argv[argv.index("--scorer") + 1] == "pkg.mod:build"

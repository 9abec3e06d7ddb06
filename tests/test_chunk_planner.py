"""
Tests for the chunk planner:

  - range unit tiling and overlap clamping
  - short-sequence batching (count and size caps)
  - seeded permutation determinism
  - parameter / input validation
  - plan summary table
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from SpliceTracks.chunk_planner import ChunkPlanner, batch_units, permute, plan, range_units
from SpliceTracks.errors import PlanningError
from SpliceTracks.models import BatchUnit, RangeUnit, SequenceRecord


def _covered(units, name):
    """Output intervals of *name* in planning order."""
    spans = []
    for unit in units:
        for segment in unit.segments():
            if segment.name == name:
                spans.append((segment.output_start, segment.output_end))
    return spans


# ──────────────────────────────────────────────────────────────────────────────
# Range units
# ──────────────────────────────────────────────────────────────────────────────

class TestRangeUnits:

    def test_twenty_megabase_sequence(self):
        units = range_units(SequenceRecord("chr1", 20_000_000), 6_000_000, 50_000)
        assert [(u.fetch_start, u.fetch_end) for u in units] == [
            (1, 6_050_000),
            (5_950_001, 12_050_000),
            (11_950_001, 18_050_000),
            (17_950_001, 20_000_000),
        ]
        assert [(u.output_start, u.output_end) for u in units] == [
            (1, 6_000_000),
            (6_000_001, 12_000_000),
            (12_000_001, 18_000_000),
            (18_000_001, 20_000_000),
        ]
        assert all(u.sequence_length == 20_000_000 for u in units)

    def test_length_equal_to_chunk_is_one_range(self):
        units = range_units(SequenceRecord("chrX", 1_000), 1_000, 100)
        assert len(units) == 1
        assert (units[0].fetch_start, units[0].fetch_end) == (1, 1_000)
        assert (units[0].output_start, units[0].output_end) == (1, 1_000)

    def test_zero_overlap_rejected(self):
        with pytest.raises(PlanningError, match="overlap"):
            ChunkPlanner(chunk_size=10, overlap=0).plan([SequenceRecord("c", 25)])

    def test_single_base_overlap(self):
        units = ChunkPlanner(chunk_size=10, overlap=1).plan([SequenceRecord("c", 25)])
        assert [(u.fetch_start, u.fetch_end) for u in units] == [(1, 11), (10, 21), (20, 25)]

    def test_overlap_larger_than_chunk_is_clamped(self):
        units = range_units(SequenceRecord("c", 30), 10, 50)
        assert all(u.fetch_start == 1 and u.fetch_end == 30 for u in units)

    def test_fetch_contains_output(self):
        for unit in range_units(SequenceRecord("c", 12_345), 1_000, 77):
            assert unit.fetch_start <= unit.output_start <= unit.output_end <= unit.fetch_end


# ──────────────────────────────────────────────────────────────────────────────
# Batching
# ──────────────────────────────────────────────────────────────────────────────

class TestBatchUnits:

    def test_batch_closes_before_reaching_count(self):
        records = [SequenceRecord(f"s{i}", 10) for i in range(5)]
        batches = batch_units(records, chunk_size=1_000, max_batch_count=3)
        assert [len(b.sequences) for b in batches] == [2, 2, 1]

    def test_batch_closes_on_size(self):
        records = [SequenceRecord(f"s{i}", 40) for i in range(3)]
        batches = batch_units(records, chunk_size=100, max_batch_count=1_000)
        assert [b.sequence_names for b in batches] == [("s0", "s1"), ("s2",)]

    def test_batch_may_fill_chunk_exactly(self):
        records = [SequenceRecord("a", 50), SequenceRecord("b", 50)]
        batches = batch_units(records, chunk_size=100, max_batch_count=1_000)
        assert len(batches) == 1
        assert batches[0].output_bases == 100

    def test_order_preserved(self):
        records = [SequenceRecord(n, 5) for n in ("z", "a", "m")]
        batches = batch_units(records, chunk_size=1_000, max_batch_count=1_000)
        assert batches[0].sequence_names == ("z", "a", "m")

    def test_max_batch_count_one(self):
        records = [SequenceRecord(f"s{i}", 5) for i in range(3)]
        batches = batch_units(records, chunk_size=1_000, max_batch_count=1)
        assert [len(b.sequences) for b in batches] == [1, 1, 1]

    def test_empty(self):
        assert batch_units([], chunk_size=10, max_batch_count=10) == []


# ──────────────────────────────────────────────────────────────────────────────
# Planner
# ──────────────────────────────────────────────────────────────────────────────

class TestChunkPlanner:

    @pytest.fixture
    def genome(self):
        records = [SequenceRecord("chr1", 20_000_000), SequenceRecord("chr2", 1_000_000)]
        records += [SequenceRecord(f"scaffold_{i}", 1_000 + i) for i in range(50)]
        return records

    def test_megabase_sequence_is_batched(self, genome):
        units = ChunkPlanner(chunk_size=6_000_000, overlap=50_000).plan(genome)
        batches = [u for u in units if isinstance(u, BatchUnit)]
        holding = [b for b in batches if "chr2" in b.sequence_names]
        assert len(holding) == 1
        assert len(holding[0].sequences) > 1
        assert _covered(units, "chr2") == [(1, 1_000_000)]

    def test_ranges_before_batches(self, genome):
        units = ChunkPlanner(chunk_size=6_000_000, overlap=50_000).plan(genome)
        kinds = [u.kind for u in units]
        assert kinds == sorted(kinds, key=lambda k: k != "range")
        assert kinds.count("range") == 4

    def test_every_base_covered_exactly_once(self):
        records = [SequenceRecord("a", 2_500), SequenceRecord("b", 999),
                   SequenceRecord("c", 1_000), SequenceRecord("d", 3)]
        units = ChunkPlanner(chunk_size=1_000, overlap=100, max_batch_count=10).plan(records)
        for record in records:
            spans = sorted(_covered(units, record.name))
            assert spans[0][0] == 1
            assert spans[-1][1] == record.length
            for (_, end), (start, _) in zip(spans, spans[1:]):
                assert start == end + 1

    def test_min_size_drops_short_sequences(self):
        records = [SequenceRecord("long", 500), SequenceRecord("tiny", 9)]
        units = ChunkPlanner(chunk_size=1_000, overlap=10, min_size=10).plan(records)
        assert _covered(units, "tiny") == []
        assert _covered(units, "long") == [(1, 500)]

    def test_deterministic_for_seed(self, genome):
        first = ChunkPlanner(chunk_size=6_000_000, overlap=50_000, seed=7).plan(genome)
        second = ChunkPlanner(chunk_size=6_000_000, overlap=50_000, seed=7).plan(list(reversed(genome)))
        assert first == second

    def test_seed_changes_batch_order(self, genome):
        a = ChunkPlanner(chunk_size=6_000_000, overlap=50_000, max_batch_count=5, seed=1).plan(genome)
        b = ChunkPlanner(chunk_size=6_000_000, overlap=50_000, max_batch_count=5, seed=2).plan(genome)
        assert a != b

    def test_functional_plan_matches_class(self, genome):
        assert plan(genome, 6_000_000, 50_000, 1, 1_000, seed=3) == \
            ChunkPlanner(6_000_000, 50_000, 1, 1_000, 3).plan(genome)

    def test_permute_leaves_global_random_alone(self):
        import random
        random.seed(123)
        expected = random.random()
        random.seed(123)
        permute([SequenceRecord(str(i), 1) for i in range(20)], seed=5)
        assert random.random() == expected


class TestPlannerValidation:

    @pytest.mark.parametrize("kwargs", [
        {"chunk_size": 0},
        {"overlap": -1},
        {"overlap": 0},
        {"min_size": 0},
        {"max_batch_count": 0},
    ])
    def test_bad_parameters(self, kwargs):
        with pytest.raises(PlanningError):
            ChunkPlanner(**kwargs)

    def test_empty_input(self):
        with pytest.raises(PlanningError):
            ChunkPlanner().plan([])

    def test_duplicate_names(self):
        with pytest.raises(PlanningError, match="Duplicate"):
            ChunkPlanner().plan([SequenceRecord("a", 5), SequenceRecord("a", 6)])

    @pytest.mark.parametrize("length", [0, -4, 2.5])
    def test_bad_length(self, length):
        with pytest.raises(PlanningError):
            ChunkPlanner().plan([SequenceRecord("a", length)])


class TestSummarize:

    def test_summary_columns_and_rows(self):
        records = [SequenceRecord("big", 25), SequenceRecord("s1", 3), SequenceRecord("s2", 4)]
        units = ChunkPlanner(chunk_size=10, overlap=2).plan(records)
        df = ChunkPlanner.summarize(units)
        assert list(df.columns) == ["unit", "kind", "sequences", "fetch_start", "fetch_end",
                                    "output_start", "output_end", "members", "bases"]
        assert len(df) == len(units)
        assert df["bases"].sum() == 32
        ranges = df[df["kind"] == "range"]
        assert ranges["output_start"].tolist() == [1, 11, 21]
        batch = df[df["kind"] == "batch"].iloc[0]
        assert batch["members"] == 2
        assert sorted(batch["sequences"].split(",")) == ["s1", "s2"]

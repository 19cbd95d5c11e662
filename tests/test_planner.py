import math

import pytest

from chunk_pipeline.errors import InvalidInput
from chunk_pipeline.models import ChunkTask
from chunk_pipeline.planner import estimate_offset, plan_chunks


class TestPlanChunks:
    @pytest.mark.parametrize(
        "file_size,chunk_size",
        [(1, 1), (1, 100), (100, 100), (101, 100), (250, 100), (10_000, 7), (26_214_401, 26_214_400)],
    )
    def test_chunks_tile_the_file(self, file_size, chunk_size):
        tasks = plan_chunks(file_size, chunk_size)
        assert len(tasks) == math.ceil(file_size / chunk_size)
        assert tasks[0].start_byte == 0
        assert tasks[-1].end_byte == file_size
        for prev, nxt in zip(tasks, tasks[1:]):
            assert prev.end_byte == nxt.start_byte
        assert all(0 < t.size <= chunk_size for t in tasks)
        assert [t.index for t in tasks] == list(range(len(tasks)))

    def test_last_chunk_is_shorter(self):
        tasks = plan_chunks(250, 100)
        assert tasks == [
            ChunkTask(index=0, start_byte=0, end_byte=100),
            ChunkTask(index=1, start_byte=100, end_byte=200),
            ChunkTask(index=2, start_byte=200, end_byte=250),
        ]

    @pytest.mark.parametrize("file_size,chunk_size", [(0, 100), (-5, 100), (100, 0), (100, -1)])
    def test_rejects_non_positive_sizes(self, file_size, chunk_size):
        with pytest.raises(InvalidInput):
            plan_chunks(file_size, chunk_size)

    def test_invalid_input_is_a_value_error(self):
        with pytest.raises(ValueError, match="file_size_bytes must be positive"):
            plan_chunks(0, 10)

    def test_tasks_are_immutable(self):
        task = plan_chunks(10, 5)[0]
        with pytest.raises(AttributeError):
            task.index = 3


class TestEstimateOffset:
    def test_offset_is_index_times_duration(self):
        tasks = plan_chunks(350, 100)
        assert [estimate_offset(t, 100, 30.0) for t in tasks] == [0.0, 30.0, 60.0, 90.0]

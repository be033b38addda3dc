# pylint: disable=missing-module-docstring,missing-function-docstring

from audio.chunks import AudioChunk, AudioEncoding
from audio.queues import PlaybackQueue


def make_chunk(seq: int, samples: int = 240) -> AudioChunk:
    return AudioChunk(
        data=b"\x00\x00" * samples,
        encoding=AudioEncoding.PCM16,
        sequence_num=seq,
        sample_rate_hz=24_000,
    )


# ---------------------------------------------------------------------
# depth_seconds math
# ---------------------------------------------------------------------

def test_depth_seconds_exact():
    q = PlaybackQueue()

    q.append(make_chunk(1))
    q.append(make_chunk(2))
    q.append(make_chunk(3))

    assert q.depth_seconds() == 3 * 240 / 24_000


def test_containers_do_not_count_towards_depth():
    q = PlaybackQueue()
    q.append(AudioChunk(data=b"RIFF" + b"\x00" * 60, encoding=AudioEncoding.WAV, sequence_num=1))

    assert len(q) == 1
    assert q.depth_seconds() == 0.0


# ---------------------------------------------------------------------
# take_all / clear
# ---------------------------------------------------------------------

def test_take_all_returns_arrival_order_and_empties():
    q = PlaybackQueue()
    q.append(make_chunk(2))
    q.append(make_chunk(1))
    q.append(make_chunk(3))

    taken = q.take_all()

    assert [c.sequence_num for c in taken] == [1, 2, 3]
    assert q.is_empty()
    assert q.take_all() == ()


def test_taken_and_discarded_accounted_separately():
    q = PlaybackQueue()
    q.append(make_chunk(1))
    q.take_all()
    q.append(make_chunk(2))
    q.append(make_chunk(3))

    assert q.clear() == 2
    assert q.clear() == 0

    snap = q.snapshot()
    assert snap["enqueued"] == 3
    assert snap["taken"] == 1
    assert snap["discarded"] == 2
    assert snap["chunks"] == 0

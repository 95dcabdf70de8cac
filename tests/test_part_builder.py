import random

import pytest

from bulkexport.engine.context import PartState
from bulkexport.engine.part_builder import PartBuilder


def _lines(sizes):
    return [b"x" * (s - 1) + b"\n" for s in sizes]


def test_seals_when_next_line_would_exceed_cap():
    parts = list(PartBuilder(10).build(_lines([4, 4, 4])))
    assert [p.payload for p in parts] == [b"xxx\nxxx\n", b"xxx\n"]
    assert [p.part_number for p in parts] == [1, 2]
    assert all(p.state is PartState.PENDING for p in parts)


def test_exact_fit_stays_in_one_part():
    parts = list(PartBuilder(8).build(_lines([4, 4])))
    assert len(parts) == 1
    assert parts[0].size == 8


def test_oversized_line_forms_its_own_part():
    lines = _lines([3, 25, 3])
    parts = list(PartBuilder(10).build(lines))
    assert [p.size for p in parts] == [3, 25, 3]
    assert parts[1].payload == lines[1]  # niet afgekapt


def test_no_input_no_parts():
    b = PartBuilder(10)
    assert list(b.build([])) == []
    assert b.parts_sealed == 0


def test_add_after_finish_rejected():
    b = PartBuilder(10)
    b.finish()
    with pytest.raises(RuntimeError):
        b.add(b"a\n")


def test_invalid_cap():
    with pytest.raises(ValueError):
        PartBuilder(0)


@pytest.mark.parametrize("seed", [1, 7, 42])
def test_random_lines_respect_cap_order_and_numbering(seed):
    rnd = random.Random(seed)
    cap = 200
    lines = _lines([rnd.randint(1, 260) for _ in range(500)])

    parts = list(PartBuilder(cap).build(lines))

    # assemblage = originele stroom, geen regel gesplitst
    assert b"".join(p.payload for p in parts) == b"".join(lines)
    for p in parts:
        assert p.size > 0
        assert p.payload.endswith(b"\n")
        if p.size > cap:
            assert p.payload.count(b"\n") == 1  # alleen een enkele te grote regel
    assert [p.part_number for p in parts] == list(range(1, len(parts) + 1))

"""Tests for greedy priority-first span selection."""

from clarity_signals.interval_matcher import choose_non_overlapping, spans_overlap


def _pick(cands):
    return choose_non_overlapping(cands, span_of=lambda c: (c[0], c[1]), priority_of=lambda c: c[2])


class TestSpansOverlap:

    def test_touching_spans_do_not_overlap(self):
        assert not spans_overlap((0, 5), (5, 9))

    def test_nested_spans_overlap(self):
        assert spans_overlap((0, 10), (3, 4))


class TestChooseNonOverlapping:

    def test_empty(self):
        assert _pick([]) == []

    def test_priority_beats_length(self):
        long_low = (0, 20, 1)
        short_high = (5, 8, 9)
        assert _pick([long_low, short_high]) == [short_high]

    def test_length_breaks_priority_ties(self):
        assert _pick([(0, 3, 5), (0, 6, 5)]) == [(0, 6, 5)]

    def test_start_breaks_full_ties(self):
        assert _pick([(4, 8, 5), (2, 6, 5)]) == [(2, 6, 5)]

    def test_result_sorted_by_start(self):
        assert _pick([(10, 12, 1), (0, 2, 9), (5, 7, 3)]) == [(0, 2, 9), (5, 7, 3), (10, 12, 1)]

    def test_greedy_not_length_optimal(self):
        """A high-priority middle span knocks out two lower ones even though they cover more."""
        picked = _pick([(0, 5, 1), (4, 7, 9), (6, 12, 1)])
        assert picked == [(4, 7, 9)]

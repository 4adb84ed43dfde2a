"""Tests for expected mutation counts."""

import math

import pytest

from genovo.expect import aggregate, expected_number_of_mutations, read_expected, write_expected
from genovo.modules.errors import MalformedInput
from genovo.modules.mutation import MutationType, PossibleMutation


def possible(transcript_id, *records):
    return [PossibleMutation(transcript_id, MutationType(code), p) for code, p in records]


class TestAggregate:
    """Tests for summing probabilities per type."""

    def test_sum_per_type(self) -> None:
        mutations = possible('T1', (1, 0.1), (2, 0.2), (1, 0.3), (6, 0.5))
        assert aggregate(mutations) == {
            MutationType.SYNONYMOUS: pytest.approx(0.4),
            MutationType.MISSENSE: 0.2,
            MutationType.SPLICE_SITE: 0.5,
        }

    def test_only_types_with_mutations(self) -> None:
        assert aggregate([]) == {}
        assert list(aggregate(possible('T1', (3, 0.1)))) == [MutationType.NONSENSE]

    def test_exact_summation(self) -> None:
        values = [0.1] * 10 + [1e-16] * 1000
        mutations = possible('T1', *((1, v) for v in values))
        assert aggregate(mutations)[MutationType.SYNONYMOUS] == math.fsum(values)
        assert aggregate(reversed(mutations))[MutationType.SYNONYMOUS] == math.fsum(values)

    def test_expected_number_of_mutations(self) -> None:
        result = expected_number_of_mutations({
            'T1': possible('T1', (1, 0.1)),
            'T2': possible('T2', (2, 0.2)),
            'T3': [],
        })
        assert result == {'T1': {MutationType.SYNONYMOUS: 0.1}, 'T2': {MutationType.MISSENSE: 0.2}, 'T3': {}}

    def test_filter_for_id(self) -> None:
        result = expected_number_of_mutations({'T1': possible('T1', (1, 0.1)), 'T2': []}, 'T1')
        assert list(result) == ['T1']


class TestExpectedFile:
    """Tests for the expected-mutations table."""

    def test_write_and_read(self, tmp_path) -> None:
        expected = {'T1': {MutationType.SYNONYMOUS: 0.1 + 0.2, MutationType.SPLICE_SITE: 1e-09}, 'T2': {}}
        path = tmp_path / "expected.tsv"
        write_expected(path, expected)
        lines = path.read_text().splitlines()
        assert lines[0] == "transcript_id\ttype\texpected"
        assert lines[1] == "T1\t1\t0.30000000000000004"
        loaded = read_expected(path)
        assert loaded == {'T1': expected['T1']}
        assert read_expected(path, 'T2') == {}

    def test_empty(self, tmp_path) -> None:
        path = tmp_path / "expected.tsv"
        write_expected(path, {})
        assert read_expected(path) == {}

    @pytest.mark.parametrize("row", ["T1\t7\t0.1", "T1\t1\tabc", "T1\t1\t-0.5", "T1\t1"])
    def test_malformed(self, tmp_path, row) -> None:
        path = tmp_path / "expected.tsv"
        path.write_text("transcript_id\ttype\texpected\nT0\t1\t0.5\n" + row + "\n")
        with pytest.raises(MalformedInput) as e:
            read_expected(path)
        assert e.value.line == 3

    def test_blank_lines_keep_line_numbers(self, tmp_path) -> None:
        path = tmp_path / "expected.tsv"
        path.write_text("transcript_id\ttype\texpected\n\nT1\t1\t0.5\nT1\t9\t0.1\n")
        with pytest.raises(MalformedInput) as e:
            read_expected(path)
        assert e.value.line == 4

    def test_blank_lines_are_ignored(self, tmp_path) -> None:
        path = tmp_path / "expected.tsv"
        path.write_text("transcript_id\ttype\texpected\nT1\t1\t0.5\n\nT1\t2\t0.25\n")
        assert read_expected(path) == {'T1': {MutationType.SYNONYMOUS: 0.5, MutationType.MISSENSE: 0.25}}

    def test_missing_column(self, tmp_path) -> None:
        path = tmp_path / "expected.tsv"
        path.write_text("transcript_id\ttype\nT1\t1\n")
        with pytest.raises(MalformedInput):
            read_expected(path)

"""Tests for classifying observed mutations."""

import pytest

from genovo.modules.errors import MalformedInput, ReferenceMismatch
from genovo.modules.mutation import ClassifiedMutation, MutationType, ObservedMutation
from genovo.modules.parse import read_observed_mutations
from genovo.modules.regions import Transcript
from genovo.observed import (classify_mutations, classify_observed, read_classified, tally_observed,
                             write_classified, write_observed_counts)


class TestClassifyObserved:
    """Tests for single observed mutations."""

    def test_classify(self, genome, plus_transcript) -> None:
        result = classify_observed(ObservedMutation('chr1', 30, 'G', 'A'), plus_transcript, genome)
        assert result == ClassifiedMutation('chr1', 30, 'G', 'A', 'T1', MutationType.NONSENSE)

    def test_reference_mismatch_outside_cds(self, genome, plus_transcript) -> None:
        with pytest.raises(ReferenceMismatch) as e:
            classify_observed(ObservedMutation('chr1', 20, 'C', 'A'), plus_transcript, genome)
        assert e.value.found == 'G'

    def test_reference_mismatch_on_minus_strand(self, genome, minus_transcript) -> None:
        with pytest.raises(ReferenceMismatch):
            classify_observed(ObservedMutation('chr2', 35, 'T', 'G'), minus_transcript, genome)


class TestClassifyMutations:
    """Tests for assigning observed mutations to transcripts."""

    def test_classify_file(self, genome, observed_path, plus_transcript, minus_transcript) -> None:
        observed = read_observed_mutations(observed_path)
        classified = classify_mutations(observed, [plus_transcript, minus_transcript], genome)
        assert [(m.transcript_id, m.position, m.mutation_type) for m in classified] == [
            ('T1', 14, MutationType.START_CODON),
            ('T1', 20, MutationType.SPLICE_SITE),
            ('T1', 30, MutationType.NONSENSE),
            ('T2', 35, MutationType.START_CODON),
        ]

    def test_filter_for_id(self, genome, observed_path, plus_transcript, minus_transcript) -> None:
        observed = read_observed_mutations(observed_path)
        classified = classify_mutations(observed, [plus_transcript, minus_transcript], genome, filter_for_id='T2')
        assert [m.transcript_id for m in classified] == ['T2']

    def test_overlapping_transcripts(self, genome, plus_transcript) -> None:
        readthrough = Transcript('T1b', 'chr1', '+', ((10, 40),))
        observed = [ObservedMutation('chr1', 25, 'T', 'A'), ObservedMutation('chr1', 14, 'T', 'C')]
        classified = classify_mutations(observed, [plus_transcript, readthrough], genome)
        assert [(m.transcript_id, m.position, m.mutation_type) for m in classified] == [
            ('T1', 14, MutationType.START_CODON),
            ('T1b', 14, MutationType.UNKNOWN),
            ('T1b', 25, MutationType.UNKNOWN),
        ]

    def test_mismatch_aborts(self, genome, plus_transcript) -> None:
        observed = [ObservedMutation('chr1', 14, 'T', 'C'), ObservedMutation('chr1', 31, 'A', 'C')]
        with pytest.raises(ReferenceMismatch):
            classify_mutations(observed, [plus_transcript], genome)

    def test_intergenic_mismatch_aborts(self, genome, plus_transcript) -> None:
        observed = [ObservedMutation('chr1', 14, 'T', 'C'), ObservedMutation('chr1', 2, 'A', 'T')]
        with pytest.raises(ReferenceMismatch) as e:
            classify_mutations(observed, [plus_transcript], genome)
        assert (e.value.position, e.value.found) == (2, 'G')

    def test_tally(self, genome, observed_path, plus_transcript, minus_transcript) -> None:
        classified = classify_mutations(
            read_observed_mutations(observed_path), [plus_transcript, minus_transcript], genome
        )
        assert tally_observed(classified) == {
            'T1': {MutationType.NONSENSE: 1, MutationType.START_CODON: 1, MutationType.SPLICE_SITE: 1},
            'T2': {MutationType.START_CODON: 1},
        }


class TestClassifiedFile:
    """Tests for the classified-mutations and observed-counts tables."""

    def test_write_and_read(self, tmp_path) -> None:
        classified = [
            ClassifiedMutation('chr1', 14, 'T', 'C', 'T1', MutationType.START_CODON),
            ClassifiedMutation('chr2', 35, 'A', 'G', 'T2', MutationType.START_CODON),
        ]
        path = tmp_path / "classified.tsv"
        write_classified(path, classified)
        lines = path.read_text().splitlines()
        assert lines[0] == "chromosome\tposition\treference\talternate\ttranscript_id\ttype"
        assert lines[1] == "chr1\t15\tT\tC\tT1\t5"
        assert read_classified(path) == classified
        assert read_classified(path, 'T2') == classified[1:]

    @pytest.mark.parametrize("row", [
        "chr1\t0\tT\tC\tT1\t5",
        "chr1\tx\tT\tC\tT1\t5",
        "chr1\t15\tT\tT\tT1\t5",
        "chr1\t15\tT\tC\tT1\t8",
    ])
    def test_malformed(self, tmp_path, row) -> None:
        path = tmp_path / "classified.tsv"
        path.write_text("chromosome\tposition\treference\talternate\ttranscript_id\ttype\n" + row + "\n")
        with pytest.raises(MalformedInput) as e:
            read_classified(path)
        assert e.value.line == 2

    def test_blank_lines_keep_line_numbers(self, tmp_path) -> None:
        path = tmp_path / "classified.tsv"
        path.write_text(
            "chromosome\tposition\treference\talternate\ttranscript_id\ttype\n"
            "chr1\t15\tT\tC\tT1\t5\n\n\nchr1\t0\tT\tC\tT1\t5\n"
        )
        with pytest.raises(MalformedInput) as e:
            read_classified(path)
        assert e.value.line == 5

    def test_observed_counts(self, tmp_path) -> None:
        path = tmp_path / "counts.tsv"
        write_observed_counts(path, {'T1': {MutationType.MISSENSE: 2, MutationType.SPLICE_SITE: 1}})
        assert path.read_text().splitlines() == [
            "transcript_id\tunknown\tsynonymous\tmissense\tnonsense\tstop_loss\tstart_codon\tsplice_site",
            "T1\t0\t0\t2\t0\t0\t0\t1",
        ]

import json
from typing import Dict, Iterable, List, Optional, Union

from Bio.Data import CodonTable
from Bio.Seq import reverse_complement

from genovo.modules.errors import GenomeLookupError, ReferenceMismatch
from genovo.modules.mutation import MutationType
from genovo.modules.regions import Transcript

_COMPLEMENT = str.maketrans('ACGTN', 'TGCAN')
STOP = '*'


def single_flip(base: str) -> str:
    '''Convert nucleotide to its complement.'''
    return base.translate(_COMPLEMENT)


class GeneticCode:
    '''Codon to amino acid lookup.

    Attributes:
        codons (Dict[str, str]): Codon -> one letter amino acid ('*' for stop)
        start_codons (frozenset): Codons accepted as translation start
    '''

    def __init__(self, codons: Dict[str, str], start_codons: Iterable[str]) -> None:
        self.codons = dict(codons)
        self.start_codons = frozenset(codon.upper() for codon in start_codons)

    @classmethod
    def from_ncbi(cls, table_id: int = 1, start_codons: Optional[Iterable[str]] = None) -> 'GeneticCode':
        '''Build from one of the NCBI translation tables shipped with Biopython.

        Args:
            table_id (int): NCBI translation table id (1 = standard code)
            start_codons: Start codons to use instead of the table's own list
        '''
        table = CodonTable.unambiguous_dna_by_id[table_id]
        codons = dict(table.forward_table)
        codons.update({codon: STOP for codon in table.stop_codons})
        return cls(codons, table.start_codons if start_codons is None else start_codons)

    @classmethod
    def from_json(cls, path: str, start_codons: Optional[Iterable[str]] = None) -> 'GeneticCode':
        '''Load a codon table stored as {"A": ["GCT", ...], ..., "starts": [...]}.'''
        with open(path) as jf:
            table = json.load(jf)
        codons = {}
        for aa, aa_codons in table.items():
            if aa == 'starts':
                continue
            for codon in aa_codons:
                codons[codon.upper()] = aa
        if start_codons is None:
            start_codons = table.get('starts', [])
        return cls(codons, start_codons)

    @classmethod
    def from_config(cls, codon_table: Union[int, str] = 1, start_codons: Optional[List[str]] = None) -> 'GeneticCode':
        if isinstance(codon_table, int) or str(codon_table).isdigit():
            return cls.from_ncbi(int(codon_table), start_codons)
        return cls.from_json(codon_table, start_codons)

    def table_lookup(self, codon: str) -> Optional[str]:
        '''Amino acid for a codon, or None for codons with ambiguous bases.'''
        return self.codons.get(codon)

    def is_stop(self, codon: str) -> bool:
        return self.codons.get(codon) == STOP

    def is_start(self, codon: str) -> bool:
        return codon in self.start_codons


class ConsequenceClassifier:
    '''Classify point mutations of one transcript.

    The classifier holds the transcript's coding sequence in reading
    direction and a map from genomic positions to offsets in it. The checks
    run in a fixed priority order: splice site, non-coding, start codon,
    stop loss, nonsense, synonymous, missense.
    '''

    def __init__(
        self,
        transcript: Transcript,
        coding_sequence: str,
        genetic_code: Optional[GeneticCode] = None,
        splice_flank: int = 2
    ) -> None:
        '''
        Args:
            transcript (Transcript): Transcript structure
            coding_sequence (str): Concatenated CDS bases in reading
                direction (reverse complemented for '-' strand transcripts)
            genetic_code (GeneticCode): Codon table, standard code by default
            splice_flank (int): Intronic bases per junction that form the
                canonical splice site
        '''
        cds_length = sum(end - start for start, end in transcript.cds)
        if len(coding_sequence) != cds_length:
            raise ValueError(
                f"{transcript.id}: coding sequence has {len(coding_sequence)} bases, CDS intervals {cds_length}"
            )
        self.transcript = transcript
        self.coding_sequence = coding_sequence.upper()
        self.genetic_code = genetic_code or GeneticCode.from_ncbi(1, ['ATG'])
        self.minus_strand = transcript.strand == '-'
        self._splice_sites = frozenset(transcript.splice_site_positions(splice_flank))

        # bases before the first complete codon, taken from the 5'-most CDS
        if transcript.cds:
            self.phase = transcript.phases[-1] if self.minus_strand else transcript.phases[0]
        else:
            self.phase = 0

        self._offsets: Dict[int, int] = {}
        offset = 0
        intervals = reversed(transcript.cds) if self.minus_strand else transcript.cds
        for start, end in intervals:
            positions = range(end - 1, start - 1, -1) if self.minus_strand else range(start, end)
            for position in positions:
                self._offsets[position] = offset
                offset += 1

    @classmethod
    def from_genome(
        cls,
        transcript: Transcript,
        genome,
        genetic_code: Optional[GeneticCode] = None,
        splice_flank: int = 2
    ) -> 'ConsequenceClassifier':
        '''Build a classifier reading the coding sequence from a genome.

        Args:
            genome (SequenceContextProvider): Reference genome
        '''
        parts = [genome.sequence(transcript.chromosome, start, end) for start, end in transcript.cds]
        for (start, end), part in zip(transcript.cds, parts):
            if len(part) != end - start:
                raise GenomeLookupError(
                    f"{transcript.id}: CDS {start}-{end} runs past the end of {transcript.chromosome}"
                )
        coding_sequence = ''.join(parts)
        if transcript.strand == '-':
            coding_sequence = reverse_complement(coding_sequence)
        return cls(transcript, coding_sequence, genetic_code, splice_flank)

    def codon_at(self, position: int) -> Optional[tuple]:
        '''Codon overlapping a genomic position.

        Returns:
            Optional[tuple]: (codon, index of the position within the codon,
                codon number), or None for non-coding positions and
                positions in incomplete codons
        '''
        offset = self._offsets.get(position)
        if offset is None or offset < self.phase:
            return None
        codon_number, codon_pos = divmod(offset - self.phase, 3)
        codon_start = self.phase + codon_number * 3
        if codon_start + 3 > len(self.coding_sequence):
            return None
        return self.coding_sequence[codon_start:codon_start + 3], codon_pos, codon_number

    def classify(self, position: int, reference: str, alternate: str) -> MutationType:
        '''Determine the consequence of a point mutation.

        Args:
            position (int): 0-based genomic position
            reference (str): Reference base on the genomic + strand
            alternate (str): Alternate base on the genomic + strand

        Returns:
            MutationType: The consequence type

        Raises:
            ReferenceMismatch: if `reference` disagrees with the coding
                sequence the classifier was built from
        '''
        if position in self._splice_sites:
            return MutationType.SPLICE_SITE

        located = self.codon_at(position)
        if located is None:
            return MutationType.UNKNOWN
        codon, codon_pos, codon_number = located

        oriented_ref, oriented_alt = reference, alternate
        if self.minus_strand:
            oriented_ref, oriented_alt = single_flip(reference), single_flip(alternate)
        if codon[codon_pos] != oriented_ref:
            found = single_flip(codon[codon_pos]) if self.minus_strand else codon[codon_pos]
            raise ReferenceMismatch(self.transcript.chromosome, position, reference, found)

        mutated = codon[:codon_pos] + oriented_alt + codon[codon_pos + 1:]
        code = self.genetic_code
        ref_aa = code.table_lookup(codon)
        mut_aa = code.table_lookup(mutated)
        if ref_aa is None or mut_aa is None:
            return MutationType.UNKNOWN

        if codon_number == 0 and self.phase == 0 and code.is_start(codon) and not code.is_start(mutated):
            return MutationType.START_CODON
        if ref_aa == STOP and mut_aa != STOP:
            return MutationType.STOP_LOSS
        if mut_aa == STOP and ref_aa != STOP:
            return MutationType.NONSENSE
        if ref_aa == mut_aa:
            return MutationType.SYNONYMOUS
        return MutationType.MISSENSE


def classify(
    transcript: Transcript,
    position: int,
    reference: str,
    alternate: str,
    genome,
    genetic_code: Optional[GeneticCode] = None,
    splice_flank: int = 2
) -> MutationType:
    '''Classify a single point mutation against a transcript.

    Builds a throw-away classifier; use ConsequenceClassifier directly when
    classifying many mutations of the same transcript.
    '''
    classifier = ConsequenceClassifier.from_genome(transcript, genome, genetic_code, splice_flank)
    return classifier.classify(position, reference, alternate)

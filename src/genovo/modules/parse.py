from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from Bio import SeqIO
from loguru import logger

from genovo.modules.errors import GenomeLookupError, MalformedInput
from genovo.modules.io import open_file
from genovo.modules.mutation import BASES, ObservedMutation


@dataclass(frozen=True)
class SequenceWindow:
    '''Fixed-size sequence context centred on one genomic position.

    Attributes:
        context (str): Odd-length k-mer, padded with 'N' past contig ends
        center (str): The reference base at the queried position
    '''
    context: str
    center: str


class SequenceContextProvider:
    '''A class to handle reference genome sequence lookups.

    Sequences are read from a 2bit file (lazily, through Biopython's twobit
    parser) or from a FASTA file (loaded into memory). All returned bases are
    upper case.

    Attributes:
        path (Optional[str]): File the genome was loaded from, if any
    '''

    def __init__(self, sequences: Mapping[str, object], path: Optional[str] = None) -> None:
        '''Initialize from already loaded sequences.

        Args:
            sequences: Mapping of sequence name to str or Bio.Seq
            path: Source file, used to reopen the genome in worker processes
        '''
        self._sequences = dict(sequences)
        self._handle = None
        self.path = path

    @classmethod
    def open(cls, path: str) -> 'SequenceContextProvider':
        '''Open a reference genome.

        Args:
            path (str): Path to a .2bit file or a (gzipped) FASTA file
        '''
        path = str(path)
        if path.endswith('.2bit'):
            handle = open(path, 'rb')
            try:
                sequences = {record.id: record.seq for record in SeqIO.parse(handle, 'twobit')}
            except Exception:
                handle.close()
                raise
            provider = cls(sequences, path)
            provider._handle = handle
        else:
            with open_file(path) as handle:
                sequences = {record.id: str(record.seq).upper() for record in SeqIO.parse(handle, 'fasta')}
            provider = cls(sequences, path)
        logger.info(f"Loaded reference genome {path} with {len(sequences)} sequences")
        return provider

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __getstate__(self) -> Dict:
        # file-backed genomes are reopened in the receiving process
        if self.path is not None:
            return {'path': self.path}
        return {'path': None, 'sequences': self._sequences}

    def __setstate__(self, state: Dict) -> None:
        if state['path'] is not None:
            reopened = type(self).open(state['path'])
            self.__dict__.update(reopened.__dict__)
        else:
            self.__init__(state['sequences'])

    def __contains__(self, chromosome: str) -> bool:
        return chromosome in self._sequences

    def _get(self, chromosome: str):
        try:
            return self._sequences[chromosome]
        except KeyError:
            raise GenomeLookupError(f"Sequence '{chromosome}' not found in the reference genome") from None

    def length(self, chromosome: str) -> int:
        return len(self._get(chromosome))

    def sequence(self, chromosome: str, start: int, end: int, pad: bool = False) -> str:
        '''Get the bases in [start, end) of a sequence.

        Args:
            chromosome (str): Sequence name
            start (int): 0-based start
            end (int): 0-based exclusive end
            pad (bool): Fill positions outside the sequence with 'N' instead
                of clipping the range

        Returns:
            str: Upper case bases
        '''
        seq = self._get(chromosome)
        length = len(seq)
        clipped_start = min(max(0, start), length)
        clipped_end = max(min(length, end), clipped_start)
        bases = str(seq[clipped_start:clipped_end]).upper()
        if pad:
            bases = 'N' * (min(clipped_start, end) - start) + bases + 'N' * (end - max(clipped_end, start))
        return bases

    def base(self, chromosome: str, position: int) -> str:
        seq = self._get(chromosome)
        if not 0 <= position < len(seq):
            raise GenomeLookupError(f"Position {position + 1} is outside of sequence '{chromosome}'")
        return str(seq[position]).upper()

    def window(self, chromosome: str, position: int, size: int) -> SequenceWindow:
        '''Get sequence context around a position.

        Args:
            chromosome (str): Sequence name
            position (int): 0-based position of the centre base
            size (int): Odd window size (e.g. 5 for two flanking bases)

        Returns:
            SequenceWindow: Context with the position in its centre
        '''
        if size < 1 or size % 2 == 0:
            raise ValueError("Context size must be a positive odd number")
        flank = size // 2
        context = self.sequence(chromosome, position - flank, position + flank + 1, pad=True)
        return SequenceWindow(context, context[flank])


def read_observed_mutations(path: str) -> List[ObservedMutation]:
    '''Load observed point mutations.

    Lines hold whitespace-separated chromosome, 1-based position, reference
    and alternate base; further fields are ignored. Lines starting with '#'
    are comments. Changes that are not single-base substitutions are skipped
    with a warning.

    Returns:
        List[ObservedMutation]: Mutations with 0-based positions

    Raises:
        MalformedInput: for unparsable lines
    '''
    mutations = []
    skipped = 0
    with open_file(path) as handle:
        for line_no, line in enumerate(handle, start=1):
            if not line.strip() or line.startswith('#'):
                continue
            fields = line.split()
            if len(fields) < 4:
                raise MalformedInput(
                    path, line_no,
                    f"expecting at least 4 fields (chr, pos, ref, alt) instead of {len(fields)}"
                )
            chromosome, position, ref, alt = fields[0], fields[1], fields[2].upper(), fields[3].upper()
            try:
                position = int(position)
            except ValueError:
                raise MalformedInput(path, line_no, f"position is not an integer: {fields[1]}") from None
            if position < 1:
                raise MalformedInput(path, line_no, f"positions are 1-based, found {position}")
            if len(ref) != 1 or len(alt) != 1:
                logger.warning(f"{path}:{line_no}: skipping non-point mutation {ref}>{alt}")
                skipped += 1
                continue
            if ref not in BASES or alt not in BASES or ref == alt:
                raise MalformedInput(path, line_no, f"not a point mutation: {ref}>{alt}")
            mutations.append(ObservedMutation(chromosome, position - 1, ref, alt))

    logger.info(f"Loaded {len(mutations)} observed point mutations from {path} ({skipped} skipped)")
    return mutations

import math
import multiprocessing as mp
from typing import Dict, Iterator, List, Optional, Tuple

from loguru import logger
from tqdm import tqdm

from genovo.modules.errors import GenomeLookupError, MalformedInput
from genovo.modules.io import open_file, open_output
from genovo.modules.mutation import BASES, MutationType, PossibleMutation
from genovo.modules.parse import SequenceContextProvider
from genovo.modules.probabilities import ProbabilityTable
from genovo.modules.regions import Transcript
from genovo.modules.translate import ConsequenceClassifier, GeneticCode

PossibleMutations = Dict[str, List[PossibleMutation]]


def enumerate_possible_mutations(
    transcript: Transcript,
    genome: SequenceContextProvider,
    table: ProbabilityTable,
    genetic_code: Optional[GeneticCode] = None,
    splice_flank: int = 2,
    scaling: float = 1.0
) -> Iterator[PossibleMutation]:
    '''Generate every possible point mutation of a transcript.

    Walks the exonic and splice-site positions in genomic order and yields,
    for each of the three non-reference bases, a PossibleMutation carrying
    the context-dependent probability and its consequence type. Mutations
    without a defined probability are not generated.

    Args:
        transcript (Transcript): Transcript to enumerate
        genome (SequenceContextProvider): Reference genome
        table (ProbabilityTable): Context-dependent mutation probabilities
        genetic_code (Optional[GeneticCode]): Codon table for classification
        splice_flank (int): Size of the canonical splice-site windows
        scaling (float): Factor applied to every probability (capped at 1)

    Yields:
        PossibleMutation: In position order, alternate bases in ACGT order
    '''
    classifier = ConsequenceClassifier.from_genome(transcript, genome, genetic_code, splice_flank)
    radius = table.radius

    # one lookup for the whole transcript, padded so every window is complete
    offset = transcript.start - radius
    seq = genome.sequence(transcript.chromosome, offset, transcript.end + radius, pad=True)

    for position in transcript.positions(splice_flank):
        i = position - offset
        ref = seq[i]
        if ref not in BASES:
            logger.debug(f"{transcript.id}: no reference base at {transcript.chromosome}:{position + 1}")
            continue
        rates = table.rates(seq[i - radius:i + radius + 1])
        for alt_index, alt in enumerate(BASES):
            if alt == ref:
                continue
            probability = float(rates[alt_index])
            if math.isnan(probability):
                continue
            yield PossibleMutation(
                transcript.id,
                classifier.classify(position, ref, alt),
                min(1.0, probability * scaling),
                position,
                ref,
                alt,
            )


_worker_state: Dict = {}


def _init_worker(genome, table, genetic_code, splice_flank, scaling) -> None:
    _worker_state.update(
        genome=genome,
        table=table,
        genetic_code=genetic_code,
        splice_flank=splice_flank,
        scaling=scaling,
    )


def _enumerate_worker(transcript: Transcript) -> Tuple[str, Optional[List[PossibleMutation]], Optional[str]]:
    try:
        mutations = list(enumerate_possible_mutations(transcript, **_worker_state))
    except GenomeLookupError as e:
        return transcript.id, None, str(e)
    return transcript.id, mutations, None


def enumerate_all(
    transcripts: List[Transcript],
    genome: SequenceContextProvider,
    table: ProbabilityTable,
    genetic_code: Optional[GeneticCode] = None,
    splice_flank: int = 2,
    scaling: float = 1.0,
    workers: int = 1,
    filter_for_id: Optional[str] = None
) -> PossibleMutations:
    '''Enumerate possible mutations for many transcripts.

    Transcripts whose sequence cannot be looked up are skipped with a
    warning. If that happens to every transcript the genome is most likely
    the wrong one and the run is aborted.

    Returns:
        PossibleMutations: Transcript ID -> possible mutations, in input order
    '''
    selected = [t for t in transcripts if filter_for_id is None or t.id == filter_for_id]
    logger.info(f"Enumerating possible mutations for {len(selected)} transcripts")

    state = (genome, table, genetic_code, splice_flank, scaling)
    if workers > 1 and len(selected) > 1:
        with mp.Pool(workers, initializer=_init_worker, initargs=state) as pool:
            results = list(tqdm(pool.imap(_enumerate_worker, selected), total=len(selected), desc='enumerate', disable=None))
    else:
        _init_worker(*state)
        results = [_enumerate_worker(t) for t in tqdm(selected, desc='enumerate', disable=None)]

    possible: PossibleMutations = {}
    failed = 0
    for transcript_id, mutations, error in results:
        if error is not None:
            logger.warning(f"Skipping faulty annotation {transcript_id}: {error}")
            failed += 1
            continue
        possible[transcript_id] = mutations

    if selected and failed == len(selected):
        raise GenomeLookupError(
            f"None of the {failed} transcripts could be read from the reference genome; is it the right build?"
        )
    total = sum(len(m) for m in possible.values())
    logger.info(f"Enumerated {total} possible mutations in {len(possible)} transcripts ({failed} skipped)")
    return possible


def write_possible_mutations(path: str, possible: PossibleMutations) -> None:
    '''Write possible mutations as '#<id>' blocks of '<type>:<probability>' lines.'''
    with open_output(path) as out:
        for transcript_id, mutations in possible.items():
            lines = [f"#{transcript_id}\n"]
            lines.extend(f"{int(m.mutation_type)}:{float(m.probability)!r}\n" for m in mutations)
            out.write(''.join(lines))


def read_possible_mutations(path: str, filter_for_id: Optional[str] = None) -> PossibleMutations:
    '''Load a possible-mutations file.

    The records only carry type and probability; positions are not stored
    in this format.

    Raises:
        MalformedInput: for records before the first '#<id>' line and
            unparsable records
    '''
    possible: PossibleMutations = {}
    current: Optional[str] = None
    with open_file(path) as handle:
        for line_no, line in enumerate(handle, start=1):
            line = line.rstrip('\r\n')
            if not line:
                continue
            if line.startswith('#'):
                current = line[1:]
                if filter_for_id is None or current == filter_for_id:
                    possible[current] = []
                continue
            if current is None:
                raise MalformedInput(path, line_no, "expected a #name line before the first mutation")
            if current not in possible:
                continue
            code, sep, value = line.partition(':')
            try:
                if not sep:
                    raise ValueError("expected <type>:<probability>")
                mutation_type = MutationType.from_code(code)
                probability = float(value)
            except ValueError as e:
                raise MalformedInput(path, line_no, f"invalid record '{line}': {e}") from None
            if not 0.0 <= probability <= 1.0:
                raise MalformedInput(path, line_no, f"probability {value} is outside [0, 1]")
            possible[current].append(PossibleMutation(current, mutation_type, probability))

    logger.info(f"Loaded possible mutations of {len(possible)} transcripts from {path}")
    return possible

from bisect import bisect_left
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Optional

from loguru import logger

from genovo.modules.errors import GenomeLookupError, MalformedInput, ReferenceMismatch
from genovo.modules.io import read_table, write_table
from genovo.modules.mutation import BASES, ClassifiedMutation, MutationType, ObservedMutation
from genovo.modules.parse import SequenceContextProvider
from genovo.modules.regions import Transcript
from genovo.modules.translate import ConsequenceClassifier, GeneticCode

ObservedCounts = Dict[str, Dict[MutationType, int]]

COLUMNS = ['chromosome', 'position', 'reference', 'alternate', 'transcript_id', 'type']


def classify_observed(
    mutation: ObservedMutation,
    transcript: Transcript,
    genome: SequenceContextProvider,
    classifier: Optional[ConsequenceClassifier] = None
) -> ClassifiedMutation:
    '''Classify an observed mutation against one transcript.

    Args:
        mutation (ObservedMutation): The observed point mutation
        transcript (Transcript): Transcript covering the mutation
        genome (SequenceContextProvider): Reference genome
        classifier (Optional[ConsequenceClassifier]): Classifier of the
            transcript, built from the genome if not given

    Raises:
        ReferenceMismatch: if the reference base of the mutation is not
            the base found in the genome
    '''
    found = genome.base(mutation.chromosome, mutation.position)
    if found != mutation.reference:
        raise ReferenceMismatch(mutation.chromosome, mutation.position, mutation.reference, found)
    if classifier is None:
        classifier = ConsequenceClassifier.from_genome(transcript, genome)
    mutation_type = classifier.classify(mutation.position, mutation.reference, mutation.alternate)
    return ClassifiedMutation.from_observed(mutation, transcript.id, mutation_type)


def classify_mutations(
    observed: Iterable[ObservedMutation],
    transcripts: List[Transcript],
    genome: SequenceContextProvider,
    genetic_code: Optional[GeneticCode] = None,
    splice_flank: int = 2,
    filter_for_id: Optional[str] = None
) -> List[ClassifiedMutation]:
    '''Assign observed mutations to transcripts and classify them.

    A mutation is assigned to every transcript covering it (exons and splice
    site windows), so it can appear more than once in the result.

    Raises:
        ReferenceMismatch: on the first mutation whose reference base does
            not match the genome, whether or not a transcript covers it
    '''
    by_chromosome: Dict[str, List[ObservedMutation]] = defaultdict(list)
    for mutation in observed:
        by_chromosome[mutation.chromosome].append(mutation)
    positions = {}
    for chromosome, mutations in by_chromosome.items():
        mutations.sort(key=lambda m: m.position)
        positions[chromosome] = [m.position for m in mutations]
        # every mutation on a known sequence is checked, not only those inside transcripts
        if chromosome in genome:
            length = genome.length(chromosome)
            for mutation in mutations:
                if mutation.position < length:
                    found = genome.base(chromosome, mutation.position)
                    if found != mutation.reference:
                        raise ReferenceMismatch(chromosome, mutation.position, mutation.reference, found)

    classified = []
    assigned = set()
    for transcript in transcripts:
        if filter_for_id is not None and transcript.id != filter_for_id:
            continue
        if transcript.chromosome not in by_chromosome:
            continue
        mutations = by_chromosome[transcript.chromosome]
        chrom_positions = positions[transcript.chromosome]
        lo = bisect_left(chrom_positions, transcript.start)
        hi = bisect_left(chrom_positions, transcript.end)
        candidates = [m for m in mutations[lo:hi] if transcript.covers(m.position, splice_flank)]
        if not candidates:
            continue

        try:
            classifier = ConsequenceClassifier.from_genome(transcript, genome, genetic_code, splice_flank)
        except GenomeLookupError as e:
            logger.warning(f"Skipping faulty annotation {transcript.id}: {e}")
            continue
        for mutation in candidates:
            classified.append(classify_observed(mutation, transcript, genome, classifier))
            assigned.add(mutation)

    total = sum(len(m) for m in by_chromosome.values())
    logger.info(f"Classified {len(classified)} mutation/transcript pairs")
    if total > len(assigned):
        logger.info(f"{total - len(assigned)} of {total} observed mutations are outside of all transcripts")
    return classified


def tally_observed(classified: Iterable[ClassifiedMutation]) -> ObservedCounts:
    '''Count classified mutations per transcript and type.'''
    counters: Dict[str, Counter] = {}
    for mutation in classified:
        counters.setdefault(mutation.transcript_id, Counter())[mutation.mutation_type] += 1
    return {transcript_id: dict(sorted(counts.items())) for transcript_id, counts in counters.items()}


def write_classified(path: str, classified: Iterable[ClassifiedMutation]) -> None:
    rows = (
        (m.chromosome, m.position + 1, m.reference, m.alternate, m.transcript_id, int(m.mutation_type))
        for m in classified
    )
    write_table(path, rows, COLUMNS)


def read_classified(path: str, filter_for_id: Optional[str] = None) -> List[ClassifiedMutation]:
    '''Load a classified-mutations table (1-based positions).

    Raises:
        MalformedInput: for invalid positions, bases or type codes
    '''
    frame = read_table(path, COLUMNS)
    classified = []
    for line_no, chromosome, position, reference, alternate, transcript_id, code in frame[COLUMNS].itertuples():
        if filter_for_id is not None and transcript_id != filter_for_id:
            continue
        try:
            position = int(position)
            mutation_type = MutationType.from_code(code)
        except (TypeError, ValueError) as e:
            raise MalformedInput(path, line_no, f"invalid record: {e}") from None
        if position < 1:
            raise MalformedInput(path, line_no, f"positions are 1-based, found {position}")
        if reference not in BASES or alternate not in BASES or reference == alternate:
            raise MalformedInput(path, line_no, f"not a point mutation: {reference}>{alternate}")
        classified.append(
            ClassifiedMutation(chromosome, position - 1, reference, alternate, transcript_id, mutation_type)
        )

    logger.info(f"Loaded {len(classified)} classified mutations from {path}")
    return classified


def write_observed_counts(path: str, counts: ObservedCounts) -> None:
    '''Write observed tallies with one column per mutation type.'''
    columns = ['transcript_id'] + [mutation_type.label for mutation_type in MutationType]
    rows = (
        [transcript_id] + [per_type.get(mutation_type, 0) for mutation_type in MutationType]
        for transcript_id, per_type in counts.items()
    )
    write_table(path, rows, columns)

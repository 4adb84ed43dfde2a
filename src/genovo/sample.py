import hashlib
import multiprocessing as mp
import os
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import psutil
from loguru import logger
from tqdm import tqdm

from genovo.modules.errors import MalformedInput
from genovo.modules.io import read_table, write_table
from genovo.modules.mutation import MutationType, PossibleMutation

COLUMNS = ['transcript_id', 'type', 'histogram']

# upper bound on random numbers drawn at once (8 bytes each)
MAX_BATCH_DRAWS = 1 << 22


class SampledDistribution:
    '''Distribution of mutation counts over random realizations.

    Stored as a histogram: entry i is the number of realizations in which
    exactly i mutations occurred.
    '''

    def __init__(self, histogram: Iterable[int] = ()) -> None:
        histogram = np.asarray(list(histogram), dtype=np.int64)
        if (histogram < 0).any():
            raise ValueError("histogram entries must be non-negative")
        nonzero = np.flatnonzero(histogram)
        self._histogram = histogram[:nonzero[-1] + 1] if len(nonzero) else histogram[:0]

    @classmethod
    def from_counts(cls, counts: np.ndarray) -> 'SampledDistribution':
        '''Build from the mutation count of every realization.'''
        counts = np.asarray(counts, dtype=np.int64)
        if not len(counts):
            return cls()
        return cls(np.bincount(counts))

    @classmethod
    def from_string(cls, value: str) -> 'SampledDistribution':
        '''Parse the 'n0|n1|...' histogram notation (empty for no samples).'''
        if not value:
            return cls()
        return cls(int(n) for n in value.split('|'))

    def to_string(self) -> str:
        return '|'.join(str(n) for n in self._histogram)

    def histogram(self) -> np.ndarray:
        return self._histogram.copy()

    def counts(self) -> np.ndarray:
        '''Mutation count of every realization, sorted.'''
        return np.repeat(np.arange(len(self._histogram)), self._histogram)

    def __len__(self) -> int:
        return int(self._histogram.sum())

    def __eq__(self, other) -> bool:
        if not isinstance(other, SampledDistribution):
            return NotImplemented
        return np.array_equal(self._histogram, other._histogram)

    def __repr__(self) -> str:
        return f"SampledDistribution({self.to_string()!r})"

    def mean(self) -> float:
        n = len(self)
        if not n:
            return float('nan')
        return float(np.dot(np.arange(len(self._histogram)), self._histogram)) / n

    def p_value(self, observed: int) -> float:
        '''Fraction of realizations with at least `observed` mutations.

        Returns NaN if the distribution holds no realizations.
        '''
        n = len(self)
        if not n:
            return float('nan')
        observed = max(0, int(observed))
        return float(self._histogram[observed:].sum()) / n


SampledMutations = Dict[str, Dict[MutationType, SampledDistribution]]


def generator_for(seed: int, transcript_id: str) -> np.random.Generator:
    '''Random generator of one transcript.

    The stream only depends on the seed and the transcript ID, so results
    do not change with the number of workers or the transcript order.
    '''
    digest = hashlib.blake2b(transcript_id.encode(), digest_size=8).digest()
    key = int.from_bytes(digest, 'big')
    return np.random.default_rng(np.random.SeedSequence(seed, spawn_key=(key,)))


def sample(
    mutations: Iterable[PossibleMutation],
    iterations: int,
    rng: np.random.Generator,
    sample_unknown: bool = True
) -> Dict[MutationType, SampledDistribution]:
    '''Simulate random realizations of a transcript's possible mutations.

    In every realization each possible mutation occurs independently with
    its probability; the number of occurring mutations is counted per type.

    Args:
        mutations: Possible mutations of one transcript
        iterations (int): Number of realizations
        rng (np.random.Generator): Source of randomness
        sample_unknown (bool): Also sample mutations of UNKNOWN type

    Returns:
        Dict[MutationType, SampledDistribution]: One distribution per type
            with at least one possible mutation
    '''
    if iterations < 0:
        raise ValueError(f"number of random samples must be non-negative, got {iterations}")

    grouped: Dict[MutationType, List[float]] = defaultdict(list)
    for mutation in mutations:
        if mutation.mutation_type == MutationType.UNKNOWN and not sample_unknown:
            continue
        grouped[mutation.mutation_type].append(mutation.probability)

    sampled = {}
    for mutation_type, values in sorted(grouped.items()):
        probabilities = np.asarray(values, dtype=np.float64)
        counts = np.empty(iterations, dtype=np.int64)
        batch = max(1, MAX_BATCH_DRAWS // len(probabilities))
        for start in range(0, iterations, batch):
            stop = min(start + batch, iterations)
            draws = rng.random((stop - start, len(probabilities))) < probabilities
            counts[start:stop] = draws.sum(axis=1)
        sampled[mutation_type] = SampledDistribution.from_counts(counts)
    return sampled


def _sample_worker(task: Tuple[str, List[PossibleMutation], int, int, bool]):
    transcript_id, mutations, iterations, seed, sample_unknown = task
    rng = generator_for(seed, transcript_id)
    return transcript_id, sample(mutations, iterations, rng, sample_unknown)


def sample_mutations(
    possible: Dict[str, List[PossibleMutation]],
    iterations: int,
    seed: int = 0,
    workers: int = 1,
    filter_for_id: Optional[str] = None,
    sample_unknown: bool = True
) -> SampledMutations:
    '''Sample the mutation count distributions of many transcripts.

    Returns:
        SampledMutations: Transcript ID -> {type: distribution}, in input order
    '''
    if iterations < 0:
        raise ValueError(f"number of random samples must be non-negative, got {iterations}")
    tasks = [
        (transcript_id, mutations, iterations, seed, sample_unknown)
        for transcript_id, mutations in possible.items()
        if filter_for_id is None or transcript_id == filter_for_id
    ]
    logger.info(f"Sampling {iterations} random realizations for {len(tasks)} transcripts (seed {seed})")

    if workers > 1 and len(tasks) > 1:
        with mp.Pool(workers) as pool:
            results = list(tqdm(pool.imap(_sample_worker, tasks), total=len(tasks), desc='sample', disable=None))
    else:
        results = [_sample_worker(task) for task in tqdm(tasks, desc='sample', disable=None)]

    process = psutil.Process(os.getpid())
    logger.debug(f"Memory usage after sampling: {process.memory_info().rss / 1024 / 1024:.1f} MB")
    return dict(results)


def write_sampled(path: str, sampled: SampledMutations) -> None:
    rows = (
        (transcript_id, int(mutation_type), distribution.to_string())
        for transcript_id, per_type in sampled.items()
        for mutation_type, distribution in per_type.items()
    )
    write_table(path, rows, COLUMNS)


def read_sampled(path: str, filter_for_id: Optional[str] = None) -> SampledMutations:
    '''Load a sampled-mutations table.

    Raises:
        MalformedInput: for unknown type codes and unparsable histograms
    '''
    frame = read_table(path, COLUMNS)
    sampled: SampledMutations = {}
    for line_no, transcript_id, code, histogram in frame[COLUMNS].itertuples():
        if filter_for_id is not None and transcript_id != filter_for_id:
            continue
        if not isinstance(histogram, str):
            histogram = ''
        try:
            mutation_type = MutationType.from_code(code)
            distribution = SampledDistribution.from_string(histogram)
        except (TypeError, ValueError) as e:
            raise MalformedInput(path, line_no, f"invalid record: {e}") from None
        sampled.setdefault(transcript_id, {})[mutation_type] = distribution

    logger.info(f"Loaded sampled distributions of {len(sampled)} transcripts from {path}")
    return sampled

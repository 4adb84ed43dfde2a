import math
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from loguru import logger

from genovo.modules.errors import MalformedInput
from genovo.modules.io import read_table, write_table
from genovo.modules.mutation import MutationType, PossibleMutation

ExpectedCounts = Dict[str, Dict[MutationType, float]]

COLUMNS = ['transcript_id', 'type', 'expected']


def aggregate(mutations: Iterable[PossibleMutation]) -> Dict[MutationType, float]:
    '''Sum mutation probabilities per consequence type.

    Only types with at least one possible mutation appear in the result.
    The sums are exactly rounded (math.fsum), so they do not depend on the
    order of the mutations.
    '''
    probabilities: Dict[MutationType, List[float]] = defaultdict(list)
    for mutation in mutations:
        probabilities[mutation.mutation_type].append(mutation.probability)
    return {mutation_type: math.fsum(values) for mutation_type, values in sorted(probabilities.items())}


def expected_number_of_mutations(
    possible: Dict[str, List[PossibleMutation]],
    filter_for_id: Optional[str] = None
) -> ExpectedCounts:
    '''Expected number of mutations per transcript and type.

    Args:
        possible: Transcript ID -> possible mutations
        filter_for_id (Optional[str]): Only aggregate this transcript

    Returns:
        ExpectedCounts: Transcript ID -> {type: expected count}
    '''
    expected = {
        transcript_id: aggregate(mutations)
        for transcript_id, mutations in possible.items()
        if filter_for_id is None or transcript_id == filter_for_id
    }
    logger.info(f"Computed expected mutation counts for {len(expected)} transcripts")
    return expected


def write_expected(path: str, expected: ExpectedCounts) -> None:
    rows = (
        (transcript_id, int(mutation_type), value)
        for transcript_id, per_type in expected.items()
        for mutation_type, value in per_type.items()
    )
    write_table(path, rows, COLUMNS)


def read_expected(path: str, filter_for_id: Optional[str] = None) -> ExpectedCounts:
    '''Load an expected-mutations table.

    Raises:
        MalformedInput: for unknown type codes and non-numeric or negative
            expected counts
    '''
    frame = read_table(path, COLUMNS)
    expected: ExpectedCounts = {}
    for line_no, transcript_id, code, value in frame[COLUMNS].itertuples():
        if filter_for_id is not None and transcript_id != filter_for_id:
            continue
        try:
            mutation_type = MutationType.from_code(code)
            value = float(value)
        except (TypeError, ValueError) as e:
            raise MalformedInput(path, line_no, f"invalid record: {e}") from None
        if not value >= 0.0:
            raise MalformedInput(path, line_no, f"expected count must be non-negative, found {value}")
        expected.setdefault(transcript_id, {})[mutation_type] = value

    logger.info(f"Loaded expected mutation counts of {len(expected)} transcripts from {path}")
    return expected

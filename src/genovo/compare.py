import math
from typing import Dict, Iterable, List, Optional

from loguru import logger

from genovo.modules.io import write_table
from genovo.modules.mutation import ClassifiedMutation, MutationType, SignificanceRow
from genovo.observed import tally_observed
from genovo.sample import SampledDistribution

COLUMNS = ['transcript_id', 'type', 'observed', 'expected', 'p_value']


def compare(
    transcript_id: str,
    mutation_type: MutationType,
    observed: int,
    expected: float,
    distribution: Optional[SampledDistribution]
) -> SignificanceRow:
    '''Test an observed count against its sampled distribution.

    The p-value is the fraction of realizations with at least as many
    mutations as observed. It is NaN when there are no realizations.
    '''
    p_value = distribution.p_value(observed) if distribution is not None else math.nan
    return SignificanceRow(transcript_id, mutation_type, observed, expected, p_value)


def compare_mutations(
    classified: Iterable[ClassifiedMutation],
    expected: Dict[str, Dict[MutationType, float]],
    sampled: Dict[str, Dict[MutationType, SampledDistribution]],
    filter_for_id: Optional[str] = None
) -> List[SignificanceRow]:
    '''Compare observed mutation counts to the expectation of all transcripts.

    One row is reported for every transcript and type that has an expected
    count or a sampled distribution. Rows are sorted by ascending p-value,
    undefined p-values last.

    Args:
        classified: Classified observed mutations
        expected: Transcript ID -> {type: expected count}
        sampled: Transcript ID -> {type: sampled distribution}
        filter_for_id (Optional[str]): Only report this transcript

    Returns:
        List[SignificanceRow]: Sorted rows
    '''
    observed = tally_observed(classified)

    keys = []
    seen = set()
    for source in (expected, sampled):
        for transcript_id, per_type in source.items():
            if filter_for_id is not None and transcript_id != filter_for_id:
                continue
            for mutation_type in per_type:
                if (transcript_id, mutation_type) not in seen:
                    seen.add((transcript_id, mutation_type))
                    keys.append((transcript_id, mutation_type))
    keys.sort(key=lambda key: (key[0], int(key[1])))

    rows = [
        compare(
            transcript_id,
            mutation_type,
            observed.get(transcript_id, {}).get(mutation_type, 0),
            expected.get(transcript_id, {}).get(mutation_type, 0.0),
            sampled.get(transcript_id, {}).get(mutation_type),
        )
        for transcript_id, mutation_type in keys
    ]

    for transcript_id, per_type in observed.items():
        if filter_for_id is not None and transcript_id != filter_for_id:
            continue
        for mutation_type, count in per_type.items():
            if (transcript_id, mutation_type) not in seen:
                logger.warning(
                    f"{count} observed {mutation_type.label} mutations in {transcript_id} "
                    f"have no expectation and are not reported"
                )

    rows.sort(key=lambda row: (math.isnan(row.p_value), 0.0 if math.isnan(row.p_value) else row.p_value))
    logger.info(f"Compared {len(rows)} transcript/type combinations")
    return rows


def write_significant(path: str, rows: Iterable[SignificanceRow]) -> None:
    write_table(
        path,
        ((r.transcript_id, int(r.mutation_type), r.observed, r.expected, r.p_value) for r in rows),
        COLUMNS,
    )

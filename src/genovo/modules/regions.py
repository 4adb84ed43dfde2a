from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from loguru import logger

from genovo.modules.errors import MalformedInput
from genovo.modules.io import open_file

Interval = Tuple[int, int]


@dataclass(frozen=True)
class Transcript:
    '''Exon and coding structure of one transcript.

    All coordinates are 0-based and intervals are half-open. Exons and CDS
    intervals are kept sorted by genomic start regardless of strand; the
    reading direction is derived from `strand` where it matters.

    Attributes:
        id (str): Unique transcript identifier
        chromosome (str): Sequence name in the reference genome
        strand (str): '+' or '-'
        exons (Tuple[Interval, ...]): Exon intervals
        cds (Tuple[Interval, ...]): Coding intervals, each inside an exon
        phases (Tuple[int, ...]): GFF phase of each CDS interval
    '''
    id: str
    chromosome: str
    strand: str
    exons: Tuple[Interval, ...]
    cds: Tuple[Interval, ...] = ()
    phases: Tuple[int, ...] = ()

    def __post_init__(self) -> None:
        if self.strand not in ('+', '-'):
            raise ValueError(f"strand must be '+' or '-', not {self.strand!r}")
        if not self.exons:
            raise ValueError("transcript has no exons")
        phases = tuple(self.phases) if self.phases else (0,) * len(self.cds)
        if len(phases) != len(self.cds):
            raise ValueError(f"{len(self.cds)} CDS intervals but {len(phases)} phases")
        if any(phase not in (0, 1, 2) for phase in phases):
            raise ValueError(f"phases must be 0, 1 or 2: {phases}")
        # phases travel with their CDS interval when sorting
        paired = sorted(zip(((int(s), int(e)) for s, e in self.cds), phases))
        object.__setattr__(self, 'exons', _sorted_intervals(self.exons, 'exon'))
        object.__setattr__(self, 'cds', _sorted_intervals([interval for interval, _ in paired], 'CDS'))
        object.__setattr__(self, 'phases', tuple(phase for _, phase in paired))

        for start, end in self.cds:
            if not any(ex_start <= start and end <= ex_end for ex_start, ex_end in self.exons):
                raise ValueError(f"CDS {start}-{end} is not contained in any exon")

    @property
    def start(self) -> int:
        return self.exons[0][0]

    @property
    def end(self) -> int:
        return self.exons[-1][1]

    @property
    def is_coding(self) -> bool:
        return bool(self.cds)

    @property
    def introns(self) -> List[Interval]:
        return [(left[1], right[0]) for left, right in zip(self.exons, self.exons[1:])]

    def splice_site_positions(self, flank: int) -> List[int]:
        '''Positions of the canonical splice sites.

        These are the first and the last `flank` bases of every intron (the
        donor and acceptor dinucleotides for flank=2).
        '''
        sites = set()
        for start, end in self.introns:
            sites.update(range(start, min(start + flank, end)))
            sites.update(range(max(end - flank, start), end))
        return sorted(sites)

    def positions(self, flank: int) -> List[int]:
        '''All positions the pipeline considers, in genomic order.

        That is every exonic base plus the splice-site windows.
        '''
        positions = set(self.splice_site_positions(flank))
        for start, end in self.exons:
            positions.update(range(start, end))
        return sorted(positions)

    def covers(self, position: int, flank: int) -> bool:
        for start, end in self.exons:
            if start <= position < end:
                return True
        for start, end in self.introns:
            if start <= position < min(start + flank, end) or max(end - flank, start) <= position < end:
                return True
        return False


def _sorted_intervals(intervals, kind: str) -> Tuple[Interval, ...]:
    result = tuple(sorted((int(start), int(end)) for start, end in intervals))
    for start, end in result:
        if start < 0 or end <= start:
            raise ValueError(f"invalid {kind} interval {start}-{end}")
    for (_, left_end), (right_start, _) in zip(result, result[1:]):
        if right_start < left_end:
            raise ValueError(f"overlapping {kind} intervals")
    return result


def _parse_intervals(field: str) -> List[Interval]:
    intervals = []
    for token in filter(None, field.split(';')):
        start, _, end = token.partition('-')
        intervals.append((int(start), int(end)))
    return intervals


def read_regions(path: str, filter_for_id: Optional[str] = None) -> List[Transcript]:
    '''Load transcripts from a genomic regions file.

    Each non-comment line holds the tab-separated fields: id, chromosome,
    strand, span, exons, CDS and CDS phases. Intervals are written as
    `start-end` (0-based, end-exclusive) and separated by ';'.

    Args:
        path (str): Path of the regions file (may be gzipped)
        filter_for_id (Optional[str]): Only keep the transcript with this ID

    Returns:
        List[Transcript]: Transcripts in file order

    Raises:
        MalformedInput: if a line cannot be parsed or violates the
            transcript invariants
    '''
    transcripts = []
    seen: Dict[str, int] = {}
    with open_file(path) as handle:
        for line_no, line in enumerate(handle, start=1):
            line = line.rstrip('\r\n')
            if not line or line.startswith('#'):
                continue
            fields = line.split('\t')
            if len(fields) < 6:
                raise MalformedInput(path, line_no, f"expected at least 6 tab-separated fields, found {len(fields)}")
            name = fields[0]
            if filter_for_id is not None and name != filter_for_id:
                continue
            if name in seen:
                raise MalformedInput(path, line_no, f"transcript {name} already defined on line {seen[name]}")
            try:
                span = _parse_intervals(fields[3])
                phases = tuple(int(p) for p in fields[6].split(';') if p) if len(fields) > 6 else ()
                transcript = Transcript(
                    id=name,
                    chromosome=fields[1],
                    strand=fields[2],
                    exons=tuple(_parse_intervals(fields[4])),
                    cds=tuple(_parse_intervals(fields[5])),
                    phases=phases,
                )
            except ValueError as e:
                raise MalformedInput(path, line_no, str(e)) from e
            if len(span) == 1 and not (span[0][0] <= transcript.start and transcript.end <= span[0][1]):
                raise MalformedInput(path, line_no, f"exons exceed the transcript range {fields[3]}")
            seen[name] = line_no
            transcripts.append(transcript)

    logger.info(f"Loaded {len(transcripts)} transcripts from {path}")
    return transcripts


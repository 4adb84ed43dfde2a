from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

BASES = 'ACGT'


class MutationType(IntEnum):
    '''Predicted consequence of a point mutation.

    The numeric codes are written to every output file and must not change.
    '''
    UNKNOWN = 0
    SYNONYMOUS = 1
    MISSENSE = 2
    NONSENSE = 3
    STOP_LOSS = 4
    START_CODON = 5
    SPLICE_SITE = 6

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_code(cls, value: str) -> 'MutationType':
        '''Parse a numeric type code as found in the pipeline's files.

        Raises:
            ValueError: if the value is not one of the 7 codes
        '''
        return cls(int(value))


@dataclass(frozen=True)
class PossibleMutation:
    '''A point mutation that could occur in a transcript.

    Records read back from a possible-mutations file only know their type
    and probability; the positional fields are None then.
    '''
    transcript_id: str
    mutation_type: MutationType
    probability: float
    position: Optional[int] = None
    reference: Optional[str] = None
    alternate: Optional[str] = None


@dataclass(frozen=True)
class ObservedMutation:
    chromosome: str
    position: int  # 0-based
    reference: str
    alternate: str


@dataclass(frozen=True)
class ClassifiedMutation:
    chromosome: str
    position: int  # 0-based
    reference: str
    alternate: str
    transcript_id: str
    mutation_type: MutationType

    @classmethod
    def from_observed(
        cls,
        mutation: ObservedMutation,
        transcript_id: str,
        mutation_type: MutationType
    ) -> 'ClassifiedMutation':
        return cls(
            mutation.chromosome,
            mutation.position,
            mutation.reference,
            mutation.alternate,
            transcript_id,
            mutation_type,
        )


@dataclass(frozen=True)
class SignificanceRow:
    '''Outcome of testing one (transcript, mutation type) pair.

    p_value is NaN when no random samples are available. The expected
    count is reported alongside but does not enter the p-value.
    '''
    transcript_id: str
    mutation_type: MutationType
    observed: int
    expected: float
    p_value: float

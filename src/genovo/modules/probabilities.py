import math
from typing import List, Optional, Union

import numpy as np
from loguru import logger

from genovo.modules.errors import MalformedInput
from genovo.modules.io import open_file
from genovo.modules.mutation import BASES
from genovo.modules.parse import SequenceWindow

_DIGITS = str.maketrans('ACGT', '0123')
_MISSING = ('', 'NA', 'NAN')
MAX_KMER_SIZE = 11


class ProbabilityTable:
    '''Point mutation probabilities keyed by sequence context.

    The table is a dense, read-only array with one row per k-mer (indexed
    by the base-4 encoding of the k-mer) and one column per alternate base.
    Undefined entries are NaN. A loaded table is never modified, so it can
    be shared between worker processes.

    Attributes:
        kmer_size (int): Length of the context k-mers
        radius (int): Number of flanking bases on each side of the centre
    '''

    def __init__(self, rates: np.ndarray, kmer_size: int) -> None:
        if rates.shape != (4 ** kmer_size, 4):
            raise ValueError(f"rate array of shape {rates.shape} does not fit {kmer_size}-mers")
        self._rates = np.array(rates, dtype=np.float64)
        self._rates.flags.writeable = False
        self.kmer_size = kmer_size
        self.radius = kmer_size // 2

    @classmethod
    def load(cls, path: str, strand_symmetric: bool = True) -> 'ProbabilityTable':
        '''Load a pattern partition table.

        The file is tab-separated with a header `context A C G T`. Each row
        gives a context pattern (odd length, 'N' matches any base, the centre
        is the reference base) and the probability of the centre mutating
        into each base. Empty, 'NA' or 'nan' cells are undefined.

        Args:
            path (str): Table file (may be gzipped)
            strand_symmetric (bool): Fill k-mers missing from the table with
                the rate of their reverse complement

        Raises:
            MalformedInput: for unparsable rows, inconsistent pattern sizes or
                patterns covering the same k-mer
        '''
        kmer_size = None
        rates = None
        defined = None
        header_seen = False
        n_patterns = 0

        with open_file(path) as handle:
            for line_no, line in enumerate(handle, start=1):
                line = line.rstrip('\r\n')
                if not line.strip() or line.startswith('#'):
                    continue
                fields = line.split('\t')
                if not header_seen:
                    if [f.strip().upper() for f in fields] != ['CONTEXT', 'A', 'C', 'G', 'T']:
                        raise MalformedInput(path, line_no, "expected header: context, A, C, G, T")
                    header_seen = True
                    continue
                if len(fields) != 5:
                    raise MalformedInput(path, line_no, f"expected 5 tab-separated fields, found {len(fields)}")

                pattern = fields[0].strip().upper()
                if not pattern or any(base not in 'ACGTN' for base in pattern):
                    raise MalformedInput(path, line_no, f"invalid context pattern '{fields[0]}'")
                if kmer_size is None:
                    if len(pattern) % 2 == 0 or len(pattern) > MAX_KMER_SIZE:
                        raise MalformedInput(
                            path, line_no,
                            f"context length must be odd and at most {MAX_KMER_SIZE}, found {len(pattern)}"
                        )
                    kmer_size = len(pattern)
                    rates = np.full((4 ** kmer_size, 4), np.nan)
                    defined = np.zeros(4 ** kmer_size, dtype=bool)
                elif len(pattern) != kmer_size:
                    raise MalformedInput(path, line_no, f"context length {len(pattern)} differs from {kmer_size}")

                row = [_parse_probability(value, path, line_no) for value in fields[1:]]

                indices = _expand_pattern(pattern)
                if defined[indices].any():
                    raise MalformedInput(path, line_no, f"pattern {pattern} overlaps an earlier pattern")
                defined[indices] = True
                rates[indices] = row
                n_patterns += 1

        if rates is None:
            raise MalformedInput(path, None, "no context patterns found")

        # the reference base cannot mutate into itself
        all_indices = np.arange(4 ** kmer_size)
        centers = (all_indices // 4 ** (kmer_size // 2)) % 4
        rates[all_indices, centers] = np.nan

        if strand_symmetric:
            missing = ~defined
            rc = _reverse_complement_indices(kmer_size)
            fill = missing & defined[rc]
            # reversing the column order complements the alternate base
            rates[fill] = rates[rc[fill]][:, ::-1]
            logger.debug(f"Filled {int(fill.sum())} k-mers from their reverse complement")

        logger.info(f"Loaded {n_patterns} context patterns ({kmer_size}-mers) from {path}")
        return cls(rates, kmer_size)

    def __len__(self) -> int:
        return int(np.any(np.isfinite(self._rates), axis=1).sum())

    def _index(self, context: str) -> Optional[int]:
        if len(context) != self.kmer_size:
            return None
        try:
            return int(context.upper().translate(_DIGITS), 4)
        except ValueError:
            return None

    def lookup(self, context: Union[str, SequenceWindow], alternate: str) -> float:
        '''Probability that the centre base of `context` mutates to `alternate`.

        Returns:
            float: A probability in [0, 1], or NaN if the table has no value
                for this context (unknown context, wrong length, non-ACGT base)
        '''
        if isinstance(context, SequenceWindow):
            context = context.context
        index = self._index(context)
        if index is None or alternate not in BASES:
            return math.nan
        return float(self._rates[index, BASES.index(alternate)])

    def rates(self, context: Union[str, SequenceWindow]) -> np.ndarray:
        '''All four alternate base probabilities of a context (A, C, G, T).'''
        if isinstance(context, SequenceWindow):
            context = context.context
        index = self._index(context)
        if index is None:
            return np.full(4, np.nan)
        return self._rates[index]


def _parse_probability(value: str, path: str, line_no: int) -> float:
    value = value.strip()
    if value.upper() in _MISSING:
        return math.nan
    try:
        probability = float(value)
    except ValueError:
        raise MalformedInput(path, line_no, f"not a number: '{value}'") from None
    if math.isnan(probability):
        return math.nan
    if not 0.0 <= probability <= 1.0:
        raise MalformedInput(path, line_no, f"probability {value} is outside [0, 1]")
    return probability


def _expand_pattern(pattern: str) -> np.ndarray:
    '''Indices of all k-mers matched by a pattern with 'N' wildcards.'''
    indices = np.zeros(1, dtype=np.int64)
    for base in pattern:
        digits = np.arange(4) if base == 'N' else np.array([BASES.index(base)])
        indices = (indices[:, None] * 4 + digits[None, :]).ravel()
    return indices


def _reverse_complement_indices(kmer_size: int) -> np.ndarray:
    indices = np.arange(4 ** kmer_size)
    weights: List[int] = [4 ** p for p in range(kmer_size - 1, -1, -1)]
    digits = (indices[:, None] // np.array(weights)[None, :]) % 4
    rc_digits = 3 - digits[:, ::-1]
    return rc_digits @ np.array(weights)

"""Shared fixtures: a tiny genome with one transcript on each strand.

chr1 layout (0-based):

    0-9    ACGTACGTAC  intergenic
    10-12  CCA         5' UTR
    13-19  ATGGCTT     CDS, exon 1
    20-29  GTAAGTTTAG  intron (splice sites 20, 21, 28, 29)
    30-34  GGTAA       CDS, exon 2
    35-39  CCCCC       3' UTR
    40-49  ACGTACGTAC  intergenic

The coding sequence of T1 is ATG GCT TGG TAA. chr2 is the reverse
complement of chr1 and carries the mirrored transcript T2 on the minus
strand, so chr1 position p corresponds to chr2 position 49 - p.
"""

import pytest
from Bio.Seq import reverse_complement

from genovo.modules.parse import SequenceContextProvider
from genovo.modules.regions import Transcript

CHR1 = "ACGTACGTAC" + "CCA" + "ATGGCTT" + "GTAAGTTTAG" + "GGTAA" + "CCCCC" + "ACGTACGTAC"
CHR2 = reverse_complement(CHR1)

REGIONS = (
    "# id\tchromosome\tstrand\tspan\texons\tcds\tphases\n"
    "T1\tchr1\t+\t10-40\t10-20;30-40\t13-20;30-35\t0;0\n"
    "T2\tchr2\t-\t10-40\t10-20;30-40\t15-20;30-37\t0;0\n"
)

UNIFORM_TABLE = "context\tA\tC\tG\tT\nNNN\t0.001\t0.001\t0.001\t0.001\n"


def mirror(position: int) -> int:
    return len(CHR1) - 1 - position


@pytest.fixture
def genome() -> SequenceContextProvider:
    return SequenceContextProvider({'chr1': CHR1, 'chr2': CHR2})


@pytest.fixture
def plus_transcript() -> Transcript:
    return Transcript('T1', 'chr1', '+', ((10, 20), (30, 40)), ((13, 20), (30, 35)), (0, 0))


@pytest.fixture
def minus_transcript() -> Transcript:
    return Transcript('T2', 'chr2', '-', ((10, 20), (30, 40)), ((15, 20), (30, 37)), (0, 0))


@pytest.fixture
def fasta_path(tmp_path):
    path = tmp_path / "genome.fa"
    path.write_text(f">chr1\n{CHR1[:25]}\n{CHR1[25:]}\n>chr2\n{CHR2}\n")
    return path


@pytest.fixture
def regions_path(tmp_path):
    path = tmp_path / "regions.tsv"
    path.write_text(REGIONS)
    return path


@pytest.fixture
def table_path(tmp_path):
    path = tmp_path / "probabilities.tsv"
    path.write_text(UNIFORM_TABLE)
    return path


@pytest.fixture
def observed_path(tmp_path):
    path = tmp_path / "observed.txt"
    path.write_text(
        "# chromosome position reference alternate\n"
        "chr1\t15\tT\tC\n"     # T1 start codon
        "chr1\t31\tG\tA\n"     # T1 nonsense
        "chr1\t21\tG\tA\n"     # T1 splice donor
        "chr1\t26\tT\tA\n"     # deep intronic, no transcript
        "chr1\t3\tG\tT\n"      # intergenic
        "chr2\t36\tA\tG\n"     # T2 start codon
    )
    return path

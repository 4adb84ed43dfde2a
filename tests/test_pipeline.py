"""End-to-end tests of the command line pipeline."""

import pytest

from genovo.pipeline import main, parse_args


@pytest.fixture
def inputs(fasta_path, table_path, regions_path, observed_path):
    return [
        '--genome', str(fasta_path),
        '--mutation-probabilities', str(table_path),
        '--genomic-regions', str(regions_path),
        '--observed-mutations', str(observed_path),
        '--number-of-random-samples', '200',
        '--seed', '11',
    ]


def read_rows(path):
    lines = path.read_text().splitlines()
    return lines[0].split('\t'), [line.split('\t') for line in lines[1:]]


class TestParseArgs:
    """Tests for command line parsing."""

    def test_defaults(self) -> None:
        args = parse_args([])
        assert args.action is None
        assert args.significant_mutations == '-'
        assert args.number_of_random_samples is None

    def test_invalid_action(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(['--action', 'shuffle'])


class TestMain:
    """Tests for running the pipeline."""

    def test_all_steps(self, tmp_path, inputs) -> None:
        out = tmp_path / "significant.tsv"
        counts = tmp_path / "counts.tsv"
        main(inputs + ['--significant-mutations', str(out), '--observed-counts', str(counts)])

        header, rows = read_rows(out)
        assert header == ['transcript_id', 'type', 'observed', 'expected', 'p_value']
        assert {(row[0], row[1]) for row in rows} >= {('T1', '5'), ('T1', '6'), ('T2', '5')}
        start_codon = next(row for row in rows if row[:2] == ['T1', '5'])
        assert start_codon[2] == '1'
        assert float(start_codon[3]) == pytest.approx(0.009)
        p_values = [float(row[4]) for row in rows]
        assert p_values == sorted(p_values)

        header, rows = read_rows(counts)
        assert header[0] == 'transcript_id'
        assert [row[0] for row in rows] == ['T1', 'T2']

    def test_steps_in_separate_runs(self, tmp_path, inputs) -> None:
        combined = tmp_path / "combined.tsv"
        main(inputs + ['--significant-mutations', str(combined)])

        files = {
            'possible': str(tmp_path / "possible.txt"),
            'expected': str(tmp_path / "expected.tsv"),
            'sampled': str(tmp_path / "sampled.tsv.gz"),
            'classified': str(tmp_path / "classified.tsv"),
        }
        main(inputs + ['--action', 'enumerate', '--possible-mutations', files['possible']])
        main(inputs + ['--action', 'expect', '--possible-mutations', files['possible'],
                       '--expected-mutations', files['expected']])
        main(inputs + ['--action', 'sample', '--possible-mutations', files['possible'],
                       '--sampled-mutations', files['sampled']])
        main(inputs + ['--action', 'classify', '--classified-mutations', files['classified']])
        separate = tmp_path / "separate.tsv"
        main(inputs + ['--action', 'compare', '--expected-mutations', files['expected'],
                       '--sampled-mutations', files['sampled'], '--classified-mutations', files['classified'],
                       '--significant-mutations', str(separate)])

        assert separate.read_text() == combined.read_text()

    def test_single_transcript(self, tmp_path, inputs) -> None:
        out = tmp_path / "significant.tsv"
        main(inputs + ['--id', 'T2', '--significant-mutations', str(out)])
        _, rows = read_rows(out)
        assert {row[0] for row in rows} == {'T2'}

    def test_config_file(self, tmp_path, fasta_path, table_path, regions_path, observed_path) -> None:
        config = tmp_path / "config.yaml"
        config.write_text(
            "references:\n"
            f"  genome: {fasta_path}\n"
            f"  mutation_probabilities: {table_path}\n"
            f"  genomic_regions: {regions_path}\n"
            f"  observed_mutations: {observed_path}\n"
            "sampling:\n"
            "  iterations: 20\n"
        )
        out = tmp_path / "significant.tsv"
        main(['--config', str(config), '--significant-mutations', str(out)])
        _, rows = read_rows(out)
        assert rows

    def test_missing_argument(self, tmp_path, inputs) -> None:
        with pytest.raises(SystemExit) as e:
            main(inputs + ['--action', 'enumerate'])
        assert e.value.code == 1

    def test_reference_mismatch_exits(self, tmp_path, inputs) -> None:
        bad = tmp_path / "bad.txt"
        bad.write_text("chr1\t15\tA\tC\n")
        out = tmp_path / "significant.tsv"
        with pytest.raises(SystemExit) as e:
            main(inputs + ['--observed-mutations', str(bad), '--significant-mutations', str(out)])
        assert e.value.code == 1

    def test_intergenic_reference_mismatch_exits(self, tmp_path, inputs) -> None:
        bad = tmp_path / "bad.txt"
        bad.write_text("chr1\t3\tA\tT\n")
        with pytest.raises(SystemExit) as e:
            main(inputs + ['--observed-mutations', str(bad), '--action', 'classify',
                           '--observed-counts', str(tmp_path / "counts.tsv")])
        assert e.value.code == 1

    def test_log_dir(self, tmp_path, inputs) -> None:
        log_dir = tmp_path / "logs"
        main(inputs + ['--action', 'classify', '--observed-counts', str(tmp_path / "counts.tsv"),
                       '--log-dir', str(log_dir)])
        assert list(log_dir.glob("genovo_*.log"))

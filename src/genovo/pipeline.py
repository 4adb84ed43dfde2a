import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from genovo import __version__
from genovo.compare import compare_mutations, write_significant
from genovo.enumerate import enumerate_all, read_possible_mutations, write_possible_mutations
from genovo.expect import expected_number_of_mutations, read_expected, write_expected
from genovo.modules.config import load_config, validate_config
from genovo.modules.errors import ConfigError, GenovoError, MissingArgumentError
from genovo.modules.parse import SequenceContextProvider, read_observed_mutations
from genovo.modules.probabilities import ProbabilityTable
from genovo.modules.regions import Transcript, read_regions
from genovo.modules.translate import GeneticCode
from genovo.observed import (classify_mutations, read_classified, tally_observed,
                             write_classified, write_observed_counts)
from genovo.sample import read_sampled, sample_mutations, write_sampled

ACTIONS = ['enumerate', 'expect', 'sample', 'classify', 'compare']


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    '''Parse command line arguments.'''
    parser = argparse.ArgumentParser(
        prog='genovo',
        description='Find transcripts with more de novo mutations than expected by chance'
    )
    parser.add_argument('-a', '--action', choices=ACTIONS,
                        help='Run a single step of the pipeline (default: all steps)')
    parser.add_argument('-c', '--config',
                        help='YAML config file with reference paths and model settings')
    parser.add_argument('-g', '--genome',
                        help='Reference genome (.2bit or FASTA)')
    parser.add_argument('-p', '--mutation-probabilities',
                        help='Table of context dependent point mutation probabilities')
    parser.add_argument('-r', '--genomic-regions',
                        help='Transcript regions file')
    parser.add_argument('-m', '--observed-mutations',
                        help='Observed point mutations (chr, 1-based pos, ref, alt)')
    parser.add_argument('--possible-mutations',
                        help='File of possible mutations (written or read)')
    parser.add_argument('--expected-mutations',
                        help='File of expected mutation counts (written or read)')
    parser.add_argument('--sampled-mutations',
                        help='File of sampled mutation distributions (written or read)')
    parser.add_argument('--classified-mutations',
                        help='File of classified observed mutations (written or read)')
    parser.add_argument('--observed-counts',
                        help='Write observed mutation counts per transcript to this file')
    parser.add_argument('-o', '--significant-mutations', default='-',
                        help='Output of the comparison (default: stdout)')
    parser.add_argument('--id',
                        help='Only process the transcript with this ID')
    parser.add_argument('-n', '--number-of-random-samples', type=int,
                        help='Number of random realizations to sample')
    parser.add_argument('-s', '--seed', type=int,
                        help='Seed of the random number generator')
    parser.add_argument('-w', '--workers', type=int,
                        help='Number of worker processes')
    parser.add_argument('--log-dir',
                        help='Directory for DEBUG level log files')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log debug messages to the console')
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def setup_logging(log_dir: Optional[str] = None, verbose: bool = False) -> None:
    '''Setup loguru logger with console and optional file outputs.'''
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "genovo_{time}.log",
            level="DEBUG",
            rotation="1 day"
        )


def require(value: Optional[str], argument: str) -> str:
    if value is None:
        raise MissingArgumentError(argument)
    return value


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    '''Overwrite config values with those given on the command line.'''
    references = config['references']
    for key in ('genome', 'mutation_probabilities', 'genomic_regions', 'observed_mutations'):
        value = getattr(args, key)
        if value is not None:
            references[key] = value
    if args.number_of_random_samples is not None:
        config['sampling']['iterations'] = args.number_of_random_samples
    if args.seed is not None:
        config['sampling']['seed'] = args.seed
    if args.workers is not None:
        config['workers'] = args.workers
    validate_config(config)
    return config


class Pipeline:
    '''Runs the pipeline steps, passing results between them in memory.

    A step that does not run loads its result from the file given on the
    command line instead.
    '''

    def __init__(self, args: argparse.Namespace, config: Dict[str, Any]) -> None:
        self.args = args
        self.config = config
        self.model = config['model']
        self._genome: Optional[SequenceContextProvider] = None
        self._transcripts: Optional[List[Transcript]] = None
        self._genetic_code: Optional[GeneticCode] = None
        self.possible = None
        self.expected = None
        self.sampled = None
        self.classified = None

    @property
    def genome(self) -> SequenceContextProvider:
        if self._genome is None:
            self._genome = SequenceContextProvider.open(require(self.config['references']['genome'], '--genome'))
        return self._genome

    @property
    def transcripts(self) -> List[Transcript]:
        if self._transcripts is None:
            path = require(self.config['references']['genomic_regions'], '--genomic-regions')
            self._transcripts = read_regions(path, self.args.id)
        return self._transcripts

    @property
    def genetic_code(self) -> GeneticCode:
        if self._genetic_code is None:
            try:
                self._genetic_code = GeneticCode.from_config(self.model['codon_table'], self.model['start_codons'])
            except (KeyError, OSError, ValueError) as e:
                raise ConfigError(f"Cannot load codon table {self.model['codon_table']}: {e}") from e
        return self._genetic_code

    def close(self) -> None:
        if self._genome is not None:
            self._genome.close()

    def run(self, actions: List[str]) -> None:
        single = len(actions) == 1
        for action in actions:
            logger.info(f"Running step '{action}'")
            getattr(self, action)(single)

    def _possible_mutations(self):
        if self.possible is None:
            path = require(self.args.possible_mutations, '--possible-mutations')
            self.possible = read_possible_mutations(path, self.args.id)
        return self.possible

    def enumerate(self, single: bool) -> None:
        if single:
            require(self.args.possible_mutations, '--possible-mutations')
        table_path = require(self.config['references']['mutation_probabilities'], '--mutation-probabilities')
        table = ProbabilityTable.load(table_path, self.model['strand_symmetric'])
        self.possible = enumerate_all(
            self.transcripts,
            self.genome,
            table,
            genetic_code=self.genetic_code,
            splice_flank=self.model['splice_flank'],
            scaling=self.model['probability_scaling'],
            workers=self.config['workers'],
            filter_for_id=self.args.id,
        )
        if self.args.possible_mutations:
            write_possible_mutations(self.args.possible_mutations, self.possible)

    def expect(self, single: bool) -> None:
        if single:
            require(self.args.expected_mutations, '--expected-mutations')
        self.expected = expected_number_of_mutations(self._possible_mutations(), self.args.id)
        if self.args.expected_mutations:
            write_expected(self.args.expected_mutations, self.expected)

    def sample(self, single: bool) -> None:
        if single:
            require(self.args.sampled_mutations, '--sampled-mutations')
        sampling = self.config['sampling']
        self.sampled = sample_mutations(
            self._possible_mutations(),
            sampling['iterations'],
            seed=sampling['seed'],
            workers=self.config['workers'],
            filter_for_id=self.args.id,
            sample_unknown=sampling['sample_unknown'],
        )
        if self.args.sampled_mutations:
            write_sampled(self.args.sampled_mutations, self.sampled)

    def classify(self, single: bool) -> None:
        if single and not (self.args.classified_mutations or self.args.observed_counts):
            raise MissingArgumentError('--classified-mutations')
        path = require(self.config['references']['observed_mutations'], '--observed-mutations')
        observed = read_observed_mutations(path)
        self.classified = classify_mutations(
            observed,
            self.transcripts,
            self.genome,
            genetic_code=self.genetic_code,
            splice_flank=self.model['splice_flank'],
            filter_for_id=self.args.id,
        )
        if self.args.classified_mutations:
            write_classified(self.args.classified_mutations, self.classified)
        if self.args.observed_counts:
            write_observed_counts(self.args.observed_counts, tally_observed(self.classified))

    def compare(self, single: bool) -> None:
        args = self.args
        if self.classified is None:
            self.classified = read_classified(require(args.classified_mutations, '--classified-mutations'), args.id)
        if self.expected is None:
            self.expected = read_expected(require(args.expected_mutations, '--expected-mutations'), args.id)
        if self.sampled is None:
            self.sampled = read_sampled(require(args.sampled_mutations, '--sampled-mutations'), args.id)
        rows = compare_mutations(self.classified, self.expected, self.sampled, args.id)
        write_significant(args.significant_mutations, rows)


def main(argv: Optional[List[str]] = None) -> None:
    '''Main function to run the pipeline.'''
    args = parse_args(argv)
    setup_logging(args.log_dir, args.verbose)

    actions = [args.action] if args.action else ACTIONS
    pipeline = None
    try:
        config = apply_overrides(load_config(args.config), args)
        logger.info(f"Starting genovo {__version__}: {', '.join(actions)}")
        logger.debug(f"Configuration: {config}")
        pipeline = Pipeline(args, config)
        pipeline.run(actions)
    except (GenovoError, OSError) as e:
        logger.error(str(e))
        sys.exit(1)
    finally:
        if pipeline is not None:
            pipeline.close()
    logger.info("Done")


if __name__ == '__main__':
    main()

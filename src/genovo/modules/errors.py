from typing import Optional


class GenovoError(Exception):
    """Base class for all errors raised by the pipeline."""


class MalformedInput(GenovoError):
    """An input file contains a line that cannot be parsed.

    Args:
        path: Path of the offending file
        line: 1-based line number, or None if the problem is not tied to a line
        message: What is wrong with the line
    """

    def __init__(self, path: str, line: Optional[int], message: str) -> None:
        self.path = str(path)
        self.line = line
        self.message = message
        location = self.path if line is None else f"{self.path}:{line}"
        super().__init__(f"{location}: {message}")


class ReferenceMismatch(GenovoError):
    '''The reference base of a mutation disagrees with the reference genome.

    This almost always means the mutations were called against a different
    genome build, so it is never skipped silently.
    '''

    def __init__(self, chromosome: str, position: int, expected: str, found: str) -> None:
        self.chromosome = chromosome
        self.position = position
        self.expected = expected
        self.found = found
        super().__init__(
            f"Reference base mismatch at {chromosome}:{position + 1}: "
            f"mutation says {expected}, genome has {found}"
        )


class GenomeLookupError(GenovoError):
    """A sequence was requested for a chromosome the genome does not contain."""


class ConfigError(GenovoError):
    """Invalid configuration value or file."""


class MissingArgumentError(GenovoError):
    """A pipeline step needs an input that was not provided."""

    def __init__(self, argument: str) -> None:
        self.argument = argument
        super().__init__(f"Please provide the command line argument {argument}")

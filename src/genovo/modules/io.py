import gzip
import sys
from mimetypes import guess_type
from pathlib import Path
from typing import Iterable, List, Sequence, TextIO

import pandas as pd

from genovo.modules.errors import MalformedInput

_TERMINAL_PATHS = ('-', '/dev/stdin', '/dev/stdout')


def is_terminal(path: str) -> bool:
    return str(path) in _TERMINAL_PATHS


def open_file(filename: str) -> TextIO:
    """Open a text file for reading, handling gzip and '-' for stdin.

    Args:
        filename (str): Path to file

    Returns:
        File handle: Regular or gzip file handle
    """
    if is_terminal(filename):
        return _UnclosableStream(sys.stdin)
    encoding = guess_type(str(filename))[1]
    if encoding == 'gzip':
        return gzip.open(filename, 'rt')
    return open(filename)


def open_output(filename: str) -> TextIO:
    '''Open a text file for writing.

    Parent directories are created as needed, '.gz' paths are compressed and
    '-' writes to stdout.
    '''
    if is_terminal(filename):
        return _UnclosableStream(sys.stdout)
    path = Path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    if guess_type(str(path))[1] == 'gzip':
        return gzip.open(path, 'wt')
    return open(path, 'w')


class _UnclosableStream:
    '''Wrap stdin/stdout so that leaving a `with` block does not close them.'''

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def __getattr__(self, name):
        return getattr(self._stream, name)

    def __iter__(self):
        return iter(self._stream)

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._stream.writable():
            self._stream.flush()


def write_table(filename: str, rows: Iterable[Sequence], columns: List[str]) -> None:
    '''Write rows as a tab-separated table with a header line.

    Floats keep their full precision and NaN is written as 'NA'.
    '''
    frame = pd.DataFrame(list(rows), columns=columns)
    with open_output(filename) as out:
        out.write(frame.to_csv(sep='\t', index=False, na_rep='NA', lineterminator='\n'))


def read_table(filename: str, columns: List[str]) -> pd.DataFrame:
    '''Read a tab-separated table written by write_table.

    All cells are returned as strings. The frame is indexed by the line
    number of each row in the file; blank lines are dropped.

    Raises:
        MalformedInput: if the file cannot be parsed or lacks a column
    '''
    try:
        with open_file(filename) as handle:
            frame = pd.read_csv(handle, sep='\t', dtype=str, keep_default_na=False, skip_blank_lines=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise MalformedInput(filename, None, str(e)) from e
    missing = [column for column in columns if column not in frame.columns]
    if missing:
        raise MalformedInput(filename, 1, f"missing columns: {', '.join(missing)}")
    frame.index = frame.index + 2
    blank = (frame.isna() | frame.eq('')).all(axis=1)
    return frame[~blank]

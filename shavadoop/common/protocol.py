"""
Intermediate File Protocol
Naming and record conventions for split, unsorted map, shuffle and reduce
files. These files are the only channel between the master and its slaves.
"""

import os
import re
from typing import Iterable, List, Tuple

SPLIT_PREFIX = "S"
UNSORTED_MAP_PREFIX = "UM"
REDUCE_PREFIX = "RM"
SHUFFLE_PREFIX = "SM"

SEPARATOR = ":"
PING_REPLY = "OK"

_SPLIT_NAME = re.compile(r"^S(\d+)$")
_UMX_NAME = re.compile(r"^UM(\d+)$")
_RMX_NAME = re.compile(r"^RM(\d+)$")


class MalformedRecordError(ValueError):
    """Raised when a line does not follow the `key: value` record format"""


def split_file(work_dir: str, index: int) -> str:
    """Path of the index-th split in the work dir"""
    return os.path.join(work_dir, f"{SPLIT_PREFIX}{index}")


def reduce_file(work_dir: str, sequence: int) -> str:
    """Path of the reduce file for the sequence-th key of a run"""
    return os.path.join(work_dir, f"{REDUCE_PREFIX}{sequence}")


def _sibling(path: str, pattern, prefix: str) -> str:
    directory, name = os.path.split(path)
    match = pattern.match(name)
    if not match:
        raise ValueError(f"Unexpected file identifier: {path}")
    return os.path.join(directory, f"{prefix}{match.group(1)}")


def umx_for_split(split_id: str) -> str:
    """S<N> -> UM<N>, in the same directory"""
    return _sibling(split_id, _SPLIT_NAME, UNSORTED_MAP_PREFIX)


def split_for_umx(umx_id: str) -> str:
    """UM<N> -> S<N>, in the same directory"""
    return _sibling(umx_id, _UMX_NAME, SPLIT_PREFIX)


def shuffle_for_reduce(rmx_id: str) -> str:
    """RM<i> -> SM<i>, in the same directory"""
    return _sibling(rmx_id, _RMX_NAME, SHUFFLE_PREFIX)


def format_record(key: str, value, spaced: bool = False) -> str:
    """Format a record; intermediate files use `key: value`, reports `key:value`"""
    glue = f"{SEPARATOR} " if spaced else SEPARATOR
    return f"{key}{glue}{value}"


def parse_record(line: str) -> Tuple[str, str]:
    """
    Split a record on its first separator and trim both sides.

    Raises:
        MalformedRecordError: if the line has no separator
    """
    key, sep, value = line.partition(SEPARATOR)
    if not sep:
        raise MalformedRecordError(f"Missing '{SEPARATOR}' separator: {line!r}")
    return key.strip(), value.strip()


def parse_count_record(line: str) -> Tuple[str, int]:
    """Parse a `key: count` record. Raises MalformedRecordError on a bad count."""
    key, value = parse_record(line)
    try:
        return key, int(value)
    except ValueError:
        raise MalformedRecordError(f"Count is not an integer: {line!r}") from None


def read_lines(path: str) -> List[str]:
    """
    Read a line-oriented file in the platform default encoding

    Undecodable bytes become U+FFFD. Lines end only at \\n, \\r or \\r\\n.
    """
    with open(path, 'r', errors='replace', newline=None) as f:
        text = f.read()
    if not text:
        return []
    lines = text.split('\n')
    if lines[-1] == '':
        lines.pop()
    return lines


def write_lines(path: str, lines: Iterable[str]):
    """Overwrite a line-oriented file, one record per line"""
    with open(path, 'w', errors='replace') as f:
        for line in lines:
            f.write(line + '\n')


def write_single_record(path: str, record: str):
    """Overwrite a file holding exactly one record, without trailing newline"""
    with open(path, 'w', errors='replace') as f:
        f.write(record)

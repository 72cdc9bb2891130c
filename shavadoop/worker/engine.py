"""
Worker Engine
Executes the three slave operations: PING, MAP and SHUFFLE_REDUCE.
Every operation returns the lines the master reads back as the task result.
"""

import os
import time
import logging
from itertools import groupby
from typing import Callable, Iterable, List, Optional, Sequence

from shavadoop.common import protocol
from shavadoop.common.config import DEFAULT_PING_DELAY
from shavadoop.common.stopwords import DEFAULT_STOPWORDS

logger = logging.getLogger(__name__)

PING = "PING"
MAP = "MAP"
SHUFFLE_REDUCE = "SHUFFLE_REDUCE"
OPERATIONS = (PING, MAP, SHUFFLE_REDUCE)


def tokenize(line: str) -> List[str]:
    """Maximal runs of letters; any other character is a delimiter"""
    return ["".join(chars) for is_letter, chars in groupby(line, key=str.isalpha) if is_letter]


class WorkerEngine:
    """Runs a single slave operation against the shared work dir"""

    def __init__(self, stopwords: Optional[Iterable[str]] = None,
                 ping_delay: float = DEFAULT_PING_DELAY, base_dir: str = ".",
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the engine

        Args:
            stopwords: Words dropped by the map operation (lowercase)
            ping_delay: Seconds a ping waits before answering
            base_dir: Directory relative file identifiers are resolved against
            sleep: Sleep function, replaceable in tests
        """
        self.stopwords = frozenset(DEFAULT_STOPWORDS if stopwords is None else stopwords)
        self.ping_delay = ping_delay
        self.base_dir = base_dir
        self._sleep = sleep

    def run(self, operation: str, params: Sequence[str]) -> List[str]:
        """
        Dispatch an operation by name

        Raises:
            ValueError: unknown operation or wrong parameters
        """
        params = list(params)
        if operation == PING:
            return self.ping()
        if operation == MAP:
            if len(params) != 1:
                raise ValueError("Usage: MAP <Sx>")
            return self.map(params[0])
        if operation == SHUFFLE_REDUCE:
            if len(params) < 3:
                raise ValueError("Usage: SHUFFLE_REDUCE <key> <RMx> <UMx>...")
            return self.shuffle_reduce(params[0], params[1], params[2:])
        raise ValueError(f"Unknown operation {operation!r}, expected one of {', '.join(OPERATIONS)}")

    def _resolve(self, identifier: str) -> str:
        return os.path.join(self.base_dir, identifier)

    def ping(self) -> List[str]:
        """Simulate machine latency, then answer OK"""
        self._sleep(self.ping_delay)
        return [protocol.PING_REPLY]

    def keep(self, token: str) -> bool:
        return len(token) > 1 and token not in self.stopwords

    def map(self, split_id: str) -> List[str]:
        """
        Count words of a split

        Writes one `word: 1` record per retained token to the split's UMx file
        (nothing is written when no token is retained).

        Returns:
            One `word:<UMx>` line per retained token, in occurrence order
        """
        umx_id = protocol.umx_for_split(split_id)
        words = []
        for line in protocol.read_lines(self._resolve(split_id)):
            for token in tokenize(line):
                word = token.lower()
                if self.keep(word):
                    words.append(word)

        if words:
            protocol.write_lines(self._resolve(umx_id),
                                 (protocol.format_record(word, 1, spaced=True) for word in words))
        logger.debug(f"Map {split_id}: {len(words)} words retained")
        return [protocol.format_record(word, umx_id) for word in words]

    def _matching_records(self, key: str, umx_id: str) -> List[tuple]:
        target = key.lower()
        matches = []
        for number, line in enumerate(protocol.read_lines(self._resolve(umx_id)), start=1):
            if not line.strip():
                continue
            try:
                word, count = protocol.parse_count_record(line)
            except protocol.MalformedRecordError as e:
                logger.warning(f"Skipping line {number} of {umx_id}: {e}")
                continue
            if word.lower() == target:
                matches.append((word, count))
        return matches

    def shuffle_reduce(self, key: str, rmx_id: str, umx_ids: Sequence[str]) -> List[str]:
        """
        Aggregate every occurrence of one key

        Args:
            key: The word to aggregate
            rmx_id: Reduce file to write `key:total` to
            umx_ids: Unsorted map files that may contain the key

        Returns:
            A single `key:total` line

        Raises:
            FileNotFoundError: a referenced UMx file does not exist
        """
        smx_id = protocol.shuffle_for_reduce(rmx_id)
        total = 0
        shuffled = []
        for umx_id in umx_ids:
            for _, count in self._matching_records(key, umx_id):
                shuffled.append(protocol.format_record(key, count, spaced=True))
                total += count

        if shuffled:
            protocol.write_lines(self._resolve(smx_id), shuffled)
        output = protocol.format_record(key, total)
        protocol.write_single_record(self._resolve(rmx_id), output)
        logger.debug(f"Shuffle/reduce {key}: {len(shuffled)} records from {len(umx_ids)} files")
        return [output]

#!/usr/bin/env python3
"""
Job Manager for the Shavadoop master
Run-scoped state: hosts, splits, batch plans, the key index and results
"""

import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Set, Tuple, TypeVar

from shavadoop.common import protocol
from shavadoop.common.config import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Phase(Enum):
    """Phases of a run, strictly sequential"""
    PENDING = "pending"
    PROBE = "probe"
    SPLIT = "split"
    MAP = "map"
    SHUFFLE_REDUCE = "shuffle_reduce"
    ASSEMBLE = "assemble"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class Host:
    """A candidate slave and whether it answered the liveness probe"""
    name: str
    reachable: bool


@dataclass
class Split:
    """A chunk of non-blank corpus lines consumed by one map task"""
    index: int
    path: str
    lines: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ResultEntry:
    word: str
    count: int

    def __str__(self):
        return protocol.format_record(self.word, self.count)


@dataclass
class KeyIndex:
    """Which UMx files hold which word, and which host produced each UMx file"""
    key_files: Dict[str, Set[str]] = field(default_factory=dict)
    file_hosts: Dict[str, str] = field(default_factory=dict)

    def add(self, word: str, umx_id: str, host: str):
        self.key_files.setdefault(word, set()).add(umx_id)
        self.file_hosts[umx_id] = host

    def add_map_output(self, host: str, lines: Iterable[str]) -> int:
        """Merge `word:<UMx>` lines from one map task; returns lines skipped"""
        skipped = 0
        for line in lines:
            try:
                word, umx_id = protocol.parse_record(line)
            except protocol.MalformedRecordError as e:
                logger.warning(f"Ignoring map output from {host}: {e}")
                skipped += 1
                continue
            if not word or not umx_id:
                logger.warning(f"Ignoring map output from {host}: {line!r}")
                skipped += 1
                continue
            self.add(word, umx_id, host)
        return skipped

    def keys(self) -> List[str]:
        """Keys in scheduling order"""
        return sorted(self.key_files)

    def files_for(self, word: str) -> List[str]:
        return sorted(self.key_files.get(word, ()))

    def __len__(self):
        return len(self.key_files)


def load_hosts(lines: Iterable[str]) -> List[str]:
    """Candidate hosts in file order; blank lines and repeats are dropped"""
    hosts = []
    for line in lines:
        host = line.strip()
        if host and host not in hosts:
            hosts.append(host)
    return hosts


def format_reachability(hosts: Sequence[Host]) -> List[str]:
    return [protocol.format_record(host.name, str(host.reachable).lower(), spaced=True)
            for host in hosts]


def split_corpus(lines: Iterable[str], split_size: int) -> List[List[str]]:
    """
    Chunk the non-blank lines of a corpus

    Args:
        lines: Corpus lines in order
        split_size: Maximum number of non-blank lines per chunk

    Returns:
        Chunks in corpus order; only the last may be shorter, none is empty

    Raises:
        ConfigurationError: split_size is less than 1
    """
    if split_size < 1:
        raise ConfigurationError(f"split size must be at least 1, got {split_size}")
    chunks = []
    chunk = []
    for line in lines:
        if not line.strip():
            continue
        chunk.append(line)
        if len(chunk) >= split_size:
            chunks.append(chunk)
            chunk = []
    if chunk:
        chunks.append(chunk)
    return chunks


def plan_batches(items: Sequence[T], hosts: Sequence[str],
                 tasks_per_host: int) -> List[List[Tuple[str, T]]]:
    """
    Round-robin items over hosts in batches of len(hosts) * tasks_per_host

    Within a batch the j-th item goes to hosts[j % len(hosts)], so every
    host gets one task before any host gets a second one.
    """
    if not hosts:
        raise ValueError("Cannot schedule tasks without hosts")
    if tasks_per_host < 1:
        raise ConfigurationError(f"tasks per host must be at least 1, got {tasks_per_host}")
    batch_size = len(hosts) * tasks_per_host
    batches = []
    for start in range(0, len(items), batch_size):
        chunk = items[start:start + batch_size]
        batches.append([(hosts[j % len(hosts)], item) for j, item in enumerate(chunk)])
    return batches


def parse_results(lines: Iterable[str]) -> List[ResultEntry]:
    """Turn `key:total` lines from reduce tasks into result entries"""
    entries = []
    for line in lines:
        # keys are letters only, so the count follows the last separator
        word, sep, count = line.rpartition(protocol.SEPARATOR)
        try:
            if not sep:
                raise ValueError
            entries.append(ResultEntry(word.strip(), int(count.strip())))
        except ValueError:
            logger.warning(f"Ignoring malformed reduce output {line!r}")
    return entries


def rank(entries: Iterable[ResultEntry]) -> List[ResultEntry]:
    """Descending count, ties broken by word"""
    return sorted(entries, key=lambda entry: (-entry.count, entry.word))

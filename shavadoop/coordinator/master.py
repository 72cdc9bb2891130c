"""
Shavadoop master.
Drives a word count run: PROBE -> SPLIT -> MAP -> SHUFFLE_REDUCE -> ASSEMBLE.
"""

import os
import time
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from shavadoop.common import protocol
from shavadoop.common.config import ConfigurationError
from shavadoop.coordinator.executor import RemoteTaskExecutor, TaskRunner, TaskSpec
from shavadoop.coordinator.job_manager import (
    Host, KeyIndex, Phase, ResultEntry, Split,
    format_reachability, load_hosts, parse_results, plan_batches, rank, split_corpus,
)

logger = logging.getLogger(__name__)


class NoReachableHostsError(RuntimeError):
    """No candidate host answered the liveness probe"""


@dataclass
class RunReport:
    """What a run produced, for callers and tests"""
    hosts: List[Host] = field(default_factory=list)
    splits: List[Split] = field(default_factory=list)
    key_count: int = 0
    results: List[ResultEntry] = field(default_factory=list)
    failed_tasks: int = 0
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def reachable_hosts(self) -> List[str]:
        return [host.name for host in self.hosts if host.reachable]


class Master:
    """Schedules slave tasks over the reachable hosts and assembles the ranking"""

    def __init__(self, runner: TaskRunner, work_dir: str = ".", tasks_per_host: int = 1,
                 task_timeout: Optional[float] = None, task_retries: int = 0, top: int = 50):
        self.runner = runner
        self.work_dir = os.path.abspath(work_dir)
        self.tasks_per_host = tasks_per_host
        self.task_timeout = task_timeout
        self.task_retries = task_retries
        self.top = top
        self.phase = Phase.PENDING

    @contextmanager
    def _phase(self, phase: Phase, label: str, report: RunReport):
        self.phase = phase
        logger.info(f"{label}...")
        start_time = time.time()
        try:
            yield
        except BaseException:
            self.phase = Phase.ABORTED
            raise
        elapsed = time.time() - start_time
        report.timings[phase.value] = elapsed
        logger.info(f"{phase.value} time: {elapsed:.3f}s")

    def run(self, hosts_file: str, status_file: str, input_file: str,
            output_file: str, split_size: int = 1) -> RunReport:
        """
        Execute a complete run

        Raises:
            ConfigurationError: split_size is invalid
            NoReachableHostsError: no candidate host answered the probe
        """
        if split_size < 1:
            self.phase = Phase.ABORTED
            raise ConfigurationError(f"split size must be at least 1, got {split_size}")
        report = RunReport()
        candidates = load_hosts(protocol.read_lines(hosts_file))
        max_outstanding = max(len(candidates), 1) * self.tasks_per_host

        with RemoteTaskExecutor(self.runner, max_outstanding, self.task_timeout) as executor:
            with self._phase(Phase.PROBE, "Pinging slaves", report):
                report.hosts = self.probe(executor, candidates, status_file)
            reachable = report.reachable_hosts
            if not reachable:
                self.phase = Phase.ABORTED
                raise NoReachableHostsError("No reachable slave hosts")

            with self._phase(Phase.SPLIT, "Splitting input file", report):
                report.splits = self.split(input_file, split_size)

            with self._phase(Phase.MAP, "Mapping split files", report):
                key_index, failed = self.map(executor, report.splits, reachable)
                report.key_count = len(key_index)
                report.failed_tasks += failed

            with self._phase(Phase.SHUFFLE_REDUCE, "Shuffle/reduce unsorted map files", report):
                entries, failed = self.shuffle_reduce(executor, key_index, reachable)
                report.failed_tasks += failed

        with self._phase(Phase.ASSEMBLE, "Assembling final result", report):
            report.results = self.assemble(entries, output_file)

        self.phase = Phase.COMPLETED
        if report.failed_tasks:
            logger.warning(f"{report.failed_tasks} task(s) produced no output; their words are missing")
        return report

    def probe(self, executor: RemoteTaskExecutor, candidates: Sequence[str],
              status_file: str) -> List[Host]:
        """Ping every candidate at once and record who answered OK"""
        handles = [executor.submit(host, TaskSpec.ping()) for host in candidates]
        answers = {outcome.host: outcome for outcome in executor.wait_all(handles)}
        hosts = []
        for name in candidates:
            outcome = answers[name]
            reachable = outcome.ok and outcome.lines[:1] == [protocol.PING_REPLY]
            if not reachable:
                logger.warning(f"Slave {name} is unreachable")
            hosts.append(Host(name, reachable))
        protocol.write_lines(status_file, format_reachability(hosts))
        logger.info(f"{sum(h.reachable for h in hosts)}/{len(hosts)} slaves reachable")
        return hosts

    def split(self, input_file: str, split_size: int) -> List[Split]:
        """Write the corpus chunks to S0, S1, ... in the work dir"""
        chunks = split_corpus(protocol.read_lines(input_file), split_size)
        os.makedirs(self.work_dir, exist_ok=True)
        splits = []
        for index, lines in enumerate(chunks):
            path = protocol.split_file(self.work_dir, index)
            protocol.write_lines(path, lines)
            splits.append(Split(index, path, lines))
        logger.info(f"{len(splits)} splits written to {self.work_dir}")
        return splits

    def _run_batches(self, executor: RemoteTaskExecutor, batches: List[List[Tuple[str, object]]],
                     make_task: Callable[[object], TaskSpec]):
        """Yield the outcomes of each batch once every task of the batch has returned"""
        for number, batch in enumerate(batches, start=1):
            handles = [executor.submit(host, make_task(item)) for host, item in batch]
            outcomes = executor.wait_all(handles)
            for attempt in range(1, self.task_retries + 1):
                failed = [outcome for outcome in outcomes if not outcome.ok]
                if not failed:
                    break
                logger.info(f"Batch {number}: retrying {len(failed)} task(s), attempt {attempt}")
                retried = executor.wait_all([executor.submit(o.host, o.task) for o in failed])
                outcomes = [outcome for outcome in outcomes if outcome.ok] + retried
            logger.debug(f"Batch {number}/{len(batches)} done ({len(batch)} tasks)")
            yield outcomes

    def map(self, executor: RemoteTaskExecutor, splits: Sequence[Split],
            hosts: Sequence[str]) -> Tuple[KeyIndex, int]:
        """Run one map task per split and index which UMx file holds which word"""
        key_index = KeyIndex()
        failed = 0
        if not splits:
            return key_index, failed
        batches = plan_batches(list(splits), hosts, self.tasks_per_host)
        for outcomes in self._run_batches(executor, batches, lambda s: TaskSpec.map(s.path)):
            for outcome in outcomes:
                if outcome.ok:
                    key_index.add_map_output(outcome.host, outcome.lines)
                else:
                    failed += 1
        logger.info(f"{len(key_index)} distinct keys in {len(key_index.file_hosts)} UMx files")
        return key_index, failed

    def shuffle_reduce(self, executor: RemoteTaskExecutor, key_index: KeyIndex,
                       hosts: Sequence[str]) -> Tuple[List[ResultEntry], int]:
        """Run one shuffle/reduce task per key; the i-th key writes RM<i>"""
        entries: List[ResultEntry] = []
        failed = 0
        keys = [key for key in key_index.keys() if key_index.files_for(key)]
        if not keys:
            return entries, failed

        def make_task(item: Tuple[int, str]) -> TaskSpec:
            sequence, key = item
            return TaskSpec.shuffle_reduce(key, protocol.reduce_file(self.work_dir, sequence),
                                           key_index.files_for(key))

        batches = plan_batches(list(enumerate(keys)), hosts, self.tasks_per_host)
        for outcomes in self._run_batches(executor, batches, make_task):
            for outcome in outcomes:
                if outcome.ok:
                    entries.extend(parse_results(outcome.lines))
                else:
                    failed += 1
        return entries, failed

    def assemble(self, entries: Sequence[ResultEntry], output_file: str) -> List[ResultEntry]:
        """Rank the counts and write the final report"""
        ranked = rank(entries)
        protocol.write_lines(output_file, (str(entry) for entry in ranked))
        if self.top:
            logger.info("Top %d: %s", self.top, ", ".join(str(e) for e in ranked[:self.top]))
        return ranked

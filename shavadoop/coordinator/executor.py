"""
Remote Task Executor
Runs one slave operation against one host and captures its result lines.
The master never talks to a slave any other way.
"""

import shlex
import logging
import subprocess
import concurrent.futures
from enum import Enum
from dataclasses import dataclass
from concurrent.futures import ThreadPoolExecutor, Future
from typing import List, Optional, Sequence, Tuple

import grpc

from shavadoop.common.config import ConfigurationError, ShavadoopConfig
from shavadoop.common.grpc_client import get_worker_channel, run_task_stub, worker_address

logger = logging.getLogger(__name__)


class TaskKind(Enum):
    """Operations a slave can run"""
    PING = "PING"
    MAP = "MAP"
    SHUFFLE_REDUCE = "SHUFFLE_REDUCE"


@dataclass(frozen=True)
class TaskSpec:
    """One unit of work: an operation and its positional string parameters"""
    kind: TaskKind
    params: Tuple[str, ...] = ()

    @classmethod
    def ping(cls) -> "TaskSpec":
        return cls(TaskKind.PING)

    @classmethod
    def map(cls, split_id: str) -> "TaskSpec":
        return cls(TaskKind.MAP, (split_id,))

    @classmethod
    def shuffle_reduce(cls, key: str, rmx_id: str, umx_ids: Sequence[str]) -> "TaskSpec":
        if not umx_ids:
            raise ValueError(f"Shuffle/reduce of {key!r} needs at least one UMx file")
        return cls(TaskKind.SHUFFLE_REDUCE, (key, rmx_id) + tuple(umx_ids))

    def argv(self) -> List[str]:
        return [self.kind.value] + list(self.params)

    def __str__(self):
        return " ".join(self.argv())


@dataclass
class TaskOutcome:
    """Result of a task; lines is None when the task produced no result"""
    host: str
    task: TaskSpec
    lines: Optional[List[str]] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.lines is not None


@dataclass
class TaskHandle:
    host: str
    task: TaskSpec
    future: Future


class TaskRunner:
    """Executes a task on a host, returning its output lines or raising"""

    def run(self, host: str, task: TaskSpec, timeout: Optional[float] = None) -> List[str]:
        raise NotImplementedError


class LocalTaskRunner(TaskRunner):
    """Runs tasks in-process with a worker engine; the host is only a label"""

    def __init__(self, engine):
        self.engine = engine

    def run(self, host, task, timeout=None):
        return self.engine.run(task.kind.value, task.params)


class ShellTaskRunner(TaskRunner):
    """
    Runs the slave through a remote shell command, e.g. ssh

    ssh joins its arguments into one string for the remote shell, so with
    quote_args the task arguments are shell-quoted before they are appended.
    """

    def __init__(self, command_template: str, quote_args: bool = False):
        self.command_template = command_template
        self.quote_args = quote_args

    def command(self, host: str, task: TaskSpec) -> List[str]:
        args = task.argv()
        if self.quote_args:
            args = [shlex.quote(arg) for arg in args]
        return [part.replace('{host}', host) for part in shlex.split(self.command_template)] + args

    def run(self, host, task, timeout=None):
        result = subprocess.run(
            self.command(host, task),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        if result.returncode != 0:
            raise RuntimeError(f"exit status {result.returncode}: {result.stderr.strip()}")
        return result.stdout.splitlines()


class GrpcTaskRunner(TaskRunner):
    """Calls RunTask on a worker server"""

    def __init__(self, default_port: int, connect_timeout: float = 10):
        self.default_port = default_port
        self.connect_timeout = connect_timeout

    def run(self, host, task, timeout=None):
        address = worker_address(host, self.default_port)
        channel = get_worker_channel(address, timeout=self.connect_timeout)
        try:
            response = run_task_stub(channel)(
                {'kind': task.kind.value, 'params': list(task.params)},
                timeout=timeout,
            )
            return list(response.get('lines', []))
        except grpc.RpcError as e:
            raise RuntimeError(f"gRPC {e.code().name}: {e.details()}")
        finally:
            channel.close()


def build_runner(config: ShavadoopConfig) -> TaskRunner:
    """Select the task runner named by the configuration"""
    if config.runner == 'shell':
        return ShellTaskRunner(config.remote_command, quote_args=config.quote_remote_args)
    if config.runner == 'grpc':
        return GrpcTaskRunner(config.worker_port)
    if config.runner == 'local':
        from shavadoop.worker.engine import WorkerEngine
        return LocalTaskRunner(WorkerEngine(stopwords=config.stopwords(),
                                            ping_delay=config.ping_delay,
                                            base_dir=config.shared_dir))
    raise ConfigurationError(f"Unknown runner {config.runner!r}")


class RemoteTaskExecutor:
    """
    Submits tasks concurrently and collects their outcomes.

    A failed task (unreachable host, non-zero exit, RPC error, timeout)
    is reported as an outcome without lines; the executor never raises
    on behalf of a task. Callers bound how many tasks are outstanding.
    """

    def __init__(self, runner: TaskRunner, max_outstanding: int,
                 task_timeout: Optional[float] = None):
        self.runner = runner
        self.task_timeout = task_timeout
        self.pool = ThreadPoolExecutor(max_workers=max(1, max_outstanding),
                                       thread_name_prefix='shavadoop-task')

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown(wait=exc_type is None)

    def shutdown(self, wait: bool = True):
        self.pool.shutdown(wait=wait, cancel_futures=not wait)

    def _execute(self, host: str, task: TaskSpec) -> TaskOutcome:
        try:
            lines = self.runner.run(host, task, timeout=self.task_timeout)
            return TaskOutcome(host, task, lines=lines)
        except subprocess.TimeoutExpired:
            logger.warning(f"Task {task} on {host} timed out after {self.task_timeout}s")
            return TaskOutcome(host, task, error="timeout")
        except Exception as e:
            logger.warning(f"Task {task} on {host} failed: {e}")
            return TaskOutcome(host, task, error=str(e))

    def submit(self, host: str, task: TaskSpec) -> TaskHandle:
        logger.debug(f"Submitting {task} to {host}")
        return TaskHandle(host, task, self.pool.submit(self._execute, host, task))

    def wait(self, handle: TaskHandle) -> TaskOutcome:
        """Block until one task returns"""
        return self.wait_all([handle])[0]

    def wait_all(self, handles: Sequence[TaskHandle]) -> List[TaskOutcome]:
        """
        Barrier: block until every task has returned.

        Returns:
            Outcomes in completion order

        Raises:
            KeyboardInterrupt: propagated after cancelling tasks not yet started
        """
        by_future = {handle.future: handle for handle in handles}
        outcomes = []
        try:
            for future in concurrent.futures.as_completed(by_future):
                outcomes.append(self._outcome(by_future[future], future))
        except KeyboardInterrupt:
            for future in by_future:
                future.cancel()
            raise
        return outcomes

    def _outcome(self, handle: TaskHandle, future: Future) -> TaskOutcome:
        try:
            return future.result()
        except concurrent.futures.CancelledError:
            return TaskOutcome(handle.host, handle.task, error="cancelled")

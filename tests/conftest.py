"""
Pytest configuration and shared fixtures
"""

import os
import shutil
import tempfile
import threading

import pytest

from shavadoop.coordinator.executor import LocalTaskRunner, TaskKind
from shavadoop.worker.engine import WorkerEngine


@pytest.fixture
def temp_dir():
    """Create temporary directory for test files"""
    dirpath = tempfile.mkdtemp()
    yield dirpath
    shutil.rmtree(dirpath)


@pytest.fixture
def sample_text():
    """Sample corpus for testing"""
    return """Le chat mange la souris.

Le chien mange aussi, et le chat dort.
Un chien, deux chiens: 3 chiens!
"""


@pytest.fixture
def sample_input_file(temp_dir, sample_text):
    """Create a sample input file for testing"""
    filepath = os.path.join(temp_dir, 'input.txt')
    with open(filepath, 'w') as f:
        f.write(sample_text)
    return filepath


@pytest.fixture
def engine():
    """Worker engine that answers pings immediately"""
    return WorkerEngine(ping_delay=0)


@pytest.fixture
def write_hosts(temp_dir):
    """Write a host file and return its path"""
    def _write(*hosts):
        path = os.path.join(temp_dir, 'hosts.txt')
        with open(path, 'w') as f:
            f.write('\n'.join(hosts) + '\n')
        return path
    return _write


class RecordingRunner(LocalTaskRunner):
    """
    In-process runner that records every task and can make hosts fail.

    Hosts in `down` never answer pings; tasks listed in `failing`
    (by their first parameter) raise instead of running.
    """

    def __init__(self, engine, down=(), failing=(), delay=0.0):
        super().__init__(engine)
        self.down = set(down)
        self.failing = set(failing)
        self.delay = delay
        self.calls = []
        self.events = []
        self.lock = threading.Lock()

    def run(self, host, task, timeout=None):
        with self.lock:
            self.calls.append((host, task))
            self.events.append(('start', host, task))
        try:
            if host in self.down:
                raise ConnectionError(f"{host} unreachable")
            if task.params and task.params[0] in self.failing:
                raise RuntimeError(f"{task} crashed")
            if self.delay and task.kind is not TaskKind.PING:
                threading.Event().wait(self.delay)
            return super().run(host, task, timeout)
        finally:
            with self.lock:
                self.events.append(('end', host, task))

    def tasks_of(self, kind):
        return [(host, task) for host, task in self.calls if task.kind is kind]


@pytest.fixture
def recording_runner(engine):
    return RecordingRunner(engine)


@pytest.fixture
def make_runner(engine):
    """Factory for recording runners with failure injection"""
    def _make(**kwargs):
        return RecordingRunner(engine, **kwargs)
    return _make

"""
Configuration for the master and the slaves.
Values come from the environment and may be overridden from the command line.
"""

import os
import logging
from dataclasses import dataclass
from typing import FrozenSet, Optional

from shavadoop.common.stopwords import DEFAULT_STOPWORDS, load_stopwords

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_REMOTE_COMMAND = "ssh -o BatchMode=yes {host} python3 -m shavadoop.worker"
DEFAULT_WORKER_PORT = 50052
DEFAULT_PING_DELAY = 10.0
RUNNERS = ("shell", "grpc", "local")


class ConfigurationError(ValueError):
    """Invalid or insufficient run parameters"""


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    if raw.lower() in ("1", "true", "yes", "on"):
        return True
    if raw.lower() in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


@dataclass
class ShavadoopConfig:
    """Run-wide settings shared by the master CLI and the worker entry points"""
    shared_dir: str = "."
    tasks_per_host: int = 1
    task_timeout: Optional[float] = None
    task_retries: int = 0
    runner: str = "shell"
    remote_command: str = DEFAULT_REMOTE_COMMAND
    quote_remote_args: bool = True
    worker_port: int = DEFAULT_WORKER_PORT
    ping_delay: float = DEFAULT_PING_DELAY
    stopwords_file: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ShavadoopConfig":
        config = cls(
            shared_dir=os.getenv('SHAVADOOP_SHARED_DIR', '.'),
            tasks_per_host=_env_int('SHAVADOOP_TASKS_PER_HOST', 1, minimum=1),
            task_timeout=_env_float('SHAVADOOP_TASK_TIMEOUT', None),
            task_retries=_env_int('SHAVADOOP_TASK_RETRIES', 0),
            runner=os.getenv('SHAVADOOP_RUNNER', 'shell'),
            remote_command=os.getenv('SHAVADOOP_REMOTE_COMMAND', DEFAULT_REMOTE_COMMAND),
            quote_remote_args=_env_bool('SHAVADOOP_REMOTE_QUOTE', True),
            worker_port=_env_int('WORKER_PORT', DEFAULT_WORKER_PORT, minimum=1),
            ping_delay=_env_float('SHAVADOOP_PING_DELAY', DEFAULT_PING_DELAY),
            stopwords_file=os.getenv('SHAVADOOP_STOPWORDS') or None,
            log_level=os.getenv('SHAVADOOP_LOG_LEVEL', 'INFO'),
        )
        config.validate()
        return config

    def validate(self):
        if self.tasks_per_host < 1:
            raise ConfigurationError("tasks per host must be at least 1")
        if self.task_retries < 0:
            raise ConfigurationError("task retries must not be negative")
        if self.task_timeout is not None and self.task_timeout <= 0:
            raise ConfigurationError("task timeout must be positive")
        if self.runner not in RUNNERS:
            raise ConfigurationError(f"runner must be one of {', '.join(RUNNERS)}, got {self.runner!r}")
        if "{host}" not in self.remote_command:
            raise ConfigurationError("remote command must contain a {host} placeholder")

    def stopwords(self) -> FrozenSet[str]:
        if self.stopwords_file:
            return load_stopwords(self.stopwords_file)
        return DEFAULT_STOPWORDS


def configure_logging(level: str = "INFO"):
    """Send logs to stderr; stdout is reserved for task results"""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)

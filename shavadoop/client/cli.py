#!/usr/bin/env python3
"""
Shavadoop master CLI
Runs a distributed word count over the slaves listed in a host file
"""

import sys
import argparse
import logging

from shavadoop.common.config import ConfigurationError, ShavadoopConfig, RUNNERS, configure_logging
from shavadoop.coordinator.executor import build_runner
from shavadoop.coordinator.master import Master, NoReachableHostsError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='shavadoop-master',
                                     description='Distributed word count over remote slaves')
    parser.add_argument('hosts_file', help='File with one candidate slave host per line')
    parser.add_argument('status_file', help='File to write host reachability to')
    parser.add_argument('input_file', help='Corpus to count words in')
    parser.add_argument('output_file', help='File to write word:count lines to')
    parser.add_argument('split_size', nargs='?', type=int, default=1,
                        help='Non-blank lines per split (default: 1)')
    parser.add_argument('--work-dir', help='Shared directory for intermediate files')
    parser.add_argument('--tasks-per-host', type=int, help='Concurrent tasks per slave')
    parser.add_argument('--runner', choices=RUNNERS, help='How tasks reach the slaves')
    parser.add_argument('--remote-command', help='Shell runner command, with a {host} placeholder')
    parser.add_argument('--no-remote-quote', dest='remote_quote', action='store_false', default=None,
                        help='Pass task arguments to the remote command unquoted')
    parser.add_argument('--worker-port', type=int, help='Default gRPC worker port')
    parser.add_argument('--task-timeout', type=float, help='Seconds before a task counts as failed')
    parser.add_argument('--task-retries', type=int, help='Retries for a failed task (default: 0)')
    parser.add_argument('--top', type=int, default=50, help='Number of top words to log')
    parser.add_argument('--log-level', help='Logging level (default: INFO)')
    return parser


def load_config(args) -> ShavadoopConfig:
    """Environment settings overridden by command line flags"""
    config = ShavadoopConfig.from_env()
    overrides = {
        'shared_dir': args.work_dir,
        'tasks_per_host': args.tasks_per_host,
        'runner': args.runner,
        'remote_command': args.remote_command,
        'quote_remote_args': args.remote_quote,
        'worker_port': args.worker_port,
        'task_timeout': args.task_timeout,
        'task_retries': args.task_retries,
        'log_level': args.log_level,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    config.validate()
    return config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    configure_logging(config.log_level)

    master = Master(
        build_runner(config),
        work_dir=config.shared_dir,
        tasks_per_host=config.tasks_per_host,
        task_timeout=config.task_timeout,
        task_retries=config.task_retries,
        top=args.top,
    )
    try:
        report = master.run(args.hosts_file, args.status_file, args.input_file,
                            args.output_file, args.split_size)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except NoReachableHostsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"✓ {len(report.results)} words counted on {len(report.reachable_hosts)} slave(s), "
          f"written to {args.output_file}")
    return 0


if __name__ == '__main__':
    sys.exit(main())

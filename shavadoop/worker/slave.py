"""
Slave entry point, invoked by the master over a remote shell:

    python -m shavadoop.worker PING
    python -m shavadoop.worker MAP <Sx>
    python -m shavadoop.worker SHUFFLE_REDUCE <key> <RMx> <UMx>...
    python -m shavadoop.worker serve [--port PORT]

Result lines go to stdout, logs to stderr. Exit status is 0 on success.
"""

import sys
import argparse
import logging

from shavadoop.common.config import ConfigurationError, ShavadoopConfig, configure_logging
from shavadoop.worker.engine import OPERATIONS, WorkerEngine

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='shavadoop-worker', description='Shavadoop slave')
    parser.add_argument('operation', choices=OPERATIONS + ('serve',),
                        help='Operation to run, or "serve" to start the gRPC worker server')
    parser.add_argument('params', nargs='*', help='Operation parameters')
    parser.add_argument('--port', type=int, default=None, help='gRPC port for "serve"')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = ShavadoopConfig.from_env()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    configure_logging(config.log_level)

    if args.operation == 'serve':
        from shavadoop.worker.worker_server import serve
        serve(args.port or config.worker_port, config)
        return 0

    engine = WorkerEngine(stopwords=config.stopwords(), ping_delay=config.ping_delay,
                          base_dir=config.shared_dir)
    try:
        lines = engine.run(args.operation, args.params)
    except Exception as e:
        logger.error(f"{args.operation} {' '.join(args.params)} failed: {e}")
        return 1

    for line in lines:
        sys.stdout.write(line + '\n')
    sys.stdout.flush()
    return 0


if __name__ == '__main__':
    sys.exit(main())

#!/usr/bin/env python3
"""
Shavadoop Worker Server
Exposes the worker engine to the master over gRPC
"""

import os
import socket
import time
import logging
from concurrent import futures

import grpc
import psutil

from shavadoop.common.config import ShavadoopConfig, configure_logging
from shavadoop.common.grpc_client import SERVICE_NAME, decode_message, encode_message
from shavadoop.worker.engine import WorkerEngine

logger = logging.getLogger(__name__)


class WorkerServicer:
    """Handles RunTask calls from the master"""

    def __init__(self, engine: WorkerEngine, worker_id: str = 'unknown'):
        self.engine = engine
        self.worker_id = worker_id
        self.process = psutil.Process()

    def get_memory_usage(self) -> float:
        """Get current memory usage in bytes."""
        return self.process.memory_info().rss

    def RunTask(self, request: dict, context: grpc.ServicerContext) -> dict:
        """Run one operation and return its result lines"""
        operation = request.get('kind', '')
        params = request.get('params', [])
        logger.info(f"Worker {self.worker_id}: Received {operation} {params}")
        start_time = time.time()
        try:
            lines = self.engine.run(operation, params)
        except ValueError as e:
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(e))
        except Exception as e:
            logger.error(f"Worker {self.worker_id}: {operation} failed: {e}")
            context.abort(grpc.StatusCode.INTERNAL, f"{type(e).__name__}: {e}")

        execution_time = int((time.time() - start_time) * 1000)
        logger.info(f"Worker {self.worker_id}: {operation} completed in {execution_time}ms, "
                    f"{len(lines)} lines, rss={self.get_memory_usage() / (1024 * 1024):.1f}MB")
        return {'lines': lines}


def add_worker_servicer_to_server(servicer: WorkerServicer, server):
    handler = grpc.method_handlers_generic_handler(SERVICE_NAME, {
        'RunTask': grpc.unary_unary_rpc_method_handler(
            servicer.RunTask,
            request_deserializer=decode_message,
            response_serializer=encode_message,
        ),
    })
    server.add_generic_rpc_handlers((handler,))


def create_server(engine: WorkerEngine, address: str, max_workers: int = 4, worker_id: str = 'unknown'):
    """
    Build a worker server bound to address

    Returns:
        (server, port) tuple; the server is not started yet
    """
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=max_workers))
    add_worker_servicer_to_server(WorkerServicer(engine, worker_id), server)
    port = server.add_insecure_port(address)
    return server, port


def serve(port: int, config: ShavadoopConfig, max_workers: int = 4):
    """Start the worker gRPC server and block until interrupted"""
    engine = WorkerEngine(stopwords=config.stopwords(), ping_delay=config.ping_delay,
                          base_dir=config.shared_dir)
    worker_id = os.environ.get('WORKER_ID', socket.gethostname())
    server, bound_port = create_server(engine, f'[::]:{port}', max_workers, worker_id)
    server.start()
    logger.info(f"Worker {worker_id} gRPC server started on port {bound_port}")
    try:
        server.wait_for_termination()
    except KeyboardInterrupt:
        server.stop(0)


def main():
    """Start the worker process"""
    config = ShavadoopConfig.from_env()
    configure_logging(config.log_level)
    serve(config.worker_port, config)


if __name__ == '__main__':
    main()

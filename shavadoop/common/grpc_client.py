"""
gRPC Client Utilities
Channel helpers and the JSON message codec for the worker's RunTask method
"""

import json

import grpc

SERVICE_NAME = 'shavadoop.Worker'
RUN_TASK_METHOD = f'/{SERVICE_NAME}/RunTask'

CHANNEL_OPTIONS = [
    ('grpc.max_send_message_length', 100 * 1024 * 1024),
    ('grpc.max_receive_message_length', 100 * 1024 * 1024),
]


def encode_message(message: dict) -> bytes:
    return json.dumps(message).encode('utf-8')


def decode_message(payload: bytes) -> dict:
    return json.loads(payload.decode('utf-8'))


def worker_address(host: str, default_port: int) -> str:
    """
    Append the default port unless the host already carries one

    IPv6 literals take the '[addr]:port' form; a bare literal is bracketed.
    """
    if host.startswith('['):
        if ']:' in host:
            return host
        return f'{host}:{default_port}'
    colons = host.count(':')
    if colons == 1:
        return host
    if colons > 1:
        return f'[{host}]:{default_port}'
    return f'{host}:{default_port}'


def get_worker_channel(address, timeout=10):
    """
    Open a channel to a worker and wait until it is ready

    Args:
        address: Host address in format 'host:port' (e.g., 'node-1:50052')
        timeout: Connection timeout in seconds (default: 10)

    Returns:
        grpc.Channel: ready channel, to be closed by the caller

    Raises:
        ConnectionError: If the worker cannot be reached in time
    """
    channel = grpc.insecure_channel(address, options=CHANNEL_OPTIONS)
    try:
        grpc.channel_ready_future(channel).result(timeout=timeout)
        return channel
    except grpc.FutureTimeoutError:
        channel.close()
        raise ConnectionError(f"Failed to connect to worker at {address} within {timeout}s")


def run_task_stub(channel):
    """Callable for the RunTask unary method on a worker channel"""
    return channel.unary_unary(
        RUN_TASK_METHOD,
        request_serializer=encode_message,
        response_deserializer=decode_message,
    )

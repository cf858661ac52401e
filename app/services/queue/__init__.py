# Remote queue: request signing, wire codec, client, job payloads, consumer.
# Re-export so "from app.services.queue import ..." works for callers.

from app.services.queue.client import QueueClient, build_queue_client
from app.services.queue.signer import Credentials, sign_request
from app.services.queue.wire import ReceivedMessage, parse_receive_response

__all__ = [
    "Credentials",
    "QueueClient",
    "ReceivedMessage",
    "build_queue_client",
    "parse_receive_response",
    "sign_request",
]

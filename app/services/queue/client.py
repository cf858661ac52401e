"""
Queue client: SendMessage / ReceiveMessage / DeleteMessage over signed HTTP.

Every call is exactly one network request. Nothing is retried here; retry
policy belongs to the consumer (visibility timeout + redelivery).
"""

import json
import logging
from typing import Any

import httpx

from app.core.config import Settings, settings
from app.core.errors import TransportError
from app.services.integrations.http_client import create_httpx_client
from app.services.queue.signer import Credentials, sign_request
from app.services.queue.wire import (
    FORM_CONTENT_TYPE,
    ReceivedMessage,
    delete_message_form,
    parse_error_response,
    parse_receive_response,
    parse_send_response,
    receive_message_form,
    send_message_form,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "sqs"
LONG_POLL_MARGIN_SECONDS = 5.0


def encode_payload(payload: dict[str, Any] | str) -> str:
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, separators=(",", ":"), sort_keys=True)


class QueueClient:
    def __init__(
        self,
        queue_url: str,
        credentials: Credentials,
        visibility_timeout: int = 30,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            queue_url: Full queue URL (requests are POSTed here)
            credentials: Signing credentials; validated on every request
            visibility_timeout: Seconds a received job stays hidden from other receivers
            http_client: Optional shared client (tests inject one with a mock transport)
        """
        self.queue_url = queue_url
        self.credentials = credentials
        self.visibility_timeout = visibility_timeout
        self._http_client = http_client

    async def send(self, payload: dict[str, Any] | str) -> str:
        """Enqueue one job. Returns the provider-assigned message ID."""
        text = await self._call("SendMessage", send_message_form(encode_payload(payload)))
        message_id = parse_send_response(text)
        if not message_id:
            raise TransportError("SendMessage response did not contain a MessageId", body=text)
        logger.info(f"Queue send ok message_id={message_id}")
        return message_id

    async def receive(self, max_messages: int = 10, wait_seconds: int = 10) -> list[ReceivedMessage]:
        """Long-poll for up to max_messages jobs (bounded to 10 / 20s by the wire layer)."""
        form = receive_message_form(max_messages, wait_seconds, self.visibility_timeout)
        text = await self._call(
            "ReceiveMessage", form, read_timeout=wait_seconds + LONG_POLL_MARGIN_SECONDS
        )
        messages = parse_receive_response(text)
        logger.info(f"Queue receive returned {len(messages)} message(s)")
        return messages

    async def delete(self, receipt_handle: str) -> None:
        """Acknowledge a job. Must use the handle from the most recent receive."""
        await self._call("DeleteMessage", delete_message_form(receipt_handle))

    async def _call(self, action: str, form: str, read_timeout: float | None = None) -> str:
        try:
            if self._http_client is not None:
                response = await self._send_signed(self._http_client, form)
            else:
                client_kwargs = {"read": read_timeout} if read_timeout else {}
                async with create_httpx_client(**client_kwargs) as client:
                    response = await self._send_signed(client, form)
        except httpx.HTTPError as e:
            logger.warning(f"Queue {action} transport failure: {type(e).__name__}: {e}")
            raise TransportError(f"{action} failed: {type(e).__name__}: {e}") from e

        if not response.is_success:
            body = response.text
            code, message = parse_error_response(body)
            detail = f"{code}: {message}" if code else body[:500]
            logger.warning(f"Queue {action} failed status={response.status_code} {detail}")
            raise TransportError(
                f"{action} failed: {response.status_code} {detail}",
                status_code=response.status_code,
                body=body,
            )
        return response.text

    async def _send_signed(self, client: httpx.AsyncClient, form: str) -> httpx.Response:
        """Sign the built request so every header the client transmits is signed."""
        request = client.build_request(
            "POST",
            self.queue_url,
            content=form.encode("utf-8"),
            headers={"Content-Type": FORM_CONTENT_TYPE},
        )
        signed = sign_request(
            "POST", self.queue_url, dict(request.headers), request.content, self.credentials
        )
        for name, value in signed.items():
            request.headers[name] = value
        return await client.send(request)


def build_queue_client(
    config: Settings = settings,
    http_client: httpx.AsyncClient | None = None,
) -> QueueClient | None:
    """Build a client from settings, or None when the queue is not configured."""
    if not config.queue_configured:
        return None
    credentials = Credentials(
        region=config.aws_region,
        service=SERVICE_NAME,
        access_key=config.aws_access_key_id,
        secret_key=config.aws_secret_access_key,
    )
    return QueueClient(
        config.sqs_queue_url,
        credentials,
        visibility_timeout=config.sqs_visibility_timeout,
        http_client=http_client,
    )

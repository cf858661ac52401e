"""
Queue provider wire format.

Requests are form-encoded `Action=...` bodies; responses are flat tag-delimited
markup. The parser extracts fields by tag name inside each `<Message>` block,
so field order inside a block does not matter and repeated blocks are fine.
"""

import re
from dataclasses import dataclass
from urllib.parse import urlencode

API_VERSION = "2012-11-05"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"

ACTION_SEND = "SendMessage"
ACTION_RECEIVE = "ReceiveMessage"
ACTION_DELETE = "DeleteMessage"

MAX_RECEIVE_MESSAGES = 10
MAX_WAIT_SECONDS = 20

_MESSAGE_BLOCK = re.compile(r"<Message>(.*?)</Message>", re.DOTALL)

# &amp; must come last or "&amp;quot;" would decode twice
_ENTITIES = (
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)


@dataclass(frozen=True)
class ReceivedMessage:
    message_id: str
    receipt_handle: str
    body: str


def unescape_entities(text: str) -> str:
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return text


def extract_tag(fragment: str, tag: str) -> str | None:
    """Return the raw text between the first <tag> and its closing tag, or None."""
    match = re.search(rf"<{tag}>(.*?)</{tag}>", fragment, re.DOTALL)
    if match is None:
        return None
    return match.group(1)


def build_form(action: str, **params: str | int) -> str:
    fields: dict[str, str] = {"Action": action, "Version": API_VERSION}
    for key, value in params.items():
        fields[key] = str(value)
    return urlencode(fields)


def send_message_form(message_body: str) -> str:
    return build_form(ACTION_SEND, MessageBody=message_body)


def receive_message_form(max_messages: int, wait_seconds: int, visibility_timeout: int) -> str:
    """Build a long-poll receive request; limits are clamped to provider bounds."""
    return build_form(
        ACTION_RECEIVE,
        MaxNumberOfMessages=max(1, min(max_messages, MAX_RECEIVE_MESSAGES)),
        WaitTimeSeconds=max(0, min(wait_seconds, MAX_WAIT_SECONDS)),
        VisibilityTimeout=visibility_timeout,
    )


def delete_message_form(receipt_handle: str) -> str:
    return build_form(ACTION_DELETE, ReceiptHandle=receipt_handle)


def parse_receive_response(text: str) -> list[ReceivedMessage]:
    """
    Decode a ReceiveMessage response into messages.

    Blocks without a MessageId or ReceiptHandle are skipped. Bodies are
    entity-unescaped; a block with no Body yields an empty body (the consumer
    treats that as poison).
    """
    messages = []
    for block in _MESSAGE_BLOCK.findall(text):
        message_id = extract_tag(block, "MessageId")
        receipt_handle = extract_tag(block, "ReceiptHandle")
        if not message_id or not receipt_handle:
            continue
        body = extract_tag(block, "Body") or ""
        messages.append(
            ReceivedMessage(
                message_id=unescape_entities(message_id.strip()),
                receipt_handle=unescape_entities(receipt_handle.strip()),
                body=unescape_entities(body),
            )
        )
    return messages


def parse_send_response(text: str) -> str | None:
    message_id = extract_tag(text, "MessageId")
    return message_id.strip() if message_id else None


def parse_error_response(text: str) -> tuple[str | None, str | None]:
    """Return (code, message) from a provider error body, if present."""
    code = extract_tag(text, "Code")
    message = extract_tag(text, "Message")
    return (
        code.strip() if code else None,
        unescape_entities(message.strip()) if message else None,
    )

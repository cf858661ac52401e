"""
Request signing for the queue provider (AWS Signature Version 4).

Pure functions only: no network access and no global state, so the same
inputs (including the timestamp) always produce the same headers.

Signing key chain:
    kDate    = HMAC("AWS4" + secret, YYYYMMDD)
    kRegion  = HMAC(kDate, region)
    kService = HMAC(kRegion, service)
    kSigning = HMAC(kService, "aws4_request")
"""

import hashlib
import hmac
from dataclasses import dataclass
from datetime import UTC, datetime
from urllib.parse import parse_qsl, quote, urlsplit

from app.core.errors import ConfigurationError

ALGORITHM = "AWS4-HMAC-SHA256"
TERMINATOR = "aws4_request"
AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"


@dataclass(frozen=True)
class Credentials:
    region: str
    service: str
    access_key: str
    secret_key: str

    def validate(self) -> None:
        """Raise ConfigurationError if any part is missing or contains whitespace/slashes."""
        for field_name in ("region", "service", "access_key"):
            value = getattr(self, field_name)
            if not value or not isinstance(value, str):
                raise ConfigurationError(f"Signing credential '{field_name}' is missing")
            if "/" in value or any(ch.isspace() for ch in value):
                raise ConfigurationError(f"Signing credential '{field_name}' is malformed")
        if not self.secret_key or not isinstance(self.secret_key, str):
            raise ConfigurationError("Signing credential 'secret_key' is missing")


def sha256_hex(data: bytes | str) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def derive_signing_key(secret_key: str, date_stamp: str, region: str, service: str) -> bytes:
    k_date = _hmac(f"AWS4{secret_key}".encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, TERMINATOR)


def _uri_encode(value: str) -> str:
    return quote(value, safe="-_.~")


def canonical_query_string(query: str) -> str:
    """Sort parameters by encoded name, then value; encode per RFC 3986."""
    pairs = parse_qsl(query, keep_blank_values=True)
    encoded = sorted((_uri_encode(k), _uri_encode(v)) for k, v in pairs)
    return "&".join(f"{k}={v}" for k, v in encoded)


def canonical_headers(headers: dict[str, str]) -> tuple[str, str]:
    """
    Return (canonical header block, signed header list).

    Names are lower-cased and sorted; values are trimmed with inner runs of
    whitespace collapsed to one space.
    """
    normalized: dict[str, str] = {}
    for name, value in headers.items():
        key = name.strip().lower()
        normalized[key] = " ".join(str(value).split())
    names = sorted(normalized)
    block = "".join(f"{name}:{normalized[name]}\n" for name in names)
    return block, ";".join(names)


def canonical_request(
    method: str,
    path: str,
    query: str,
    headers: dict[str, str],
    payload_hash: str,
) -> tuple[str, str]:
    """Return (canonical request, signed header list)."""
    header_block, signed_headers = canonical_headers(headers)
    request = "\n".join(
        [
            method.upper(),
            path or "/",
            canonical_query_string(query),
            header_block,
            signed_headers,
            payload_hash,
        ]
    )
    return request, signed_headers


def sign_request(
    method: str,
    url: str,
    headers: dict[str, str] | None,
    body: bytes | str,
    credentials: Credentials,
    now: datetime | None = None,
) -> dict[str, str]:
    """
    Sign a request and return the full header set to transmit.

    The returned dict contains the caller's headers plus `Host`, `X-Amz-Date`
    and `Authorization`. Every header in it is covered by the signature.

    Raises:
        ConfigurationError: If credentials are malformed.
    """
    credentials.validate()

    moment = (now or datetime.now(UTC)).astimezone(UTC)
    amz_date = moment.strftime(AMZ_DATE_FORMAT)
    date_stamp = amz_date[:8]

    parts = urlsplit(url)
    if not parts.netloc:
        raise ConfigurationError(f"Queue URL has no host: {url!r}")

    # Drop any caller-provided copies so the signed values are the transmitted ones
    to_send = {
        name: value
        for name, value in (headers or {}).items()
        if name.lower() not in ("host", "x-amz-date", "authorization")
    }
    to_send["Host"] = parts.netloc
    to_send["X-Amz-Date"] = amz_date

    payload_hash = sha256_hex(body)
    request, signed_headers = canonical_request(
        method, parts.path, parts.query, to_send, payload_hash
    )

    scope = f"{date_stamp}/{credentials.region}/{credentials.service}/{TERMINATOR}"
    string_to_sign = "\n".join([ALGORITHM, amz_date, scope, sha256_hex(request)])

    key = derive_signing_key(
        credentials.secret_key, date_stamp, credentials.region, credentials.service
    )
    signature = hmac.new(key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    to_send["Authorization"] = (
        f"{ALGORITHM} Credential={credentials.access_key}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return to_send

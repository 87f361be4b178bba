"""Message-link tokens: issuance, public URLs and resolution.

A message link lets the shop open a pre-filled text message to a customer
without the customer's phone number or the draft body ever appearing in
the link itself. The link carries only an opaque UUID4 token; the private
payload lives in the store until the token's record_expiry_at.

Resolution order (first failure wins):
    1. token parameter absent or blank     -> MissingTokenError (400)
    2. not an 8-4-4-4-12 hex UUID          -> InvalidTokenError (400)
    3. no record for the token             -> TokenNotFoundError (404)
    4. now >= record_expiry_at             -> TokenExpiredError (410)
    5. record without a destination        -> BadRecordError (500)

Tokens stay resolvable until they expire; resolving never mutates them.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from urllib.parse import parse_qs, parse_qsl, quote, urlencode, urlsplit, urlunsplit

from src.cli.config import MessageLinkConfig
from src.db.models import MessageLinkKind
from src.errors.domain import (
    BadRecordError,
    ConflictError,
    InvalidTokenError,
    MissingTokenError,
    TokenExpiredError,
    TokenNotFoundError,
)
from src.services.record_store import RecordStore, TokenRecord, WriteResult
from src.utils.redaction import mask_phone, mask_token

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_BASE_URL = "https://craigs.autos"
LOCAL_DEV_HOSTNAMES = frozenset({"localhost", "127.0.0.1"})
SECONDS_PER_DAY = 24 * 60 * 60

TOKEN_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class TokenPayload:
    """Private payload returned for a valid, unexpired token."""

    to_phone: str
    body: str


def extract_token(raw_query: str | None) -> str:
    """Pull the trimmed ``token`` parameter out of a raw query string.

    Returns:
        The token value, or '' when the parameter is absent or blank.
    """
    if not raw_query:
        return ""
    values = parse_qs(raw_query, keep_blank_values=True).get("token")
    if not values:
        return ""
    return values[0].strip()


def resolve_token(store: RecordStore, token: str | None, now: int) -> TokenPayload:
    """Resolve a token into its private payload.

    Args:
        store: Store holding message-link token records.
        token: Token as received from the client.
        now: Current epoch seconds.

    Returns:
        TokenPayload with to_phone and body exactly as stored.

    Raises:
        MissingTokenError: token is absent or blank.
        InvalidTokenError: token is not a well-formed UUID.
        TokenNotFoundError: no record exists for the token.
        TokenExpiredError: the record is past its expiry.
        BadRecordError: the record has no destination phone.
        TransientStoreError: the store could not be read.
    """
    token = (token or "").strip()
    if not token:
        raise MissingTokenError()
    if not TOKEN_PATTERN.fullmatch(token):
        raise InvalidTokenError()

    record = store.get_token(token)
    if record is None:
        raise TokenNotFoundError(token)
    if now >= record.record_expiry_at:
        raise TokenExpiredError(token, record.record_expiry_at)
    if not record.to_phone:
        logger.error("Message link record %s has no destination", mask_token(token))
        raise BadRecordError(f"message link record {mask_token(token)} has no to_phone")

    return TokenPayload(to_phone=record.to_phone, body=record.body or "")


def resolve_message_link(store: RecordStore, raw_query: str | None, now: int) -> TokenPayload:
    """Resolve the token carried in a raw query string. See resolve_token."""
    return resolve_token(store, extract_token(raw_query), now)


def _safe_http_url(value: str | None) -> str | None:
    """Return value if it is an absolute http(s) URL, else None."""
    if not value:
        return None
    try:
        parts = urlsplit(value.strip())
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return None
    return urlunsplit(parts)


def build_message_link_url(
    base_url: str | None,
    token: str,
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL,
) -> str:
    """Build the public landing-page link for a token.

    The token travels as a query parameter so the landing page can be a
    static file: ``<base>/message/?token=<token>``.

    Args:
        base_url: Origin to link to. Non-http(s) values fall back to
            public_base_url.
        token: Message-link token.
        public_base_url: Production origin.
    """
    base = _safe_http_url(base_url) or public_base_url
    return f"{base.rstrip('/')}/message/?token={quote(token, safe='')}"


def infer_message_link_base_url(
    page_url: str | None,
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL,
) -> str:
    """Pick the origin message links should point at.

    Local development pages (localhost, 127.0.0.1) keep their own origin so
    the landing page works without deploying; everything else routes
    through the production site.
    """
    if page_url:
        try:
            parts = urlsplit(page_url)
            hostname = parts.hostname or ""
        except ValueError:
            hostname = ""
        if hostname in LOCAL_DEV_HOSTNAMES and parts.scheme:
            return f"{parts.scheme}://{parts.netloc.rsplit('@', 1)[-1]}"
    return public_base_url


def with_link_channel(link: str | None, channel: str) -> str | None:
    """Tag a link with ``channel=<channel>``, replacing any existing tag.

    Returns:
        The tagged link, or None when link is not an http(s) URL.
    """
    safe = _safe_http_url(link)
    if safe is None:
        return None
    parts = urlsplit(safe)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "channel"]
    query.append(("channel", channel))
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path or "/", urlencode(query), parts.fragment)
    )


class MessageLinkIssuer:
    """Creates message-link token records and their public URLs."""

    def __init__(self, store: RecordStore, config: MessageLinkConfig | None = None) -> None:
        self._store = store
        self._config = config or MessageLinkConfig()

    @property
    def config(self) -> MessageLinkConfig:
        return self._config

    def issue(
        self,
        conversation_id: str,
        kind: MessageLinkKind,
        to_phone: str,
        body: str,
        now: int,
    ) -> TokenRecord:
        """Create a new token record with create-if-absent semantics.

        Args:
            conversation_id: Conversation that produced the link.
            kind: customer or draft.
            to_phone: Private destination phone number.
            body: Message text to pre-fill.
            now: Current epoch seconds.

        Returns:
            The stored TokenRecord.

        Raises:
            ConflictError: A record already exists under the generated token.
            TransientStoreError: The store could not be written.
        """
        record = TokenRecord(
            token=str(uuid.uuid4()),
            conversation_id=conversation_id,
            kind=MessageLinkKind(kind).value,
            to_phone=to_phone,
            body=body or "",
            created_at=now,
            record_expiry_at=now + self._config.ttl_days * SECONDS_PER_DAY,
        )
        if self._store.put_token_if_absent(record) is WriteResult.condition_failed:
            raise ConflictError(f"message link token {mask_token(record.token)} already exists")

        logger.info(
            "Issued %s message link %s for %s (to %s)",
            record.kind,
            mask_token(record.token),
            conversation_id,
            mask_phone(to_phone),
        )
        return record

    def link_for(self, record: TokenRecord, page_url: str | None = None) -> str:
        """Public URL for an issued token, based on the page the lead came from."""
        base = infer_message_link_base_url(page_url, self._config.public_base_url)
        return build_message_link_url(base, record.token, self._config.public_base_url)

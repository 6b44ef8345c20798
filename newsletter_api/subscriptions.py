"""Subscribe workflow: validate, normalize, persist, then announce."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from .blocking import bounded
from .config import settings
from .errors import (
    DuplicateError,
    InternalError,
    PublishError,
    RequestTimeout,
    UniqueConstraintViolation,
    ValidationError,
)
from .metrics import PUBLISH_FAILURES, SUBSCRIPTIONS
from .publisher import Publisher
from .store import Subscriber, SubscriptionStore, as_utc, normalize_email, utcnow

logger = logging.getLogger(__name__)

MAX_EMAIL_LENGTH = 254
_ADDRESS = re.compile(r"\w+(?:[.-]\w+)*@\w+(?:[.-]\w+)*", re.ASCII)
_TLD = re.compile(r".*\.\w{2,3}", re.ASCII)


@dataclass(frozen=True)
class SubscribeResult:
    email: str
    subscribed_at: datetime
    published: bool


def mask_email(email: str) -> str:
    """Keep the first character of the local part and the domain for logs."""

    local, _, domain = email.partition("@")
    return f"{local[:1]}***" if domain else "***"


def is_valid_email(email: str) -> bool:
    if len(email) > MAX_EMAIL_LENGTH:
        return False
    return bool(_ADDRESS.fullmatch(email)) and bool(_TLD.fullmatch(email))


def _clean(email: Any, preferences: Any) -> tuple[str, dict[str, Any]]:
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("Email is required")
    if preferences is not None and not isinstance(preferences, Mapping):
        raise ValidationError("Preferences must be an object")
    normalized = normalize_email(email)
    if not is_valid_email(normalized):
        raise ValidationError("Please enter a valid email address")
    return normalized, dict(preferences or {})


async def _store_call(fn, *args, timeout: Optional[float]):
    try:
        return await bounded(timeout, fn, *args)
    except TimeoutError as exc:
        logger.error("store call %s timed out after %ss", fn.__name__, timeout)
        raise RequestTimeout() from exc
    except SQLAlchemyError as exc:
        logger.exception("store call %s failed", fn.__name__)
        raise InternalError() from exc


async def _announce(
    publisher: Publisher, channel: str, email: str, timeout: Optional[float]
) -> bool:
    try:
        receivers = await bounded(timeout, publisher.publish, channel, {"email": email})
    except (PublishError, TimeoutError) as exc:
        PUBLISH_FAILURES.inc()
        logger.warning(
            "could not publish %s event for %s: %r", channel, mask_email(email), exc
        )
        return False
    logger.debug("published %s to %s receivers", channel, receivers)
    return True


async def subscribe(
    store: SubscriptionStore,
    publisher: Publisher,
    email: Any,
    preferences: Any = None,
    *,
    channel: Optional[str] = None,
    store_timeout: Optional[float] = None,
    publish_timeout: Optional[float] = None,
) -> SubscribeResult:
    """Subscribe ``email`` and announce it on ``channel``.

    Raises ``ValidationError`` before touching the store, ``DuplicateError``
    when the address is already subscribed (including a lost insert race),
    and ``InternalError`` for store faults. The event is published only after
    the record is committed; a failed publish is logged and reported through
    ``SubscribeResult.published`` without undoing the write.
    """

    channel = channel or settings.PUBLISH_CHANNEL
    if store_timeout is None:
        store_timeout = settings.STORE_TIMEOUT_SECONDS
    if publish_timeout is None:
        publish_timeout = settings.PUBLISH_TIMEOUT_SECONDS

    try:
        normalized, prefs = _clean(email, preferences)
    except ValidationError:
        SUBSCRIPTIONS.labels("invalid").inc()
        raise

    existing = await _store_call(store.find_by_email, normalized, timeout=store_timeout)
    if existing is not None and existing.is_active:
        SUBSCRIPTIONS.labels("duplicate").inc()
        raise DuplicateError("Email is already subscribed to the newsletter")
    # An inactive record is not reactivated here; the insert below collides
    # with it and reports a duplicate.

    now = utcnow()
    record = Subscriber(
        email=normalized,
        preferences=prefs,
        subscribed_at=now,
        created_at=now,
        updated_at=now,
    )
    try:
        saved = await _store_call(store.create, record, timeout=store_timeout)
    except UniqueConstraintViolation as exc:
        SUBSCRIPTIONS.labels("duplicate").inc()
        raise DuplicateError("Email is already subscribed") from exc

    published = await _announce(publisher, channel, normalized, publish_timeout)
    SUBSCRIPTIONS.labels("created").inc()
    logger.info("subscribed %s", mask_email(normalized))
    return SubscribeResult(
        email=saved.email,
        subscribed_at=as_utc(saved.subscribed_at),
        published=published,
    )

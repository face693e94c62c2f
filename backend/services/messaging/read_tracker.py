"""Per-party unread counts for ride conversations."""

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable

from django.db.models import Q
from django.utils import timezone

from chat.models import Conversation, Message
from common.retry import retry_on_transient
from services.exceptions import ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000


class ConversationParty(str, Enum):
    DRIVER = "DRIVER"
    RIDER = "RIDER"


_WATERMARK_FIELDS = {
    ConversationParty.DRIVER: "driver_last_read_at",
    ConversationParty.RIDER: "rider_last_read_at",
}


def party_for_account(conversation: Conversation, account_id: int) -> ConversationParty:
    if conversation.driver_id == account_id:
        return ConversationParty.DRIVER
    if conversation.rider_id == account_id:
        return ConversationParty.RIDER
    raise ForbiddenError("You are not part of this conversation.")


def _viewer_account_id(conversation: Conversation, party: ConversationParty) -> int:
    if party == ConversationParty.DRIVER:
        return conversation.driver_id
    return conversation.rider_id


def watermark(conversation: Conversation, party: ConversationParty) -> datetime:
    return getattr(conversation, _WATERMARK_FIELDS[party]) or conversation.created_at


def unread_count(conversation: Conversation, party: ConversationParty) -> int:
    """Messages from the other party newer than this party's watermark."""
    party = ConversationParty(party)
    return (
        Message.objects
        .filter(conversation=conversation, created_at__gt=watermark(conversation, party))
        .exclude(sender_id=_viewer_account_id(conversation, party))
        .count()
    )


def mark_read(conversation: Conversation, party: ConversationParty, now: datetime = None) -> datetime:
    """
    Advance the party's watermark to ``now``.

    The conditional update only ever moves the watermark forward, even when two
    requests race with skewed clocks.
    """
    party = ConversationParty(party)
    now = now or timezone.now()
    field = _WATERMARK_FIELDS[party]

    Conversation.objects.filter(pk=conversation.pk).filter(
        Q(**{f"{field}__isnull": True}) | Q(**{f"{field}__lt": now})
    ).update(**{field: now})

    conversation.refresh_from_db(fields=[field])
    return getattr(conversation, field)


@retry_on_transient
def unread_counts_for(account_id: int, conversation_ids: Iterable[int]) -> Dict[int, int]:
    """
    Unread counts keyed by conversation id.

    Ids the account does not belong to (or that do not exist) report 0.
    """
    ids = [int(cid) for cid in conversation_ids]
    counts = {cid: 0 for cid in ids}
    if not ids:
        return counts

    conversations = Conversation.objects.filter(id__in=ids).filter(
        Q(driver_id=account_id) | Q(rider_id=account_id)
    )
    for conversation in conversations:
        counts[conversation.id] = unread_count(conversation, party_for_account(conversation, account_id))
    return counts


def get_conversation_for(account_id: int, conversation_id: int) -> Conversation:
    try:
        conversation = Conversation.objects.get(pk=conversation_id)
    except Conversation.DoesNotExist:
        raise NotFoundError("Conversation not found")
    party_for_account(conversation, account_id)
    return conversation


def post_message(conversation: Conversation, sender_id: int, body: str) -> Message:
    """Store a message from one of the two parties and push it to the conversation group."""
    party_for_account(conversation, sender_id)

    body = (body or "").strip()
    if not body:
        raise ValidationError("Message body is required")
    if len(body) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message is too long (max {MAX_MESSAGE_LENGTH} characters)")

    message = Message.objects.create(conversation=conversation, sender_id=sender_id, body=body)

    from realtime.notifications import notify_conversation
    notify_conversation(conversation.id, message)
    return message

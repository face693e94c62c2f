"""
Messaging service - conversation read watermarks and unread counts.
"""

from .read_tracker import (
    ConversationParty,
    get_conversation_for,
    mark_read,
    party_for_account,
    post_message,
    unread_count,
    unread_counts_for,
)

__all__ = [
    "ConversationParty",
    "get_conversation_for",
    "mark_read",
    "party_for_account",
    "post_message",
    "unread_count",
    "unread_counts_for",
]

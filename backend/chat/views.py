from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from accounts.identity import identity_from_request
from common.responses import ok
from services.exceptions import ValidationError
from services.messaging import (
    get_conversation_for,
    mark_read as mark_read_service,
    party_for_account,
    post_message,
    unread_counts_for,
)
from .serializers import MessageCreateSerializer, MessageSerializer, UnreadCountsSerializer


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def conversation_messages(request, conversation_id):
    """
    GET: full message history of a conversation
    POST: send a message to the other party
    """
    identity = identity_from_request(request)
    conversation = get_conversation_for(identity.account_id, conversation_id)

    if request.method == 'GET':
        messages = conversation.messages.order_by('created_at', 'id')
        return ok({'conversation_id': conversation.id, 'messages': MessageSerializer(messages, many=True).data})

    serializer = MessageCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    message = post_message(conversation, identity.account_id, serializer.validated_data['body'])
    return ok({'message': MessageSerializer(message).data}, status_code=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def mark_read(request, conversation_id):
    identity = identity_from_request(request)
    conversation = get_conversation_for(identity.account_id, conversation_id)
    party = party_for_account(conversation, identity.account_id)

    read_at = mark_read_service(conversation, party)
    return ok({'conversation_id': conversation.id, 'last_read_at': read_at.isoformat()})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def unread_counts(request):
    """
    Unread counts for a set of conversations.

    GET takes ``?ids=1,2,3``; POST takes ``{"conversationIds": [1, 2, 3]}``.
    """
    identity = identity_from_request(request)

    if request.method == 'GET':
        raw = [part.strip() for part in request.query_params.get('ids', '').split(',') if part.strip()]
        if not all(part.isdigit() for part in raw):
            raise ValidationError("ids must be a comma separated list of conversation ids")
        ids = [int(part) for part in raw]
    else:
        serializer = UnreadCountsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ids = serializer.validated_data['conversationIds']

    counts = unread_counts_for(identity.account_id, ids)
    return ok({'counts': {str(cid): count for cid, count in counts.items()}})

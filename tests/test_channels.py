"""
Delivery channel tests: Gmail encoding and posting, direct-message writes.
"""

import base64
from unittest.mock import Mock

import pytest
import requests

from congregation_hub.errors import DeliveryError
from congregation_hub.messaging import AttachedNote, Attachment, BroadcastRequest, Recipient, Sender
from congregation_hub.messaging.channels import (
    GMAIL_SEND_URL,
    DirectMessageChannel,
    EmailChannel,
    build_channel,
    compose_email_body,
    encode_email,
)
from congregation_hub.services import ConversationService, NotificationService


def decode(raw):
    return base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)).decode("utf-8")


def test_encode_email_is_unpadded_base64url():
    raw = encode_email("ruth@example.org", "Café night", "Bring a friend?")

    assert "=" not in raw
    assert "+" not in raw and "/" not in raw
    assert decode(raw) == (
        "To: ruth@example.org\r\n"
        "Subject: Café night\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        "\r\n"
        "Bring a friend?"
    )


def test_compose_email_body_appends_note_and_links():
    request = BroadcastRequest(
        channel="email",
        body="Hello",
        recipients=[],
        note=AttachedNote(id="n1", title="Sermon notes", content="Psalm 23"),
        attachments=[
            Attachment(name="flyer.png", url="https://cdn/flyer.png", type="image/png"),
            Attachment(name="agenda.pdf", url="https://cdn/agenda.pdf", type="application/pdf"),
        ],
    )

    body = compose_email_body(request)

    assert body == (
        "Hello"
        "\n\n--- Attached Note: Sermon notes ---\nPsalm 23"
        "\n\nMedia:\n- flyer.png: https://cdn/flyer.png"
        "\n\nAttached Files:\n- agenda.pdf: https://cdn/agenda.pdf"
    )


def test_compose_email_body_plain():
    request = BroadcastRequest(channel="email", body="Just text", recipients=[])
    assert compose_email_body(request) == "Just text"


def email_request():
    return BroadcastRequest(
        channel="email", body="Body", subject="Subject", recipients=[], google_access_token="ya29.token"
    )


@pytest.mark.asyncio
async def test_email_channel_posts_to_gmail(mock_http_response):
    http = Mock()
    http.post.return_value = mock_http_response
    channel = EmailChannel(http_client=http)

    await channel.deliver(Recipient(name="Ruth", email="ruth@example.org"), email_request())

    args, kwargs = http.post.call_args
    assert args[0] == GMAIL_SEND_URL
    assert kwargs["headers"]["Authorization"] == "Bearer ya29.token"
    assert decode(kwargs["json"]["raw"]).startswith("To: ruth@example.org\r\nSubject: Subject\r\n")


@pytest.mark.asyncio
async def test_email_channel_surfaces_api_error_message():
    response = Mock(ok=False, status_code=429)
    response.json.return_value = {"error": {"message": "Daily sending quota exceeded"}}
    channel = EmailChannel(http_client=Mock(post=Mock(return_value=response)))

    with pytest.raises(DeliveryError, match="quota"):
        await channel.deliver(Recipient(email="ruth@example.org"), email_request())


@pytest.mark.asyncio
async def test_email_channel_non_json_error():
    response = Mock(ok=False, status_code=502)
    response.json.side_effect = ValueError("not json")
    channel = EmailChannel(http_client=Mock(post=Mock(return_value=response)))

    with pytest.raises(DeliveryError, match="502"):
        await channel.deliver(Recipient(email="ruth@example.org"), email_request())


@pytest.mark.asyncio
async def test_email_channel_network_error():
    channel = EmailChannel(http_client=Mock(post=Mock(side_effect=requests.ConnectionError("reset"))))

    with pytest.raises(DeliveryError):
        await channel.deliver(Recipient(email="ruth@example.org"), email_request())


def test_channel_identifiers():
    recipient = Recipient(id="m1", name="Ruth")
    assert EmailChannel(http_client=Mock()).identifier(recipient) is None
    assert DirectMessageChannel(Mock(), Mock()).identifier(recipient) == "m1"


def test_build_channel_rejects_unknown():
    with pytest.raises(ValueError):
        build_channel("pigeon")


def dm_channel(fake_db):
    return DirectMessageChannel(ConversationService(fake_db), NotificationService(fake_db))


def dm_request(body="Welcome to the group!", **kwargs):
    return BroadcastRequest(
        channel="direct_message", body=body, recipients=[], sender=Sender(id="admin", name="Pastor Dan"), **kwargs
    )


@pytest.mark.asyncio
async def test_direct_message_creates_conversation_and_message(fake_db):
    channel = dm_channel(fake_db)

    await channel.deliver(Recipient(id="m1", name="Ruth"), dm_request())

    conversations = fake_db.rows("direct_messages")
    assert len(conversations) == 1
    assert conversations[0]["participants"] == ["admin", "m1"]
    assert conversations[0]["last_message"] == "Welcome to the group!"
    assert conversations[0]["read_by"] == ["admin"]

    messages = fake_db.rows("messages")
    assert len(messages) == 1
    assert messages[0]["conversation_id"] == conversations[0]["id"]
    assert messages[0]["author"]["name"] == "Pastor Dan"
    assert messages[0]["type"] == "text"


@pytest.mark.asyncio
async def test_direct_message_reuses_existing_conversation(fake_db):
    fake_db.seed("direct_messages", {"id": "c1", "participants": ["m1", "admin"], "last_message": "hi"})
    channel = dm_channel(fake_db)

    await channel.deliver(Recipient(id="m1"), dm_request("x" * 150))

    assert len(fake_db.rows("direct_messages")) == 1
    assert fake_db.rows("direct_messages")[0]["last_message"] == "x" * 100
    assert fake_db.rows("messages")[0]["conversation_id"] == "c1"


@pytest.mark.asyncio
async def test_direct_message_with_note_creates_invitation(fake_db):
    note = AttachedNote(id="n1", title="Study guide", content="<p>Read John 3</p>")
    image = Attachment(name="photo.jpg", url="https://cdn/photo.jpg", type="image/jpeg")

    await dm_channel(fake_db).deliver(Recipient(id="m2"), dm_request(note=note, attachments=[image]))

    message = fake_db.rows("messages")[0]
    assert message["type"] == "image"
    assert [a["name"] for a in message["attachments"]] == ["photo.jpg", "Study guide"]

    invitation = fake_db.rows("invitations")[0]
    assert invitation["type"] == "note"
    assert invitation["to_user_id"] == "m2"
    assert invitation["resource_id"] == "n1"
    assert invitation["preview_content"] == "Read John 3"


@pytest.mark.asyncio
async def test_direct_message_invitation_failure_does_not_fail_delivery(fake_db):
    notifications = Mock()
    notifications.create_invitation.side_effect = RuntimeError("write denied")
    channel = DirectMessageChannel(ConversationService(fake_db), notifications)

    await channel.deliver(Recipient(id="m2"), dm_request(note=AttachedNote(id="n1", content="x")))

    assert len(fake_db.rows("messages")) == 1

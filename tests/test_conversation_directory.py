"""Tests for ConversationDirectory."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from directchat.chat.directory import (
    ConversationDirectory,
    PairArbiter,
    pair_key,
    sort_conversations,
)
from directchat.chat.schemas import (
    ConversationSummary,
    LastMessagePreview,
    MessageType,
    TextPayload,
)
from directchat.core.errors import NotAuthorized, NotFound, SelfReference
from directchat.core.locks import KeyedLock
from directchat.core.schemas import Identity

from tests.conftest import ALICE, BOB, CAROL


def members(store, conversation_id):
    rows = store.select(
        "conversation_participants", eq={"conversation_id": str(conversation_id)}
    )
    return sorted(row["profile_id"] for row in rows)


def test_find_or_create_is_stable_and_order_independent(services):
    first = services.conversations.find_or_create(ALICE, BOB)
    again = services.conversations.find_or_create(ALICE, BOB)
    reversed_pair = services.conversations.find_or_create(BOB, ALICE)

    assert first.is_new is True
    assert again.is_new is False
    assert reversed_pair.is_new is False
    assert again.conversation_id == first.conversation_id
    assert reversed_pair.conversation_id == first.conversation_id
    assert members(services.store, first.conversation_id) == sorted([ALICE, BOB])
    assert len(services.store.select("conversations")) == 1


def test_find_or_create_keeps_pairs_apart(services):
    with_bob = services.conversations.find_or_create(ALICE, BOB)
    with_carol = services.conversations.find_or_create(ALICE, CAROL)
    bob_carol = services.conversations.find_or_create(BOB, CAROL)

    ids = {with_bob.conversation_id, with_carol.conversation_id, bob_carol.conversation_id}
    assert len(ids) == 3
    assert members(services.store, with_carol.conversation_id) == sorted([ALICE, CAROL])


def test_find_or_create_with_self(services):
    with pytest.raises(SelfReference):
        services.conversations.find_or_create(ALICE, ALICE)
    assert services.store.select("conversations") == []


def test_concurrent_find_or_create_with_arbiter_creates_one(services):
    barrier = threading.Barrier(4)
    results = []

    def start_chat(user_a, user_b):
        barrier.wait()
        results.append(services.conversations.find_or_create(user_a, user_b))

    threads = [
        threading.Thread(target=start_chat, args=pair)
        for pair in [(ALICE, BOB), (BOB, ALICE), (ALICE, BOB), (BOB, ALICE)]
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len({result.conversation_id for result in results}) == 1
    assert sum(result.is_new for result in results) == 1
    assert len(services.store.select("conversations")) == 1


def test_pair_arbiter_releases_locks():
    arbiter = PairArbiter()
    with arbiter.hold(BOB, ALICE):
        assert pair_key(BOB, ALICE) in arbiter._locks
    assert arbiter._locks == {}


def test_directory_without_arbiter(services):
    directory = ConversationDirectory(
        services.store, services.profiles, services.messages, arbiter=None
    )
    first = directory.find_or_create(ALICE, BOB)
    assert directory.find_or_create(BOB, ALICE).conversation_id == first.conversation_id


def test_membership_helpers(services):
    conversation = services.conversations.find_or_create(ALICE, BOB)
    conversation_id = conversation.conversation_id

    assert services.conversations.is_member(conversation_id, ALICE)
    assert not services.conversations.is_member(conversation_id, CAROL)
    assert services.conversations.other_participant(conversation_id, ALICE).username == "bob"
    assert {p.username for p in services.conversations.participants(conversation_id)} == {
        "alice",
        "bob",
    }

    with pytest.raises(NotAuthorized):
        services.conversations.other_participant(conversation_id, CAROL)


def test_other_participant_of_unknown_conversation(services):
    with pytest.raises(NotFound):
        services.conversations.other_participant(
            "00000000-0000-4000-8000-000000000000", ALICE
        )


def test_list_for_user_orders_by_last_message(services):
    with_bob = services.conversations.find_or_create(ALICE, BOB).conversation_id
    with_carol = services.conversations.find_or_create(ALICE, CAROL).conversation_id

    services.messages.append(with_bob, BOB, TextPayload(content="older"))
    services.messages.append(with_carol, ALICE, TextPayload(content="newer"))

    listing = services.conversations.list_for_user(ALICE)
    assert len(listing) == 2
    assert str(listing[0].conversation_id) == str(with_carol)
    assert listing[0].participant.username == "carol_x"
    assert listing[0].last_message.preview == "newer"
    assert str(listing[1].conversation_id) == str(with_bob)

    services.messages.append(with_bob, ALICE, TextPayload(content="latest"))
    listing = services.conversations.list_for_user(ALICE)
    assert str(listing[0].conversation_id) == str(with_bob)
    assert listing[0].last_message.preview == "latest"


def test_list_for_user_puts_empty_conversations_last(services):
    with_bob = services.conversations.find_or_create(ALICE, BOB).conversation_id
    with_carol = services.conversations.find_or_create(ALICE, CAROL).conversation_id
    services.messages.append(with_bob, BOB, TextPayload(content="hello"))

    listing = services.conversations.list_for_user(ALICE)

    assert [str(summary.conversation_id) for summary in listing] == [
        str(with_bob),
        str(with_carol),
    ]
    assert listing[1].last_message is None


def test_list_for_user_previews_attachments_without_urls(services):
    conversation_id = services.conversations.find_or_create(ALICE, BOB).conversation_id
    services.messages.attach(conversation_id, BOB, MessageType.VOICE, "note.webm", b"ogg")

    summary = services.conversations.list_for_user(ALICE)[0]

    assert summary.last_message.preview == "🎤 Voice note"
    assert summary.last_message.message_type == MessageType.VOICE
    assert "memory://" not in summary.model_dump_json()


def test_list_for_user_without_conversations(services):
    assert services.conversations.list_for_user(CAROL) == []


def summary(username, created_minutes, last_message_minutes=None):
    base = datetime(2025, 1, 1, tzinfo=timezone.utc)
    last = None
    if last_message_minutes is not None:
        last = LastMessagePreview(
            message_type=MessageType.TEXT,
            preview="x",
            created_at=base + timedelta(minutes=last_message_minutes),
        )
    return ConversationSummary(
        conversation_id="00000000-0000-4000-8000-%012d" % created_minutes,
        participant=Identity(id="00000000-0000-4000-9000-%012d" % created_minutes, username=username),
        last_message=last,
        created_at=base + timedelta(minutes=created_minutes),
    )


def test_sort_conversations_rule():
    empty_old = summary("empty_old", 1)
    empty_new = summary("empty_new", 5)
    active_old = summary("active_old", 2, last_message_minutes=10)
    active_new = summary("active_new", 3, last_message_minutes=20)

    ordered = sort_conversations([empty_old, active_old, empty_new, active_new])

    assert [s.participant.username for s in ordered] == [
        "active_new",
        "active_old",
        "empty_new",
        "empty_old",
    ]


def test_keyed_lock_only_serializes_equal_keys():
    locks = KeyedLock()
    entered = threading.Event()

    def other_key():
        with locks.hold("b"):
            entered.set()

    with locks.hold("a"):
        worker = threading.Thread(target=other_key)
        worker.start()
        assert entered.wait(2)
        worker.join(2)

    assert len(locks) == 0

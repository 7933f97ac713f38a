"""Tests for FriendshipLedger."""

import uuid

import pytest

from directchat.core.errors import (
    AlreadyConnected,
    InvalidState,
    NotAuthorized,
    NotFound,
    SelfReference,
)
from directchat.friendship.schemas import FriendshipStatus

from tests.conftest import ALICE, BOB, CAROL


def test_send_request_creates_pending_row(services):
    friendship = services.friendships.send_request(ALICE, "bob")

    assert str(friendship.requester_id) == ALICE
    assert str(friendship.addressee_id) == BOB
    assert friendship.status == FriendshipStatus.PENDING
    assert len(services.store.select("friendships")) == 1


def test_send_request_matches_username_case_insensitively(services):
    friendship = services.friendships.send_request(ALICE, "BoB")
    assert str(friendship.addressee_id) == BOB


def test_send_request_does_not_treat_underscore_as_wildcard(services):
    with pytest.raises(NotFound):
        services.friendships.send_request(ALICE, "caro__x")

    friendship = services.friendships.send_request(ALICE, "carol_x")
    assert str(friendship.addressee_id) == CAROL


def test_send_request_unknown_username(services):
    with pytest.raises(NotFound):
        services.friendships.send_request(ALICE, "nobody")
    assert services.store.select("friendships") == []


def test_send_request_to_self(services):
    with pytest.raises(SelfReference):
        services.friendships.send_request(BOB, "bob")
    assert services.store.select("friendships") == []


@pytest.mark.parametrize(
    "first, second",
    [
        ((ALICE, "bob"), (ALICE, "bob")),
        ((ALICE, "bob"), (BOB, "alice")),
    ],
)
def test_send_request_rejects_existing_pair_in_either_direction(services, first, second):
    services.friendships.send_request(*first)

    with pytest.raises(AlreadyConnected):
        services.friendships.send_request(*second)
    assert len(services.store.select("friendships")) == 1


def test_send_request_rejects_already_accepted_pair(services, befriend):
    befriend(ALICE, "bob")

    with pytest.raises(AlreadyConnected):
        services.friendships.send_request(BOB, "alice")


def test_accept_by_addressee(services):
    request = services.friendships.send_request(ALICE, "bob")

    accepted = services.friendships.accept(request.id, BOB)

    assert accepted.id == request.id
    assert accepted.status == FriendshipStatus.ACCEPTED
    assert services.friendships.are_friends(ALICE, BOB)
    assert services.friendships.are_friends(BOB, ALICE)


def test_accept_by_requester_is_not_authorized(services):
    request = services.friendships.send_request(ALICE, "bob")

    with pytest.raises(NotAuthorized):
        services.friendships.accept(request.id, ALICE)
    assert not services.friendships.are_friends(ALICE, BOB)


def test_accept_twice_is_rejected(services):
    request = services.friendships.send_request(ALICE, "bob")
    services.friendships.accept(request.id, BOB)

    with pytest.raises(InvalidState):
        services.friendships.accept(request.id, BOB)


def test_accept_unknown_request(services):
    with pytest.raises(NotFound):
        services.friendships.accept(uuid.uuid4(), BOB)


def test_reject_deletes_request(services):
    request = services.friendships.send_request(ALICE, "bob")

    services.friendships.reject(request.id, BOB)

    assert services.store.select("friendships") == []
    # the pair can connect again afterwards
    services.friendships.send_request(BOB, "alice")


def test_reject_requires_addressee(services):
    request = services.friendships.send_request(ALICE, "bob")

    with pytest.raises(NotAuthorized):
        services.friendships.reject(request.id, CAROL)
    assert len(services.store.select("friendships")) == 1


def test_reject_accepted_friendship_is_invalid(services, befriend):
    friendship = befriend(ALICE, "bob")

    with pytest.raises(InvalidState):
        services.friendships.reject(friendship.id, BOB)
    assert services.friendships.are_friends(ALICE, BOB)


def test_cancel_by_requester(services):
    request = services.friendships.send_request(ALICE, "bob")

    with pytest.raises(NotAuthorized):
        services.friendships.cancel(request.id, BOB)

    services.friendships.cancel(request.id, ALICE)
    assert services.store.select("friendships") == []


def test_list_partitions_by_status_and_side(services, befriend):
    befriend(ALICE, "bob")
    services.friendships.send_request(ALICE, "carol_x")

    alice = services.friendships.list(ALICE)
    assert [str(entry.friend.id) for entry in alice.accepted] == [BOB]
    assert [str(entry.friend.id) for entry in alice.outgoing_pending] == [CAROL]
    assert alice.incoming_pending == []
    assert alice.outgoing_pending[0].is_requester is True

    carol = services.friendships.list(CAROL)
    assert [entry.friend.username for entry in carol.incoming_pending] == ["alice"]
    assert carol.accepted == []
    assert carol.outgoing_pending == []

    bob = services.friendships.list(BOB)
    assert [entry.friend.username for entry in bob.accepted] == ["alice"]
    assert bob.accepted[0].is_requester is False


def test_list_is_a_deterministic_projection(services, befriend):
    befriend(ALICE, "bob")
    services.friendships.send_request(CAROL, "alice")

    assert services.friendships.list(ALICE) == services.friendships.list(ALICE)

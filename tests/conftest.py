import pytest
from fastapi.testclient import TestClient

from directchat.core.blob_store import MemoryBlobStore
from directchat.core.dependencies import get_current_user_id, get_websocket_user_id
from directchat.core.store import MemoryStore
from directchat.main import create_app
from directchat.services import ChatServices, get_services

ALICE = "a1a1a1a1-0000-4000-8000-000000000001"
BOB = "b0b0b0b0-0000-4000-8000-000000000002"
CAROL = "c0c0c0c0-0000-4000-8000-000000000003"


@pytest.fixture
def store():
    store = MemoryStore()
    store.insert(
        "profiles",
        [
            {"id": ALICE, "username": "alice", "avatar_url": None},
            {"id": BOB, "username": "bob", "avatar_url": "avatars/bob.png"},
            {"id": CAROL, "username": "carol_x", "avatar_url": None},
        ],
    )
    return store


@pytest.fixture
def blobs():
    return MemoryBlobStore()


@pytest.fixture
def services(store, blobs):
    services = ChatServices(store, blobs)
    yield services
    services.delivery.close()


@pytest.fixture
def befriend(services):
    """Create an accepted friendship between two seeded users."""

    def _befriend(requester_id, addressee_username):
        request = services.friendships.send_request(requester_id, addressee_username)
        return services.friendships.accept(request.id, request.addressee_id)

    return _befriend


class Caller:
    def __init__(self, user_id):
        self.user_id = user_id

    def act_as(self, user_id):
        self.user_id = user_id


@pytest.fixture
def caller():
    return Caller(ALICE)


@pytest.fixture
def client(services, caller):
    """Client with in-memory services and a fixed authenticated caller."""
    app = create_app()
    app.dependency_overrides[get_services] = lambda: services
    app.dependency_overrides[get_current_user_id] = lambda: caller.user_id
    app.dependency_overrides[get_websocket_user_id] = lambda: caller.user_id

    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

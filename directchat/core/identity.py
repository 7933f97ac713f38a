from uuid import UUID

from directchat.core.errors import NotFound
from directchat.core.schemas import Identity
from directchat.core.store import ObjectStore, escape_like

PROFILE_COLUMNS = "id, username, avatar_url"


class ProfileDirectory:
    """Read-only view of the externally owned ``profiles`` table."""

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    def get_by_id(self, profile_id: UUID | str) -> Identity:
        row = self.store.select_one(
            "profiles", PROFILE_COLUMNS, eq={"id": str(profile_id)}
        )
        if not row:
            raise NotFound("No matching profile.")
        return Identity.model_validate(row)

    def find_by_username(self, username: str) -> Identity:
        """Case-insensitive exact match."""
        row = self.store.select_one(
            "profiles",
            PROFILE_COLUMNS,
            ilike={"username": escape_like(username.strip())},
        )
        if not row:
            raise NotFound("No matching username.")
        return Identity.model_validate(row)

    def get_many(self, profile_ids) -> dict[str, Identity]:
        rows = self.store.select(
            "profiles", PROFILE_COLUMNS, in_={"id": [str(pid) for pid in profile_ids]}
        )
        return {row["id"]: Identity.model_validate(row) for row in rows}

    def search(self, prefix: str, limit: int = 10) -> list[Identity]:
        rows = self.store.select(
            "profiles",
            PROFILE_COLUMNS,
            ilike={"username": escape_like(prefix.lower()) + "%"},
            order="username",
            limit=limit,
        )
        return [Identity.model_validate(row) for row in rows]

"""
SQL for the tables the service owns, in creation order.

``profiles`` belongs to the identity provider and must already exist. Paste
the output of ``python -m directchat.schema`` into the Supabase SQL editor.
"""

from directchat.chat.models import (
    conversation_participants_sql,
    conversations_sql,
    messages_sql,
)
from directchat.friendship.models import friendships_sql

TABLES = [
    ("friendships", friendships_sql),
    ("conversations", conversations_sql),
    ("conversation_participants", conversation_participants_sql),
    ("messages", messages_sql),
]


def create_schema_sql() -> str:
    return "\n".join(sql.strip() + "\n" for _, sql in TABLES)


if __name__ == "__main__":
    print(create_schema_sql())

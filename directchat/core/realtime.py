"""
Supabase Realtime feed of rows inserted by other server processes.

Every worker subscribes to ``postgres_changes`` INSERT events on the tables
it is asked to follow and hands the new rows to its store's insert
listeners. Rows this worker inserted itself arrive a second time this way;
the live delivery channel drops those by message id.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

from supabase import AsyncClient

from directchat.core.store import ObjectStore, Row

logger = logging.getLogger(__name__)


def inserted_row(payload: dict[str, Any]) -> Optional[Row]:
    """The new row of a ``postgres_changes`` INSERT payload."""
    data = payload.get("data", payload)
    row = data.get("record") or data.get("new")
    return dict(row) if row else None


class RealtimeFeed:
    def __init__(self, store: ObjectStore, table: str = "messages") -> None:
        self.store = store
        self.table = table
        self.channel = None
        # one worker keeps rows in the order realtime sent them
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"realtime-{table}"
        )

    async def start(self, client: AsyncClient) -> None:
        self.channel = client.channel(f"directchat-{self.table}")
        self.channel.on_postgres_changes(
            "INSERT", schema="public", table=self.table, callback=self.handle_change
        )
        await self.channel.subscribe()
        logger.info(f"realtime_subscribed table={self.table}")

    def handle_change(self, payload: dict[str, Any]) -> None:
        """Called on the event loop; listeners run on the feed's worker."""
        row = inserted_row(payload)
        if row is None:
            logger.warning(f"realtime_payload_without_row table={self.table}")
            return
        self._executor.submit(self._publish, row)

    def _publish(self, row: Row) -> None:
        try:
            self.store.publish_committed(self.table, row)
        except Exception:
            logger.exception(f"realtime_publish_failed table={self.table} id={row.get('id')}")

    def close(self) -> None:
        """Stop accepting changes and wait for the queued ones to be published."""
        self._executor.shutdown(wait=True)

    async def stop(self) -> None:
        if self.channel is not None:
            await self.channel.unsubscribe()
            self.channel = None
        self.close()
        logger.info(f"realtime_unsubscribed table={self.table}")

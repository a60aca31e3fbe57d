"""Key-value cache backed by the key_value_store table."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from supabase import Client

from app.recommendation.schemas import KEY_VALUE_STORE_TABLE, parse_timestamp, run, utcnow

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    value: str
    updated_at: Optional[datetime]

    def age_seconds(self, now: Optional[datetime] = None) -> Optional[float]:
        if self.updated_at is None:
            return None
        return ((now or utcnow()) - self.updated_at).total_seconds()


async def get_entry(db: Client, key: str) -> Optional[CacheEntry]:
    rows = await run(
        db.table(KEY_VALUE_STORE_TABLE).select("*").eq("key", key).limit(1)
    )
    if not rows:
        return None
    row = rows[0]
    return CacheEntry(
        key=row["key"],
        value=row["value"],
        updated_at=parse_timestamp(row.get("updated_at")),
    )


async def set_entry(db: Client, key: str, value: str) -> None:
    data = {
        "key": key,
        "value": value,
        "updated_at": utcnow().isoformat(),
    }
    await run(db.table(KEY_VALUE_STORE_TABLE).upsert(data, on_conflict="key"))


async def delete_entry(db: Client, key: str) -> None:
    await run(db.table(KEY_VALUE_STORE_TABLE).delete().eq("key", key))

"""Content-hash deduplication backed by the raw_items table."""
from typing import Iterable, Set

from innofeed.db.engine import DatabaseEngine
from innofeed.db.repo import RawItemRepository


class Deduplicator:
    """Answers single and batched existence queries for dedup keys.

    No in-memory cache: every answer reflects what is durably stored.
    """

    def __init__(self, db: DatabaseEngine):
        self.db = db

    async def exists(self, content_hash: str) -> bool:
        async with self.db.get_session() as session:
            return await RawItemRepository.hash_exists(session, content_hash)

    async def exists_batch(self, hashes: Iterable[str]) -> Set[str]:
        """Return the hashes already present, in one round trip per chunk."""
        hashes = list(hashes)
        if not hashes:
            return set()
        async with self.db.get_session() as session:
            return await RawItemRepository.existing_hashes(session, hashes)

"""Search index over book and series metadata.

The index is a flat table of (entity, text) rows rebuilt from scratch;
lookups are case-insensitive substring matches.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy.engine import Engine

from .database import session_scope
from .logging_config import get_logger
from .models import SearchEntry
from .repository import Repository

logger = get_logger(__name__)

ENTITY_BOOK = "book"
ENTITY_SERIES = "series"


def _text(*parts: Optional[str]) -> str:
    return " ".join(p.replace(",", " ") for p in parts if p)


class SearchIndexLifecycle:
    def __init__(self, engine: Engine):
        self.engine = engine

    def rebuild_index(self) -> int:
        logger.info("Rebuild search index")
        with session_scope(self.engine) as session:
            repo = Repository(session)
            repo.delete_all_search_entries()

            entries: List[SearchEntry] = []
            for library in repo.get_all_libraries():
                for series in repo.find_series_by_library(library.id, include_deleted=False):
                    metadata = repo.get_series_metadata(series.id)
                    aggregation = repo.get_aggregation(series.id)
                    entries.append(
                        SearchEntry(
                            entity_type=ENTITY_SERIES,
                            entity_id=series.id,
                            text=_text(
                                series.name,
                                metadata.title if metadata else None,
                                metadata.publisher if metadata else None,
                                aggregation.authors if aggregation else None,
                                aggregation.tags if aggregation else None,
                            ),
                        )
                    )
                for book in repo.find_books_by_library(library.id, include_deleted=False):
                    metadata = repo.get_book_metadata(book.id)
                    entries.append(
                        SearchEntry(
                            entity_type=ENTITY_BOOK,
                            entity_id=book.id,
                            text=_text(
                                book.name,
                                metadata.title if metadata else None,
                                metadata.authors if metadata else None,
                                metadata.tags if metadata else None,
                                metadata.isbn if metadata else None,
                            ),
                        )
                    )

            repo.insert_search_entries(entries)
            repo.commit()

        logger.info(f"Search index rebuilt with {len(entries)} entries")
        return len(entries)

    def search(self, text: str, entity_type: Optional[str] = None) -> List[str]:
        """Ids of the entities whose indexed text contains `text`."""
        with session_scope(self.engine) as session:
            entries = Repository(session).search_entries(text.strip(), entity_type)
        return [e.entity_id for e in entries]

"""
MongoDB repository for flashcards.

Card content and memory state live in one document per flashcard; review
logs go to their own collection. A rating write runs in a multi-document
transaction and only updates the card if its version is unchanged
(compare-and-swap), so a stale read can never overwrite a newer state.

Requires a replica set or sharded cluster (transactions).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import pymongo
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from flashdeck.config import Settings, load_settings
from flashdeck.errors import ConcurrentUpdateError, InvalidState, PersistenceError
from flashdeck.fsrs.constants import Rating, State
from flashdeck.fsrs.memory_state import CardState, ensure_utc
from flashdeck.repository import (
    Flashcard,
    FlashcardDraft,
    FlashcardRepository,
    ReviewLogEntry,
    Source,
)

logger = logging.getLogger(__name__)

# Global connection pool (reused across requests)
_client: Optional[MongoClient] = None


# ---- Connection Management ----

def get_database(settings: Optional[Settings] = None) -> Database:
    """
    Get the flashcard database.

    Uses a persistent connection pool that's reused across requests.
    """
    global _client

    settings = settings or load_settings()
    if _client is None:
        _client = MongoClient(
            settings.require_mongo_uri(),
            maxPoolSize=10,      # Connection pool size
            minPoolSize=1,       # Keep at least 1 connection alive
            maxIdleTimeMS=60000, # Keep connections alive for 60 seconds
            tz_aware=True,
        )
    return _client[settings.mongo_db_name]


# ---- Document mapping ----

def _state_fields(memory: CardState) -> dict:
    return {
        "due": ensure_utc(memory.due),
        "stability": memory.stability,
        "difficulty": memory.difficulty,
        "elapsed_days": memory.elapsed_days,
        "scheduled_days": memory.scheduled_days,
        "reps": memory.reps,
        "lapses": memory.lapses,
        "state": State(memory.state).name,
        "last_review": ensure_utc(memory.last_review) if memory.last_review else None,
    }


def _to_flashcard(doc: dict) -> Flashcard:
    """Map a document to a Flashcard; unreadable documents raise InvalidState."""
    try:
        memory = CardState(
            due=ensure_utc(doc["due"]),
            stability=doc["stability"],
            difficulty=doc["difficulty"],
            elapsed_days=doc["elapsed_days"],
            scheduled_days=doc["scheduled_days"],
            reps=doc["reps"],
            lapses=doc["lapses"],
            state=State.from_name(doc["state"]),
            last_review=ensure_utc(doc["last_review"]) if doc.get("last_review") else None,
        )
        return Flashcard(
            id=doc["_id"],
            user_id=doc["user_id"],
            front=doc["front"],
            back=doc["back"],
            source=Source(doc["source"]),
            generation_id=doc.get("generation_id"),
            created_at=ensure_utc(doc["created_at"]),
            updated_at=ensure_utc(doc["updated_at"]),
            memory=memory,
            version=doc.get("version", 0),
        )
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        raise InvalidState(f"flashcard {doc.get('_id')!r}: {exc!r}") from exc


def _to_log_entry(doc: dict) -> ReviewLogEntry:
    try:
        return ReviewLogEntry(
            id=doc["_id"],
            flashcard_id=doc["flashcard_id"],
            user_id=doc["user_id"],
            rating=Rating(doc["rating"]),
            state_before=State.from_name(doc["state_before"]),
            state_after=State.from_name(doc["state_after"]),
            reviewed_at=ensure_utc(doc["reviewed_at"]),
            elapsed_days=doc.get("elapsed_days", 0),
            scheduled_days=doc.get("scheduled_days", 0),
            stability_after=doc.get("stability_after", 0.0),
            difficulty_after=doc.get("difficulty_after", 0.0),
        )
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        raise InvalidState(f"review log {doc.get('_id')!r}: {exc!r}") from exc


# ---- Repository ----

class MongoFlashcardRepository(FlashcardRepository):
    """
    FlashcardRepository backed by MongoDB.

    Integer ids come from a counters collection so cards keep the same
    identifiers as in the SQL store.
    """

    def __init__(self, database: Database, max_time_ms: int = 10000):
        self.database = database
        self.max_time_ms = max_time_ms
        self.flashcards = database.flashcards
        self.review_logs = database.review_logs
        self.counters = database.counters

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "MongoFlashcardRepository":
        settings = settings or load_settings()
        return cls(get_database(settings), max_time_ms=int(settings.database_timeout_seconds * 1000))

    def init_indexes(self) -> None:
        """Create the indexes used by due-card and review-log queries (idempotent)."""
        self.flashcards.create_index([("user_id", ASCENDING), ("due", ASCENDING)])
        self.review_logs.create_index([("user_id", ASCENDING), ("reviewed_at", DESCENDING)])

    def _next_id(self, name: str, session=None) -> int:
        counter = self.counters.find_one_and_update(
            {"_id": name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        return counter["seq"]

    def find_due_cards(self, user_id: str, now: datetime) -> list[Flashcard]:
        try:
            cursor = self.flashcards.find(
                {"user_id": user_id, "due": {"$lte": ensure_utc(now)}},
                max_time_ms=self.max_time_ms,
            ).sort([("due", ASCENDING), ("_id", ASCENDING)])
            return [_to_flashcard(doc) for doc in cursor]
        except PyMongoError as exc:
            logger.exception("MongoDB error while loading due flashcards")
            raise PersistenceError("Failed to load due flashcards") from exc

    def find_card_by_id(self, card_id: int, user_id: str) -> Optional[Flashcard]:
        try:
            doc = self.flashcards.find_one(
                {"_id": card_id, "user_id": user_id},
                max_time_ms=self.max_time_ms,
            )
        except PyMongoError as exc:
            logger.exception("MongoDB error while loading flashcard %s", card_id)
            raise PersistenceError("Failed to load flashcard") from exc
        return _to_flashcard(doc) if doc is not None else None

    def atomic_update_card_and_append_log(
        self,
        card_id: int,
        user_id: str,
        expected_version: int,
        new_state: CardState,
        log_entry: ReviewLogEntry
    ) -> Flashcard:
        reviewed_at = ensure_utc(log_entry.reviewed_at)

        def write(session) -> dict:
            result = self.flashcards.update_one(
                {"_id": card_id, "user_id": user_id, "version": expected_version},
                {
                    "$set": {**_state_fields(new_state), "updated_at": reviewed_at},
                    "$inc": {"version": 1},
                },
                session=session,
            )
            if result.matched_count != 1:
                raise ConcurrentUpdateError(card_id, expected_version)

            self.review_logs.insert_one(
                {
                    "_id": self._next_id("review_logs", session),
                    "flashcard_id": card_id,
                    "user_id": user_id,
                    "rating": int(log_entry.rating),
                    "state_before": State(log_entry.state_before).name,
                    "state_after": State(log_entry.state_after).name,
                    "reviewed_at": reviewed_at,
                    "elapsed_days": log_entry.elapsed_days,
                    "scheduled_days": log_entry.scheduled_days,
                    "stability_after": log_entry.stability_after,
                    "difficulty_after": log_entry.difficulty_after,
                },
                session=session,
            )
            return self.flashcards.find_one({"_id": card_id}, session=session)

        try:
            # Client-side deadline covers every operation and the commit retries
            with pymongo.timeout(self.max_time_ms / 1000.0):
                with self.database.client.start_session() as session:
                    doc = session.with_transaction(write, max_commit_time_ms=self.max_time_ms)
        except PyMongoError as exc:
            logger.exception("MongoDB error while rating flashcard %s", card_id)
            raise PersistenceError("Failed to update flashcard and log review") from exc
        return _to_flashcard(doc)

    def create_flashcard(self, user_id: str, draft: FlashcardDraft, now: datetime) -> Flashcard:
        now = ensure_utc(now)
        try:
            with pymongo.timeout(self.max_time_ms / 1000.0):
                doc = {
                    "_id": self._next_id("flashcards"),
                    "user_id": user_id,
                    "front": draft.front,
                    "back": draft.back,
                    "source": Source(draft.source).value,
                    "generation_id": draft.generation_id,
                    "created_at": now,
                    "updated_at": now,
                    "version": 0,
                    **_state_fields(CardState.new(now)),
                }
                self.flashcards.insert_one(doc)
        except PyMongoError as exc:
            logger.exception("MongoDB error while creating flashcard")
            raise PersistenceError("Failed to create flashcard") from exc
        return _to_flashcard(doc)

    def recent_reviews(self, user_id: str, limit: int = 10) -> list[ReviewLogEntry]:
        try:
            cursor = self.review_logs.find(
                {"user_id": user_id},
                max_time_ms=self.max_time_ms,
            ).sort([("reviewed_at", DESCENDING), ("_id", DESCENDING)]).limit(limit)
            return [_to_log_entry(doc) for doc in cursor]
        except PyMongoError as exc:
            logger.exception("MongoDB error while loading review log")
            raise PersistenceError("Failed to load review log") from exc

import logging
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import text

from flashdeck.config import Settings
from flashdeck.errors import (
    ConcurrentUpdateError,
    InvalidRating,
    InvalidState,
    NotFound,
    PersistenceError,
    Unauthenticated,
    UnknownGeneration,
)
from flashdeck.fsrs.constants import DEFAULT_VERSION, Rating, State
from flashdeck.fsrs.scheduler import Scheduler
from flashdeck.repository import FlashcardDraft, FlashcardRepository, GenerationLookup, Source
from flashdeck.session_service import SessionService
from tests.conftest import T0


class StaleReads:
    """Repository wrapper that hands out an outdated card snapshot a few times."""

    def __init__(self, inner, stale_card, times=1):
        self.inner = inner
        self.stale_card = stale_card
        self.times = times

    def find_card_by_id(self, card_id, user_id):
        if self.times > 0:
            self.times -= 1
            return self.stale_card
        return self.inner.find_card_by_id(card_id, user_id)

    def __getattr__(self, name):
        return getattr(self.inner, name)


class TestDueCards:

    def test_empty_session(self, service):
        assert service.get_due_cards("user-1") == []

    def test_due_cards_in_order(self, service, clock, make_card):
        b = make_card(front="b", now=T0 - timedelta(minutes=5))
        a = make_card(front="a", now=T0 - timedelta(hours=1))
        make_card(front="future", now=T0 + timedelta(minutes=1))
        make_card(front="other", user_id="user-2")
        assert [c.id for c in service.get_due_cards("user-1")] == [a.id, b.id]

    def test_rated_card_leaves_and_returns(self, service, clock, make_card):
        card = make_card()
        service.rate_card("user-1", card.id, Rating.GOOD)
        assert service.get_due_cards("user-1") == []

        clock.advance(minutes=10)
        assert [c.id for c in service.get_due_cards("user-1")] == [card.id]

    @pytest.mark.parametrize("user_id", ["", "   ", None])
    def test_requires_user(self, service, user_id):
        with pytest.raises(Unauthenticated):
            service.get_due_cards(user_id)


class TestRateCard:

    def test_first_rating(self, service, make_card):
        card = make_card()
        updated = service.rate_card("user-1", card.id, 3)

        assert updated.id == card.id
        assert updated.version == 1
        assert updated.memory.state == State.LEARNING
        assert updated.memory.reps == 1
        assert updated.memory.lapses == 0
        assert updated.due == T0 + timedelta(minutes=10)

        [entry] = service.recent_reviews("user-1")
        assert entry.rating == Rating.GOOD
        assert entry.state_before == State.NEW
        assert entry.state_after == State.LEARNING

    def test_full_learning_cycle(self, service, clock, make_card):
        card = make_card()
        service.rate_card("user-1", card.id, Rating.GOOD)
        clock.advance(minutes=10)
        card = service.rate_card("user-1", card.id, Rating.GOOD)
        assert card.memory.state == State.REVIEW
        assert card.memory.scheduled_days >= 1

        clock.now = card.due + timedelta(days=5)
        card = service.rate_card("user-1", card.id, Rating.AGAIN)
        assert card.memory.state == State.RELEARNING
        assert card.memory.lapses == 1
        assert card.memory.reps == 3
        assert card.version == 3

    def test_missing_card(self, service):
        with pytest.raises(NotFound):
            service.rate_card("user-1", 999, Rating.GOOD)

    def test_foreign_card_looks_missing(self, service, make_card):
        card = make_card(user_id="user-2")
        with pytest.raises(NotFound) as excinfo:
            service.rate_card("user-1", card.id, Rating.GOOD)
        assert excinfo.value.card_id == card.id
        assert service.recent_reviews("user-2") == []

    @pytest.mark.parametrize("rating", [0, 5, "good", None, 3.0])
    def test_invalid_rating_persists_nothing(self, service, repository, make_card, rating):
        card = make_card()
        with pytest.raises(InvalidRating):
            service.rate_card("user-1", card.id, rating)
        assert repository.find_card_by_id(card.id, "user-1") == card
        assert service.recent_reviews("user-1") == []

    def test_rating_checked_before_lookup(self, service):
        with pytest.raises(InvalidRating):
            service.rate_card("user-1", 999, 7)

    def test_repository_failure_propagates_without_retry(self, make_card, repository):
        card = make_card()
        failing = MagicMock(spec=FlashcardRepository)
        failing.find_card_by_id.return_value = card
        failing.atomic_update_card_and_append_log.side_effect = PersistenceError("disk full")
        service = SessionService(failing, max_attempts=3)

        with pytest.raises(PersistenceError, match="disk full"):
            service.rate_card("user-1", card.id, Rating.GOOD)
        assert failing.atomic_update_card_and_append_log.call_count == 1


class TestConcurrency:

    def test_stale_rating_is_rejected(self, repository, clock, make_card, caplog):
        card = make_card()
        snapshot = repository.find_card_by_id(card.id, "user-1")

        first = SessionService(repository, clock=clock)
        first.rate_card("user-1", card.id, Rating.GOOD)

        second = SessionService(StaleReads(repository, snapshot), clock=clock)
        with caplog.at_level(logging.WARNING, logger="flashdeck.session_service"):
            with pytest.raises(ConcurrentUpdateError):
                second.rate_card("user-1", card.id, Rating.AGAIN)

        assert "concurrent update" in caplog.text
        stored = repository.find_card_by_id(card.id, "user-1")
        assert stored.version == 1
        assert stored.memory.lapses == 0
        assert len(repository.recent_reviews("user-1")) == 1

    def test_retry_uses_fresh_state(self, repository, clock, make_card):
        card = make_card()
        snapshot = repository.find_card_by_id(card.id, "user-1")
        SessionService(repository, clock=clock).rate_card("user-1", card.id, Rating.GOOD)

        clock.advance(minutes=10)
        retrying = SessionService(StaleReads(repository, snapshot), clock=clock, max_attempts=2)
        updated = retrying.rate_card("user-1", card.id, Rating.GOOD)

        assert updated.version == 2
        assert updated.memory.reps == 2
        assert updated.memory.state == State.REVIEW
        reviews = repository.recent_reviews("user-1")
        assert [e.state_before for e in reviews] == [State.LEARNING, State.NEW]

    def test_gives_up_after_max_attempts(self, repository, clock, make_card):
        card = make_card()
        snapshot = repository.find_card_by_id(card.id, "user-1")
        SessionService(repository, clock=clock).rate_card("user-1", card.id, Rating.GOOD)

        stale_forever = StaleReads(repository, snapshot, times=10)
        with pytest.raises(ConcurrentUpdateError):
            SessionService(stale_forever, clock=clock, max_attempts=3).rate_card(
                "user-1", card.id, Rating.GOOD
            )
        assert stale_forever.times == 7

    def test_rejects_zero_attempts(self, repository):
        with pytest.raises(ValueError):
            SessionService(repository, max_attempts=0)


class TestPreviewAndHistory:

    def test_preview_persists_nothing(self, service, repository, make_card):
        card = make_card()
        options = service.preview_card("user-1", card.id)
        assert set(options) == set(Rating)
        assert options[Rating.GOOD].state == State.LEARNING
        assert repository.find_card_by_id(card.id, "user-1") == card

    def test_preview_foreign_card(self, service, make_card):
        card = make_card(user_id="user-2")
        with pytest.raises(NotFound):
            service.preview_card("user-1", card.id)

    def test_recent_reviews_limit(self, service):
        with pytest.raises(ValueError):
            service.recent_reviews("user-1", limit=0)


class TestFromSettings:

    def test_uses_configured_parameters_and_attempts(self, repository):
        settings = Settings(database_url=None, rate_card_max_attempts=3)
        service = SessionService.from_settings(repository, settings)
        assert service.max_attempts == 3
        assert isinstance(service.scheduler, Scheduler)
        assert service.scheduler.version == DEFAULT_VERSION


class OwnedGenerations(GenerationLookup):

    def __init__(self, owned):
        self.owned = owned

    def owned_generation_ids(self, user_id, generation_ids):
        return {g for g in generation_ids if g in self.owned.get(user_id, ())}


class TestCorruptedRows:

    def corrupt(self, engine, card_id, column, value):
        with engine.begin() as conn:
            conn.execute(
                text(f"UPDATE flashcards SET {column} = :value WHERE id = :id"),
                {"value": value, "id": card_id},
            )

    @pytest.mark.parametrize("column, value", [("state", "BOGUS"), ("source", "scraped")])
    def test_reported_as_invalid_state(self, engine, service, make_card, column, value):
        card = make_card()
        self.corrupt(engine, card.id, column, value)

        with pytest.raises(InvalidState, match=f"flashcard {card.id}"):
            service.get_due_cards("user-1")
        with pytest.raises(InvalidState):
            service.rate_card("user-1", card.id, Rating.GOOD)
        assert service.recent_reviews("user-1") == []

    def test_capitalised_state_names_are_read(self, engine, service, clock, make_card):
        card = make_card()
        service.rate_card("user-1", card.id, Rating.GOOD)
        self.corrupt(engine, card.id, "state", "Learning")

        clock.advance(minutes=10)
        updated = service.rate_card("user-1", card.id, Rating.GOOD)
        assert updated.memory.state == State.REVIEW


class TestCreateFlashcard:

    def test_manual_card(self, repository, clock):
        service = SessionService(repository, clock=clock)
        card = service.create_flashcard("user-1", FlashcardDraft(front="de vis", back="the fish"))
        assert card.memory.state == State.NEW
        assert card.due == T0
        assert [c.id for c in service.get_due_cards("user-1")] == [card.id]

    def test_owned_generation(self, repository, clock):
        service = SessionService(repository, clock=clock, generations=OwnedGenerations({"user-1": {4}}))
        draft = FlashcardDraft(front="de vis", back="the fish", source=Source.AI_FULL, generation_id=4)
        assert service.create_flashcard("user-1", draft).generation_id == 4

    @pytest.mark.parametrize("generations", [OwnedGenerations({"user-2": {4}}), None])
    def test_foreign_or_unverifiable_generation(self, repository, clock, generations):
        service = SessionService(repository, clock=clock, generations=generations)
        draft = FlashcardDraft(front="de vis", back="the fish", source=Source.AI_EDITED, generation_id=4)

        with pytest.raises(UnknownGeneration) as excinfo:
            service.create_flashcard("user-1", draft)

        assert excinfo.value.generation_id == 4
        assert service.get_due_cards("user-1") == []

    def test_requires_user(self, service):
        with pytest.raises(Unauthenticated):
            service.create_flashcard("", FlashcardDraft(front="a", back="b"))

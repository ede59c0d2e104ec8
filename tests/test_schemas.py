import pytest
from pydantic import ValidationError

from flashdeck.errors import (
    ConcurrentUpdateError,
    FlashdeckError,
    InvalidRating,
    InvalidState,
    NotFound,
    PersistenceError,
    Unauthenticated,
    UnknownGeneration,
)
from flashdeck.fsrs.constants import Rating
from flashdeck.fsrs.memory_state import CardState
from flashdeck.fsrs.scheduler import compute_next_state
from flashdeck.repository import Flashcard, ReviewLogEntry, Source
from flashdeck.schemas import (
    BACK_MAX_LENGTH,
    FRONT_MAX_LENGTH,
    FlashcardCreate,
    FlashcardOut,
    RateFlashcardRequest,
    ReviewLogOut,
    status_for,
)
from tests.conftest import T0


def stored_card():
    return Flashcard(
        id=5,
        user_id="user-1",
        front="de hond",
        back="the dog",
        source=Source.AI_EDITED,
        generation_id=2,
        created_at=T0,
        updated_at=T0,
        memory=CardState.new(T0),
    )


class TestRateRequest:

    def test_camel_case_body(self):
        request = RateFlashcardRequest.model_validate({"flashcardId": 5, "rating": 3})
        assert request.flashcard_id == 5
        assert request.to_rating() == Rating.GOOD

    def test_field_name_accepted(self):
        assert RateFlashcardRequest(flashcard_id=1, rating=1).to_rating() == Rating.AGAIN

    @pytest.mark.parametrize("body", [
        {"flashcardId": 5, "rating": 0},
        {"flashcardId": 5, "rating": 5},
        {"flashcardId": 0, "rating": 3},
        {"rating": 3},
    ])
    def test_invalid_bodies(self, body):
        with pytest.raises(ValidationError):
            RateFlashcardRequest.model_validate(body)


class TestFlashcardCreate:

    def test_strips_and_converts(self):
        create = FlashcardCreate(front="  de kat ", back=" the cat", generation_id=4, source="ai-full")
        draft = create.to_draft()
        assert draft.front == "de kat"
        assert draft.back == "the cat"
        assert draft.source == Source.AI_FULL
        assert draft.generation_id == 4

    def test_length_limits(self):
        FlashcardCreate(front="x" * FRONT_MAX_LENGTH, back="y" * BACK_MAX_LENGTH)
        with pytest.raises(ValidationError):
            FlashcardCreate(front="x" * (FRONT_MAX_LENGTH + 1), back="y")
        with pytest.raises(ValidationError):
            FlashcardCreate(front="x", back="y" * (BACK_MAX_LENGTH + 1))

    def test_blank_content_rejected(self):
        with pytest.raises(ValidationError):
            FlashcardCreate(front="   ", back="the cat")

    def test_unknown_source_rejected(self):
        with pytest.raises(ValidationError):
            FlashcardCreate(front="a", back="b", source="scraped")


class TestResponses:

    def test_flashcard_out(self):
        data = FlashcardOut.from_flashcard(stored_card()).model_dump(mode="json")
        assert data["id"] == 5
        assert data["source"] == "ai-edited"
        assert data["state"] == "NEW"
        assert data["reps"] == 0
        assert data["last_review"] is None
        assert "user_id" not in data

    def test_review_log_out(self):
        card = stored_card()
        after = compute_next_state(card.memory, Rating.HARD, T0)
        out = ReviewLogOut.from_entry(ReviewLogEntry.from_transition(card, Rating.HARD, card.memory, after))
        assert out.rating == 2
        assert out.state_before == "NEW"
        assert out.state_after == "LEARNING"
        assert out.reviewed_at == T0


class TestErrorStatus:

    @pytest.mark.parametrize("error, status", [
        (InvalidRating(9), 400),
        (NotFound(1, "user-1"), 404),
        (InvalidState("bad"), 500),
        (PersistenceError("down"), 500),
        (ConcurrentUpdateError(1, 0), 500),
        (Unauthenticated(), 401),
        (UnknownGeneration(4, "user-1"), 400),
        (FlashdeckError("other"), 500),
        (RuntimeError("boom"), 500),
    ])
    def test_status_for(self, error, status):
        assert status_for(error) == status

    def test_error_messages(self):
        assert "9" in str(InvalidRating(9))
        assert str(InvalidState("bad")) == "Invalid card state: bad"
        assert "expected version 0" in str(ConcurrentUpdateError(1, 0))

"""
Tests for the in-memory session store.
"""

import pytest

from models import Rejected, ScoreResult, Session

from .conftest import make_question


def open_question(session: Session, correct: int = 2) -> None:
    session.questions = [make_question(1, correct=correct)]
    session.current_question_index = 0
    session.active = True


class TestParticipants:

    def test_join_starts_at_zero(self, session):
        p = session.add_or_update_participant("c1", "Ada")
        assert (p.name, p.score, p.answered) == ("Ada", 0, False)
        assert list(session.participants) == ["c1"]

    def test_rejoin_on_same_connection_starts_fresh(self, session):
        session.add_or_update_participant("c1", "Ada").score = 30
        p = session.add_or_update_participant("c1", "Ada L.")
        assert p.score == 0
        assert p.name == "Ada L."
        assert len(session.participants) == 1

    def test_duplicate_names_allowed(self, session):
        session.add_or_update_participant("c1", "Sam")
        session.add_or_update_participant("c2", "Sam")
        assert [e.name for e in session.roster()] == ["Sam", "Sam"]

    def test_remove_unknown_is_noop(self, session):
        assert session.remove_participant("ghost") is None

    def test_disconnect_then_rejoin_is_fresh(self, session):
        open_question(session)
        session.add_or_update_participant("c1", "Ada")
        session.record_answer("c1", 2)
        assert session.participants["c1"].score == 10

        session.remove_participant("c1")
        session.add_or_update_participant("c9", "Ada")

        assert [(e.name, e.score) for e in session.roster()] == [("Ada", 0)]


class TestRecordAnswer:

    def test_correct_answer_scores_ten(self, session):
        open_question(session, correct=2)
        session.add_or_update_participant("c1", "Ada")

        result = session.record_answer("c1", 2)

        assert result == ScoreResult(correct=True, score=10)
        assert session.participants["c1"].answered

    def test_wrong_answer_scores_nothing(self, session):
        open_question(session, correct=2)
        session.add_or_update_participant("c1", "Ada")

        assert session.record_answer("c1", 0) == ScoreResult(correct=False, score=0)

    def test_numeric_text_matches_integer(self, session):
        open_question(session, correct=2)
        session.add_or_update_participant("c1", "Ada")

        assert session.record_answer("c1", "2").correct is True

    def test_second_answer_rejected_and_score_unchanged(self, session):
        open_question(session, correct=2)
        session.add_or_update_participant("c1", "Ada")
        session.record_answer("c1", 2)

        result = session.record_answer("c1", 2)

        assert result == Rejected(reason="already_answered")
        assert session.participants["c1"].score == 10

    def test_unknown_participant_rejected(self, session):
        open_question(session)
        assert session.record_answer("ghost", 2) == Rejected(reason="unknown_participant")

    def test_no_active_question_rejected(self, session):
        session.questions = [make_question(1)]
        session.add_or_update_participant("c1", "Ada")
        assert session.record_answer("c1", 0) == Rejected(reason="no_active_question")

    def test_non_numeric_answer_rejected_without_using_turn(self, session):
        open_question(session, correct=2)
        session.add_or_update_participant("c1", "Ada")

        assert session.record_answer("c1", "two") == Rejected(reason="invalid_answer")
        assert session.record_answer("c1", "2").correct is True


class TestLeaderboard:

    @pytest.fixture
    def scored(self, session):
        for i, score in enumerate([10, 40, 20, 40, 0, 30]):
            session.add_or_update_participant(f"c{i}", f"P{i}").score = score
        return session

    def test_sorted_by_score_desc_ties_in_join_order(self, scored):
        board = scored.leaderboard()
        assert [(e.name, e.score) for e in board] == [
            ("P1", 40), ("P3", 40), ("P5", 30), ("P2", 20), ("P0", 10), ("P4", 0),
        ]

    def test_truncated_to_limit(self, scored):
        assert [e.name for e in scored.leaderboard(limit=2)] == ["P1", "P3"]

    def test_short_roster_returns_everyone(self, scored):
        assert len(scored.leaderboard(limit=50)) == 6

    def test_default_limit_is_ten(self, session):
        for i in range(15):
            session.add_or_update_participant(f"c{i}", f"P{i}").score = i
        board = session.leaderboard()
        assert len(board) == 10
        assert board[0].score == 14


class TestLoadQuizData:

    def test_resets_scores_but_keeps_roster(self, session, question_set):
        open_question(session)
        session.add_or_update_participant("c1", "Ada")
        session.add_or_update_participant("c2", "Bob")
        session.record_answer("c1", 2)

        session.load_quiz_data(question_set)

        assert list(session.participants) == ["c1", "c2"]
        assert all(p.score == 0 and not p.answered for p in session.participants.values())
        assert session.current_question_index == -1
        assert session.active is False
        assert session.current_question() is None
        assert len(session.questions) == 10


class TestSnapshot:

    def test_snapshot_hides_correct_index(self, session):
        open_question(session, correct=3)
        snap = session.snapshot().model_dump()
        assert snap["question"] == {"index": 0, "question": "Question 1?", "options": ["Red", "Blue", "Green", "Yellow"]}
        assert "correctIndex" not in str(snap)

from datetime import datetime, timezone

import pytest

from conftest import FakeGenerator, FakeRecorder, MemoryStore, make_config, make_question
from testgenius.domain import (
    AnswerKeyEntry,
    NegativeMarkingSettings,
    QuestionStatus,
    TestHistoryEntry,
    TestInputMethod,
    TestPhase,
    TimeSettings,
)
from testgenius.errors import GenerationError, SessionError
from testgenius.session_state import TestSession, default_test_name, retake_name


def _session(recorder=None, store=None) -> TestSession:
    return TestSession(
        recorder=recorder if recorder is not None else FakeRecorder(),
        store=store if store is not None else MemoryStore(),
    )


def _generated(config=None, generator=None, **kwargs) -> TestSession:
    session = _session(**kwargs)
    session.navigate_to_setup(TestInputMethod.TOPIC)
    session.start_generation(config or make_config(), generator or FakeGenerator())
    return session


def _started(config=None, **kwargs) -> TestSession:
    session = _generated(config=config, **kwargs)
    session.start_test()
    return session


def _entry(entry_id: str, name: str, config_name: str | None = None) -> TestHistoryEntry:
    questions = [
        make_question(0, correct=1, user_answer_index=1, status=QuestionStatus.ATTEMPTED),
        make_question(1, correct=2, user_answer_index=0, status=QuestionStatus.ATTEMPTED),
    ]
    return TestHistoryEntry(
        id=entry_id,
        test_name=name,
        date_completed=datetime(2024, 1, 1, tzinfo=timezone.utc),
        score_percentage=50.0,
        total_questions=2,
        correct_answers=1,
        attempted_questions=2,
        negative_marking=NegativeMarkingSettings(),
        original_config=make_config(test_name=config_name or name),
        questions=questions,
    )


def test_default_test_name() -> None:
    assert default_test_name(TestInputMethod.DOCUMENT, "biology notes.pdf") == "biology notes"
    assert default_test_name(TestInputMethod.DOCUMENT, "README") == "README"
    assert default_test_name(TestInputMethod.SYLLABUS) == "Syllabus-based Test"
    assert default_test_name(TestInputMethod.TOPIC) == "Topic-based Test"


def test_generation_enters_confirmation() -> None:
    session = _generated(make_config(num_questions=3))

    assert session.phase == TestPhase.CONFIRMATION
    assert session.current_test_name == "Topic-based Test"
    assert session.config.test_name == "Topic-based Test"
    assert len(session.questions) == 3
    assert all(q.status == QuestionStatus.UNVISITED for q in session.questions)
    assert session.current_question_index == 0
    assert session.is_loading is False


def test_generation_sets_timer_from_config() -> None:
    session = _generated(make_config(time_settings=TimeSettings.timed(300)))
    assert session.test_duration_seconds == 300
    assert session.time_remaining_seconds == 300


def test_generation_failure_returns_to_setup() -> None:
    generator = FakeGenerator(error=GenerationError("Failed to generate questions: boom"))
    session = _generated(generator=generator)

    assert session.phase == TestPhase.SETUP
    assert session.error == "Failed to generate questions: boom"
    assert session.is_loading is False


def test_empty_generation_is_an_error() -> None:
    session = _generated(generator=FakeGenerator(questions=[]))

    assert session.phase == TestPhase.SETUP
    assert "No questions were generated" in session.error


def test_generation_requires_setup_phase() -> None:
    session = _session()
    with pytest.raises(SessionError):
        session.start_generation(make_config(), FakeGenerator())
    assert session.phase == TestPhase.HOME


def test_unchanged_settings_reuse_questions() -> None:
    generator = FakeGenerator()
    session = _generated(generator=generator)
    first_ids = [q.id for q in session.questions]

    session.edit_settings()
    assert session.phase == TestPhase.SETUP
    session.start_generation(make_config(), generator)

    assert len(generator.calls) == 1
    assert [q.id for q in session.questions] == first_ids
    assert session.phase == TestPhase.CONFIRMATION


def test_changed_settings_regenerate() -> None:
    generator = FakeGenerator()
    session = _generated(generator=generator)

    session.edit_settings()
    session.start_generation(make_config(content="Cell biology"), generator)

    assert len(generator.calls) == 2
    assert session.config.content == "Cell biology"


def test_start_test_assigns_session_and_persists() -> None:
    store = MemoryStore()
    session = _started(store=store)

    assert session.phase == TestPhase.IN_PROGRESS
    assert session.session_id
    assert store.state is not None
    assert store.state.session_id == session.session_id


def test_start_test_renames_config() -> None:
    store = MemoryStore()
    session = _generated(store=store)
    session.start_test("  My Quiz ")

    assert session.current_test_name == "My Quiz"
    assert session.config.test_name == "My Quiz"
    assert store.state.config.test_name == "My Quiz"


def test_select_answer() -> None:
    session = _started()
    session.select_answer(1, 2)

    question = session.questions[1]
    assert question.user_answer_index == 2
    assert question.status == QuestionStatus.ATTEMPTED


def test_select_answer_rejects_bad_input() -> None:
    session = _started()
    with pytest.raises(SessionError):
        session.select_answer(0, 4)
    with pytest.raises(SessionError):
        session.select_answer(9, 0)
    assert session.questions[0].user_answer_index is None
    assert session.questions[0].status == QuestionStatus.UNVISITED


def test_select_answer_outside_test_is_rejected() -> None:
    session = _generated()
    with pytest.raises(SessionError):
        session.select_answer(0, 0)


def test_navigate_marks_unvisited_as_skipped() -> None:
    session = _started()
    session.navigate_question(2)

    assert session.current_question_index == 2
    assert session.questions[0].status == QuestionStatus.SKIPPED

    session.select_answer(2, 1)
    session.navigate_question(1)
    assert session.questions[2].status == QuestionStatus.ATTEMPTED


def test_clear_selection() -> None:
    session = _started()
    session.select_answer(0, 1)
    session.clear_selection(0)
    assert session.questions[0].status == QuestionStatus.SKIPPED
    assert session.questions[0].user_answer_index is None

    session.clear_selection(1)
    assert session.questions[1].status == QuestionStatus.UNVISITED


def test_toggle_mark_for_review() -> None:
    session = _started()
    session.toggle_mark_for_review(0)
    assert session.questions[0].is_marked_for_review
    session.toggle_mark_for_review(0)
    assert not session.questions[0].is_marked_for_review


def test_submit_records_and_clears_snapshot() -> None:
    recorder = FakeRecorder()
    store = MemoryStore()
    session = _started(recorder=recorder, store=store)
    session.select_answer(0, 0)
    session.submit()

    assert session.phase == TestPhase.COMPLETED
    assert store.state is None
    assert session.saved_in_progress is None
    assert [q.status for q in session.questions] == [
        QuestionStatus.ATTEMPTED,
        QuestionStatus.SKIPPED,
        QuestionStatus.SKIPPED,
    ]
    assert len(recorder.calls) == 1
    call = recorder.calls[0]
    assert call["entry_id"] == session.session_id
    assert call["test_name"] == "Topic-based Test"
    assert call["was_corrected"] is False


def test_tick_counts_down_and_submits_once() -> None:
    recorder = FakeRecorder()
    session = _started(make_config(time_settings=TimeSettings.timed(3)), recorder=recorder)

    assert session.tick() is True
    assert session.time_remaining_seconds == 2
    assert session.tick() is True
    assert session.time_remaining_seconds == 1
    assert session.tick() is False

    assert session.time_remaining_seconds == 0
    assert session.phase == TestPhase.COMPLETED
    assert len(recorder.calls) == 1
    assert session.tick() is False
    assert len(recorder.calls) == 1


def test_tick_does_nothing_for_untimed_tests() -> None:
    session = _started()
    assert session.tick() is False
    assert session.phase == TestPhase.IN_PROGRESS


def test_resume_restores_state_exactly() -> None:
    store = MemoryStore()
    first = _started(make_config(time_settings=TimeSettings.timed(120)), store=store)
    first.select_answer(0, 3)
    first.navigate_question(2)
    first.tick()
    first.tick()

    second = TestSession(recorder=FakeRecorder(), store=store)
    assert second.phase == TestPhase.HOME
    assert second.saved_in_progress is not None
    second.resume()

    assert second.phase == TestPhase.IN_PROGRESS
    assert [q.id for q in second.questions] == [q.id for q in first.questions]
    assert [q.status for q in second.questions] == [q.status for q in first.questions]
    assert second.questions[0].user_answer_index == 3
    assert second.current_question_index == 2
    assert second.time_remaining_seconds == 118
    assert second.test_duration_seconds == 120
    assert second.session_id == first.session_id
    assert second.current_test_name == first.current_test_name


def test_resume_without_saved_test() -> None:
    session = _session()
    with pytest.raises(SessionError):
        session.resume()


def test_cancel_in_progress_resets_session() -> None:
    store = MemoryStore()
    session = _started(store=store)
    session.cancel_in_progress()

    assert session.phase == TestPhase.HOME
    assert store.state is None
    assert session.questions == []


def test_cancel_saved_test_from_home() -> None:
    store = MemoryStore()
    _started(store=store)
    session = TestSession(recorder=FakeRecorder(), store=store)
    session.cancel_in_progress()

    assert store.state is None
    assert session.saved_in_progress is None
    assert session.phase == TestPhase.HOME


def test_snapshot_only_while_in_progress() -> None:
    session = _generated()
    assert session.snapshot() is None
    session.start_test()
    assert session.snapshot() is not None
    session.submit()
    assert session.snapshot() is None


def test_review_corrections_update_history() -> None:
    recorder = FakeRecorder()
    session = _started(recorder=recorder)
    session.select_answer(0, 3)
    session.submit()
    entry_id = session.session_id

    session.review()
    assert session.phase == TestPhase.REVIEW
    session.set_explanation(0, "Because.")
    session.override_correct_answer(0, 3)

    corrected = session.review_questions[0]
    assert corrected.correct_answer_index == 3
    assert corrected.explanation is None
    assert corrected.was_corrected_by_user
    # the results are untouched until corrections are applied
    assert session.questions[0].correct_answer_index == 0

    session.apply_user_corrections()

    assert session.phase == TestPhase.COMPLETED
    assert session.questions[0].is_correct
    assert len(recorder.calls) == 2
    assert recorder.calls[1]["entry_id"] == entry_id
    assert recorder.calls[1]["was_corrected"] is True


def test_override_requires_review() -> None:
    session = _started()
    session.submit()
    with pytest.raises(SessionError):
        session.override_correct_answer(0, 1)


def test_back_to_results() -> None:
    session = _started()
    session.submit()
    session.review()
    session.back_to_results()
    assert session.phase == TestPhase.COMPLETED
    assert session.review_questions == []


def test_apply_answer_key() -> None:
    recorder = FakeRecorder()
    session = _started(recorder=recorder)
    session.submit()

    applied = session.apply_answer_key(
        [
            AnswerKeyEntry(question_index=0, correct_answer_index=2),
            AnswerKeyEntry(question_index=10, correct_answer_index=1),
            AnswerKeyEntry(question_index=1, correct_answer_index=7),
        ]
    )

    assert applied == 1
    assert session.questions[0].correct_answer_index == 2
    assert session.questions[1].correct_answer_index == 1
    assert len(recorder.calls) == 2
    assert recorder.calls[1]["was_corrected"] is True


def test_apply_answer_key_with_nothing_to_apply() -> None:
    recorder = FakeRecorder()
    session = _started(recorder=recorder)
    session.submit()

    assert session.apply_answer_key([AnswerKeyEntry(question_index=5, correct_answer_index=0)]) == 0
    assert len(recorder.calls) == 1


def test_retake_name() -> None:
    biology = _entry("a", "Biology")
    retake = _entry("b", "Biology - Retake 1")
    chemistry = _entry("c", "Chemistry")
    history = [biology, retake, chemistry]

    assert retake_name(biology, history) == "Biology - Retake 2"
    assert retake_name(retake, history) == "Biology - Retake 2"
    assert retake_name(chemistry, history) == "Chemistry - Retake 1"


def test_retake_reuses_questions_with_new_session() -> None:
    generator = FakeGenerator()
    entry = _entry("entry-1", "Biology")
    session = _session()

    session.retake(entry, [entry])
    assert session.phase == TestPhase.SETUP
    assert session.is_retake_mode
    assert session.config.test_name == "Biology - Retake 1"
    retake_id = session.session_id

    session.start_generation(make_config(content="ignored"), generator)
    assert generator.calls == []
    assert session.phase == TestPhase.CONFIRMATION
    assert session.current_test_name == "Biology - Retake 1"
    assert [q.id for q in session.questions] == [q.id for q in entry.questions]
    assert all(q.user_answer_index is None for q in session.questions)
    assert all(q.status == QuestionStatus.UNVISITED for q in session.questions)

    session.start_test()
    assert session.session_id not in (None, retake_id, entry.id)


def test_view_history_score_and_details() -> None:
    entry = _entry("entry-1", "Biology")
    session = _session()

    session.navigate_to_history()
    session.view_history_details(entry)
    assert session.phase == TestPhase.VIEW_HISTORY_DETAILS
    assert len(session.review_questions) == 2
    session.back_to_results()
    assert session.phase == TestPhase.HISTORY

    session.view_score_from_history(entry)
    assert session.phase == TestPhase.COMPLETED
    assert session.session_id == "entry-1"
    assert session.is_viewing_from_history


def test_start_new_test_resets_everything() -> None:
    store = MemoryStore()
    session = _started(store=store)
    session.submit()
    session.start_new_test()

    assert session.phase == TestPhase.HOME
    assert session.questions == []
    assert session.config is None
    assert session.session_id is None


def test_consecutive_tests_get_separate_history_entries() -> None:
    recorder = FakeRecorder()
    generator = FakeGenerator()
    session = _started(recorder=recorder, generator=generator)
    session.submit()
    first_id = session.session_id

    session.navigate_home()
    session.navigate_to_setup(TestInputMethod.TOPIC)
    session.start_generation(make_config(content="Volcanoes", num_questions=2), generator)
    session.start_test("Second")
    session.submit()

    assert len(recorder.calls) == 2
    assert recorder.calls[1]["entry_id"] != first_id
    assert recorder.calls[1]["test_name"] == "Second"
    assert len(recorder.calls[1]["questions"]) == 2


def test_correction_batch_is_all_or_nothing() -> None:
    recorder = FakeRecorder()
    session = _started(recorder=recorder)
    session.submit()
    session.review()

    with pytest.raises(SessionError):
        session.apply_corrections([(0, 3), (99, 0)])
    with pytest.raises(SessionError):
        session.apply_corrections([(0, 3), (1, 7)])

    assert session.phase == TestPhase.REVIEW
    assert session.review_questions[0].correct_answer_index == 0
    assert not session.review_questions[0].was_corrected_by_user
    assert len(recorder.calls) == 1

    session.apply_corrections([(0, 3), (1, 2)])
    assert session.phase == TestPhase.COMPLETED
    assert session.questions[0].correct_answer_index == 3
    assert session.questions[1].correct_answer_index == 2
    assert recorder.calls[1]["was_corrected"] is True


def test_purged_snapshot_is_not_offered_for_resume() -> None:
    store = MemoryStore()
    _started(store=store)
    session = TestSession(recorder=FakeRecorder(), store=store)
    assert session.saved_in_progress is not None

    store.clear()
    assert session.refresh_saved_progress() is None
    with pytest.raises(SessionError):
        session.resume()

"""
Document paths used by the exam engine.
"""
from exam_engine.store.base import join_path


def definition(test_id: str) -> str:
    return join_path("tests", test_id)


def times_attempted(test_id: str) -> str:
    return join_path("tests", test_id, "times_attempted")


def question_bank(test_id: str) -> str:
    return join_path("questions", test_id)


def adaptive_state(user_id: str, test_id: str) -> str:
    return join_path("adaptive_states", user_id, test_id)


def adaptive_history(user_id: str) -> str:
    """All adaptive states of a user, keyed by test id."""
    return join_path("adaptive_states", user_id)


def timer_state(user_id: str, test_id: str) -> str:
    return join_path("timer_states", user_id, test_id)


def session_progress(user_id: str, test_id: str) -> str:
    return join_path("session_progress", user_id, test_id)


def response(test_id: str, user_id: str) -> str:
    return join_path("responses", test_id, user_id)


def discarded_response(test_id: str, user_id: str, stamp: str) -> str:
    return join_path("discarded_responses", test_id, user_id, stamp)


def completed_counter(user_id: str) -> str:
    return join_path("users", user_id, "tests_completed")

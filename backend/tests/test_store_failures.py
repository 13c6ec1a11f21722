import logging

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from microlearn import repositories, services
from microlearn.main import app

# unhandled errors must reach the app's own 500 handler instead of the test
client = TestClient(app, raise_server_exceptions=False)


def _store_down(*args, **kwargs):
    raise OperationalError("SELECT * FROM quizquestion WHERE id = ?", {}, Exception("database is locked"))


def test_validate_store_failure_is_retryable_and_opaque(session, headers, make_lesson, monkeypatch, caplog):
    lesson = make_lesson(questions=[(["a", "b"], 0, None)])
    qid = repositories.QuestionRepository(session).list_for_lesson(lesson.id)[0].id
    monkeypatch.setattr(repositories.QuestionRepository, "get", _store_down)

    with caplog.at_level(logging.ERROR, logger="microlearn.validator"):
        r = client.post('/validate-answer', json={'questionId': qid, 'selectedAnswer': 0}, headers=headers)
    assert r.status_code == 500
    assert r.json() == {'error': 'could not validate answer', 'retryable': True}
    assert 'SELECT' not in r.text
    assert 'locked' not in r.text
    assert any('question lookup failed' in rec.getMessage() for rec in caplog.records)


def test_complete_store_failure_commits_nothing_and_can_be_retried(session, user_id, headers, make_lesson, monkeypatch):
    lesson = make_lesson(questions=[(["a", "b"], 0, None)])
    attempt = client.post(f'/lessons/{lesson.id}/begin', headers=headers).json()['attemptId']
    body = {'lessonId': lesson.id, 'score': 90, 'timeSpentSeconds': 30, 'attemptId': attempt}

    monkeypatch.setattr(repositories.ProgressRepository, "save", _store_down)
    r = client.post('/complete-lesson', json=body, headers=headers)
    assert r.status_code == 500
    assert r.json() == {'error': 'could not save lesson completion; safe to retry', 'retryable': True}
    assert 'SELECT' not in r.text
    monkeypatch.undo()

    assert client.get(f'/lessons/{lesson.id}/progress', headers=headers).json()['status'] == 'in_progress'
    assert client.get('/me/streak', headers=headers).json()['exists'] is False
    assert repositories.ReceiptRepository(session).get(user_id, lesson.id, attempt) is None

    retried = client.post('/complete-lesson', json=body, headers=headers)
    assert retried.status_code == 200
    assert retried.json()['totalCompleted'] == 1
    assert retried.json()['replayed'] is False


def test_unexpected_error_gets_generic_retryable_body(headers, monkeypatch, caplog):
    def explode(self, **kwargs):
        raise RuntimeError("catalog failed reading /srv/lessons")

    monkeypatch.setattr(services.CatalogService, "list_lessons", explode)
    with caplog.at_level(logging.ERROR, logger="microlearn.api"):
        r = client.get('/lessons', headers=headers)
    assert r.status_code == 500
    assert r.json() == {'error': 'internal error', 'retryable': True}
    assert '/srv/lessons' not in r.text
    failures = [rec for rec in caplog.records if rec.name == "microlearn.api" and rec.levelno >= logging.ERROR]
    assert len(failures) == 1
    assert 'request_failed' in failures[0].getMessage()

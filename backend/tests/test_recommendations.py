import json

import pytest
import requests
from fastapi.testclient import TestClient

from microlearn.main import app
from microlearn.utils import recommender

client = TestClient(app)


class _FakeResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _chat(content):
    return {"choices": [{"message": {"content": content}}]}


def test_extract_recommendations_handles_fences_and_prose():
    fenced = 'Here you go:\n```json\n[{"lesson_id": "a", "reason": "r", "priority": 2}]\n```'
    assert recommender.extract_recommendations(fenced)[0]["lesson_id"] == "a"
    prose = 'Sure! [{"lesson_id": "b", "priority": 1}] Hope that helps.'
    assert recommender.extract_recommendations(prose) == [{"lesson_id": "b", "priority": 1}]
    with pytest.raises(ValueError):
        recommender.extract_recommendations("no idea")


def test_missing_api_key_degrades_to_empty_list(headers, make_lesson, monkeypatch):
    make_lesson()
    monkeypatch.setattr(recommender.settings, "RECOMMENDER_API_KEY", "")
    r = client.get('/recommendations', headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body['recommendations'] == []
    assert body['retryable'] is True
    assert body['error']


@pytest.mark.parametrize("status,message", [(429, "Rate limit"), (402, "credits"), (503, "temporarily unavailable")])
def test_gateway_errors_degrade(headers, make_lesson, monkeypatch, status, message):
    make_lesson()
    monkeypatch.setattr(recommender.settings, "RECOMMENDER_API_KEY", "k")
    monkeypatch.setattr(recommender.requests, "post", lambda *a, **kw: _FakeResponse(status, text="busy"))
    body = client.get('/recommendations', headers=headers).json()
    assert body['recommendations'] == []
    assert message in body['error']


def test_network_failure_degrades(headers, make_lesson, monkeypatch):
    make_lesson()
    monkeypatch.setattr(recommender.settings, "RECOMMENDER_API_KEY", "k")

    def boom(*args, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(recommender.requests, "post", boom)
    r = client.get('/recommendations', headers=headers)
    assert r.status_code == 200
    assert r.json()['recommendations'] == []


def test_recommendations_are_enriched_filtered_and_sorted(headers, make_lesson, monkeypatch):
    first = make_lesson(title='Delegation')
    second = make_lesson(title='Feedback')
    done = make_lesson(title='Already done')
    client.post('/complete-lesson', json={'lessonId': done.id, 'score': 100, 'timeSpentSeconds': 1}, headers=headers)
    client.put('/profile', json={'jobTitle': 'Team lead'}, headers=headers)
    seen = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        seen['payload'] = json
        seen['timeout'] = timeout
        reply = [
            {"lesson_id": second.id, "reason": "Grow feedback skills", "priority": 2},
            {"lesson_id": "unknown", "reason": "hallucinated", "priority": 1},
            {"lesson_id": done.id, "reason": "already completed", "priority": 1},
            {"lesson_id": first.id, "reason": "Delegate more", "priority": 1},
        ]
        return _FakeResponse(200, _chat("```json\n" + _dumps(reply) + "\n```"))

    monkeypatch.setattr(recommender.settings, "RECOMMENDER_API_KEY", "k")
    monkeypatch.setattr(recommender.requests, "post", fake_post)
    body = client.get('/recommendations', headers=headers).json()

    assert [r['id'] for r in body['recommendations']] == [first.id, second.id]
    assert body['recommendations'][0]['recommendationReason'] == 'Delegate more'
    assert body['userContext']['completed'] == 1
    assert body['userContext']['streak'] == 1
    prompt = seen['payload']['messages'][1]['content']
    assert 'Team lead' in prompt
    assert done.id not in prompt
    assert seen['timeout'] == recommender.settings.RECOMMENDER_TIMEOUT_SECONDS


def test_unparseable_reply_falls_back_to_first_available(headers, make_lesson, monkeypatch):
    for _ in range(3):
        make_lesson()
    monkeypatch.setattr(recommender.settings, "RECOMMENDER_API_KEY", "k")
    monkeypatch.setattr(recommender.requests, "post", lambda *a, **kw: _FakeResponse(200, _chat("I cannot decide.")))
    body = client.get('/recommendations', headers=headers).json()
    assert len(body['recommendations']) == 3
    assert [r['priority'] for r in body['recommendations']] == [1, 2, 3]


def _dumps(value):
    return json.dumps(value)

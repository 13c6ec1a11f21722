import uuid

from fastapi.testclient import TestClient

from microlearn.main import app

client = TestClient(app)


def test_begin_then_complete_updates_progress_and_streak(headers, make_lesson):
    lesson = make_lesson(questions=[(["a", "b"], 0, None), (["c", "d"], 1, None)])

    before = client.get(f'/lessons/{lesson.id}/progress', headers=headers)
    assert before.json() == {'lessonId': lesson.id, 'status': 'not_started'}

    begun = client.post(f'/lessons/{lesson.id}/begin', headers=headers)
    assert begun.status_code == 200
    attempt = begun.json()['attemptId']
    assert begun.json()['status'] == 'in_progress'

    body = {'lessonId': lesson.id, 'score': 50, 'timeSpentSeconds': 75, 'attemptId': attempt}
    done = client.post('/complete-lesson', json=body, headers=headers)
    assert done.status_code == 200
    assert done.json() == {
        'status': 'completed',
        'score': 50,
        'currentStreak': 1,
        'longestStreak': 1,
        'totalCompleted': 1,
        'replayed': False,
    }

    replay = client.post('/complete-lesson', json=body, headers=headers)
    assert replay.status_code == 200
    assert replay.json()['replayed'] is True
    assert replay.json()['totalCompleted'] == 1

    streak = client.get('/me/streak', headers=headers).json()
    assert streak['exists'] is True
    assert streak['totalCompleted'] == 1

    progress = client.get(f'/lessons/{lesson.id}/progress', headers=headers).json()
    assert progress['status'] == 'completed'
    assert progress['score'] == 50
    assert progress['timeSpentSeconds'] == 75

    # reopening a completed lesson keeps it completed
    again = client.post(f'/lessons/{lesson.id}/begin', headers=headers)
    assert again.json()['status'] == 'completed'
    assert again.json()['attemptId'] != attempt


def test_zero_question_lesson_autocompletes_with_full_score(headers, make_lesson):
    lesson = make_lesson()
    detail = client.get(f'/lessons/{lesson.id}', headers=headers).json()
    assert detail['questions'] == []
    r = client.post('/complete-lesson', json={'lessonId': lesson.id, 'score': 0, 'timeSpentSeconds': 3}, headers=headers)
    assert r.status_code == 200
    assert r.json()['score'] == 100


def test_complete_lesson_rejects_bad_input(headers, make_lesson):
    lesson = make_lesson()
    bad = [
        {'lessonId': lesson.id, 'score': 101, 'timeSpentSeconds': 1},
        {'lessonId': lesson.id, 'score': -3, 'timeSpentSeconds': 1},
        {'lessonId': lesson.id, 'score': 10, 'timeSpentSeconds': -1},
        {'lessonId': lesson.id, 'score': '10', 'timeSpentSeconds': 1},
        {'lessonId': lesson.id, 'timeSpentSeconds': 1},
        {'lessonId': lesson.id, 'score': 10, 'timeSpentSeconds': 1, 'utcOffsetMinutes': 900},
    ]
    for body in bad:
        r = client.post('/complete-lesson', json=body, headers=headers)
        assert r.status_code == 400, body
    assert client.get('/me/streak', headers=headers).json()['exists'] is False


def test_unknown_lesson_and_missing_auth(headers):
    missing = uuid.uuid4().hex
    assert client.post(f'/lessons/{missing}/begin', headers=headers).status_code == 404
    assert client.post('/complete-lesson', json={'lessonId': missing, 'score': 1, 'timeSpentSeconds': 1}, headers=headers).status_code == 404
    assert client.get(f'/lessons/{missing}', headers=headers).status_code == 404
    assert client.post('/complete-lesson', json={'lessonId': missing, 'score': 1, 'timeSpentSeconds': 1}).status_code == 401
    assert client.get('/me/streak').status_code == 401


def test_unpublished_lessons_are_hidden(headers, make_lesson):
    draft = make_lesson(is_published=False)
    assert client.get(f'/lessons/{draft.id}', headers=headers).status_code == 404
    assert client.post(f'/lessons/{draft.id}/begin', headers=headers).status_code == 404


def test_catalog_filters(headers, make_lesson):
    category = f"cat-{uuid.uuid4().hex[:6]}"
    a = make_lesson(category=category, difficulty='beginner', order_index=2, title='Negotiation basics')
    b = make_lesson(category=category, difficulty='advanced', order_index=1, title='Board presentations')
    listed = client.get('/lessons', params={'category': category}, headers=headers).json()
    assert [l['id'] for l in listed] == [b.id, a.id]
    advanced = client.get('/lessons', params={'category': category, 'difficulty': 'advanced'}, headers=headers).json()
    assert [l['id'] for l in advanced] == [b.id]
    found = client.get('/lessons', params={'category': category, 'q': 'NEGOTIATION'}, headers=headers).json()
    assert [l['id'] for l in found] == [a.id]


def test_progress_listing_and_certificates(headers, make_lesson):
    done = make_lesson(title='Finished lesson')
    started = make_lesson(title='Started lesson')
    client.put('/profile', json={'fullName': 'Alex Doe', 'jobTitle': 'Manager'}, headers=headers)
    client.post(f'/lessons/{started.id}/begin', headers=headers)
    client.post('/complete-lesson', json={'lessonId': done.id, 'score': 88, 'timeSpentSeconds': 30}, headers=headers)

    rows = client.get('/progress', headers=headers).json()
    assert {r['lessonId']: r['status'] for r in rows} == {done.id: 'completed', started.id: 'in_progress'}
    only_done = client.get('/progress', params={'status': 'completed'}, headers=headers).json()
    assert [r['lessonId'] for r in only_done] == [done.id]

    certs = client.get('/certificates', headers=headers).json()
    assert certs['recipient'] == 'Alex Doe'
    assert [(c['lessonId'], c['title'], c['score']) for c in certs['certificates']] == [(done.id, 'Finished lesson', 100)]


def test_bookmarks_are_idempotent(headers, make_lesson):
    lesson = make_lesson()
    assert client.put(f'/lessons/{lesson.id}/bookmark', headers=headers).json()['bookmarked'] is True
    assert client.put(f'/lessons/{lesson.id}/bookmark', headers=headers).status_code == 200
    listed = client.get('/bookmarks', headers=headers).json()
    assert [b['id'] for b in listed] == [lesson.id]
    assert client.delete(f'/lessons/{lesson.id}/bookmark', headers=headers).json()['bookmarked'] is False
    assert client.delete(f'/lessons/{lesson.id}/bookmark', headers=headers).status_code == 200
    assert client.get('/bookmarks', headers=headers).json() == []
    assert client.put(f'/lessons/{uuid.uuid4().hex}/bookmark', headers=headers).status_code == 404


def test_request_id_header_exists():
    r = client.get('/health')
    assert r.status_code == 200
    assert 'X-Request-ID' in r.headers
    echoed = client.get('/health', headers={'X-Request-ID': 'abc123'})
    assert echoed.headers['X-Request-ID'] == 'abc123'

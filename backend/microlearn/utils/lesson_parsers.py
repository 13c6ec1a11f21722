"""File parsing utilities that convert lesson packs into a normalized
lesson list.

Supported input types: JSON and CSV. Parsers return a list of
dictionaries with keys matching `Lesson` columns plus a `questions`
list whose items carry `question_text`, `options`, `correct_answer`
(an index) and `explanation`.
"""

import csv
import io
import json
from typing import Dict, List, Optional


def parse_file_to_lessons(file_bytes: bytes, filename: str) -> List[Dict]:
    """Dispatch to the appropriate parser based on file extension."""
    name = filename.lower()
    if name.endswith('.json'):
        return parse_json(file_bytes)
    if name.endswith('.csv'):
        return parse_csv(file_bytes)
    raise ValueError('Unsupported file type')


def parse_json(b: bytes) -> List[Dict]:
    """Parse a JSON array of lesson objects (or `{"lessons": [...]}`)."""
    data = json.loads(b.decode('utf-8'))
    if isinstance(data, dict):
        data = data.get('lessons', [])
    if not isinstance(data, list):
        raise ValueError('lesson pack must be a list of lessons')
    return [normalize_lesson(item) for item in data]


def parse_csv(b: bytes) -> List[Dict]:
    """Parse a CSV with one row per quiz question.

    Rows are grouped into lessons by `lesson_id` (or `lesson_title` when
    no id column is present). Expected columns: `lesson_title`,
    `category`, `question`, `options` (pipe separated) and `correct`
    (either the option label or its zero-based index). A row with an
    empty `question` declares a lesson without a quiz.
    """
    lessons: Dict[str, Dict] = {}
    sio = io.StringIO(b.decode('utf-8'))
    reader = csv.DictReader(sio)
    for row in reader:
        title = (row.get('lesson_title') or row.get('title') or '').strip()
        key = (row.get('lesson_id') or '').strip() or title
        if key not in lessons:
            lessons[key] = normalize_lesson({
                'id': (row.get('lesson_id') or '').strip() or None,
                'title': title,
                'description': row.get('description'),
                'category': row.get('category'),
                'difficulty': row.get('difficulty'),
                'duration_minutes': row.get('duration_minutes'),
                'order_index': row.get('order_index'),
                'questions': [],
            })
        question_text = (row.get('question') or row.get('question_text') or '').strip()
        if not question_text:
            continue
        options = [p.strip() for p in (row.get('options') or '').split('|') if p.strip()]
        lessons[key]['questions'].append(normalize_question({
            'question_text': question_text,
            'options': options,
            'correct': row.get('correct'),
            'explanation': row.get('explanation'),
        }))
    return list(lessons.values())


def normalize_lesson(item: Dict) -> Dict:
    """Map loosely-keyed lesson dicts onto the canonical keys."""
    if not isinstance(item, dict):
        return {'_invalid': 'lesson item must be an object'}
    bad = _non_text_field(item, ('id', 'title', 'description', 'category', 'difficulty', 'scenario_text'))
    if bad:
        return {'_invalid': f'{bad} must be a string'}
    questions = item.get('questions') or item.get('quiz') or []
    if not isinstance(questions, list):
        return {'_invalid': 'questions must be a list'}
    return {
        'id': item.get('id') or None,
        'title': (item.get('title') or '').strip(),
        'description': item.get('description'),
        'category': (item.get('category') or 'general').strip(),
        'difficulty': (item.get('difficulty') or 'beginner').strip().lower(),
        'duration_minutes': _coerce_int(item.get('duration_minutes') or item.get('duration')) or 5,
        'order_index': _coerce_int(item.get('order_index')) or 0,
        'is_published': bool(item.get('is_published', True)),
        'scenario_text': item.get('scenario_text'),
        'content': item.get('content') if isinstance(item.get('content'), dict) else {},
        'questions': [normalize_question(q) for q in questions],
    }


def normalize_question(item: Dict) -> Dict:
    """Resolve the correct answer to an index into `options`.

    `correct_answer` may already be an index; otherwise `correct` may be
    an index or the label of the right option. Unresolvable answers are
    left as `None` for the importer to reject.
    """
    if not isinstance(item, dict):
        return {'_invalid': 'question item must be an object'}
    bad = _non_text_field(item, ('id', 'question_text', 'question', 'explanation'))
    if bad:
        return {'_invalid': f'{bad} must be a string'}
    if not isinstance(item.get('options') or [], list):
        return {'_invalid': 'options must be a list'}
    options = [str(o).strip() for o in (item.get('options') or []) if str(o).strip()]
    correct = item.get('correct_answer')
    if correct is None:
        correct = item.get('correct')
    return {
        'id': item.get('id') or None,
        'question_text': (item.get('question_text') or item.get('question') or '').strip(),
        'options': options,
        'correct_answer': _resolve_correct(correct, options),
        'explanation': item.get('explanation') or None,
    }


def _resolve_correct(correct, options: List[str]) -> Optional[int]:
    if isinstance(correct, bool) or correct is None:
        return None
    if isinstance(correct, int):
        return correct
    text = str(correct).strip()
    if not text:
        return None
    if text in options:
        return options.index(text)
    return _coerce_int(text)


def _coerce_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _non_text_field(item: Dict, keys) -> Optional[str]:
    for key in keys:
        value = item.get(key)
        if value is not None and not isinstance(value, str):
            return key
    return None

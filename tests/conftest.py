import os
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# app.py builds a module-level app on import; keep it off the local SQLite file
os.environ['DATABASE_URL'] = 'sqlite://'

import llm_service
from app import create_app
from models import db
from token_budget import get_tracker
from user_service import create_user
from cover_letter_service import create_cover_letter

QUESTION_MARKER = 'Output only the question text'
ANSWER_MARKER = 'interview question and answer'
SUMMARY_MARKER = 'Write a comprehensive review'
COVER_LETTER_MARKER = 'hiring expert'
CHAT_MARKER = 'You are an experienced interviewer'

ESSAY = (
    'I am a backend developer who built a payment settlement service in Python. '
    'I led the migration from a monolith to services and cut batch time by half. '
    'I enjoy working with teammates to solve hard problems.'
)


class FakeCompletions:
    """Stands in for ``OpenAI().chat.completions``."""

    def __init__(self):
        self.calls = []
        self.question_count = 0
        self._failures = set()

    def fail_when(self, marker: str) -> None:
        self._failures.add(marker)

    def clear_failures(self) -> None:
        self._failures.clear()

    def prompts(self, marker: str = None) -> list:
        prompts = [c['messages'][0]['content'] for c in self.calls]
        if marker is None:
            return prompts
        return [p for p in prompts if marker in p]

    def _respond(self, prompt: str) -> str:
        if CHAT_MARKER in prompt:
            if 'Conversation so far' in prompt:
                return 'Feedback: Clear example.\nNext question: What would you do differently?'
            return 'Question: Walk me through the settlement migration.\nIntent: ownership.'
        if QUESTION_MARKER in prompt:
            self.question_count += 1
            return f'  Question number {self.question_count}?  '
        if ANSWER_MARKER in prompt:
            return 'Good structure; add measurable results.'
        if SUMMARY_MARKER in prompt:
            return 'Overall 4/5. Strong examples throughout.'
        if COVER_LETTER_MARKER in prompt:
            return 'Structure 4/5, fit 4/5, specificity 3/5, writing 5/5. Total 16/20.'
        return 'Overall impression: clear and sincere. Score 82/100.'

    def create(self, **kwargs):
        self.calls.append(kwargs)
        prompt = kwargs['messages'][0]['content']
        for marker in self._failures:
            if marker in prompt:
                raise RuntimeError('upstream unavailable')

        text = self._respond(prompt)
        if kwargs.get('stream'):
            return [
                SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=piece))])
                for piece in text.split(' ')
            ]
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class FakeClient:
    def __init__(self):
        self.completions = FakeCompletions()
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.fixture
def fake_llm():
    client = FakeClient()
    llm_service.set_client(client)
    get_tracker().reset()
    try:
        yield client.completions
    finally:
        llm_service.set_client(None)


@pytest.fixture
def app(fake_llm):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'FEEDBACK_SYNC': True,
    })
    ctx = app.app_context()
    ctx.push()
    try:
        yield app
    finally:
        db.session.remove()
        db.drop_all()
        ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def user(app):
    return create_user(name='Kim Applicant', job_category='Backend Developer',
                       age=29, experience='3-5', gender='female',
                       email='kim@example.com')


@pytest.fixture
def cover_letter(user):
    return create_cover_letter(user.id, ESSAY)

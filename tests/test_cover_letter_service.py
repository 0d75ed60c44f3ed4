import logging
import time
from concurrent.futures import Future

import pytest

import cover_letter_service
from app import create_app
from conftest import COVER_LETTER_MARKER, ESSAY
from cover_letter_service import (FALLBACK_FEEDBACK, create_cover_letter,
                                  dispatch_feedback,
                                  generate_cover_letter_feedback,
                                  get_cover_letter, list_cover_letters,
                                  quick_feedback)
from errors import GenerationError, NotFoundError, ValidationError
from models import CoverLetter, db
from user_service import create_user


def test_content_length_boundary(user):
    with pytest.raises(ValidationError):
        create_cover_letter(user.id, 'a' * 99)

    cover_letter = create_cover_letter(user.id, 'a' * 100)
    assert cover_letter.id is not None


def test_content_is_trimmed_before_length_check(user):
    with pytest.raises(ValidationError):
        create_cover_letter(user.id, '   ' + 'a' * 99 + '   ')


def test_unknown_user(app):
    with pytest.raises(NotFoundError):
        create_cover_letter(12345, ESSAY)


def test_feedback_completes_with_profile_prompt(user, fake_llm):
    cover_letter = create_cover_letter(user.id, ESSAY)

    assert cover_letter.status == 'COMPLETED'
    assert cover_letter.feedback.startswith('Structure 4/5')

    call = next(c for c in fake_llm.calls
                if COVER_LETTER_MARKER in c['messages'][0]['content'])
    assert call['temperature'] == 0.7
    assert call['max_tokens'] == 2500
    prompt = call['messages'][0]['content']
    assert 'Backend Developer' in prompt
    assert 'Age: 29' in prompt


def test_feedback_failure_sets_error_with_fallback(user, fake_llm):
    fake_llm.fail_when(COVER_LETTER_MARKER)

    cover_letter = create_cover_letter(user.id, ESSAY)

    assert cover_letter.status == 'ERROR'
    assert cover_letter.feedback == FALLBACK_FEEDBACK


def test_final_status_is_never_overwritten(user, fake_llm):
    cover_letter = create_cover_letter(user.id, ESSAY)
    calls = len(fake_llm.calls)

    fake_llm.fail_when(COVER_LETTER_MARKER)
    assert generate_cover_letter_feedback(cover_letter.id) == 'COMPLETED'

    assert get_cover_letter(cover_letter.id).status == 'COMPLETED'
    assert len(fake_llm.calls) == calls


def test_generate_for_missing_row_is_a_no_op(app):
    assert generate_cover_letter_feedback(999) is None


def test_async_dispatch_submits_to_worker_pool(app, user, monkeypatch):
    app.config['FEEDBACK_SYNC'] = False
    submitted = []

    class InlineExecutor:
        def submit(self, fn, *args):
            submitted.append(args)
            future = Future()
            future.set_result(None)
            return future

    monkeypatch.setattr(cover_letter_service, '_get_executor', lambda: InlineExecutor())

    cover_letter = create_cover_letter(user.id, ESSAY)

    assert cover_letter.status == 'PENDING'
    assert submitted == [(app, cover_letter.id)]


def test_list_is_newest_first(user):
    first = create_cover_letter(user.id, ESSAY)
    second = create_cover_letter(user.id, ESSAY + ' Second draft.')

    ids = [c.id for c in list_cover_letters(user.id)]
    assert ids == [second.id, first.id]


def test_get_missing_cover_letter(app):
    with pytest.raises(NotFoundError):
        get_cover_letter(31337)


def test_quick_feedback(app, fake_llm):
    assert quick_feedback(ESSAY).endswith('Score 82/100.')
    assert fake_llm.calls[-1]['max_tokens'] == 1500
    assert db.session.query(CoverLetter).count() == 0


def test_quick_feedback_stream(app):
    chunks = list(quick_feedback(ESSAY, stream=True))
    assert ' '.join(chunks).endswith('Score 82/100.')


def test_quick_feedback_requires_content(app):
    with pytest.raises(ValidationError):
        quick_feedback('  ')


def test_quick_feedback_failure(app, fake_llm):
    fake_llm.fail_when('HR professional')
    with pytest.raises(GenerationError):
        quick_feedback(ESSAY)


@pytest.fixture
def threaded_app(fake_llm, tmp_path):
    """App whose reviews run on the real worker pool against a SQLite file."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'feedback.db'}",
        'FEEDBACK_SYNC': False,
    })
    ctx = app.app_context()
    ctx.push()
    try:
        yield app
    finally:
        db.session.remove()
        db.drop_all()
        ctx.pop()


def _pending_cover_letter():
    user = create_user(name='Yoon', job_category='Data Engineer', age=34,
                       experience='5-10', gender='male')
    cover_letter = CoverLetter(user_id=user.id, content=ESSAY, status='PENDING')
    db.session.add(cover_letter)
    db.session.commit()
    return cover_letter.id


def _status_after(future, cover_letter_id):
    future.result(timeout=10)
    db.session.expire_all()
    return get_cover_letter(cover_letter_id)


def test_worker_pool_completes_pending_row(threaded_app, fake_llm):
    cover_letter_id = _pending_cover_letter()

    future = dispatch_feedback(cover_letter_id)

    cover_letter = _status_after(future, cover_letter_id)
    assert cover_letter.status == 'COMPLETED'
    assert cover_letter.feedback.startswith('Structure 4/5')


def test_worker_pool_records_generation_failure(threaded_app, fake_llm):
    fake_llm.fail_when(COVER_LETTER_MARKER)
    cover_letter_id = _pending_cover_letter()

    future = dispatch_feedback(cover_letter_id)

    cover_letter = _status_after(future, cover_letter_id)
    assert cover_letter.status == 'ERROR'
    assert cover_letter.feedback == FALLBACK_FEEDBACK


def test_worker_pool_logs_crashed_job(threaded_app, monkeypatch, caplog):
    cover_letter_id = _pending_cover_letter()

    def crash(_cover_letter_id):
        raise RuntimeError('database went away')

    monkeypatch.setattr(cover_letter_service, 'generate_cover_letter_feedback', crash)
    caplog.set_level(logging.ERROR, logger='cover_letter_service')

    future = dispatch_feedback(cover_letter_id)
    with pytest.raises(RuntimeError):
        future.result(timeout=10)

    # Done-callbacks run on the worker thread right after the result is set
    for _ in range(100):
        if any('crashed' in r.getMessage() for r in caplog.records):
            break
        time.sleep(0.02)
    assert any(f'cover letter {cover_letter_id} crashed' in r.getMessage()
               for r in caplog.records)
    assert get_cover_letter(cover_letter_id).status == 'PENDING'

"""Cover-letter submission and background AI review.

A submitted cover letter is stored as PENDING and its review is generated on
a worker thread. The row moves to COMPLETED (with feedback) or ERROR (with
FALLBACK_FEEDBACK) exactly once; clients poll the status field.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from functools import partial

from flask import current_app

from errors import GenerationError, NotFoundError, ValidationError
from llm_service import generate, generate_stream
from models import (COVER_LETTER_COMPLETED, COVER_LETTER_ERROR,
                    COVER_LETTER_PENDING, CoverLetter, User, db)
from prompts import build_cover_letter_feedback_prompt, build_quick_feedback_prompt

logger = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 100
FALLBACK_FEEDBACK = 'An error occurred while generating feedback. Please try again.'

_executor = None


def _get_executor() -> ThreadPoolExecutor:
    """Lazy-init the worker pool for feedback jobs."""
    global _executor
    if _executor is None:
        workers = int(os.environ.get('FEEDBACK_WORKERS', 4))
        _executor = ThreadPoolExecutor(max_workers=workers,
                                       thread_name_prefix='cover-letter-feedback')
        logger.info('Feedback worker pool started (%d workers)', workers)
    return _executor


# ---------------------------------------------------------------------------
# Submission & lookup
# ---------------------------------------------------------------------------

def create_cover_letter(user_id, content: str) -> CoverLetter:
    """Store a PENDING cover letter and dispatch its review."""
    content = (content or '').strip()
    if len(content) < MIN_CONTENT_LENGTH:
        raise ValidationError(
            f'Cover letter must be at least {MIN_CONTENT_LENGTH} characters.')

    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None:
        raise NotFoundError('User not found.')

    cover_letter = CoverLetter(user_id=user.id, content=content,
                               status=COVER_LETTER_PENDING)
    db.session.add(cover_letter)
    db.session.commit()
    logger.info('Cover letter %s submitted by user %s (%d chars)',
                cover_letter.id, user.id, len(content))

    dispatch_feedback(cover_letter.id)
    return cover_letter


def get_cover_letter(cover_letter_id) -> CoverLetter:
    cover_letter = db.session.get(CoverLetter, cover_letter_id)
    if cover_letter is None:
        raise NotFoundError('Cover letter not found.')
    return cover_letter


def list_cover_letters(user_id) -> list:
    """All cover letters of a user, newest first."""
    return (CoverLetter.query
            .filter_by(user_id=user_id)
            .order_by(CoverLetter.created_at.desc(), CoverLetter.id.desc())
            .all())


# ---------------------------------------------------------------------------
# Background review
# ---------------------------------------------------------------------------

def dispatch_feedback(cover_letter_id: int):
    """Queue the review job for a cover letter.

    Runs inline when the app is configured with FEEDBACK_SYNC (tests, CLI);
    otherwise returns the Future of the queued job.
    """
    app = current_app._get_current_object()
    if app.config.get('FEEDBACK_SYNC'):
        generate_cover_letter_feedback(cover_letter_id)
        return None

    future = _get_executor().submit(_run_feedback_job, app, cover_letter_id)
    future.add_done_callback(partial(_log_job_outcome, cover_letter_id))
    return future


def _run_feedback_job(app, cover_letter_id: int) -> None:
    with app.app_context():
        try:
            generate_cover_letter_feedback(cover_letter_id)
        finally:
            db.session.remove()


def _log_job_outcome(cover_letter_id: int, future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error('Feedback job for cover letter %s crashed: %s',
                     cover_letter_id, exc, exc_info=exc)


def _finish(cover_letter_id: int, status: str, feedback: str) -> bool:
    """Move a PENDING row to its final status. False if it was not PENDING."""
    updated = (CoverLetter.query
               .filter_by(id=cover_letter_id, status=COVER_LETTER_PENDING)
               .update({'status': status,
                        'feedback': feedback,
                        'updated_at': datetime.utcnow()}))
    db.session.commit()
    return bool(updated)


def generate_cover_letter_feedback(cover_letter_id: int) -> str | None:
    """Generate the review for a PENDING cover letter and record the outcome.

    Returns the resulting status, or None if the row does not exist.
    Generation failures end in ERROR with FALLBACK_FEEDBACK and are not
    re-raised: nobody is waiting on this call.
    """
    cover_letter = db.session.get(CoverLetter, cover_letter_id)
    if cover_letter is None:
        logger.warning('Cover letter %s vanished before feedback generation',
                       cover_letter_id)
        return None
    if cover_letter.status != COVER_LETTER_PENDING:
        logger.info('Cover letter %s already %s, skipping',
                    cover_letter_id, cover_letter.status)
        return cover_letter.status

    prompt = build_cover_letter_feedback_prompt(cover_letter.user.profile(),
                                                cover_letter.content)
    try:
        feedback = generate(prompt, task='cover_letter_feedback')
    except GenerationError as e:
        logger.error('Feedback generation failed for cover letter %s: %s',
                     cover_letter_id, e)
        status, feedback = COVER_LETTER_ERROR, FALLBACK_FEEDBACK
    else:
        status = COVER_LETTER_COMPLETED

    if _finish(cover_letter_id, status, feedback):
        logger.info('Cover letter %s → %s', cover_letter_id, status)
    db.session.refresh(cover_letter)
    return cover_letter.status


# ---------------------------------------------------------------------------
# Quick feedback (stateless)
# ---------------------------------------------------------------------------

def quick_feedback(content: str, stream: bool = False):
    """Review an arbitrary essay without storing anything.

    Returns the feedback text, or an iterator of chunks when ``stream``.
    """
    if not content or not content.strip():
        raise ValidationError('Please enter the cover letter content.')

    prompt = build_quick_feedback_prompt(content.strip())
    if stream:
        return generate_stream(prompt, task='quick_feedback')
    return generate(prompt, task='quick_feedback')

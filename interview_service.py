"""AI Mock Interview Service — turn orchestration for interview sessions.

A session moves through up to MAX_TURNS question/answer/feedback cycles and
ends with a comprehensive review. Progress is not stored as a status column;
it is derived from the turns (see ``get_session_state``).

Each persistence step commits on its own. When a later generation step fails
the earlier commit stays: a session with no turns, or a graded last turn with
no successor, is visible through its state and can be retried by the caller.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from errors import ConflictError, NotFoundError, ValidationError
from llm_service import generate
from models import (INTERVIEW_TYPES, CoverLetter, InterviewSession,
                    InterviewTurn, User, db)
from prompts import (build_answer_feedback_prompt, build_chat_interview_prompt,
                     build_comprehensive_feedback_prompt, build_question_prompt)

logger = logging.getLogger(__name__)

MAX_TURNS = 5

# Seconds shown on the client countdown; not enforced server-side
TIME_LIMITS = {
    'BASIC': 60,
    'TECHNICAL': 180,
}

NO_ANSWERS_MESSAGE = 'No answers were given, so no comprehensive feedback was generated.'
ENDED_MESSAGE = 'The interview has ended.'
COMPLETED_MESSAGE = 'The interview is complete.'

# ---------------------------------------------------------------------------
# Derived session state
# ---------------------------------------------------------------------------

AWAITING_FIRST_QUESTION = 'awaiting_first_question'
AWAITING_ANSWER = 'awaiting_answer'
AWAITING_QUESTION = 'awaiting_question'      # last turn graded, next question not created yet
COMPLETED = 'completed'


@dataclass(frozen=True)
class SessionState:
    status: str
    turn_number: int | None = None

    def to_dict(self) -> dict:
        return {'status': self.status, 'turnNumber': self.turn_number}


def get_session_state(session: InterviewSession) -> SessionState:
    """Work out where a session is from its turns and feedback."""
    if session.feedback is not None:
        return SessionState(COMPLETED)

    turns = session.turns.all()
    if not turns:
        return SessionState(AWAITING_FIRST_QUESTION, 1)

    for turn in turns:
        if not turn.is_answered:
            return SessionState(AWAITING_ANSWER, turn.turn_number)

    if len(turns) >= MAX_TURNS:
        return SessionState(COMPLETED)
    return SessionState(AWAITING_QUESTION, len(turns) + 1)


def time_limit_for(interview_type: str) -> int:
    return TIME_LIMITS[interview_type]


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def _get_or_404(model, obj_id, message: str):
    obj = db.session.get(model, obj_id) if obj_id is not None else None
    if obj is None:
        raise NotFoundError(message)
    return obj


def get_session(session_id) -> InterviewSession:
    return _get_or_404(InterviewSession, session_id, 'Interview session not found.')


def _get_session_turn(session: InterviewSession, turn_id) -> InterviewTurn:
    turn = db.session.get(InterviewTurn, turn_id) if turn_id is not None else None
    if turn is None or turn.session_id != session.id:
        raise NotFoundError('Interview turn not found.')
    return turn


# ---------------------------------------------------------------------------
# Generation steps
# ---------------------------------------------------------------------------

def _generate_question(session: InterviewSession, cover_letter: CoverLetter,
                       previous_questions: list) -> str:
    prompt = build_question_prompt(session.type, session.user.profile(),
                                   cover_letter.content, previous_questions)
    return generate(prompt, task='interview_question')


def _create_turn(session: InterviewSession, turn_number: int,
                 question: str) -> InterviewTurn:
    turn = InterviewTurn(
        session_id=session.id,
        turn_number=turn_number,
        question=question.strip(),
        time_limit=time_limit_for(session.type),
    )
    db.session.add(turn)
    db.session.commit()
    logger.info('Session %s: created turn %d', session.id, turn_number)
    return turn


def _grade_turn(session: InterviewSession, turn: InterviewTurn, answer: str) -> None:
    """Generate per-answer feedback, then store answer and feedback together."""
    prompt = build_answer_feedback_prompt(turn.question, answer, session.type)
    feedback = generate(prompt, task='answer_feedback')

    turn.answer = answer
    turn.feedback = feedback
    turn.answered_at = datetime.utcnow()
    db.session.commit()
    logger.info('Session %s: graded turn %d', session.id, turn.turn_number)


# ---------------------------------------------------------------------------
# Start Interview
# ---------------------------------------------------------------------------

def start_interview(user_id, cover_letter_id, interview_type: str):
    """Create a session and its first question.

    Returns:
        (session, first_turn)

    The session row is committed before the question is generated; if
    generation fails the GenerationError propagates and the session is left
    with zero turns (state ``awaiting_first_question``).
    """
    if interview_type not in INTERVIEW_TYPES:
        raise ValidationError('Interview type must be BASIC or TECHNICAL.')

    user = _get_or_404(User, user_id, 'User not found.')
    cover_letter = _get_or_404(CoverLetter, cover_letter_id, 'Cover letter not found.')

    session = InterviewSession(
        user_id=user.id,
        cover_letter_id=cover_letter.id,
        type=interview_type,
    )
    db.session.add(session)
    db.session.commit()
    logger.info('Started %s interview session %s for user %s',
                interview_type, session.id, user.id)

    question = _generate_question(session, cover_letter, [])
    first_turn = _create_turn(session, 1, question)
    return session, first_turn


# ---------------------------------------------------------------------------
# Process Answer & Get Next Question
# ---------------------------------------------------------------------------

def advance_interview(session_id, turn_id, answer: str) -> dict:
    """Grade ``answer`` for the current turn, then create the next turn unless full.

    Returns:
        {'completed': True} once MAX_TURNS answered turns exist, otherwise
        {'completed': False, 'turn': next_turn}.

    Only the session's current unanswered turn can be graded. The one
    answered turn accepted is the last turn of a session whose next question
    failed to generate (``awaiting_question``): grading is skipped and only
    the next question is retried.
    """
    if not answer or not answer.strip():
        raise ValidationError('An answer is required.')

    session = get_session(session_id)
    turn = _get_session_turn(session, turn_id)
    if session.feedback is not None:
        raise ConflictError('This interview has already ended.')

    state = get_session_state(session)
    if state.status == COMPLETED:
        return {'completed': True}

    if turn.is_answered:
        retrying = (state.status == AWAITING_QUESTION
                    and turn.turn_number == state.turn_number - 1)
        if not retrying:
            raise ConflictError('This question has already been answered.')
        logger.info('Session %s: retrying question %d', session.id, state.turn_number)
    elif state.status != AWAITING_ANSWER or turn.turn_number != state.turn_number:
        raise ConflictError('Only the current question can be answered.')
    else:
        _grade_turn(session, turn, answer)

    turn_count = session.turns.count()
    if turn_count >= MAX_TURNS:
        logger.info('Session %s: reached %d turns', session.id, turn_count)
        return {'completed': True}

    cover_letter = session.cover_letter
    if cover_letter is None:
        raise NotFoundError('Cover letter not found.')

    previous_questions = [t.question for t in session.turns]
    question = _generate_question(session, cover_letter, previous_questions)
    next_turn = _create_turn(session, turn_count + 1, question)
    return {'completed': False, 'turn': next_turn}


# ---------------------------------------------------------------------------
# End Interview
# ---------------------------------------------------------------------------

def end_interview(session_id, last_turn_id=None, last_answer: str = None):
    """Grade an optional last answer and write the comprehensive feedback.

    Returns:
        (session, message). Sessions without any answered turn come back
        unchanged, with NO_ANSWERS_MESSAGE.

    A session that already has comprehensive feedback is rejected with
    ConflictError rather than regenerated. A ``last_turn_id`` that is already
    answered keeps its stored answer.
    """
    session = get_session(session_id)
    if session.feedback is not None:
        raise ConflictError('This interview has already ended.')

    if last_turn_id is not None and last_answer and last_answer.strip():
        turn = _get_session_turn(session, last_turn_id)
        if turn.is_answered:
            # Graded answers are kept; the summary uses the stored one
            logger.info('Session %s: turn %d already answered, not regrading',
                        session.id, turn.turn_number)
        else:
            _grade_turn(session, turn, last_answer)

    answered_turns = [t for t in session.turns if t.is_answered]
    if not answered_turns:
        logger.info('Session %s ended with no answered turns', session.id)
        return session, NO_ANSWERS_MESSAGE

    qa_pairs = [
        {'question': t.question, 'answer': t.answer, 'feedback': t.feedback or ''}
        for t in answered_turns
    ]
    prompt = build_comprehensive_feedback_prompt(session.type, qa_pairs)
    feedback = generate(prompt, task='comprehensive_feedback')

    session.feedback = feedback
    session.ended_at = datetime.utcnow()
    db.session.commit()
    logger.info('Session %s: comprehensive feedback over %d answered turns',
                session.id, len(answered_turns))
    return session, ENDED_MESSAGE


# ---------------------------------------------------------------------------
# Conversational interview (stateless)
# ---------------------------------------------------------------------------

def chat_interview(cover_letter: str, conversation_history=None,
                   is_first_question: bool = False) -> str:
    """Return the interviewer's next message for a client-held transcript.

    Nothing is stored. The first call returns an opening question; later
    calls return feedback on the last answer followed by the next question.
    """
    if not isinstance(cover_letter, str) or not cover_letter.strip():
        raise ValidationError('Please enter the cover letter content.')

    history = []
    if not is_first_question:
        if not isinstance(conversation_history, list) or not conversation_history:
            raise ValidationError('A conversation history is required after the first question.')
        for msg in conversation_history:
            if not isinstance(msg, dict) or not isinstance(msg.get('content'), str):
                raise ValidationError('Each conversation message needs a role and text content.')
            history.append({'role': msg.get('role'), 'content': msg['content']})

    prompt = build_chat_interview_prompt(cover_letter.strip(), history,
                                         is_first_question=is_first_question)
    reply = generate(prompt, task='chat_interview')
    logger.info('Chat interview: replied after %d messages', len(history))
    return reply

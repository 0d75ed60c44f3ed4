import logging
import os

from dotenv import load_dotenv
load_dotenv()  # Load .env file (OPENAI_API_KEY, DATABASE_URL, etc.)

from flask import (Blueprint, Flask, Response, jsonify, request,
                   stream_with_context)
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

import cover_letter_service
import interview_service
import llm_service
import user_service
from errors import AppError, ValidationError
from models import InterviewSession, db
from token_budget import get_tracker

logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s [%(levelname)s] %(message)s')
logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')

# Largest value a 64-bit signed integer column holds
MAX_ID = 2 ** 63 - 1


def _database_url() -> str:
    """Postgres via DATABASE_URL, else a local SQLite file."""
    database_url = os.environ.get('DATABASE_URL', '')
    if database_url:
        # Hosted Postgres URLs start with postgres:// but SQLAlchemy needs postgresql://
        if database_url.startswith('postgres://'):
            database_url = database_url.replace('postgres://', 'postgresql://', 1)
        return database_url
    db_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'interview_coach.db')
    return f'sqlite:///{db_path}'


def create_app(config: dict = None) -> Flask:
    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)
    app.config['SQLALCHEMY_DATABASE_URI'] = _database_url()
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['FEEDBACK_SYNC'] = os.environ.get('FEEDBACK_SYNC', '') == '1'
    if config:
        app.config.update(config)

    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.register_blueprint(api)
    app.register_error_handler(AppError, _handle_app_error)
    app.register_error_handler(HTTPException, _handle_http_error)
    app.register_error_handler(Exception, _handle_unexpected_error)

    @app.route('/health')
    def health():
        return jsonify({
            'status': 'ok',
            'llm_enabled': llm_service.is_enabled(),
            'token_usage': get_tracker().summary(),
        })

    return app


# ---------------------------------------------------------------------------
# Error handlers: every error body is {"error": message}
# ---------------------------------------------------------------------------

def _handle_app_error(e: AppError):
    if e.status_code >= 500:
        logger.error('%s: %s', type(e).__name__, e.message)
    return jsonify({'error': e.message}), e.status_code


def _handle_http_error(e: HTTPException):
    return jsonify({'error': e.description}), e.code


def _handle_unexpected_error(e: Exception):
    logger.error('Unhandled error: %s', e, exc_info=True)
    db.session.rollback()
    return jsonify({'error': 'An internal server error occurred.'}), 500


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------

def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object.')
    return data


def _parse_id(value, label: str, required: bool = True):
    """Accept ints or numeric strings; None passes through when optional."""
    if value is None or value == '':
        if required:
            raise ValidationError(f'{label} is required.')
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{label} must be an integer.')
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{label} must be an integer.')
    if not 1 <= parsed <= MAX_ID:
        raise ValidationError(f'{label} is out of range.')
    return parsed


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@api.route('/users', methods=['POST'])
def create_user():
    data = _json_body()
    user = user_service.create_user(
        name=data.get('name'),
        email=data.get('email'),
        job_category=data.get('jobCategory'),
        age=data.get('age'),
        experience=data.get('experience'),
        gender=data.get('gender'),
    )
    return jsonify({'user': user.to_dict()}), 201


@api.route('/users', methods=['GET'])
def get_user():
    user_id = _parse_id(request.args.get('userId'), 'userId')
    user = user_service.get_user(user_id)

    payload = user.to_dict()
    payload['coverLetters'] = [c.to_dict() for c in cover_letter_service.list_cover_letters(user.id)]
    sessions = (user.interview_sessions
                .order_by(InterviewSession.created_at.desc(), InterviewSession.id.desc())
                .all())
    payload['interviewSessions'] = [s.to_dict() for s in sessions]
    return jsonify({'user': payload})


# ---------------------------------------------------------------------------
# Cover letters
# ---------------------------------------------------------------------------

@api.route('/cover-letters', methods=['POST'])
def submit_cover_letter():
    data = _json_body()
    user_id = _parse_id(data.get('userId'), 'userId')
    content = data.get('content')
    if not isinstance(content, str) or not content.strip():
        raise ValidationError('Cover letter content and userId are required.')

    cover_letter = cover_letter_service.create_cover_letter(user_id, content)
    return jsonify({
        'coverLetter': cover_letter.to_dict(),
        'message': 'Cover letter submitted. Feedback is being generated.',
    }), 201


@api.route('/cover-letters', methods=['GET'])
def fetch_cover_letters():
    cover_letter_id = _parse_id(request.args.get('id'), 'id', required=False)
    if cover_letter_id is not None:
        cover_letter = cover_letter_service.get_cover_letter(cover_letter_id)
        return jsonify({'coverLetter': cover_letter.to_dict()})

    user_id = _parse_id(request.args.get('userId'), 'userId')
    cover_letters = cover_letter_service.list_cover_letters(user_id)
    return jsonify({'coverLetters': [c.to_dict() for c in cover_letters]})


@api.route('/feedback', methods=['POST'])
def quick_feedback():
    """Stateless essay review; streams plain text when {"stream": true}."""
    data = _json_body()
    content = data.get('coverLetter')
    if not isinstance(content, str):
        content = ''

    if not data.get('stream'):
        return jsonify({'feedback': cover_letter_service.quick_feedback(content)})

    chunks = cover_letter_service.quick_feedback(content, stream=True)
    # Pull the first chunk now so setup failures still get a JSON error
    first = next(chunks, '')

    def body():
        yield first
        yield from chunks

    return Response(stream_with_context(body()), mimetype='text/plain')


# ---------------------------------------------------------------------------
# Interview
# ---------------------------------------------------------------------------

@api.route('/interview', methods=['POST'])
def chat_interview():
    """Stateless interview turn over a transcript the client keeps."""
    data = _json_body()
    reply = interview_service.chat_interview(
        data.get('coverLetter'),
        conversation_history=data.get('conversationHistory'),
        is_first_question=bool(data.get('isFirstQuestion')),
    )
    return jsonify({'response': reply})


@api.route('/interview/start', methods=['POST'])
def start_interview():
    data = _json_body()
    user_id = _parse_id(data.get('userId'), 'userId')
    cover_letter_id = _parse_id(data.get('coverLetterId'), 'coverLetterId')
    interview_type = data.get('type')
    if not interview_type:
        raise ValidationError('Interview type is required.')

    session, turn = interview_service.start_interview(user_id, cover_letter_id, interview_type)
    return jsonify({'session': session.to_dict(), 'turn': turn.to_dict()})


@api.route('/interview/next', methods=['POST'])
def next_question():
    data = _json_body()
    session_id = _parse_id(data.get('sessionId'), 'sessionId')
    turn_id = _parse_id(data.get('turnId'), 'turnId')
    answer = data.get('answer')
    if not isinstance(answer, str) or not answer.strip():
        raise ValidationError('An answer is required.')

    result = interview_service.advance_interview(session_id, turn_id, answer)
    if result['completed']:
        return jsonify({'completed': True,
                        'message': interview_service.COMPLETED_MESSAGE})
    return jsonify({'completed': False, 'turn': result['turn'].to_dict()})


@api.route('/interview/end', methods=['POST'])
def end_interview():
    data = _json_body()
    session_id = _parse_id(data.get('sessionId'), 'sessionId')
    last_turn_id = _parse_id(data.get('lastTurnId'), 'lastTurnId', required=False)
    last_answer = data.get('lastAnswer')
    if not isinstance(last_answer, str):
        last_answer = None

    session, message = interview_service.end_interview(session_id, last_turn_id, last_answer)
    return jsonify({'session': session.to_dict(include_turns=True),
                    'message': message})


@api.route('/interview/<int:session_id>', methods=['GET'])
def get_interview_session(session_id):
    session = interview_service.get_session(_parse_id(session_id, 'sessionId'))
    return jsonify({'session': session.to_dict(include_turns=True, include_user=True)})


app = create_app()


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5050))
    app.run(debug=True, port=port)

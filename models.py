"""Database models for Interview Coach — users, cover letters, interview sessions and turns."""

from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Enumerations stored as plain strings
EXPERIENCE_LEVELS = ('entry', '1-3', '3-5', '5-10', '10+')

COVER_LETTER_PENDING = 'PENDING'
COVER_LETTER_COMPLETED = 'COMPLETED'
COVER_LETTER_ERROR = 'ERROR'
COVER_LETTER_STATUSES = (COVER_LETTER_PENDING, COVER_LETTER_COMPLETED, COVER_LETTER_ERROR)

INTERVIEW_BASIC = 'BASIC'
INTERVIEW_TECHNICAL = 'TECHNICAL'
INTERVIEW_TYPES = (INTERVIEW_BASIC, INTERVIEW_TECHNICAL)


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(256), unique=True, nullable=True, index=True)  # NULL when not given
    job_category = db.Column(db.String(100), nullable=False)
    experience = db.Column(db.String(20), nullable=False)              # one of EXPERIENCE_LEVELS
    age = db.Column(db.Integer, nullable=False)                        # 18-100
    gender = db.Column(db.String(30), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    cover_letters = db.relationship('CoverLetter', backref='user', lazy='dynamic')
    interview_sessions = db.relationship('InterviewSession', backref='user', lazy='dynamic')

    def __repr__(self):
        return f'<User id={self.id} {self.name}>'

    def profile(self) -> dict:
        """Fields the prompt templates personalise on."""
        return {
            'job_category': self.job_category,
            'experience': self.experience,
            'age': self.age,
            'gender': self.gender,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'jobCategory': self.job_category,
            'experience': self.experience,
            'age': self.age,
            'gender': self.gender,
            'createdAt': _iso(self.created_at),
        }


class CoverLetter(db.Model):
    """A submitted self-introduction essay and its AI review."""
    __tablename__ = 'cover_letters'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), default=COVER_LETTER_PENDING, nullable=False)  # PENDING / COMPLETED / ERROR
    feedback = db.Column(db.Text)                                      # NULL until generation finishes
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<CoverLetter id={self.id} user={self.user_id} status={self.status}>'

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'content': self.content,
            'status': self.status,
            'feedback': self.feedback,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class InterviewSession(db.Model):
    """One mock interview run; its type is fixed at creation."""
    __tablename__ = 'interview_sessions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    cover_letter_id = db.Column(db.Integer, db.ForeignKey('cover_letters.id'), nullable=True)
    type = db.Column(db.String(20), nullable=False)                    # BASIC / TECHNICAL
    feedback = db.Column(db.Text)                                      # comprehensive feedback, set once at end
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    ended_at = db.Column(db.DateTime)

    cover_letter = db.relationship('CoverLetter')
    turns = db.relationship('InterviewTurn', backref='session', lazy='dynamic',
                            order_by='InterviewTurn.turn_number')

    def __repr__(self):
        return f'<InterviewSession id={self.id} user={self.user_id} type={self.type}>'

    def to_dict(self, include_turns=False, include_user=False):
        from interview_service import get_session_state

        data = {
            'id': self.id,
            'userId': self.user_id,
            'coverLetterId': self.cover_letter_id,
            'type': self.type,
            'feedback': self.feedback,
            'state': get_session_state(self).to_dict(),
            'createdAt': _iso(self.created_at),
            'endedAt': _iso(self.ended_at),
        }
        if include_turns:
            data['turns'] = [t.to_dict() for t in self.turns]
        if include_user:
            data['user'] = self.user.to_dict()
        return data


class InterviewTurn(db.Model):
    """A single question/answer/feedback exchange within a session."""
    __tablename__ = 'interview_turns'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('interview_sessions.id'), nullable=False, index=True)
    turn_number = db.Column(db.Integer, nullable=False)                # 1, 2, ... MAX_TURNS
    question = db.Column(db.Text, nullable=False)
    answer = db.Column(db.Text)                                        # NULL until answered
    feedback = db.Column(db.Text)                                      # set together with answer
    time_limit = db.Column(db.Integer, nullable=False)                 # seconds: 60 BASIC / 180 TECHNICAL
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    answered_at = db.Column(db.DateTime)

    __table_args__ = (
        db.UniqueConstraint('session_id', 'turn_number', name='uq_turn_session_number'),
    )

    def __repr__(self):
        return f'<InterviewTurn session={self.session_id} n={self.turn_number}>'

    @property
    def is_answered(self) -> bool:
        return self.answer is not None

    def to_dict(self):
        return {
            'id': self.id,
            'sessionId': self.session_id,
            'turnNumber': self.turn_number,
            'question': self.question,
            'answer': self.answer,
            'feedback': self.feedback,
            'timeLimit': self.time_limit,
            'createdAt': _iso(self.created_at),
            'answeredAt': _iso(self.answered_at),
        }

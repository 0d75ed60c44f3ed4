"""Applicant registration and lookup."""

import logging

from sqlalchemy.exc import IntegrityError

from errors import NotFoundError, UniquenessConflict, ValidationError
from models import EXPERIENCE_LEVELS, User, db

logger = logging.getLogger(__name__)

MIN_AGE = 18
MAX_AGE = 100


def _parse_age(age) -> int:
    if isinstance(age, bool):
        raise ValidationError(f'Please enter a valid age ({MIN_AGE}-{MAX_AGE}).')
    try:
        value = int(str(age).strip())
    except (TypeError, ValueError):
        raise ValidationError(f'Please enter a valid age ({MIN_AGE}-{MAX_AGE}).')
    if value < MIN_AGE or value > MAX_AGE:
        raise ValidationError(f'Please enter a valid age ({MIN_AGE}-{MAX_AGE}).')
    return value


def _required_text(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError('Please fill in all required fields.')
    return value.strip()


def create_user(name, job_category, age, experience, gender, email=None) -> User:
    """Validate the registration form and insert a User."""
    name = _required_text(name)
    job_category = _required_text(job_category)
    gender = _required_text(gender)
    if age is None or (isinstance(age, str) and not age.strip()):
        raise ValidationError('Please fill in all required fields.')

    age_value = _parse_age(age)
    if not isinstance(experience, str) or experience not in EXPERIENCE_LEVELS:
        raise ValidationError(
            'Experience must be one of: ' + ', '.join(EXPERIENCE_LEVELS) + '.')

    # Blank email is stored as NULL so the unique index ignores it
    email_value = email.strip() if isinstance(email, str) and email.strip() else None

    user = User(
        name=name,
        email=email_value,
        job_category=job_category,
        age=age_value,
        experience=experience,
        gender=gender,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info('Duplicate email on registration: %s', email_value)
        raise UniquenessConflict('This email is already in use.')

    logger.info('Created user %s (%s, %s)', user.id, user.job_category, user.experience)
    return user


def get_user(user_id) -> User:
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None:
        raise NotFoundError('User not found.')
    return user

"""
Accounts: signup, login, logout and the current session user.
"""

import logging

from werkzeug.security import check_password_hash, generate_password_hash

from bloodlink.errors import AuthenticationError, ValidationError
from bloodlink.models import Role, User, generate_id, utcnow
from bloodlink.store import USERS
from bloodlink.validation import clean_signup

logger = logging.getLogger(__name__)


def signup(store, data, now=None):
    """Validate the signup form, create the user and log them in"""
    now = now or utcnow()
    cleaned, errors = clean_signup(data, now)
    if errors:
        raise ValidationError(errors.get('general') or 'Please correct the highlighted fields', errors)

    with store.transaction():
        if store.find_user_by_email(cleaned['email']):
            raise ValidationError('Email already registered', {'email': 'Email already registered'})

        user = User(
            id=generate_id('USR'),
            name=cleaned['name'],
            email=cleaned['email'],
            password=generate_password_hash(cleaned['password']),
            age=cleaned['age'],
            location=cleaned['location'],
            blood_type=cleaned['bloodType'],
            role=cleaned['role'],
            gender=cleaned['gender'],
            created_at=now,
        )
        if user.role == Role.DONOR:
            user.last_donated_date = cleaned['lastDonatedDate']
            user.is_drunk = cleaned['isDrunk']
            user.is_smoker = cleaned['isSmoker']

        store.commit({USERS: [user]})
        store.save_current_user(user)

    logger.info('Registered %s %s (%s)', user.role.lower(), user.id, user.blood_type)
    return user


def login(store, email, password):
    user = store.find_user_by_email(email)
    if user is None or not check_password_hash(user.password, password or ''):
        logger.warning('Failed login for %s', (email or '').strip().lower())
        raise AuthenticationError('Invalid email or password')
    store.save_current_user(user)
    logger.info('User %s logged in', user.id)
    return user


def logout(store):
    store.clear_current_user()


def current_user(store):
    """Session user, re-read from the users collection so the record is fresh"""
    session_user = store.load_current_user()
    if session_user is None:
        return None
    return store.get_user(session_user.id)

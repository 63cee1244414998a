"""
Form validation for signup and blood request submission.
Each validator returns a dict of field -> message; empty means valid.
"""

import re

from bloodlink.compatibility import normalize_blood_type, validate_blood_type
from bloodlink.models import (Gender, Role, Seriousness, coerce_bool, coerce_number,
                              parse_datetime, utcnow)

EMAIL_PATTERN = re.compile(r'^[a-z][a-z0-9]*@gmail\.com$')
NAME_PATTERN = re.compile(r'^[a-zA-Z\s]+$')

MIN_UNITS = 1
MAX_UNITS = 10


def _text(value):
    return '' if value is None else str(value)


def validate_email(email):
    return bool(EMAIL_PATTERN.match(email or ''))


def validate_password(password):
    """Returns (valid, message)"""
    password = password or ''
    if len(password) < 8:
        return False, 'Password must be at least 8 characters long'
    if not re.search(r'[a-z]', password):
        return False, 'Password must contain at least one lowercase letter'
    if not re.search(r'[A-Z]', password):
        return False, 'Password must contain at least one uppercase letter'
    if not re.search(r'\d', password):
        return False, 'Password must contain at least one number'
    return True, None


def validate_name(name):
    name = (name or '').strip()
    return bool(name) and bool(NAME_PATTERN.match(name))


def validate_age(age):
    age = coerce_number(age)
    return isinstance(age, int) and 18 <= age <= 65


def clean_signup(data, now=None):
    """
    Validate a signup form.

    Returns (cleaned, errors) where cleaned holds the normalized values ready
    to build a User record (without id/createdAt/password hash).
    """
    errors = {}
    now = now or utcnow()

    name = _text(data.get('name') or '').strip()
    email = _text(data.get('email') or '').strip().lower()
    password = _text(data.get('password'))
    location = _text(data.get('location') or '').strip()
    role = _text(data.get('role') or Role.DONOR).strip().upper()
    gender = _text(data.get('gender') or Gender.MALE).strip().upper()

    if not validate_name(name):
        errors['name'] = 'Name must contain only letters and spaces'

    if not validate_email(email):
        errors['email'] = 'Invalid email format (must be @gmail.com)'

    valid, message = validate_password(password)
    if not valid:
        errors['password'] = message

    confirm = data.get('confirmPassword')
    if confirm is not None and confirm != password:
        errors['confirmPassword'] = 'Passwords do not match'

    if not validate_age(data.get('age')):
        errors['age'] = 'Age must be between 18 and 65 years'

    if not location:
        errors['location'] = 'Location is required'

    if not validate_blood_type(data.get('bloodType')):
        errors['bloodType'] = 'Please select a valid blood type'

    if role not in Role.ALL:
        errors['role'] = 'Role must be DONOR or RECEIVER'

    if gender not in Gender.ALL:
        errors['gender'] = 'Gender must be MALE, FEMALE or OTHER'

    cleaned = {
        'name': name,
        'email': email,
        'password': password,
        'age': coerce_number(data.get('age')),
        'location': location,
        'bloodType': normalize_blood_type(data.get('bloodType')),
        'role': role,
        'gender': gender,
    }

    if role == Role.DONOR:
        is_drunk = bool(coerce_bool(data.get('isDrunk')))
        is_smoker = bool(coerce_bool(data.get('isSmoker')))
        # smoker message takes precedence when both apply
        if is_drunk:
            errors['general'] = 'Donors who are currently drunk cannot register'
        if is_smoker:
            errors['general'] = 'Smokers cannot register as blood donors'

        last_donated = None
        raw_last = data.get('lastDonatedDate')
        if raw_last:
            last_donated = parse_datetime(raw_last)
            if last_donated is None:
                errors['lastDonatedDate'] = 'Invalid last donation date'
            elif last_donated > now:
                errors['lastDonatedDate'] = 'Last donation date cannot be in the future'

        cleaned.update({
            'lastDonatedDate': last_donated,
            'isDrunk': is_drunk,
            'isSmoker': is_smoker,
        })

    return cleaned, errors


def clean_blood_request(data):
    """Validate a blood request form; returns (cleaned, errors)"""
    errors = {}

    blood_type = data.get('bloodType')
    hospital_area = _text(data.get('hospitalArea') or '').strip()
    units_needed = coerce_number(data.get('unitsNeeded', 1))
    seriousness = _text(data.get('seriousness') or Seriousness.MODERATE).strip().upper()

    if not validate_blood_type(blood_type):
        errors['bloodType'] = 'Please select a valid blood type'

    if not hospital_area:
        errors['hospitalArea'] = 'Hospital area is required'

    if not isinstance(units_needed, int) or not MIN_UNITS <= units_needed <= MAX_UNITS:
        errors['unitsNeeded'] = f'Units needed must be between {MIN_UNITS} and {MAX_UNITS}'

    if seriousness not in Seriousness.ALL:
        errors['seriousness'] = 'Seriousness must be LOW, MODERATE or HIGH'

    cleaned = {
        'bloodType': normalize_blood_type(blood_type),
        'hospitalArea': hospital_area,
        'unitsNeeded': units_needed,
        'seriousness': seriousness,
    }
    return cleaned, errors

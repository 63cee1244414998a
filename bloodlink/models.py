"""
BloodLink data model
Users, blood requests and donations as typed records.

Records are persisted as camelCase dictionaries (``bloodType``,
``hospitalArea``, ``unitsNeeded`` ...) with ISO-8601 date strings.
``from_dict`` is lenient: it coerces what it can and leaves the rest as
``None`` so that downstream checks (eligibility, validation) can reject it.
"""

import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional


# ============== ENUMERATIONS ==============

class Role:
    DONOR = 'DONOR'
    RECEIVER = 'RECEIVER'
    ALL = (DONOR, RECEIVER)


class Gender:
    MALE = 'MALE'
    FEMALE = 'FEMALE'
    OTHER = 'OTHER'
    ALL = (MALE, FEMALE, OTHER)


class Seriousness:
    LOW = 'LOW'
    MODERATE = 'MODERATE'
    HIGH = 'HIGH'
    ALL = (LOW, MODERATE, HIGH)


class RequestStatus:
    OPEN = 'OPEN'
    FULFILLED = 'FULFILLED'
    ALL = (OPEN, FULFILLED)


# ============== HELPERS ==============

def generate_id(prefix='ID'):
    """Generate unique record ID"""
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


def utcnow():
    return datetime.now(timezone.utc)


def parse_datetime(value):
    """Read a stored date value as an aware UTC datetime (None if unreadable)"""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_datetime(value):
    return value.isoformat() if value else None


def coerce_number(value):
    """int for whole numbers, float otherwise, None for anything non-numeric"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        try:
            whole = int(value)
        except (ValueError, OverflowError):
            return None
        return whole if value == whole else float(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return coerce_number(float(text))
        except (ValueError, OverflowError):
            return None
    return None


def coerce_bool(value):
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'on')
    return bool(value)


def _text(value):
    return '' if value is None else str(value)


# ============== RECORDS ==============

@dataclass
class User:
    id: str
    name: str
    email: str
    password: str
    age: Optional[int]
    location: str
    blood_type: str
    role: str
    gender: str
    created_at: Optional[datetime] = None
    # donor only
    last_donated_date: Optional[datetime] = None
    is_drunk: Optional[bool] = None
    is_smoker: Optional[bool] = None

    @property
    def is_donor(self):
        return self.role == Role.DONOR

    @property
    def is_receiver(self):
        return self.role == Role.RECEIVER

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=_text(data.get('id')),
            name=_text(data.get('name')),
            email=_text(data.get('email')).strip().lower(),
            password=_text(data.get('password')),
            age=coerce_number(data.get('age')),
            location=_text(data.get('location')),
            blood_type=_text(data.get('bloodType')).strip().upper(),
            role=_text(data.get('role')).strip().upper(),
            gender=_text(data.get('gender')).strip().upper(),
            created_at=parse_datetime(data.get('createdAt')),
            last_donated_date=parse_datetime(data.get('lastDonatedDate')),
            is_drunk=coerce_bool(data.get('isDrunk')),
            is_smoker=coerce_bool(data.get('isSmoker')),
        )

    def to_dict(self):
        data = {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'password': self.password,
            'age': self.age,
            'location': self.location,
            'bloodType': self.blood_type,
            'role': self.role,
            'gender': self.gender,
            'createdAt': format_datetime(self.created_at),
        }
        if self.last_donated_date is not None:
            data['lastDonatedDate'] = format_datetime(self.last_donated_date)
        if self.is_drunk is not None:
            data['isDrunk'] = self.is_drunk
        if self.is_smoker is not None:
            data['isSmoker'] = self.is_smoker
        return data

    def public_dict(self):
        """Record without the password hash, for API responses"""
        data = self.to_dict()
        data.pop('password', None)
        return data

    def with_last_donation(self, when):
        return replace(self, last_donated_date=when)


@dataclass
class BloodRequest:
    id: str
    user_id: str
    blood_type: str
    hospital_area: str
    units_needed: Optional[int]
    seriousness: str = Seriousness.MODERATE
    status: str = RequestStatus.OPEN
    created_at: Optional[datetime] = None

    @property
    def is_open(self):
        return self.status == RequestStatus.OPEN

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=_text(data.get('id')),
            user_id=_text(data.get('userId')),
            blood_type=_text(data.get('bloodType')).strip().upper(),
            hospital_area=_text(data.get('hospitalArea')),
            units_needed=coerce_number(data.get('unitsNeeded')),
            seriousness=_text(data.get('seriousness') or Seriousness.MODERATE).upper(),
            status=_text(data.get('status') or RequestStatus.OPEN).upper(),
            created_at=parse_datetime(data.get('createdAt')),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'bloodType': self.blood_type,
            'hospitalArea': self.hospital_area,
            'unitsNeeded': self.units_needed,
            'seriousness': self.seriousness,
            'status': self.status,
            'createdAt': format_datetime(self.created_at),
        }


@dataclass(frozen=True)
class Donation:
    id: str
    donor_id: str
    request_id: str
    donation_date: Optional[datetime]
    units_contributed: int = 1

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=_text(data.get('id')),
            donor_id=_text(data.get('donorId')),
            request_id=_text(data.get('requestId')),
            donation_date=parse_datetime(data.get('donationDate')),
            units_contributed=coerce_number(data.get('unitsContributed')) or 1,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'donorId': self.donor_id,
            'requestId': self.request_id,
            'donationDate': format_datetime(self.donation_date),
            'unitsContributed': self.units_contributed,
        }

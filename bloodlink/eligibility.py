"""
Donor eligibility
Medical/lifestyle clearance to donate, independent of any specific request.

Checks run in a fixed order and the first failing one wins:
alcohol > smoking > age > inter-donation cooldown.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from bloodlink.models import Gender, User, coerce_number, parse_datetime, utcnow

MIN_AGE = 18
MAX_AGE = 65
MALE_COOLDOWN_DAYS = 90
DEFAULT_COOLDOWN_DAYS = 120
MS_PER_DAY = 24 * 60 * 60 * 1000

INVALID_DONOR_REASON = 'Donor record is missing or invalid'

GENDER_LABELS = {
    Gender.MALE: 'Male',
    Gender.FEMALE: 'Female',
    Gender.OTHER: 'Other',
}


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: Optional[str] = None
    days_until_eligible: Optional[int] = None

    def to_dict(self):
        data = {'eligible': self.eligible}
        if self.reason is not None:
            data['reason'] = self.reason
        if self.days_until_eligible is not None:
            data['daysUntilEligible'] = self.days_until_eligible
        return data


def required_gap_days(gender):
    return MALE_COOLDOWN_DAYS if gender == Gender.MALE else DEFAULT_COOLDOWN_DAYS


def days_since(last_donated_date, now=None):
    """Whole days between two instants; any partial day counts as a full day"""
    now = parse_datetime(now) or utcnow()
    elapsed_ms = abs(now - parse_datetime(last_donated_date)) // timedelta(milliseconds=1)
    return -(-elapsed_ms // MS_PER_DAY)


def next_eligible_date(donor):
    donor = _as_user(donor)
    if donor is None or donor.last_donated_date is None:
        return None
    return donor.last_donated_date + timedelta(days=required_gap_days(donor.gender))


def is_donor_eligible(donor, now=None):
    """
    Evaluate a donor's current eligibility.

    Args:
        donor: User, or a mapping shaped like a stored user record; any
            other value gets a negative verdict
        now: reference instant (defaults to the current UTC time)

    Returns:
        Eligibility verdict; a negative verdict carries a readable reason and,
        for the cooldown check, the number of days still to wait
    """
    donor = _as_user(donor)
    if donor is None:
        return Eligibility(False, INVALID_DONOR_REASON)

    if donor.is_drunk:
        return Eligibility(False, 'Cannot donate while under the influence of alcohol')

    if donor.is_smoker:
        return Eligibility(False, 'Smokers are not eligible to donate blood')

    age = coerce_number(donor.age)
    if age is None or age < MIN_AGE or age > MAX_AGE:
        return Eligibility(False, f'Age must be between {MIN_AGE} and {MAX_AGE} years')

    if donor.last_donated_date is not None:
        elapsed = days_since(donor.last_donated_date, now)
        required_gap = required_gap_days(donor.gender)
        if elapsed < required_gap:
            label = GENDER_LABELS.get(donor.gender, 'Other')
            return Eligibility(
                False,
                f'Must wait {required_gap} days between donations ({label})',
                required_gap - elapsed,
            )

    return Eligibility(True)


def _as_user(donor):
    """User for a User or a stored record, None for anything else"""
    if isinstance(donor, User):
        return donor
    if isinstance(donor, Mapping):
        return User.from_dict(donor)
    return None

"""
Blood requests posted by receivers.
"""

import logging

from bloodlink.errors import ValidationError
from bloodlink.models import BloodRequest, RequestStatus, Seriousness, generate_id, utcnow
from bloodlink.store import REQUESTS
from bloodlink.validation import clean_blood_request

logger = logging.getLogger(__name__)

VIEWS = ('all', 'open', 'my')

URGENCY_ORDER = {
    Seriousness.HIGH: 0,
    Seriousness.MODERATE: 1,
    Seriousness.LOW: 2,
}


def create_request(store, user, data, now=None):
    """Post a new OPEN blood request on behalf of a receiver"""
    if not user.is_receiver:
        raise ValidationError('Only receivers can post blood requests')

    cleaned, errors = clean_blood_request(data)
    if errors:
        raise ValidationError('Please correct the highlighted fields', errors)

    blood_request = BloodRequest(
        id=generate_id('REQ'),
        user_id=user.id,
        blood_type=cleaned['bloodType'],
        hospital_area=cleaned['hospitalArea'],
        units_needed=cleaned['unitsNeeded'],
        seriousness=cleaned['seriousness'],
        status=RequestStatus.OPEN,
        created_at=now or utcnow(),
    )
    store.commit({REQUESTS: [blood_request]})
    logger.info('Request %s: %s unit(s) of %s at %s (%s)', blood_request.id,
                blood_request.units_needed, blood_request.blood_type,
                blood_request.hospital_area, blood_request.seriousness)
    return blood_request


def list_requests(store, user=None, view='all', blood_type=None):
    """
    Requests filtered for display.

    view: 'all', 'open' (status OPEN only) or 'my' (owned by user)
    blood_type: case-insensitive substring match on the request's blood type
    """
    if view not in VIEWS:
        raise ValidationError(f'Unknown view {view!r}', {'view': 'Must be one of all, open, my'})

    needle = (blood_type or '').strip().lower()
    results = []
    for blood_request in store.load_requests():
        if view == 'open' and blood_request.status != RequestStatus.OPEN:
            continue
        if view == 'my' and (user is None or blood_request.user_id != user.id):
            continue
        if needle and needle not in blood_request.blood_type.lower():
            continue
        results.append(blood_request)
    return results


def sort_by_urgency(requests):
    """HIGH first, then MODERATE, then LOW; oldest first within a level"""
    return sorted(
        requests,
        key=lambda r: (URGENCY_ORDER.get(r.seriousness, len(URGENCY_ORDER)),
                       r.created_at.isoformat() if r.created_at else ''),
    )

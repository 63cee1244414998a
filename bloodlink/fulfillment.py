"""
Donation fulfillment
Record a donor's donation against an open blood request.

A fulfillment touches three collections: a new donation is appended, the
request's unitsNeeded goes down by one (closing it at zero) and the donor's
lastDonatedDate moves to the donation time. All three writes are computed
first and committed together; the request is re-read and re-checked inside
the store transaction rather than trusted from the caller's copy.
"""

import logging
from dataclasses import replace

from bloodlink.compatibility import can_donate_to
from bloodlink.eligibility import is_donor_eligible
from bloodlink.errors import NotFoundError, RequestClosedError, ValidationError
from bloodlink.matching import same_location
from bloodlink.models import Donation, RequestStatus, generate_id, utcnow
from bloodlink.store import DONATIONS, REQUESTS, USERS

logger = logging.getLogger(__name__)

UNITS_PER_DONATION = 1


def check_can_fulfill(donor, blood_request, now=None):
    """Raise if donor may not give to blood_request right now"""
    if not donor.is_donor:
        raise ValidationError('Only donors can record donations')

    if not blood_request.is_open:
        raise RequestClosedError('This blood request has already been fulfilled')

    verdict = is_donor_eligible(donor, now)
    if not verdict.eligible:
        raise ValidationError(verdict.reason, errors={'eligibility': verdict.to_dict()})

    if not can_donate_to(donor.blood_type, blood_request.blood_type):
        raise ValidationError(
            f'{donor.blood_type} blood cannot be given to a {blood_request.blood_type} patient')

    if not same_location(blood_request.hospital_area, donor.location):
        raise ValidationError('This request is outside your area')


def record_donation(store, donor_id, request_id, now=None):
    """
    Record one unit donated by donor_id against request_id.

    Returns:
        the new Donation

    Raises:
        NotFoundError: unknown request or donor
        RequestClosedError: request is no longer OPEN in the store
        ConflictError: the request changed between read and commit
        PersistenceError: the store failed; nothing was written
    """
    now = now or utcnow()

    with store.transaction():
        blood_request = store.get_request(request_id)
        if blood_request is None:
            raise NotFoundError('Request not found')
        if not blood_request.is_open:
            raise RequestClosedError('This blood request has already been fulfilled')

        donor = store.get_user(donor_id)
        if donor is None:
            raise NotFoundError('Donor not found')

        donation = Donation(
            id=generate_id('DON'),
            donor_id=donor.id,
            request_id=blood_request.id,
            donation_date=now,
            units_contributed=UNITS_PER_DONATION,
        )

        # never stored below zero
        units_left = max((blood_request.units_needed or 0) - UNITS_PER_DONATION, 0)
        updated_request = replace(
            blood_request,
            units_needed=units_left,
            status=RequestStatus.FULFILLED if units_left == 0 else RequestStatus.OPEN,
        )
        updated_donor = donor.with_last_donation(now)

        store.commit(
            {
                DONATIONS: [donation],
                REQUESTS: [updated_request],
                USERS: [updated_donor],
            },
            expect={
                (REQUESTS, blood_request.id): {
                    'status': RequestStatus.OPEN,
                    'unitsNeeded': blood_request.units_needed,
                },
            },
        )

    logger.info('Donation %s: donor %s -> request %s (%s units left, %s)',
                donation.id, donor.id, blood_request.id,
                units_left, updated_request.status)
    return donation


def donation_history(store, donor_id):
    """The donor's donations, newest first, joined with request and requester details"""
    requests = {r.id: r for r in store.load_requests()}
    users = {u.id: u for u in store.load_users()}

    history = []
    for donation in store.load_donations():
        if donation.donor_id != donor_id:
            continue
        blood_request = requests.get(donation.request_id)
        requester = users.get(blood_request.user_id) if blood_request else None
        history.append({
            **donation.to_dict(),
            'requesterName': requester.name if requester else 'Unknown',
            'bloodType': blood_request.blood_type if blood_request else 'Unknown',
            'location': blood_request.hospital_area if blood_request else 'Unknown',
        })

    history.sort(key=lambda d: d['donationDate'] or '', reverse=True)
    return history

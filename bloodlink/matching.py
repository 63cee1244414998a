"""
Request matching
Find the open blood requests a donor can fulfill.
"""

from collections.abc import Mapping

from bloodlink.compatibility import can_donate_to
from bloodlink.models import BloodRequest, RequestStatus, User


def same_location(left, right):
    """Case-insensitive location comparison"""
    return (left or '').strip().casefold() == (right or '').strip().casefold()


def is_compatible_request(donor, blood_request):
    return (
        can_donate_to(donor.blood_type, blood_request.blood_type)
        and same_location(blood_request.hospital_area, donor.location)
        and blood_request.status == RequestStatus.OPEN
    )


def find_compatible_requests(donor, requests):
    """
    Filter requests down to those the donor can fulfill.

    A request qualifies when the donor's blood type can supply it, its
    hospital area matches the donor's location (case-insensitive) and it is
    still OPEN. Input order is preserved.
    """
    if isinstance(donor, Mapping):
        donor = User.from_dict(donor)
    if not isinstance(donor, User):
        return []
    matched = []
    for blood_request in requests or []:
        if isinstance(blood_request, Mapping):
            blood_request = BloodRequest.from_dict(blood_request)
        if not isinstance(blood_request, BloodRequest):
            continue
        if is_compatible_request(donor, blood_request):
            matched.append(blood_request)
    return matched

"""
Dashboard statistics
"""

from bloodlink.eligibility import is_donor_eligible
from bloodlink.models import RequestStatus, Role, Seriousness


def get_statistics(store):
    """Get dashboard statistics"""
    users = store.load_users()
    requests = store.load_requests()
    donations = store.load_donations()

    return {
        'totalDonations': len(donations),
        'openRequests': sum(1 for r in requests if r.status == RequestStatus.OPEN),
        'registeredDonors': sum(1 for u in users if u.role == Role.DONOR),
        'registeredReceivers': sum(1 for u in users if u.role == Role.RECEIVER),
        'totalUsers': len(users),
    }


def recent_activity(store, limit=5):
    """Latest donations with donor name and blood type resolved"""
    users = {u.id: u for u in store.load_users()}
    requests = {r.id: r for r in store.load_requests()}

    donations = sorted(
        store.load_donations(),
        key=lambda d: d.donation_date.isoformat() if d.donation_date else '',
        reverse=True,
    )[:limit]

    activity = []
    for donation in donations:
        donor = users.get(donation.donor_id)
        blood_request = requests.get(donation.request_id)
        activity.append({
            **donation.to_dict(),
            'donorName': donor.name if donor else 'Unknown',
            'bloodType': blood_request.blood_type if blood_request else 'Unknown',
        })
    return activity


def urgent_requests(store, limit=3):
    """Open HIGH-seriousness requests, oldest first"""
    urgent = [
        r for r in store.load_requests()
        if r.status == RequestStatus.OPEN and r.seriousness == Seriousness.HIGH
    ]
    urgent.sort(key=lambda r: r.created_at.isoformat() if r.created_at else '')
    return urgent[:limit]


def user_summary(store, user, now=None):
    summary = {
        'requests': [r.to_dict() for r in store.load_requests() if r.user_id == user.id],
        'donations': [d.to_dict() for d in store.load_donations() if d.donor_id == user.id],
    }
    if user.is_donor:
        summary['eligibility'] = is_donor_eligible(user, now).to_dict()
    return summary

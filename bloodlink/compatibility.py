"""
Blood compatibility tables
Who can DONATE TO whom over the eight ABO/Rh blood types.
"""

BLOOD_TYPES = ['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-']

# Donor Blood Type -> Recipient Blood Types
COMPATIBILITY = {
    'O-': ['O-', 'O+', 'A-', 'A+', 'B-', 'B+', 'AB-', 'AB+'],  # Universal donor
    'O+': ['O+', 'A+', 'B+', 'AB+'],
    'A-': ['A-', 'A+', 'AB-', 'AB+'],
    'A+': ['A+', 'AB+'],
    'B-': ['B-', 'B+', 'AB-', 'AB+'],
    'B+': ['B+', 'AB+'],
    'AB-': ['AB-', 'AB+'],
    'AB+': ['AB+'],
}

# Recipient Blood Type -> Donor Blood Types
RECEIVE_COMPATIBILITY = {
    recipient: [donor for donor in BLOOD_TYPES if recipient in COMPATIBILITY[donor]]
    for recipient in BLOOD_TYPES
}


def normalize_blood_type(blood_type):
    if not isinstance(blood_type, str):
        return ''
    return blood_type.strip().upper()


def validate_blood_type(blood_type):
    """Case-insensitive membership in the eight canonical types"""
    return normalize_blood_type(blood_type) in COMPATIBILITY


def can_donate_to(donor_blood_type, receiver_blood_type):
    """True if donor_blood_type can supply receiver_blood_type; False for unknown types"""
    recipients = COMPATIBILITY.get(normalize_blood_type(donor_blood_type))
    if not recipients:
        return False
    return normalize_blood_type(receiver_blood_type) in recipients


def get_compatible_recipients(donor_blood_type):
    """
    Get list of blood types that can receive from donor
    Example: for O+ donor, returns ['O+', 'A+', 'B+', 'AB+']
    """
    return list(COMPATIBILITY.get(normalize_blood_type(donor_blood_type), []))


def get_compatible_donors(recipient_blood_type):
    """
    Get list of donor blood types that can donate to recipient
    Example: for A+ recipient, returns ['A+', 'A-', 'O+', 'O-']
    """
    return list(RECEIVE_COMPATIBILITY.get(normalize_blood_type(recipient_blood_type), []))

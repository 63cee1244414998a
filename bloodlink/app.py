"""
BloodLink - Blood Donation Matching
Flask backend application
Connects blood donors with receivers' open requests
"""

import logging
from collections.abc import Mapping
from functools import wraps

from flask import Blueprint, Flask, current_app, g, jsonify, request

from bloodlink import accounts, blood_requests, stats
from bloodlink.compatibility import (get_compatible_donors, get_compatible_recipients,
                                     normalize_blood_type, validate_blood_type)
from bloodlink.config import Config
from bloodlink.eligibility import is_donor_eligible, next_eligible_date
from bloodlink.errors import (BloodLinkError, ConflictError, NotFoundError, PersistenceError,
                              ValidationError)
from bloodlink.fulfillment import check_can_fulfill, donation_history, record_donation
from bloodlink.matching import find_compatible_requests
from bloodlink.models import format_datetime
from bloodlink.store import JsonFileStore, MemoryStore
from bloodlink.store_aws import DynamoStore

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')

STORE_EXTENSION = 'bloodlink_store'


# ============== HELPER FUNCTIONS ==============

def get_store():
    return current_app.extensions[STORE_EXTENSION]


def get_json():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def login_required(view):
    """Load the session user into g.user or answer 401"""
    @wraps(view)
    def wrapped(*args, **kwargs):
        user = accounts.current_user(get_store())
        if user is None:
            return jsonify({'error': 'Please log in first'}), 401
        g.user = user
        return view(*args, **kwargs)
    return wrapped


def eligibility_payload(user):
    if not user.is_donor:
        return {'eligible': False}
    data = is_donor_eligible(user).to_dict()
    data['nextEligibleDate'] = format_datetime(next_eligible_date(user))
    return data


# ============== AUTH ROUTES ==============

@api.route('/signup', methods=['POST'])
def signup():
    user = accounts.signup(get_store(), get_json())
    return jsonify({'message': 'Registration successful!', 'user': user.public_dict()}), 201


@api.route('/login', methods=['POST'])
def login():
    data = get_json()
    user = accounts.login(get_store(), data.get('email'), data.get('password'))
    return jsonify({'message': 'Login successful!', 'user': user.public_dict()})


@api.route('/logout', methods=['POST'])
def logout():
    accounts.logout(get_store())
    return jsonify({'message': 'Logged out successfully!'})


@api.route('/me')
@login_required
def me():
    return jsonify({'user': g.user.public_dict(), 'eligibility': eligibility_payload(g.user)})


@api.route('/eligibility')
@login_required
def eligibility():
    return jsonify(eligibility_payload(g.user))


# ============== BLOOD REQUEST ROUTES ==============

@api.route('/requests', methods=['GET'])
@login_required
def list_requests():
    results = blood_requests.list_requests(
        get_store(),
        user=g.user,
        view=request.args.get('view', 'all'),
        blood_type=request.args.get('bloodType'),
    )
    return jsonify([r.to_dict() for r in results])


@api.route('/requests', methods=['POST'])
@login_required
def create_request():
    blood_request = blood_requests.create_request(get_store(), g.user, get_json())
    return jsonify({'message': 'Blood request posted', 'request': blood_request.to_dict()}), 201


@api.route('/requests/compatible')
@login_required
def compatible_requests():
    """Open requests in the donor's area that the donor's blood type can supply"""
    if not g.user.is_donor:
        raise ValidationError('Only donors can look up compatible requests')
    matched = find_compatible_requests(g.user, get_store().load_requests())
    if request.args.get('sort') == 'urgency':
        matched = blood_requests.sort_by_urgency(matched)
    return jsonify([r.to_dict() for r in matched])


@api.route('/requests/<request_id>')
@login_required
def request_details(request_id):
    blood_request = get_store().get_request(request_id)
    if blood_request is None:
        raise NotFoundError('Request not found')
    return jsonify(blood_request.to_dict())


# ============== DONATION ROUTES ==============

@api.route('/donations', methods=['POST'])
@login_required
def donate():
    store = get_store()
    request_id = get_json().get('requestId')
    if not request_id:
        raise ValidationError('Please select a blood request', {'request': 'Please select a blood request'})

    blood_request = store.get_request(request_id)
    if blood_request is None:
        raise NotFoundError('Selected request not found')

    try:
        check_can_fulfill(g.user, blood_request)
    except ValidationError as e:
        logger.warning('Donation by %s to %s rejected: %s', g.user.id, request_id, e.message)
        raise

    try:
        donation = record_donation(store, g.user.id, request_id)
    except ConflictError:
        logger.warning('Donation by %s to %s lost a concurrent update', g.user.id, request_id)
        raise
    except PersistenceError:
        return jsonify({'error': 'Failed to record donation. Please try again.'}), 500

    donor = store.get_user(g.user.id)
    return jsonify({
        'message': 'Donation recorded. Thank you!',
        'donation': donation.to_dict(),
        'request': store.get_request(request_id).to_dict(),
        'eligibility': eligibility_payload(donor),
    }), 201


@api.route('/donations', methods=['GET'])
@login_required
def my_donations():
    return jsonify(donation_history(get_store(), g.user.id))


# ============== DASHBOARD ROUTES ==============

@api.route('/dashboard')
@login_required
def dashboard():
    store = get_store()
    return jsonify({
        'stats': stats.get_statistics(store),
        'recentActivity': stats.recent_activity(store),
        'urgentRequests': [r.to_dict() for r in stats.urgent_requests(store)],
        'summary': stats.user_summary(store, g.user),
    })


@api.route('/statistics')
def statistics():
    """API endpoint for statistics"""
    return jsonify(stats.get_statistics(get_store()))


@api.route('/compatibility/<blood_type>')
def compatibility(blood_type):
    if not validate_blood_type(blood_type):
        raise ValidationError('Please select a valid blood type', {'bloodType': blood_type})
    return jsonify({
        'bloodType': normalize_blood_type(blood_type),
        'canDonateTo': get_compatible_recipients(blood_type),
        'canReceiveFrom': get_compatible_donors(blood_type),
    })


# ============== ERROR HANDLERS ==============

def register_error_handlers(app):

    @app.errorhandler(BloodLinkError)
    def bloodlink_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(PersistenceError)
    def persistence_error(e):
        return jsonify({'error': 'Storage error'}), 500

    @app.errorhandler(ConflictError)
    def conflict_error(e):
        return jsonify({'error': 'This request was just updated by another donation. Please try again.'}), 409

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'error': 'Method not allowed'}), 405


# ============== APPLICATION FACTORY ==============

def build_store(config):
    backend = config['STORE_BACKEND']
    if backend == 'json':
        return JsonFileStore(config['DATA_DIR'])
    if backend == 'memory':
        return MemoryStore()
    if backend == 'dynamodb':
        return DynamoStore(table_names=config.get('DYNAMODB_TABLES'), region=config.get('AWS_REGION'))
    raise ValueError(f'Unknown store backend {backend!r}')


def configure_logging(app):
    level = logging.getLevelName(str(app.config['LOG_LEVEL']).upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger('bloodlink').setLevel(level)
    app.logger.setLevel(level)


def create_app(config=None, store=None):
    """Flask application factory"""
    app = Flask(__name__)
    app.config.from_object(Config)
    if isinstance(config, Mapping):
        app.config.update(config)
    elif config is not None:
        app.config.from_object(config)

    configure_logging(app)
    app.extensions[STORE_EXTENSION] = store if store is not None else build_store(app.config)

    app.register_blueprint(api)
    register_error_handlers(app)
    return app


if __name__ == '__main__':
    create_app().run(debug=True, host='0.0.0.0', port=5000)

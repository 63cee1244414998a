from datetime import datetime, timezone

import pytest

from bloodlink.app import create_app
from bloodlink.config import TestingConfig
from bloodlink.models import BloodRequest, Role, User, generate_id
from bloodlink.store import JsonFileStore, MemoryStore

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def json_store(tmp_path):
    return JsonFileStore(str(tmp_path / 'data'))


@pytest.fixture
def make_user():
    def factory(**overrides):
        fields = {
            'id': generate_id('USR'),
            'name': 'Asha Verma',
            'email': 'asha@gmail.com',
            'password': 'hash',
            'age': 30,
            'location': 'Delhi',
            'blood_type': 'O-',
            'role': Role.DONOR,
            'gender': 'MALE',
            'created_at': NOW,
            'is_drunk': False,
            'is_smoker': False,
        }
        fields.update(overrides)
        return User(**fields)
    return factory


@pytest.fixture
def make_request():
    def factory(**overrides):
        fields = {
            'id': generate_id('REQ'),
            'user_id': 'USR-RECEIVER',
            'blood_type': 'A+',
            'hospital_area': 'Delhi',
            'units_needed': 1,
            'seriousness': 'MODERATE',
            'status': 'OPEN',
            'created_at': NOW,
        }
        fields.update(overrides)
        return BloodRequest(**fields)
    return factory


@pytest.fixture
def app(store):
    return create_app(TestingConfig, store=store)


@pytest.fixture
def client(app):
    return app.test_client()

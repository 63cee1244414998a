import copy
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from boto3.dynamodb.types import TypeDeserializer
from botocore.exceptions import ClientError

from bloodlink.errors import ConflictError, PersistenceError
from bloodlink.fulfillment import record_donation
from bloodlink.store import REQUESTS, USERS
from bloodlink.store_aws import DynamoStore, from_dynamo, to_dynamo


def as_stored(obj):
    """Numbers come back from DynamoDB as Decimal"""
    if isinstance(obj, dict):
        return {k: as_stored(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [as_stored(v) for v in obj]
    if isinstance(obj, (int, float)) and not isinstance(obj, bool):
        return Decimal(str(obj))
    return obj


def client_error(code, operation, **extra):
    return ClientError({'Error': {'Code': code, 'Message': code}, **extra}, operation)


class FakeTable:

    def __init__(self, name, db, page_size=2):
        self.name = name
        self.db = db
        self.page_size = page_size
        self.fail = False

    @property
    def items(self):
        return self.db.setdefault(self.name, {})

    def scan(self, ExclusiveStartKey=None):
        if self.fail:
            raise client_error('ProvisionedThroughputExceededException', 'Scan')
        keys = sorted(self.items)
        if ExclusiveStartKey:
            keys = [k for k in keys if k > ExclusiveStartKey['id']]
        page = keys[:self.page_size]
        resp = {'Items': [copy.deepcopy(self.items[k]) for k in page]}
        if len(keys) > self.page_size:
            resp['LastEvaluatedKey'] = {'id': page[-1]}
        return resp

    def put_item(self, Item):
        if self.fail:
            raise client_error('InternalServerError', 'PutItem')
        self.items[Item['id']] = as_stored(Item)

    def get_item(self, Key):
        item = self.items.get(Key['id'])
        return {'Item': copy.deepcopy(item)} if item else {}

    def delete_item(self, Key):
        self.items.pop(Key['id'], None)


class FakeClient:
    """transact_write_items over the FakeTable data, all-or-nothing"""

    def __init__(self, db):
        self.db = db
        self.fail_with = None
        self.before_write = None
        self._deserializer = TypeDeserializer()

    def _plain(self, attrs):
        return {k: self._deserializer.deserialize(v) for k, v in attrs.items()}

    def _holds(self, record, op):
        if 'ConditionExpression' not in op:
            return True
        if record is None:
            return False
        names = op['ExpressionAttributeNames']
        values = self._plain(op.get('ExpressionAttributeValues', {}))
        for clause in op['ConditionExpression'].split(' AND '):
            if clause.startswith('attribute_not_exists('):
                if names[clause[len('attribute_not_exists('):-1]] in record:
                    return False
                continue
            name, value = (part.strip() for part in clause.split('='))
            if record.get(names[name]) != values[value]:
                return False
        return True

    def transact_write_items(self, TransactItems):
        if self.fail_with:
            raise client_error(self.fail_with, 'TransactWriteItems')
        if self.before_write:
            self.before_write()
        reasons, puts = [], []
        for entry in TransactItems:
            kind, op = next(iter(entry.items()))
            table = self.db.setdefault(op['TableName'], {})
            if kind == 'Put':
                item = self._plain(op['Item'])
                ok = self._holds(table.get(item['id']), op)
                puts.append((table, item))
            else:
                ok = self._holds(table.get(self._plain(op['Key'])['id']), op)
            reasons.append({'Code': 'None' if ok else 'ConditionalCheckFailed'})
        if any(r['Code'] != 'None' for r in reasons):
            raise client_error('TransactionCanceledException', 'TransactWriteItems',
                               CancellationReasons=reasons)
        for table, item in puts:
            table[item['id']] = item


class FakeResource:

    def __init__(self):
        self.db = {}
        self.tables = {}
        self.meta = SimpleNamespace(client=FakeClient(self.db))

    def Table(self, name):
        return self.tables.setdefault(name, FakeTable(name, self.db))


@pytest.fixture
def resource():
    return FakeResource()


@pytest.fixture
def dynamo_store(resource):
    return DynamoStore(resource=resource)


def test_decimal_conversion():
    assert to_dynamo({'a': [1.5, 2], 'b': 'x'}) == {'a': [Decimal('1.5'), 2], 'b': 'x'}
    assert from_dynamo({'a': [Decimal('3'), Decimal('2.5')]}) == {'a': [3, 2.5]}
    assert isinstance(from_dynamo(Decimal('3')), int)


def test_scan_follows_pagination(dynamo_store, make_request, now):
    requests = [make_request(id=f'REQ-{i}', units_needed=i + 1) for i in range(5)]
    dynamo_store.save_requests(requests)

    loaded = dynamo_store.load_requests()
    assert sorted(r.id for r in loaded) == [r.id for r in requests]
    assert {r.units_needed for r in loaded} == {1, 2, 3, 4, 5}


def test_records_come_back_in_creation_order(dynamo_store, make_user, now):
    users = [
        make_user(id='USR-B', created_at=now - timedelta(days=2)),
        make_user(id='USR-A', created_at=now),
        make_user(id='USR-C', created_at=now - timedelta(days=5)),
    ]
    dynamo_store.save_users(users)
    assert [u.id for u in dynamo_store.load_users()] == ['USR-C', 'USR-B', 'USR-A']


def test_scan_failure_raises_persistence_error(dynamo_store, resource):
    resource.Table('Users').fail = True
    with pytest.raises(PersistenceError):
        dynamo_store.load_users()


def test_put_failure_raises_persistence_error(dynamo_store, resource, make_user):
    resource.Table('Users').fail = True
    with pytest.raises(PersistenceError):
        dynamo_store.save_users([make_user()])


def test_custom_table_names(resource, make_user):
    store = DynamoStore(resource=resource, table_names={USERS: 'dev-users'})
    store.save_users([make_user(id='USR-1')])
    assert 'USR-1' in resource.db['dev-users']


def test_session_entry(dynamo_store, make_user):
    user = make_user(id='USR-1')
    dynamo_store.save_current_user(user)
    assert dynamo_store.load_current_user() == user
    dynamo_store.clear_current_user()
    assert dynamo_store.load_current_user() is None


def test_donation_commits_in_one_transaction(dynamo_store, make_user, make_request, now):
    dynamo_store.save_users([make_user(id='USR-1')])
    dynamo_store.save_requests([make_request(id='REQ-1', units_needed=1)])

    donation = record_donation(dynamo_store, 'USR-1', 'REQ-1', now)

    assert dynamo_store.get_request('REQ-1').status == 'FULFILLED'
    assert dynamo_store.get_request('REQ-1').units_needed == 0
    assert dynamo_store.get_user('USR-1').last_donated_date == now
    assert [d.id for d in dynamo_store.load_donations()] == [donation.id]


def test_stale_expectation_cancels_everything(dynamo_store, make_user, make_request, now):
    dynamo_store.save_requests([make_request(id='REQ-1', units_needed=1)])

    with pytest.raises(ConflictError):
        dynamo_store.commit(
            {REQUESTS: [make_request(id='REQ-1', units_needed=0, status='FULFILLED')],
             USERS: [make_user(id='USR-1')]},
            expect={(REQUESTS, 'REQ-1'): {'status': 'OPEN', 'unitsNeeded': 2}},
        )

    assert dynamo_store.get_request('REQ-1').units_needed == 1
    assert dynamo_store.load_users() == []


def test_expectation_on_untouched_record(dynamo_store, make_user, make_request):
    dynamo_store.save_requests([make_request(id='REQ-1', status='FULFILLED', units_needed=0)])
    with pytest.raises(ConflictError):
        dynamo_store.commit({USERS: [make_user(id='USR-1')]},
                            expect={(REQUESTS, 'REQ-1'): {'status': 'OPEN'}})
    assert dynamo_store.load_users() == []


def test_other_transaction_errors_are_persistence_errors(dynamo_store, resource, make_user):
    resource.meta.client.fail_with = 'ValidationException'
    with pytest.raises(PersistenceError) as excinfo:
        dynamo_store.commit({USERS: [make_user()]})
    assert not isinstance(excinfo.value, ConflictError)


def test_loosely_stored_request_is_fulfilled(dynamo_store, resource, make_user, now):
    dynamo_store.save_users([make_user(id='USR-1')])
    resource.db['BloodRequests'] = {'REQ-1': {
        'id': 'REQ-1', 'userId': 'USR-9', 'bloodType': 'A+',
        'hospitalArea': 'Delhi', 'unitsNeeded': '3', 'createdAt': now.isoformat(),
    }}

    record_donation(dynamo_store, 'USR-1', 'REQ-1', now)

    updated = dynamo_store.get_request('REQ-1')
    assert updated.units_needed == 2
    assert updated.status == 'OPEN'


def test_write_between_read_and_commit_cancels(dynamo_store, resource, make_user, make_request, now):
    dynamo_store.save_users([make_user(id='USR-1')])
    dynamo_store.save_requests([make_request(id='REQ-1', units_needed=2)])

    def other_donation():
        resource.db['BloodRequests']['REQ-1']['unitsNeeded'] = Decimal('1')

    resource.meta.client.before_write = other_donation
    with pytest.raises(ConflictError):
        record_donation(dynamo_store, 'USR-1', 'REQ-1', now)

    assert dynamo_store.get_request('REQ-1').units_needed == 1
    assert dynamo_store.load_donations() == []
    assert dynamo_store.get_user('USR-1').last_donated_date is None

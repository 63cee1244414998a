"""
DynamoDB storage for BloodLink.

Tables used (one per collection, keyed by ``id``): Users, BloodRequests,
Donations, and Sessions for the ``currentUser`` entry. Multi-collection
commits are sent as a single TransactWriteItems call; read-time
expectations become condition expressions so a concurrent fulfillment of
the same request makes the whole transaction fail instead of
double-decrementing.
"""

import logging
from decimal import Decimal

import boto3
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from bloodlink.errors import ConflictError, PersistenceError
from bloodlink.store import (CURRENT_USER, DONATIONS, REQUESTS, USERS, BaseStore,
                             expectation_holds)

logger = logging.getLogger(__name__)

# Table names used by this app
TABLE_NAMES = {
    USERS: 'Users',
    REQUESTS: 'BloodRequests',
    DONATIONS: 'Donations',
    CURRENT_USER: 'Sessions',
}

SESSION_KEY = 'currentUser'

# scan order is undefined; collections are returned in creation order
ORDER_FIELDS = {
    USERS: 'createdAt',
    REQUESTS: 'createdAt',
    DONATIONS: 'donationDate',
}


def to_dynamo(obj):
    """DynamoDB does not accept Python floats; convert floats to Decimal"""
    if isinstance(obj, dict):
        return {k: to_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [to_dynamo(v) for v in obj]
    if isinstance(obj, float):
        return Decimal(str(obj))
    return obj


def from_dynamo(obj):
    """Numbers come back as Decimal; turn them into int/float"""
    if isinstance(obj, dict):
        return {k: from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [from_dynamo(v) for v in obj]
    if isinstance(obj, Decimal):
        return int(obj) if obj == obj.to_integral_value() else float(obj)
    return obj


class DynamoStore(BaseStore):

    def __init__(self, resource=None, table_names=None, region=None):
        super().__init__()
        self.resource = resource or boto3.resource('dynamodb', region_name=region)
        self.client = self.resource.meta.client
        self.table_names = {**TABLE_NAMES, **(table_names or {})}
        self.tables = {key: self.resource.Table(name) for key, name in self.table_names.items()}
        self._serializer = TypeSerializer()

    def _read(self, name):
        table = self.tables[name]
        items = []
        kwargs = {}
        try:
            while True:
                resp = table.scan(**kwargs)
                items.extend(resp.get('Items', []))
                last_key = resp.get('LastEvaluatedKey')
                if not last_key:
                    break
                kwargs['ExclusiveStartKey'] = last_key
        except (ClientError, BotoCoreError) as e:
            logger.exception('Error scanning %s', self.table_names[name])
            raise PersistenceError(f'Could not read {name}') from e

        order_field = ORDER_FIELDS.get(name)
        records = [from_dynamo(item) for item in items]
        records.sort(key=lambda r: (r.get(order_field) or '', r.get('id') or ''))
        return records

    def _write_many(self, collections):
        for name, records in collections.items():
            table = self.tables[name]
            try:
                for record in records:
                    table.put_item(Item=to_dynamo(record))
            except (ClientError, BotoCoreError) as e:
                logger.exception('Error saving %s', self.table_names[name])
                raise PersistenceError(f'Could not save {name}') from e

    def _read_current_user(self):
        try:
            resp = self.tables[CURRENT_USER].get_item(Key={'id': SESSION_KEY})
        except (ClientError, BotoCoreError) as e:
            logger.exception('Error reading session')
            raise PersistenceError('Could not read session') from e
        item = resp.get('Item')
        return from_dynamo(item.get('user')) if item else None

    def _write_current_user(self, record):
        table = self.tables[CURRENT_USER]
        try:
            if record is None:
                table.delete_item(Key={'id': SESSION_KEY})
            else:
                table.put_item(Item={'id': SESSION_KEY, 'user': to_dynamo(record)})
        except (ClientError, BotoCoreError) as e:
            logger.exception('Error saving session')
            raise PersistenceError('Could not save session') from e

    def _serialize(self, record):
        return {k: self._serializer.serialize(v) for k, v in to_dynamo(record).items()}

    def _get_item(self, name, record_id):
        try:
            resp = self.tables[name].get_item(Key={'id': record_id})
        except (ClientError, BotoCoreError) as e:
            logger.exception('Error reading %s', self.table_names[name])
            raise PersistenceError(f'Could not read {name}') from e
        return resp.get('Item')

    def _condition(self, name, record_id, fields):
        """
        Condition pinning the stored attributes behind an expectation.

        The expectation is checked against the normalized record; the
        condition is written against the raw stored values so any change
        between this read and the transaction cancels it.
        """
        item = self._get_item(name, record_id)
        if not expectation_holds(name, from_dynamo(item) if item else None, fields):
            raise ConflictError(f'{name} record {record_id} changed before commit')

        names, values, clauses = {}, {}, []
        for i, field in enumerate(sorted(fields)):
            names[f'#f{i}'] = field
            if field in item:
                values[f':v{i}'] = self._serializer.serialize(to_dynamo(item[field]))
                clauses.append(f'#f{i} = :v{i}')
            else:
                clauses.append(f'attribute_not_exists(#f{i})')
        condition = {
            'ConditionExpression': ' AND '.join(clauses),
            'ExpressionAttributeNames': names,
        }
        if values:
            condition['ExpressionAttributeValues'] = values
        return condition

    def commit(self, changes, expect=None):
        with self._lock:
            pending = dict(expect or {})
            transact_items = []

            for name, items in changes.items():
                for item in items:
                    record = item.to_dict()
                    put = {'TableName': self.table_names[name], 'Item': self._serialize(record)}
                    fields = pending.pop((name, record['id']), None)
                    if fields:
                        put.update(self._condition(name, record['id'], fields))
                    transact_items.append({'Put': put})

            for (name, record_id), fields in pending.items():
                check = {
                    'TableName': self.table_names[name],
                    'Key': {'id': self._serializer.serialize(record_id)},
                }
                check.update(self._condition(name, record_id, fields))
                transact_items.append({'ConditionCheck': check})

            if not transact_items:
                return

            try:
                self.client.transact_write_items(TransactItems=transact_items)
            except ClientError as e:
                error = e.response.get('Error', {})
                reasons = e.response.get('CancellationReasons') or []
                if error.get('Code') == 'TransactionCanceledException' and any(
                        r.get('Code') == 'ConditionalCheckFailed' for r in reasons):
                    logger.warning('Transaction cancelled by a concurrent write: %s', error.get('Message'))
                    raise ConflictError('Record changed before commit') from e
                logger.exception('Transaction failed')
                raise PersistenceError('Could not save data') from e
            except BotoCoreError as e:
                logger.exception('Transaction failed')
                raise PersistenceError('Could not save data') from e

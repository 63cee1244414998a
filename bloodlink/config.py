import os

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class Config:
    SECRET_KEY = os.environ.get('BLOODLINK_SECRET_KEY', 'bloodlink-dev-key')  # Change this in production
    DEBUG = os.environ.get('FLASK_DEBUG', '').lower() in ('1', 'true', 'yes')
    TESTING = False

    # 'json' keeps data in DATA_DIR, 'memory' in process, 'dynamodb' uses the AWS tables
    STORE_BACKEND = os.environ.get('BLOODLINK_STORE', 'json')
    DATA_DIR = os.environ.get('BLOODLINK_DATA_DIR', os.path.join(BASE_DIR, 'data'))

    # AWS Configuration
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')
    # overrides for store_aws.TABLE_NAMES, e.g. {'users': 'dev-Users'}
    DYNAMODB_TABLES = {}

    LOG_LEVEL = os.environ.get('BLOODLINK_LOG_LEVEL', 'INFO')


class TestingConfig(Config):
    TESTING = True
    STORE_BACKEND = 'memory'
    LOG_LEVEL = 'DEBUG'

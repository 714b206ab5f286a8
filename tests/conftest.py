"""Shared fixtures for the test suite."""
import os
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

TABLE_NAME = 'test-eventbrite-events'
BUCKET_NAME = 'test-eventbrite-covers'


@pytest.fixture(autouse=True)
def aws_credentials():
    """Fake AWS credentials so boto3 never reaches a real account."""
    env_vars = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-east-1'
    }
    with patch.dict(os.environ, env_vars):
        yield


@pytest.fixture
def aws():
    with mock_aws():
        yield


@pytest.fixture
def dynamodb_table(aws):
    """Create a mock DynamoDB table for testing."""
    dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
    table = dynamodb.create_table(
        TableName=TABLE_NAME,
        KeySchema=[
            {'AttributeName': 'event_id', 'KeyType': 'HASH'}
        ],
        AttributeDefinitions=[
            {'AttributeName': 'event_id', 'AttributeType': 'S'}
        ],
        BillingMode='PAY_PER_REQUEST'
    )
    yield table


@pytest.fixture
def s3_bucket(aws):
    """Create a mock S3 bucket for testing; yields its name."""
    s3 = boto3.client('s3', region_name='us-east-1')
    s3.create_bucket(Bucket=BUCKET_NAME)
    yield BUCKET_NAME


@pytest.fixture
def bucket_keys(s3_bucket):
    """Callable returning the sorted object keys in the test bucket."""
    s3 = boto3.client('s3', region_name='us-east-1')

    def list_keys() -> list:
        response = s3.list_objects_v2(Bucket=s3_bucket)
        return sorted(obj['Key'] for obj in response.get('Contents', []))

    return list_keys



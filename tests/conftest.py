import boto3
from hypothesis import HealthCheck, settings, Verbosity
from moto import mock_aws
import pytest


settings.register_profile(
    'default',
    max_examples=50,
    deadline=9000,
    verbosity=Verbosity.normal,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
settings.load_profile('default')


@pytest.fixture(autouse=True)
def aws_env(monkeypatch):
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    for name in ('ENV_INJECTOR_PATH', 'ENV_INJECTOR_PREFIX',
                 'ENV_INJECTOR_ASSUME_ROLE_ARN', 'ENV_INJECTOR_RECURSIVE'):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(scope='function')
def ssm():
    with mock_aws():
        yield boto3.client('ssm', region_name='us-east-1')



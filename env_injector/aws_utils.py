#!/usr/bin/env python3

'''
Miscellaneous utilities to interface with AWS APIs.
'''

import logging
import os

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from botocore.utils import BadIMDSRequestError, InstanceMetadataRegionFetcher

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(os.getenv('LOG_LEVEL', 'INFO'))

ROLE_SESSION_NAME = 'env-injector'


class InjectorError(Exception):
    '''
    Fatal condition: no wrapped command may be launched after this.
    '''


class SSMServiceAccessor:
    '''
    Lazily builds the SSM client, resolving the region and the credentials
    only once per instance.
    '''

    def __init__(self, role_arn=None, session_factory=None):
        '''
        Args:
        - role_arn: ARN of the IAM role to be assumed for every SSM call
        (default: use the ambient credentials)
        - session_factory: callable returning a boto3 Session
        (default: boto3.Session)
        '''
        self.role_arn = role_arn or None
        self.session_factory = session_factory or boto3.Session
        self._service = None

    def get_service(self):
        '''
        Returns the SSM client, creating it on the first call.

        Raises InjectorError if the session can't be created, the region
        can't be determined or the role can't be assumed.
        '''
        if self._service is not None:
            return self._service

        try:
            session = self.session_factory()
        except BotoCoreError as e:
            raise InjectorError(f'failed to create a new session: {e}') from e

        region = session.region_name or self.fetch_instance_region()
        if not region:
            raise InjectorError('could not find region configurations')

        if self.role_arn:
            self._service = self.assume_role_client(session, region)
        else:
            self._service = session.client('ssm', region_name=region)

        return self._service

    def fetch_instance_region(self):
        '''
        Looks up the region in the EC2 instance metadata, returning None if
        it's unavailable.
        '''
        LOGGER.debug(
            'no explicit region configurations, retrieving ec2 metadata...')
        try:
            region = InstanceMetadataRegionFetcher().retrieve_region()
        except (BotoCoreError, BadIMDSRequestError) as e:
            LOGGER.debug('failed to query the instance metadata: %s', e)
            return None
        if not region:
            LOGGER.debug('no region found in the instance metadata')
        return region

    def assume_role_client(self, session, region):
        LOGGER.debug('assuming role %s', self.role_arn)
        try:
            response = session.client('sts', region_name=region).assume_role(
                RoleArn=self.role_arn,
                RoleSessionName=ROLE_SESSION_NAME,
            )
        except (BotoCoreError, ClientError) as e:
            raise InjectorError(
                f'failed to assume role {self.role_arn}: {e}') from e

        creds = response['Credentials']
        return session.client(
            'ssm',
            region_name=region,
            aws_access_key_id=creds['AccessKeyId'],
            aws_secret_access_key=creds['SecretAccessKey'],
            aws_session_token=creds['SessionToken'],
        )

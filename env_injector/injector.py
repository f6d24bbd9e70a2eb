#!/usr/bin/env python3

'''
Injects SSM Parameters into the environment, either every parameter under
a path or one parameter per environment variable set to an empty string.
'''

import logging
import os
from pathlib import PurePosixPath
from typing import (
    Iterable,
    List,
    MutableMapping,
    Optional,
)

from botocore.exceptions import BotoCoreError, ClientError

from .aws_utils import InjectorError

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(os.getenv('LOG_LEVEL', 'INFO'))

PREFIX_SEPARATOR = '.'


def is_absent(environ: MutableMapping[str, str], key: str) -> bool:
    '''
    Whether the variable is free to be injected by path: unset and
    empty values both count as absent.

    >>> [is_absent(env, 'A') for env in ({'A': ''}, {}, {'A': 'x'})]
    [True, True, False]
    '''
    return not environ.get(key)


def pending_names(environ: MutableMapping[str, str]) -> List[str]:
    '''
    Names of the variables explicitly set to an empty string, which request
    injection by prefix. Unset variables are never pending.

    >>> pending_names({'A': '', 'B': 'x', 'C': ''})
    ['A', 'C']
    '''
    return [name for name, value in environ.items() if value == '']


def relative_key(path: str, name: str) -> Optional[str]:
    '''
    Makes the parameter name relative to the path, returning None if it
    doesn't fall under it.

    >>> relative_key('/app/prod', '/app/prod/DB_HOST')
    'DB_HOST'
    >>> relative_key('/app/prod/', '/app/prod/db/HOST')
    'db/HOST'
    >>> relative_key('/app/prod', '/app/dev/DB_HOST') is None
    True
    '''
    try:
        key = str(PurePosixPath(name).relative_to(PurePosixPath(path)))
    except ValueError:
        return None
    return None if key == '.' else key


def iter_parameters_by_path(
    ssm,
    path: str,
    recursive: bool = False,
) -> Iterable[dict]:
    '''
    Yields every parameter under the path, following the continuation token
    until a page comes without one.

    Raises InjectorError on any failed page.
    '''
    kwargs = {
        'Path': path,
        'WithDecryption': True,
        'Recursive': recursive,
    }
    while True:
        try:
            response = ssm.get_parameters_by_path(**kwargs)
        except (BotoCoreError, ClientError) as e:
            raise InjectorError(
                f'ssm:GetParametersByPath failed (path: {path}): {e}') from e

        yield from response.get('Parameters', [])

        next_token = response.get('NextToken')
        if not next_token:
            break
        kwargs['NextToken'] = next_token


def inject_by_path(
    accessor,
    path: str,
    environ: Optional[MutableMapping[str, str]] = None,
    recursive: bool = False,
) -> List[str]:
    '''
    Injects every parameter under the path, keyed by its name relative to
    the path. Variables that already have a non-empty value are kept.

    Args:
    - accessor: SSMServiceAccessor providing the client
    - path: hierarchical path, e.g. /app/prod (empty: do nothing)
    - environ: mapping to inject into (default: os.environ)
    - recursive: also descend into sub-paths

    Returns the list of injected keys.
    '''
    environ = os.environ if environ is None else environ

    if not path:
        LOGGER.debug('no parameter path specified, skipping injection by path')
        return []
    LOGGER.debug('parameter path: %s', path)

    injected = []
    ssm = accessor.get_service()

    for param in iter_parameters_by_path(ssm, path, recursive=recursive):
        key = relative_key(path, param['Name'])
        if key is None:
            LOGGER.debug('%s is not under %s, skipping', param['Name'], path)
            continue

        if is_absent(environ, key):
            environ[key] = param['Value']
            injected.append(key)
            LOGGER.debug('env injected: %s', key)

    return injected


def inject_by_prefix(
    accessor,
    prefix: str,
    environ: Optional[MutableMapping[str, str]] = None,
) -> List[str]:
    '''
    For every variable set to an empty string, fetches the parameter named
    prefix + variable name and overwrites the variable with its value.

    Parameters are fetched one at a time: ssm:GetParameters fails as a whole
    if any of the names isn't permitted. A failed fetch is logged and the
    remaining names are still attempted.

    Args:
    - accessor: SSMServiceAccessor providing the client
    - prefix: flat prefix, a trailing '.' is added if missing (empty: do
    nothing)
    - environ: mapping to inject into (default: os.environ)

    Returns the list of injected keys.
    '''
    environ = os.environ if environ is None else environ

    if not prefix:
        LOGGER.debug(
            'no parameter prefix specified, skipping injection by prefix')
        return []
    LOGGER.debug('parameter prefix: %s', prefix)

    if not prefix.endswith(PREFIX_SEPARATOR):
        prefix += PREFIX_SEPARATOR

    names = pending_names(environ)
    if not names:
        LOGGER.debug('nothing to be injected by prefix')
        return []

    injected = []
    ssm = accessor.get_service()

    for name in names:
        param_name = prefix + name
        try:
            response = ssm.get_parameters(
                Names=[param_name],
                WithDecryption=True,
            )
        except (BotoCoreError, ClientError) as e:
            LOGGER.warning('failed to get %s: %s', param_name, e)
            continue

        for invalid in response.get('InvalidParameters', []):
            LOGGER.warning('invalid parameter: %s', invalid)

        for param in response.get('Parameters', []):
            key = param['Name']
            if key.startswith(prefix):
                key = key[len(prefix):]
            environ[key] = param['Value']
            injected.append(key)
            LOGGER.debug('env injected: %s', key)

    return injected

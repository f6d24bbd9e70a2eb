#!/usr/bin/env python3

'''
Injects SSM Parameters into the environment, then executes the given command
in place of the current process.

    ENV_INJECTOR_PATH=/app/prod env-injector ./server --port 8080
'''

import argparse
from dataclasses import dataclass, replace
import logging
import os
import sys
from typing import Mapping, Optional

from .aws_utils import InjectorError, SSMServiceAccessor
from .injector import inject_by_path, inject_by_prefix

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(os.getenv('LOG_LEVEL', 'INFO'))

TRUTHY = {'1', 'true', 'yes', 'on'}


@dataclass
class InjectorConfig:
    path: str = ''
    prefix: str = ''
    assume_role_arn: Optional[str] = None
    recursive: bool = False

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
    ) -> 'InjectorConfig':
        environ = os.environ if environ is None else environ
        return cls(
            path=environ.get('ENV_INJECTOR_PATH', ''),
            prefix=environ.get('ENV_INJECTOR_PREFIX', ''),
            assume_role_arn=environ.get('ENV_INJECTOR_ASSUME_ROLE_ARN') or None,
            recursive=(
                environ.get('ENV_INJECTOR_RECURSIVE', '').lower() in TRUTHY
            ),
        )


def inject(config: InjectorConfig, accessor=None, environ=None):
    '''
    Runs the injection by path and then the injection by prefix.

    The order matters: injection by path never overwrites a variable, while
    injection by prefix always does.

    Args:
    - config: InjectorConfig
    - accessor: SSMServiceAccessor (default: one built from the config)
    - environ: mapping to inject into (default: os.environ)

    Returns: (keys injected by path, keys injected by prefix)
    '''
    environ = os.environ if environ is None else environ
    accessor = accessor or SSMServiceAccessor(role_arn=config.assume_role_arn)

    by_path = inject_by_path(
        accessor, config.path, environ=environ, recursive=config.recursive)
    by_prefix = inject_by_prefix(accessor, config.prefix, environ=environ)

    return by_path, by_prefix


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog='env-injector',
        description='Inject SSM Parameters as environment variables and '
                    'execute the command',
    )
    parser.add_argument(
        '--path', help='parameter path (default: $ENV_INJECTOR_PATH)')
    parser.add_argument(
        '--prefix', help='parameter prefix (default: $ENV_INJECTOR_PREFIX)')
    parser.add_argument(
        '--assume-role-arn',
        help='role to assume (default: $ENV_INJECTOR_ASSUME_ROLE_ARN)',
    )
    parser.add_argument(
        '--recursive', action='store_true', default=None,
        help='also inject parameters under sub-paths '
             '(default: $ENV_INJECTOR_RECURSIVE)',
    )
    parser.add_argument('command', nargs=argparse.REMAINDER)

    args = parser.parse_args(argv)
    if args.command and args.command[0] == '--':
        args.command = args.command[1:]
    if not args.command:
        parser.error('no command specified')
    return args


def build_config(args, environ=None) -> InjectorConfig:
    '''
    Reads the configuration from the environment, letting the command-line
    options take precedence.
    '''
    config = InjectorConfig.from_env(environ)
    overrides = {
        field: getattr(args, field)
        for field in ('path', 'prefix', 'assume_role_arn', 'recursive')
        if getattr(args, field) is not None
    }
    return replace(config, **overrides)


def main(argv=None):
    logging.basicConfig(
        format='[env-injector] %(levelname)s %(message)s',
        stream=sys.stderr,
    )
    args = parse_args(argv)
    config = build_config(args)

    try:
        inject(config)
    except InjectorError as e:
        LOGGER.error(e)
        sys.exit(1)

    try:
        os.execvp(args.command[0], args.command)
    except OSError as e:
        LOGGER.error('failed to execute %s: %s', args.command[0], e)
        sys.exit(127)


if __name__ == "__main__":
    main()

"""
Find and enter docker containers on the EC2 hosts of an ECS cluster

Hosts are discovered through the ECS and EC2 apis, then probed one at a
time over ssh (agent authentication only) until the container turns up.
"""
import functools
import logging
import os
import sys
from typing import List

import click

from ecs_inventory import HostRecord, format_clusters, format_hosts
from enum_config import EnumConfig
from enum_errors import EnumError
from enum_functions import (EnumFunctions, exec_command, find_command, inspect_command,
                            logs_command, probe_command)

__version__ = '0.1.0'
COMMIT = os.getenv('ENUM_COMMIT', 'none')
BUILD_DATE = os.getenv('ENUM_BUILD_DATE', 'unknown')
COMMAND_NAME = 'ecs-enum'

NOT_FOUND = 'Container not found on any instance.'
FIND_ROW = '{:<20} {:<12} {:<12} {:<15} {:<60}'

log = logging.getLogger(__name__)


class EcsEnum(EnumFunctions):
    """Subcommands, each resolving the cluster once and then probing hosts"""

    def list_ec2(self):
        """Every host of the cluster, whatever its state"""
        hosts = self._hosts(only_running=False)
        if not hosts:
            log.info('No EC2 instances found for the specified cluster.')
            return
        print(format_hosts(hosts))

    def list_ecs(self):
        print(format_clusters(self.inventory.list_clusters()))

    def find(self, search_term: str = '') -> List[HostRecord]:
        """Print matching containers from every reachable host"""
        hosts = self._hosts()
        print(FIND_ROW.format('EC2 Instance', 'Container ID', 'Status', 'Running For',
                              'Container Name').rstrip())

        def print_rows(host: HostRecord, output: str):
            for line in output.splitlines():
                parts = line.split('\t')
                if len(parts) < 4:
                    continue
                print(FIND_ROW.format(host.name, parts[1], parts[2], parts[3], parts[0]).rstrip())

        return self.all_matches(hosts, find_command(search_term), print_rows)

    def inspect(self, container_id: str):
        def show(host: HostRecord):
            result = self.executor.execute(host.private_ip, inspect_command(container_id))
            print('---------- Inspect output from {} ----------'.format(host.name))
            print(result.stdout.rstrip('\n'))

        if not self.first_match(self._hosts(), probe_command(container_id), show):
            print(NOT_FOUND)

    def logs(self, container_id: str):
        """Follow the container's logs until interrupted or the stream ends"""
        def follow(host: HostRecord):
            log.info('Following logs on instance %s (%s)', host.instance_id, host.name)
            self.executor.execute_streaming(host.private_ip, logs_command(container_id))

        if not self.first_match(self._hosts(), probe_command(container_id), follow):
            print(NOT_FOUND)

    def shell(self, container_id: str, args: List[str] = None) -> int:
        """Interactive shell in the container; returns the remote exit status"""
        status = 0

        def enter(host: HostRecord):
            nonlocal status
            log.info('Container %s found on instance %s (%s). Starting shell session...',
                     container_id, host.instance_id, host.name)
            status = self.executor.open_interactive(
                host.private_ip, exec_command(container_id, args))

        if not self.first_match(self._hosts(), probe_command(container_id), enter):
            print(NOT_FOUND)
        return status


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(levelname)s: %(message)s',
        stream=sys.stderr
    )
    for name in ('botocore', 'boto3', 'urllib3', 'paramiko'):
        logging.getLogger(name).setLevel(logging.WARNING)


def report_errors(exit_code: int = 0):
    """Log EnumErrors without a traceback (unless -v) and exit with ``exit_code``"""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except EnumError as err:
                log.error('%s', err)
                log.debug('Traceback', exc_info=True)
                sys.exit(exit_code)
        return wrapper
    return decorator


@click.group(context_settings={'help_option_names': ['-h', '--help']})
@click.option('-c', '--cluster', envvar='ENUM_CLUSTER', help='Name of the ECS cluster.')
@click.option('--region', help='AWS region (defaults to AWS_REGION, then us-west-2).')
@click.option('-u', '--user', 'ssh_user', envvar='ENUM_SSH_USER',
              help='ssh user on the hosts (defaults to the current user).')
@click.option('--insecure', is_flag=True,
              help='Accept any host key. Only for throwaway environments.')
@click.option('--known-hosts', type=click.Path(dir_okay=False),
              help='File that records host keys on first use.')
@click.option('--timeout', type=float, help='Seconds allowed for each probe command.')
@click.option('-v', '--verbose', is_flag=True, help='Debug logging and tracebacks.')
@click.pass_context
def cli(ctx, cluster, region, ssh_user, insecure, known_hosts, timeout, verbose):
    """Troubleshoot ECS clusters that run on EC2 worker nodes."""
    setup_logging(verbose)
    ctx.obj = EnumConfig.from_env(
        cluster=cluster,
        region=region,
        ssh_user=ssh_user,
        insecure_host_keys=insecure,
        known_hosts=known_hosts,
        command_timeout=timeout
    )


@cli.command()
def version():
    """Print the version number."""
    click.echo('{} {}, commit {}, built at {}'.format(COMMAND_NAME, __version__, COMMIT, BUILD_DATE))


@cli.command('list-ec2')
@click.pass_obj
@report_errors()
def list_ec2(config):
    """List EC2 instances for a cluster."""
    EcsEnum(config).list_ec2()


@cli.command('list-ecs')
@click.pass_obj
@report_errors()
def list_ecs(config):
    """List ECS clusters."""
    EcsEnum(config).list_ecs()


@cli.command()
@click.argument('search_term', required=False, default='')
@click.pass_obj
@report_errors()
def find(config, search_term):
    """Find running containers by search term."""
    EcsEnum(config).find(search_term)


@cli.command()
@click.argument('container_id')
@click.pass_obj
@report_errors()
def inspect(config, container_id):
    """Inspect a container by its ID."""
    EcsEnum(config).inspect(container_id)


@cli.command()
@click.argument('container_id')
@click.pass_obj
@report_errors()
def logs(config, container_id):
    """Follow the logs of a container by its ID."""
    try:
        EcsEnum(config).logs(container_id)
    except KeyboardInterrupt:
        click.echo('', err=True)


@cli.command(context_settings={'ignore_unknown_options': True})
@click.argument('container_id')
@click.argument('args', nargs=-1, type=click.UNPROCESSED)
@click.pass_obj
@report_errors(exit_code=1)
def shell(config, container_id, args):
    """Start an interactive shell in a container, optionally with a given shell."""
    status = EcsEnum(config).shell(container_id, list(args))
    if status:
        sys.exit(status)


def main():
    cli(prog_name=COMMAND_NAME)


if __name__ == '__main__':
    main()

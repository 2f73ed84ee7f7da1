import logging
import shlex
from typing import Callable, List, Optional

from ecs_inventory import ClusterInventory, HostRecord
from enum_config import EnumConfig
from enum_errors import EnumError
from ssh_remote import RemoteExecutor

log = logging.getLogger(__name__)

DEFAULT_SHELL = '/bin/sh'
PS_FORMAT = '{{.Names}}\t{{.ID}}\t{{.Status}}\t{{.RunningFor}}'


def probe_command(container_id: str) -> str:
    """Prints the container id when it runs on the host, nothing otherwise"""
    return 'sudo docker ps --filter {} --format {}'.format(
        shlex.quote('id={}'.format(container_id)), shlex.quote('{{.ID}}'))


def find_command(search_term: str = '') -> str:
    cmd = 'sudo docker ps --format {}'.format(shlex.quote(PS_FORMAT))
    cleaned = search_term.replace(' ', '')
    if cleaned:
        cmd = '{} | grep -- {}'.format(cmd, shlex.quote(cleaned))
    return cmd


def inspect_command(container_id: str) -> str:
    return 'sudo docker inspect {}'.format(shlex.quote(container_id))


def logs_command(container_id: str) -> str:
    return 'sudo docker logs -f {}'.format(shlex.quote(container_id))


def exec_command(container_id: str, args: Optional[List[str]] = None) -> str:
    shell = ' '.join(shlex.quote(arg) for arg in args) if args else DEFAULT_SHELL
    return 'sudo docker exec -it {} {}'.format(shlex.quote(container_id), shell)


class EnumFunctions():
    """Host discovery and the probe loops shared by every subcommand"""

    def __init__(self, config: EnumConfig, inventory: Optional[ClusterInventory] = None,
                 executor: Optional[RemoteExecutor] = None):
        self.config = config
        self._inventory = inventory
        self.executor = executor or RemoteExecutor(config)

    @property
    def inventory(self) -> ClusterInventory:
        # boto clients are only built for commands that talk to AWS
        if self._inventory is None:
            self._inventory = ClusterInventory(self.config)
        return self._inventory

    def _hosts(self, only_running: bool = True) -> List[HostRecord]:
        """Hosts of the configured cluster, in probing order"""
        return self.inventory.resolve(self.config.cluster, only_running=only_running)

    def _probe(self, host: HostRecord, command: str) -> Optional[str]:
        """Output of a probe, or None when the host could not be asked"""
        try:
            result = self.executor.execute(host.private_ip, command, ignore_exit_code=True)
        except EnumError as err:
            log.error('Error checking instance %s (%s): %s', host.instance_id, host.name, err)
            return None
        return result.stdout

    def first_match(self, hosts: List[HostRecord], probe: str,
                    action: Callable[[HostRecord], None]) -> Optional[HostRecord]:
        """Run ``action`` on the first host whose probe prints anything.

        Hosts are visited in order and none after the match is contacted;
        exactly one host is expected to run a given container. Probe errors
        skip the host, errors raised by ``action`` propagate.
        """
        for host in hosts:
            if not host.reachable:
                log.debug('Skipping %s, it has no private address', host.instance_id)
                continue
            output = self._probe(host, probe)
            if not output or not output.strip():
                continue
            action(host)
            return host
        return None

    def all_matches(self, hosts: List[HostRecord], command: str,
                    on_output: Callable[[HostRecord, str], None]) -> List[HostRecord]:
        """Run ``command`` on every reachable host and hand over whatever each prints"""
        matched = []
        for host in hosts:
            if not host.reachable:
                log.debug('Skipping %s, it has no private address', host.instance_id)
                continue
            output = self._probe(host, command)
            if output:
                on_output(host, output)
                matched.append(host)
        return matched

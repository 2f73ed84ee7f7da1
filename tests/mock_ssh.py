"""Stand-ins for paramiko channels, the executor and the inventory.

Containers are described per host address as docker ps rows of
(name, id, status, running for), the same order the find command asks for.
"""
import json
import shlex

from ecs_inventory import HostRecord
from enum_errors import ConfigurationError, HostConnectionError, RemoteExecutionError
from ssh_remote import RemoteCommandResult


class FakeChannel:
    """Scripted paramiko channel"""

    def __init__(self, stdout=b'', stderr=b'', status=0, finished=True):
        self._out = [stdout] if stdout else []
        self._err = [stderr] if stderr else []
        self.status = status
        self.finished = finished
        self.commands = []
        self.sent = b''
        self.pty = None
        self.shell = False
        self.write_shut = False
        self.closed = False
        self.resized = None

    def exec_command(self, command):
        self.commands.append(command)

    def invoke_shell(self):
        self.shell = True

    def get_pty(self, term='vt100', width=80, height=24):
        self.pty = (term, width, height)

    def resize_pty(self, width=80, height=24):
        self.resized = (width, height)

    def recv_ready(self):
        return bool(self._out)

    def recv(self, nbytes):
        return self._out.pop(0)

    def recv_stderr_ready(self):
        return bool(self._err)

    def recv_stderr(self, nbytes):
        return self._err.pop(0)

    def exit_status_ready(self):
        return self.finished or self.closed

    def recv_exit_status(self):
        return self.status

    def sendall(self, data):
        self.sent += data

    def shutdown_write(self):
        self.write_shut = True

    def close(self):
        self.closed = True


def host(name, ip, state='running', instance_id=None):
    return HostRecord(
        instance_id=instance_id or 'i-{}'.format(name),
        name=name,
        state=state,
        instance_type='m5.large',
        private_ip=ip
    )


class FakeInventory:
    """ClusterInventory over a fixed host list"""

    def __init__(self, hosts, clusters=None):
        self.hosts = list(hosts)
        self.clusters = list(clusters or [])
        self.resolved = []

    def resolve(self, cluster_name=None, only_running=False):
        self.resolved.append((cluster_name, only_running))
        if not cluster_name:
            raise ConfigurationError('A cluster name is required (--cluster)')
        hosts = [h for h in self.hosts if not only_running or h.state == 'running']
        return sorted(hosts, key=lambda h: h.name)

    def list_clusters(self):
        return sorted(self.clusters)


class FakeExecutor:
    """RemoteExecutor answering docker commands from a table of containers"""

    def __init__(self, containers=None, unreachable=(), failing_commands=(), interactive_status=0):
        self.containers = containers or {}
        self.unreachable = set(unreachable)
        self.failing_commands = tuple(failing_commands)
        self.interactive_status = interactive_status
        self.calls = []

    def _rows(self, address):
        return self.containers.get(address, [])

    def execute(self, host, command, ignore_exit_code=False, timeout=None):
        self.calls.append(('execute', host, command))
        if host in self.unreachable:
            raise HostConnectionError('Failed to connect to {}: timed out'.format(host))
        if any(part in command for part in self.failing_commands):
            raise RemoteExecutionError('Command on {} exited with status 1: boom'.format(host),
                                       exit_status=1, stderr='boom')
        args = shlex.split(command)
        if '--filter' in args:
            wanted = args[args.index('--filter') + 1].split('=', 1)[1]
            ids = [row[1] for row in self._rows(host) if row[1].startswith(wanted)]
            return RemoteCommandResult(stdout=''.join(i + '\n' for i in ids), stderr='')
        if args[:3] == ['sudo', 'docker', 'ps']:
            lines = ['\t'.join(row) for row in self._rows(host)]
            if 'grep' in args:
                term = args[-1]
                lines = [line for line in lines if term in line]
                if not lines:
                    return RemoteCommandResult(stdout='', stderr='', exit_status=1,
                                               succeeded=False, exit_error_ignored=True)
            return RemoteCommandResult(stdout=''.join(line + '\n' for line in lines), stderr='')
        if args[:3] == ['sudo', 'docker', 'inspect']:
            return RemoteCommandResult(stdout=json.dumps([{'Id': args[3]}], indent=2) + '\n', stderr='')
        return RemoteCommandResult(stdout='', stderr='')

    def execute_streaming(self, host, command, out=None, err=None):
        self.calls.append(('stream', host, command))
        if host in self.unreachable:
            raise HostConnectionError('Failed to connect to {}: timed out'.format(host))
        return 0

    def open_interactive(self, host, remote_command='', **kwargs):
        self.calls.append(('interactive', host, remote_command))
        if host in self.unreachable:
            raise HostConnectionError('Failed to connect to {}: timed out'.format(host))
        return self.interactive_status

    def probed(self):
        """Addresses that received a presence probe, in order"""
        return [call[1] for call in self.calls if call[0] == 'execute' and '--filter' in call[2]]

    def contacted(self):
        return [call[1] for call in self.calls]

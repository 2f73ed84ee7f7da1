"""Run commands on cluster hosts over ssh, authenticating via the ssh agent"""
import io
import logging
import os
import socket
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import BinaryIO, Optional

import paramiko

from enum_config import EnumConfig
from enum_errors import AuthError, HostConnectionError, RemoteExecutionError, SessionError
from ssh_session import InteractiveSession, pump_channel

log = logging.getLogger(__name__)


@dataclass
class RemoteCommandResult:
    """Outcome of one non-interactive remote command"""

    stdout: str
    stderr: str
    exit_status: int = 0
    succeeded: bool = True
    exit_error_ignored: bool = False


class TrustOnFirstUsePolicy(paramiko.MissingHostKeyPolicy):
    """Record unknown host keys; changed keys are still rejected by paramiko"""

    def __init__(self, path: str):
        self.path = path

    def missing_host_key(self, client, hostname, key):
        client.get_host_keys().add(hostname, key.get_name(), key)
        # the key stays trusted for this connection even if it cannot be saved
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, mode=0o700, exist_ok=True)
            client.save_host_keys(self.path)
        except OSError as err:
            log.warning('Could not save host key for %s to %s: %s', hostname, self.path, err)
            return
        log.warning('Permanently added %s (%s) to %s', hostname, key.get_name(), self.path)


class RemoteExecutor():
    """One-shot ssh sessions to cluster hosts"""

    def __init__(self, config: EnumConfig):
        self.config = config

    def _check_agent(self):
        """Fail early when the agent cannot sign for us"""
        if not os.getenv('SSH_AUTH_SOCK'):
            raise AuthError('SSH_AUTH_SOCK is not set, start an ssh agent and add a key')
        try:
            agent = paramiko.Agent()
            try:
                keys = agent.get_keys()
            finally:
                agent.close()
        except paramiko.SSHException as err:
            raise AuthError('Could not talk to the ssh agent: {}'.format(err)) from err
        if not keys:
            raise AuthError('The ssh agent holds no keys')

    def _host_key_policy(self, client: paramiko.SSHClient):
        if self.config.insecure_host_keys:
            log.warning('INSECURE: host key verification is disabled, any remote key is accepted')
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            return
        client.load_system_host_keys()
        path = self.config.known_hosts_path
        if os.path.exists(path):
            client.load_host_keys(path)
        client.set_missing_host_key_policy(TrustOnFirstUsePolicy(path))

    @contextmanager
    def connect(self, host: str):
        """Yield a connected SSHClient, closed on exit"""
        self._check_agent()
        client = paramiko.SSHClient()
        self._host_key_policy(client)
        kwargs = {
            'hostname': host,
            'port': self.config.ssh_port,
            'username': self.config.ssh_user,
            'timeout': self.config.connect_timeout,
            'banner_timeout': self.config.connect_timeout,
            'auth_timeout': self.config.connect_timeout,
            'allow_agent': True,
            'look_for_keys': False
        }
        log.debug('Connecting to %s@%s:%s', self.config.ssh_user, host, self.config.ssh_port)
        try:
            client.connect(**kwargs)
        except paramiko.AuthenticationException as err:
            client.close()
            raise AuthError('Authentication to {} failed: {}'.format(host, err)) from err
        except (paramiko.SSHException, socket.error) as err:
            client.close()
            raise HostConnectionError('Failed to connect to {}: {}'.format(host, err)) from err
        try:
            yield client
        finally:
            client.close()

    def _open_channel(self, client: paramiko.SSHClient, host: str):
        transport = client.get_transport()
        if transport is None or not transport.is_active():
            raise SessionError('Connection to {} is no longer active'.format(host))
        try:
            return transport.open_session(timeout=self.config.connect_timeout)
        except (paramiko.SSHException, socket.error) as err:
            raise SessionError('Failed to open a session on {}: {}'.format(host, err)) from err

    def _start(self, channel, host: str, command: str):
        try:
            channel.exec_command(command)
        except paramiko.SSHException as err:
            raise SessionError('Failed to start command on {}: {}'.format(host, err)) from err

    def execute(self, host: str, command: str, ignore_exit_code: bool = False,
                timeout: Optional[float] = None) -> RemoteCommandResult:
        """Run a command and capture its output.

        A non-zero exit raises RemoteExecutionError unless ``ignore_exit_code``
        is set, in which case the captured output is returned flagged as failed.
        ``timeout`` defaults to the configured command timeout.
        """
        if timeout is None:
            timeout = self.config.command_timeout
        out, err = io.BytesIO(), io.BytesIO()
        with self.connect(host) as client:
            channel = self._open_channel(client, host)
            try:
                self._start(channel, host, command)
                status = pump_channel(channel, out, err, deadline=time.monotonic() + timeout)
            finally:
                channel.close()

        stdout = out.getvalue().decode('utf-8', errors='replace')
        stderr = err.getvalue().decode('utf-8', errors='replace')
        if status == 0:
            return RemoteCommandResult(stdout=stdout, stderr=stderr)
        if ignore_exit_code:
            return RemoteCommandResult(stdout=stdout, stderr=stderr, exit_status=status,
                                       succeeded=False, exit_error_ignored=True)
        raise RemoteExecutionError('Command on {} exited with status {}: {}'.format(
            host, status, stderr.strip()), exit_status=status, stderr=stderr)

    def execute_streaming(self, host: str, command: str, out: Optional[BinaryIO] = None,
                          err: Optional[BinaryIO] = None) -> int:
        """Run a command, writing its output as it arrives; returns the exit status"""
        out = out or sys.stdout.buffer
        err = err or sys.stderr.buffer
        with self.connect(host) as client:
            channel = self._open_channel(client, host)
            try:
                self._start(channel, host, command)
                return pump_channel(channel, out, err)
            finally:
                channel.close()

    def open_interactive(self, host: str, remote_command: str = '', stdin=None,
                         stdout: Optional[BinaryIO] = None, stderr: Optional[BinaryIO] = None) -> int:
        """Bridge the local terminal to ``remote_command`` on ``host``; blocks until it exits"""
        with self.connect(host) as client:
            channel = self._open_channel(client, host)
            try:
                session = InteractiveSession(channel, stdin=stdin, stdout=stdout, stderr=stderr)
                return session.run(remote_command)
            except paramiko.SSHException as err:
                raise SessionError('Interactive session on {} failed: {}'.format(host, err)) from err
            finally:
                channel.close()

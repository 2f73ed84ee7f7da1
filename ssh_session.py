"""Channel-level plumbing: output pumping and the interactive terminal bridge"""
import logging
import os
import signal
import sys
import termios
import threading
import time
import tty
from typing import BinaryIO, Optional, Tuple

import paramiko

from enum_errors import CommandTimeoutError

log = logging.getLogger(__name__)

BUFFER_SIZE = 32768
POLL_INTERVAL = 0.05
DEFAULT_SIZE = (24, 80)


def _write(sink: BinaryIO, data: bytes):
    sink.write(data)
    sink.flush()


def _drain(channel, out: BinaryIO, err: BinaryIO):
    while channel.recv_ready() or channel.recv_stderr_ready():
        if channel.recv_ready():
            _write(out, channel.recv(BUFFER_SIZE))
        if channel.recv_stderr_ready():
            _write(err, channel.recv_stderr(BUFFER_SIZE))


def pump_channel(channel, out: BinaryIO, err: BinaryIO, deadline: Optional[float] = None) -> int:
    """Copy channel output into the sinks until the remote side exits.

    ``deadline`` is a ``time.monotonic()`` value; passing it closes the
    channel and raises CommandTimeoutError once it is reached. Returns the
    remote exit status, -1 if the connection dropped before one was sent.
    """
    while True:
        busy = False
        if channel.recv_ready():
            _write(out, channel.recv(BUFFER_SIZE))
            busy = True
        if channel.recv_stderr_ready():
            _write(err, channel.recv_stderr(BUFFER_SIZE))
            busy = True
        if busy:
            continue
        if channel.exit_status_ready():
            # output can land between the ready checks and the exit status
            _drain(channel, out, err)
            break
        if deadline is not None and time.monotonic() >= deadline:
            channel.close()
            raise CommandTimeoutError('Command did not finish before its deadline')
        time.sleep(POLL_INTERVAL)
    return channel.recv_exit_status()


class InteractiveSession():
    """One live terminal bridged to a remote channel"""

    def __init__(self, channel, stdin=None, stdout: Optional[BinaryIO] = None,
                 stderr: Optional[BinaryIO] = None):
        self.channel = channel
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout.buffer
        self.stderr = stderr or sys.stderr.buffer
        self.saved_mode = None
        self.size = DEFAULT_SIZE
        self._old_winch = None

    @property
    def is_tty(self) -> bool:
        try:
            return self.stdin.isatty()
        except ValueError:
            return False

    def _terminal_size(self) -> Tuple[int, int]:
        try:
            size = os.get_terminal_size(self.stdin.fileno())
        except OSError:
            return DEFAULT_SIZE
        return size.lines, size.columns

    def _enter_raw(self):
        fd = self.stdin.fileno()
        self.saved_mode = termios.tcgetattr(fd)
        tty.setraw(fd)

    def _restore(self):
        """Put the local terminal back the way we found it"""
        if self.saved_mode is not None:
            termios.tcsetattr(self.stdin.fileno(), termios.TCSADRAIN, self.saved_mode)
            self.saved_mode = None

    def _on_resize(self, signum, frame):
        self.size = self._terminal_size()
        rows, cols = self.size
        try:
            self.channel.resize_pty(width=cols, height=rows)
        except (paramiko.SSHException, OSError) as err:
            log.debug('Could not resize remote pty: %s', err)

    def _watch_resize(self):
        # signal handlers can only be installed from the main thread
        if not hasattr(signal, 'SIGWINCH') or threading.current_thread() is not threading.main_thread():
            return
        self._old_winch = signal.signal(signal.SIGWINCH, self._on_resize)

    def _unwatch_resize(self):
        if self._old_winch is not None:
            signal.signal(signal.SIGWINCH, self._old_winch)
            self._old_winch = None

    def _forward_input(self):
        """Copy local stdin to the remote side until EOF"""
        fd = self.stdin.fileno()
        try:
            while True:
                data = os.read(fd, 1024)
                if not data:
                    break
                self.channel.sendall(data)
            self.channel.shutdown_write()
        except (OSError, EOFError) as err:
            log.warning('Failed to forward local stdin: %s', err)

    def run(self, command: str = '') -> int:
        """Bridge the terminal to the remote command and return its exit status.

        Input forwarding runs on a daemon thread; the call returns as soon as
        the remote side terminates, whatever the forwarder is doing.
        """
        tty_mode = self.is_tty
        if tty_mode:
            self.size = self._terminal_size()
            rows, cols = self.size
            self.channel.get_pty(term=os.getenv('TERM', 'xterm'), width=cols, height=rows)
        else:
            log.warning('stdin is not a terminal, interactive behaviour may be degraded')

        try:
            if tty_mode:
                self._enter_raw()
                self._watch_resize()
            if command:
                self.channel.exec_command(command)
            else:
                self.channel.invoke_shell()
            forwarder = threading.Thread(target=self._forward_input, name='stdin-forward', daemon=True)
            forwarder.start()
            return pump_channel(self.channel, self.stdout, self.stderr)
        finally:
            self._unwatch_resize()
            self._restore()

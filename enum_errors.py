"""Errors raised while enumerating cluster hosts and talking to them"""


class EnumError(Exception):
    """Base class for every error this tool reports"""


class ConfigurationError(EnumError):
    """Required configuration, such as the cluster name, is missing"""


class CloudAPIError(EnumError):
    """An ECS or EC2 list/describe call failed"""


class AuthError(EnumError):
    """No usable identity could be obtained from the ssh agent"""


class HostConnectionError(EnumError):
    """The ssh connection to a host could not be established"""


class SessionError(EnumError):
    """A channel could not be opened on a live ssh connection"""


class RemoteExecutionError(EnumError):
    """A remote command exited non-zero"""

    def __init__(self, message: str, exit_status: int = -1, stderr: str = ''):
        super().__init__(message)
        self.exit_status = exit_status
        self.stderr = stderr


class CommandTimeoutError(RemoteExecutionError):
    """A remote command ran past its deadline"""

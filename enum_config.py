"""Runtime configuration, built once at startup and passed down"""
import getpass
import os
from dataclasses import dataclass, field
from typing import Optional

import boto3
from botocore.config import Config

DEFAULT_REGION = 'us-west-2'
DEFAULT_KNOWN_HOSTS = os.path.join('~', '.ssh', 'ecs_enum_known_hosts')


def _env_region() -> str:
    return os.getenv('AWS_REGION') or os.getenv('AWS_DEFAULT_REGION') or DEFAULT_REGION


@dataclass(frozen=True)
class EnumConfig:
    """Everything the resolver and the ssh layer need to know"""

    cluster: Optional[str] = None
    profile: Optional[str] = field(default_factory=lambda: os.getenv('AWS_PROFILE') or None)
    region: str = field(default_factory=_env_region)
    ssh_user: str = field(default_factory=lambda: os.getenv('ENUM_SSH_USER') or getpass.getuser())
    ssh_port: int = 22
    connect_timeout: float = 10.0
    # Applies to probes and inspect; logs -f and shell are open ended
    command_timeout: float = 30.0
    aws_connect_timeout: float = 10.0
    aws_read_timeout: float = 30.0
    insecure_host_keys: bool = False
    known_hosts: str = DEFAULT_KNOWN_HOSTS

    @classmethod
    def from_env(cls, **overrides) -> 'EnumConfig':
        """Build a config from the environment, ignoring overrides left as None"""
        kwargs = {key: value for key, value in overrides.items() if value is not None}
        if 'cluster' not in kwargs and os.getenv('ENUM_CLUSTER'):
            kwargs['cluster'] = os.getenv('ENUM_CLUSTER')
        return cls(**kwargs)

    @property
    def known_hosts_path(self) -> str:
        return os.path.expanduser(self.known_hosts)

    def botocore_config(self) -> Config:
        """Timeouts for every AWS call; retries are left to the operator"""
        return Config(
            region_name=self.region,
            connect_timeout=self.aws_connect_timeout,
            read_timeout=self.aws_read_timeout,
            retries={'mode': 'standard', 'total_max_attempts': 1}
        )

    def boto_session(self) -> boto3.session.Session:
        return boto3.session.Session(profile_name=self.profile, region_name=self.region)

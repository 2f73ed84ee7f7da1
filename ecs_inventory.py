"""Resolve an ECS cluster to the EC2 hosts backing it"""
import logging
from dataclasses import dataclass
from typing import List, Optional

import botocore.exceptions
from tabulate import tabulate

from enum_config import EnumConfig
from enum_errors import CloudAPIError, ConfigurationError

log = logging.getLogger(__name__)

UNNAMED = 'Unnamed'
# describe_container_instances accepts at most 100 arns per call
DESCRIBE_BATCH = 100


@dataclass(frozen=True)
class HostRecord:
    """One EC2 instance registered as a container instance"""

    instance_id: str
    name: str
    state: str
    instance_type: str
    private_ip: str = ''

    @property
    def reachable(self) -> bool:
        return bool(self.private_ip)

    @classmethod
    def from_ec2(cls, instance: dict) -> 'HostRecord':
        name = UNNAMED
        for tag in instance.get('Tags', []):
            if tag.get('Key') == 'Name':
                name = tag.get('Value', UNNAMED)
                break
        return cls(
            instance_id=instance.get('InstanceId', ''),
            name=name,
            state=instance.get('State', {}).get('Name', ''),
            instance_type=instance.get('InstanceType', ''),
            private_ip=instance.get('PrivateIpAddress') or ''
        )


class ClusterInventory():
    """Read-only view of ECS clusters and their container instances"""

    def __init__(self, config: EnumConfig, ecs_client=None, ec2_client=None):
        self.config = config
        if ecs_client is None or ec2_client is None:
            session = config.boto_session()
            boto_config = config.botocore_config()
            ecs_client = ecs_client or session.client('ecs', config=boto_config)
            ec2_client = ec2_client or session.client('ec2', config=boto_config)
        self.ecs_client = ecs_client
        self.ec2_client = ec2_client

    def list_clusters(self) -> List[str]:
        """Names of every ECS cluster in the account, sorted"""
        cluster_arns = []
        try:
            paginator = self.ecs_client.get_paginator('list_clusters')
            for page in paginator.paginate():
                cluster_arns.extend(page.get('clusterArns', []))
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as err:
            raise CloudAPIError('Failed to list clusters: {}'.format(err)) from err
        return sorted(arn.split('/')[-1] for arn in cluster_arns)

    def resolve(self, cluster_name: Optional[str] = None, only_running: bool = False) -> List[HostRecord]:
        """Hosts of a cluster sorted by name, optionally only running ones"""
        cluster_name = cluster_name or self.config.cluster
        if not cluster_name:
            raise ConfigurationError('A cluster name is required (--cluster)')

        container_arns = self._list_container_instances(cluster_name)
        if not container_arns:
            log.info('No container instances found for cluster: %s', cluster_name)
            return []

        instance_ids = self._describe_container_instances(cluster_name, container_arns)
        if not instance_ids:
            return []

        hosts = []
        for instance in self._describe_instances(instance_ids):
            host = HostRecord.from_ec2(instance)
            if only_running and host.state != 'running':
                continue
            hosts.append(host)
        # sorted() is stable, so equal names keep describe order
        return sorted(hosts, key=lambda host: host.name)

    def _list_container_instances(self, cluster_name: str) -> List[str]:
        arns = []
        try:
            paginator = self.ecs_client.get_paginator('list_container_instances')
            for page in paginator.paginate(cluster=cluster_name):
                arns.extend(page.get('containerInstanceArns', []))
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as err:
            raise CloudAPIError('Error listing container instances for cluster {}: {}'.format(
                cluster_name, err)) from err
        return arns

    def _describe_container_instances(self, cluster_name: str, arns: List[str]) -> List[str]:
        instance_ids = []
        for start in range(0, len(arns), DESCRIBE_BATCH):
            kwargs = {
                'cluster': cluster_name,
                'containerInstances': arns[start:start + DESCRIBE_BATCH]
            }
            try:
                resp = self.ecs_client.describe_container_instances(**kwargs)
            except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as err:
                raise CloudAPIError('Error describing container instances: {}'.format(err)) from err
            for failure in resp.get('failures', []):
                log.warning('Could not describe container instance %s: %s',
                            failure.get('arn'), failure.get('reason'))
            instance_ids.extend(
                ci['ec2InstanceId'] for ci in resp.get('containerInstances', []) if ci.get('ec2InstanceId'))
        return instance_ids

    def _describe_instances(self, instance_ids: List[str]) -> List[dict]:
        instances = []
        try:
            paginator = self.ec2_client.get_paginator('describe_instances')
            for page in paginator.paginate(InstanceIds=instance_ids):
                for reservation in page.get('Reservations', []):
                    instances.extend(reservation.get('Instances', []))
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as err:
            raise CloudAPIError('Error describing EC2 instances: {}'.format(err)) from err
        return instances


def format_hosts(hosts: List[HostRecord]) -> str:
    """Table of hosts for list-ec2"""
    rows = [[h.instance_id, h.name, h.state, h.instance_type, h.private_ip] for h in hosts]
    headers = ['Instance ID', 'Name', 'State', 'Type', 'Private IP']
    return tabulate(rows, headers=headers, tablefmt='simple')


def format_clusters(names: List[str]) -> str:
    """Table of cluster names for list-ecs"""
    return tabulate([[name] for name in names], headers=['Cluster Name'], tablefmt='simple')

"""
Managed data stores used by Mastodon: a Redis cache, a PostgreSQL database
and an OpenSearch domain.

Every store follows the same shape: `declare()` creates a security group in
the stack network, a `Connections` object bound to the store's canonical
port, and the store itself, and returns a `DataStoreHandle` whose endpoint
is threaded into the container environment.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Tuple

from aws_cdk import (
    aws_ec2 as ec2,
    aws_elasticache as elasticache,
    aws_iam as iam,
    aws_opensearchservice as opensearch,
    aws_rds as rds
)
from constructs import Construct

from . import settings
from .network import NetworkHandle


@dataclass(frozen=True)
class Endpoint:
    """Host and port of a provisioned store. Both are CloudFormation tokens until deploy time."""
    host: str
    port: str


@dataclass(frozen=True)
class DataStoreHandle:
    kind: str
    port: int
    network: NetworkHandle
    security_group: ec2.SecurityGroup
    connections: ec2.Connections
    endpoint: Endpoint
    resource: Any


class ManagedDataStore(ABC):
    kind: str
    port: int
    security_group_id: str

    def declare(self, scope: Construct, network: NetworkHandle) -> DataStoreHandle:
        security_group = network.security_group(scope, self.security_group_id)
        connections = ec2.Connections(
            security_groups=[security_group],
            default_port=ec2.Port.tcp(self.port)
        )
        resource, endpoint = self._declare_store(scope, network, security_group)
        return DataStoreHandle(
            kind=self.kind, port=self.port, network=network,
            security_group=security_group, connections=connections,
            endpoint=endpoint, resource=resource
        )

    @abstractmethod
    def _declare_store(
        self, scope: Construct, network: NetworkHandle, security_group: ec2.SecurityGroup
    ) -> Tuple[Any, Endpoint]:
        """Creates the store and returns it together with its endpoint."""


class CacheCluster(ManagedDataStore):
    kind = "cache"
    port = settings.REDIS_PORT
    security_group_id = "RedisSecurityGroup"

    def _declare_store(self, scope, network, security_group):
        # Tells ElastiCache which subnets to put cache nodes in.
        subnet_group = elasticache.CfnSubnetGroup(
            scope, "SubnetGroup",
            description=f"List of subnets used for redis cache {scope.node.id}",
            subnet_ids=network.subnet_ids
        )
        cluster = elasticache.CfnCacheCluster(
            scope, "RedisCluster",
            cache_node_type=settings.REDIS_NODE_TYPE,
            engine="redis",
            num_cache_nodes=settings.REDIS_NODE_COUNT,
            auto_minor_version_upgrade=True,
            cache_subnet_group_name=subnet_group.ref,
            vpc_security_group_ids=[security_group.security_group_id]
        )
        return cluster, Endpoint(
            host=cluster.attr_redis_endpoint_address,
            port=cluster.attr_redis_endpoint_port
        )


class DatabaseInstance(ManagedDataStore):
    kind = "database"
    port = settings.POSTGRES_PORT
    security_group_id = "RdsSecurityGroup"

    def _declare_store(self, scope, network, security_group):
        subnet_group = rds.CfnDBSubnetGroup(
            scope, "RdsSubnetGroup",
            db_subnet_group_description="Subnet for the PostgresDB",
            subnet_ids=network.subnet_ids
        )
        instance = rds.CfnDBInstance(
            scope, "DbInstance",
            engine=rds.DatabaseInstanceEngine.POSTGRES.engine_type,
            engine_version=settings.POSTGRES_ENGINE_VERSION,
            auto_minor_version_upgrade=True,
            allow_major_version_upgrade=False,
            multi_az=True,
            db_instance_class=settings.POSTGRES_INSTANCE_CLASS,
            storage_type=settings.POSTGRES_STORAGE_TYPE,
            allocated_storage=settings.POSTGRES_ALLOCATED_STORAGE_GB,
            db_name=settings.DB_NAME,
            master_username=settings.DB_USER,
            # Placeholder, flagged by tootcamp.environment together with DB_PASS.
            master_user_password=settings.PLACEHOLDER_DB_PASSWORD,
            vpc_security_groups=[security_group.security_group_id],
            db_subnet_group_name=subnet_group.ref
        )
        return instance, Endpoint(
            host=instance.attr_endpoint_address,
            port=instance.attr_endpoint_port
        )


class SearchDomain(ManagedDataStore):
    kind = "search"
    port = settings.SEARCH_PORT
    security_group_id = "EsSecurityGroup"

    def _declare_store(self, scope, network, security_group):
        # A single node domain without zone awareness takes exactly one subnet.
        domain = opensearch.Domain(
            scope, "EsDomain",
            version=opensearch.EngineVersion.OPENSEARCH_1_3,
            enable_version_upgrade=True,
            vpc=network.vpc,
            vpc_subnets=[ec2.SubnetSelection(subnets=network.subnets[:1])],
            security_groups=[security_group],
            capacity=opensearch.CapacityConfig(
                data_nodes=settings.SEARCH_DATA_NODES,
                data_node_instance_type=settings.SEARCH_INSTANCE_TYPE,
                multi_az_with_standby_enabled=False
            ),
            ebs=opensearch.EbsOptions(
                volume_size=settings.SEARCH_VOLUME_SIZE_GB,
                volume_type=ec2.EbsDeviceVolumeType.GP2
            ),
            access_policies=[
                iam.PolicyStatement(
                    actions=["es:ESHttpPost*", "es:ESHttpPut*"],
                    effect=iam.Effect.ALLOW,
                    principals=[iam.AnyPrincipal()],
                    resources=["*"]
                )
            ]
        )
        return domain, Endpoint(host=domain.domain_endpoint, port=str(self.port))


DATA_STORES = (CacheCluster(), DatabaseInstance(), SearchDomain())

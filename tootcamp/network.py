"""Network layer: the VPC every other resource is placed in."""
from dataclasses import dataclass
from typing import List

from aws_cdk import aws_ec2 as ec2
from constructs import Construct

from . import settings


@dataclass(frozen=True)
class NetworkHandle:
    vpc: ec2.Vpc
    subnets: List[ec2.ISubnet]

    @property
    def subnet_ids(self) -> List[str]:
        return [subnet.subnet_id for subnet in self.subnets]

    def security_group(self, scope: Construct, construct_id: str) -> ec2.SecurityGroup:
        """Creates a security group scoped to this network."""
        return ec2.SecurityGroup(scope, construct_id, vpc=self.vpc)


def declare_network(scope: Construct) -> NetworkHandle:
    vpc = ec2.Vpc(
        scope, "Vpc",
        max_azs=settings.MAX_AZS,
        subnet_configuration=[
            ec2.SubnetConfiguration(
                name=settings.SUBNET_NAME,
                subnet_type=ec2.SubnetType.PUBLIC,
                cidr_mask=settings.SUBNET_CIDR_MASK
            )
        ]
    )
    return NetworkHandle(vpc=vpc, subnets=list(vpc.public_subnets))

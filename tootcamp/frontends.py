"""Public entry points: load balancers, certificates and DNS records."""
from dataclasses import dataclass
from typing import Optional

from aws_cdk import (
    aws_certificatemanager as acm,
    aws_ec2 as ec2,
    aws_elasticloadbalancingv2 as elbv2,
    aws_route53 as route53,
    aws_route53_targets as route53_targets
)
from constructs import Construct

from . import settings
from .exceptions import AssemblyError
from .services import ServiceHandle


@dataclass(frozen=True)
class FrontHandle:
    hostname: str
    load_balancer: elbv2.ApplicationLoadBalancer
    listener: elbv2.ApplicationListener
    certificate: acm.Certificate
    record: route53.ARecord


def declare_front(
    scope: Construct,
    prefix: str,
    vpc: ec2.IVpc,
    zone: route53.IHostedZone,
    service: ServiceHandle,
    hostname: str,
    record_name: Optional[str] = None,
    health_check_path: Optional[str] = None
) -> FrontHandle:
    """
    Puts `service` behind an internet facing load balancer that redirects
    HTTP to HTTPS and terminates TLS with a DNS validated certificate for
    `hostname`, then points an alias record in `zone` at it. A
    `record_name` of None binds the zone apex.
    """
    if service.port is None:
        raise AssemblyError(f"Service '{service.name}' has no port to put a load balancer in front of.")

    load_balancer = elbv2.ApplicationLoadBalancer(
        scope, f"{prefix}LoadBalancer",
        vpc=vpc,
        internet_facing=True
    )
    load_balancer.add_redirect(
        source_protocol=elbv2.ApplicationProtocol.HTTP,
        target_protocol=elbv2.ApplicationProtocol.HTTPS
    )

    certificate = acm.Certificate(
        scope, f"{prefix}Cert",
        domain_name=hostname,
        validation=acm.CertificateValidation.from_dns(zone)
    )

    listener = load_balancer.add_listener(
        f"{prefix}Listener",
        port=settings.HTTPS_PORT,
        certificates=[certificate]
    )
    listener.add_targets(
        f"{prefix}Service",
        port=service.port,
        protocol=elbv2.ApplicationProtocol.HTTP,
        targets=[service.service],
        health_check=elbv2.HealthCheck(path=health_check_path) if health_check_path else None
    )

    record = route53.ARecord(
        scope, f"{prefix}Record",
        zone=zone,
        record_name=record_name,
        target=route53.RecordTarget.from_alias(route53_targets.LoadBalancerTarget(load_balancer))
    )

    return FrontHandle(
        hostname=hostname, load_balancer=load_balancer, listener=listener,
        certificate=certificate, record=record
    )

"""
AWS CDK Stack for a Mastodon instance.

The stack is declared as a build plan: network, data stores, media bucket,
container cluster, hosted zone, mail credentials, the shared container
environment, the three services, their load balancers and DNS records, the
grants between them, and finally the SES identity. Every step consumes the
handles produced by earlier steps, and the plan is checked for missing
handles before anything is declared.
"""
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional

from aws_cdk import (
    CfnOutput,
    Stack,
    aws_ecs as ecs,
    aws_route53 as route53,
    aws_s3 as s3,
    aws_ses as ses
)
from constructs import Construct

from . import settings
from .assembler import BuildPlan
from .config import StackConfig
from .datastores import DATA_STORES, DataStoreHandle
from .environment import ContainerEnvironment, build_environment
from .frontends import FrontHandle, declare_front
from .grants import ConnectionGrants, grant_bucket_access
from .hosted_zone import Route53ZoneResolver
from .mail import MailHandle, declare_email_identity, declare_mail
from .network import NetworkHandle, declare_network
from .services import SERVICE_SPECS, ServiceHandle, container_image, declare_service
from .storage import declare_media_bucket


@dataclass(frozen=True)
class StackHandles:
    stack: Stack
    network: NetworkHandle
    stores: Mapping[str, DataStoreHandle]
    bucket: s3.Bucket
    cluster: ecs.Cluster
    zone: route53.IPublicHostedZone
    mail: MailHandle
    environment: ContainerEnvironment
    services: Mapping[str, ServiceHandle]
    fronts: Mapping[str, FrontHandle]
    dns_bindings: Mapping[str, route53.ARecord]
    grants: ConnectionGrants
    email_identity: ses.EmailIdentity


class MastodonStack(Stack):
    """Everything needed to run one Mastodon instance on ECS Fargate."""

    def __init__(
        self, scope: Construct, construct_id: str,
        config: StackConfig,
        zone_resolver: Optional[Route53ZoneResolver] = None,
        image_directory: str = settings.IMAGE_DIRECTORY,
        **kwargs
    ) -> None:
        super().__init__(scope, construct_id, env=config.environment, **kwargs)

        self.config = config
        self.zone_resolver = zone_resolver or Route53ZoneResolver()
        self.image_directory = image_directory

        plan = self.build_plan()
        handles = plan.execute()
        self.handles = StackHandles(
            stack=self,
            **{field.name: handles[field.name] for field in fields(StackHandles) if field.name != "stack"}
        )

        CfnOutput(
            self, "WebURL",
            value=f"https://{config.domain}",
            description="Public URL of the Mastodon web interface."
        )
        CfnOutput(
            self, "StreamingURL",
            value=f"wss://{config.streaming_domain}",
            description="Public URL of the streaming API."
        )
        CfnOutput(
            self, "MediaBucketName",
            value=self.handles.bucket.bucket_name,
            description="Bucket holding user uploaded media."
        )

    def build_plan(self) -> BuildPlan:
        plan = BuildPlan(self.node.id)
        plan.add("network", lambda: declare_network(self))
        for store in DATA_STORES:
            plan.add(store.kind, lambda network, store=store: store.declare(self, network), requires=["network"])
        plan.add(
            "stores",
            lambda *handles: {handle.kind: handle for handle in handles},
            requires=[store.kind for store in DATA_STORES]
        )
        plan.add("bucket", lambda: declare_media_bucket(self))
        plan.add("cluster", self._declare_cluster, requires=["network"])
        plan.add("zone", self._declare_zone)
        plan.add("mail", lambda: declare_mail(self))
        plan.add("environment", self._declare_environment, requires=["stores", "bucket", "mail"])
        plan.add("services", self._declare_services, requires=["network", "cluster", "environment", "mail"])
        plan.add("fronts", self._declare_fronts, requires=["network", "zone", "services"])
        plan.add(
            "dns_bindings",
            lambda fronts: {name: front.record for name, front in fronts.items()},
            requires=["fronts"]
        )
        plan.add("grants", self._declare_grants, requires=["services", "stores", "bucket"])
        plan.add("email_identity", lambda zone: declare_email_identity(self, zone), requires=["zone"])
        return plan

    # =================================================================
    # ======================== PLAN STEPS =============================
    # =================================================================

    def _declare_cluster(self, network: NetworkHandle) -> ecs.Cluster:
        return ecs.Cluster(self, "EcsCluster", vpc=network.vpc)

    def _declare_zone(self) -> route53.IPublicHostedZone:
        zone = self.zone_resolver.resolve(self.config.domain, account=self.config.account)
        return route53.PublicHostedZone.from_public_hosted_zone_attributes(
            self, "Route53Zone",
            hosted_zone_id=zone.hosted_zone_id,
            zone_name=zone.zone_name
        )

    def _declare_environment(self, stores, bucket, mail: MailHandle) -> ContainerEnvironment:
        return build_environment(self.config, stores, bucket, mail.credentials, scope=self)

    def _declare_services(
        self, network: NetworkHandle, cluster: ecs.Cluster,
        environment: ContainerEnvironment, mail: MailHandle
    ) -> Dict[str, ServiceHandle]:
        image = container_image(self.image_directory)
        return {
            spec.name: declare_service(
                self, cluster, network.vpc, spec, image, environment,
                # Containers read the SMTP secret at start, so it has to be filled first.
                depends_on=[mail.credentials]
            )
            for spec in SERVICE_SPECS
        }

    def _declare_fronts(self, network: NetworkHandle, zone, services) -> Dict[str, FrontHandle]:
        return {
            "web": declare_front(
                self, "Web", network.vpc, zone, services["web"],
                hostname=self.config.domain,
                health_check_path=settings.HEALTH_CHECK_PATH
            ),
            "streaming": declare_front(
                self, "Streaming", network.vpc, zone, services["streaming"],
                hostname=self.config.streaming_domain,
                record_name=settings.STREAMING_SUBDOMAIN
            ),
        }

    def _declare_grants(self, services, stores, bucket) -> ConnectionGrants:
        grants = ConnectionGrants()
        for service in services.values():
            for store in stores.values():
                grants.grant(service, store)
            grant_bucket_access(bucket, service)
        return grants


def assemble(
    scope: Construct,
    config: StackConfig,
    construct_id: str = "Tootcamp",
    **kwargs: Any
) -> StackHandles:
    """Declares the whole stack for `config` and returns handles to its parts."""
    return MastodonStack(scope, construct_id, config=config, **kwargs).handles

"""
Mastodon container services.

All three services run the same image and share one environment; they
differ only in the command they start and whether they listen on a port.
"""
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from aws_cdk import aws_ec2 as ec2, aws_ecr_assets as ecr_assets, aws_ecs as ecs
from constructs import Construct, IDependable

from . import settings
from .environment import ContainerEnvironment


@dataclass(frozen=True)
class ServiceSpec:
    name: str
    construct_prefix: str
    command: Tuple[str, ...]
    log_prefix: str
    port: Optional[int] = None


SERVICE_SPECS = (
    ServiceSpec(
        name="web", construct_prefix="Web", log_prefix="web", port=settings.WEB_PORT,
        command=(
            "bash", "-c",
            f"bundle exec rake db:migrate; bundle exec rails s -p {settings.WEB_PORT} -b '0.0.0.0'"
        )
    ),
    ServiceSpec(
        name="streaming", construct_prefix="Streaming", log_prefix="streaming",
        port=settings.STREAMING_PORT, command=("yarn", "start")
    ),
    ServiceSpec(
        name="worker", construct_prefix="Sidekick", log_prefix="worker",
        command=("bundle", "exec", "sidekiq")
    ),
)


@dataclass(frozen=True)
class ServiceHandle:
    name: str
    port: Optional[int]
    vpc: ec2.IVpc
    service: ecs.FargateService
    task_definition: ecs.FargateTaskDefinition
    container: ecs.ContainerDefinition
    environment: ContainerEnvironment


def container_image(directory: str = settings.IMAGE_DIRECTORY) -> ecs.ContainerImage:
    """The Mastodon image, built from local source for x86_64 Fargate."""
    return ecs.ContainerImage.from_asset(directory, platform=ecr_assets.Platform.LINUX_AMD64)


def declare_service(
    scope: Construct,
    cluster: ecs.Cluster,
    vpc: ec2.IVpc,
    spec: ServiceSpec,
    image: ecs.ContainerImage,
    environment: ContainerEnvironment,
    depends_on: Sequence[IDependable] = ()
) -> ServiceHandle:
    task_definition = ecs.FargateTaskDefinition(scope, f"{spec.construct_prefix}Task")

    container = task_definition.add_container(
        spec.name,
        image=image,
        environment=environment.variables,
        secrets=environment.secrets,
        command=list(spec.command),
        logging=ecs.LogDriver.aws_logs(stream_prefix=spec.log_prefix)
    )
    if spec.port is not None:
        container.add_port_mappings(ecs.PortMapping(
            container_port=spec.port,
            protocol=ecs.Protocol.TCP
        ))

    service = ecs.FargateService(
        scope, f"{spec.construct_prefix}Service",
        task_definition=task_definition,
        cluster=cluster,
        assign_public_ip=True
    )
    for dependency in depends_on:
        service.node.add_dependency(dependency)

    return ServiceHandle(
        name=spec.name, port=spec.port, vpc=vpc, service=service,
        task_definition=task_definition, container=container, environment=environment
    )

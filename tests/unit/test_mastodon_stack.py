import dataclasses
from pathlib import Path

import aws_cdk as core
import aws_cdk.assertions as assertions
import pytest
from aws_cdk import aws_ec2 as ec2

from tootcamp import mail, settings
from tootcamp.exceptions import AssemblyError, GrantError
from tootcamp.mastodon_stack import assemble
from tootcamp.network import NetworkHandle

Match = assertions.Match


def _containers(template):
    containers = {}
    for task in template.find_resources("AWS::ECS::TaskDefinition").values():
        for container in task["Properties"]["ContainerDefinitions"]:
            containers[container["Name"]] = container
    return containers


# =================================================================
# ===================== SERVICES & ENVIRONMENT ====================
# =================================================================

def test_declares_exactly_three_services(handles, template):
    template.resource_count_is("AWS::ECS::Service", 3)
    template.resource_count_is("AWS::ECS::TaskDefinition", 3)
    assert set(handles.services) == {"web", "streaming", "worker"}


def test_services_get_public_ips(template):
    services = template.find_resources("AWS::ECS::Service", {
        "Properties": {
            "NetworkConfiguration": {"AwsvpcConfiguration": {"AssignPublicIp": "ENABLED"}}
        }
    })
    assert len(services) == 3


def test_service_commands_and_ports(template):
    containers = _containers(template)

    assert containers["web"]["Command"] == [
        "bash", "-c",
        "bundle exec rake db:migrate; bundle exec rails s -p 3000 -b '0.0.0.0'"
    ]
    assert containers["web"]["PortMappings"] == [{"ContainerPort": 3000, "Protocol": "tcp"}]

    assert containers["streaming"]["Command"] == ["yarn", "start"]
    assert containers["streaming"]["PortMappings"] == [{"ContainerPort": 4000, "Protocol": "tcp"}]

    assert containers["worker"]["Command"] == ["bundle", "exec", "sidekiq"]
    assert "PortMappings" not in containers["worker"]


def test_environment_is_shared_by_every_service(handles, template):
    environments = [service.environment for service in handles.services.values()]
    assert all(environment is handles.environment for environment in environments)

    rendered = [container["Environment"] for container in _containers(template).values()]
    assert all(environment == rendered[0] for environment in rendered)


def test_environment_contract(handles):
    assert set(handles.environment.variables) == {
        "DB_HOST", "DB_PORT", "DB_USER", "DB_NAME", "DB_PASS",
        "LOCAL_DOMAIN", "STREAMING_API_BASE_URL",
        "REDIS_HOST", "REDIS_PORT",
        "SECRET_KEY_BASE", "OTP_SECRET",
        "S3_ENABLED", "S3_BUCKET", "S3_REGION",
        "ES_ENABLED", "ES_HOST", "ES_PORT",
        "SMTP_SERVER", "SMTP_PORT", "SMTP_FROM_ADDRESS",
        "VAPID_PRIVATE_KEY", "VAPID_PUBLIC_KEY",
    }
    assert set(handles.environment.secrets) == {"SMTP_LOGIN", "SMTP_PASSWORD"}

    variables = handles.environment.variables
    assert variables["LOCAL_DOMAIN"] == "example.org"
    assert variables["STREAMING_API_BASE_URL"] == "wss://stream.example.org"
    assert variables["SMTP_SERVER"] == "email-smtp.eu-central-1.amazonaws.com"
    assert variables["S3_REGION"] == "eu-central-1"
    assert variables["ES_PORT"] == "80"


def test_smtp_credentials_are_secret_references(template):
    for container in _containers(template).values():
        names = {secret["Name"] for secret in container["Secrets"]}
        assert names == {"SMTP_LOGIN", "SMTP_PASSWORD"}
        assert "SMTP_LOGIN" not in {variable["Name"] for variable in container["Environment"]}


def test_placeholder_secrets_are_flagged(handles):
    assert set(handles.environment.placeholders) == {
        "DB_PASS", "SECRET_KEY_BASE", "OTP_SECRET", "VAPID_PRIVATE_KEY", "VAPID_PUBLIC_KEY"
    }
    annotations = assertions.Annotations.from_stack(handles.stack)
    annotations.has_warning("*", Match.string_like_regexp("DB_PASS"))
    annotations.has_warning("*", Match.string_like_regexp("VAPID_PRIVATE_KEY"))


# =================================================================
# ======================== DNS & LOAD BALANCERS ===================
# =================================================================

def test_declares_two_dns_bindings(handles, template):
    records = template.find_resources("AWS::Route53::RecordSet", {"Properties": {"Type": "A"}})
    names = sorted(record["Properties"]["Name"] for record in records.values())

    assert names == ["example.org.", "stream.example.org."]
    assert set(handles.dns_bindings) == {"web", "streaming"}
    for record in records.values():
        assert record["Properties"]["HostedZoneId"] == "Z0123456789EXAMPLE"


def test_https_listeners_with_redirect(template):
    https = template.find_resources("AWS::ElasticLoadBalancingV2::Listener", {
        "Properties": {"Port": 443, "Protocol": "HTTPS"}
    })
    assert len(https) == 2

    redirects = template.find_resources("AWS::ElasticLoadBalancingV2::Listener", {
        "Properties": {
            "Port": 80,
            "Protocol": "HTTP",
            "DefaultActions": [Match.object_like({
                "Type": "redirect",
                "RedirectConfig": Match.object_like({"Protocol": "HTTPS", "Port": "443"})
            })]
        }
    })
    assert len(redirects) == 2


def test_dns_validated_certificates(template):
    certificates = template.find_resources("AWS::CertificateManager::Certificate")
    domains = sorted(cert["Properties"]["DomainName"] for cert in certificates.values())

    assert domains == ["example.org", "stream.example.org"]
    for cert in certificates.values():
        assert cert["Properties"]["ValidationMethod"] == "DNS"


def test_only_web_has_health_check(template):
    groups = {
        group["Properties"]["Port"]: group["Properties"]
        for group in template.find_resources("AWS::ElasticLoadBalancingV2::TargetGroup").values()
    }
    assert set(groups) == {3000, 4000}
    assert groups[3000]["HealthCheckPath"] == "/health"
    assert "HealthCheckPath" not in groups[4000]


# =================================================================
# ======================= DATA STORES & GRANTS ====================
# =================================================================

def test_data_stores(template):
    template.has_resource_properties("AWS::ElastiCache::CacheCluster", {
        "Engine": "redis",
        "CacheNodeType": "cache.t4g.micro",
        "NumCacheNodes": 1
    })
    template.has_resource_properties("AWS::RDS::DBInstance", {
        "Engine": "postgres",
        "EngineVersion": "13.7",
        "MultiAZ": True,
        "DBName": "mastodon"
    })
    template.resource_count_is("AWS::OpenSearchService::Domain", 1)
    template.has_resource_properties("AWS::OpenSearchService::Domain", {
        "EngineVersion": "OpenSearch_1.3",
        "EBSOptions": Match.object_like({"EBSEnabled": True, "VolumeType": "gp2"})
    })


def test_vpc_spans_three_public_subnets(handles, template):
    template.resource_count_is("AWS::EC2::VPC", 1)
    template.resource_count_is("AWS::EC2::Subnet", settings.MAX_AZS)
    template.resource_count_is("AWS::EC2::NatGateway", 0)
    assert len(handles.network.subnets) == settings.MAX_AZS
    template.has_resource_properties("AWS::EC2::Subnet", {"CidrBlock": "10.0.0.0/19"})


@pytest.mark.parametrize("kind, port", [("cache", 6379), ("database", 5432), ("search", 80)])
def test_store_security_group_only_opens_its_port(handles, template, kind, port):
    group_id = handles.stack.resolve(handles.stores[kind].security_group.security_group_id)
    rules = [
        resource["Properties"]
        for resource in template.find_resources("AWS::EC2::SecurityGroupIngress").values()
        if resource["Properties"]["GroupId"] == group_id
    ]

    assert len(rules) == len(handles.services)
    assert {(rule["FromPort"], rule["ToPort"]) for rule in rules} == {(port, port)}


def test_repeated_grant_is_a_no_op(handles):
    def ingress_rules():
        return [c for c in handles.stack.node.find_all() if isinstance(c, ec2.CfnSecurityGroupIngress)]

    before = len(ingress_rules())
    assert (handles.services["web"], handles.stores["cache"]) in handles.grants
    assert handles.grants.grant(handles.services["web"], handles.stores["cache"]) is False
    assert len(ingress_rules()) == before
    assert len(handles.grants) == 9


def test_second_store_of_same_kind_is_granted(config, image_directory, zone_resolver):
    handles = assemble(core.App(), config, zone_resolver=zone_resolver, image_directory=image_directory)
    cache = handles.stores["cache"]
    security_group = handles.network.security_group(handles.stack, "ReplicaRedisSecurityGroup")
    replica = dataclasses.replace(
        cache,
        security_group=security_group,
        connections=ec2.Connections(security_groups=[security_group], default_port=ec2.Port.tcp(cache.port))
    )

    assert handles.grants.grant(handles.services["web"], replica) is True
    assert (handles.services["web"], replica) in handles.grants
    assert len(handles.grants) == 10

    group_id = handles.stack.resolve(security_group.security_group_id)
    rules = [
        resource["Properties"]
        for resource in assertions.Template.from_stack(handles.stack)
        .find_resources("AWS::EC2::SecurityGroupIngress").values()
        if resource["Properties"]["GroupId"] == group_id
    ]
    assert {(rule["FromPort"], rule["ToPort"]) for rule in rules} == {(6379, 6379)}


def test_grant_rejects_non_canonical_port(handles):
    store = dataclasses.replace(handles.stores["cache"], port=8080)
    with pytest.raises(GrantError):
        handles.grants.grant(handles.services["web"], store)


def test_grant_rejects_other_network(handles):
    """A network with the same construct path in another app is still another network."""
    other_stack = core.Stack(core.App(), handles.stack.node.id)
    other_network = NetworkHandle(vpc=ec2.Vpc(other_stack, "Vpc"), subnets=[])
    assert other_network.vpc.node.path == handles.network.vpc.node.path

    store = dataclasses.replace(handles.stores["database"], network=other_network)
    with pytest.raises(GrantError):
        handles.grants.grant(handles.services["worker"], store)


def test_grant_rejects_store_of_identical_stack(handles, config, image_directory, zone_resolver):
    other = assemble(core.App(), config, zone_resolver=zone_resolver, image_directory=image_directory)

    with pytest.raises(GrantError):
        handles.grants.grant(handles.services["web"], other.stores["cache"])
    assert len(handles.grants) == 9


def test_services_can_write_media_and_acls(template):
    def grants_put_acl(policy):
        for statement in policy["Properties"]["PolicyDocument"]["Statement"]:
            actions = statement["Action"]
            if "s3:PutObjectAcl" in (actions if isinstance(actions, list) else [actions]):
                return True
        return False

    policies = template.find_resources("AWS::IAM::Policy").values()
    assert len([policy for policy in policies if grants_put_acl(policy)]) == 3


# =================================================================
# ========================= STORAGE & MAIL ========================
# =================================================================

def test_media_bucket_is_always_publicly_readable(template):
    """Regression guard: media is served straight from the bucket."""
    assert settings.PUBLIC_READ_ACCESS is True

    template.has_resource_properties("AWS::S3::BucketPolicy", {
        "PolicyDocument": {
            "Statement": Match.array_with([Match.object_like({
                "Action": "s3:GetObject",
                "Effect": "Allow",
                "Principal": {"AWS": "*"}
            })])
        }
    })
    template.has_resource_properties("AWS::S3::Bucket", {
        "PublicAccessBlockConfiguration": {
            "BlockPublicAcls": False,
            "BlockPublicPolicy": False,
            "IgnorePublicAcls": False,
            "RestrictPublicBuckets": False
        }
    })


def test_mail_user_credentials_and_identity(template):
    template.has_resource_properties("AWS::IAM::User", {"UserName": "ses-user"})
    template.has_resource_properties("AWS::CloudFormation::CustomResource", {
        "UserName": Match.any_value(),
        "SecretArn": Match.any_value(),
        "Region": "eu-central-1"
    })
    template.resource_count_is("AWS::SES::EmailIdentity", 1)
    template.has_resource_properties("AWS::SES::EmailIdentity", {"EmailIdentity": "example.org"})


def test_smtp_handler_asset_is_in_checkout():
    assert Path(mail.HANDLER_ASSET, "app.py").is_file()


def test_missing_smtp_handler_asset_fails_assembly(monkeypatch, tmp_path, config, image_directory, zone_resolver):
    monkeypatch.setattr(mail, "HANDLER_ASSET", str(tmp_path / "smtp_credentials"))

    with pytest.raises(AssemblyError, match="source checkout"):
        assemble(core.App(), config, zone_resolver=zone_resolver, image_directory=image_directory)


def test_outputs(template):
    template.has_output("WebURL", {"Value": "https://example.org"})
    template.has_output("StreamingURL", {"Value": "wss://stream.example.org"})


# =================================================================
# ============================ ASSEMBLY ===========================
# =================================================================

def test_assembly_is_deterministic(config, image_directory, zone_resolver):
    first = assemble(core.App(), config, zone_resolver=zone_resolver, image_directory=image_directory)
    second = assemble(core.App(), config, zone_resolver=zone_resolver, image_directory=image_directory)

    first_template = assertions.Template.from_stack(first.stack).to_json()
    second_template = assertions.Template.from_stack(second.stack).to_json()

    assert first_template == second_template
    assert zone_resolver.lookups == ["example.org", "example.org"]

import os

import aws_cdk as core
import aws_cdk.assertions as assertions
import pytest

from tootcamp.config import StackConfig
from tootcamp.hosted_zone import HostedZoneRef
from tootcamp.mastodon_stack import assemble

DOMAIN = "example.org"


class StaticZoneResolver:
    """Resolves every domain to a fixed zone id, without calling Route 53."""

    def __init__(self, hosted_zone_id="Z0123456789EXAMPLE"):
        self.hosted_zone_id = hosted_zone_id
        self.lookups = []

    def resolve(self, domain, account=None):
        self.lookups.append(domain)
        return HostedZoneRef(hosted_zone_id=self.hosted_zone_id, zone_name=domain)


@pytest.fixture
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture(scope="session")
def config():
    return StackConfig(
        domain=DOMAIN,
        account="123456789012",
        region="eu-central-1",
        smtp_from_address=f"notifications@{DOMAIN}"
    )


@pytest.fixture(scope="session")
def image_directory(tmp_path_factory):
    """A stand-in for the Mastodon source checkout the container image is built from."""
    directory = tmp_path_factory.mktemp("mastodon")
    (directory / "Dockerfile").write_text("FROM tootsuite/mastodon:v4.0.2\n")
    return str(directory)


@pytest.fixture(scope="module")
def handles(config, image_directory):
    app = core.App()
    return assemble(
        app, config,
        zone_resolver=StaticZoneResolver(),
        image_directory=image_directory
    )


@pytest.fixture(scope="module")
def template(handles):
    return assertions.Template.from_stack(handles.stack)


@pytest.fixture
def zone_resolver():
    return StaticZoneResolver()

"""
Per-deployment configuration for the Mastodon stack.

A deployment is described by exactly four values: the AWS account and
region to deploy into, the domain the instance is served from, and the
address notification mails are sent from.
"""
import os
import re
from dataclasses import dataclass

import aws_cdk as cdk
from constructs import Node

from .exceptions import ConfigurationError
from . import settings

_LABEL = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")
_ACCOUNT = re.compile(r"^\d{12}$")
_REGION = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d+$")
_MAX_DOMAIN_LENGTH = 253


def validate_domain(domain: str) -> str:
    """Returns the normalised domain or raises ConfigurationError."""
    normalised = domain.strip().lower().rstrip(".")
    if len(normalised) > _MAX_DOMAIN_LENGTH:
        raise ConfigurationError(f"Domain '{domain}' is longer than {_MAX_DOMAIN_LENGTH} characters.")
    labels = normalised.split(".")
    if len(labels) < 2 or not all(_LABEL.match(label) for label in labels):
        raise ConfigurationError(f"Domain '{domain}' is not a valid DNS name.")
    return normalised


@dataclass(frozen=True)
class StackConfig:
    """The four logical parameters of a deployment."""
    domain: str
    account: str
    region: str
    smtp_from_address: str

    def __post_init__(self):
        for field_name in ("domain", "account", "region", "smtp_from_address"):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(f"'{field_name}' is required.")

        object.__setattr__(self, "domain", validate_domain(self.domain))

        if not _ACCOUNT.match(self.account):
            raise ConfigurationError(f"Account '{self.account}' is not a 12 digit AWS account id.")
        if not _REGION.match(self.region):
            raise ConfigurationError(f"Region '{self.region}' is not a valid AWS region.")

        local_part, _, sender_domain = self.smtp_from_address.partition("@")
        if not local_part or not sender_domain:
            raise ConfigurationError(
                f"Sender address '{self.smtp_from_address}' must look like 'name@domain'."
            )
        validate_domain(sender_domain)

    @classmethod
    def from_context(cls, node: Node) -> "StackConfig":
        """
        Reads the configuration from CDK context, e.g.
        `cdk deploy -c domain=example.org -c smtp_from_address=notifications@example.org`.

        Account and region fall back to the defaults the cdk CLI exports.
        """
        return cls(
            domain=node.try_get_context("domain"),
            account=node.try_get_context("account") or os.getenv("CDK_DEFAULT_ACCOUNT"),
            region=node.try_get_context("region") or os.getenv("CDK_DEFAULT_REGION"),
            smtp_from_address=node.try_get_context("smtp_from_address"),
        )

    @property
    def environment(self) -> cdk.Environment:
        return cdk.Environment(account=self.account, region=self.region)

    @property
    def streaming_domain(self) -> str:
        return f"{settings.STREAMING_SUBDOMAIN}.{self.domain}"

    @property
    def smtp_server(self) -> str:
        return f"email-smtp.{self.region}.amazonaws.com"

"""
Hosted zone lookup.

The zone for the configured domain must already exist and be delegated;
the stack only adds records to it. The lookup happens once, synchronously,
while the stack is being assembled, with the credentials of the account the
stack is deployed to.
"""
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import LookupFailure


@dataclass(frozen=True)
class HostedZoneRef:
    hosted_zone_id: str
    zone_name: str


class Route53ZoneResolver:
    """Finds the single public Route 53 hosted zone for a domain."""

    def __init__(self, client=None, sts_client=None):
        self._client = client
        self._sts_client = sts_client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("route53")
        return self._client

    @property
    def sts_client(self):
        if self._sts_client is None:
            self._sts_client = boto3.client("sts")
        return self._sts_client

    def check_account(self, account: str) -> None:
        """Raises LookupFailure unless the current credentials belong to `account`."""
        try:
            caller_account = self.sts_client.get_caller_identity()["Account"]
        except (ClientError, BotoCoreError) as e:
            raise LookupFailure(f"Could not determine the AWS account of the current credentials: {e}") from e

        if caller_account != account:
            raise LookupFailure(
                f"Credentials belong to account {caller_account}, "
                f"but the stack is deployed to account {account}."
            )

    def resolve(self, domain: str, account: Optional[str] = None) -> HostedZoneRef:
        if account is not None:
            self.check_account(account)

        zone_name = f"{domain.rstrip('.')}."
        try:
            response = self.client.list_hosted_zones_by_name(DNSName=zone_name)
        except (ClientError, BotoCoreError) as e:
            raise LookupFailure(f"Could not look up hosted zone for '{domain}': {e}") from e

        matches = [
            zone for zone in response.get("HostedZones", [])
            if zone["Name"] == zone_name and not zone.get("Config", {}).get("PrivateZone", False)
        ]
        if not matches:
            raise LookupFailure(f"No public hosted zone found for '{domain}'.")
        if len(matches) > 1:
            zone_ids = ", ".join(zone["Id"].split("/")[-1] for zone in matches)
            raise LookupFailure(f"Found {len(matches)} public hosted zones for '{domain}': {zone_ids}.")

        return HostedZoneRef(
            hosted_zone_id=matches[0]["Id"].split("/")[-1],
            zone_name=zone_name.rstrip(".")
        )

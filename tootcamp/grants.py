"""Network and storage grants from services to the resources they use."""
from aws_cdk import aws_s3 as s3

from . import settings
from .datastores import DataStoreHandle
from .exceptions import GrantError
from .services import ServiceHandle


class ConnectionGrants:
    """
    Opens data store ports to services.

    Each (service, store) pair is granted once; asking again is a no-op.
    Pairs are keyed by the service and the store security group, so two
    stores of the same kind are granted separately. Only the canonical store
    ports can be opened, and only inside the network the service runs in.
    """

    def __init__(self) -> None:
        self._granted = set()

    def __len__(self) -> int:
        return len(self._granted)

    def __contains__(self, pair) -> bool:
        service, store = pair
        return self._key(service, store) in self._granted

    @staticmethod
    def _key(service: ServiceHandle, store: DataStoreHandle):
        return (service.service.node.addr, store.security_group.node.addr)

    def grant(self, service: ServiceHandle, store: DataStoreHandle) -> bool:
        """Returns True if a new grant was made."""
        if store.port not in settings.CANONICAL_PORTS:
            raise GrantError(f"Port {store.port} of '{store.kind}' is not a data store port.")
        if service.vpc is not store.network.vpc:
            raise GrantError(f"Service '{service.name}' and '{store.kind}' are in different networks.")

        key = self._key(service, store)
        if key in self._granted:
            return False

        service.service.connections.allow_to_default_port(
            store.connections,
            f"{service.name} to {store.kind}"
        )
        self._granted.add(key)
        return True


def grant_bucket_access(bucket: s3.IBucket, service: ServiceHandle) -> None:
    task_role = service.task_definition.task_role
    bucket.grant_read_write(task_role)
    bucket.grant_put_acl(task_role)

"""
The container environment shared by every Mastodon service.

The environment is built once, frozen, and the same object is handed to the
web, streaming and worker task definitions. Its keys are read by the
Mastodon application at startup, so renaming one breaks the containers.

Several values are still fixed placeholders (database password, Rails and
OTP secrets, VAPID keys). Each one is reported as a
`PlaceholderSecretWarning` and as a synth warning on the stack. They need to
become Secrets Manager references like SMTP_LOGIN/SMTP_PASSWORD before the
stack hosts real users; where those secrets come from is left to the
deployment.
"""
import warnings
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from aws_cdk import Annotations, aws_ecs as ecs, aws_s3 as s3
from constructs import Construct

from . import settings
from .config import StackConfig
from .datastores import DataStoreHandle
from .exceptions import ConfigurationError, PlaceholderSecretWarning
from .mail import SmtpCredentials


class FrozenDict(dict):
    """A dict that cannot be changed after construction."""

    def _readonly(self, *args, **kwargs):
        raise TypeError(f"{type(self).__name__} is read-only")

    __setitem__ = _readonly
    __delitem__ = _readonly
    __ior__ = _readonly
    clear = _readonly
    pop = _readonly
    popitem = _readonly
    setdefault = _readonly
    update = _readonly


@dataclass(frozen=True)
class ContainerEnvironment:
    variables: FrozenDict
    secrets: FrozenDict
    placeholders: Tuple[str, ...]


class EnvironmentBuilder:
    def __init__(self, scope: Optional[Construct] = None) -> None:
        self._scope = scope
        self._variables = {}
        self._secrets = {}
        self._placeholders = []

    def _claim(self, key: str) -> None:
        if key in self._variables or key in self._secrets:
            raise ConfigurationError(f"Environment key '{key}' is set twice.")

    def set(self, key: str, value: str) -> "EnvironmentBuilder":
        self._claim(key)
        self._variables[key] = value
        return self

    def placeholder(self, key: str, value: str) -> "EnvironmentBuilder":
        """Sets a value that should come from a secret store but does not yet."""
        self.set(key, value)
        self._placeholders.append(key)
        return self

    def secret(self, key: str, secret: ecs.Secret) -> "EnvironmentBuilder":
        self._claim(key)
        self._secrets[key] = secret
        return self

    def build(self) -> ContainerEnvironment:
        for key in self._placeholders:
            message = (
                f"{key} is deployed as a fixed placeholder value; "
                "replace it with a Secrets Manager reference."
            )
            warnings.warn(message, PlaceholderSecretWarning, stacklevel=2)
            if self._scope is not None:
                Annotations.of(self._scope).add_warning_v2(f"tootcamp:placeholder-secret:{key}", message)

        return ContainerEnvironment(
            variables=FrozenDict(self._variables),
            secrets=FrozenDict(self._secrets),
            placeholders=tuple(self._placeholders)
        )


def build_environment(
    config: StackConfig,
    stores: Mapping[str, DataStoreHandle],
    bucket: s3.IBucket,
    credentials: SmtpCredentials,
    scope: Optional[Construct] = None
) -> ContainerEnvironment:
    database = stores["database"].endpoint
    cache = stores["cache"].endpoint
    search = stores["search"].endpoint

    return (
        EnvironmentBuilder(scope)
        .set("DB_HOST", database.host)
        .set("DB_PORT", database.port)
        .set("DB_USER", settings.DB_USER)
        .set("DB_NAME", settings.DB_NAME)
        .placeholder("DB_PASS", settings.PLACEHOLDER_DB_PASSWORD)
        .set("LOCAL_DOMAIN", config.domain)
        .set("STREAMING_API_BASE_URL", f"wss://{config.streaming_domain}")
        .set("REDIS_HOST", cache.host)
        .set("REDIS_PORT", cache.port)
        .placeholder("SECRET_KEY_BASE", settings.PLACEHOLDER_SECRET_KEY_BASE)
        .placeholder("OTP_SECRET", settings.PLACEHOLDER_OTP_SECRET)
        .set("S3_ENABLED", "true")
        .set("S3_BUCKET", bucket.bucket_name)
        .set("S3_REGION", config.region)
        .set("ES_ENABLED", "true")
        .set("ES_HOST", search.host)
        .set("ES_PORT", search.port)
        .set("SMTP_SERVER", config.smtp_server)
        .set("SMTP_PORT", settings.SMTP_PORT)
        .set("SMTP_FROM_ADDRESS", config.smtp_from_address)
        .placeholder("VAPID_PRIVATE_KEY", settings.PLACEHOLDER_VAPID_PRIVATE_KEY)
        .placeholder("VAPID_PUBLIC_KEY", settings.PLACEHOLDER_VAPID_PUBLIC_KEY)
        .secret("SMTP_LOGIN", credentials.username)
        .secret("SMTP_PASSWORD", credentials.password)
        .build()
    )

"""
Outbound mail: an SES sending user with SMTP credentials kept in Secrets
Manager, and the SES identity for the instance domain.
"""
from dataclasses import dataclass
from pathlib import Path

from aws_cdk import (
    CustomResource,
    Duration,
    Stack,
    aws_ecs as ecs,
    aws_iam as iam,
    aws_lambda as _lambda,
    aws_route53 as route53,
    aws_secretsmanager as secretsmanager,
    aws_ses as ses,
    custom_resources as cr
)
from constructs import Construct

from . import settings
from .exceptions import AssemblyError

# The handler ships with the source checkout, not with the installed package;
# the CDK app is run from the checkout through cdk.json.
HANDLER_ASSET = str(Path(__file__).resolve().parent.parent / "src" / "smtp_credentials")


def handler_code() -> _lambda.Code:
    if not Path(HANDLER_ASSET, "app.py").is_file():
        raise AssemblyError(
            f"SMTP credentials handler not found in {HANDLER_ASSET}; "
            "run the app from a source checkout."
        )
    return _lambda.Code.from_asset(HANDLER_ASSET)


class SmtpCredentials(Construct):
    """
    SES SMTP credentials for an IAM user.

    The access key is created by a custom resource at deploy time and only
    ever written to `secret`, so containers reference it without the key
    appearing in the template.
    """

    def __init__(self, scope: Construct, construct_id: str, user: iam.User) -> None:
        super().__init__(scope, construct_id)

        user.add_to_policy(iam.PolicyStatement(
            actions=["ses:SendRawEmail"],
            resources=["*"],
            effect=iam.Effect.ALLOW
        ))

        self.secret = secretsmanager.Secret(
            self, "Secret",
            description=f"SES SMTP credentials for {user.node.id}"
        )

        handler = _lambda.Function(
            self, "Handler",
            runtime=_lambda.Runtime.PYTHON_3_11, handler="app.handler",
            code=handler_code(), timeout=Duration.seconds(30)
        )
        handler.add_to_role_policy(iam.PolicyStatement(
            actions=["iam:CreateAccessKey", "iam:DeleteAccessKey"],
            resources=[user.user_arn],
            effect=iam.Effect.ALLOW
        ))
        self.secret.grant_write(handler)

        provider = cr.Provider(self, "Provider", on_event_handler=handler)
        self.resource = CustomResource(
            self, "Resource",
            service_token=provider.service_token,
            properties={
                "UserName": user.user_name,
                "SecretArn": self.secret.secret_arn,
                "Region": Stack.of(self).region
            }
        )
        self.resource.node.add_dependency(handler)

    @property
    def username(self) -> ecs.Secret:
        return ecs.Secret.from_secrets_manager(self.secret, "username")

    @property
    def password(self) -> ecs.Secret:
        return ecs.Secret.from_secrets_manager(self.secret, "password")


@dataclass(frozen=True)
class MailHandle:
    user: iam.User
    credentials: SmtpCredentials


def declare_mail(scope: Construct) -> MailHandle:
    user = iam.User(scope, "SesUser", user_name=settings.SES_USER_NAME)
    credentials = SmtpCredentials(scope, "SmtpCredentials", user=user)
    return MailHandle(user=user, credentials=credentials)


def declare_email_identity(scope: Construct, zone: route53.IPublicHostedZone) -> ses.EmailIdentity:
    return ses.EmailIdentity(
        scope, "SesIdentity",
        identity=ses.Identity.public_hosted_zone(zone)
    )

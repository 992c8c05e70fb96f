"""Media storage for user uploads."""
from aws_cdk import aws_s3 as s3
from constructs import Construct

from . import settings


def declare_media_bucket(scope: Construct) -> s3.Bucket:
    """
    Declares the media bucket. Uploaded media is served to browsers directly
    from the bucket, so public reads and object ACLs are both enabled.
    """
    return s3.Bucket(
        scope, "S3Bucket",
        public_read_access=settings.PUBLIC_READ_ACCESS,
        block_public_access=s3.BlockPublicAccess(
            block_public_acls=False,
            ignore_public_acls=False,
            block_public_policy=False,
            restrict_public_buckets=False
        ),
        object_ownership=s3.ObjectOwnership.BUCKET_OWNER_PREFERRED
    )

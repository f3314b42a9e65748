from __future__ import annotations

import pulumi
import pulumi_aws as aws

import sakura

READ_ACTIONS = [
    "s3:GetObject",
    "s3:GetObjectTagging",
    "s3:ListBucket",
]

READ_WRITE_ACTIONS = [
    "s3:AbortMultipartUpload",
    "s3:DeleteObject",
    "s3:GetBucketLocation",
    "s3:GetObject",
    "s3:GetObjectTagging",
    "s3:ListBucket",
    "s3:PutObject",
    "s3:PutObjectTagging",
]


def define_backup_bucket(
    name: str,
    spec: sakura.BucketSpec,
    required_tags: dict[str, str] | None = None,
    opts: pulumi.ResourceOptions | None = None,
) -> aws.s3.Bucket:
    if required_tags is None:
        required_tags = {}

    if opts is None:
        opts = pulumi.ResourceOptions()

    bucket = aws.s3.Bucket(
        name,
        aws.s3.BucketArgs(
            bucket=spec.name,
            acl="private",
            # emptied on destroy unless the bucket outlives the stack
            force_destroy=spec.auto_delete_objects,
            versioning=aws.s3.BucketVersioningArgs(enabled=spec.versioned),
            server_side_encryption_configuration=aws.s3.BucketServerSideEncryptionConfigurationArgs(
                rule=aws.s3.BucketServerSideEncryptionConfigurationRuleArgs(
                    apply_server_side_encryption_by_default=aws.s3.BucketServerSideEncryptionConfigurationRuleApplyServerSideEncryptionByDefaultArgs(
                        sse_algorithm=spec.encryption.sse_algorithm,
                    ),
                    bucket_key_enabled=spec.encryption == sakura.BucketEncryption.KMS_MANAGED,
                ),
            ),
            tags=required_tags | {"Name": spec.name},
        ),
        opts=pulumi.ResourceOptions.merge(
            opts,
            pulumi.ResourceOptions(retain_on_delete=spec.removal_policy == sakura.RemovalPolicy.RETAIN),
        ),
    )

    aws.s3.BucketPublicAccessBlock(
        f"{name}-public-access-block",
        bucket=bucket.id,
        block_public_acls=True,
        block_public_policy=True,
        ignore_public_acls=True,
        restrict_public_buckets=True,
        opts=pulumi.ResourceOptions(parent=bucket),
    )

    return bucket


def define_bucket_policy(
    name: str,
    bucket_arn: pulumi.Input[str],
    policy_name: str,
    access: sakura.BucketAccess,
    policy_description: str = "",
    required_tags: dict[str, str] | None = None,
    opts: pulumi.ResourceOptions | None = None,
) -> aws.iam.Policy:
    if required_tags is None:
        required_tags = {}

    if opts is None:
        opts = pulumi.ResourceOptions()

    if access == sakura.BucketAccess.READ:
        actions = READ_ACTIONS
        policy_tag = f"{name}-s3-bucket-read-only-policy"
        verb = "read"
    elif access == sakura.BucketAccess.READ_WRITE:
        actions = READ_WRITE_ACTIONS
        policy_tag = f"{name}-s3-bucket-policy"
        verb = "read/write"
    else:
        msg = f"unknown bucket access: {access}"
        raise sakura.ValidationError(msg)

    arn = pulumi.Output.from_input(bucket_arn)
    actual_policy_description: str | pulumi.Output[str] = policy_description or arn.apply(
        lambda a: f"Sakura policy for {name} to {verb} {a}"
    )

    policy_doc = aws.iam.get_policy_document_output(
        statements=[
            aws.iam.GetPolicyDocumentStatementArgs(
                actions=actions,
                resources=[arn, arn.apply(lambda a: f"{a}/*")],
            ),
        ],
        opts=pulumi.InvokeOptions(parent=opts.parent),
    )

    return aws.iam.Policy(
        policy_name,
        aws.iam.PolicyArgs(
            name=policy_name,
            description=actual_policy_description,
            policy=policy_doc.json,
            tags=required_tags | {"Name": policy_tag},
        ),
        opts=opts,
    )

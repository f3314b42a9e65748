import collections.abc

import pulumi
import pulumi_aws as aws

import sakura
import sakura.boot
import sakura.pulumi_resources.aws_bucket


class BucketGrant:
    bucket_arn: pulumi.Input[str]
    access: sakura.BucketAccess

    def __init__(self, bucket_arn: pulumi.Input[str], access: sakura.BucketAccess) -> None:
        self.bucket_arn = bucket_arn
        self.access = access


def define_instance_role(
    name: str,
    trusted_principal: str,
    grants: collections.abc.Sequence[BucketGrant],
    managed_policy_arns: collections.abc.Sequence[str],
    tags: dict[str, str],
    opts: pulumi.ResourceOptions | None = None,
) -> aws.iam.Role:
    assume_role_policy = aws.iam.get_policy_document(
        statements=[
            aws.iam.GetPolicyDocumentStatementArgs(
                actions=["sts:AssumeRole"],
                principals=[
                    aws.iam.GetPolicyDocumentStatementPrincipalArgs(
                        type="Service",
                        identifiers=[trusted_principal],
                    )
                ],
            )
        ],
        opts=pulumi.InvokeOptions(parent=opts.parent if opts else None),
    )

    role = aws.iam.Role(
        name,
        name=name,
        assume_role_policy=assume_role_policy.json or "",
        tags=tags,
        opts=pulumi.ResourceOptions.merge(opts, pulumi.ResourceOptions(delete_before_replace=True)),
    )

    for i, grant in enumerate(grants):
        policy = sakura.pulumi_resources.aws_bucket.define_bucket_policy(
            name=name,
            bucket_arn=grant.bucket_arn,
            policy_name=f"{name}-bucket-{i}",
            access=grant.access,
            required_tags=tags,
            opts=pulumi.ResourceOptions(parent=role),
        )

        aws.iam.RolePolicyAttachment(
            f"{name}-bucket-{i}",
            role=role.name,
            policy_arn=policy.arn,
            opts=pulumi.ResourceOptions(parent=role, delete_before_replace=True),
        )

    for policy_arn in managed_policy_arns:
        aws.iam.RolePolicyAttachment(
            f"{name}-{policy_arn.rsplit('/', 1)[-1]}",
            role=role.name,
            policy_arn=policy_arn,
            opts=pulumi.ResourceOptions(parent=role, delete_before_replace=True),
        )

    return role


class AWSInstance(pulumi.ComponentResource):
    name: str
    tags: dict[str, str]
    spec: sakura.InstanceSpec

    profile: aws.iam.InstanceProfile
    instance: aws.ec2.Instance

    def __init__(
        self,
        name: str,
        spec: sakura.InstanceSpec,
        subnet_id: pulumi.Input[str],
        security_group_ids: list[pulumi.Input[str]],
        key_name: pulumi.Input[str],
        role_name: pulumi.Input[str],
        tags: dict[str, str],
        *args,
        **kwargs,
    ):
        super().__init__(
            f"sakura:{self.__class__.__name__}",
            name,
            *args,
            **kwargs,
        )

        self.name = name
        self.tags = tags
        self.spec = spec

        self.profile = aws.iam.InstanceProfile(
            f"{name}-profile",
            name=f"{name}-profile",
            role=role_name,
            tags=tags,
            opts=pulumi.ResourceOptions(parent=self, delete_before_replace=True),
        )

        ami = aws.ec2.get_ami(
            most_recent=True,
            owners=[sakura.AMAZON_LINUX_OWNER],
            name_regex=spec.machine_image.name_regex,
            filters=[
                aws.ec2.GetAmiFilterArgs(
                    name="architecture",
                    values=["x86_64"],
                ),
            ],
            opts=pulumi.InvokeOptions(parent=self),
        )

        self.instance = aws.ec2.Instance(
            name,
            aws.ec2.InstanceArgs(
                ami=ami.id,
                instance_type=spec.instance_type,
                iam_instance_profile=self.profile.name,
                subnet_id=subnet_id,
                vpc_security_group_ids=security_group_ids,
                key_name=key_name,
                associate_public_ip_address=spec.associate_public_ip,
                user_data=sakura.boot.render_user_data(spec.boot_commands),
                tags=tags | {"Name": name},
            ),
            opts=pulumi.ResourceOptions(parent=self, depends_on=[self.profile]),
        )

        self.register_outputs(
            {
                "id": self.instance.id,
                "public_ip": self.instance.public_ip,
            }
        )

    @property
    def id(self) -> pulumi.Output[str]:
        return self.instance.id

    @property
    def public_ip(self) -> pulumi.Output[str]:
        return self.instance.public_ip

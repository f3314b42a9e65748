from __future__ import annotations

import typing

import pulumi
import pulumi_aws as aws
import pulumi_tls as tls


class AWSKeyPair(pulumi.ComponentResource):
    """
    An EC2 key pair generated in-stack.

    The private half never leaves AWS: it is stored as a SecureString SSM
    parameter at `<parameter_prefix><key_pair_id>`, which is where the
    GetSSHKeyCommand output reads it from.
    """

    name: str
    key_name: pulumi.Output[str]
    key_pair_id: pulumi.Output[str]

    private_key: tls.PrivateKey
    key_pair: aws.ec2.KeyPair
    parameter: aws.ssm.Parameter

    def __init__(
        self,
        name: str,
        key_name: str,
        parameter_prefix: str,
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

        self.private_key = tls.PrivateKey(
            f"{name}-private-key",
            algorithm="RSA",
            rsa_bits=4096,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.key_pair = aws.ec2.KeyPair(
            name,
            key_name=key_name,
            public_key=self.private_key.public_key_openssh,
            tags=tags | {"Name": key_name},
            opts=pulumi.ResourceOptions(parent=self, delete_before_replace=True),
        )

        self.parameter = aws.ssm.Parameter(
            f"{name}-private-key",
            name=self.key_pair.key_pair_id.apply(lambda kid: f"{parameter_prefix}{kid}"),
            type="SecureString",
            value=self.private_key.private_key_pem,
            description=f"Private key for the {key_name} EC2 key pair",
            tags=tags,
            opts=pulumi.ResourceOptions(parent=self.key_pair),
        )

        self.key_name = self.key_pair.key_name
        self.key_pair_id = self.key_pair.key_pair_id

        self.register_outputs(
            {
                "key_name": self.key_name,
                "key_pair_id": self.key_pair_id,
            }
        )


class ExistingKeyPair(typing.NamedTuple):
    key_name: pulumi.Output[str]
    key_pair_id: pulumi.Output[str]


def lookup_key_pair(key_name: str, parent: pulumi.Resource | None = None) -> ExistingKeyPair:
    """Reference a key pair registered with EC2 ahead of time."""
    result = aws.ec2.get_key_pair_output(
        key_name=key_name,
        include_public_key=False,
        opts=pulumi.InvokeOptions(parent=parent),
    )

    return ExistingKeyPair(
        key_name=result.key_name.apply(lambda n: n or key_name),
        key_pair_id=result.key_pair_id.apply(lambda k: k or ""),
    )

import pulumi
import pulumi_aws as aws

import sakura


class AWSElasticIP(pulumi.ComponentResource):
    """
    A static address and its association with an instance.

    The allocation is retained on delete so that replacing (or tearing down)
    the instance never gives the address back to AWS.
    """

    eip: aws.ec2.Eip
    association: aws.ec2.EipAssociation | None

    def __init__(
        self,
        name: str,
        spec: sakura.AddressSpec,
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
        self.association = None

        self.eip = aws.ec2.Eip(
            name,
            domain=spec.domain,
            tags=tags | {"Name": name},
            opts=pulumi.ResourceOptions(
                parent=self,
                retain_on_delete=spec.removal_policy == sakura.RemovalPolicy.RETAIN,
            ),
        )

        self.register_outputs(
            {
                "allocation_id": self.eip.allocation_id,
                "public_ip": self.eip.public_ip,
            }
        )

    @property
    def allocation_id(self) -> pulumi.Output[str]:
        return self.eip.allocation_id

    @property
    def public_ip(self) -> pulumi.Output[str]:
        return self.eip.public_ip

    def associate(self, name: str, instance_id: pulumi.Input[str]) -> aws.ec2.EipAssociation:
        self.association = aws.ec2.EipAssociation(
            name,
            allocation_id=self.eip.allocation_id,
            instance_id=instance_id,
            opts=pulumi.ResourceOptions(parent=self.eip),
        )
        return self.association

import typing

import pulumi
import pulumi_aws as aws

import sakura
import sakura.deployment
import sakura.descriptor
import sakura.pulumi_resources
import sakura.pulumi_resources.aws_address
import sakura.pulumi_resources.aws_bucket
import sakura.pulumi_resources.aws_dns
import sakura.pulumi_resources.aws_instance
import sakura.pulumi_resources.aws_key_pair
import sakura.pulumi_resources.aws_network
from sakura.descriptor import Interpolation, Ref, ResourceDeclaration, ResourceKind


class SakuraStack(pulumi.ComponentResource):
    """
    Applies a deployment descriptor through Pulumi.

    Declarations are visited in dependency order; each `Ref` in a declaration's
    properties is resolved against the object realised for the referenced
    logical id, so cross-references become ordinary Pulumi outputs.
    """

    cfg: sakura.deployment.DeploymentConfig
    graph: sakura.descriptor.ResourceGraph
    required_tags: dict[str, str]
    provider: aws.Provider
    realized: sakura.pulumi_resources.RealizedResources
    outputs: dict[str, typing.Any]

    @classmethod
    def autoload(cls) -> "SakuraStack":
        return cls(cfg=sakura.deployment.Deployment(pulumi.get_stack()).cfg)

    def __init__(
        self,
        cfg: sakura.deployment.DeploymentConfig,
        graph: sakura.descriptor.ResourceGraph | None = None,
        *args,
        **kwargs,
    ):
        self.cfg = cfg
        self.graph = graph or sakura.descriptor.build(cfg)
        self.required_tags = cfg.required_tags | {
            str(sakura.TagKeys.SAKURA_MANAGED_BY): __name__,
        }

        # the account and region come from the deployment config only
        self.provider = aws.Provider(
            f"{cfg.name}-aws",
            region=cfg.region,
            allowed_account_ids=[cfg.account_id],
        )

        kwargs["opts"] = pulumi.ResourceOptions.merge(
            kwargs.get("opts"),
            pulumi.ResourceOptions(providers={"aws": self.provider}),
        )
        super().__init__(
            f"sakura:{self.__class__.__name__}",
            cfg.name,
            *args,
            **kwargs,
        )

        handlers: dict[ResourceKind, typing.Callable[[ResourceDeclaration], typing.Any]] = {
            ResourceKind.VPC: self._define_vpc,
            ResourceKind.SECURITY_GROUP: self._define_security_group,
            ResourceKind.KEY_PAIR: self._define_key_pair,
            ResourceKind.BUCKET: self._define_bucket,
            ResourceKind.IAM_ROLE: self._define_role,
            ResourceKind.INSTANCE: self._define_instance,
            ResourceKind.ELASTIC_IP: self._define_eip,
            ResourceKind.EIP_ASSOCIATION: self._define_eip_association,
            ResourceKind.HOSTED_ZONE: self._define_hosted_zone,
            ResourceKind.DNS_RECORD: self._define_dns_record,
        }

        self.realized = {}
        for logical_id in self.graph.topological_order():
            decl = self.graph.get(logical_id)
            self.realized[logical_id] = handlers[decl.kind](decl)

        self.outputs = {o.name: self.resolve(o.value) for o in self.graph.outputs}

        for key, value in self.outputs.items():
            pulumi.export(key, value)

        self.register_outputs(self.outputs)

    def resolve(self, value: typing.Any) -> typing.Any:
        if isinstance(value, Ref):
            return getattr(self.realized[value.logical_id], value.attribute)
        if isinstance(value, Interpolation):
            return pulumi.Output.concat(*[self.resolve(p) for p in value.parts])
        if isinstance(value, dict):
            return {k: self.resolve(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.resolve(v) for v in value]
        return value

    def _define_vpc(self, decl: ResourceDeclaration) -> sakura.pulumi_resources.aws_network.AWSNetwork:
        props = decl.properties
        network = sakura.NetworkSpec(
            max_azs=props["max_azs"],
            nat_gateways=props["nat_gateways"],
            cidr_block=props["cidr_block"],
            subnet_visibilities=tuple(sakura.SubnetVisibility(v) for v in props["subnet_visibilities"]),
        )

        azs = aws.get_availability_zones(state="available", opts=pulumi.InvokeOptions(parent=self))

        return sakura.pulumi_resources.aws_network.AWSNetwork(
            decl.logical_id,
            network=network,
            azs=sorted(azs.names or []),
            tags=self.required_tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

    def _define_security_group(self, decl: ResourceDeclaration) -> aws.ec2.SecurityGroup:
        props = decl.properties
        network = self.realized[props["vpc_id"].logical_id]

        rules = [
            sakura.FirewallRule(
                protocol=sakura.Protocol(r["protocol"]),
                port=r["port"],
                source_cidr=r["source_cidr"],
                label=r["label"],
            )
            for r in props["ingress"]
        ]

        return network.with_security_group(
            decl.logical_id,
            description=props["description"],
            rules=rules,
            allow_all_outbound=props["allow_all_outbound"],
        )

    def _define_key_pair(
        self, decl: ResourceDeclaration
    ) -> sakura.pulumi_resources.aws_key_pair.AWSKeyPair | sakura.pulumi_resources.aws_key_pair.ExistingKeyPair:
        props = decl.properties

        if decl.external:
            pulumi.log.info(f"Using pre-registered key pair {props['key_name']!r}", resource=self)
            return sakura.pulumi_resources.aws_key_pair.lookup_key_pair(props["key_name"], parent=self)

        return sakura.pulumi_resources.aws_key_pair.AWSKeyPair(
            decl.logical_id,
            key_name=props["key_name"],
            parameter_prefix=props["ssm_parameter_prefix"],
            tags=self.required_tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

    def _define_bucket(self, decl: ResourceDeclaration) -> aws.s3.Bucket:
        props = decl.properties
        spec = sakura.BucketSpec(
            name=props["bucket_name"],
            versioned=props["versioned"],
            encryption=sakura.BucketEncryption(props["encryption"]),
            retain_on_delete=decl.removal_policy == sakura.RemovalPolicy.RETAIN,
        )

        return sakura.pulumi_resources.aws_bucket.define_backup_bucket(
            decl.logical_id,
            spec=spec,
            required_tags=self.required_tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

    def _define_role(self, decl: ResourceDeclaration) -> aws.iam.Role:
        props = decl.properties
        grants = [
            sakura.pulumi_resources.aws_instance.BucketGrant(
                bucket_arn=self.resolve(g["bucket_arn"]),
                access=sakura.BucketAccess(g["access"]),
            )
            for g in props["grants"]
        ]

        return sakura.pulumi_resources.aws_instance.define_instance_role(
            decl.logical_id,
            trusted_principal=props["assumed_by"],
            grants=grants,
            managed_policy_arns=props["managed_policy_arns"],
            tags=self.required_tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

    def _define_instance(self, decl: ResourceDeclaration) -> sakura.pulumi_resources.aws_instance.AWSInstance:
        props = decl.properties
        spec = sakura.InstanceSpec(
            instance_type=props["instance_type"],
            machine_image=sakura.MachineImage(props["machine_image"]),
            boot_commands=tuple(props["boot_commands"]),
            associate_public_ip=props["associate_public_ip"],
        )

        return sakura.pulumi_resources.aws_instance.AWSInstance(
            decl.logical_id,
            spec=spec,
            subnet_id=self.resolve(props["subnet_ids"])[0],
            security_group_ids=self.resolve(props["security_group_ids"]),
            key_name=self.resolve(props["key_name"]),
            role_name=self.resolve(props["role_name"]),
            tags=self.required_tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

    def _define_eip(self, decl: ResourceDeclaration) -> sakura.pulumi_resources.aws_address.AWSElasticIP:
        return sakura.pulumi_resources.aws_address.AWSElasticIP(
            decl.logical_id,
            spec=sakura.AddressSpec(domain=decl.properties["domain"]),
            tags=self.required_tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

    def _define_eip_association(self, decl: ResourceDeclaration) -> aws.ec2.EipAssociation:
        props = decl.properties
        address = self.realized[props["allocation_id"].logical_id]

        return address.associate(decl.logical_id, instance_id=self.resolve(props["instance_id"]))

    def _define_hosted_zone(self, decl: ResourceDeclaration) -> sakura.pulumi_resources.aws_dns.HostedZoneLookup:
        props = decl.properties
        pulumi.log.info(f"Looking up hosted zone {props['zone_name']!r}", resource=self)

        return sakura.pulumi_resources.aws_dns.lookup_hosted_zone(
            props["zone_name"],
            private_zone=props["private_zone"],
            parent=self,
        )

    def _define_dns_record(self, decl: ResourceDeclaration) -> aws.route53.Record:
        props = decl.properties

        if not any(isinstance(r, Ref) for r in props["records"]):
            pulumi.log.warn(
                f"DNS record {props['name']!r} targets literal addresses {props['records']}, not the Elastic IP",
                resource=self,
            )

        return sakura.pulumi_resources.aws_dns.define_record(
            decl.logical_id,
            zone_id=self.resolve(props["zone_id"]),
            record_name=props["name"],
            record_type=props["type"],
            ttl=props["ttl"],
            records=self.resolve(props["records"]),
            opts=pulumi.ResourceOptions(parent=self),
        )

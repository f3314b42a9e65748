"""
The deployment descriptor: a pure, ordered graph of resource declarations.

`build` turns a `DeploymentConfig` into a `ResourceGraph` without touching any
external system. Cross-references between declarations are expressed as `Ref`
values (and `Interpolation`s for templated strings) which the Pulumi layer
resolves into live outputs when the graph is applied.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import enum
import typing
import warnings

import sakura
import sakura.boot
import sakura.deployment
import sakura.junkdrawer

if typing.TYPE_CHECKING:
    import sakura.references


class ResourceKind(enum.StrEnum):
    VPC = "vpc"
    SECURITY_GROUP = "security_group"
    KEY_PAIR = "key_pair"
    BUCKET = "bucket"
    IAM_ROLE = "iam_role"
    INSTANCE = "instance"
    ELASTIC_IP = "elastic_ip"
    EIP_ASSOCIATION = "eip_association"
    HOSTED_ZONE = "hosted_zone"
    DNS_RECORD = "dns_record"


@dataclasses.dataclass(frozen=True)
class Ref:
    logical_id: str
    attribute: str

    def __str__(self) -> str:
        return f"${{{self.logical_id}.{self.attribute}}}"


@dataclasses.dataclass(frozen=True)
class Interpolation:
    parts: tuple[str | Ref, ...]

    def __str__(self) -> str:
        return "".join(str(p) for p in self.parts)


OutputValue = str | Ref | Interpolation


@dataclasses.dataclass(frozen=True)
class ResourceDeclaration:
    logical_id: str
    kind: ResourceKind
    properties: collections.abc.Mapping[str, typing.Any]
    depends_on: tuple[str, ...] = ()
    removal_policy: sakura.RemovalPolicy = sakura.RemovalPolicy.DESTROY
    # a lookup of something that must already exist, never created or deleted
    external: bool = False

    @property
    def references(self) -> set[str]:
        return set(self.depends_on) | {r.logical_id for r in iter_refs(self.properties)}

    def to_dict(self) -> dict[str, typing.Any]:
        return {
            "logical_id": self.logical_id,
            "kind": str(self.kind),
            "properties": plain(self.properties),
            "depends_on": list(self.depends_on),
            "removal_policy": str(self.removal_policy),
            "external": self.external,
        }


@dataclasses.dataclass(frozen=True)
class Output:
    name: str
    value: OutputValue
    description: str = ""


@dataclasses.dataclass(frozen=True)
class ResourceGraph:
    resources: tuple[ResourceDeclaration, ...]
    outputs: tuple[Output, ...]

    @property
    def logical_ids(self) -> list[str]:
        return [r.logical_id for r in self.resources]

    def get(self, logical_id: str) -> ResourceDeclaration:
        for r in self.resources:
            if r.logical_id == logical_id:
                return r

        msg = f"no resource {logical_id!r} in graph"
        raise KeyError(msg)

    def by_kind(self, kind: ResourceKind) -> list[ResourceDeclaration]:
        return [r for r in self.resources if r.kind == kind]

    def output(self, name: str) -> Output:
        for o in self.outputs:
            if o.name == name:
                return o

        msg = f"no output {name!r} in graph"
        raise KeyError(msg)

    def references_of(self, logical_id: str) -> set[str]:
        return self.get(logical_id).references

    def dangling_references(self) -> list[tuple[str, str]]:
        """Pairs of (referrer, missing target) for every edge that leaves the graph."""
        known = set(self.logical_ids)
        dangling = []

        for r in self.resources:
            dangling += [(r.logical_id, target) for target in sorted(r.references) if target not in known]

        for o in self.outputs:
            dangling += [
                (f"output:{o.name}", ref.logical_id) for ref in iter_refs(o.value) if ref.logical_id not in known
            ]

        return dangling

    def topological_order(self) -> list[str]:
        """Declaration order constrained by dependency edges, stable on ties."""
        remaining = {r.logical_id: set(r.references) for r in self.resources}
        ordered: list[str] = []

        while remaining:
            ready = [lid for lid in self.logical_ids if lid in remaining and not remaining[lid] - set(ordered)]
            if not ready:
                msg = f"dependency cycle among {sorted(remaining)}"
                raise sakura.ValidationError(msg)

            ordered.append(ready[0])
            remaining.pop(ready[0])

        return ordered

    def to_dict(self) -> dict[str, typing.Any]:
        return {
            "resources": [r.to_dict() for r in self.resources],
            "outputs": [{"name": o.name, "value": plain(o.value), "description": o.description} for o in self.outputs],
        }

    def signature(self) -> str:
        return sakura.junkdrawer.json_signature(self.to_dict())


def iter_refs(value: typing.Any) -> collections.abc.Iterator[Ref]:
    if isinstance(value, Ref):
        yield value
    elif isinstance(value, Interpolation):
        yield from (p for p in value.parts if isinstance(p, Ref))
    elif isinstance(value, collections.abc.Mapping):
        for v in value.values():
            yield from iter_refs(v)
    elif isinstance(value, (list, tuple)):
        for v in value:
            yield from iter_refs(v)


def plain(value: typing.Any) -> typing.Any:
    if isinstance(value, (Ref, Interpolation)):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, collections.abc.Mapping):
        return {str(k): plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [plain(v) for v in value]
    return value


class LogicalIds:
    def __init__(self, name: str):
        self.vpc = f"{name}-vpc"
        self.security_group = f"{name}-sg"
        self.key_pair = f"{name}-key-pair"
        self.bucket = f"{name}-backup-bucket"
        self.role = f"{name}-backup-role"
        self.instance = f"{name}-ec2"
        self.eip = f"{name}-eip"
        self.eip_association = f"{name}-eip-association"
        self.zone = f"{name}-zone"
        self.dns_record = f"{name}-dns-record"


def network_spec(cfg: sakura.deployment.DeploymentConfig) -> sakura.NetworkSpec:
    visibilities = (sakura.SubnetVisibility.PUBLIC,)
    if cfg.nat_gateways > 0:
        visibilities += (sakura.SubnetVisibility.PRIVATE,)

    return sakura.NetworkSpec(
        max_azs=cfg.max_azs,
        nat_gateways=cfg.nat_gateways,
        cidr_block=cfg.vpc_cidr,
        subnet_visibilities=visibilities,
    )


def firewall_rules(cfg: sakura.deployment.DeploymentConfig) -> tuple[sakura.FirewallRule, ...]:
    return tuple(
        sakura.FirewallRule(
            protocol=sakura.Protocol.TCP,
            port=port,
            source_cidr=cfg.firewall_source_cidr,
            label=sakura.PORT_LABELS.get(port, f"Allow TCP {port}"),
        )
        for port in cfg.requested_ports
    )


def security_group_description(rules: tuple[sakura.FirewallRule, ...]) -> str:
    if not rules:
        return "No inbound traffic allowed"

    return "Allow " + ", ".join(str(r.port) for r in rules) + " ingress"


def bucket_spec(cfg: sakura.deployment.DeploymentConfig) -> sakura.BucketSpec:
    return sakura.BucketSpec(
        name=cfg.bucket_name,
        versioned=cfg.bucket_versioned,
        encryption=cfg.bucket_encryption,
        retain_on_delete=cfg.bucket_retain_on_delete,
    )


def role_binding(cfg: sakura.deployment.DeploymentConfig, bucket_id: str) -> sakura.RoleBinding:
    managed_policy_arns: tuple[str, ...] = ()
    if cfg.attach_s3_full_access:
        warnings.warn(
            f"{sakura.S3_FULL_ACCESS_POLICY_ARN} grants access to every bucket in the account and duplicates "
            "the read/write grant on the backup bucket; review before applying",
            stacklevel=3,
        )
        managed_policy_arns = (sakura.S3_FULL_ACCESS_POLICY_ARN,)

    return sakura.RoleBinding(
        trusted_principal=sakura.EC2_SERVICE_PRINCIPAL,
        grants=(sakura.RoleGrant(target=bucket_id, access=sakura.BucketAccess.READ_WRITE),),
        managed_policy_arns=managed_policy_arns,
    )


def instance_spec(cfg: sakura.deployment.DeploymentConfig) -> sakura.InstanceSpec:
    boot_commands = cfg.boot_commands
    if boot_commands is None:
        boot_commands = sakura.boot.pocketbase_boot_commands(
            bucket_name=cfg.bucket_name,
            version=cfg.pocketbase_version,
            port=cfg.pocketbase_port,
            backup_schedule=cfg.backup_schedule,
        )

    return sakura.InstanceSpec(
        instance_type=cfg.instance_type,
        machine_image=cfg.machine_image,
        boot_commands=tuple(boot_commands),
    )


def check_references(
    cfg: sakura.deployment.DeploymentConfig,
    references: sakura.references.ReferenceResolver,
) -> None:
    if cfg.enable_dns and cfg.domain_name and not references.zone_exists(cfg.domain_name):
        msg = f"DNS is enabled but the hosted zone {cfg.domain_name!r} does not exist"
        raise sakura.ValidationError(msg)

    key_pair_exists = references.key_pair_exists(cfg.key_pair_name)

    if not cfg.create_key_pair and not key_pair_exists:
        msg = f"key pair {cfg.key_pair_name!r} must be registered in {cfg.region} before applying"
        raise sakura.ValidationError(msg)

    if cfg.create_key_pair and key_pair_exists:
        msg = f"key pair {cfg.key_pair_name!r} already exists in {cfg.region}; set create_key_pair to false"
        raise sakura.ValidationError(msg)


def build(
    cfg: sakura.deployment.DeploymentConfig,
    references: sakura.references.ReferenceResolver | None = None,
) -> ResourceGraph:
    """
    Build the resource graph for a single deployment.

    The result is a pure function of `cfg`: identical configs produce
    structurally identical graphs. When `references` is given, the hosted zone
    and key pair the graph relies on are checked before anything is returned.

    Raises:
        sakura.ValidationError: for invalid or conflicting parameters, a missing
            hosted zone, or an unregistered key pair

    """
    if references is not None:
        check_references(cfg, references)

    ids = LogicalIds(cfg.name)
    resources: list[ResourceDeclaration] = []
    outputs: list[Output] = []

    # network
    net = network_spec(cfg)
    resources.append(
        ResourceDeclaration(
            logical_id=ids.vpc,
            kind=ResourceKind.VPC,
            properties={
                "cidr_block": net.cidr_block,
                "max_azs": net.max_azs,
                "nat_gateways": net.nat_gateways,
                "subnet_visibilities": list(net.subnet_visibilities),
            },
        )
    )

    rules = firewall_rules(cfg)
    resources.append(
        ResourceDeclaration(
            logical_id=ids.security_group,
            kind=ResourceKind.SECURITY_GROUP,
            properties={
                "vpc_id": Ref(ids.vpc, "id"),
                "description": security_group_description(rules),
                "allow_all_outbound": True,
                "ingress": [
                    {
                        "protocol": r.protocol,
                        "port": r.port,
                        "source_cidr": r.source_cidr,
                        "label": r.label,
                    }
                    for r in rules
                ],
            },
            depends_on=(ids.vpc,),
        )
    )

    # key pair
    key = sakura.KeyReference(name=cfg.key_pair_name, create=cfg.create_key_pair)
    resources.append(
        ResourceDeclaration(
            logical_id=ids.key_pair,
            kind=ResourceKind.KEY_PAIR,
            properties={
                "key_name": key.name,
                "ssm_parameter_prefix": sakura.SSM_KEY_PAIR_PARAMETER_PREFIX,
            },
            external=not key.create,
        )
    )
    outputs.append(
        Output(
            name="GetSSHKeyCommand",
            value=Interpolation(
                (
                    f"aws ssm get-parameter --name {sakura.SSM_KEY_PAIR_PARAMETER_PREFIX}",
                    Ref(ids.key_pair, "key_pair_id"),
                    f" --region {cfg.region} --with-decryption --query Parameter.Value --output text",
                )
            ),
        )
    )

    # storage
    bucket = bucket_spec(cfg)
    resources.append(
        ResourceDeclaration(
            logical_id=ids.bucket,
            kind=ResourceKind.BUCKET,
            properties={
                "bucket_name": bucket.name,
                "versioned": bucket.versioned,
                "encryption": bucket.encryption,
                "auto_delete_objects": bucket.auto_delete_objects,
            },
            removal_policy=bucket.removal_policy,
        )
    )
    outputs.append(
        Output(
            name="BucketArn",
            value=Ref(ids.bucket, "arn"),
            description="ARN of the Pocketbase backup S3 bucket",
        )
    )

    # identity
    binding = role_binding(cfg, ids.bucket)
    resources.append(
        ResourceDeclaration(
            logical_id=ids.role,
            kind=ResourceKind.IAM_ROLE,
            properties={
                "assumed_by": binding.trusted_principal,
                "grants": [
                    {"bucket_arn": Ref(g.target, "arn"), "bucket": Ref(g.target, "bucket"), "access": g.access}
                    for g in binding.grants
                ],
                "managed_policy_arns": list(binding.managed_policy_arns),
            },
            depends_on=(ids.bucket,),
        )
    )

    # compute
    instance = instance_spec(cfg)
    resources.append(
        ResourceDeclaration(
            logical_id=ids.instance,
            kind=ResourceKind.INSTANCE,
            properties={
                "instance_type": instance.instance_type,
                "machine_image": instance.machine_image,
                "subnet_ids": Ref(ids.vpc, f"{instance.subnet_visibility}_subnet_ids"),
                "security_group_ids": [Ref(ids.security_group, "id")],
                "key_name": Ref(ids.key_pair, "key_name"),
                "role_name": Ref(ids.role, "name"),
                "associate_public_ip": instance.associate_public_ip,
                "boot_commands": list(instance.boot_commands),
            },
            depends_on=(ids.vpc, ids.security_group, ids.key_pair, ids.role),
        )
    )
    outputs.append(Output(name="InstancePublicIp", value=Ref(ids.instance, "public_ip")))

    # addressing
    address = sakura.AddressSpec()
    resources.append(
        ResourceDeclaration(
            logical_id=ids.eip,
            kind=ResourceKind.ELASTIC_IP,
            properties={"domain": address.domain},
            removal_policy=address.removal_policy,
        )
    )
    resources.append(
        ResourceDeclaration(
            logical_id=ids.eip_association,
            kind=ResourceKind.EIP_ASSOCIATION,
            properties={
                "allocation_id": Ref(ids.eip, "allocation_id"),
                "instance_id": Ref(ids.instance, "id"),
            },
            depends_on=(ids.eip, ids.instance),
        )
    )
    outputs.append(
        Output(
            name="ElasticIp",
            value=Ref(ids.eip, "public_ip"),
            description="Static IP (Elastic IP)",
        )
    )

    # naming
    if cfg.enable_dns and cfg.domain_name and cfg.record_name:
        record = sakura.DnsRecordSpec(zone_name=cfg.domain_name, record_name=cfg.record_name, ttl=cfg.dns_ttl)

        target: str | Ref = Ref(ids.eip, "public_ip")
        record_depends_on = (ids.zone, ids.eip)
        if cfg.static_ip is not None:
            warnings.warn(
                f"DNS record {record.fqdn!r} points at the literal address {cfg.static_ip} instead of the "
                "allocated Elastic IP; it will drift if the address is ever reallocated",
                stacklevel=2,
            )
            target = cfg.static_ip
            record_depends_on = (ids.zone,)

        resources.append(
            ResourceDeclaration(
                logical_id=ids.zone,
                kind=ResourceKind.HOSTED_ZONE,
                properties={"zone_name": record.zone_name, "private_zone": False},
                external=True,
            )
        )
        resources.append(
            ResourceDeclaration(
                logical_id=ids.dns_record,
                kind=ResourceKind.DNS_RECORD,
                properties={
                    "zone_id": Ref(ids.zone, "zone_id"),
                    "name": record.fqdn,
                    "type": record.record_type,
                    "ttl": record.ttl,
                    "records": [target],
                },
                depends_on=record_depends_on,
            )
        )
        outputs.append(Output(name="DnsName", value=record.fqdn))

    graph = ResourceGraph(resources=tuple(resources), outputs=tuple(outputs))

    dangling = graph.dangling_references()
    if dangling:
        msg = f"descriptor has dangling references: {dangling}"
        raise sakura.ValidationError(msg)

    return graph

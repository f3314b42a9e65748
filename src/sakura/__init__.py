from __future__ import annotations

import dataclasses
import enum
import ipaddress
import typing

AMAZON_LINUX_OWNER = "amazon"
ANY_IPV4 = "0.0.0.0/0"
API_VERSION = "sakura/v1"
EC2_SERVICE_PRINCIPAL = "ec2.amazonaws.com"
S3_FULL_ACCESS_POLICY_ARN = "arn:aws:iam::aws:policy/AmazonS3FullAccess"
SSM_KEY_PAIR_PARAMETER_PREFIX = "/ec2/keypair/"

HTTP_PORT = 80
HTTPS_PORT = 443
SSH_PORT = 22
POCKETBASE_PORT = 8090
POCKETBASE_VERSION = "0.22.21"

MAX_AZ_COUNT = 3

PORT_LABELS: dict[int, str] = {
    SSH_PORT: "Allow SSH Access",
    HTTP_PORT: "Allow HTTP Access",
    HTTPS_PORT: "Allow HTTPS Access",
    POCKETBASE_PORT: "Allow Pocketbase Access",
}


class SakuraError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(SakuraError, ValueError):
    """Malformed or conflicting parameters, detected before any external call."""


class ReferenceNotFoundError(SakuraError, LookupError):
    """A referenced external entity (hosted zone, key pair) does not exist."""


class ExternalProvisioningError(SakuraError, RuntimeError):
    """Opaque failure surfaced by the provider; never retried locally."""


class TagKeys(enum.StrEnum):
    SAKURA_DEPLOYMENT = "sakura/deployment"
    SAKURA_MANAGED_BY = "sakura/managed-by"
    NAME = "Name"


class Protocol(enum.StrEnum):
    TCP = "tcp"
    UDP = "udp"


class SubnetVisibility(enum.StrEnum):
    PUBLIC = "public"
    PRIVATE = "private"


class BucketEncryption(enum.StrEnum):
    S3_MANAGED = "S3_MANAGED"
    KMS_MANAGED = "KMS_MANAGED"

    @property
    def sse_algorithm(self) -> str:
        return "AES256" if self == BucketEncryption.S3_MANAGED else "aws:kms"


class BucketAccess(enum.StrEnum):
    READ = "read"
    READ_WRITE = "read_write"


class RemovalPolicy(enum.StrEnum):
    DESTROY = "destroy"
    RETAIN = "retain"


class MachineImage(enum.StrEnum):
    AMAZON_LINUX_2 = "AMAZON_LINUX_2"
    AMAZON_LINUX_2023 = "AMAZON_LINUX_2023"

    @property
    def name_regex(self) -> str:
        if self == MachineImage.AMAZON_LINUX_2:
            return "^amzn2-ami-hvm-.*-x86_64-gp2$"
        return "^al2023-ami-2023.*-x86_64$"


@dataclasses.dataclass(frozen=True)
class NetworkSpec:
    max_azs: int
    nat_gateways: int
    cidr_block: str
    subnet_visibilities: tuple[SubnetVisibility, ...] = (SubnetVisibility.PUBLIC,)

    def __post_init__(self) -> None:
        if SubnetVisibility.PUBLIC not in self.subnet_visibilities:
            msg = "at least one public subnet is required for the instance to be reachable"
            raise ValidationError(msg)

        if self.max_azs < 1 or self.max_azs > MAX_AZ_COUNT:
            msg = f"max_azs must be between 1 and {MAX_AZ_COUNT}, got {self.max_azs}"
            raise ValidationError(msg)

        if self.nat_gateways not in (0, self.max_azs):
            msg = f"nat_gateways must be 0 or {self.max_azs} (one per availability zone), got {self.nat_gateways}"
            raise ValidationError(msg)

        if SubnetVisibility.PRIVATE in self.subnet_visibilities and self.nat_gateways == 0:
            msg = "private subnets require nat_gateways to be enabled"
            raise ValidationError(msg)


@dataclasses.dataclass(frozen=True)
class FirewallRule:
    protocol: Protocol
    port: int
    source_cidr: str
    label: str

    @property
    def key(self) -> tuple[str, int, str]:
        return (str(self.protocol), self.port, self.source_cidr)


@dataclasses.dataclass(frozen=True)
class KeyReference:
    name: str
    create: bool = False


@dataclasses.dataclass(frozen=True)
class BucketSpec:
    name: str
    versioned: bool = True
    encryption: BucketEncryption = BucketEncryption.S3_MANAGED
    retain_on_delete: bool = False

    @property
    def auto_delete_objects(self) -> bool:
        # a destroyed bucket must be emptied first or teardown fails
        return not self.retain_on_delete

    @property
    def removal_policy(self) -> RemovalPolicy:
        return RemovalPolicy.RETAIN if self.retain_on_delete else RemovalPolicy.DESTROY


@dataclasses.dataclass(frozen=True)
class RoleGrant:
    target: str
    access: BucketAccess


@dataclasses.dataclass(frozen=True)
class RoleBinding:
    trusted_principal: str
    grants: tuple[RoleGrant, ...] = ()
    managed_policy_arns: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class InstanceSpec:
    instance_type: str
    machine_image: MachineImage
    boot_commands: tuple[str, ...]
    subnet_visibility: SubnetVisibility = SubnetVisibility.PUBLIC
    associate_public_ip: bool = True


@dataclasses.dataclass(frozen=True)
class AddressSpec:
    domain: str = "vpc"

    @property
    def removal_policy(self) -> RemovalPolicy:
        # a recreated instance must keep its address
        return RemovalPolicy.RETAIN


@dataclasses.dataclass(frozen=True)
class DnsRecordSpec:
    zone_name: str
    record_name: str
    ttl: int = 300
    record_type: str = "A"

    @property
    def fqdn(self) -> str:
        return f"{self.record_name}.{self.zone_name}"


@dataclasses.dataclass(frozen=True)
class SubnetCIDRBlocks:
    public: tuple[ipaddress.IPv4Network, ...]
    private: tuple[ipaddress.IPv4Network, ...]

    @classmethod
    def from_cidr_block(cls, cidr_block: ipaddress.IPv4Network, az_count: int) -> SubnetCIDRBlocks:
        """
        Splits the VPC block into one public and one private subnet per availability zone.

        The block is halved; the first half is carved into public subnets and the
        second half into private subnets, each half split into as many equally-sized
        pieces as needed to cover `az_count` zones. For 10.0.0.0/16 and two zones
        this yields 10.0.0.0/18, 10.0.64.0/18 (public) and 10.0.128.0/18,
        10.0.192.0/18 (private).
        """
        halves = list(cidr_block.subnets(1))
        prefix_diff = max(1, (az_count - 1).bit_length())

        public = tuple(list(halves[0].subnets(prefix_diff))[:az_count])
        private = tuple(list(halves[1].subnets(prefix_diff))[:az_count])

        return cls(public=public, private=private)


def required_tags(name: str, extra: typing.Mapping[str, str] | None = None) -> dict[str, str]:
    return {str(TagKeys.SAKURA_DEPLOYMENT): name} | dict(extra or {})


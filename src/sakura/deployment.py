from __future__ import annotations

import dataclasses
import pathlib
import typing
import warnings

import deepmerge  # type: ignore
import yaml

import sakura
import sakura.junkdrawer
import sakura.paths
import sakura.validation

# fields loaded from YAML lists that are stored as tuples on the frozen config
TUPLE_FIELDS = ("boot_commands", "firewall_ports")

INT_FIELDS = ("max_azs", "nat_gateways", "dns_ttl", "pocketbase_port")


@dataclasses.dataclass(frozen=True)
class DeploymentConfig:
    name: str
    account_id: str
    region: str
    bucket_name: str
    key_pair_name: str

    firewall_ports: tuple[int, ...] = (sakura.SSH_PORT, sakura.POCKETBASE_PORT)
    firewall_source_cidr: str = sakura.ANY_IPV4

    domain_name: str | None = None
    record_name: str | None = None
    static_ip: str | None = None
    dns_ttl: int = 300

    # feature flags covering the known descriptor variants
    enable_dns: bool = False
    enable_http_firewall: bool = False
    create_key_pair: bool = False
    attach_s3_full_access: bool = False

    instance_type: str = "t2.micro"
    machine_image: sakura.MachineImage = sakura.MachineImage.AMAZON_LINUX_2
    max_azs: int = 2
    nat_gateways: int = 0
    vpc_cidr: str = "10.0.0.0/16"

    bucket_versioned: bool = True
    bucket_encryption: sakura.BucketEncryption = sakura.BucketEncryption.S3_MANAGED
    bucket_retain_on_delete: bool = False

    pocketbase_version: str = sakura.POCKETBASE_VERSION
    pocketbase_port: int = sakura.POCKETBASE_PORT
    backup_schedule: str = "0 2 * * *"
    boot_commands: tuple[str, ...] | None = None

    tags: dict[str, str] = dataclasses.field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        sakura.validation.validate_dns_label(self.name, context="deployment name")
        sakura.validation.validate_account_id(self.account_id)
        sakura.validation.validate_region(self.region)
        sakura.validation.validate_bucket_name(self.bucket_name)
        sakura.validation.validate_key_pair_name(self.key_pair_name)
        sakura.validation.validate_instance_type(self.instance_type)
        sakura.validation.validate_ipv4_cidr(self.vpc_cidr)
        sakura.validation.validate_ipv4_cidr(self.firewall_source_cidr)
        for field in INT_FIELDS:
            sakura.validation.validate_int(getattr(self, field), field)

        sakura.validation.validate_port(self.pocketbase_port)

        for port in self.firewall_ports:
            sakura.validation.validate_port(port)

        if self.enable_dns:
            if not self.domain_name or not self.record_name:
                msg = "enable_dns requires both domain_name and record_name"
                raise sakura.ValidationError(msg)

            object.__setattr__(self, "domain_name", sakura.validation.validate_domain_name(self.domain_name))
            sakura.validation.validate_record_name(self.record_name)

            if self.dns_ttl <= 0:
                msg = f"dns_ttl must be positive, got {self.dns_ttl}"
                raise sakura.ValidationError(msg)

        elif self.static_ip is not None:
            msg = "static_ip is only used for the DNS record and requires enable_dns"
            raise sakura.ValidationError(msg)

        if self.static_ip is not None:
            sakura.validation.validate_ipv4_address(self.static_ip)

        if self.boot_commands is not None and not all(isinstance(c, str) for c in self.boot_commands):
            msg = "boot_commands must be a list of strings"
            raise sakura.ValidationError(msg)

        if self.max_azs == 1:
            warnings.warn(
                "Using a single availability zone leaves the deployment without a fallback subnet",
                stacklevel=2,
            )

    @property
    def requested_ports(self) -> tuple[int, ...]:
        """Requested ingress ports, deduplicated, in first-seen order."""
        ports = list(self.firewall_ports)
        if self.enable_http_firewall:
            ports += [sakura.HTTP_PORT, sakura.HTTPS_PORT]

        return tuple(dict.fromkeys(ports))

    @property
    def required_tags(self) -> dict[str, str]:
        return sakura.required_tags(self.name, self.tags)


class Deployment:
    d: pathlib.Path
    cfg: DeploymentConfig
    spec: dict[str, typing.Any]

    def __init__(self, name: str, paths: sakura.paths.Paths | None = None, *, load_yaml=True):
        self.name = name
        self.d = (paths or sakura.paths.Paths()).deployment(name)

        if not load_yaml:
            return

        if not self.sakura_yaml.exists():
            msg = f"deployment config {str(self.sakura_yaml)!r} does not exist"
            raise sakura.ValidationError(msg)

        self.load_config()

    @property
    def sakura_yaml(self) -> pathlib.Path:
        return self.d / "sakura.yaml"

    @property
    def has_config(self) -> bool:
        return hasattr(self, "cfg")

    def load_config(self) -> None:
        cfg_dict = yaml.safe_load(self.sakura_yaml.read_text()) or {}

        if cfg_dict.get("kind") != DeploymentConfig.__name__ or cfg_dict.get("apiVersion") != sakura.API_VERSION:
            msg = (
                f"mismatched deployment config kind={cfg_dict.get('kind')!r} "
                f"apiVersion={cfg_dict.get('apiVersion')!r} in {str(self.sakura_yaml)!r}"
            )
            raise sakura.ValidationError(msg)

        spec: dict[str, typing.Any] = {"name": self.name}

        deepmerge.always_merger.merge(
            spec,
            sakura.junkdrawer.dash_to_underscore(cfg_dict.get("spec") or {}),
        )

        self.spec = spec
        self.cfg = config_from_spec(spec)


def config_from_spec(spec: dict[str, typing.Any]) -> DeploymentConfig:
    spec = dict(spec)

    known = {f.name for f in dataclasses.fields(DeploymentConfig)}
    unknown = sorted(set(spec) - known)
    if unknown:
        msg = f"unknown deployment config keys: {unknown}"
        raise sakura.ValidationError(msg)

    for key in TUPLE_FIELDS:
        if spec.get(key) is not None:
            try:
                spec[key] = tuple(spec[key])
            except TypeError as e:
                msg = f"{key} must be a list, got {spec[key]!r}"
                raise sakura.ValidationError(msg) from e

    # YAML reads 123456789012 as an int
    if "account_id" in spec:
        spec["account_id"] = str(spec["account_id"])

    try:
        if "machine_image" in spec:
            spec["machine_image"] = sakura.MachineImage(str(spec["machine_image"]).upper())

        if "bucket_encryption" in spec:
            spec["bucket_encryption"] = sakura.BucketEncryption(str(spec["bucket_encryption"]).upper())
    except ValueError as e:
        raise sakura.ValidationError(str(e)) from e

    try:
        return DeploymentConfig(**spec)
    except TypeError as e:
        msg = f"invalid deployment config: {e}"
        raise sakura.ValidationError(msg) from e

from __future__ import annotations

import ipaddress
import re

import sakura

# https://docs.aws.amazon.com/AmazonS3/latest/userguide/bucketnamingrules.html
BUCKET_NAME_MIN_LENGTH = 3
BUCKET_NAME_MAX_LENGTH = 63
BUCKET_NAME_REGEX = re.compile(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$")
BUCKET_NAME_RESERVED_PREFIXES = ("xn--", "sthree-", "amzn-s3-demo-")
BUCKET_NAME_RESERVED_SUFFIXES = ("-s3alias", "--ol-s3", ".mrap", "--x-s3", "--table-s3")

ACCOUNT_ID_REGEX = re.compile(r"^[0-9]{12}$")
REGION_REGEX = re.compile(r"^[a-z]{2}(-gov|-iso[a-z]*)?-[a-z]+-[0-9]+$")
INSTANCE_TYPE_REGEX = re.compile(r"^[a-z][a-z0-9-]*\.[a-z0-9]+$")
DNS_LABEL_REGEX = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")

DOMAIN_NAME_MAX_LENGTH = 253
KEY_PAIR_NAME_MAX_LENGTH = 255
MAX_PORT = 65535


def validate_bucket_name(name: str) -> str:
    if not BUCKET_NAME_MIN_LENGTH <= len(name) <= BUCKET_NAME_MAX_LENGTH:
        msg = (
            f"bucket name {name!r} must be between {BUCKET_NAME_MIN_LENGTH} and "
            f"{BUCKET_NAME_MAX_LENGTH} characters long"
        )
        raise sakura.ValidationError(msg)

    if BUCKET_NAME_REGEX.match(name) is None:
        msg = (
            f"bucket name {name!r} may only contain lowercase letters, numbers, dots and hyphens, "
            "and must begin and end with a letter or number"
        )
        raise sakura.ValidationError(msg)

    if ".." in name:
        msg = f"bucket name {name!r} must not contain two adjacent periods"
        raise sakura.ValidationError(msg)

    try:
        ipaddress.IPv4Address(name)
    except ValueError:
        pass
    else:
        msg = f"bucket name {name!r} must not be formatted as an IP address"
        raise sakura.ValidationError(msg)

    if name.startswith(BUCKET_NAME_RESERVED_PREFIXES):
        msg = f"bucket name {name!r} uses a reserved prefix"
        raise sakura.ValidationError(msg)

    if name.endswith(BUCKET_NAME_RESERVED_SUFFIXES):
        msg = f"bucket name {name!r} uses a reserved suffix"
        raise sakura.ValidationError(msg)

    return name


def validate_account_id(account_id: str) -> str:
    if ACCOUNT_ID_REGEX.match(account_id) is None:
        msg = f"account id {account_id!r} must be exactly 12 digits"
        raise sakura.ValidationError(msg)

    return account_id


def validate_region(region: str) -> str:
    if REGION_REGEX.match(region) is None:
        msg = f"region {region!r} is not a valid AWS region identifier (e.g. ap-northeast-1)"
        raise sakura.ValidationError(msg)

    return region


def validate_key_pair_name(name: str) -> str:
    if not name or len(name) > KEY_PAIR_NAME_MAX_LENGTH or not name.isascii():
        msg = f"key pair name {name!r} must be 1-{KEY_PAIR_NAME_MAX_LENGTH} ASCII characters"
        raise sakura.ValidationError(msg)

    return name


def validate_instance_type(instance_type: str) -> str:
    if INSTANCE_TYPE_REGEX.match(instance_type) is None:
        msg = f"instance type {instance_type!r} is not of the form <family>.<size> (e.g. t2.micro)"
        raise sakura.ValidationError(msg)

    return instance_type


def validate_port(port: int) -> int:
    # bool is an int subclass; True would otherwise be accepted as port 1
    if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= MAX_PORT:
        msg = f"port {port!r} must be an integer between 1 and {MAX_PORT}"
        raise sakura.ValidationError(msg)

    return port


def validate_int(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"{name} must be an integer, got {value!r}"
        raise sakura.ValidationError(msg)

    return value


def validate_ipv4_cidr(cidr: str) -> ipaddress.IPv4Network:
    try:
        network = ipaddress.ip_network(cidr)
    except ValueError as e:
        msg = f"{cidr!r} is not a valid CIDR block: {e}"
        raise sakura.ValidationError(msg) from e

    if not isinstance(network, ipaddress.IPv4Network):
        msg = f"{cidr!r} is not an IPv4 CIDR block"
        raise sakura.ValidationError(msg)

    return network


def validate_ipv4_address(address: str) -> str:
    try:
        ipaddress.IPv4Address(address)
    except ValueError as e:
        msg = f"{address!r} is not a valid IPv4 address"
        raise sakura.ValidationError(msg) from e

    return address


def validate_domain_name(domain: str) -> str:
    domain = domain.removesuffix(".")
    labels = domain.split(".")

    if len(domain) > DOMAIN_NAME_MAX_LENGTH or len(labels) < 2:  # noqa: PLR2004
        msg = f"domain name {domain!r} must have at least two labels and at most {DOMAIN_NAME_MAX_LENGTH} characters"
        raise sakura.ValidationError(msg)

    for label in labels:
        validate_dns_label(label, context=domain)

    return domain


def validate_record_name(record_name: str) -> str:
    for label in record_name.split("."):
        validate_dns_label(label, context=record_name)

    return record_name


def validate_dns_label(label: str, context: str = "") -> str:
    if DNS_LABEL_REGEX.match(label) is None:
        msg = f"invalid DNS label {label!r} in {context or label!r}"
        raise sakura.ValidationError(msg)

    return label

from __future__ import annotations

import dataclasses
import typing

import boto3
from botocore.exceptions import ClientError

import sakura

KEY_PAIR_NOT_FOUND = "InvalidKeyPair.NotFound"


class ReferenceResolver(typing.Protocol):
    """Answers whether externally managed entities already exist."""

    def zone_exists(self, zone_name: str) -> bool: ...

    def key_pair_exists(self, key_pair_name: str) -> bool: ...


@dataclasses.dataclass(frozen=True)
class StaticReferences:
    zones: frozenset[str] = frozenset()
    key_pairs: frozenset[str] = frozenset()

    def zone_exists(self, zone_name: str) -> bool:
        return normalize_zone_name(zone_name) in {normalize_zone_name(z) for z in self.zones}

    def key_pair_exists(self, key_pair_name: str) -> bool:
        return key_pair_name in self.key_pairs


class AwsReferences:
    """Looks up hosted zones and key pairs through boto3."""

    def __init__(self, region: str, session: boto3.Session | None = None):
        self.region = region
        self.session = session or boto3.Session()

    def zone_id(self, zone_name: str) -> str:
        client = self.session.client("route53")
        wanted = normalize_zone_name(zone_name) + "."

        # zones are listed by name then id, so a private twin can come before the public zone
        kwargs = {"DNSName": wanted}
        while True:
            try:
                response = client.list_hosted_zones_by_name(**kwargs)
            except ClientError as e:
                msg = f"failed to look up hosted zone {zone_name!r}: {e}"
                raise sakura.ExternalProvisioningError(msg) from e

            for zone in response.get("HostedZones", []):
                if zone["Name"] != wanted:
                    break
                if not zone.get("Config", {}).get("PrivateZone", False):
                    return zone["Id"].removeprefix("/hostedzone/")
            else:
                if response.get("IsTruncated"):
                    kwargs = {"DNSName": response["NextDNSName"], "HostedZoneId": response["NextHostedZoneId"]}
                    continue

            break

        msg = f"public hosted zone {zone_name!r} does not exist"
        raise sakura.ReferenceNotFoundError(msg)

    def zone_exists(self, zone_name: str) -> bool:
        try:
            self.zone_id(zone_name)
        except sakura.ReferenceNotFoundError:
            return False
        return True

    def key_pair_id(self, key_pair_name: str) -> str:
        client = self.session.client("ec2", region_name=self.region)

        try:
            response = client.describe_key_pairs(KeyNames=[key_pair_name])
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == KEY_PAIR_NOT_FOUND:
                msg = f"key pair {key_pair_name!r} is not registered in {self.region}"
                raise sakura.ReferenceNotFoundError(msg) from e

            msg = f"failed to look up key pair {key_pair_name!r}: {e}"
            raise sakura.ExternalProvisioningError(msg) from e

        key_pairs = response.get("KeyPairs", [])
        if not key_pairs:
            msg = f"key pair {key_pair_name!r} is not registered in {self.region}"
            raise sakura.ReferenceNotFoundError(msg)

        return key_pairs[0]["KeyPairId"]

    def key_pair_exists(self, key_pair_name: str) -> bool:
        try:
            self.key_pair_id(key_pair_name)
        except sakura.ReferenceNotFoundError:
            return False
        return True


def normalize_zone_name(zone_name: str) -> str:
    return zone_name.lower().removesuffix(".")

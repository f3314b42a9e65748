from __future__ import annotations

import typing

import pulumi
import pulumi_aws as aws


class HostedZoneLookup(typing.NamedTuple):
    zone_name: str
    zone_id: pulumi.Output[str]


def lookup_hosted_zone(
    zone_name: str,
    *,
    private_zone: bool = False,
    parent: pulumi.Resource | None = None,
) -> HostedZoneLookup:
    """Reference a hosted zone managed outside of this stack; the lookup fails the apply if it is missing."""
    result = aws.route53.get_zone_output(
        name=zone_name.removesuffix(".") + ".",
        private_zone=private_zone,
        opts=pulumi.InvokeOptions(parent=parent),
    )

    return HostedZoneLookup(zone_name=zone_name, zone_id=result.zone_id)


def define_record(
    name: str,
    zone_id: pulumi.Input[str],
    record_name: str,
    record_type: str,
    ttl: int,
    records: list[pulumi.Input[str]],
    opts: pulumi.ResourceOptions | None = None,
) -> aws.route53.Record:
    return aws.route53.Record(
        name,
        zone_id=zone_id,
        name=record_name,
        type=record_type,
        ttl=ttl,
        records=records,
        allow_overwrite=False,
        opts=opts,
    )

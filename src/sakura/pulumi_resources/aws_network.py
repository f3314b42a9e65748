import collections
import ipaddress
import typing

import pulumi
import pulumi_aws as aws

import sakura


class AWSNetwork(pulumi.ComponentResource):
    """
    A small VPC for a single-instance deployment: public subnets routed through an
    internet gateway, optional private subnets behind per-AZ NAT gateways, and a
    security group carrying one ingress rule per firewall rule.
    """

    name: str
    tags: dict[str, str]
    azs: list[str]
    network: sakura.NetworkSpec
    subnet_cidr_blocks: sakura.SubnetCIDRBlocks

    vpc: aws.ec2.Vpc
    subnets: dict[str, list[aws.ec2.Subnet]]
    public_route_table: aws.ec2.RouteTable
    private_route_tables: list[aws.ec2.RouteTable]
    nat_gateways: list[aws.ec2.NatGateway]
    security_group: aws.ec2.SecurityGroup | None
    ingress_rules: list[aws.vpc.SecurityGroupIngressRule]

    def __init__(
        self,
        name: str,
        network: sakura.NetworkSpec,
        azs: list[str],
        tags: dict[str, str],
        *args,
        **kwargs,
    ):
        """
        :param name: the name of the VPC
        :param network: the network layout (AZ count, NAT gateways, CIDR block, subnet visibilities)
        :param azs: availability zone names to spread subnets over; only the first `network.max_azs` are used
        :param tags: the tags to apply to all the resources
        """
        self.name = name
        self.tags = tags
        self.network = network
        self.azs = azs[: network.max_azs]
        self.security_group = None
        self.ingress_rules = []
        self.nat_gateways = []
        self.private_route_tables = []

        if len(self.azs) == 0:
            msg = "no availability zones available for the VPC"
            raise sakura.ValidationError(msg)

        super().__init__(f"sakura:{self.__class__.__name__}", self.name, *args, **kwargs)

        if len(self.azs) < network.max_azs:
            pulumi.log.warn(
                f"Requested {network.max_azs} availability zones but only {len(self.azs)} are available",
                resource=self,
            )

        cidr_block = typing.cast(ipaddress.IPv4Network, ipaddress.ip_network(network.cidr_block))
        self.subnet_cidr_blocks = sakura.SubnetCIDRBlocks.from_cidr_block(cidr_block, len(self.azs))

        self.vpc = aws.ec2.Vpc(
            name,
            cidr_block=str(cidr_block),
            enable_dns_hostnames=True,
            enable_dns_support=True,
            tags=self.tags | {"Name": name},
            opts=pulumi.ResourceOptions(parent=self),
        )

        ig = aws.ec2.InternetGateway(
            name,
            vpc_id=self.vpc.id,
            tags=self.tags | {"Name": name},
            opts=pulumi.ResourceOptions(parent=self.vpc),
        )

        self.subnets = collections.defaultdict(list)

        for visibility in network.subnet_visibilities:
            subnet_cidrs = getattr(self.subnet_cidr_blocks, str(visibility))

            for j, az in enumerate(self.azs):
                number = j + 1
                subnet = aws.ec2.Subnet(
                    f"{self.name}-{visibility}-az{number}",
                    vpc_id=self.vpc.id,
                    cidr_block=str(subnet_cidrs[j]),
                    availability_zone=az,
                    # the instance is reached on its public address
                    map_public_ip_on_launch=visibility == sakura.SubnetVisibility.PUBLIC,
                    tags=self.tags | {"Name": f"{self.name}-{visibility}-az{number}"},
                    opts=pulumi.ResourceOptions(parent=self.vpc),
                )
                self.subnets[str(visibility)].append(subnet)

        self.public_route_table = aws.ec2.RouteTable(
            f"{self.name}-public",
            vpc_id=self.vpc.id,
            tags=self.tags | {"Name": f"{self.name}-public"},
            opts=pulumi.ResourceOptions(parent=self.vpc),
        )

        aws.ec2.Route(
            f"{self.name}-public",
            route_table_id=self.public_route_table.id,
            gateway_id=ig.id,
            destination_cidr_block=sakura.ANY_IPV4,
            opts=pulumi.ResourceOptions(parent=self.public_route_table),
        )

        for i, subnet in enumerate(self.subnets[sakura.SubnetVisibility.PUBLIC]):
            number = i + 1

            aws.ec2.RouteTableAssociation(
                f"{self.name}-public-az{number}",
                subnet_id=subnet.id,
                route_table_id=self.public_route_table.id,
                opts=pulumi.ResourceOptions(parent=self.public_route_table),
            )

        if network.nat_gateways > 0:
            self._define_nat_gateways()

        self.register_outputs(
            {
                "vpc_id": self.vpc.id,
                "public_subnet_ids": self.public_subnet_ids,
                "private_subnet_ids": self.private_subnet_ids,
            }
        )

    @property
    def id(self) -> pulumi.Output[str]:
        return self.vpc.id

    @property
    def public_subnet_ids(self) -> list[pulumi.Output[str]]:
        return [s.id for s in self.subnets[sakura.SubnetVisibility.PUBLIC]]

    @property
    def private_subnet_ids(self) -> list[pulumi.Output[str]]:
        return [s.id for s in self.subnets[sakura.SubnetVisibility.PRIVATE]]

    def _define_nat_gateways(self) -> None:
        for i, public_subnet in enumerate(self.subnets[sakura.SubnetVisibility.PUBLIC]):
            number = i + 1

            eip = aws.ec2.Eip(
                f"{self.name}-nat-az{number}",
                domain="vpc",
                tags=self.tags | {"Name": f"{self.name}-nat-az{number}"},
                opts=pulumi.ResourceOptions(parent=self.vpc),
            )

            ng = aws.ec2.NatGateway(
                f"{self.name}-az{number}",
                subnet_id=public_subnet.id,
                allocation_id=eip.id,
                tags=self.tags | {"Name": f"{self.name}-az{number}"},
                opts=pulumi.ResourceOptions(parent=public_subnet),
            )
            self.nat_gateways.append(ng)

        for i, subnet in enumerate(self.subnets[sakura.SubnetVisibility.PRIVATE]):
            number = i + 1

            private_rt = aws.ec2.RouteTable(
                f"{self.name}-private-az{number}",
                vpc_id=self.vpc.id,
                tags=self.tags | {"Name": f"{self.name}-private-az{number}"},
                opts=pulumi.ResourceOptions(parent=self.vpc),
            )

            aws.ec2.Route(
                f"{self.name}-private-az{number}",
                route_table_id=private_rt.id,
                nat_gateway_id=self.nat_gateways[i].id,
                destination_cidr_block=sakura.ANY_IPV4,
                opts=pulumi.ResourceOptions(parent=private_rt),
            )

            aws.ec2.RouteTableAssociation(
                f"{self.name}-private-az{number}",
                subnet_id=subnet.id,
                route_table_id=private_rt.id,
                opts=pulumi.ResourceOptions(parent=private_rt),
            )

            self.private_route_tables.append(private_rt)

    def with_security_group(
        self,
        name: str,
        description: str,
        rules: list[sakura.FirewallRule],
        *,
        allow_all_outbound: bool = True,
    ) -> aws.ec2.SecurityGroup:
        """Define the instance security group; each rule becomes exactly one ingress rule."""
        egress = []
        if allow_all_outbound:
            egress.append(
                aws.ec2.SecurityGroupEgressArgs(
                    from_port=0,
                    to_port=0,
                    protocol="-1",
                    cidr_blocks=[sakura.ANY_IPV4],
                )
            )

        self.security_group = aws.ec2.SecurityGroup(
            name,
            vpc_id=self.vpc.id,
            description=description,
            egress=egress,
            tags=self.tags | {"Name": name},
            opts=pulumi.ResourceOptions(parent=self.vpc),
        )

        for rule in rules:
            self.ingress_rules.append(
                aws.vpc.SecurityGroupIngressRule(
                    f"{name}-{rule.protocol}-{rule.port}",
                    security_group_id=self.security_group.id,
                    ip_protocol=str(rule.protocol),
                    from_port=rule.port,
                    to_port=rule.port,
                    cidr_ipv4=rule.source_cidr,
                    description=rule.label,
                    tags=self.tags | {"Name": f"{name}-{rule.protocol}-{rule.port}"},
                    opts=pulumi.ResourceOptions(parent=self.security_group),
                )
            )

        return self.security_group

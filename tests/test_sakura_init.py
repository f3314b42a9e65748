import ipaddress

import pytest

import sakura


class TestConstants:
    def test_constants_exist(self):
        """Test that all expected constants are defined."""
        assert sakura.ANY_IPV4 == "0.0.0.0/0"
        assert sakura.API_VERSION == "sakura/v1"
        assert sakura.EC2_SERVICE_PRINCIPAL == "ec2.amazonaws.com"
        assert sakura.SSM_KEY_PAIR_PARAMETER_PREFIX == "/ec2/keypair/"
        assert sakura.SSH_PORT == 22
        assert sakura.POCKETBASE_PORT == 8090

    def test_port_labels(self):
        assert sakura.PORT_LABELS[22] == "Allow SSH Access"
        assert sakura.PORT_LABELS[8090] == "Allow Pocketbase Access"
        assert sakura.PORT_LABELS[80] == "Allow HTTP Access"
        assert sakura.PORT_LABELS[443] == "Allow HTTPS Access"


class TestErrors:
    def test_hierarchy(self):
        assert issubclass(sakura.ValidationError, sakura.SakuraError)
        assert issubclass(sakura.ValidationError, ValueError)
        assert issubclass(sakura.ReferenceNotFoundError, LookupError)
        assert issubclass(sakura.ExternalProvisioningError, RuntimeError)

    def test_caught_as_base(self):
        with pytest.raises(sakura.SakuraError):
            raise sakura.ReferenceNotFoundError("zone")


class TestEnums:
    def test_bucket_encryption_algorithm(self):
        assert sakura.BucketEncryption.S3_MANAGED.sse_algorithm == "AES256"
        assert sakura.BucketEncryption.KMS_MANAGED.sse_algorithm == "aws:kms"

    def test_machine_image_regex(self):
        assert sakura.MachineImage.AMAZON_LINUX_2.name_regex.startswith("^amzn2-ami-hvm")
        assert sakura.MachineImage.AMAZON_LINUX_2023.name_regex.startswith("^al2023-ami")

    def test_tag_keys(self):
        assert sakura.TagKeys.SAKURA_DEPLOYMENT == "sakura/deployment"
        assert sakura.required_tags("sakura", {"team": "dx"}) == {"sakura/deployment": "sakura", "team": "dx"}


class TestNetworkSpec:
    def test_defaults_are_public_only(self):
        spec = sakura.NetworkSpec(max_azs=2, nat_gateways=0, cidr_block="10.0.0.0/16")
        assert spec.subnet_visibilities == (sakura.SubnetVisibility.PUBLIC,)

    @pytest.mark.parametrize(
        ("kwargs", "match"),
        [
            ({"max_azs": 0, "nat_gateways": 0}, "max_azs"),
            ({"max_azs": 4, "nat_gateways": 0}, "max_azs"),
            ({"max_azs": 2, "nat_gateways": 1}, "nat_gateways"),
            (
                {"max_azs": 2, "nat_gateways": 0, "subnet_visibilities": (sakura.SubnetVisibility.PRIVATE,)},
                "public subnet",
            ),
            (
                {
                    "max_azs": 2,
                    "nat_gateways": 0,
                    "subnet_visibilities": (sakura.SubnetVisibility.PUBLIC, sakura.SubnetVisibility.PRIVATE),
                },
                "private subnets require",
            ),
        ],
    )
    def test_invalid(self, kwargs, match):
        with pytest.raises(sakura.ValidationError, match=match):
            sakura.NetworkSpec(cidr_block="10.0.0.0/16", **kwargs)


class TestSpecs:
    def test_bucket_spec_retention(self):
        destroyed = sakura.BucketSpec(name="pb-backup-sakura-bucket")
        assert destroyed.auto_delete_objects is True
        assert destroyed.removal_policy == sakura.RemovalPolicy.DESTROY

        retained = sakura.BucketSpec(name="pb-backup-sakura-bucket", retain_on_delete=True)
        assert retained.auto_delete_objects is False
        assert retained.removal_policy == sakura.RemovalPolicy.RETAIN

    def test_address_is_always_retained(self):
        assert sakura.AddressSpec().removal_policy == sakura.RemovalPolicy.RETAIN

    def test_dns_record_fqdn(self):
        assert sakura.DnsRecordSpec(zone_name="a.read-dx.com", record_name="sakura").fqdn == "sakura.a.read-dx.com"

    def test_firewall_rule_key(self):
        rule = sakura.FirewallRule(sakura.Protocol.TCP, 22, sakura.ANY_IPV4, "ssh")
        assert rule.key == ("tcp", 22, "0.0.0.0/0")


class TestSubnetCIDRBlocks:
    def test_two_azs(self):
        blocks = sakura.SubnetCIDRBlocks.from_cidr_block(ipaddress.IPv4Network("10.0.0.0/16"), 2)

        assert [str(b) for b in blocks.public] == ["10.0.0.0/18", "10.0.64.0/18"]
        assert [str(b) for b in blocks.private] == ["10.0.128.0/18", "10.0.192.0/18"]

    def test_three_azs(self):
        blocks = sakura.SubnetCIDRBlocks.from_cidr_block(ipaddress.IPv4Network("10.0.0.0/16"), 3)

        assert len(blocks.public) == 3
        assert len(blocks.private) == 3
        assert all(b.prefixlen == 19 for b in blocks.public + blocks.private)

    def test_single_az(self):
        blocks = sakura.SubnetCIDRBlocks.from_cidr_block(ipaddress.IPv4Network("10.0.0.0/16"), 1)

        assert [str(b) for b in blocks.public] == ["10.0.0.0/18"]
        assert [str(b) for b in blocks.private] == ["10.0.128.0/18"]

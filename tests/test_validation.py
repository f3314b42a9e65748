import pytest

import sakura
import sakura.validation


@pytest.mark.parametrize(
    "name",
    ["pb-backup-sakura-bucket", "abc", "my.bucket.name", "a" * 63],
)
def test_valid_bucket_names(name: str) -> None:
    assert sakura.validation.validate_bucket_name(name) == name


@pytest.mark.parametrize(
    ("name", "match"),
    [
        ("ab", "between 3 and 63"),
        ("a" * 64, "between 3 and 63"),
        ("PB-Backup", "lowercase"),
        ("-leading", "lowercase"),
        ("trailing-", "lowercase"),
        ("under_score", "lowercase"),
        ("two..dots", "adjacent periods"),
        ("192.168.5.4", "IP address"),
        ("xn--bucket", "reserved prefix"),
        ("sthree-bucket", "reserved prefix"),
        ("bucket-s3alias", "reserved suffix"),
        ("bucket--ol-s3", "reserved suffix"),
    ],
)
def test_invalid_bucket_names(name: str, match: str) -> None:
    with pytest.raises(sakura.ValidationError, match=match):
        sakura.validation.validate_bucket_name(name)


def test_account_id() -> None:
    assert sakura.validation.validate_account_id("643093502804") == "643093502804"

    for bad in ("64309350280", "6430935028045", "64309350280a", ""):
        with pytest.raises(sakura.ValidationError, match="12 digits"):
            sakura.validation.validate_account_id(bad)


def test_region() -> None:
    for good in ("ap-northeast-1", "us-east-1", "us-gov-west-1", "eu-central-2"):
        assert sakura.validation.validate_region(good) == good

    for bad in ("useast1", "ap-northeast", "AP-NORTHEAST-1", ""):
        with pytest.raises(sakura.ValidationError, match="region"):
            sakura.validation.validate_region(bad)


def test_key_pair_name() -> None:
    assert sakura.validation.validate_key_pair_name("sakura-key") == "sakura-key"

    with pytest.raises(sakura.ValidationError):
        sakura.validation.validate_key_pair_name("")

    with pytest.raises(sakura.ValidationError):
        sakura.validation.validate_key_pair_name("k" * 256)


def test_instance_type() -> None:
    assert sakura.validation.validate_instance_type("t2.micro") == "t2.micro"

    with pytest.raises(sakura.ValidationError, match="family"):
        sakura.validation.validate_instance_type("micro")


@pytest.mark.parametrize("port", [0, 65536, -1, True, "22"])
def test_invalid_ports(port) -> None:
    with pytest.raises(sakura.ValidationError, match="port"):
        sakura.validation.validate_port(port)


def test_valid_ports() -> None:
    assert sakura.validation.validate_port(1) == 1
    assert sakura.validation.validate_port(65535) == 65535


def test_ipv4_cidr() -> None:
    assert str(sakura.validation.validate_ipv4_cidr("10.0.0.0/16")) == "10.0.0.0/16"

    with pytest.raises(sakura.ValidationError, match="not a valid CIDR"):
        sakura.validation.validate_ipv4_cidr("10.0.0.1/16")

    with pytest.raises(sakura.ValidationError, match="not an IPv4"):
        sakura.validation.validate_ipv4_cidr("2001:db8::/32")


def test_ipv4_address() -> None:
    assert sakura.validation.validate_ipv4_address("52.198.32.166") == "52.198.32.166"

    with pytest.raises(sakura.ValidationError):
        sakura.validation.validate_ipv4_address("52.198.32")


def test_domain_and_record_names() -> None:
    assert sakura.validation.validate_domain_name("a.read-dx.com.") == "a.read-dx.com"
    assert sakura.validation.validate_record_name("sakura") == "sakura"
    assert sakura.validation.validate_record_name("api.sakura") == "api.sakura"

    with pytest.raises(sakura.ValidationError, match="two labels"):
        sakura.validation.validate_domain_name("localhost")

    with pytest.raises(sakura.ValidationError, match="invalid DNS label"):
        sakura.validation.validate_domain_name("bad_label.com")

    with pytest.raises(sakura.ValidationError, match="invalid DNS label"):
        sakura.validation.validate_record_name("-sakura")

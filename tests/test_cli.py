import json
import pathlib
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

import sakura
import sakura.cli
import sakura.references


@pytest.fixture
def sakura_yaml(sakura_root: pathlib.Path) -> pathlib.Path:
    d = sakura_root / "sakura"
    d.mkdir()

    with (d / "sakura.yaml").open("w") as out:
        yaml.dump(
            {
                "apiVersion": "sakura/v1",
                "kind": "DeploymentConfig",
                "spec": {
                    "account-id": "643093502804",
                    "region": "ap-northeast-1",
                    "bucket-name": "pb-backup-sakura-bucket",
                    "key-pair-name": "sakura-key",
                    "enable-dns": True,
                    "domain-name": "a.read-dx.com",
                    "record-name": "sakura",
                },
            },
            stream=out,
        )

    return d / "sakura.yaml"


def test_plan_json(sakura_yaml: pathlib.Path) -> None:
    result = CliRunner().invoke(sakura.cli.cli, ["plan", "sakura", "--format", "json"])

    assert result.exit_code == 0, result.output
    doc = json.loads(result.stdout)

    assert [r["logical_id"] for r in doc["resources"]][-1] == "sakura-dns-record"
    assert len(doc["signature"]) == 64
    assert "∙ sakura-vpc [vpc]" in result.stderr


def test_plan_yaml(sakura_yaml: pathlib.Path) -> None:
    result = CliRunner().invoke(sakura.cli.cli, ["plan", "sakura"])

    assert result.exit_code == 0, result.output
    doc = yaml.safe_load(result.stdout)

    (eip,) = [r for r in doc["resources"] if r["kind"] == "elastic_ip"]
    assert eip["removal_policy"] == "retain"


def test_plan_missing_deployment(sakura_root: pathlib.Path) -> None:
    result = CliRunner().invoke(sakura.cli.cli, ["plan", "nope"])

    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_plan_without_sakura_root(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SAKURA_ROOT", raising=False)

    result = CliRunner().invoke(sakura.cli.cli, ["plan", "sakura"])

    assert result.exit_code == 1
    assert "SAKURA_ROOT environment variable not set" in result.output


def test_check_ok(sakura_yaml: pathlib.Path) -> None:
    references = sakura.references.StaticReferences(
        zones=frozenset({"a.read-dx.com"}),
        key_pairs=frozenset({"sakura-key"}),
    )

    with patch("sakura.references.AwsReferences", return_value=references) as mock_refs:
        result = CliRunner().invoke(sakura.cli.cli, ["check", "sakura"])

    assert result.exit_code == 0, result.output
    assert "references resolved" in result.output
    mock_refs.assert_called_once_with(region="ap-northeast-1")


def test_check_missing_zone(sakura_yaml: pathlib.Path) -> None:
    references = sakura.references.StaticReferences(key_pairs=frozenset({"sakura-key"}))

    with patch("sakura.references.AwsReferences", return_value=references):
        result = CliRunner().invoke(sakura.cli.cli, ["check", "sakura"])

    assert result.exit_code == 1
    assert "hosted zone 'a.read-dx.com' does not exist" in result.output


def test_check_aws_failure(sakura_yaml: pathlib.Path) -> None:
    with patch("sakura.references.AwsReferences") as mock_refs:
        mock_refs.return_value.zone_exists.side_effect = sakura.ExternalProvisioningError("AccessDenied")
        result = CliRunner().invoke(sakura.cli.cli, ["check", "sakura"])

    assert result.exit_code == 2
    assert "AWS lookup failed: AccessDenied" in result.output


def test_plan_malformed_config(sakura_root: pathlib.Path) -> None:
    d = sakura_root / "sakura"
    d.mkdir()
    with (d / "sakura.yaml").open("w") as out:
        yaml.dump(
            {
                "apiVersion": "sakura/v1",
                "kind": "DeploymentConfig",
                "spec": {
                    "account-id": "643093502804",
                    "region": "ap-northeast-1",
                    "bucket-name": "pb-backup-sakura-bucket",
                    "key-pair-name": "sakura-key",
                    "firewall-ports": 22,
                },
            },
            stream=out,
        )

    result = CliRunner().invoke(sakura.cli.cli, ["plan", "sakura"])

    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert "firewall_ports must be a list" in result.output

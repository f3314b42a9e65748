from __future__ import annotations

import json
import sys

import click
import yaml

import sakura
import sakura.deployment
import sakura.descriptor
import sakura.junkdrawer
import sakura.references


def load_config(name: str) -> sakura.deployment.DeploymentConfig:
    try:
        return sakura.deployment.Deployment(name).cfg
    except (sakura.ValidationError, RuntimeError) as e:
        raise click.ClickException(str(e)) from e


@click.group()
def cli():
    """Render and check Sakura deployment descriptors."""


@cli.command()
@click.argument("name")
@click.option("--format", "fmt", type=click.Choice(["yaml", "json"]), default="yaml", show_default=True)
def plan(name: str, fmt: str):
    """Print the resource graph for deployment NAME without contacting AWS."""
    cfg = load_config(name)

    try:
        graph = sakura.descriptor.build(cfg)
    except sakura.ValidationError as e:
        raise click.ClickException(str(e)) from e

    click.secho(f"Deployment {cfg.name} ({cfg.account_id}/{cfg.region})", bold=True, err=True)
    sakura.junkdrawer.print_steps(
        [(f"{lid} [{graph.get(lid).kind}]", None) for lid in graph.topological_order()],
        err=True,
    )

    doc = graph.to_dict() | {"signature": graph.signature()}
    if fmt == "json":
        click.echo(json.dumps(doc, indent=2, sort_keys=True))
    else:
        click.echo(yaml.safe_dump(doc, sort_keys=False))


@cli.command()
@click.argument("name")
def check(name: str):
    """Build deployment NAME, verifying its hosted zone and key pair exist in AWS."""
    cfg = load_config(name)
    references = sakura.references.AwsReferences(region=cfg.region)

    try:
        graph = sakura.descriptor.build(cfg, references=references)
    except sakura.ValidationError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        sys.exit(1)
    except sakura.ExternalProvisioningError as e:
        click.secho(f"✗ AWS lookup failed: {e}", fg="red", err=True)
        sys.exit(2)

    click.secho(f"✓ {cfg.name}: {len(graph.resources)} resources, references resolved", fg="green")

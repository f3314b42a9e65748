from __future__ import annotations

import hashlib
import json
import typing

import click


def print_steps(steps: list[tuple[str, typing.Any]], *, err: bool = False):
    click.secho(
        "∙ " + ("\n∙ ".join([name for name, _ in steps])) + "\n\n",
        fg="white",
        bold=True,
        err=err,
    )


def json_signature(obj: typing.Any) -> str:
    return hashlib.sha256(
        json.dumps(obj, sort_keys=True).encode(),
        usedforsecurity=False,
    ).hexdigest()


def dash_to_underscore(d: dict[str, typing.Any]) -> dict[str, typing.Any]:
    return {k.replace("-", "_"): v for k, v in d.items()}

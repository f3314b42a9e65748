from __future__ import annotations

import os
import pathlib


class Paths:
    @property
    def root(self) -> pathlib.Path:
        """Return the deployments configuration directory.

        This is always set via the SAKURA_ROOT environment variable, either by
        the operator's shell or by the Pulumi project invoking the stack.

        Raises:
            RuntimeError: If SAKURA_ROOT is not set in the environment

        """
        if "SAKURA_ROOT" not in os.environ:
            msg = "SAKURA_ROOT environment variable not set."
            raise RuntimeError(msg)

        return pathlib.Path(os.environ["SAKURA_ROOT"])

    def deployment(self, name: str) -> pathlib.Path:
        return self.root / name

    def deployment_yaml(self, name: str) -> pathlib.Path:
        return self.deployment(name) / "sakura.yaml"

"""Pulumi program entry point; the stack name selects the deployment under SAKURA_ROOT."""

import sakura.pulumi_resources.sakura_stack

sakura.pulumi_resources.sakura_stack.SakuraStack.autoload()

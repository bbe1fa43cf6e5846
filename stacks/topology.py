from dataclasses import replace
from typing import Dict, Type

from aws_cdk import Environment, Stack
from constructs import Construct

from config.environments import FARGATE_CONFIG, EnvironmentConfig
from stacks.fargate_stack import PonderFargateStack
from stacks.registry_stack import PonderRegistryStack
from stacks.blue_green_stack import PonderBlueGreenStack

REVISIONS: Dict[str, Type[Stack]] = {
    PonderFargateStack.revision: PonderFargateStack,
    PonderRegistryStack.revision: PonderRegistryStack,
    PonderBlueGreenStack.revision: PonderBlueGreenStack,
}

DESCRIPTIONS = {
    "fargate": "Ponder on ECS Fargate behind a load balancer",
    "registry": "Ponder on ECS Fargate with service discovery and ECR",
    "blue-green": "Ponder on ECS Fargate with CodeDeploy blue/green deployments",
}


def build_topology(scope: Construct, config: EnvironmentConfig, revision: str,
                   env: Environment = None) -> Stack:
    """
    Declare the whole deployment topology for one environment.
    Nothing is provisioned here; `cdk deploy` submits the synthesized template.
    """
    try:
        stack_class = REVISIONS[revision]
    except KeyError:
        known = ", ".join(sorted(REVISIONS))
        raise ValueError(f"Unknown revision '{revision}' (known: {known})") from None

    return stack_class(
        scope,
        stack_id(config),
        config=revision_config(config, revision),
        env=env,
        description=DESCRIPTIONS[revision],
    )


def stack_id(config: EnvironmentConfig) -> str:
    return f"{config.application_id.capitalize()}EcsInfrastructureStack"


def revision_config(config: EnvironmentConfig, revision: str) -> EnvironmentConfig:
    """
    The fargate revision has no registry to pull from. An app without an
    image or a build context is built from the local context on port 3000.
    """
    app = config.app
    if revision != PonderFargateStack.revision or app.image or app.build_context:
        return config
    return replace(config, app=replace(
        app,
        container_port=FARGATE_CONFIG.app.container_port,
        build_context=FARGATE_CONFIG.app.build_context,
    ))

#!/usr/bin/env python3
import os

import aws_cdk as cdk
from config.environments import apply_overrides, get_environment_config
from stacks.topology import build_topology

# Context keys that may override the selected environment configuration
OVERRIDE_KEYS = (
    "image",
    "imageTag",
    "appDesiredCount",
    "databaseSchema",
    "databaseUrl",
    "logRetention",
    "alarmSubscriptions",
)

app = cdk.App()

# e.g. cdk deploy -c environment=production -c revision=blue-green
env_name = app.node.try_get_context("environment") or "production"
revision = app.node.try_get_context("revision") or "blue-green"

config = apply_overrides(
    get_environment_config(env_name),
    {key: app.node.try_get_context(key) for key in OVERRIDE_KEYS},
)

build_topology(
    app,
    config,
    revision,
    env=cdk.Environment(
        account=os.environ.get("CDK_DEFAULT_ACCOUNT"),
        region=os.environ.get("CDK_DEFAULT_REGION"),
    ),
)

app.synth()

#!/usr/bin/env python3
"""
RDS PostgreSQL Platform - AWS CDK Application
VPC + private PostgreSQL instance + VPC endpoints for Lambda, Glue,
Secrets Manager and S3
"""

import logging

import aws_cdk as cdk
from stacks.rds_postgres_stack import RdsPostgresStack
from stacks.settings import StackSettings, resolve_environment

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

app = cdk.App()

# Environment configuration (CDK_DEFAULT_ACCOUNT / CDK_DEFAULT_REGION)
env = resolve_environment()

# Stack settings from cdk.json context or `cdk synth -c key=value`
settings = StackSettings.from_context(app.node)

stack_name = app.node.try_get_context("stack_name") or "CdkRdsPgdslStack"

# Tags applied to ALL resources
tags = {
    "Project": "athena-poc",
    "ManagedBy": "CDK"
}

# ============================================================================
# STACK: VPC + RDS PostgreSQL + VPC endpoints
# ============================================================================
RdsPostgresStack(
    app, stack_name,
    settings=settings,
    env=env,
    tags=tags
)

# ============================================================================
# SYNTHESIZE
# ============================================================================
app.synth()

import aws_cdk as cdk
import pytest
from aws_cdk.assertions import Template

from stacks.rds_postgres_stack import RdsPostgresStack

TEST_ENV = cdk.Environment(account="123456789012", region="us-east-1")


def synth(settings=None) -> Template:
    app = cdk.App()
    stack = RdsPostgresStack(app, "TestRdsPostgresStack", settings=settings, env=TEST_ENV)
    return Template.from_stack(stack)


@pytest.fixture(scope="module")
def template() -> Template:
    """Template of the stack with default settings."""
    return synth()


@pytest.fixture
def synth_template():
    """Synthesizes the stack for a given StackSettings."""
    return synth

"""
Stack configuration resolved from CDK context (cdk.json or `-c key=value`)
"""

import logging
import os
import re
from dataclasses import dataclass, fields
from typing import Any, Optional

from aws_cdk import Environment
from constructs import Node

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT = "default_account"
DEFAULT_REGION = "default_region"

# PostgreSQL identifier rules as enforced by RDS for the initial database
_DB_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]{0,62}$")
_RESERVED_USERNAMES = ("rdsadmin", "rdsrepladmin")

MIN_ALLOCATED_STORAGE = 5
MAX_ALLOCATED_STORAGE = 65536
MAX_BACKUP_RETENTION_DAYS = 35


def _to_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Context value '{key}' must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Context value '{key}' must be an integer, got {value!r}") from exc


def _to_bool(key: str, value: Any) -> bool:
    # `cdk synth -c flag=false` hands the value over as a string
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.lower() in ("false", "0", "no"):
        return False
    raise ValueError(f"Context value '{key}' must be a boolean, got {value!r}")


@dataclass(frozen=True)
class StackSettings:
    """
    Tunable values of the RDS PostgreSQL stack.

    Defaults reproduce the deployed stack: a two-AZ VPC with one NAT gateway,
    VPC endpoints for Lambda, Glue, Secrets Manager and S3, and a t3.micro
    PostgreSQL instance with 15 GiB of storage.
    """

    database_name: str = "my_initial_database"
    master_username: str = "postgresadmin"
    instance_type: str = "t3.micro"
    allocated_storage: int = 15
    backup_retention_days: int = 3
    vpc_cidr: str = "10.0.0.0/16"
    max_azs: int = 2
    nat_gateways: int = 1
    enable_vpc_endpoints: bool = True

    @classmethod
    def from_context(cls, node: Node) -> "StackSettings":
        """Build settings from CDK context, falling back to the defaults."""
        values = {}
        for field in fields(cls):
            raw = node.try_get_context(field.name)
            if raw is None:
                continue
            if field.type is int:
                values[field.name] = _to_int(field.name, raw)
            elif field.type is bool:
                values[field.name] = _to_bool(field.name, raw)
            else:
                values[field.name] = str(raw)

        settings = cls(**values)
        settings.validate()
        if values:
            logger.info("Context overrides: %s", ", ".join(sorted(values)))
        return settings

    @property
    def public_subnets_enabled(self) -> bool:
        # Public subnets only exist to host NAT gateways
        return self.nat_gateways > 0

    def validate(self) -> None:
        if not _DB_NAME_PATTERN.match(self.database_name):
            raise ValueError(
                f"Invalid database name {self.database_name!r}: must start with a letter, "
                "contain only letters, digits and underscores, and be at most 63 characters"
            )

        if not self.master_username:
            raise ValueError("Master username must not be empty")
        if self.master_username.lower() in _RESERVED_USERNAMES:
            raise ValueError(f"Master username {self.master_username!r} is reserved by RDS")

        if not MIN_ALLOCATED_STORAGE <= self.allocated_storage <= MAX_ALLOCATED_STORAGE:
            raise ValueError(
                f"Allocated storage must be between {MIN_ALLOCATED_STORAGE} and "
                f"{MAX_ALLOCATED_STORAGE} GiB, got {self.allocated_storage}"
            )

        if not 0 <= self.backup_retention_days <= MAX_BACKUP_RETENTION_DAYS:
            raise ValueError(
                f"Backup retention must be between 0 and {MAX_BACKUP_RETENTION_DAYS} days, "
                f"got {self.backup_retention_days}"
            )

        if self.max_azs < 1:
            raise ValueError(f"max_azs must be at least 1, got {self.max_azs}")
        if self.nat_gateways < 0 or self.nat_gateways > self.max_azs:
            raise ValueError(
                f"nat_gateways must be between 0 and max_azs ({self.max_azs}), "
                f"got {self.nat_gateways}"
            )


def describe(settings: Optional[StackSettings]) -> str:
    """One-line summary used in build logs."""
    settings = settings or StackSettings()
    return (
        f"db={settings.database_name} type={settings.instance_type} "
        f"storage={settings.allocated_storage}GiB backups={settings.backup_retention_days}d "
        f"azs={settings.max_azs} nat={settings.nat_gateways} "
        f"endpoints={'on' if settings.enable_vpc_endpoints else 'off'}"
    )


def resolve_environment() -> Environment:
    """Account/region from the CDK CLI variables, with literal fallbacks."""
    account = os.environ.get("CDK_DEFAULT_ACCOUNT")
    region = os.environ.get("CDK_DEFAULT_REGION")

    if not account:
        logger.warning("CDK_DEFAULT_ACCOUNT is not set, using %r", DEFAULT_ACCOUNT)
        account = DEFAULT_ACCOUNT
    if not region:
        logger.warning("CDK_DEFAULT_REGION is not set, using %r", DEFAULT_REGION)
        region = DEFAULT_REGION

    return Environment(account=account, region=region)

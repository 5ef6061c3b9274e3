"""
Private PostgreSQL template - keeps the database off the internet and
ties its credentials to Secrets Manager
"""

from aws_cdk import aws_rds as rds
from constructs import Construct


class PrivatePostgresInstance(rds.DatabaseInstance):
    """
    RDS instance that can only live inside the VPC.

    Public access is refused outright, credentials must be supplied (the
    stack sources them from a Secrets Manager secret) and storage is always
    encrypted.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        credentials: rds.Credentials = None,
        publicly_accessible: bool = False,
        **kwargs
    ):
        if publicly_accessible:
            raise ValueError(
                f"Database {construct_id} cannot be publicly accessible. "
                "Reach it through the VPC or a VPC endpoint instead."
            )

        if credentials is None:
            raise ValueError(
                f"Database {construct_id} needs explicit credentials sourced from a secret"
            )

        kwargs["storage_encrypted"] = True

        super().__init__(
            scope,
            construct_id,
            credentials=credentials,
            publicly_accessible=False,
            **kwargs
        )

import json
import logging
from typing import Optional

from aws_cdk import (
    Stack,
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_rds as rds,
    aws_secretsmanager as secretsmanager,
    Duration,
    RemovalPolicy,
    CfnOutput
)
from constructs import Construct
from secure_templates.rds import PrivatePostgresInstance
from stacks.settings import StackSettings, describe, resolve_environment

logger = logging.getLogger(__name__)

POSTGRES_PORT = 5432
HTTPS_PORT = 443

# Export names are consumed by other stacks; keep them stable
EXPORT_SUFFIX = "-2"


class RdsPostgresStack(Stack):
    """
    PostgreSQL on RDS inside a private VPC

    - VPC with public subnets + NAT gateway and private subnets for the database
    - Interface endpoints (Lambda, Glue, Secrets Manager) and an S3 gateway
      endpoint so workloads in the VPC never leave the AWS network
    - Credentials generated into Secrets Manager, IAM role allowed to connect
    """

    def __init__(self, scope: Construct, construct_id: str,
                 settings: Optional[StackSettings] = None, **kwargs) -> None:
        if "env" not in kwargs:
            kwargs["env"] = resolve_environment()
        super().__init__(scope, construct_id, **kwargs)

        self.settings = settings or StackSettings()
        self.settings.validate()
        logger.info("Building %s: %s", construct_id, describe(self.settings))

        if self.settings.public_subnets_enabled:
            self.private_subnet_type = ec2.SubnetType.PRIVATE_WITH_EGRESS
        else:
            self.private_subnet_type = ec2.SubnetType.PRIVATE_ISOLATED

        # ====================================================================
        # VPC
        # ====================================================================
        subnet_configuration = []
        if self.settings.public_subnets_enabled:
            subnet_configuration.append(
                ec2.SubnetConfiguration(
                    name="Public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=24
                )
            )
        subnet_configuration.append(
            ec2.SubnetConfiguration(
                name="Private",
                subnet_type=self.private_subnet_type,
                cidr_mask=24
            )
        )

        self.vpc = ec2.Vpc(
            self, "Athena-POC-VPC",
            ip_addresses=ec2.IpAddresses.cidr(self.settings.vpc_cidr),
            max_azs=self.settings.max_azs,
            nat_gateways=self.settings.nat_gateways,
            subnet_configuration=subnet_configuration
        )

        # ====================================================================
        # IAM Role trusted by RDS
        # ====================================================================
        self.rds_role = iam.Role(
            self, "RDSRole",
            assumed_by=iam.ServicePrincipal("rds.amazonaws.com")
        )
        self.rds_role.add_to_policy(
            iam.PolicyStatement(
                actions=[
                    "rds-db:connect",
                    "secretsmanager:GetSecretValue",
                    "sts:AssumeRole"
                ],
                resources=["*"]
            )
        )

        # ====================================================================
        # Database credentials (password generated at deploy time)
        # ====================================================================
        self.db_secret = secretsmanager.Secret(
            self, "DBSecret",
            generate_secret_string=secretsmanager.SecretStringGenerator(
                secret_string_template=json.dumps({"username": self.settings.master_username}),
                generate_string_key="password",
                exclude_punctuation=True,
                exclude_characters="\"@/"
            )
        )

        # ====================================================================
        # PostgreSQL instance
        # ====================================================================
        self.db_instance = PrivatePostgresInstance(
            self, "DatabaseInstance",
            engine=rds.DatabaseInstanceEngine.postgres(
                version=rds.PostgresEngineVersion.VER_15_3
            ),
            instance_type=ec2.InstanceType(self.settings.instance_type),
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=self.private_subnet_type),
            port=POSTGRES_PORT,
            allocated_storage=self.settings.allocated_storage,
            backup_retention=Duration.days(self.settings.backup_retention_days),
            removal_policy=RemovalPolicy.DESTROY,
            database_name=self.settings.database_name,
            credentials=rds.Credentials.from_secret(self.db_secret),
            iam_authentication=True
        )
        self.db_instance.grant_connect(self.rds_role, self.settings.master_username)

        # Rules go on the group RDS created for the instance, not a new one
        self.db_security_group = self.db_instance.connections.security_groups[0]
        self.db_security_group.add_ingress_rule(
            peer=ec2.Peer.ipv4(self.vpc.vpc_cidr_block),
            connection=ec2.Port.tcp(POSTGRES_PORT),
            description="Allow PostgreSQL from inside the VPC"
        )
        # Glue JDBC connections require a self-referencing rule
        self.db_security_group.add_ingress_rule(
            peer=self.db_security_group,
            connection=ec2.Port.all_tcp(),
            description="Allow all TCP between members of this group (Glue)"
        )

        # ====================================================================
        # VPC endpoints
        # ====================================================================
        self.endpoint_security_group = None
        self.interface_endpoints = {}
        self.gateway_endpoints = {}
        if self.settings.enable_vpc_endpoints:
            self._add_vpc_endpoints()

        # ====================================================================
        # OUTPUTS
        # ====================================================================
        self._add_outputs()

    def _add_vpc_endpoints(self) -> None:
        self.endpoint_security_group = ec2.SecurityGroup(
            self, "VpcEndpointSecurityGroup",
            vpc=self.vpc,
            description="Security group for VPC interface endpoints",
            allow_all_outbound=True
        )
        self.endpoint_security_group.add_ingress_rule(
            peer=ec2.Peer.ipv4(self.vpc.vpc_cidr_block),
            connection=ec2.Port.tcp(HTTPS_PORT),
            description="Allow HTTPS from inside the VPC"
        )

        interface_services = {
            "LambdaEndpoint": ec2.InterfaceVpcEndpointAwsService.LAMBDA_,
            "GlueEndpoint": ec2.InterfaceVpcEndpointAwsService.GLUE,
            "SecretsManagerEndpoint": ec2.InterfaceVpcEndpointAwsService.SECRETS_MANAGER,
        }
        for endpoint_id, service in interface_services.items():
            self.interface_endpoints[endpoint_id] = self.vpc.add_interface_endpoint(
                endpoint_id,
                service=service,
                private_dns_enabled=True,
                subnets=ec2.SubnetSelection(subnet_type=self.private_subnet_type),
                security_groups=[self.endpoint_security_group],
                open=False
            )

        self.gateway_endpoints["S3Endpoint"] = self.vpc.add_gateway_endpoint(
            "S3Endpoint",
            service=ec2.GatewayVpcEndpointAwsService.S3
        )

    def _private_subnets(self):
        if self.private_subnet_type == ec2.SubnetType.PRIVATE_ISOLATED:
            return self.vpc.isolated_subnets
        return self.vpc.private_subnets

    def _add_outputs(self) -> None:
        CfnOutput(self, "AthenaVpcIdOutput", value=self.vpc.vpc_id)
        CfnOutput(
            self, "AthenaVpcPrivateSubnetsOutput",
            value=",".join(subnet.subnet_id for subnet in self._private_subnets()),
            export_name="AthenaVpcPrivateSubnetsOutput" + EXPORT_SUFFIX
        )
        if self.settings.public_subnets_enabled:
            CfnOutput(
                self, "AthenaVpcPublicSubnetsOutput",
                value=",".join(subnet.subnet_id for subnet in self.vpc.public_subnets),
                export_name="AthenaVpcPublicSubnetsOutput" + EXPORT_SUFFIX
            )
        CfnOutput(
            self, "AthenaVpcAvailabilityZonesOutput",
            value=",".join(self.vpc.availability_zones),
            export_name="AthenaVpcAvailabilityZonesOutput" + EXPORT_SUFFIX
        )
        CfnOutput(
            self, "AthenaDatabaseNameOutput",
            value=self.settings.database_name,
            export_name="AthenaDatabaseNameOutput" + EXPORT_SUFFIX
        )
        CfnOutput(
            self, "dbInstanceEndpointAddress",
            value=self.db_instance.db_instance_endpoint_address,
            export_name="dbInstanceEndpointAddress" + EXPORT_SUFFIX
        )
        CfnOutput(
            self, "dbInstanceEndpointPort",
            value=self.db_instance.db_instance_endpoint_port,
            export_name="dbInstanceEndpointPort" + EXPORT_SUFFIX
        )
        CfnOutput(
            self, "dbSecurityGroupId",
            value=self.db_security_group.security_group_id,
            export_name="dbSecurityGroupId" + EXPORT_SUFFIX
        )
        CfnOutput(
            self, "dbSecretArn",
            value=self.db_secret.secret_arn,
            export_name="dbSecretArn" + EXPORT_SUFFIX
        )

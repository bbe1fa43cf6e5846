from aws_cdk import (
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_logs as logs,
    aws_secretsmanager as secretsmanager,
    aws_servicediscovery as servicediscovery,
    Duration,
    RemovalPolicy,
    Tags,
)
from constructs import Construct
from config.environments import DatabaseConfig
from typing import Optional


class PostgresService(Construct):
    """
    PostgreSQL running as a single Fargate service in the private subnets.
    Credentials are generated into Secrets Manager.
    """

    SERVICE_NAME = "postgres-service"
    DISCOVERY_NAME = "postgres"

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        cluster: ecs.Cluster,
        config: DatabaseConfig,
        security_group: ec2.SecurityGroup,
        log_retention: logs.RetentionDays,
        log_group_name: str,
        namespace: Optional[servicediscovery.INamespace] = None,
        removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.config = config
        self.namespace = namespace

        self.credentials = secretsmanager.Secret(
            self,
            "Credentials",
            description="PostgreSQL credentials for the ponder database",
            generate_secret_string=secretsmanager.SecretStringGenerator(
                secret_string_template=f'{{"username": "{config.username}"}}',
                generate_string_key="password",
                exclude_punctuation=True,
                password_length=32,
            ),
            removal_policy=removal_policy,
        )

        self.log_group = logs.LogGroup(
            self,
            "LogGroup",
            log_group_name=log_group_name,
            retention=log_retention,
            removal_policy=removal_policy,
        )

        self.task_definition = ecs.FargateTaskDefinition(
            self,
            "TaskDefinition",
            cpu=config.cpu,
            memory_limit_mib=config.memory_limit_mib,
        )
        self.task_definition.apply_removal_policy(removal_policy)

        self.container = self.task_definition.add_container(
            "postgres",
            image=ecs.ContainerImage.from_registry(config.image),
            environment={
                "POSTGRES_DB": config.database_name,
                "POSTGRES_USER": config.username,
            },
            secrets={
                "POSTGRES_PASSWORD": ecs.Secret.from_secrets_manager(self.credentials, "password"),
            },
            logging=ecs.LogDrivers.aws_logs(stream_prefix="postgres", log_group=self.log_group),
            health_check=ecs.HealthCheck(
                command=["CMD-SHELL", f"pg_isready -U {config.username}"],
                interval=Duration.seconds(30),
                timeout=Duration.seconds(5),
                retries=3,
            ),
        )
        self.container.add_port_mappings(
            ecs.PortMapping(container_port=config.port, protocol=ecs.Protocol.TCP)
        )

        self.service = ecs.FargateService(
            self,
            "Service",
            cluster=cluster,
            task_definition=self.task_definition,
            desired_count=config.desired_count,
            service_name=self.SERVICE_NAME,
            security_groups=[security_group],
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
        )
        self.service.apply_removal_policy(removal_policy)

        if namespace is not None:
            self.service.enable_cloud_map(
                name=self.DISCOVERY_NAME,
                cloud_map_namespace=namespace,
            )

        Tags.of(self).add("Component", "Database")

    @property
    def host(self) -> str:
        """Host name the application uses to reach PostgreSQL"""
        if self.namespace is not None:
            return f"{self.DISCOVERY_NAME}.{self.namespace.namespace_name}"
        return self.SERVICE_NAME

    def connection_string(self) -> str:
        """
        DATABASE_URL for the application. An externally configured connection
        string always wins over the in-cluster service.
        """
        if self.config.connection_string:
            return self.config.connection_string

        password = self.credentials.secret_value_from_json("password").unsafe_unwrap()
        return (
            f"postgresql://{self.config.username}:{password}"
            f"@{self.host}:{self.config.port}/{self.config.database_name}"
        )

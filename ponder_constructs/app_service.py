from aws_cdk import (
    aws_ec2 as ec2,
    aws_ecr as ecr,
    aws_ecs as ecs,
    aws_logs as logs,
    Duration,
    RemovalPolicy,
    Tags,
)
from constructs import Construct
from config.environments import AppConfig
from typing import Optional


class PonderAppService(Construct):
    """
    Fargate service running the ponder indexer.

    The image comes from the ECR repository when one is given, otherwise from
    a public registry reference, otherwise it is built from the local context.
    """

    SERVICE_NAME = "app-service"

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        cluster: ecs.Cluster,
        config: AppConfig,
        security_group: ec2.SecurityGroup,
        database_url: str,
        log_retention: logs.RetentionDays,
        log_group_name: str,
        repository: Optional[ecr.IRepository] = None,
        blue_green: bool = False,
        removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.config = config

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

        environment = {
            "NODE_ENV": "production",
            "DATABASE_URL": database_url,
            "DATABASE_SCHEMA": config.database_schema,
        }
        environment.update(config.environment)

        self.container = self.task_definition.add_container(
            "app",
            image=self._container_image(repository),
            environment=environment,
            logging=ecs.LogDrivers.aws_logs(stream_prefix="app", log_group=self.log_group),
            health_check=ecs.HealthCheck(
                command=[
                    "CMD-SHELL",
                    f"wget --no-verbose --tries=1 --spider http://localhost:{config.container_port}/health || exit 1",
                ],
                interval=Duration.seconds(30),
                timeout=Duration.seconds(5),
                retries=3,
            ),
        )
        self.container.add_port_mappings(
            ecs.PortMapping(
                container_port=config.container_port,
                host_port=config.container_port,
                app_protocol=ecs.AppProtocol.http,
                protocol=ecs.Protocol.TCP,
                name="app",
            )
        )

        deployment_controller = None
        if blue_green:
            deployment_controller = ecs.DeploymentController(
                type=ecs.DeploymentControllerType.CODE_DEPLOY
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
            deployment_controller=deployment_controller,
        )
        self.service.apply_removal_policy(removal_policy)

        Tags.of(self).add("Component", "Application")

    def _container_image(self, repository: Optional[ecr.IRepository]) -> ecs.ContainerImage:
        """Resolve where the application image comes from"""
        if repository is not None:
            return ecs.ContainerImage.from_ecr_repository(repository, tag=self.config.image_tag)
        if self.config.image:
            return ecs.ContainerImage.from_registry(self.config.image)
        if self.config.build_context:
            return ecs.ContainerImage.from_asset(
                self.config.build_context,
                build_args={"DATABASE_SCHEMA": self.config.database_schema},
            )
        raise ValueError("Application image needs a repository, an image or a build context")

from aws_cdk import (
    Stack,
    CfnOutput,
    RemovalPolicy,
    aws_ecr as ecr,
    aws_ecs as ecs,
    aws_servicediscovery as servicediscovery,
    Tags
)
from constructs import Construct
from ponder_constructs.network import PonderNetwork
from ponder_constructs.postgres_service import PostgresService
from ponder_constructs.app_service import PonderAppService
from ponder_constructs.load_balancer import PonderLoadBalancer
from config.environments import EnvironmentConfig, retention_days
from typing import Optional


def removal_policy_for(config: EnvironmentConfig) -> RemovalPolicy:
    return RemovalPolicy.DESTROY if config.removal_policy_destroy else RemovalPolicy.RETAIN


class PonderFargateStack(Stack):
    """
    Fargate cluster with PostgreSQL and the app behind a load balancer.

    Later revisions extend this stack through `_service_discovery` and
    `_repository`, and switch the load balancer to blue/green mode.
    """

    revision = "fargate"
    blue_green = False

    def __init__(self, scope: Construct, construct_id: str,
                 config: EnvironmentConfig,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.config = config
        self.removal_policy = removal_policy_for(config)
        self.log_retention = retention_days(config)

        self.network = PonderNetwork(self, "Network",
            config=config.network,
            app_port=config.app.container_port,
            database_port=config.database.port,
            removal_policy=self.removal_policy
        )
        self.vpc = self.network.vpc

        self.cluster = ecs.Cluster(self, "EcsCluster",
            vpc=self.vpc,
            cluster_name=config.cluster_name
        )
        self.cluster.apply_removal_policy(self.removal_policy)

        self.namespace = self._service_discovery()
        repository = self._repository()

        self.database = PostgresService(self, "Postgres",
            cluster=self.cluster,
            config=config.database,
            security_group=self.network.database_security_group,
            log_retention=self.log_retention,
            log_group_name=f"/ecs/{config.application_id}/postgres",
            namespace=self.namespace,
            removal_policy=self.removal_policy
        )

        self.app = PonderAppService(self, "App",
            cluster=self.cluster,
            config=config.app,
            security_group=self.network.app_security_group,
            database_url=self.database.connection_string(),
            log_retention=self.log_retention,
            log_group_name=f"/ecs/{config.application_id}/app",
            repository=repository,
            blue_green=self.blue_green,
            removal_policy=self.removal_policy
        )

        self.load_balancer = PonderLoadBalancer(self, "LoadBalancer",
            vpc=self.vpc,
            security_group=self.network.load_balancer_security_group,
            service=self.app.service,
            app_port=config.app.container_port,
            load_balancer_name=config.load_balancer_name,
            blue_green=self.blue_green,
            removal_policy=self.removal_policy
        )

        CfnOutput(self, "LoadBalancerURL",
            value=self.load_balancer.url,
            description="URL of the Application Load Balancer (Production)"
        )
        CfnOutput(self, "VpcId", value=self.vpc.vpc_id, description="VPC ID")
        CfnOutput(self, "ClusterName",
            value=self.cluster.cluster_name,
            description="ECS Cluster Name"
        )

        Tags.of(self).add("Application", config.application_id)
        Tags.of(self).add("Environment", config.environment_name)
        Tags.of(self).add("Revision", self.revision)

    def _service_discovery(self) -> Optional[servicediscovery.INamespace]:
        """No Cloud Map namespace; PostgreSQL is addressed by service name"""
        return None

    def _repository(self) -> Optional[ecr.IRepository]:
        """No registry; the image comes from the app configuration"""
        return None

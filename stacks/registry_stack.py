from aws_cdk import (
    CfnOutput,
    aws_ecr as ecr,
    aws_servicediscovery as servicediscovery,
)
from constructs import Construct
from ponder_constructs.registry import PonderRegistry
from config.environments import EnvironmentConfig
from stacks.fargate_stack import PonderFargateStack


class PonderRegistryStack(PonderFargateStack):
    """
    Fargate stack with Cloud Map service discovery. The app image is pulled
    from an ECR repository that CI pushes to.
    """

    revision = "registry"

    def __init__(self, scope: Construct, construct_id: str,
                 config: EnvironmentConfig,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, config=config, **kwargs)

        CfnOutput(self, "RepositoryUri",
            value=self.registry.repository.repository_uri,
            description="ECR repository the CI workflow pushes to"
        )

    def _service_discovery(self) -> servicediscovery.INamespace:
        # Service discovery for internal communication
        return self.cluster.add_default_cloud_map_namespace(
            name=self.config.service_discovery_namespace
        )

    def _repository(self) -> ecr.IRepository:
        self.registry = PonderRegistry(self, "Registry",
            repository_name=self.config.repository_name,
            removal_policy=self.removal_policy
        )
        return self.registry.repository

from aws_cdk import aws_ecr as ecr, RemovalPolicy, Tags
from constructs import Construct


class PonderRegistry(Construct):
    """ECR repository the CI workflow pushes the ponder image to"""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        repository_name: str,
        max_image_count: int = 10,
        removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.repository = ecr.Repository(
            self,
            "Repository",
            repository_name=repository_name,
            image_scan_on_push=True,
            empty_on_delete=removal_policy == RemovalPolicy.DESTROY,
            removal_policy=removal_policy,
            lifecycle_rules=[
                ecr.LifecycleRule(
                    max_image_count=max_image_count,
                    description=f"Keep only the {max_image_count} most recent images",
                )
            ],
        )

        Tags.of(self).add("Component", "Registry")

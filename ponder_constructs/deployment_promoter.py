from pathlib import Path

from aws_cdk import (
    ArnFormat,
    aws_iam as iam,
    aws_lambda as lambda_,
    aws_logs as logs,
    aws_sns as sns,
    aws_sns_subscriptions as subscriptions,
    Duration,
    RemovalPolicy,
    Stack,
)
from constructs import Construct

LAMBDA_SOURCE_DIR = Path(__file__).resolve().parent.parent / "lambda_functions"


class DeploymentPromoter(Construct):
    """
    Lambda that continues a blue/green deployment waiting for approval.
    Subscribed to the promotion topic, so it runs whenever the promotion
    alarm fires.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        application_name: str,
        deployment_group_name: str,
        promotion_topic: sns.ITopic,
        log_retention: logs.RetentionDays,
        removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        stack = Stack.of(self)

        self.role = iam.Role(
            self,
            "PromoterLambdaRole",
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AWSLambdaBasicExecutionRole"
                )
            ],
        )
        self.role.add_to_policy(
            iam.PolicyStatement(
                actions=[
                    "codedeploy:ListDeployments",
                    "codedeploy:BatchGetDeployments",
                    "codedeploy:ContinueDeployment",
                ],
                resources=[
                    stack.format_arn(
                        service="codedeploy",
                        resource="deploymentgroup",
                        resource_name=f"{application_name}/*",
                        arn_format=ArnFormat.COLON_RESOURCE_NAME,
                    )
                ],
            )
        )

        self.log_group = logs.LogGroup(
            self,
            "LogGroup",
            retention=log_retention,
            removal_policy=removal_policy,
        )

        self.function = lambda_.Function(
            self,
            "DeploymentPromoterFunction",
            runtime=lambda_.Runtime.PYTHON_3_12,
            handler="deployment_promoter.handler",
            code=lambda_.Code.from_asset(
                str(LAMBDA_SOURCE_DIR), exclude=["__pycache__", "*.pyc"]
            ),
            role=self.role,
            timeout=Duration.seconds(30),
            memory_size=128,
            log_group=self.log_group,
            environment={
                "APPLICATION_NAME": application_name,
                "DEPLOYMENT_GROUP_NAME": deployment_group_name,
            },
        )

        promotion_topic.add_subscription(subscriptions.LambdaSubscription(self.function))

from aws_cdk import (
    aws_cloudwatch as cloudwatch,
    aws_codedeploy as codedeploy,
    aws_ecs as ecs,
    aws_iam as iam,
    Duration,
    RemovalPolicy,
    Tags,
)
from constructs import Construct
from config.environments import BlueGreenConfig
from ponder_constructs.load_balancer import PonderLoadBalancer
from typing import List


class BlueGreenDeployment(Construct):
    """
    CodeDeploy blue/green rollout for the application service.

    New task definition revisions go to the green target group and wait for
    approval. Any alarm in `rollback_alarms` going off during the rollout rolls
    the deployment back.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        application_name: str,
        deployment_group_name: str,
        service: ecs.FargateService,
        load_balancer: PonderLoadBalancer,
        config: BlueGreenConfig,
        rollback_alarms: List[cloudwatch.IAlarm],
        removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        if load_balancer.green_target_group is None or load_balancer.test_listener is None:
            raise ValueError("Blue/green deployment needs a load balancer in blue/green mode")

        self.service_role = iam.Role(
            self,
            "CodeDeployServiceRole",
            assumed_by=iam.ServicePrincipal("codedeploy.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("AWSCodeDeployRoleForECS")
            ],
        )
        self.service_role.apply_removal_policy(removal_policy)

        self.application = codedeploy.EcsApplication(
            self,
            "Application",
            application_name=application_name,
        )
        self.application.apply_removal_policy(removal_policy)

        self.deployment_group = codedeploy.EcsDeploymentGroup(
            self,
            "DeploymentGroup",
            application=self.application,
            deployment_group_name=deployment_group_name,
            service=service,
            role=self.service_role,
            alarms=rollback_alarms,
            blue_green_deployment_config=codedeploy.EcsBlueGreenDeploymentConfig(
                blue_target_group=load_balancer.blue_target_group,
                green_target_group=load_balancer.green_target_group,
                listener=load_balancer.listener,
                test_listener=load_balancer.test_listener,
                deployment_approval_wait_time=Duration.days(config.deployment_approval_wait_days),
                termination_wait_time=Duration.minutes(config.termination_wait_minutes),
            ),
            deployment_config=codedeploy.EcsDeploymentConfig.ALL_AT_ONCE,
            auto_rollback=codedeploy.AutoRollbackConfig(
                failed_deployment=True,
                stopped_deployment=True,
                deployment_in_alarm=True,
            ),
        )
        self.deployment_group.apply_removal_policy(removal_policy)

        Tags.of(self).add("Component", "Deployment")

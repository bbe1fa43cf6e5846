from aws_cdk import CfnOutput
from constructs import Construct
from ponder_constructs.deployment_alarms import DeploymentAlarms
from ponder_constructs.deployment_promoter import DeploymentPromoter
from ponder_constructs.blue_green_deployment import BlueGreenDeployment
from ponder_constructs.deployment_dashboard import DeploymentDashboard
from config.environments import EnvironmentConfig
from stacks.registry_stack import PonderRegistryStack


class PonderBlueGreenStack(PonderRegistryStack):
    """
    Registry stack plus CodeDeploy blue/green rollouts.

    New revisions land in the green target group behind the test listener.
    The promotion alarm approves them through the promoter Lambda; the
    unhealthy-hosts alarm rolls them back.
    """

    revision = "blue-green"
    blue_green = True

    def __init__(self, scope: Construct, construct_id: str,
                 config: EnvironmentConfig,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, config=config, **kwargs)

        green_target_group = self.load_balancer.green_target_group

        self.alarms = DeploymentAlarms(self, "DeploymentAlarms",
            application_id=config.application_id,
            green_target_group=green_target_group,
            config=config.alarms,
            alarm_subscriptions=config.blue_green.alarm_subscriptions
        )

        # Only the unhealthy-hosts alarm may roll a deployment back
        self.deployment = BlueGreenDeployment(self, "BlueGreen",
            application_name=config.codedeploy_application_name,
            deployment_group_name=config.deployment_group_name,
            service=self.app.service,
            load_balancer=self.load_balancer,
            config=config.blue_green,
            rollback_alarms=[self.alarms.unhealthy_hosts_alarm],
            removal_policy=self.removal_policy
        )

        self.promoter = DeploymentPromoter(self, "Promoter",
            application_name=config.codedeploy_application_name,
            deployment_group_name=config.deployment_group_name,
            promotion_topic=self.alarms.promotion_topic,
            log_retention=self.log_retention,
            removal_policy=self.removal_policy
        )

        self.dashboard = DeploymentDashboard(self, "Dashboard",
            dashboard_name=f"{config.application_id}-deployments",
            blue_target_group=self.load_balancer.blue_target_group,
            green_target_group=green_target_group,
            alarms=self.alarms.alarms,
            app_log_group=self.app.log_group
        )

        CfnOutput(self, "TestLoadBalancerURL",
            value=self.load_balancer.test_url,
            description="URL of the Application Load Balancer (Test/Green)"
        )
        CfnOutput(self, "CodeDeployApplicationName",
            value=self.deployment.application.application_name,
            description="CodeDeploy Application Name for Blue/Green deployments"
        )
        CfnOutput(self, "DeploymentGroupName",
            value=self.deployment.deployment_group.deployment_group_name,
            description="CodeDeploy Deployment Group Name"
        )

from aws_cdk import (
    aws_cloudwatch as cloudwatch,
    aws_elasticloadbalancingv2 as elbv2,
    aws_logs as logs,
)
from constructs import Construct
from typing import List


class DeploymentDashboard(Construct):
    """
    CloudWatch dashboard for blue/green rollouts
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        dashboard_name: str,
        blue_target_group: elbv2.ApplicationTargetGroup,
        green_target_group: elbv2.ApplicationTargetGroup,
        alarms: List[cloudwatch.IAlarm],
        app_log_group: logs.ILogGroup,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.dashboard = cloudwatch.Dashboard(self, "Dashboard", dashboard_name=dashboard_name)

        self._add_traffic_widgets(blue_target_group, green_target_group)
        self._add_health_widgets(blue_target_group, green_target_group)
        self._add_deployment_widgets(alarms, app_log_group)

    def _add_traffic_widgets(self, blue, green):
        """Request and 2XX counts per pool"""

        self.dashboard.add_widgets(
            cloudwatch.GraphWidget(
                title="Request Count",
                left=[
                    blue.metrics.request_count(label="Blue (production)"),
                    green.metrics.request_count(label="Green (candidate)"),
                ],
                width=12,
                height=6,
            ),
            cloudwatch.GraphWidget(
                title="Target 2XX Responses",
                left=[
                    blue.metrics.http_code_target(
                        elbv2.HttpCodeTarget.TARGET_2XX_COUNT, statistic="Sum", label="Blue"
                    ),
                    green.metrics.http_code_target(
                        elbv2.HttpCodeTarget.TARGET_2XX_COUNT, statistic="Sum", label="Green"
                    ),
                ],
                width=12,
                height=6,
            ),
        )

    def _add_health_widgets(self, blue, green):
        self.dashboard.add_widgets(
            cloudwatch.GraphWidget(
                title="Healthy Hosts",
                left=[
                    blue.metrics.healthy_host_count(label="Blue"),
                    green.metrics.healthy_host_count(label="Green"),
                ],
                width=12,
                height=6,
            ),
            cloudwatch.GraphWidget(
                title="Unhealthy Hosts",
                left=[
                    blue.metrics.unhealthy_host_count(label="Blue"),
                    green.metrics.unhealthy_host_count(label="Green"),
                ],
                width=12,
                height=6,
            ),
        )

    def _add_deployment_widgets(self, alarms, app_log_group):
        """Alarm state and the latest application log lines"""

        self.dashboard.add_widgets(
            cloudwatch.AlarmStatusWidget(
                title="Deployment Alarms",
                alarms=alarms,
                width=6,
                height=6,
            ),
            cloudwatch.LogQueryWidget(
                title="Application Logs",
                log_group_names=[app_log_group.log_group_name],
                query_lines=[
                    "fields @timestamp, @message",
                    "sort @timestamp desc",
                    "limit 20",
                ],
                width=18,
                height=6,
            ),
        )

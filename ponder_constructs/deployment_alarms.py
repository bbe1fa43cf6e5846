from aws_cdk import (
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cw_actions,
    aws_elasticloadbalancingv2 as elbv2,
    aws_sns as sns,
    aws_sns_subscriptions as subscriptions,
    Duration,
)
from constructs import Construct
from config.environments import AlarmConfig
from typing import List


def operator_subscription(address: str) -> sns.ITopicSubscription:
    """Subscription for an operator-facing endpoint (https webhook or e-mail)"""
    if address.startswith(("https://", "http://")):
        return subscriptions.UrlSubscription(address)
    if "@" in address:
        return subscriptions.EmailSubscription(address)
    raise ValueError(f"Unsupported alarm subscription '{address}'")


class DeploymentAlarms(Construct):
    """
    Health alarms evaluated against the green (candidate) target group.

    The unhealthy-hosts alarm is attached to the deployment group and forces a
    rollback; it also notifies operators. The promotion alarm fans out to the
    promotion topic that triggers the deployment promoter.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        application_id: str,
        green_target_group: elbv2.ApplicationTargetGroup,
        config: AlarmConfig,
        alarm_subscriptions: List[str],
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Rollback notifications for operators
        self.rollback_topic = sns.Topic(
            self,
            "AlarmTopic",
            display_name=f"{application_id}-deployment-alarms",
        )
        for address in alarm_subscriptions:
            self.rollback_topic.add_subscription(operator_subscription(address))

        self.unhealthy_hosts_alarm = cloudwatch.Alarm(
            self,
            "UnhealthyHostsAlarm",
            metric=green_target_group.metrics.unhealthy_host_count(),
            threshold=config.unhealthy_hosts_threshold,
            evaluation_periods=config.unhealthy_hosts_evaluation_periods,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
            alarm_description="Test deployment has one or more unhealthy hosts",
        )
        self.unhealthy_hosts_alarm.add_alarm_action(cw_actions.SnsAction(self.rollback_topic))

        # Promotion trigger
        self.promotion_topic = sns.Topic(
            self,
            "PromotionTopic",
            display_name=f"{application_id}-deployment-promotion",
        )

        self.promotion_alarm = cloudwatch.Alarm(
            self,
            "PromotionAlarm",
            metric=green_target_group.metrics.http_code_target(
                elbv2.HttpCodeTarget.TARGET_2XX_COUNT,
                statistic="Sum",
                period=Duration.minutes(config.promotion_period_minutes),
            ),
            threshold=config.promotion_success_threshold,
            evaluation_periods=config.promotion_evaluation_periods,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
            alarm_description=(
                "Green deployment returned 2XX responses for "
                f"{config.promotion_evaluation_periods} consecutive periods"
            ),
        )
        self.promotion_alarm.add_alarm_action(cw_actions.SnsAction(self.promotion_topic))

    @property
    def alarms(self) -> List[cloudwatch.IAlarm]:
        return [self.unhealthy_hosts_alarm, self.promotion_alarm]

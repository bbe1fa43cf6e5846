from aws_cdk import (
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_elasticloadbalancingv2 as elbv2,
    Duration,
    RemovalPolicy,
    Tags,
)
from constructs import Construct
from typing import Optional


PRODUCTION_PORT = 80


def _health_check(path: str) -> elbv2.HealthCheck:
    return elbv2.HealthCheck(
        enabled=True,
        healthy_http_codes="200",
        path=path,
        protocol=elbv2.Protocol.HTTP,
        timeout=Duration.seconds(5),
        interval=Duration.seconds(60),
        healthy_threshold_count=2,
        unhealthy_threshold_count=3,
    )


class PonderLoadBalancer(Construct):
    """
    Internet-facing ALB in front of the application service.

    In blue/green mode the production listener forwards to the blue target
    group and a test listener on the application port forwards to the green
    one. CodeDeploy swaps the two on promotion.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        vpc: ec2.IVpc,
        security_group: ec2.SecurityGroup,
        service: ecs.FargateService,
        app_port: int,
        load_balancer_name: Optional[str] = None,
        blue_green: bool = False,
        removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.app_port = app_port
        self.load_balancer = elbv2.ApplicationLoadBalancer(
            self,
            "LoadBalancer",
            vpc=vpc,
            internet_facing=True,
            load_balancer_name=load_balancer_name,
            security_group=security_group,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
        )
        self.load_balancer.apply_removal_policy(removal_policy)

        # Blue target group, or the only one outside blue/green mode
        self.target_group = elbv2.ApplicationTargetGroup(
            self,
            "BlueTargetGroup" if blue_green else "TargetGroup",
            vpc=vpc,
            port=app_port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            target_type=elbv2.TargetType.IP,
            health_check=_health_check("/health"),
        )
        self.target_group.add_target(service)

        self.listener = self.load_balancer.add_listener(
            "Listener",
            port=PRODUCTION_PORT,
            protocol=elbv2.ApplicationProtocol.HTTP,
            open=True,
            default_action=elbv2.ListenerAction.forward([self.target_group]),
        )

        self.green_target_group: Optional[elbv2.ApplicationTargetGroup] = None
        self.test_listener: Optional[elbv2.ApplicationListener] = None
        if blue_green:
            self._add_green_pool(vpc)

        Tags.of(self).add("Component", "LoadBalancing")

    @property
    def blue_target_group(self) -> elbv2.ApplicationTargetGroup:
        return self.target_group

    def _add_green_pool(self, vpc: ec2.IVpc):
        """Candidate pool reachable only through the test listener"""
        self.green_target_group = elbv2.ApplicationTargetGroup(
            self,
            "GreenTargetGroup",
            vpc=vpc,
            port=self.app_port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            target_type=elbv2.TargetType.IP,
            health_check=_health_check("/ready"),
        )

        self.test_listener = self.load_balancer.add_listener(
            "TestListener",
            port=self.app_port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            open=True,
            default_action=elbv2.ListenerAction.forward([self.green_target_group]),
        )

    @property
    def url(self) -> str:
        return f"http://{self.load_balancer.load_balancer_dns_name}"

    @property
    def test_url(self) -> str:
        return f"http://{self.load_balancer.load_balancer_dns_name}:{self.app_port}"

from aws_cdk import (
    aws_ec2 as ec2,
    aws_logs as logs,
    RemovalPolicy,
    Tags
)
from constructs import Construct
from config.environments import NetworkConfig


class PonderNetwork(Construct):
    """
    VPC and security groups shared by the ponder services.

    The application port only accepts traffic from the load balancer's
    security group, and the database port only from the application.
    """

    def __init__(self, scope: Construct, construct_id: str,
                 config: NetworkConfig,
                 app_port: int,
                 database_port: int = 5432,
                 removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.vpc = ec2.Vpc(self, "VPC",
            ip_addresses=ec2.IpAddresses.cidr(config.vpc_cidr),
            max_azs=config.max_azs,
            nat_gateways=config.nat_gateways,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=24
                ),
                ec2.SubnetConfiguration(
                    name="private",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask=24
                )
            ]
        )
        self.vpc.apply_removal_policy(removal_policy)

        if config.enable_flow_logs:
            self.flow_log_group = logs.LogGroup(self, "VPCFlowLogGroup",
                retention=logs.RetentionDays.ONE_WEEK,
                removal_policy=removal_policy
            )
            self.flow_logs = ec2.FlowLog(self, "VPCFlowLogs",
                resource_type=ec2.FlowLogResourceType.from_vpc(self.vpc),
                destination=ec2.FlowLogDestination.to_cloud_watch_logs(self.flow_log_group)
            )

        self.load_balancer_security_group = ec2.SecurityGroup(self, "LoadBalancerSG",
            vpc=self.vpc,
            description="Security group for the ponder load balancer",
            allow_all_outbound=True
        )

        self.app_security_group = ec2.SecurityGroup(self, "AppSG",
            vpc=self.vpc,
            description="Security group for the ponder application service",
            allow_all_outbound=True
        )
        self.app_security_group.add_ingress_rule(
            self.load_balancer_security_group,
            ec2.Port.tcp(app_port),
            "Allow load balancer to reach the application"
        )

        self.database_security_group = ec2.SecurityGroup(self, "DatabaseSG",
            vpc=self.vpc,
            description="Security group for the PostgreSQL service",
            allow_all_outbound=True
        )
        self.database_security_group.add_ingress_rule(
            self.app_security_group,
            ec2.Port.tcp(database_port),
            "Allow application to connect to PostgreSQL"
        )

        for security_group in (
            self.load_balancer_security_group,
            self.app_security_group,
            self.database_security_group,
        ):
            security_group.apply_removal_policy(removal_policy)

        Tags.of(self).add("Component", "Networking")

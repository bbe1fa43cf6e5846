import json
from pathlib import Path

import aws_cdk as cdk
import pytest
from aws_cdk.assertions import Match, Template

from config.environments import FARGATE_CONFIG, PRODUCTION_CONFIG, apply_overrides
from stacks.blue_green_stack import PonderBlueGreenStack
from stacks.fargate_stack import PonderFargateStack
from stacks.registry_stack import PonderRegistryStack
from stacks.topology import build_topology, revision_config

ROOT = Path(__file__).resolve().parent.parent
PUBLIC_IMAGE = "public.ecr.aws/docker/library/node:alpine"


def _template(revision, config=PRODUCTION_CONFIG):
    app = cdk.App()
    stack = build_topology(app, config, revision)
    return stack, Template.from_stack(stack)


@pytest.fixture(scope="module")
def blue_green():
    config = apply_overrides(
        PRODUCTION_CONFIG, {"alarmSubscriptions": "https://hooks.example.com/ponder"}
    )
    return _template("blue-green", config)[1]


@pytest.fixture(scope="module")
def registry():
    return _template("registry")[1]


@pytest.fixture(scope="module")
def fargate():
    config = apply_overrides(FARGATE_CONFIG, {"image": PUBLIC_IMAGE})
    return _template("fargate", config)[1]


class TestTopology:
    """Test revision selection"""

    def test_revision_classes(self):
        app = cdk.App()
        fargate_config = apply_overrides(FARGATE_CONFIG, {"image": PUBLIC_IMAGE})

        assert isinstance(build_topology(app, fargate_config, "fargate"), PonderFargateStack)

    def test_blue_green_is_a_registry_stack(self):
        stack, _ = _template("blue-green")

        assert isinstance(stack, PonderBlueGreenStack)
        assert isinstance(stack, PonderRegistryStack)
        assert stack.stack_name == "PonderEcsInfrastructureStack"

    def test_unknown_revision(self):
        with pytest.raises(ValueError, match="Unknown revision 'canary'"):
            build_topology(cdk.App(), PRODUCTION_CONFIG, "canary")

    def test_fargate_revision_under_production_environment(self, monkeypatch):
        """The default environment builds the app image locally on port 3000"""
        monkeypatch.chdir(ROOT)
        stack = build_topology(cdk.App(), PRODUCTION_CONFIG, "fargate")
        template = Template.from_stack(stack)

        template.has_resource_properties(
            "AWS::ElasticLoadBalancingV2::TargetGroup", {"Port": 3000, "HealthCheckPath": "/health"}
        )
        assert stack.config.app.build_context == "."

    def test_revision_config_keeps_explicit_image(self):
        config = apply_overrides(PRODUCTION_CONFIG, {"image": PUBLIC_IMAGE})

        assert revision_config(config, "fargate") is config
        assert revision_config(PRODUCTION_CONFIG, "registry") is PRODUCTION_CONFIG


class TestFargateStack:
    """Earliest revision: one target group, no registry or deployment pipeline"""

    def test_single_pool(self, fargate):
        fargate.resource_count_is("AWS::ElasticLoadBalancingV2::TargetGroup", 1)
        fargate.resource_count_is("AWS::ElasticLoadBalancingV2::Listener", 1)
        fargate.has_resource_properties(
            "AWS::ElasticLoadBalancingV2::TargetGroup",
            {"Port": 3000, "HealthCheckPath": "/health", "TargetType": "ip"},
        )

    def test_no_registry_or_codedeploy(self, fargate):
        fargate.resource_count_is("AWS::ECR::Repository", 0)
        fargate.resource_count_is("AWS::CodeDeploy::DeploymentGroup", 0)
        fargate.resource_count_is("AWS::ServiceDiscovery::PrivateDnsNamespace", 0)

    def test_no_repository_output(self, fargate):
        assert "RepositoryUri" not in fargate.find_outputs("*")

    def test_app_container(self, fargate):
        fargate.has_resource_properties(
            "AWS::ECS::TaskDefinition",
            {
                "Cpu": "256",
                "Memory": "512",
                "ContainerDefinitions": [
                    Match.object_like(
                        {
                            "Name": "app",
                            "Image": PUBLIC_IMAGE,
                            "PortMappings": [Match.object_like({"ContainerPort": 3000})],
                        }
                    )
                ],
            },
        )


class TestRegistryStack:
    """Service discovery and ECR"""

    def test_repository(self, registry):
        registry.has_resource_properties(
            "AWS::ECR::Repository",
            {
                "RepositoryName": "ponder-app",
                "ImageScanningConfiguration": {"ScanOnPush": True},
            },
        )

    def test_postgres_is_discoverable(self, registry):
        registry.has_resource_properties(
            "AWS::ServiceDiscovery::PrivateDnsNamespace", {"Name": "ponder.local"}
        )
        registry.has_resource_properties("AWS::ServiceDiscovery::Service", {"Name": "postgres"})

    def test_database_url_uses_discovery_name(self, registry):
        rendered = json.dumps(registry.to_json())

        assert "@postgres.ponder.local:5432/ponder" in rendered

    def test_extends_fargate_stack(self, registry):
        """Registry revision is the fargate stack with discovery and ECR hooked in"""
        stack, _ = _template("registry")

        assert isinstance(stack, PonderFargateStack)
        assert stack.namespace is not None
        registry.has_output("RepositoryUri", Match.any_value())
        for name in ("LoadBalancerURL", "VpcId", "ClusterName"):
            registry.has_output(name, Match.any_value())

    def test_rolling_deployments(self, registry):
        registry.resource_count_is("AWS::CodeDeploy::DeploymentGroup", 0)
        registry.resource_count_is("AWS::ElasticLoadBalancingV2::TargetGroup", 1)

    def test_external_database_url(self):
        config = apply_overrides(PRODUCTION_CONFIG, {"databaseUrl": "postgresql://db.example.com/ponder"})
        _, template = _template("registry", config)

        template.has_resource_properties(
            "AWS::ECS::TaskDefinition",
            {
                "ContainerDefinitions": [
                    Match.object_like(
                        {
                            "Name": "app",
                            "Environment": Match.array_with(
                                [{"Name": "DATABASE_URL", "Value": "postgresql://db.example.com/ponder"}]
                            ),
                        }
                    )
                ]
            },
        )


class TestBlueGreenStack:
    """Blue/green rollout with alarm-driven promotion and rollback"""

    def test_blue_and_green_target_groups(self, blue_green):
        blue_green.resource_count_is("AWS::ElasticLoadBalancingV2::TargetGroup", 2)
        for path in ("/health", "/ready"):
            blue_green.has_resource_properties(
                "AWS::ElasticLoadBalancingV2::TargetGroup",
                {
                    "Port": 42069,
                    "HealthCheckPath": path,
                    "HealthCheckIntervalSeconds": 60,
                    "HealthCheckTimeoutSeconds": 5,
                    "HealthyThresholdCount": 2,
                    "UnhealthyThresholdCount": 3,
                },
            )

    def test_production_and_test_listeners(self, blue_green):
        blue_green.resource_count_is("AWS::ElasticLoadBalancingV2::Listener", 2)
        blue_green.has_resource_properties(
            "AWS::ElasticLoadBalancingV2::Listener", {"Port": 80, "Protocol": "HTTP"}
        )
        blue_green.has_resource_properties(
            "AWS::ElasticLoadBalancingV2::Listener", {"Port": 42069, "Protocol": "HTTP"}
        )

    def test_service_uses_codedeploy_controller(self, blue_green):
        blue_green.has_resource_properties(
            "AWS::ECS::Service",
            {"ServiceName": "app-service", "DeploymentController": {"Type": "CODE_DEPLOY"}},
        )

    def test_deployment_group(self, blue_green):
        blue_green.has_resource_properties(
            "AWS::CodeDeploy::DeploymentGroup",
            {
                "DeploymentGroupName": "ponder-app-deployment-group",
                "DeploymentConfigName": "CodeDeployDefault.ECSAllAtOnce",
                "AlarmConfiguration": Match.object_like(
                    {"Enabled": True, "Alarms": [{"Name": {"Ref": Match.any_value()}}]}
                ),
                "AutoRollbackConfiguration": {
                    "Enabled": True,
                    "Events": Match.array_with(["DEPLOYMENT_FAILURE", "DEPLOYMENT_STOP_ON_ALARM"]),
                },
            },
        )

    def test_only_unhealthy_hosts_alarm_rolls_back(self, blue_green):
        groups = blue_green.find_resources("AWS::CodeDeploy::DeploymentGroup")
        (group,) = groups.values()

        assert len(group["Properties"]["AlarmConfiguration"]["Alarms"]) == 1

    def test_unhealthy_hosts_alarm(self, blue_green):
        blue_green.has_resource_properties(
            "AWS::CloudWatch::Alarm",
            {
                "MetricName": "UnHealthyHostCount",
                "Threshold": 1,
                "EvaluationPeriods": 2,
                "ComparisonOperator": "GreaterThanOrEqualToThreshold",
            },
        )

    def test_promotion_alarm(self, blue_green):
        blue_green.has_resource_properties(
            "AWS::CloudWatch::Alarm",
            {
                "MetricName": "HTTPCode_Target_2XX_Count",
                "Statistic": "Sum",
                "Period": 60,
                "Threshold": 2,
                "EvaluationPeriods": 5,
                "ComparisonOperator": "GreaterThanOrEqualToThreshold",
            },
        )

    def test_promoter_function(self, blue_green):
        blue_green.has_resource_properties(
            "AWS::Lambda::Function",
            {
                "Handler": "deployment_promoter.handler",
                "Timeout": 30,
                "Environment": {
                    "Variables": {
                        "APPLICATION_NAME": "ponder-app",
                        "DEPLOYMENT_GROUP_NAME": "ponder-app-deployment-group",
                    }
                },
            },
        )
        blue_green.has_resource_properties("AWS::SNS::Subscription", {"Protocol": "lambda"})

    def test_promoter_permissions(self, blue_green):
        blue_green.has_resource_properties(
            "AWS::IAM::Policy",
            {
                "PolicyDocument": {
                    "Statement": Match.array_with(
                        [
                            Match.object_like(
                                {
                                    "Action": [
                                        "codedeploy:ListDeployments",
                                        "codedeploy:BatchGetDeployments",
                                        "codedeploy:ContinueDeployment",
                                    ],
                                    "Effect": "Allow",
                                }
                            )
                        ]
                    )
                }
            },
        )

    def test_operator_subscription(self, blue_green):
        blue_green.has_resource_properties(
            "AWS::SNS::Subscription",
            {"Protocol": "https", "Endpoint": "https://hooks.example.com/ponder"},
        )

    def test_app_port_only_open_to_load_balancer(self, blue_green):
        app_groups = blue_green.find_resources(
            "AWS::EC2::SecurityGroup",
            {"Properties": {"GroupDescription": "Security group for the ponder application service"}},
        )
        (app_group,) = app_groups.values()
        for rule in app_group["Properties"].get("SecurityGroupIngress", []):
            assert "CidrIp" not in rule

        blue_green.has_resource_properties(
            "AWS::EC2::SecurityGroupIngress",
            {
                "FromPort": 42069,
                "ToPort": 42069,
                "IpProtocol": "tcp",
                "SourceSecurityGroupId": Match.any_value(),
            },
        )

    def test_outputs(self, blue_green):
        for name in (
            "LoadBalancerURL",
            "TestLoadBalancerURL",
            "VpcId",
            "ClusterName",
            "RepositoryUri",
            "CodeDeployApplicationName",
            "DeploymentGroupName",
        ):
            blue_green.has_output(name, Match.any_value())

    def test_dashboard(self, blue_green):
        blue_green.has_resource_properties(
            "AWS::CloudWatch::Dashboard", {"DashboardName": "ponder-deployments"}
        )

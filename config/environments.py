from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional
from aws_cdk import aws_logs as logs


@dataclass
class NetworkConfig:
    vpc_cidr: str
    max_azs: int
    nat_gateways: int
    enable_flow_logs: bool


@dataclass
class DatabaseConfig:
    image: str
    database_name: str
    username: str
    cpu: int
    memory_limit_mib: int
    desired_count: int
    port: int = 5432
    # External connection string; when unset the in-cluster service is used
    connection_string: Optional[str] = None


@dataclass
class AppConfig:
    container_port: int
    cpu: int
    memory_limit_mib: int
    desired_count: int
    database_schema: str
    image: Optional[str] = None
    image_tag: str = "latest"
    build_context: Optional[str] = None
    environment: Dict[str, str] = field(default_factory=dict)


@dataclass
class AlarmConfig:
    unhealthy_hosts_threshold: int = 1
    unhealthy_hosts_evaluation_periods: int = 2
    # 2XX responses served by the green pool per period, via the test listener
    promotion_success_threshold: int = 2
    promotion_evaluation_periods: int = 5
    promotion_period_minutes: int = 1


@dataclass
class BlueGreenConfig:
    deployment_approval_wait_days: int = 2
    termination_wait_minutes: int = 5
    alarm_subscriptions: List[str] = field(default_factory=list)


@dataclass
class EnvironmentConfig:
    application_id: str
    environment_name: str
    network: NetworkConfig
    database: DatabaseConfig
    app: AppConfig
    alarms: AlarmConfig
    blue_green: BlueGreenConfig
    log_retention: str
    service_discovery_namespace: str
    removal_policy_destroy: bool

    @property
    def cluster_name(self) -> str:
        return f"{self.application_id}-cluster"

    @property
    def load_balancer_name(self) -> str:
        return f"{self.application_id}-alb"

    @property
    def repository_name(self) -> str:
        return f"{self.application_id}-app"

    @property
    def codedeploy_application_name(self) -> str:
        return f"{self.application_id}-app"

    @property
    def deployment_group_name(self) -> str:
        return f"{self.application_id}-app-deployment-group"


# Blue/green production configuration (later revisions)
PRODUCTION_CONFIG = EnvironmentConfig(
    application_id="ponder",
    environment_name="production",
    network=NetworkConfig(
        vpc_cidr="10.0.0.0/16",
        max_azs=2,
        nat_gateways=1,
        enable_flow_logs=True,
    ),
    database=DatabaseConfig(
        image="postgres:15-alpine",
        database_name="ponder",
        username="ponder",
        cpu=512,
        memory_limit_mib=1024,
        desired_count=1,
    ),
    app=AppConfig(
        container_port=42069,
        cpu=256,
        memory_limit_mib=512,
        desired_count=2,
        database_schema="ponder",
    ),
    alarms=AlarmConfig(),
    blue_green=BlueGreenConfig(),
    log_retention="ONE_WEEK",
    service_discovery_namespace="ponder.local",
    removal_policy_destroy=True,
)

# Earliest revision: single target group, app built from the local context
FARGATE_CONFIG = replace(
    PRODUCTION_CONFIG,
    environment_name="fargate",
    app=replace(PRODUCTION_CONFIG.app, container_port=3000, build_context="."),
)

ENVIRONMENTS: Dict[str, EnvironmentConfig] = {
    "production": PRODUCTION_CONFIG,
    "fargate": FARGATE_CONFIG,
}


def get_environment_config(name: str) -> EnvironmentConfig:
    """Return the named environment configuration."""
    try:
        return ENVIRONMENTS[name]
    except KeyError:
        known = ", ".join(sorted(ENVIRONMENTS))
        raise ValueError(f"Unknown environment '{name}' (known: {known})") from None


def _split_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return list(value)


def apply_overrides(config: EnvironmentConfig, overrides: Mapping[str, Any]) -> EnvironmentConfig:
    """
    Apply flat CDK context overrides to a configuration.
    Returns a new config; the named configurations are never mutated.
    """
    app = config.app
    database = config.database
    blue_green = config.blue_green
    log_retention = config.log_retention

    for key, value in overrides.items():
        if value is None:
            continue
        if key == "imageTag":
            app = replace(app, image_tag=str(value))
        elif key == "image":
            app = replace(app, image=str(value))
        elif key == "appDesiredCount":
            app = replace(app, desired_count=int(value))
        elif key == "databaseSchema":
            app = replace(app, database_schema=str(value))
        elif key == "databaseUrl":
            database = replace(database, connection_string=str(value))
        elif key == "logRetention":
            log_retention = str(value)
        elif key == "alarmSubscriptions":
            blue_green = replace(blue_green, alarm_subscriptions=_split_list(value))
        else:
            raise ValueError(f"Unsupported configuration override '{key}'")

    updated = replace(
        config,
        app=app,
        database=database,
        blue_green=blue_green,
        log_retention=log_retention,
    )
    retention_days(updated)
    return updated


def retention_days(config: EnvironmentConfig) -> logs.RetentionDays:
    """Map the configured retention name (e.g. ONE_WEEK) to RetentionDays"""
    try:
        return getattr(logs.RetentionDays, config.log_retention.upper())
    except AttributeError:
        raise ValueError(f"Unknown log retention '{config.log_retention}'") from None

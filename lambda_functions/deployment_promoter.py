import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# CodeDeploy status for a blue/green deployment waiting for approval
WAITING_STATUS = "Ready"
CALL_TIMEOUT_SECONDS = 30
# BatchGetDeployments limit
BATCH_SIZE = 25


class PromoterConfigurationError(KeyError):
    """Raised when the function is invoked without its deployment group"""


@dataclass(frozen=True)
class DeploymentGroupRef:
    application_name: str
    deployment_group_name: str


@dataclass(frozen=True)
class WaitingDeployment:
    deployment_id: str
    create_time: Optional[datetime] = None

    def sort_key(self):
        # Deployments without a create time sort last
        return (self.create_time is None, self.create_time or datetime.min, self.deployment_id)


@dataclass(frozen=True)
class PromotionResult:
    deployment_group: DeploymentGroupRef
    deployment_id: Optional[str] = None

    @property
    def promoted(self) -> bool:
        return self.deployment_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "application_name": self.deployment_group.application_name,
            "deployment_group_name": self.deployment_group.deployment_group_name,
            "action": "continued" if self.promoted else "none",
            "deployment_id": self.deployment_id,
        }


class CodeDeployDeployments:
    """Narrow CodeDeploy interface used by the promoter"""

    def __init__(self, client):
        self.client = client

    def waiting_deployments(self, group: DeploymentGroupRef) -> List[WaitingDeployment]:
        """Deployments in the group currently waiting for approval"""
        paginator = self.client.get_paginator("list_deployments")
        deployment_ids: List[str] = []
        for page in paginator.paginate(
            applicationName=group.application_name,
            deploymentGroupName=group.deployment_group_name,
            includeOnlyStatuses=[WAITING_STATUS],
        ):
            deployment_ids.extend(page.get("deployments", []))

        if not deployment_ids:
            return []

        create_times: Dict[str, datetime] = {}
        for start in range(0, len(deployment_ids), BATCH_SIZE):
            response = self.client.batch_get_deployments(
                deploymentIds=deployment_ids[start:start + BATCH_SIZE]
            )
            for info in response.get("deploymentsInfo", []):
                if "createTime" in info:
                    create_times[info["deploymentId"]] = info["createTime"]

        return [
            WaitingDeployment(deployment_id, create_times.get(deployment_id))
            for deployment_id in deployment_ids
        ]

    def continue_deployment(self, deployment_id: str) -> None:
        self.client.continue_deployment(
            deploymentId=deployment_id,
            deploymentWaitType="READY_WAIT",
        )


def promote_waiting_deployment(group: DeploymentGroupRef, deployments) -> PromotionResult:
    """
    Continue the earliest deployment in the group that is waiting for approval.

    Issues at most one continue per call. Returns a no-op result when nothing
    is waiting, so duplicate or late alarm deliveries are harmless. Errors from
    CodeDeploy are logged and re-raised; retries belong to the trigger.
    """
    logger.info(
        "Checking for waiting deployments in app: %s, group: %s",
        group.application_name,
        group.deployment_group_name,
    )

    try:
        waiting = deployments.waiting_deployments(group)
    except (ClientError, BotoCoreError):
        logger.exception("Failed to list deployments for %s", group.deployment_group_name)
        raise

    if not waiting:
        logger.info("No deployments waiting for approval. Exiting.")
        return PromotionResult(group)

    deployment = min(waiting, key=WaitingDeployment.sort_key)
    if len(waiting) > 1:
        logger.warning(
            "%d deployments waiting, continuing only the earliest: %s",
            len(waiting),
            deployment.deployment_id,
        )
    logger.info("Found waiting deployment: %s. Proceeding with approval.", deployment.deployment_id)

    try:
        deployments.continue_deployment(deployment.deployment_id)
    except (ClientError, BotoCoreError):
        logger.exception("Error continuing deployment %s", deployment.deployment_id)
        raise

    logger.info("Successfully triggered continuation for deployment: %s", deployment.deployment_id)
    return PromotionResult(group, deployment.deployment_id)


def create_codedeploy_client(region: Optional[str] = None):
    """CodeDeploy client with a bounded timeout and no retries"""
    config = Config(
        connect_timeout=CALL_TIMEOUT_SECONDS,
        read_timeout=CALL_TIMEOUT_SECONDS,
        retries={"mode": "standard", "total_max_attempts": 1},
    )
    return boto3.client("codedeploy", region_name=region, config=config)


def deployment_group_from_environment(environ=None) -> DeploymentGroupRef:
    environ = os.environ if environ is None else environ
    try:
        return DeploymentGroupRef(
            application_name=environ["APPLICATION_NAME"],
            deployment_group_name=environ["DEPLOYMENT_GROUP_NAME"],
        )
    except KeyError as e:
        raise PromoterConfigurationError(f"Missing environment variable {e}") from e


def _alarm_names(event: Dict[str, Any]) -> List[str]:
    """Alarm names carried by the SNS records of the event"""
    names = []
    for record in event.get("Records", []):
        message = record.get("Sns", {}).get("Message")
        try:
            payload = json.loads(message) if message else {}
        except ValueError:
            continue
        if isinstance(payload, dict) and payload.get("AlarmName"):
            names.append(payload["AlarmName"])
    return names


def handler(event: Dict[str, Any], context) -> Dict[str, Any]:
    """Promote the waiting blue/green deployment when the promotion alarm fires"""
    group = deployment_group_from_environment()
    logger.info("Promotion triggered by alarms: %s", _alarm_names(event) or "unknown")

    deployments = CodeDeployDeployments(create_codedeploy_client(os.environ.get("AWS_REGION")))
    result = promote_waiting_deployment(group, deployments)

    return {"statusCode": 200, "body": result.to_dict()}

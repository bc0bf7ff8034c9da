"""Job launcher: starts one isolated worker task per job on ECS."""

import logging
from dataclasses import dataclass, field

from botocore.exceptions import BotoCoreError, ClientError

from transcoder.core.config import Settings
from transcoder.core.errors import LaunchRejected
from transcoder.modules.dispatcher.schemas import LaunchReceipt
from transcoder.modules.jobs.schemas import JobParameters

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskTemplate:
    """Fixed task template and network placement for worker tasks."""
    cluster: str
    task_definition: str
    container_name: str = "video-transcoder"
    launch_type: str = "FARGATE"
    security_groups: tuple[str, ...] = ()
    subnets: tuple[str, ...] = field(default_factory=tuple)
    assign_public_ip: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "TaskTemplate":
        return cls(
            cluster=settings.ECS_CLUSTER_ARN,
            task_definition=settings.ECS_TASK_DEFINITION,
            container_name=settings.ECS_CONTAINER_NAME,
            launch_type=settings.ECS_LAUNCH_TYPE,
            security_groups=(settings.ECS_SECURITY_GROUP,) if settings.ECS_SECURITY_GROUP else (),
            subnets=tuple(settings.subnet_ids),
            assign_public_ip=settings.ECS_ASSIGN_PUBLIC_IP,
        )


class EcsJobLauncher:
    """Issues exactly one RunTask request per launch.

    Launch is fire-and-forget: the receipt only says the task was accepted.
    """

    def __init__(self, ecs_client, template: TaskTemplate):
        self._client = ecs_client
        self.template = template

    def build_request(self, params: JobParameters) -> dict:
        """Build the RunTask request for a job."""
        return {
            "cluster": self.template.cluster,
            "taskDefinition": self.template.task_definition,
            "launchType": self.template.launch_type,
            "count": 1,
            "networkConfiguration": {
                "awsvpcConfiguration": {
                    "assignPublicIp": "ENABLED" if self.template.assign_public_ip else "DISABLED",
                    "securityGroups": list(self.template.security_groups),
                    "subnets": list(self.template.subnets),
                },
            },
            "overrides": {
                "containerOverrides": [
                    {
                        "name": self.template.container_name,
                        "environment": params.to_environment(),
                    },
                ],
            },
        }

    def launch(self, params: JobParameters) -> LaunchReceipt:
        """Start a worker task for the job.

        Raises:
            LaunchRejected: If ECS refuses the request or reports failures
        """
        request = self.build_request(params)
        try:
            response = self._client.run_task(**request)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            message = e.response.get("Error", {}).get("Message", str(e))
            raise LaunchRejected(
                f"RunTask rejected ({code}): {message}", bucket=params.bucket, key=params.key
            ) from e
        except BotoCoreError as e:
            raise LaunchRejected(f"RunTask failed: {e}", bucket=params.bucket, key=params.key) from e

        tasks = response.get("tasks") or []
        failures = response.get("failures") or []
        if not tasks:
            reasons = ", ".join(
                f"{f.get('arn', '?')}: {f.get('reason', 'unknown')}" for f in failures
            ) or "no task started"
            raise LaunchRejected(f"RunTask started no task: {reasons}", bucket=params.bucket, key=params.key)

        receipt = LaunchReceipt(task_arns=tuple(t.get("taskArn", "") for t in tasks))
        logger.info("Launched task %s for %s", receipt.task_arn, params)
        return receipt

import copy
import logging
import functools
import botocore.session
from datetime import datetime
from pydantic import BaseModel
from typing import Literal, AsyncIterable
from botocore.exceptions import ClientError, BotoCoreError
from ecs_runner.errors import NotFound, Unsupported, MissingField, MalformedResponse, LaunchRejected, TaskFailed

logger = logging.getLogger(__name__)


ECSTaskStatus = Literal["PROVISIONING", "PENDING", "ACTIVATING", "RUNNING", "DEACTIVATING", "STOPPING", "DEPROVISIONING", "STOPPED", "DELETED"]
TERMINAL_STATUS: ECSTaskStatus = "STOPPED"
NOT_FOUND_ERROR_CODES = ("ServiceNotFoundException", "ClusterNotFoundException")


class CapacityProviderStrategyItem(BaseModel):
    capacityProvider: str
    weight: int = 0
    base: int = 0


class AwsVpcConfiguration(BaseModel):
    subnets: list[str] = []
    securityGroups: list[str] = []
    assignPublicIp: Literal["ENABLED", "DISABLED"] | None = None


class NetworkConfiguration(BaseModel):
    awsvpcConfiguration: AwsVpcConfiguration | None = None


class NetworkPlacement(BaseModel):
    """
    Subnets and security groups a task is placed in, when its service uses awsvpc networking
    """
    subnets: list[str]
    security_groups: list[str]
    assign_public_ip: Literal["ENABLED", "DISABLED"] = "ENABLED"

    def to_request(self) -> dict:
        return {
            "awsvpcConfiguration": {
                "subnets": self.subnets,
                "securityGroups": self.security_groups,
                "assignPublicIp": self.assign_public_ip,
            }
        }


class ECSService(BaseModel):
    """
    The parts of a boto3 ecs 'describe_services' entry that are needed to run a one-off task
    https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/ecs/client/describe_services.html
    """
    serviceName: str | None = None
    serviceArn: str | None = None
    clusterArn: str | None = None
    taskDefinition: str | None = None
    launchType: str | None = None
    capacityProviderStrategy: list[CapacityProviderStrategyItem] = []
    networkConfiguration: NetworkConfiguration | None = None

    def network_placement(self) -> NetworkPlacement | None:
        """
        Returns None when the service declares no subnet nor security group
        """
        if self.networkConfiguration is None or self.networkConfiguration.awsvpcConfiguration is None:
            return None
        vpc = self.networkConfiguration.awsvpcConfiguration
        if len(vpc.subnets) == 0 and len(vpc.securityGroups) == 0:
            return None
        return NetworkPlacement(
            subnets=vpc.subnets,
            security_groups=vpc.securityGroups,
            assign_public_ip=vpc.assignPublicIp or "ENABLED",
        )


class LogConfiguration(BaseModel):
    logDriver: str
    options: dict[str, str] = {}


class ContainerDefinition(BaseModel):
    name: str | None = None
    image: str | None = None
    logConfiguration: LogConfiguration | None = None


class TaskDefinition(BaseModel):
    """
    The 'taskDefinition' field returned by boto3 ecs 'describe_task_definition'
    """
    taskDefinitionArn: str | None = None
    family: str | None = None
    revision: int | None = None
    cpu: str | None = None
    memory: str | None = None
    requiresCompatibilities: list[str] = []
    containerDefinitions: list[ContainerDefinition] = []
    registeredAt: datetime | None = None


class TaskDefinitionInfo(BaseModel):
    """
    What is needed from a task definition to launch it and find its logs
    """
    arn: str
    name: str
    cpu: str
    memory: str
    requires_compatibilities: list[str]
    log_group: str = ""
    log_stream_prefix: str = ""

    @property
    def has_cloudwatch_logs(self) -> bool:
        return self.log_group != "" and self.log_stream_prefix != ""


class ECSContainerState(BaseModel):
    name: str | None = None
    lastStatus: str | None = None
    exitCode: int | None = None
    reason: str | None = None


class ECSTaskState(BaseModel):
    """
    The parts of a boto3 ecs 'describe_tasks' entry used to follow a task
    """
    taskArn: str | None = None
    lastStatus: ECSTaskStatus | str | None = None
    stoppedReason: str | None = None
    containers: list[ECSContainerState] = []


class RevisionEntry(BaseModel):
    revision: int
    created_at: datetime
    docker_uri: str
    family: str


class DeployResult(BaseModel):
    task_definition_arn: str
    service_arn: str


async def describe_service_async(clients, cluster: str, service: str) -> ECSService:
    """
    Returns the description of a service, raises NotFound if it does not exist
    """
    try:
        response = await clients.ecs.describe_services(cluster=cluster, services=[service])
    except ClientError as e:
        error = e.response["Error"]
        if error["Code"] in NOT_FOUND_ERROR_CODES:
            raise NotFound(f"service '{service}' not found in cluster '{cluster}': {error['Message']}") from e
        else:
            raise
    services = response.get("services", [])
    if len(services) == 0:
        raise NotFound(f"service '{service}' not found in cluster '{cluster}'")
    return ECSService(**services[0])


async def _describe_task_definition_raw_async(clients, task_definition: str, include_tags: bool = False) -> dict:
    kwargs = {"taskDefinition": task_definition}
    if include_tags:
        kwargs["include"] = ["TAGS"]
    response = await clients.ecs.describe_task_definition(**kwargs)
    if response.get("taskDefinition") is None:
        raise MalformedResponse(f"no task definition in the description of '{task_definition}'")
    return response


async def describe_task_definition_async(clients, task_definition_arn: str) -> TaskDefinitionInfo:
    """
    Returns the container name, resources and log configuration of a single container task definition
    """
    response = await _describe_task_definition_raw_async(clients, task_definition_arn)
    definition = TaskDefinition(**response["taskDefinition"])
    if len(definition.containerDefinitions) == 0:
        raise MissingField(f"no container definitions found in task definition {task_definition_arn}")
    container = definition.containerDefinitions[0]
    if container.name is None:
        raise MissingField(f"container definition has no name in task definition {task_definition_arn}")
    if definition.cpu is None:
        raise MissingField(f"task definition has no CPU specification: {task_definition_arn}")
    if definition.memory is None:
        raise MissingField(f"task definition has no memory specification: {task_definition_arn}")
    log_group, log_stream_prefix = "", ""
    log_config = container.logConfiguration
    if log_config is not None and log_config.logDriver == "awslogs":
        log_group = log_config.options.get("awslogs-group", "")
        log_stream_prefix = log_config.options.get("awslogs-stream-prefix", "")
    return TaskDefinitionInfo(
        arn=definition.taskDefinitionArn or task_definition_arn,
        name=container.name,
        cpu=definition.cpu,
        memory=definition.memory,
        requires_compatibilities=definition.requiresCompatibilities,
        log_group=log_group,
        log_stream_prefix=log_stream_prefix,
    )


async def list_task_definitions_async(clients, family: str, sort: Literal["ASC", "DESC"] = "DESC") -> AsyncIterable[str]:
    """
    Yield the ARNs of the active task definitions of a family, sorted by revision.
    Pages are only fetched as the iteration goes, so breaking early saves requests.
    """
    kwargs = {"familyPrefix": family, "sort": sort}
    while True:
        response = await clients.ecs.list_task_definitions(**kwargs)
        for arn in response.get("taskDefinitionArns", []):
            yield arn
        next_token = response.get("nextToken")
        if next_token is None:
            return
        kwargs["nextToken"] = next_token


async def list_task_definition_families_async(clients, family_prefix: str) -> list[str]:
    """
    Returns all the active task definition families starting with the given prefix
    """
    families = []
    kwargs = {"familyPrefix": family_prefix}
    while True:
        response = await clients.ecs.list_task_definition_families(**kwargs)
        families.extend(response.get("families", []))
        next_token = response.get("nextToken")
        if next_token is None:
            return families
        kwargs["nextToken"] = next_token


async def get_service_family_async(clients, cluster: str, service: str) -> str:
    """
    Returns the family of the task definition declared by the service
    """
    description = await describe_service_async(clients, cluster, service)
    if description.taskDefinition is None:
        raise MissingField(f"service '{service}' in cluster '{cluster}' has no task definition")
    response = await _describe_task_definition_raw_async(clients, description.taskDefinition)
    family = response["taskDefinition"].get("family")
    if family is None:
        raise MissingField(f"task definition {description.taskDefinition} has no family name")
    return family


async def latest_task_definition_arn_async(clients, cluster: str, service: str) -> str:
    """
    Returns the most recent revision of the family of the service's task definition.
    Keep in mind this may not be the revision the service is currently running.
    """
    family = await get_service_family_async(clients, cluster, service)
    async for arn in list_task_definitions_async(clients, family, sort="DESC"):
        return arn
    raise NotFound(f"no task definition found in family '{family}'")


@functools.cache
def _register_task_definition_fields() -> frozenset[str]:
    """
    Names of the parameters accepted by 'register_task_definition', from the botocore service model
    """
    model = botocore.session.get_session().get_service_model("ecs")
    return frozenset(model.operation_model("RegisterTaskDefinition").input_shape.members)


def replace_image_tag(image: str, tag: str) -> str:
    """
    Replace the tag of a docker image reference.
    The repository is everything before the last ':', or the whole reference if there is none.
    """
    repository, separator, _ = image.rpartition(":")
    if separator == "":
        repository = image
    return f"{repository}:{tag}"


def build_register_request(task_definition: dict, image_tag: str, tags: list[dict] | None = None) -> dict:
    """
    Returns the 'register_task_definition' arguments that clone the described task definition,
    with the image tag of its single container replaced. The given description is not modified.
    """
    containers = task_definition.get("containerDefinitions") or []
    if len(containers) > 1:
        raise Unsupported("multiple container definitions in a single task are not supported")
    if len(containers) == 0:
        raise MissingField("no container definitions found")
    image = containers[0].get("image")
    if not image:
        raise MissingField("container definition has no image specified")
    fields = _register_task_definition_fields()
    request = {k: copy.deepcopy(v) for k, v in task_definition.items() if k in fields and k != "tags"}
    request["containerDefinitions"][0]["image"] = replace_image_tag(image, image_tag)
    if tags:
        request["tags"] = copy.deepcopy(tags)
    return request


async def clone_task_definition_async(clients, cluster: str, service: str, image_tag: str) -> str:
    """
    Register a new revision of the service's latest task definition, with the given image tag.
    Returns the ARN of the new revision.
    """
    latest = await latest_task_definition_arn_async(clients, cluster, service)
    response = await _describe_task_definition_raw_async(clients, latest, include_tags=True)
    try:
        request = build_register_request(response["taskDefinition"], image_tag, response.get("tags"))
    except (Unsupported, MissingField) as e:
        raise e.add_context(f"cannot clone task definition {latest}")
    output = await clients.ecs.register_task_definition(**request)
    arn = (output.get("taskDefinition") or {}).get("taskDefinitionArn")
    if arn is None:
        raise MalformedResponse("invalid task definition response: missing ARN")
    logger.info("registered task definition %s with image %s", arn, request["containerDefinitions"][0]["image"])
    return arn


def build_run_task_request(
        cluster: str,
        service: ECSService,
        task_definition_arn: str,
        definition: TaskDefinitionInfo,
        command: list[str],
    ) -> dict:
    """
    Returns the 'run_task' arguments to run a single task of the given definition with the service's placement.
    The service's capacity provider strategy takes precedence over the definition's launch type.
    """
    request = {
        "cluster": cluster,
        "taskDefinition": task_definition_arn,
        "count": 1,
        "overrides": {
            "containerOverrides": [{"name": definition.name, "command": list(command)}]
        },
    }
    if len(service.capacityProviderStrategy) > 0:
        request["capacityProviderStrategy"] = [item.model_dump() for item in service.capacityProviderStrategy]
    elif len(definition.requires_compatibilities) > 0:
        request["launchType"] = definition.requires_compatibilities[0]
    else:
        raise MissingField(f"task definition has no compatibility requirements: {definition.arn}")
    placement = service.network_placement()
    if placement is not None:
        request["networkConfiguration"] = placement.to_request()
    return request


async def run_task_async(
        clients,
        cluster: str,
        service: ECSService,
        task_definition_arn: str,
        definition: TaskDefinitionInfo,
        command: list[str],
    ) -> str:
    """
    Run a one-off task and returns its ARN
    """
    request = build_run_task_request(cluster, service, task_definition_arn, definition, command)
    try:
        response = await clients.ecs.run_task(**request)
    except (ClientError, BotoCoreError) as e:
        raise LaunchRejected(f"failed to run task {task_definition_arn} in cluster '{cluster}': {e}") from e
    tasks = response.get("tasks", [])
    if len(tasks) == 0:
        failures = response.get("failures", [])
        if len(failures) > 0:
            reasons = ", ".join(f"{f.get('reason')} ({f.get('detail') or f.get('arn')})" for f in failures)
            raise LaunchRejected(f"failed to run task {task_definition_arn} in cluster '{cluster}': {reasons}")
        raise MalformedResponse("no tasks found in run task response")
    task_arn = tasks[0].get("taskArn")
    if task_arn is None:
        raise MalformedResponse("executed task has no ARN")
    logger.info("task %s started from %s", task_arn, task_definition_arn)
    return task_arn


async def stop_task_async(clients, cluster: str, task_arn: str, reason: str = "Stopped by user") -> bool:
    """
    Stops a running ECS task.
    If the task did not exist, returns False.
    """
    try:
        await clients.ecs.stop_task(cluster=cluster, task=task_arn, reason=reason)
    except ClientError as e:
        error = e.response["Error"]
        if (error["Code"] == "InvalidParameterException") and ("The referenced task was not found" in error["Message"]):
            return False
        else:
            raise
    return True


async def describe_task_async(clients, cluster: str, task_arn: str) -> ECSTaskState:
    response = await clients.ecs.describe_tasks(cluster=cluster, tasks=[task_arn])
    tasks = response.get("tasks", [])
    if len(tasks) == 0:
        if any(f.get("reason") == "MISSING" for f in response.get("failures", [])):
            raise NotFound(f"task {task_arn} not found in cluster '{cluster}'")
        raise MalformedResponse("no tasks found in describe tasks response")
    return ECSTaskState(**tasks[0])


async def check_task_status_async(clients, cluster: str, task_arn: str, container_name: str | None = None) -> bool:
    """
    Returns whether the task reached the STOPPED status.
    Raises TaskFailed if it stopped with a nonzero exit code.
    """
    task = await describe_task_async(clients, cluster, task_arn)
    if task.lastStatus is None:
        raise MalformedResponse(f"task {task_arn} has no status information")
    if task.lastStatus != TERMINAL_STATUS:
        return False
    if len(task.containers) == 0:
        raise MalformedResponse(f"no containers found in task {task_arn}")
    container = next((c for c in task.containers if c.name == container_name), task.containers[0])
    if container.exitCode is None:
        raise MalformedResponse(f"stopped container of task {task_arn} has no exit code ({task.stoppedReason})")
    if task.taskArn is None:
        raise MalformedResponse("task has no ARN")
    if container.exitCode != 0:
        raise TaskFailed(task.taskArn, container.exitCode)
    return True


async def get_revisions_async(clients, cluster: str, service: str, last: int = 0) -> list[RevisionEntry]:
    """
    Returns the revisions of the service's task definition families, newest first.
    If 'last' is not 0, at most 'last' revisions are returned per family.
    """
    family_prefix = await get_service_family_async(clients, cluster, service)
    revisions = []
    for family in await list_task_definition_families_async(clients, family_prefix):
        count = 0
        async for arn in list_task_definitions_async(clients, family, sort="DESC"):
            if last != 0 and count >= last:
                break
            try:
                response = await _describe_task_definition_raw_async(clients, arn)
            except (ClientError, MalformedResponse) as e:
                logger.warning("failed to describe task definition %s: %s", arn, e)
                continue
            definition = TaskDefinition(**response["taskDefinition"])
            if definition.registeredAt is None or definition.revision is None:
                continue
            if len(definition.containerDefinitions) == 0 or definition.containerDefinitions[0].image is None:
                continue
            revisions.append(RevisionEntry(
                revision=definition.revision,
                created_at=definition.registeredAt,
                docker_uri=definition.containerDefinitions[0].image,
                family=family,
            ))
            count += 1
    return revisions


async def deploy_async(clients, cluster: str, service: str, image_tag: str) -> DeployResult:
    """
    Clone the latest task definition with a new image tag and update the service to use it
    """
    try:
        task_definition_arn = await clone_task_definition_async(clients, cluster, service, image_tag)
    except (NotFound, Unsupported, MissingField, MalformedResponse) as e:
        raise e.add_context("failed to clone task definition")
    response = await clients.ecs.update_service(cluster=cluster, service=service, taskDefinition=task_definition_arn)
    service_arn = (response.get("service") or {}).get("serviceArn")
    if service_arn is None:
        raise MalformedResponse("invalid service update response: missing service ARN")
    logger.info("service %s updated to %s", service_arn, task_definition_arn)
    return DeployResult(task_definition_arn=task_definition_arn, service_arn=service_arn)

"""
This module was automatically generated from ecs_runner.asynchrone.ecs
"""
import copy
import logging
import functools
import botocore
from ecs_runner._async_tools import _run_async, _async_iter_to_sync, _with_clients_async, _iter_with_clients_async
from typing import Iterable, Iterator
from ecs_runner.asynchrone.ecs import datetime, BaseModel, Literal, AsyncIterable, ClientError, BotoCoreError, NotFound, Unsupported, MissingField, MalformedResponse, LaunchRejected, TaskFailed, logger, ECSTaskStatus, TERMINAL_STATUS, NOT_FOUND_ERROR_CODES, CapacityProviderStrategyItem, AwsVpcConfiguration, NetworkConfiguration, NetworkPlacement, ECSService, LogConfiguration, ContainerDefinition, TaskDefinition, TaskDefinitionInfo, ECSContainerState, ECSTaskState, RevisionEntry, DeployResult, describe_service_async, describe_task_definition_async, list_task_definitions_async, list_task_definition_families_async, get_service_family_async, latest_task_definition_arn_async, replace_image_tag, build_register_request, clone_task_definition_async, build_run_task_request, run_task_async, stop_task_async, describe_task_async, check_task_status_async, get_revisions_async, deploy_async


def list_task_definitions(family: str, sort: Literal["ASC", "DESC"] = "DESC", profile: str | None = None, region: str | None = None) -> Iterable[str]:
    """
    Yield the ARNs of the active task definitions of a family, sorted by revision.
    Pages are only fetched as the iteration goes, so breaking early saves requests.
    """
    return _async_iter_to_sync(_iter_with_clients_async(list_task_definitions_async, profile=profile, region=region, family=family, sort=sort))


def check_task_status(cluster: str, task_arn: str, container_name: str | None = None, profile: str | None = None, region: str | None = None) -> bool:
    """
    Returns whether the task reached the STOPPED status.
    Raises TaskFailed if it stopped with a nonzero exit code.
    """
    return _run_async(_with_clients_async(check_task_status_async, profile=profile, region=region, cluster=cluster, task_arn=task_arn, container_name=container_name))


def clone_task_definition(cluster: str, service: str, image_tag: str, profile: str | None = None, region: str | None = None) -> str:
    """
    Register a new revision of the service's latest task definition, with the given image tag.
    Returns the ARN of the new revision.
    """
    return _run_async(_with_clients_async(clone_task_definition_async, profile=profile, region=region, cluster=cluster, service=service, image_tag=image_tag))


def deploy(cluster: str, service: str, image_tag: str, profile: str | None = None, region: str | None = None) -> DeployResult:
    """
    Clone the latest task definition with a new image tag and update the service to use it
    """
    return _run_async(_with_clients_async(deploy_async, profile=profile, region=region, cluster=cluster, service=service, image_tag=image_tag))


def describe_service(cluster: str, service: str, profile: str | None = None, region: str | None = None) -> ECSService:
    """
    Returns the description of a service, raises NotFound if it does not exist
    """
    return _run_async(_with_clients_async(describe_service_async, profile=profile, region=region, cluster=cluster, service=service))


def describe_task(cluster: str, task_arn: str, profile: str | None = None, region: str | None = None) -> ECSTaskState:
    return _run_async(_with_clients_async(describe_task_async, profile=profile, region=region, cluster=cluster, task_arn=task_arn))


def describe_task_definition(task_definition_arn: str, profile: str | None = None, region: str | None = None) -> TaskDefinitionInfo:
    """
    Returns the container name, resources and log configuration of a single container task definition
    """
    return _run_async(_with_clients_async(describe_task_definition_async, profile=profile, region=region, task_definition_arn=task_definition_arn))


def get_revisions(cluster: str, service: str, last: int = 0, profile: str | None = None, region: str | None = None) -> list[RevisionEntry]:
    """
    Returns the revisions of the service's task definition families, newest first.
    If 'last' is not 0, at most 'last' revisions are returned per family.
    """
    return _run_async(_with_clients_async(get_revisions_async, profile=profile, region=region, cluster=cluster, service=service, last=last))


def get_service_family(cluster: str, service: str, profile: str | None = None, region: str | None = None) -> str:
    """
    Returns the family of the task definition declared by the service
    """
    return _run_async(_with_clients_async(get_service_family_async, profile=profile, region=region, cluster=cluster, service=service))


def latest_task_definition_arn(cluster: str, service: str, profile: str | None = None, region: str | None = None) -> str:
    """
    Returns the most recent revision of the family of the service's task definition.
    Keep in mind this may not be the revision the service is currently running.
    """
    return _run_async(_with_clients_async(latest_task_definition_arn_async, profile=profile, region=region, cluster=cluster, service=service))


def list_task_definition_families(family_prefix: str, profile: str | None = None, region: str | None = None) -> list[str]:
    """
    Returns all the active task definition families starting with the given prefix
    """
    return _run_async(_with_clients_async(list_task_definition_families_async, profile=profile, region=region, family_prefix=family_prefix))


def run_task(
        cluster: str,
        service: ECSService,
        task_definition_arn: str,
        definition: TaskDefinitionInfo,
        command: list[str],
        profile: str | None = None,
        region: str | None = None,
    ) -> str:
    """
    Run a one-off task and returns its ARN
    """
    return _run_async(_with_clients_async(run_task_async, profile=profile, region=region, cluster=cluster, service=service, task_definition_arn=task_definition_arn, definition=definition, command=command))


def stop_task(cluster: str, task_arn: str, reason: str = "Stopped by user", profile: str | None = None, region: str | None = None) -> bool:
    """
    Stops a running ECS task.
    If the task did not exist, returns False.
    """
    return _run_async(_with_clients_async(stop_task_async, profile=profile, region=region, cluster=cluster, task_arn=task_arn, reason=reason))

"""
This module was automatically generated from ecs_runner.asynchrone.logs
"""
import asyncio
import logging
from ecs_runner._async_tools import _run_async, _async_iter_to_sync, _with_clients_async, _iter_with_clients_async
from typing import Iterable, Iterator
from ecs_runner.asynchrone.logs import BaseModel, AsyncIterator, Iterable, ClientError, extract_arn_resource, log_group_arn, RunnerSettings, NotFound, MissingField, MalformedResponse, StreamError, get_caller_identity_async, TaskDefinitionInfo, latest_task_definition_arn_async, describe_task_definition_async, logger, LogEntry, task_log_stream_name, advance_cursor, get_task_logs_async, LogTail, tail_log_groups_async, get_log_group_arn_async, tail_task_logs_async, get_service_logs_async, tail_service_logs_async


def get_log_group_arn(log_group: str, profile: str | None = None, region: str | None = None) -> str:
    """
    The live tail API requires log group ARNs, built from the caller's account and partition
    """
    return _run_async(_with_clients_async(get_log_group_arn_async, profile=profile, region=region, log_group=log_group))


def get_service_logs(cluster: str, service: str, start_time: int | None = None, profile: str | None = None, region: str | None = None) -> list[LogEntry]:
    """
    Returns the logs of all the running tasks of a service, sorted by timestamp.
    Tasks whose logs cannot be fetched are skipped.
    """
    return _run_async(_with_clients_async(get_service_logs_async, profile=profile, region=region, cluster=cluster, service=service, start_time=start_time))


def get_task_logs(
        log_group: str,
        log_stream_prefix: str,
        container_name: str,
        task_arn: str,
        cursor: int | None = None,
        profile: str | None = None,
        region: str | None = None,
    ) -> tuple[list[LogEntry], int | None]:
    """
    Fetch a batch of logs of a task, starting at 'cursor' (or at the start of the task if None).
    Returns the entries sorted by timestamp, and the cursor of the next batch.
    """
    return _run_async(_with_clients_async(get_task_logs_async, profile=profile, region=region, log_group=log_group, log_stream_prefix=log_stream_prefix, container_name=container_name, task_arn=task_arn, cursor=cursor))

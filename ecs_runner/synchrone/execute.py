"""
This module was automatically generated from ecs_runner.asynchrone.execute
"""
import asyncio
import logging
import contextlib
from ecs_runner._async_tools import _run_async, _async_iter_to_sync, _with_clients_async, _iter_with_clients_async
from typing import Iterable, Iterator
from ecs_runner.asynchrone.execute import BaseModel, Awaitable, Callable, ClientError, BotoCoreError, RunnerSettings, ECSRunnerException, MalformedResponse, MissingField, StreamError, TaskFailed, ExecutionCancelled, ExecutionFailed, TaskDefinitionInfo, describe_service_async, latest_task_definition_arn_async, describe_task_definition_async, clone_task_definition_async, run_task_async, check_task_status_async, LogEntry, LogTail, get_task_logs_async, tail_task_logs_async, logger, ExecutionResult, wait_for_task_async, execute_async


def execute(
        cluster: str,
        service: str,
        command: list[str],
        wait: bool = False,
        image_tag: str | None = None,
        cancel_event: asyncio.Event | None = None,
        settings: RunnerSettings | None = None,
        profile: str | None = None,
        region: str | None = None,
    ) -> ExecutionResult:
    """
    Run a one-off task with the latest task definition of a service, overriding its command.
    If 'image_tag' is given, a new task definition revision using this tag is registered first.
    If 'wait' is True, returns once the task is stopped, with its logs.

    Errors raised while waiting carry the partial result in their 'result' attribute.
    """
    return _run_async(_with_clients_async(execute_async, profile=profile, region=region, cluster=cluster, service=service, command=command, wait=wait, image_tag=image_tag, cancel_event=cancel_event, settings=settings))


def wait_for_task(
        cluster: str,
        task_arn: str,
        container_name: str | None = None,
        poll_interval: float | None = None,
        cancel_event: asyncio.Event | None = None,
        on_poll: Callable[[], Awaitable[None]] | None = None,
        profile: str | None = None,
        region: str | None = None,
    ) -> bool:
    """
    Poll the status of a task until it is STOPPED, then returns True.
    Raises TaskFailed if its container exited with a nonzero code,
    and ExecutionCancelled if 'cancel_event' is set (the task keeps running).
    'on_poll' is awaited before each status check.
    """
    return _run_async(_with_clients_async(wait_for_task_async, profile=profile, region=region, cluster=cluster, task_arn=task_arn, container_name=container_name, poll_interval=poll_interval, cancel_event=cancel_event, on_poll=on_poll))

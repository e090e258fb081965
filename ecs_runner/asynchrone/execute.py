import asyncio
import logging
import contextlib
from pydantic import BaseModel
from typing import Awaitable, Callable
from botocore.exceptions import ClientError, BotoCoreError
from ecs_runner.config import RunnerSettings
from ecs_runner.errors import ECSRunnerException, MalformedResponse, MissingField, StreamError, TaskFailed, ExecutionCancelled, ExecutionFailed
from ecs_runner.asynchrone.ecs import (
    TaskDefinitionInfo,
    describe_service_async,
    latest_task_definition_arn_async,
    describe_task_definition_async,
    clone_task_definition_async,
    run_task_async,
    check_task_status_async,
)
from ecs_runner.asynchrone.logs import LogEntry, LogTail, get_task_logs_async, tail_task_logs_async

logger = logging.getLogger(__name__)


class ExecutionResult(BaseModel):
    """
    Outcome of a one-off task execution.
    'logs' is only filled when waiting for the task, in chronological order.
    """
    service_name: str
    task_definition: str
    task_arn: str
    new_task_definition_created: bool = False
    finished: bool = False
    logs: list[LogEntry] = []


@contextlib.contextmanager
def _error_context(context: str):
    """
    Prefix the errors raised in the context, converting aws errors to ExecutionFailed
    """
    try:
        yield
    except ECSRunnerException as e:
        raise e.add_context(context)
    except (ClientError, BotoCoreError) as e:
        raise ExecutionFailed(f"{context}: {e}") from e


async def _cancelled_during_async(delay: float, cancel_event: asyncio.Event | None) -> bool:
    """
    Sleep for 'delay' seconds, returns early with True if the event is set meanwhile
    """
    if cancel_event is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True


async def wait_for_task_async(
        clients,
        cluster: str,
        task_arn: str,
        container_name: str | None = None,
        poll_interval: float | None = None,
        cancel_event: asyncio.Event | None = None,
        on_poll: Callable[[], Awaitable[None]] | None = None,
    ) -> bool:
    """
    Poll the status of a task until it is STOPPED, then returns True.
    Raises TaskFailed if its container exited with a nonzero code,
    and ExecutionCancelled if 'cancel_event' is set (the task keeps running).
    'on_poll' is awaited before each status check.
    """
    if poll_interval is None:
        poll_interval = RunnerSettings().poll_interval
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise ExecutionCancelled(f"stopped waiting for task {task_arn}, it will continue running")
        if on_poll is not None:
            await on_poll()
        if await check_task_status_async(clients, cluster, task_arn, container_name):
            logger.info("task %s finished", task_arn)
            return True
        if await _cancelled_during_async(poll_interval, cancel_event):
            raise ExecutionCancelled(f"stopped waiting for task {task_arn}, it will continue running")


async def _collect_logs_async(tail: LogTail, result: ExecutionResult):
    async for entry in tail:
        result.logs.append(entry)


async def _wait_with_live_tail_async(
        clients,
        cluster: str,
        definition: TaskDefinitionInfo,
        result: ExecutionResult,
        settings: RunnerSettings,
        cancel_event: asyncio.Event | None,
    ) -> bool:
    try:
        tail = await tail_task_logs_async(clients, definition, result.task_arn, settings.live_tail_buffer_size)
    except (StreamError, MissingField, MalformedResponse, ClientError, BotoCoreError) as e:
        logger.warning("cannot stream the logs of task %s: %s", result.task_arn, e)
        return await wait_for_task_async(
            clients, cluster, result.task_arn, definition.name, settings.poll_interval, cancel_event
        )
    collector = asyncio.create_task(_collect_logs_async(tail, result))
    try:
        return await wait_for_task_async(
            clients, cluster, result.task_arn, definition.name, settings.poll_interval, cancel_event
        )
    finally:
        await tail.close()
        await asyncio.wait([collector])


async def _wait_with_batch_logs_async(
        clients,
        cluster: str,
        definition: TaskDefinitionInfo,
        result: ExecutionResult,
        settings: RunnerSettings,
        cancel_event: asyncio.Event | None,
    ) -> bool:
    cursor: int | None = None

    async def fetch_logs():
        nonlocal cursor
        try:
            entries, cursor = await get_task_logs_async(
                clients, definition.log_group, definition.log_stream_prefix, definition.name, result.task_arn, cursor
            )
        except (ClientError, BotoCoreError, MalformedResponse) as e:
            logger.debug("failed to fetch the logs of task %s: %s", result.task_arn, e)
            return
        result.logs.extend(entries)

    async def fetch_last_logs():
        try:
            await asyncio.wait_for(fetch_logs(), timeout=settings.poll_interval)
        except asyncio.TimeoutError:
            logger.debug("timed out fetching the last logs of task %s", result.task_arn)

    try:
        finished = await wait_for_task_async(
            clients, cluster, result.task_arn, definition.name, settings.poll_interval, cancel_event, on_poll=fetch_logs
        )
    except TaskFailed:
        await fetch_last_logs()
        raise
    await fetch_last_logs()
    return finished


async def _wait_for_completion_async(
        clients,
        cluster: str,
        definition: TaskDefinitionInfo,
        result: ExecutionResult,
        settings: RunnerSettings,
        cancel_event: asyncio.Event | None,
    ):
    logger.info("waiting for task %s to complete, cancelling the wait leaves it running", result.task_arn)
    try:
        if not definition.has_cloudwatch_logs:
            logger.warning("task definition %s has no CloudWatch logging configured, logs will not be collected", definition.arn)
            result.finished = await wait_for_task_async(
                clients, cluster, result.task_arn, definition.name, settings.poll_interval, cancel_event
            )
        elif settings.log_mode == "batch":
            result.finished = await _wait_with_batch_logs_async(clients, cluster, definition, result, settings, cancel_event)
        else:
            result.finished = await _wait_with_live_tail_async(clients, cluster, definition, result, settings, cancel_event)
    except TaskFailed:
        result.finished = True
        raise


async def execute_async(
        clients,
        cluster: str,
        service: str,
        command: list[str],
        wait: bool = False,
        image_tag: str | None = None,
        cancel_event: asyncio.Event | None = None,
        settings: RunnerSettings | None = None,
    ) -> ExecutionResult:
    """
    Run a one-off task with the latest task definition of a service, overriding its command.
    If 'image_tag' is given, a new task definition revision using this tag is registered first.
    If 'wait' is True, returns once the task is stopped, with its logs.

    Errors raised while waiting carry the partial result in their 'result' attribute.
    """
    settings = settings or RunnerSettings()
    with _error_context(f"error loading service '{service}' in cluster '{cluster}'"):
        description = await describe_service_async(clients, cluster, service)
        latest_arn = await latest_task_definition_arn_async(clients, cluster, service)
    with _error_context(f"error loading task definition {latest_arn}"):
        definition = await describe_task_definition_async(clients, latest_arn)
    if image_tag:
        with _error_context(f"error cloning task definition {latest_arn} with image tag '{image_tag}'"):
            task_definition_arn = await clone_task_definition_async(clients, cluster, service, image_tag)
    else:
        task_definition_arn = latest_arn
    with _error_context(f"error running task {task_definition_arn} for service '{service}' in cluster '{cluster}'"):
        task_arn = await run_task_async(clients, cluster, description, task_definition_arn, definition, command)
    result = ExecutionResult(
        service_name=service,
        task_definition=task_definition_arn,
        task_arn=task_arn,
        new_task_definition_created=bool(image_tag),
    )
    if not wait:
        return result
    try:
        await _wait_for_completion_async(clients, cluster, definition, result, settings, cancel_event)
    except ECSRunnerException as e:
        e.result = result
        raise
    except (ClientError, BotoCoreError) as e:
        raise ExecutionFailed(f"error waiting for task {task_arn} in cluster '{cluster}': {e}", result) from e
    return result

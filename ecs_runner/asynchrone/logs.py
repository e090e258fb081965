import asyncio
import logging
from pydantic import BaseModel
from typing import AsyncIterator, Iterable
from botocore.exceptions import ClientError
from ecs_runner.arn import extract_arn_resource, log_group_arn
from ecs_runner.config import RunnerSettings
from ecs_runner.errors import NotFound, MissingField, MalformedResponse, StreamError
from ecs_runner.asynchrone.sts import get_caller_identity_async
from ecs_runner.asynchrone.ecs import TaskDefinitionInfo, latest_task_definition_arn_async, describe_task_definition_async

logger = logging.getLogger(__name__)


class LogEntry(BaseModel):
    stream_name: str
    message: str
    timestamp: int  # milliseconds since epoch

    @classmethod
    def from_event(cls, event: dict) -> "LogEntry | None":
        """
        Build an entry from a 'filter_log_events' event or a live tail session result.
        Returns None if any of the required fields is missing.
        """
        stream_name, message, timestamp = event.get("logStreamName"), event.get("message"), event.get("timestamp")
        if stream_name is None or message is None or timestamp is None:
            return None
        return cls(stream_name=stream_name, message=message, timestamp=timestamp)


def task_log_stream_name(log_stream_prefix: str, container_name: str, task_arn: str) -> str:
    """
    Name of the awslogs stream of a task's container: '<prefix>/<container>/<task id>'
    """
    return f"{log_stream_prefix}/{container_name}/{extract_arn_resource(task_arn)}"


def advance_cursor(cursor: int | None, events: Iterable[dict]) -> int | None:
    """
    Returns the start time of the next query, just after the last event of the batch.
    If the batch had no timestamped event, the cursor is unchanged.
    """
    timestamps = [event["timestamp"] for event in events if event.get("timestamp") is not None]
    if len(timestamps) == 0:
        return cursor
    return max(timestamps) + 1


async def get_task_logs_async(
        clients,
        log_group: str,
        log_stream_prefix: str,
        container_name: str,
        task_arn: str,
        cursor: int | None = None,
    ) -> tuple[list[LogEntry], int | None]:
    """
    Fetch a batch of logs of a task, starting at 'cursor' (or at the start of the task if None).
    Returns the entries sorted by timestamp, and the cursor of the next batch.
    All the pages are read before moving the cursor, so that no event is skipped.
    """
    kwargs = {
        "logGroupName": log_group,
        "logStreamNames": [task_log_stream_name(log_stream_prefix, container_name, task_arn)],
    }
    if cursor is not None:
        kwargs["startTime"] = cursor
    events = []
    while True:
        response = await clients.logs.filter_log_events(**kwargs)
        events.extend(response.get("events", []))
        next_token = response.get("nextToken")
        if next_token is None:
            break
        kwargs["nextToken"] = next_token
    entries = [entry for entry in (LogEntry.from_event(event) for event in events) if entry is not None]
    entries.sort(key=lambda entry: entry.timestamp)
    return entries, advance_cursor(cursor, events)


class LogTail:
    """
    Live tail of CloudWatch log streams.
    Log entries are relayed by a background task into a bounded queue, and read with

    >>> async with LogTail(stream) as tail:
    >>>     async for entry in tail:
    >>>         ...

    The relay stops at the first stream error, which is kept in 'error'.
    'close' can be called several times, and returns once the relay task has finished.
    It must be created from within a running event loop.
    """

    def __init__(self, stream, buffer_size: int = 100):
        self._stream = stream
        self._queue: asyncio.Queue[LogEntry] = asyncio.Queue(maxsize=buffer_size)
        self._done = asyncio.Event()
        self._closed = False
        self.error: StreamError | None = None
        self._relay_task = asyncio.create_task(self._relay())

    async def _relay(self):
        try:
            async for event in self._stream:
                if event is None:
                    logger.debug("nil event received from log stream")
                    return
                elif "sessionStart" in event:
                    continue
                elif "sessionUpdate" in event:
                    for result in event["sessionUpdate"].get("sessionResults", []):
                        entry = LogEntry.from_event(result)
                        if entry is not None:
                            await self._queue.put(entry)
                else:
                    logger.warning("unexpected event type received from log stream: %s", ", ".join(event))
                    return
        except Exception as e:
            if not self._closed:
                self.error = StreamError(f"log stream error occurred: {e}")
                logger.error("log stream error occurred in CloudWatch logs live tail stream: %s", e)
        finally:
            self._stream.close()
            self._done.set()

    @property
    def done(self) -> bool:
        """
        Whether the relay has stopped. Entries may still be buffered.
        """
        return self._done.is_set()

    async def close(self):
        if not self._closed:
            self._closed = True
            self._stream.close()
            self._relay_task.cancel()
        await asyncio.wait([self._relay_task])

    async def __aenter__(self) -> "LogTail":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __aiter__(self) -> AsyncIterator[LogEntry]:
        return self

    async def __anext__(self) -> LogEntry:
        while True:
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._done.is_set():
                raise StopAsyncIteration
            getter = asyncio.ensure_future(self._queue.get())
            stopped = asyncio.ensure_future(self._done.wait())
            try:
                await asyncio.wait({getter, stopped}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                stopped.cancel()
                if not getter.done():
                    getter.cancel()
            if getter.done() and not getter.cancelled():
                return getter.result()


async def tail_log_groups_async(
        clients,
        log_group_identifiers: list[str],
        log_stream_prefixes: list[str],
        buffer_size: int | None = None,
    ) -> LogTail:
    """
    Start a live tail of the given log groups (ARNs), filtered on log stream name prefixes
    """
    if buffer_size is None:
        buffer_size = RunnerSettings().live_tail_buffer_size
    try:
        response = await clients.logs.start_live_tail(
            logGroupIdentifiers=log_group_identifiers,
            logStreamNamePrefixes=log_stream_prefixes,
        )
    except ClientError as e:
        raise StreamError(f"failed to start live tail: {e}") from e
    return LogTail(response["responseStream"], buffer_size)


async def get_log_group_arn_async(clients, log_group: str) -> str:
    """
    The live tail API requires log group ARNs, built from the caller's account and partition
    """
    identity = await get_caller_identity_async(clients)
    return log_group_arn(identity.partition, clients.region, identity.account, log_group)


async def tail_task_logs_async(clients, definition: TaskDefinitionInfo, task_arn: str, buffer_size: int | None = None) -> LogTail:
    """
    Live tail of the logs of a single task
    """
    group_arn = await get_log_group_arn_async(clients, definition.log_group)
    prefix = task_log_stream_name(definition.log_stream_prefix, definition.name, task_arn)
    return await tail_log_groups_async(clients, [group_arn], [prefix], buffer_size)


async def _service_log_definition_async(clients, cluster: str, service: str) -> TaskDefinitionInfo:
    arn = await latest_task_definition_arn_async(clients, cluster, service)
    definition = await describe_task_definition_async(clients, arn)
    if not definition.has_cloudwatch_logs:
        raise MissingField(f"service '{service}' does not have CloudWatch logging configured")
    return definition


async def _list_service_tasks_async(clients, cluster: str, service: str) -> list[str]:
    task_arns = []
    kwargs = {"cluster": cluster, "serviceName": service}
    while True:
        response = await clients.ecs.list_tasks(**kwargs)
        task_arns.extend(response.get("taskArns", []))
        next_token = response.get("nextToken")
        if next_token is None:
            return task_arns
        kwargs["nextToken"] = next_token


async def get_service_logs_async(clients, cluster: str, service: str, start_time: int | None = None) -> list[LogEntry]:
    """
    Returns the logs of all the running tasks of a service, sorted by timestamp.
    Tasks whose logs cannot be fetched are skipped.
    """
    definition = await _service_log_definition_async(clients, cluster, service)
    task_arns = await _list_service_tasks_async(clients, cluster, service)
    if len(task_arns) == 0:
        raise NotFound(f"no running tasks found for service '{service}'")
    entries = []
    for task_arn in task_arns:
        try:
            logs, _ = await get_task_logs_async(
                clients, definition.log_group, definition.log_stream_prefix, definition.name, task_arn, start_time
            )
        except (ClientError, MalformedResponse) as e:
            logger.warning("skipping logs of task %s: %s", task_arn, e)
            continue
        entries.extend(logs)
    entries.sort(key=lambda entry: entry.timestamp)
    return entries


async def tail_service_logs_async(clients, cluster: str, service: str, buffer_size: int | None = None) -> LogTail:
    """
    Live tail of the logs of all the tasks of a service
    """
    definition = await _service_log_definition_async(clients, cluster, service)
    group_arn = await get_log_group_arn_async(clients, definition.log_group)
    prefix = f"{definition.log_stream_prefix}/{definition.name}/"
    return await tail_log_groups_async(clients, [group_arn], [prefix], buffer_size)

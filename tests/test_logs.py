import asyncio
import unittest
from fakes import (
    FakeClients,
    FakeEventStream,
    CLUSTER,
    SERVICE,
    TASK_ARN,
    ACCOUNT,
    REGION,
    client_error,
    session_update,
    log_event,
    serve_worker,
)
from ecs_runner.errors import NotFound, MissingField, StreamError
from ecs_runner._check_fail_context import check_fail
from ecs_runner.asynchrone.ecs import TaskDefinitionInfo
from ecs_runner.asynchrone.logs import (
    LogEntry,
    LogTail,
    task_log_stream_name,
    advance_cursor,
    get_task_logs_async,
    tail_log_groups_async,
    tail_task_logs_async,
    get_log_group_arn_async,
    get_service_logs_async,
    tail_service_logs_async,
)


STREAM = "app/worker/0123456789abcdef"


class TestBatchLogs(unittest.TestCase):

    def setUp(self):
        self.clients = FakeClients()

    def test_stream_name(self):
        assert task_log_stream_name("app", "worker", TASK_ARN) == STREAM

    def test_from_event(self):
        assert LogEntry.from_event(log_event("hello", 1000)) == LogEntry(stream_name=STREAM, message="hello", timestamp=1000)
        assert LogEntry.from_event({"logStreamName": STREAM, "timestamp": 1000}) is None
        assert LogEntry.from_event({"message": "hello", "timestamp": 1000}) is None
        assert LogEntry.from_event({"logStreamName": STREAM, "message": "hello"}) is None
        assert LogEntry.from_event({"logStreamName": STREAM, "message": "", "timestamp": 0}) is not None

    def test_cursor(self):
        assert advance_cursor(None, []) is None
        assert advance_cursor(1500, []) == 1500
        assert advance_cursor(1500, [{"message": "no timestamp"}]) == 1500
        assert advance_cursor(None, [log_event("a", 1000), log_event("b", 3000), log_event("c", 2000)]) == 3001

    def test_fetch(self):
        async def test():
            self.clients.logs.filter_log_events.return_value = {"events": [
                log_event("second", 2000),
                log_event("first", 1000),
                {"logStreamName": STREAM, "timestamp": 1500},
                log_event("third", 3000),
            ]}
            entries, cursor = await get_task_logs_async(self.clients, "/ecs/worker", "app", "worker", TASK_ARN)
            assert [entry.message for entry in entries] == ["first", "second", "third"]
            assert cursor == 3001
            self.clients.logs.filter_log_events.assert_awaited_with(logGroupName="/ecs/worker", logStreamNames=[STREAM])
            # the next batch starts after the last event
            self.clients.logs.filter_log_events.return_value = {"events": [log_event("fourth", 3001)]}
            entries, cursor = await get_task_logs_async(self.clients, "/ecs/worker", "app", "worker", TASK_ARN, cursor)
            assert [entry.message for entry in entries] == ["fourth"]
            assert cursor == 3002
            self.clients.logs.filter_log_events.assert_awaited_with(logGroupName="/ecs/worker", logStreamNames=[STREAM], startTime=3001)
            # empty batches don't move the cursor
            self.clients.logs.filter_log_events.return_value = {"events": []}
            for _ in range(3):
                entries, cursor = await get_task_logs_async(self.clients, "/ecs/worker", "app", "worker", TASK_ARN, cursor)
                assert entries == []
                assert cursor == 3002
        asyncio.run(test())

    def test_fetch_all_pages(self):
        async def test():
            self.clients.logs.filter_log_events.side_effect = [
                {"events": [log_event("first", 1000), log_event("second", 2000)], "nextToken": "page-2"},
                {"events": [log_event("third", 2000), log_event("fourth", 2500)]},
            ]
            entries, cursor = await get_task_logs_async(self.clients, "/ecs/worker", "app", "worker", TASK_ARN, 500)
            assert [entry.message for entry in entries] == ["first", "second", "third", "fourth"]
            assert cursor == 2501
            assert self.clients.logs.filter_log_events.await_count == 2
            self.clients.logs.filter_log_events.assert_awaited_with(
                logGroupName="/ecs/worker", logStreamNames=[STREAM], startTime=500, nextToken="page-2"
            )
        asyncio.run(test())


class TestLogTail(unittest.TestCase):

    def test_relay(self):
        async def test():
            stream = FakeEventStream([
                {"sessionStart": {"sessionId": "session", "logGroupIdentifiers": ["/ecs/worker"]}},
                session_update(log_event("first", 1000), log_event("second", 1001)),
            ])
            async with LogTail(stream) as tail:
                entries = [entry async for entry in tail]
            assert [entry.message for entry in entries] == ["first", "second"]
            assert tail.done
            assert tail.error is None
            assert stream.close_calls >= 1
        asyncio.run(test())

    def test_small_buffer(self):
        async def test():
            stream = FakeEventStream([session_update(*(log_event(str(i), 1000 + i) for i in range(10)))])
            async with LogTail(stream, buffer_size=1) as tail:
                entries = [entry async for entry in tail]
            assert [entry.timestamp for entry in entries] == list(range(1000, 1010))
        asyncio.run(test())

    def test_stream_error(self):
        async def test():
            stream = FakeEventStream([session_update(log_event("first", 1000))], error=ConnectionResetError("connection reset by peer"))
            tail = LogTail(stream)
            with self.assertLogs("ecs_runner.asynchrone.logs", level="ERROR"):
                entries = [entry async for entry in tail]
            assert [entry.message for entry in entries] == ["first"]
            assert isinstance(tail.error, StreamError)
            assert "connection reset by peer" in str(tail.error)
            await tail.close()
        asyncio.run(test())

    def test_unexpected_event(self):
        async def test():
            stream = FakeEventStream([{"somethingElse": {}}, session_update(log_event("ignored", 1000))], hang=True)
            tail = LogTail(stream)
            with self.assertLogs("ecs_runner.asynchrone.logs", level="WARNING"):
                entries = [entry async for entry in tail]
            assert entries == []
            assert tail.error is None
        asyncio.run(test())

    def test_close(self):
        async def test():
            stream = FakeEventStream([session_update(log_event("first", 1000))], hang=True)
            tail = LogTail(stream)
            assert (await tail.__anext__()).message == "first"
            assert not tail.done
            await asyncio.wait_for(tail.close(), timeout=5)
            assert tail.done
            assert tail.error is None
            # closing again does nothing
            await tail.close()
            await tail.close()
            assert [entry async for entry in tail] == []
        asyncio.run(test())

    def test_close_unblocks_reader(self):
        async def test():
            tail = LogTail(FakeEventStream([], hang=True))
            reader = asyncio.create_task(tail.__anext__())
            await asyncio.sleep(0.01)
            assert not reader.done()
            await tail.close()
            with check_fail(StopAsyncIteration):
                await asyncio.wait_for(reader, timeout=5)
        asyncio.run(test())


class TestTailStart(unittest.TestCase):

    def setUp(self):
        self.clients = FakeClients()
        serve_worker(self.clients)

    def test_log_group_arn(self):
        async def test():
            arn = await get_log_group_arn_async(self.clients, "/ecs/worker")
            assert arn == f"arn:aws:logs:{REGION}:{ACCOUNT}:log-group:/ecs/worker"
            self.clients.sts.get_caller_identity.return_value = {
                "UserId": "AIDAEXAMPLE",
                "Account": ACCOUNT,
                "Arn": f"arn:aws-cn:iam::{ACCOUNT}:user/ci",
            }
            self.clients.region = "cn-north-1"
            arn = await get_log_group_arn_async(self.clients, "/ecs/worker")
            assert arn == f"arn:aws-cn:logs:cn-north-1:{ACCOUNT}:log-group:/ecs/worker"
        asyncio.run(test())

    def test_tail_task(self):
        async def test():
            stream = FakeEventStream([session_update(log_event("first", 1000))])
            self.clients.logs.start_live_tail.return_value = {"responseStream": stream}
            definition = TaskDefinitionInfo(
                arn="arn:aws:ecs:eu-west-1:123456789012:task-definition/worker:7", name="worker", cpu="256", memory="512",
                requires_compatibilities=["FARGATE"], log_group="/ecs/worker", log_stream_prefix="app",
            )
            async with await tail_task_logs_async(self.clients, definition, TASK_ARN) as tail:
                entries = [entry async for entry in tail]
            assert [entry.message for entry in entries] == ["first"]
            self.clients.logs.start_live_tail.assert_awaited_once_with(
                logGroupIdentifiers=[f"arn:aws:logs:{REGION}:{ACCOUNT}:log-group:/ecs/worker"],
                logStreamNamePrefixes=[STREAM],
            )
        asyncio.run(test())

    def test_start_failure(self):
        async def test():
            self.clients.logs.start_live_tail.side_effect = client_error("AccessDeniedException", "not authorized to perform logs:StartLiveTail")
            with check_fail(StreamError, match="not authorized"):
                await tail_log_groups_async(self.clients, ["arn"], ["app/"])
        asyncio.run(test())


class TestServiceLogs(unittest.TestCase):

    def setUp(self):
        self.clients = FakeClients()
        serve_worker(self.clients)
        self.other_task = f"arn:aws:ecs:{REGION}:{ACCOUNT}:task/{CLUSTER}/fedcba9876543210"
        self.clients.ecs.list_tasks.return_value = {"taskArns": [TASK_ARN, self.other_task]}

    def test_service_logs(self):
        async def test():
            other_stream = "app/worker/fedcba9876543210"

            async def filter_log_events(**kwargs):
                if kwargs["logStreamNames"] == [STREAM]:
                    return {"events": [log_event("a", 1000), log_event("c", 3000)]}
                return {"events": [log_event("b", 2000, stream=other_stream)]}

            self.clients.logs.filter_log_events.side_effect = filter_log_events
            entries = await get_service_logs_async(self.clients, CLUSTER, SERVICE)
            assert [(entry.message, entry.stream_name) for entry in entries] == [("a", STREAM), ("b", other_stream), ("c", STREAM)]
        asyncio.run(test())

    def test_failing_task_is_skipped(self):
        async def test():
            self.clients.logs.filter_log_events.side_effect = [
                client_error("ResourceNotFoundException", "The specified log stream does not exist."),
                {"events": [log_event("b", 2000)]},
            ]
            entries = await get_service_logs_async(self.clients, CLUSTER, SERVICE, start_time=1500)
            assert [entry.message for entry in entries] == ["b"]
            assert self.clients.logs.filter_log_events.await_args.kwargs["startTime"] == 1500
        asyncio.run(test())

    def test_no_tasks(self):
        async def test():
            self.clients.ecs.list_tasks.return_value = {"taskArns": []}
            with check_fail(NotFound):
                await get_service_logs_async(self.clients, CLUSTER, SERVICE)
        asyncio.run(test())

    def test_no_cloudwatch(self):
        async def test():
            description = self.clients.ecs.describe_task_definition.return_value
            del description["taskDefinition"]["containerDefinitions"][0]["logConfiguration"]
            with check_fail(MissingField, match="CloudWatch"):
                await get_service_logs_async(self.clients, CLUSTER, SERVICE)
            with check_fail(MissingField, match="CloudWatch"):
                await tail_service_logs_async(self.clients, CLUSTER, SERVICE)
        asyncio.run(test())

    def test_tail_service(self):
        async def test():
            self.clients.ecs.list_tasks.return_value = {"taskArns": []}
            self.clients.logs.start_live_tail.return_value = {"responseStream": FakeEventStream([])}
            async with await tail_service_logs_async(self.clients, CLUSTER, SERVICE) as tail:
                assert [entry async for entry in tail] == []
            assert self.clients.logs.start_live_tail.await_args.kwargs["logStreamNamePrefixes"] == ["app/worker/"]
            self.clients.ecs.list_tasks.assert_not_awaited()
        asyncio.run(test())


if __name__ == "__main__":
    unittest.main()

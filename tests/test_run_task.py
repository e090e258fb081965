import asyncio
import unittest
from fakes import FakeClients, CLUSTER, TASK_ARN, TASK_DEFINITION_ARN, client_error, load
from ecs_runner.errors import LaunchRejected, MissingField, MalformedResponse
from ecs_runner._check_fail_context import check_fail
from ecs_runner.asynchrone.ecs import ECSService, TaskDefinitionInfo, build_run_task_request, run_task_async, stop_task_async


def load_service(name: str) -> ECSService:
    return ECSService(**load("service", f"{name}.json"))


DEFINITION = TaskDefinitionInfo(
    arn=TASK_DEFINITION_ARN,
    name="worker",
    cpu="256",
    memory="512",
    requires_compatibilities=["FARGATE"],
    log_group="/ecs/worker",
    log_stream_prefix="app",
)


class TestRunTaskRequest(unittest.TestCase):

    def test_capacity_provider_strategy(self):
        request = build_run_task_request(CLUSTER, load_service("capacity-provider"), TASK_DEFINITION_ARN, DEFINITION, ["rake", "db:migrate"])
        assert request["capacityProviderStrategy"] == [{"capacityProvider": "FARGATE_SPOT", "weight": 1, "base": 0}]
        assert "launchType" not in request
        assert "networkConfiguration" not in request
        assert request["overrides"] == {"containerOverrides": [{"name": "worker", "command": ["rake", "db:migrate"]}]}
        assert request["count"] == 1

    def test_launch_type(self):
        request = build_run_task_request(CLUSTER, load_service("fargate-vpc"), TASK_DEFINITION_ARN, DEFINITION, ["ls"])
        assert request["launchType"] == "FARGATE"
        assert "capacityProviderStrategy" not in request
        assert request["networkConfiguration"] == {
            "awsvpcConfiguration": {
                "subnets": ["subnet-0a1b2c3d", "subnet-4e5f6a7b"],
                "securityGroups": ["sg-0123abcd"],
                "assignPublicIp": "DISABLED",
            }
        }

    def test_network_placement(self):
        service = ECSService(networkConfiguration={"awsvpcConfiguration": {"subnets": [], "securityGroups": []}})
        assert service.network_placement() is None
        assert "networkConfiguration" not in build_run_task_request(CLUSTER, service, TASK_DEFINITION_ARN, DEFINITION, ["ls"])
        service = ECSService(networkConfiguration={"awsvpcConfiguration": {"subnets": ["subnet-0a1b2c3d"]}})
        placement = service.network_placement()
        assert placement.security_groups == []
        assert placement.assign_public_ip == "ENABLED"

    def test_no_launch_mode(self):
        definition = DEFINITION.model_copy(update={"requires_compatibilities": []})
        with check_fail(MissingField):
            build_run_task_request(CLUSTER, ECSService(), TASK_DEFINITION_ARN, definition, ["ls"])


class TestRunTask(unittest.TestCase):

    def setUp(self):
        self.clients = FakeClients()

    def test_run(self):
        async def test():
            self.clients.ecs.run_task.return_value = {"tasks": [{"taskArn": TASK_ARN, "lastStatus": "PROVISIONING"}], "failures": []}
            arn = await run_task_async(self.clients, CLUSTER, load_service("fargate-vpc"), TASK_DEFINITION_ARN, DEFINITION, ["ls"])
            assert arn == TASK_ARN
            assert self.clients.ecs.run_task.await_args.kwargs["taskDefinition"] == TASK_DEFINITION_ARN
        asyncio.run(test())

    def test_rejected(self):
        async def test():
            self.clients.ecs.run_task.side_effect = client_error("InvalidParameterException", "No Container Instances were found in your cluster.")
            with check_fail(LaunchRejected, match="No Container Instances were found in your cluster."):
                await run_task_async(self.clients, CLUSTER, load_service("fargate-vpc"), TASK_DEFINITION_ARN, DEFINITION, ["ls"])
            self.clients.ecs.run_task.side_effect = None
            self.clients.ecs.run_task.return_value = {"tasks": [], "failures": [{"arn": TASK_DEFINITION_ARN, "reason": "RESOURCE:MEMORY"}]}
            with check_fail(LaunchRejected, match="RESOURCE:MEMORY"):
                await run_task_async(self.clients, CLUSTER, load_service("fargate-vpc"), TASK_DEFINITION_ARN, DEFINITION, ["ls"])
            self.clients.ecs.run_task.return_value = {"tasks": [{}], "failures": []}
            with check_fail(MalformedResponse):
                await run_task_async(self.clients, CLUSTER, load_service("fargate-vpc"), TASK_DEFINITION_ARN, DEFINITION, ["ls"])
        asyncio.run(test())

    def test_stop(self):
        async def test():
            assert await stop_task_async(self.clients, CLUSTER, TASK_ARN)
            self.clients.ecs.stop_task.side_effect = client_error("InvalidParameterException", "The referenced task was not found.")
            assert not await stop_task_async(self.clients, CLUSTER, TASK_ARN)
        asyncio.run(test())


if __name__ == "__main__":
    unittest.main()

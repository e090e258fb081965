from botocore.config import Config
from aiobotocore.session import get_session, AioBaseClient
from ecs_runner.config import RunnerSettings
from ecs_runner.errors import MissingField


class AWSClients:
    """
    Bundle of the aws clients used by ecs_runner, sharing a single session.

    >>> clients = AWSClients()
    >>> await clients.open()
    >>> ...
    >>> await clients.close()

    It can also be used as an async context
    >>> async with AWSClients(profile="staging") as clients:
    >>>     ...
    """

    SERVICES = ("ecs", "logs", "sts")

    def __init__(self, profile: str | None = None, region: str | None = None, settings: RunnerSettings | None = None):
        settings = settings or RunnerSettings()
        self.session = get_session()
        profile = profile or settings.profile
        if profile is not None:
            self.session.set_config_variable("profile", profile)
        self._region = region or settings.region or self.session.get_config_variable("region")
        if self._region is None:
            raise MissingField("no AWS region configured, pass a region or set ECS_RUNNER_REGION or AWS_DEFAULT_REGION")
        self._config = Config(retries={"max_attempts": settings.max_attempts, "mode": "standard"})
        self._clients: dict[str, AioBaseClient] = {}

    async def open(self):
        """
        Open all the clients. If one fails to open, the ones already opened are closed.
        """
        try:
            for service in self.SERVICES:
                context = self.session.create_client(service, region_name=self._region, config=self._config)
                self._clients[service] = await context.__aenter__()
        except BaseException:
            await self.close()
            raise

    async def close(self):
        clients, self._clients = self._clients, {}
        for client in clients.values():
            await client.__aexit__(None, None, None)

    async def __aenter__(self) -> "AWSClients":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _client(self, service: str) -> AioBaseClient:
        client = self._clients.get(service)
        if client is None:
            raise RuntimeError(f"{type(self).__name__} object was not awaited on creation, and as such, is not initialized")
        return client

    @property
    def region(self) -> str:
        return self._region

    @property
    def ecs(self) -> AioBaseClient:
        return self._client("ecs")

    @property
    def logs(self) -> AioBaseClient:
        return self._client("logs")

    @property
    def sts(self) -> AioBaseClient:
        return self._client("sts")

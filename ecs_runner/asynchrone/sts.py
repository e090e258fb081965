from pydantic import BaseModel, Field
from ecs_runner.arn import extract_partition_from_arn


class CallerIdentity(BaseModel):
    user_id: str = Field(..., alias="UserId")
    account: str = Field(..., alias="Account")
    arn: str = Field(..., alias="Arn")

    @property
    def partition(self) -> str:
        return extract_partition_from_arn(self.arn)


async def get_caller_identity_async(clients) -> CallerIdentity:
    """
    Returns the account and ARN of the credentials in use
    """
    return CallerIdentity(**await clients.sts.get_caller_identity())

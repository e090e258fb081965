from pydantic import BaseModel
from botocore.utils import ArnParser, InvalidArnException
from ecs_runner.errors import MalformedResponse


_parser = ArnParser()


class ARN(BaseModel):
    partition: str
    service: str
    region: str
    account: str
    resource: str

    def __str__(self) -> str:
        return f"arn:{self.partition}:{self.service}:{self.region}:{self.account}:{self.resource}"


def parse_arn(arn: str) -> ARN:
    """
    Parse an AWS ARN into its components
    """
    try:
        return ARN(**_parser.parse_arn(arn))
    except InvalidArnException as e:
        raise MalformedResponse(f"failed to parse ARN '{arn}': {e}") from e


def extract_arn_resource(arn: str) -> str:
    """
    Returns the resource identifier of an ARN.
    For resources like 'task/cluster/abc123' it is the part after the last '/'.
    """
    resource = parse_arn(arn).resource
    return resource.rsplit("/", 1)[-1]


def extract_partition_from_arn(arn: str) -> str:
    """
    Returns the partition of an ARN ('aws', 'aws-cn', 'aws-us-gov', ...)
    """
    return parse_arn(arn).partition


def build_arn(partition: str, service: str, region: str, account: str, resource: str) -> str:
    return str(ARN(partition=partition, service=service, region=region, account=account, resource=resource))


def log_group_arn(partition: str, region: str, account: str, log_group: str) -> str:
    """
    ARN of a CloudWatch log group, as required by the live tail API
    """
    return build_arn(partition, "logs", region, account, f"log-group:{log_group}")

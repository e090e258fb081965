import unittest
from ecs_runner.errors import MalformedResponse
from ecs_runner._check_fail_context import check_fail
from ecs_runner.arn import parse_arn, extract_arn_resource, extract_partition_from_arn, build_arn, log_group_arn


class TestARN(unittest.TestCase):

    def test_parse(self):
        arn = parse_arn("arn:aws:ecs:eu-west-1:123456789012:task/jobs/0123456789abcdef")
        assert arn.partition == "aws"
        assert arn.service == "ecs"
        assert arn.region == "eu-west-1"
        assert arn.account == "123456789012"
        assert arn.resource == "task/jobs/0123456789abcdef"
        assert str(arn) == "arn:aws:ecs:eu-west-1:123456789012:task/jobs/0123456789abcdef"

    def test_resource(self):
        assert extract_arn_resource("arn:aws:ecs:eu-west-1:123456789012:task/jobs/0123456789abcdef") == "0123456789abcdef"
        assert extract_arn_resource("arn:aws:ecs:eu-west-1:123456789012:task/0123456789abcdef") == "0123456789abcdef"
        assert extract_arn_resource("arn:aws:sns:eu-west-1:123456789012:notifications") == "notifications"

    def test_partition(self):
        assert extract_partition_from_arn("arn:aws:iam::123456789012:user/ci") == "aws"
        assert extract_partition_from_arn("arn:aws-cn:iam::123456789012:user/ci") == "aws-cn"
        assert extract_partition_from_arn("arn:aws-us-gov:sts::123456789012:assumed-role/ci/session") == "aws-us-gov"

    def test_invalid(self):
        with check_fail(MalformedResponse):
            parse_arn("not-an-arn")
        with check_fail(MalformedResponse):
            extract_arn_resource("arn:aws:ecs")

    def test_build(self):
        assert build_arn("aws", "ecs", "eu-west-1", "123456789012", "cluster/jobs") == "arn:aws:ecs:eu-west-1:123456789012:cluster/jobs"
        assert log_group_arn("aws", "eu-west-1", "123456789012", "/ecs/worker") == "arn:aws:logs:eu-west-1:123456789012:log-group:/ecs/worker"
        assert log_group_arn("aws-cn", "cn-north-1", "123456789012", "/ecs/worker") == "arn:aws-cn:logs:cn-north-1:123456789012:log-group:/ecs/worker"


if __name__ == "__main__":
    unittest.main()

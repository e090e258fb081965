"""
This module was automatically generated from ecs_runner.asynchrone.sts
"""
from ecs_runner._async_tools import _run_async, _async_iter_to_sync, _with_clients_async, _iter_with_clients_async
from typing import Iterable, Iterator
from ecs_runner.asynchrone.sts import BaseModel, Field, extract_partition_from_arn, CallerIdentity, get_caller_identity_async


def get_caller_identity(profile: str | None = None, region: str | None = None) -> CallerIdentity:
    """
    Returns the account and ARN of the credentials in use
    """
    return _run_async(_with_clients_async(get_caller_identity_async, profile=profile, region=region))

"""Build policy requeue for insertion pull requests.

Policy evaluations appear on a new pull request asynchronously, so the
lookup is retried until a wall-clock timeout elapses. There is no sleep
between attempts; each fetch is the only pacing.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from component_insertion.errors import PolicyNotFoundError
from component_insertion.types import PolicyEvaluation, PullRequestRef

if TYPE_CHECKING:
    from component_insertion.azdo.client import BuildClient

logger = logging.getLogger(__name__)

DEFAULT_REQUEUE_TIMEOUT = 30.0

BUILD_POLICY_TYPE = "Build"


def matches_build_policy(evaluation: PolicyEvaluation, policy_name: str) -> bool:
    """Return True if the evaluation is the named build policy (case-insensitive)."""
    if evaluation.type_display_name.casefold() != BUILD_POLICY_TYPE.casefold():
        return False
    if evaluation.display_name is None:
        return False
    return evaluation.display_name.casefold() == policy_name.casefold()


def queue_build_policy(
    client: BuildClient,
    pull_request: PullRequestRef,
    policy_name: str,
    timeout: float = DEFAULT_REQUEUE_TIMEOUT,
    clock: Callable[[], float] = time.monotonic,
) -> PolicyEvaluation:
    """Requeue the named build policy on a pull request.

    Args:
        client: Build service client.
        pull_request: Pull request the policy is evaluated on.
        policy_name: Display name of the build policy.
        timeout: Seconds to keep looking for the policy.
        clock: Monotonic clock, replaceable for testing.

    Returns:
        The requeued evaluation.

    Raises:
        PolicyNotFoundError: If the policy is not found before the timeout.
    """
    start = clock()
    while True:
        evaluations = client.get_policy_evaluations(
            pull_request.project_id, pull_request.artifact_id
        )
        evaluation = next(
            (e for e in evaluations if matches_build_policy(e, policy_name)), None
        )
        if evaluation is not None:
            client.requeue_policy_evaluation(
                pull_request.project_id, evaluation.evaluation_id
            )
            logger.info(
                "Started '%s' build policy on %s", policy_name, pull_request.description
            )
            return evaluation

        if clock() - start > timeout:
            raise PolicyNotFoundError(
                policy_name,
                pull_request.description or f"pull request {pull_request.pull_request_id}",
            )


def try_queue_build_policy(
    client: BuildClient,
    pull_request: PullRequestRef,
    policy_name: str,
    insertion_branch_name: str,
    timeout: float = DEFAULT_REQUEUE_TIMEOUT,
) -> bool:
    """Requeue a build policy, logging instead of raising on failure.

    Returns:
        True if the policy was requeued.
    """
    try:
        queue_build_policy(client, pull_request, policy_name, timeout=timeout)
        return True
    except Exception as e:
        logger.warning(
            "Unable to start %s for '%s': %s", policy_name, insertion_branch_name, e
        )
        return False


__all__ = [
    "BUILD_POLICY_TYPE",
    "DEFAULT_REQUEUE_TIMEOUT",
    "matches_build_policy",
    "queue_build_policy",
    "try_queue_build_policy",
]

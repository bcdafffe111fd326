"""Id grammar shared by workflows, teams and runs.

Ids are lowercase kebab strings: a leading ``[a-z0-9]`` followed by up to N
characters of ``[a-z0-9-]``. Workflow and team ids allow 63 characters in
total, run ids 81 so that timestamp-suffixed run ids fit.
"""

from __future__ import annotations

import re

from ..errors import InvalidIdError

WORKFLOW_ID_MAX_LENGTH = 63
RUN_ID_MAX_LENGTH = 81

_WORKFLOW_ID_RE = re.compile(r"^[a-z0-9][a-z0-9-]{0,62}$")
_RUN_ID_RE = re.compile(r"^[a-z0-9][a-z0-9-]{0,80}$")


def _validate(value: object, pattern: re.Pattern[str], kind: str, max_length: int) -> str:
    candidate = "" if value is None else str(value).strip()
    if not candidate:
        raise InvalidIdError(f"{kind} id is required")
    if not pattern.match(candidate):
        raise InvalidIdError(
            f"Invalid {kind} id {candidate!r}. Use lowercase letters, numbers, and dashes "
            f"(max {max_length} chars), e.g. marketing-cadence-v1"
        )
    return candidate


def validate_workflow_id(value: object) -> str:
    """Return the trimmed workflow id or raise InvalidIdError."""
    return _validate(value, _WORKFLOW_ID_RE, "workflow", WORKFLOW_ID_MAX_LENGTH)


def validate_team_id(value: object) -> str:
    return _validate(value, _WORKFLOW_ID_RE, "team", WORKFLOW_ID_MAX_LENGTH)


def validate_run_id(value: object) -> str:
    return _validate(value, _RUN_ID_RE, "run", RUN_ID_MAX_LENGTH)

"""Admission seam between the indexing node and the allowlist gate.

The node calls admit() before each gated action:

    DEPLOY  - accepting a subgraph deployment
    START   - starting / resuming indexing of a deployment
    QUERY   - serving a query against a deployment

Each call gets a ULID operation_id, logs its decision (denials at WARNING,
permits at DEBUG) and, on deny, raises AdmissionDenied carrying the
GateDecision so the caller can surface it.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from subgraph_gate.allowlist.gate import AllowlistGate
from subgraph_gate.allowlist.models import GateDecision
from subgraph_gate.utils.logger import get_logger, reset_operation_id, set_operation_id
from subgraph_gate.utils.ulid import generate_ulid

logger = get_logger(__name__)


class GatedOperation(str, Enum):
    DEPLOY = "deploy"
    START = "start"
    QUERY = "query"


class AdmissionDenied(Exception):
    """Raised by admit() when the gate denies an operation."""

    def __init__(
        self,
        operation: GatedOperation,
        decision: GateDecision,
        operation_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Subgraph {decision.raw_identifier!r} is not on the allowlist "
            f"({operation.value} denied: {decision.reason})"
        )
        self.operation = operation
        self.decision = decision
        self.operation_id = operation_id


def admit(
    gate: AllowlistGate,
    operation: GatedOperation,
    identifier: object,
    *,
    operation_id: Optional[str] = None,
) -> GateDecision:
    """Check identifier for operation and log the decision.

    Returns the PERMIT decision.

    Raises:
        AdmissionDenied: the gate denied the identifier.
    """
    operation_id = operation_id or generate_ulid()
    token = set_operation_id(operation_id)
    try:
        decision = gate.check(identifier)
        if decision.permitted:
            logger.debug("Subgraph admitted", operation=operation.value, **decision.to_dict())
            return decision

        logger.warning("Subgraph denied by allowlist", operation=operation.value, **decision.to_dict())
        raise AdmissionDenied(operation, decision, operation_id=operation_id)
    finally:
        reset_operation_id(token)


def is_admitted(gate: AllowlistGate, operation: GatedOperation, identifier: object) -> bool:
    """Non-raising variant of admit()."""
    try:
        admit(gate, operation, identifier)
    except AdmissionDenied:
        return False
    return True

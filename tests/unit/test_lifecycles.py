"""Lifecycle workflows: only the documented edges exist."""

import pytest

from commodity_kernel.domain.lifecycles import (
    BATCH_WORKFLOW,
    CONTRACT_WORKFLOW,
    PROCESSING_ORDER_WORKFLOW,
    BatchStatus,
    ContractStatus,
    ProcessingOrderStatus,
    is_frozen_batch,
    require_transition,
)
from commodity_kernel.domain.workflow import Transition, Workflow
from commodity_kernel.exceptions import InvalidStateTransition

CONTRACT_EDGES = {
    ("DRAFT", "SUBMITTED"),
    ("SUBMITTED", "ACTIVE"),
    ("ACTIVE", "COMPLETED"),
    ("DRAFT", "CANCELLED"),
    ("SUBMITTED", "CANCELLED"),
}

ORDER_EDGES = {
    ("PLANNED", "IN_PROGRESS"),
    ("IN_PROGRESS", "COMPLETED"),
    ("PLANNED", "CANCELLED"),
    ("IN_PROGRESS", "CANCELLED"),
}


class TestContractWorkflow:

    @pytest.mark.parametrize("current", list(ContractStatus))
    @pytest.mark.parametrize("target", list(ContractStatus))
    def test_only_documented_edges(self, current, target):
        expected = (current.value, target.value) in CONTRACT_EDGES
        assert CONTRACT_WORKFLOW.can_transition(current.value, target.value) is expected

    def test_terminal_states(self):
        assert CONTRACT_WORKFLOW.is_terminal("COMPLETED")
        assert CONTRACT_WORKFLOW.is_terminal("CANCELLED")
        assert not CONTRACT_WORKFLOW.is_terminal("ACTIVE")


class TestProcessingOrderWorkflow:

    @pytest.mark.parametrize("current", list(ProcessingOrderStatus))
    @pytest.mark.parametrize("target", list(ProcessingOrderStatus))
    def test_only_documented_edges(self, current, target):
        expected = (current.value, target.value) in ORDER_EDGES
        assert PROCESSING_ORDER_WORKFLOW.can_transition(current.value, target.value) is expected


class TestBatchWorkflow:

    def test_sign_off_only_from_received(self):
        assert BATCH_WORKFLOW.targets_from("RECEIVED") == ("APPROVED", "REJECTED")

    @pytest.mark.parametrize("state", ["REJECTED", "CONSUMED", "TRANSFERRED"])
    def test_terminal_states_have_no_exits(self, state):
        assert BATCH_WORKFLOW.is_terminal(state)
        assert BATCH_WORKFLOW.targets_from(state) == ()


class TestRequireTransition:

    def test_returns_edge(self):
        t = require_transition(
            CONTRACT_WORKFLOW, "PurchaseContract", "c1", ContractStatus.DRAFT, ContractStatus.SUBMITTED
        )
        assert t.action == "submit"

    def test_raises_with_context(self):
        with pytest.raises(InvalidStateTransition) as exc_info:
            require_transition(
                CONTRACT_WORKFLOW, "PurchaseContract", "c1", ContractStatus.ACTIVE, ContractStatus.DRAFT
            )
        err = exc_info.value
        assert err.entity_id == "c1"
        assert err.current_status == "ACTIVE"
        assert err.target_status == "DRAFT"
        assert err.code == "INVALID_STATE_TRANSITION"


class TestFrozenBatch:

    @pytest.mark.parametrize(
        "status, weight, frozen",
        [
            (BatchStatus.CONSUMED, 0, True),
            (BatchStatus.TRANSFERRED, 0, True),
            (BatchStatus.APPROVED, 0, False),
            (BatchStatus.IN_PROCESS, 0, False),
            ("TRANSFERRED", 0, True),
        ],
    )
    def test_frozen(self, status, weight, frozen):
        assert is_frozen_batch(status, weight) is frozen


class TestWorkflowValidation:

    def test_terminal_state_with_exit_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="bad",
                description="",
                initial_state="A",
                states=("A", "B"),
                transitions=(Transition("B", "A", "undo"),),
                terminal_states=("B",),
            )

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="bad",
                description="",
                initial_state="A",
                states=("A",),
                transitions=(Transition("A", "Z", "go"),),
            )

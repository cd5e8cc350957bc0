"""Execution modules: saga coordinator, balance checks, serialization and journals."""

from triarb.execution.balance import BalanceCheck, BalanceValidator
from triarb.execution.coordinator import (
    CoordinatorConfig,
    ExecutionCoordinator,
    ExecutionOptions,
    generate_execution_id,
)
from triarb.execution.guard import AccountExecutionGuard
from triarb.execution.journal import JsonLinesJournal, MemoryJournal
from triarb.execution.state import ExecutionStateMachine


__all__ = [
    "AccountExecutionGuard",
    "BalanceCheck",
    "BalanceValidator",
    "CoordinatorConfig",
    "ExecutionCoordinator",
    "ExecutionOptions",
    "ExecutionStateMachine",
    "JsonLinesJournal",
    "MemoryJournal",
    "generate_execution_id",
]

"""
Transaction flow construction and execution.
"""

from .models import (
    FlowRequest,
    FlowResult,
    InvalidStepTransition,
    PreparedCall,
    Receipt,
    StepError,
    StepKind,
    StepStatus,
    TransactionFlow,
    TransactionStep,
)
from .orchestrator import STEP_ESTIMATED_SECONDS, TransactionOrchestrator
from .tx_builder import CallBuilder, function_selector

__all__ = [
    # Models
    "FlowRequest",
    "FlowResult",
    "InvalidStepTransition",
    "PreparedCall",
    "Receipt",
    "StepError",
    "StepKind",
    "StepStatus",
    "TransactionFlow",
    "TransactionStep",
    # Orchestration
    "STEP_ESTIMATED_SECONDS",
    "TransactionOrchestrator",
    # Calls
    "CallBuilder",
    "function_selector",
]

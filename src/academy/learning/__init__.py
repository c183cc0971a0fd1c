"""Learner engine: navigation, completion gating, progress sync and credential issuance."""

from academy.learning.gate import CompletionGate, GateOutcome, GateResult, GateState
from academy.learning.identity import IdentityLinkService, IdentityStatus, VerifiedIdentity
from academy.learning.issuance import (
    CredentialIssuanceCoordinator,
    CredentialLedger,
    EligibilitySource,
    Minter,
    MintReceipt,
    MintRequest,
    MintState,
)
from academy.learning.modules import ModuleStatus, module_statuses
from academy.learning.navigator import AdvanceOutcome, SectionNavigator
from academy.learning.progress import InMemoryProgressStore, ProgressStore, ProgressSync, SyncResult
from academy.learning.session import CompletionUpdate, LearningSession

__all__ = [
    "AdvanceOutcome",
    "CompletionGate",
    "CompletionUpdate",
    "CredentialIssuanceCoordinator",
    "CredentialLedger",
    "EligibilitySource",
    "GateOutcome",
    "GateResult",
    "GateState",
    "IdentityLinkService",
    "IdentityStatus",
    "InMemoryProgressStore",
    "LearningSession",
    "MintReceipt",
    "MintRequest",
    "MintState",
    "Minter",
    "ModuleStatus",
    "ProgressStore",
    "ProgressSync",
    "SectionNavigator",
    "SyncResult",
    "VerifiedIdentity",
    "module_statuses",
]

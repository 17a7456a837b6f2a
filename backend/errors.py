"""
Error taxonomy for AgentChain.

    ExecutorFailure        — the agent call failed; recovered into an error marker.
    PreconditionViolation  — an operation was called in a state that forbids it.
    PersistenceFailure     — reading or appending conversation messages failed.
    ConversationNotFound   — a persisted conversation id does not exist.
"""


class AgentChainError(Exception):
    """Base class for all AgentChain errors."""


class ExecutorFailure(AgentChainError):
    """Raised when the agent executor cannot produce an output."""


class PreconditionViolation(AgentChainError):
    """Raised synchronously, before any state is mutated."""


class PersistenceFailure(AgentChainError):
    """Raised when the conversation store fails to read or write."""


class ConversationNotFound(AgentChainError, LookupError):
    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation '{conversation_id}' not found.")
        self.conversation_id = conversation_id

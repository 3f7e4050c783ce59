"""Exception hierarchy for the orchestration core.

Tool failures never appear here: tools report them as error results.
"""


class LifeAgentError(Exception):
    """Base class for all agent errors"""


class OrchestrationError(LifeAgentError):
    """Fatal failure that aborts the current turn"""


class LLMUnavailableError(OrchestrationError):
    """The LLM provider could not be reached or failed to answer"""


class NoUsableReplyError(OrchestrationError):
    """The agent loop finished without producing a reply"""


class DecisionDecodeError(LifeAgentError, ValueError):
    """An LLM decision could not be decoded; the turn continues with a warning"""


class PlanValidationError(LifeAgentError, ValueError):
    """An execution plan is malformed and cannot be executed"""


class PlanGenerationError(LifeAgentError):
    """The planner could not produce an execution plan"""

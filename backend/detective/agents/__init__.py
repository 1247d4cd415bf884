"""Detective assistant: prompts, function execution and chat agents."""

from detective.agents.report_agent import ReportAgent, get_agent, remove_agent
from detective.agents.report_tools import (
    NO_MATCHING_FUNCTION,
    SAVE_FAILED_MESSAGE,
    ReportToolHandler,
)

__all__ = [
    "ReportAgent",
    "ReportToolHandler",
    "get_agent",
    "remove_agent",
    "NO_MATCHING_FUNCTION",
    "SAVE_FAILED_MESSAGE",
]

"""AI Agents package."""

from finbot.agents.ai_agents import (
    AdviceRequest,
    AdvisorAgent,
    AiResponseError,
    CategorySuggestion,
    EntryAgent,
    GoalSuggestion,
    Insight,
    ReceiptGuess,
    VoiceEntryGuess,
    extract_json,
)
from finbot.agents.tasks import (
    AiTask,
    CancellationToken,
    Err,
    Ok,
    run_ai_task,
)

__all__ = [
    "AdviceRequest",
    "AdvisorAgent",
    "AiResponseError",
    "CategorySuggestion",
    "EntryAgent",
    "GoalSuggestion",
    "Insight",
    "ReceiptGuess",
    "VoiceEntryGuess",
    "extract_json",
    "AiTask",
    "CancellationToken",
    "Err",
    "Ok",
    "run_ai_task",
]

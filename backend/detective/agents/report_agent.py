import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from google import genai
from google.genai import types

from detective.agents.prompts import INITIAL_GREETING, REPORT_TOOLS, SYSTEM_PROMPT
from detective.agents.report_tools import ReportToolHandler
from detective.config import settings
from detective.services.session_store import SessionStore, get_session_store

logger = logging.getLogger(__name__)


def _is_rate_limit_error(error: Exception) -> bool:
    text = str(error)
    return "429" in text or "RESOURCE_EXHAUSTED" in text


class ReportAgent:
    """
    Conversational detective for one conversation.

    Sends the reporter's messages to Gemini with the report functions
    declared, runs every function call the model makes through the
    ``ReportToolHandler`` and returns the model's final text reply. The chat
    history is kept in the session store so a restarted process resumes the
    conversation.
    """
    MAX_TOOL_ROUNDS = 5
    MAX_MESSAGE_CHARS = 10_000

    def __init__(
        self,
        conversation_id: str,
        tools: Optional[ReportToolHandler] = None,
        store: Optional[SessionStore] = None,
        client: Optional[Any] = None,
    ):
        self.conversation_id = conversation_id
        self.store = store or get_session_store()
        self.tools = tools or ReportToolHandler(conversation_id, store=self.store)
        self.client = client
        self.chat = None
        if self.client is None:
            self._initialize_model()

    def _log_structured(self, event: str, **kwargs):
        """Emit structured log entry."""
        entry = {"event": event, "conversation_id": self.conversation_id, **kwargs}
        logger.info(json.dumps(entry, default=str))

    def _initialize_model(self):
        try:
            if settings.google_api_key:
                self.client = genai.Client(api_key=settings.google_api_key)
                self._log_structured("agent_initialized")
            else:
                logger.warning("GOOGLE_API_KEY not set, agent not initialized")
        except Exception as e:
            logger.error(f"Failed to initialize report agent: {e}")
            self.client = None

    def _chat_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=SYSTEM_PROMPT,
            temperature=0.4,
            tools=[REPORT_TOOLS],
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )

    async def _ensure_chat(self):
        if self.chat is not None:
            return
        history = []
        for item in await self.store.get_history(self.conversation_id):
            try:
                history.append(types.Content.model_validate(item))
            except ValueError:
                logger.warning(f"Skipping unreadable history entry in {self.conversation_id}")
        self.chat = self.client.chats.create(
            model=settings.gemini_model,
            config=self._chat_config(),
            history=history,
        )
        self._log_structured("chat_initialized", model=settings.gemini_model, history_turns=len(history))

    async def _save_history(self):
        history = [
            content.model_dump(mode="json", exclude_none=True)
            for content in self.chat.get_history()
        ]
        await self.store.set_history(self.conversation_id, history)

    def greeting(self) -> str:
        return INITIAL_GREETING

    async def process_message(self, text: str) -> Tuple[str, List[Dict[str, Any]]]:
        """
        Handle one reporter message.

        Returns:
            Tuple of (assistant reply, function call results of this turn)
        """
        if not self.client:
            return "I'm sorry, I'm having technical difficulties. Please try again later.", []

        text = text.strip()[:self.MAX_MESSAGE_CHARS]
        reporter_line = f"Reporter: {text}"
        self.tools.queue_log(reporter_line)
        function_results: List[Dict[str, Any]] = []

        try:
            await self._ensure_chat()
            response = await asyncio.to_thread(self.chat.send_message, text)

            for round_number in range(self.MAX_TOOL_ROUNDS):
                calls = response.function_calls or []
                if not calls:
                    break
                parts = []
                for call in calls:
                    result = await self.tools.dispatch(call.name, dict(call.args or {}))
                    function_results.append({"name": call.name, "result": result})
                    parts.append(types.Part.from_function_response(name=call.name, response=result))
                    self._log_structured(
                        "function_called", name=call.name, success=result.get("success"), round=round_number
                    )
                response = await asyncio.to_thread(self.chat.send_message, parts)
            else:
                logger.warning(f"Function call limit reached in conversation {self.conversation_id}")

            reply = (response.text or "").strip() or "Could you tell me more about what happened?"
        except Exception as e:
            # Unanswered statements stay out of the conversation log
            self.tools.withdraw_log(reporter_line)
            if _is_rate_limit_error(e):
                self._log_structured("error_rate_limited", error=str(e)[:200])
                return ("I'm experiencing high demand right now. Could you please repeat that in a moment? "
                        "Your report is important."), function_results
            if "400" in str(e) or "INVALID_ARGUMENT" in str(e):
                self._log_structured("error_invalid_request", error=str(e)[:200])
                return "I had trouble processing that. Could you rephrase?", function_results
            self._log_structured("error_unexpected", error=str(e)[:200])
            logger.error(f"Unexpected error processing message: {e}", exc_info=True)
            raise

        self.tools.queue_log(f"Detective: {reply}")
        await self._save_history()
        self._log_structured("message_processed", function_calls=len(function_results), reply_chars=len(reply))
        return reply, function_results


# Agent instance cache, with the last time each agent was handed out
_agent_cache: Dict[str, ReportAgent] = {}
_last_used: Dict[str, float] = {}


def get_agent(conversation_id: str) -> ReportAgent:
    """Get or create an agent for a conversation."""
    if conversation_id not in _agent_cache:
        _agent_cache[conversation_id] = ReportAgent(conversation_id)
    _last_used[conversation_id] = time.monotonic()
    return _agent_cache[conversation_id]


def has_agent(conversation_id: str) -> bool:
    return conversation_id in _agent_cache


def remove_agent(conversation_id: str):
    """Remove an agent from the cache."""
    _agent_cache.pop(conversation_id, None)
    _last_used.pop(conversation_id, None)


def evict_idle_agents(max_idle_seconds: float, now: Optional[float] = None) -> int:
    """
    Drop agents not used for ``max_idle_seconds``.

    Chat history and the record id live in the session store, so an evicted
    conversation is rebuilt on its next message. Updates still pending are lost.
    """
    now = time.monotonic() if now is None else now
    idle = [cid for cid, used in _last_used.items() if now - used >= max_idle_seconds]
    for conversation_id in idle:
        agent = _agent_cache.get(conversation_id)
        if agent is not None and agent.tools.pending_updates:
            logger.warning(
                f"Evicting idle conversation {conversation_id} with "
                f"{len(agent.tools.pending_updates)} unsaved update(s)"
            )
        remove_agent(conversation_id)
    if idle:
        logger.info(f"Evicted {len(idle)} idle agent(s)")
    return len(idle)

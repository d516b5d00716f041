"""
CareNav Chat Orchestrator - One assistant conversation.

Turn lifecycle:
    Idle -> Sent -> Classified -> {Direct, Blocked, Streaming} -> Finalized -> Idle

send_message():
1. Sanitize the input
2. Rate-limit (the throttling notice is posted as an assistant reply)
3. Append the user message, reset the idle timer, cancel any prior request
4. Classify; direct and blocked replies are posted after a short typing delay
5. Navigation requests matching several screens, or none, get a local list
   instead of a model call
6. Otherwise an empty streaming placeholder is appended and the model is
   called with trimmed history, an intent-specific system prompt and, for
   nav/theme, the tools schema
7. Failed attempts are retried with exponential backoff, never after a stop
8. The placeholder is always finalized: text, tool confirmation, "stopped"
   notice, empty-answer fallback or apology

Nothing raised inside the orchestrator reaches the caller; every failure ends
as a transcript message.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from config import RuntimeConfig, runtime_config
from errors import ExternalServiceError, LLMError
from logging_config import log_llm, log_message_in, log_message_out
from middleware.rate_limit import RateLimiter, SessionTimer
from routers.chat_prompts import (
    build_system_prompt,
    clean_response_for_display,
    estimate_tokens,
    finalize_text,
    get_message,
    sanitize_input,
    truncate_for_history,
)
from services.llm_client import LLMClient
from tools.navigation import NavigationTool
from tools.registry import NAV, THEME, ToolRegistry, ToolRunOutcome
from tools.theme import ThemeTool

from .handlers import Classifier, ClassifyResult, Intent, ResultType, detect_language, normalize
from .handlers.patterns import NAV_FILLER_WORDS
from .route_catalog import RouteCatalog
from .session import ChatMessage, Role, Transcript
from .stream_processor import StreamProcessor, StreamResult

logger = logging.getLogger(__name__)

# Token reserve for the tools schema and framing overhead
TOOL_BUDGET_TOKENS = 300
BUFFER_TOKENS = 100

MAX_DISAMBIGUATION_OPTIONS = 5

_DEFAULT_NAME = {"vi": "bạn", "en": "there"}

StateListener = Callable[[Dict[str, Any]], None]


class ChatOrchestrator:
    """
    Owns the transcript, classifier, route cache, limiter and tools of one
    assistant widget. Build with create(), tear down with dispose().

    Usage:
        orchestrator = ChatOrchestrator.create(auth, theme, router)
        unsubscribe = orchestrator.subscribe(lambda state: push(state))
        await orchestrator.toggle_chat()
        await orchestrator.send_message("mở báo cáo giường")
        await orchestrator.dispose()
    """

    def __init__(
        self,
        auth: Any,
        theme: Any,
        router: Any,
        route_table: Optional[Sequence[Dict[str, Any]]] = None,
        config: Optional[RuntimeConfig] = None,
        llm_client: Optional[LLMClient] = None,
        classifier: Optional[Classifier] = None,
    ):
        self.config = config or runtime_config
        self._auth = auth
        self._router = router
        self._hotline = self.config.hotline

        self._owns_llm = llm_client is None
        self._llm = llm_client or LLMClient(self.config)

        self.catalog = RouteCatalog(
            route_table if route_table is not None else router.config,
            auth,
            ttl_s=self.config.route_cache_ttl_s,
        )
        self.classifier = classifier or Classifier(self.config, hotline=self._hotline)
        self.rate_limiter = RateLimiter(
            max_messages=self.config.rate_limit_max_messages,
            window_s=self.config.rate_limit_window_s,
            cooldown_s=self.config.rate_limit_cooldown_s,
        )
        self.session_timer = SessionTimer(self.config.session_timeout_s, self._on_session_expired)

        self.navigation = NavigationTool(
            router, self.catalog, debounce_s=self.config.nav_debounce_s, settle_s=self.config.nav_settle_s
        )
        self.theme_tool = ThemeTool(theme, cooldown_s=self.config.theme_cooldown_s)
        self.tools = ToolRegistry(self.config)
        self.tools.register(self.navigation.definition())
        self.tools.register(self.theme_tool.definition())

        self.transcript = Transcript()
        self._listeners: List[StateListener] = []
        self._is_open = False
        self._is_offline = False
        self._generating = False
        self._busy = False
        self._disposed = False
        self._context_usage = 0
        self._stream_task: Optional[asyncio.Task] = None
        self._processor: Optional[StreamProcessor] = None

        self._unsubscribe_transcript = self.transcript.subscribe(lambda _messages: self._notify())
        self._unsubscribe_auth = auth.subscribe(self._on_auth_event)

    @classmethod
    def create(
        cls,
        auth: Any,
        theme: Any,
        router: Any,
        route_table: Optional[Sequence[Dict[str, Any]]] = None,
        config: Optional[RuntimeConfig] = None,
        llm_client: Optional[LLMClient] = None,
    ) -> "ChatOrchestrator":
        orchestrator = cls(auth, theme, router, route_table=route_table, config=config, llm_client=llm_client)
        logger.info("Assistant orchestrator created")
        return orchestrator

    async def dispose(self) -> None:
        """Unsubscribe from collaborators and cancel all pending work."""
        if self._disposed:
            return
        self._disposed = True
        self._unsubscribe_auth()
        self._unsubscribe_transcript()
        self._listeners.clear()
        self.session_timer.clear()
        self.navigation.cancel()
        task = self._cancel_stream()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        if self._owns_llm:
            await self._llm.aclose()
        logger.info("Assistant orchestrator disposed")

    # -------------------------------------------------------------------------
    # Observable state
    # -------------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def is_generating(self) -> bool:
        return self._generating

    @property
    def is_busy(self) -> bool:
        """True while a send is being processed (including typing delays)."""
        return self._busy

    @property
    def is_navigating(self) -> bool:
        return self.navigation.is_navigating

    @property
    def is_offline(self) -> bool:
        return self._is_offline

    @property
    def messages(self):
        return self.transcript.snapshot()

    @property
    def hotline(self) -> str:
        return self._hotline

    @property
    def context_usage(self) -> int:
        """Share of the context window used by the last request, in percent."""
        return self._context_usage

    def state(self) -> Dict[str, Any]:
        return {
            "messages": [m.to_dict() for m in self.transcript.snapshot()],
            "is_open": self._is_open,
            "is_generating": self._generating,
            "is_navigating": self.navigation.is_navigating,
            "is_offline": self._is_offline,
            "hotline": self._hotline,
            "context_usage": self._context_usage,
        }

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state observer. Returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        state = self.state()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    # -------------------------------------------------------------------------
    # Collaborator events
    # -------------------------------------------------------------------------

    def _on_auth_event(self, event: str) -> None:
        if event == "logout":
            logger.info("Logout: clearing assistant state")
            self._cancel_stream()
            self.session_timer.clear()
            self.navigation.cancel()
            self.catalog.invalidate()
            self.rate_limiter.reset()
            self._is_open = False
            self._generating = False
            self.transcript.clear()
        elif event == "login":
            self.catalog.invalidate()
            self._notify()

    def _on_session_expired(self) -> None:
        logger.info("Session expired, resetting chat")
        self.reset_chat()
        self._is_open = False
        self._notify()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def load(self) -> None:
        """Refresh hotline and offline flag from the health endpoint, then greet."""
        try:
            body = await self._llm.check_health(self._auth.get_access_token())
        except ExternalServiceError as e:
            logger.warning(f"Assistant backend offline: {e}")
            self._is_offline = True
        else:
            status = str(body.get("status", "ok")).lower()
            self._is_offline = status not in ("ok", "healthy", "up")
            hotline = (body.get("config") or {}).get("hotline")
            if hotline:
                self._set_hotline(str(hotline))

        if not len(self.transcript):
            if self._is_offline:
                self.transcript.append(
                    ChatMessage(Role.ASSISTANT, get_message("offline", hotline=self._hotline), is_error=True)
                )
            else:
                self.transcript.append(self._greeting())
        else:
            self._notify()

    async def toggle_chat(self) -> bool:
        """Open or close the widget. Returns the new open state."""
        self._is_open = not self._is_open
        logger.debug(f"Assistant {'opened' if self._is_open else 'closed'}")
        if self._is_open:
            self.session_timer.reset()
        else:
            self.session_timer.clear()
        if self._is_open and not len(self.transcript):
            await self.load()
        else:
            self._notify()
        return self._is_open

    def stop_generation(self) -> bool:
        """Abort the in-flight model request. Returns True if one was running."""
        task = self._cancel_stream()
        if task is not None:
            logger.info("Generation stopped by user")
        return task is not None

    def reset_chat(self) -> None:
        """Drop the conversation and start over with a greeting."""
        self._cancel_stream()
        self.session_timer.clear()
        self.rate_limiter.reset()
        self._generating = False
        self.transcript.clear()
        self.transcript.append(self._greeting())

    async def send_message(self, text: str) -> bool:
        """
        Process one user message.

        Returns:
            False when nothing was accepted (empty input, rate limited, a
            previous message still in flight, or disposed), True otherwise
        """
        if self._disposed:
            return False
        if self._busy:
            logger.info("Send rejected: previous message still in flight")
            return False

        clean = sanitize_input(text, self.config.max_input_length)
        if not clean:
            return False

        self._busy = True
        try:
            language = detect_language(clean)
            decision = self.rate_limiter.check(language)
            if not decision.allowed:
                self.transcript.append(ChatMessage(Role.ASSISTANT, decision.message or ""))
                log_message_out(logger, "rate_limited", chars=len(decision.message or ""))
                return False

            log_message_in(logger, clean, language=language)
            self.transcript.append(ChatMessage(Role.USER, clean))
            self.session_timer.reset()
            self._cancel_stream()

            self.classifier.extend_vocabulary(Intent.NAV, self.catalog.vocabulary())
            result = self.classifier.classify(clean)

            if result.tool_call is not None:
                await self._run_local_tool(result)
            elif result.type != ResultType.LLM:
                await self._reply_direct(result)
            else:
                local = self._navigation_reply(clean, result) if result.intent == Intent.NAV else None
                if local:
                    kind, reply = local
                    await self._reply_text(reply, result.language, kind)
                else:
                    self._stream_task = asyncio.create_task(self._stream_reply(clean, result))
                    try:
                        # A task stopped before its first step ends cancelled, not raised
                        (outcome,) = await asyncio.gather(self._stream_task, return_exceptions=True)
                    finally:
                        self._stream_task = None
                    if isinstance(outcome, Exception):
                        logger.error(f"Assistant turn failed: {outcome}", exc_info=outcome)
            return True
        finally:
            self._busy = False

    # -------------------------------------------------------------------------
    # Local replies
    # -------------------------------------------------------------------------

    def _set_hotline(self, hotline: str) -> None:
        if hotline != self._hotline:
            logger.info(f"Hotline updated: {hotline}")
        self._hotline = hotline
        self.classifier.hotline = hotline

    def _greeting(self, language: str = "vi") -> ChatMessage:
        user = self._auth.current_user() if self._auth.is_logged_in() else None
        name = user.full_name if user and user.full_name else _DEFAULT_NAME.get(language, "")
        return ChatMessage(Role.ASSISTANT, get_message("greeting", language, name=name))

    async def _typing_delay(self, text: str) -> None:
        cfg = self.config
        delay_ms = min(max(len(text) * cfg.typing_delay_per_char_ms, cfg.typing_delay_min_ms), cfg.typing_delay_max_ms)
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000.0)

    async def _reply_text(self, text: str, language: str, kind: str, is_error: bool = False) -> ChatMessage:
        await self._typing_delay(text)
        message = self.transcript.append(ChatMessage(Role.ASSISTANT, text, is_error=is_error))
        log_message_out(logger, kind, chars=len(text))
        return message

    async def _reply_direct(self, result: ClassifyResult) -> None:
        text = result.response or get_message("fallback_empty", result.language, hotline=self._hotline)
        await self._reply_text(text, result.language, result.type.value)

    async def _run_local_tool(self, result: ClassifyResult) -> None:
        """Execute a tool call decided by the classifier (no model call)."""
        outcome = await self.tools.run([result.tool_call], result.language, self._hotline)
        text = finalize_text(outcome.confirmation) or get_message("tool_failed", result.language, hotline=self._hotline)
        await self._typing_delay(text)
        self.transcript.append(ChatMessage(Role.ASSISTANT, text, is_error=not outcome.success))
        self._append_tool_messages(outcome)
        log_message_out(logger, "direct", tools_used=outcome.tools_used, chars=len(text))

    def _navigation_reply(self, text: str, result: ClassifyResult) -> Optional[Tuple[str, str]]:
        """
        Local answer for a navigation request that should not reach the model.

        Several matching screens give a numbered list to choose from; no
        matching screen gives the list of screens the user can open. A single
        match returns None and the model picks the tool call.
        """
        command = result.extracted_command or ""
        words = [w for w in normalize(command).split(" ") if w and w not in NAV_FILLER_WORDS]
        if not words:
            return None
        matches = self.catalog.find_matches(" ".join(words))
        if len(matches) == 1:
            return None

        if not matches:
            query = " ".join(w for w in text.split() if not set(normalize(w).split()) <= NAV_FILLER_WORDS)
            logger.info(f"Navigation request matches no screen: {query!r}")
            routes = self.catalog.get_routes()[:MAX_DISAMBIGUATION_OPTIONS]
            available = "\n".join(f"• {route.title}" for route in routes)
            return "nav_not_found", get_message(
                "nav_not_found", result.language, query=query or command, options=available
            )

        logger.info(f"Navigation request matches {len(matches)} screens, asking user to choose")
        options = "\n".join(
            f"{i}. {route.title}" for i, route in enumerate(matches[:MAX_DISAMBIGUATION_OPTIONS], 1)
        )
        return "disambiguation", get_message("disambiguation", result.language, count=len(matches), options=options)

    def _append_tool_messages(self, outcome: ToolRunOutcome) -> None:
        for tool_result in outcome.results:
            self.transcript.append(ChatMessage(Role.TOOL, tool_result.to_message(), tool_name=tool_result.name))

    # -------------------------------------------------------------------------
    # Model request
    # -------------------------------------------------------------------------

    def _cancel_stream(self) -> Optional[asyncio.Task]:
        task = self._stream_task
        if task is not None and not task.done():
            task.cancel()
            return task
        return None

    def build_history(self, current_text: str, system_prompt: str, tools_schema: Optional[List] = None) -> List[Dict[str, str]]:
        """
        Recent conversation turns for the request, oldest first.

        Excludes system, tool, error and empty messages and the message being
        answered. User turns are capped at history_user_chars, assistant turns
        at history_assistant_chars. A leading assistant turn is dropped.
        """
        cfg = self.config
        system_tokens = estimate_tokens(system_prompt)
        tool_tokens = TOOL_BUDGET_TOKENS if tools_schema else 0
        current_tokens = estimate_tokens(current_text)
        available = cfg.num_ctx - system_tokens - tool_tokens - cfg.max_output_tokens - current_tokens - BUFFER_TOKENS

        candidates = [
            m for m in self.transcript.snapshot()
            if m.role in (Role.USER, Role.ASSISTANT) and not m.is_error and not m.is_streaming and m.content.strip()
        ]
        if candidates and candidates[-1].role == Role.USER and candidates[-1].content == current_text:
            candidates = candidates[:-1]

        turns: List[Dict[str, str]] = []
        for m in candidates:
            if m.role == Role.ASSISTANT:
                content = truncate_for_history(clean_response_for_display(m.content), cfg.history_assistant_chars)
            else:
                content = truncate_for_history(m.content, cfg.history_user_chars)
            if content.strip():
                turns.append({"role": m.role.value, "content": content})

        history: List[Dict[str, str]] = []
        used = 0
        for turn in reversed(turns):
            if len(history) >= cfg.max_history_messages:
                break
            tokens = estimate_tokens(turn["content"])
            if used + tokens > available:
                break
            used += tokens
            history.insert(0, turn)

        if history and history[0]["role"] == Role.ASSISTANT.value:
            history.pop(0)

        total = system_tokens + tool_tokens + used + current_tokens
        self._context_usage = min(round(total / cfg.num_ctx * 100), 100) if cfg.num_ctx else 0
        return history

    def _num_predict(self, text: str, with_tools: bool) -> int:
        """Output budget: small for tool turns and short questions."""
        if with_tools:
            return 256
        if len(text) < 30:
            return 128
        if len(text) < 100:
            return 512
        return min(self.config.max_output_tokens, 1024)

    def _on_stream_update(self, message_id: str, text: str) -> None:
        current = self.transcript.get(message_id)
        if current is not None and current.is_streaming:
            self.transcript.update(message_id, content=text)

    async def _attempt(self, payload: Dict[str, Any], processor: StreamProcessor) -> StreamResult:
        token = self._auth.get_access_token() if self._auth.is_logged_in() else None
        async with self._llm.stream_chat(payload, token) as chunks:
            result = await processor.consume(chunks)
        if result.frames == 0 and result.malformed:
            raise LLMError(
                "Model response could not be parsed",
                details=f"{result.malformed} malformed line(s)",
                model=payload.get("model"),
                error_type="parse",
            )
        return result

    async def _request_with_retry(self, payload: Dict[str, Any], placeholder_id: str) -> StreamResult:
        """
        Stream one model response, retrying failed attempts.

        Raises:
            LLMError: All attempts failed
            asyncio.CancelledError: Stopped by the user
        """
        cfg = self.config
        model = payload.get("model", "")
        last_error: Optional[LLMError] = None

        for attempt in range(cfg.max_retries + 1):
            if attempt > 0:
                delay = cfg.retry_delay_s * (2 ** (attempt - 1))
                logger.info(f"Retry {attempt}/{cfg.max_retries} for {model} after {delay:.1f}s")
                await asyncio.sleep(delay)
                self._on_stream_update(placeholder_id, "")

            processor = StreamProcessor(
                on_update=lambda text: self._on_stream_update(placeholder_id, text),
                debounce_ms=cfg.ui_debounce_ms,
                max_output_length=cfg.max_output_length,
            )
            self._processor = processor
            log_llm(logger, "start", model=model, attempt=attempt + 1)
            start_time = time.time()

            try:
                result = await asyncio.wait_for(self._attempt(payload, processor), timeout=cfg.request_timeout_s)
            except asyncio.TimeoutError:
                last_error = LLMError(
                    f"Model response timed out after {cfg.request_timeout_s}s", model=model, error_type="timeout"
                )
                logger.warning(f"LLM attempt {attempt + 1} timed out ({model})")
                continue
            except LLMError as e:
                last_error = e
                logger.warning(f"LLM attempt {attempt + 1} failed: {e.code.value}: {e}")
                if not e.recoverable:
                    raise
                continue

            log_llm(logger, "end", model=model, duration=time.time() - start_time)
            self._is_offline = False
            return result

        raise last_error or LLMError("Model request failed", model=model)

    async def _stream_reply(self, text: str, result: ClassifyResult) -> None:
        """Stream a model answer into a placeholder and always finalize it."""
        language = result.language
        intent = result.intent.value if result.intent else None
        with_tools = intent in (NAV, THEME)
        tools_schema = self.tools.get_tools_schema([intent]) if with_tools else None

        system_prompt = build_system_prompt(intent, self.catalog.get_routes(), self._hotline, language)
        history = self.build_history(text, system_prompt, tools_schema)
        messages = [{"role": "system", "content": system_prompt}, *history, {"role": "user", "content": text}]
        payload = self._llm.build_payload(messages, tools_schema, self._num_predict(text, with_tools))

        placeholder = self.transcript.append(ChatMessage(Role.ASSISTANT, "", is_streaming=True))
        self._generating = True
        self._notify()

        content = ""
        cancelled = False
        error: Optional[LLMError] = None
        outcome: Optional[ToolRunOutcome] = None
        try:
            stream_result = await self._request_with_retry(payload, placeholder.id)
            if stream_result.tool_calls:
                outcome = await self.tools.run(stream_result.tool_calls, language, self._hotline)
                content = outcome.confirmation
            else:
                content = stream_result.text
        except asyncio.CancelledError:
            cancelled = True
            content = self._processor.partial_text() if self._processor else ""
        except LLMError as e:
            error = e
        finally:
            self._processor = None
            self._finalize(placeholder.id, content, language, cancelled, error)
            self._generating = False
            if outcome is not None:
                self._append_tool_messages(outcome)
            self._notify()

    def _finalize(
        self, message_id: str, content: str, language: str, cancelled: bool, error: Optional[LLMError]
    ) -> None:
        is_error = False
        if error is not None:
            text = get_message("apology", language, hotline=self._hotline)
            is_error = True
            logger.error(f"Model request failed after retries: {error.code.value}: {error}")
        else:
            text = finalize_text(content)
            if not text:
                text = (
                    get_message("stopped", language)
                    if cancelled
                    else get_message("fallback_empty", language, hotline=self._hotline)
                )
        self.transcript.update(message_id, content=text, is_streaming=False, is_error=is_error)
        log_message_out(logger, "cancelled" if cancelled else "error" if is_error else "llm", chars=len(text))

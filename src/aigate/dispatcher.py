"""RequestDispatcher: bounded asynchronous execution of gateway operations.

Design:
- A fixed ThreadPoolExecutor plus a BoundedSemaphore of max_workers + queue_capacity
  slots. Saturation policy: block the submitting thread for at most submit_timeout_s,
  then resolve the future with a GatewayBusy failure (0 = reject immediately).
- Every operation returns a concurrent.futures.Future that resolves exactly once and
  never raises: failures become values (AIResponse with error_kind, False, (False, msg)).
- Shared configuration is a frozen GatewayState swapped as a whole under _config_lock.
  A request reads the reference once at dispatch time and keeps that snapshot, so it
  sees either the old or the new ProviderConfig, never a mix.
- Configuration writes are linearized by _config_lock and are all-or-nothing:
  engine configure, then durable store write, then state swap.
- No cancellation reaches AgentCore: a caller may drop the future, the backend call
  still runs to completion. request_timeout_s only stops waiting for it; the slot
  stays held until the backend call returns, so the bound covers abandoned calls too.
- A request is validated before the policy check: a malformed request resolves as
  `validation` even when the policy would also reject it.
- A failed provider commit undoes the engine registration (unconfigure, then
  re-register what the engine had before). A failing rollback is logged and never
  hides the original error.

Per request: created -> policy_checked{allowed|rejected} -> dispatched ->
{succeeded|backend_failed} -> response_policy_checked{allowed|rejected} -> delivered
"""
from __future__ import annotations

import itertools
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional, Tuple

from .agent_core import AgentCore
from .config_store import ConfigStore, load_provider, save_policy, save_provider
from .errors import BackendFailure, GatewayBusy, GatewayError, IndexingFailure, NotConfigured
from .logging_util import get_logger, log_step, sanitize_api_key
from .policy import ContentPolicyEngine
from .types import AIRequest, AIResponse, ContentPolicy, ProviderConfig, normalize_provider_id

logger = get_logger(__name__)

_doc_seq = itertools.count(1)

def new_document_id() -> str:
    # Timestamp-derived; the sequence keeps ids from one process distinct.
    return f"doc_{int(time.time() * 1000)}_{next(_doc_seq)}"

@dataclass(frozen=True)
class GatewayState:
    provider: Optional[ProviderConfig] = None
    policy: ContentPolicy = ContentPolicy()

def _resolved(value: Any) -> Future:
    f: Future = Future()
    f.set_result(value)
    return f

def call_with_timeout(func: Callable[[], Any], timeout_s: float, label: str,
                      on_finish: Optional[Callable[[], None]] = None) -> Any:
    """Run func in a daemon thread and wait at most timeout_s for it.

    On timeout the call keeps running in the background; its result is discarded.
    on_finish runs in that thread once func returns or raises.
    """
    result_queue: queue.Queue = queue.Queue()
    exception_queue: queue.Queue = queue.Queue()

    def target():
        try:
            result_queue.put(func())
        except Exception as e:
            exception_queue.put(e)
        finally:
            if on_finish is not None:
                on_finish()

    thread = threading.Thread(target=target, name=f"aigate-{label}", daemon=True)
    try:
        thread.start()
    except RuntimeError:
        if on_finish is not None:
            on_finish()
        raise
    thread.join(timeout=timeout_s)

    if thread.is_alive():
        raise BackendFailure(f"{label} timed out after {timeout_s:g}s")
    if not exception_queue.empty():
        raise exception_queue.get()
    if result_queue.empty():
        raise BackendFailure(f"{label} completed without result")
    return result_queue.get()

class _Slot:
    """One queue permit, returned when its last holder lets go."""

    def __init__(self, sem: threading.BoundedSemaphore):
        self._sem = sem
        self._holders = 1
        self._lock = threading.Lock()

    def share(self) -> None:
        with self._lock:
            self._holders += 1

    def release(self) -> None:
        with self._lock:
            self._holders -= 1
            last = self._holders == 0
        if last:
            self._sem.release()

class RequestDispatcher:
    def __init__(
        self,
        core: AgentCore,
        store: ConfigStore,
        policy_engine: Optional[ContentPolicyEngine] = None,
        max_workers: int = 4,
        queue_capacity: int = 16,
        submit_timeout_s: float = 1.0,
        request_timeout_s: Optional[float] = None,
    ):
        self.core = core
        self.store = store
        self.policy_engine = policy_engine or ContentPolicyEngine()
        self.submit_timeout_s = max(0.0, float(submit_timeout_s or 0.0))
        self.request_timeout_s = request_timeout_s

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="aigate")
        self._slots = threading.BoundedSemaphore(max_workers + max(0, queue_capacity))
        self._config_lock = threading.Lock()
        self._state = GatewayState()
        self._shutdown = False
        self._request_ids = itertools.count(1)
        self._local = threading.local()
        self.last_error = ""

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def state(self) -> GatewayState:
        return self._state

    def restore(self, provider: Optional[ProviderConfig], policy: ContentPolicy) -> None:
        """Install persisted state at startup without writing it back."""
        with self._config_lock:
            self._state = GatewayState(provider=provider, policy=policy)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def _fail(self, error: Exception) -> str:
        self.last_error = str(error)
        return self.last_error

    def _submit(self, label: str, fn: Callable[[], Any], on_error: Callable[[Exception], Any],
                callback: Optional[Callable[[Any], None]] = None) -> Future:
        future = self._dispatch(label, fn, on_error)
        if callback is not None:
            future.add_done_callback(lambda f: callback(f.result()))
        return future

    def _dispatch(self, label: str, fn: Callable[[], Any], on_error: Callable[[Exception], Any]) -> Future:
        if self._shutdown:
            err = BackendFailure("dispatcher is shut down")
            self._fail(err)
            return _resolved(on_error(err))

        if self.submit_timeout_s > 0:
            acquired = self._slots.acquire(timeout=self.submit_timeout_s)
        else:
            acquired = self._slots.acquire(blocking=False)
        if not acquired:
            err = GatewayBusy(f"request queue is full; {label} rejected")
            logger.warning("%s", err)
            self._fail(err)
            return _resolved(on_error(err))

        slot = _Slot(self._slots)

        def run():
            self._local.slot = slot
            try:
                return fn()
            except Exception as e:
                if not isinstance(e, GatewayError):
                    logger.exception("%s failed: %s", label, e)
                self._fail(e)
                return on_error(e)
            finally:
                self._local.slot = None
                slot.release()

        try:
            return self._executor.submit(run)
        except RuntimeError as e:
            slot.release()
            err = BackendFailure(f"dispatcher is shut down: {e}")
            self._fail(err)
            return _resolved(on_error(err))

    def _call_core(self, label: str, func: Callable[[], Any]) -> Any:
        if not self.request_timeout_s:
            return func()
        slot = getattr(self._local, "slot", None)
        if slot is None:
            return call_with_timeout(func, self.request_timeout_s, label)
        # The background call keeps the permit until it actually returns.
        slot.share()
        return call_with_timeout(func, self.request_timeout_s, label, on_finish=slot.release)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    def generate(self, request: AIRequest, callback: Optional[Callable[[AIResponse], None]] = None) -> Future:
        snapshot = self._state
        request_id = request.request_id or f"req-{next(self._request_ids)}"
        request = replace(request, request_id=request_id)
        log_step(logger, request_id, f"created use_case={request.use_case}")

        return self._submit(
            "generate",
            lambda: self._run_generate(request, snapshot),
            lambda e: _failure_response(e),
            callback,
        )

    def _run_generate(self, request: AIRequest, snapshot: GatewayState) -> AIResponse:
        rid = request.request_id
        if snapshot.provider is None:
            raise NotConfigured("AI provider not configured")
        request.validate()

        decision = self.policy_engine.check_request(request, snapshot.policy)
        if not decision.allowed:
            log_step(logger, rid, f"policy_checked=rejected reason={decision.reason}")
            return AIResponse.rejected(decision.reason)
        log_step(logger, rid, "policy_checked=allowed")

        dispatched = replace(request, provider=snapshot.provider)
        log_step(logger, rid, f"dispatched provider={snapshot.provider.provider_id}")
        try:
            response = self._call_core("process", lambda: self.core.process(dispatched))
        except GatewayError:
            log_step(logger, rid, "backend_failed")
            raise
        except Exception as e:
            log_step(logger, rid, "backend_failed")
            raise BackendFailure(f"AI processing error: {e}") from e

        if not isinstance(response, AIResponse):
            log_step(logger, rid, "backend_failed (malformed)")
            raise BackendFailure(f"malformed backend response: {type(response).__name__}")
        if not response.success:
            log_step(logger, rid, f"backend_failed error={response.error}")
            response.error_kind = response.error_kind or BackendFailure.kind
            response.content = ""
            self.last_error = response.error
            return response
        log_step(logger, rid, "succeeded")

        decision = self.policy_engine.check_response(response, snapshot.policy)
        if not decision.allowed:
            log_step(logger, rid, f"response_policy_checked=rejected reason={decision.reason}")
            redacted = AIResponse.rejected(decision.reason)
            redacted.error = "Response blocked by filter"
            return redacted

        log_step(logger, rid, "delivered")
        return response

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def configure_provider(self, provider_id: str, api_key: str, base_url: Optional[str] = None,
                           callback: Optional[Callable[[Tuple[bool, str]], None]] = None) -> Future:
        return self._submit(
            "configure_provider",
            lambda: self._apply_provider(provider_id, api_key, base_url),
            lambda e: (False, f"Configuration error: {e}"),
            callback,
        )

    def _apply_provider(self, provider_id: str, api_key: str, base_url: Optional[str]) -> Tuple[bool, str]:
        cfg = ProviderConfig(
            provider_id=normalize_provider_id(provider_id),
            api_key=sanitize_api_key(api_key or ""),
            base_url=(base_url or "").strip().rstrip("/"),
        ).validate()
        return self._commit_provider(cfg)

    def _commit_provider(self, cfg: ProviderConfig) -> Tuple[bool, str]:
        with self._config_lock:
            previous = self._state.provider
            replaced = self._registered_config(cfg.provider_id)
            if not self.core.configure(cfg.provider_id, cfg.api_key, cfg.base_url):
                self._fail(BackendFailure("Failed to configure provider"))
                return False, "Failed to configure provider"
            try:
                save_provider(self.store, cfg)
            except Exception:
                self._undo_configure(cfg, previous, replaced)
                raise
            self._state = replace(self._state, provider=cfg)
        logger.info("provider switched to %s", cfg.provider_id)
        return True, "Provider configured successfully"

    def _registered_config(self, provider_id: str) -> Optional[ProviderConfig]:
        """Stored credentials for provider_id if the engine currently holds a registration for it."""
        try:
            registered = provider_id in (self.core.list_providers() or [])
        except Exception as e:
            logger.warning("could not read engine registrations: %s", e)
            return None
        return load_provider(self.store, provider_id) if registered else None

    def _undo_configure(self, cfg: ProviderConfig, previous: Optional[ProviderConfig],
                        replaced: Optional[ProviderConfig]) -> None:
        try:
            self.core.unconfigure(cfg.provider_id)
            if replaced is not None:
                self.core.configure(replaced.provider_id, replaced.api_key, replaced.base_url)
            if previous is not None:
                self.core.configure(previous.provider_id, previous.api_key, previous.base_url)
        except Exception as e:
            logger.error("engine rollback for %s failed: %s", cfg.provider_id, e)

    def switch_provider(self, provider_id: str, callback: Optional[Callable[[Tuple[bool, str]], None]] = None) -> Future:
        def run() -> Tuple[bool, str]:
            pid = normalize_provider_id(provider_id)
            cfg = load_provider(self.store, pid)
            if cfg is None:
                return False, f"Provider not configured: {pid}"
            return self._commit_provider(cfg)

        return self._submit("switch_provider", run, lambda e: (False, f"Configuration error: {e}"), callback)

    def set_policy(self, policy: ContentPolicy) -> Future:
        def run() -> bool:
            overlap = policy.overlapping_topics()
            if overlap:
                logger.warning("topics both allowed and blocked (blocked wins): %s", ", ".join(overlap))
            with self._config_lock:
                previous = self._state.policy
                self.core.set_policy(policy)
                try:
                    save_policy(self.store, policy)
                except Exception:
                    self.core.set_policy(previous)
                    raise
                self._state = replace(self._state, policy=policy)
            logger.info("content filter updated level=%s", policy.filter_level)
            return True

        return self._submit("set_policy", run, lambda e: False)

    # ------------------------------------------------------------------
    # Engine passthrough
    # ------------------------------------------------------------------
    def index_document(self, content: str, title: str, doc_id: Optional[str] = None) -> Future:
        doc_id = doc_id or new_document_id()

        def run() -> bool:
            # Indexing is storage, not generation: no content policy here.
            try:
                ok = bool(self._call_core("index_document", lambda: self.core.index_document(content, title, doc_id)))
            except GatewayError:
                raise
            except Exception as e:
                raise IndexingFailure(f"indexing {doc_id} failed: {e}") from e
            if not ok:
                self._fail(IndexingFailure(f"indexing {doc_id} failed"))
            return ok

        return self._submit("index_document", run, lambda e: False)

    def search_documents(self, query: str, max_results: int = 5) -> Future:
        return self._submit(
            "search_documents",
            lambda: list(self._call_core("search_documents", lambda: self.core.search_documents(query, max_results)) or []),
            lambda e: [],
        )

    def remove_document(self, doc_id: str) -> Future:
        return self._submit(
            "remove_document",
            lambda: bool(self._call_core("remove_document", lambda: self.core.remove_document(doc_id))),
            lambda e: False,
        )

    def test_connection(self) -> Future:
        def run() -> bool:
            if self._state.provider is None:
                raise NotConfigured("AI provider not configured")
            return bool(self._call_core("test_connection", self.core.test_connection))

        return self._submit("test_connection", run, lambda e: False)

    def list_providers(self) -> List[str]:
        if self._state.provider is None:
            return []
        try:
            return [str(p) for p in self.core.list_providers() or []]
        except Exception as e:
            logger.error("Error getting available providers: %s", e)
            self._fail(e)
            return []

    def shutdown(self, wait: bool = True) -> None:
        self._shutdown = True
        self._executor.shutdown(wait=wait)

def _failure_response(error: Exception) -> AIResponse:
    if isinstance(error, GatewayError):
        return AIResponse.failure(error)
    return AIResponse.failure(BackendFailure(f"AI processing error: {error}"))

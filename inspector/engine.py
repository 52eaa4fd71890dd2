from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional

from prometheus_client import generate_latest

from adapters.metrics.base import Metrics
from adapters.metrics.prometheus import PrometheusMetrics
from inspector.contracts import (
    DeleteRowRequest,
    EntryRequest,
    InsertRowRequest,
    ListRowsRequest,
    NamespaceRequest,
    Request,
    RunQueryRequest,
    SourceRequest,
    UpdateRowRequest,
    UpsertPreferenceRequest,
    parse_request,
)
from inspector.erd import ERDRelationshipBuilder
from inspector.errors.codes import ErrorCode
from inspector.errors.exceptions import AppError, EngineNotRunning
from inspector.errors.mapper import map_error
from inspector.preferences import PreferenceStore
from inspector.prom import REGISTRY
from inspector.query import QueryEngine
from inspector.safety import ReadOnlyPolicy
from inspector.schema import SchemaIntrospector
from inspector.settings import Settings, get_settings
from inspector.types import ResultEnvelope

log = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


def _error_body(
    code: ErrorCode, message: str, details: Any = None, retryable: Optional[bool] = None
) -> Dict[str, Any]:
    if retryable is None:
        retryable = map_error(code)[1]
    return {
        "ok": False,
        "error": {
            "code": code.value,
            "message": message,
            "details": details,
            "retryable": bool(retryable),
        },
    }


class InspectorEngine:
    """
    Explicit lifecycle handle over the inspector components.

    ``start()`` binds the components to the configured directories and
    ``stop()`` releases them; using a component while stopped raises
    EngineNotRunning. ``call()`` is the plain data-in/data-out boundary a
    transport layer dispatches to.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.metrics = metrics or PrometheusMetrics()
        self._introspector: Optional[SchemaIntrospector] = None
        self._erd: Optional[ERDRelationshipBuilder] = None
        self._query: Optional[QueryEngine] = None
        self._prefs: Optional[PreferenceStore] = None
        self._handlers: Dict[str, Handler] = {
            "list_data_sources": self._list_data_sources,
            "get_schema": self._get_schema,
            "build_erd": self._build_erd,
            "list_rows": self._list_rows,
            "run_query": self._run_query,
            "insert_row": self._insert_row,
            "update_row": self._update_row,
            "delete_row": self._delete_row,
            "list_preferences": self._list_preferences,
            "create_preference_namespace": self._create_namespace,
            "upsert_preference": self._upsert_preference,
            "remove_preference_entry": self._remove_entry,
            "remove_preference_namespace": self._remove_namespace,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._introspector is not None

    def start(self) -> "InspectorEngine":
        if self.running:
            log.warning("Inspector engine already running")
            return self

        s = self.settings
        self._introspector = SchemaIntrospector(
            s.databases_dir, busy_timeout=s.busy_timeout_sec
        )
        self._erd = ERDRelationshipBuilder(self._introspector)
        self._query = QueryEngine(
            self._introspector,
            default_page_size=s.default_page_size,
            max_page_size=s.max_page_size,
            policy=ReadOnlyPolicy(metrics=self.metrics),
            metrics=self.metrics,
        )
        self._prefs = PreferenceStore(s.prefs_dir)
        log.info(
            "Inspector engine started",
            extra={
                "databases_dir": s.databases_dir,
                "prefs_dir": s.prefs_dir,
                "app_version": s.app_version,
            },
        )
        return self

    def stop(self) -> None:
        if not self.running:
            return
        self._introspector = None
        self._erd = None
        self._query = None
        self._prefs = None
        log.info("Inspector engine stopped")

    def __enter__(self) -> "InspectorEngine":
        return self.start()

    def __exit__(self, *exc: Any) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def _require(self, component: Any, name: str) -> Any:
        if component is None:
            raise EngineNotRunning(f"Inspector engine is not running ({name})")
        return component

    @property
    def introspector(self) -> SchemaIntrospector:
        return self._require(self._introspector, "introspector")

    @property
    def erd(self) -> ERDRelationshipBuilder:
        return self._require(self._erd, "erd")

    @property
    def query(self) -> QueryEngine:
        return self._require(self._query, "query")

    @property
    def preferences(self) -> PreferenceStore:
        return self._require(self._prefs, "preferences")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def call(
        self, operation: str, payload: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        if not self.running:
            raise EngineNotRunning("Inspector engine is not running")

        handler = self._handlers.get(operation)
        # unknown names are not used as metric labels
        label = operation if handler is not None else "unknown"
        t0 = time.perf_counter()
        try:
            request = parse_request(operation, payload)
            data = handler(request)  # type: ignore[misc]
            if isinstance(data, ResultEnvelope):
                response = self._envelope_body(data)
            else:
                response = {"ok": True, "data": data}
        except AppError as e:
            response = _error_body(e.code, e.message, e.details, e.retryable)
        except Exception:
            log.exception("Unhandled error in operation", extra={"operation": label})
            self.metrics.inc_operation_call(operation=label, ok=False)
            raise
        finally:
            dt_ms = (time.perf_counter() - t0) * 1000
            self.metrics.observe_operation_ms(operation=label, dt_ms=dt_ms)

        ok = bool(response["ok"])
        self.metrics.inc_operation_call(operation=label, ok=ok)
        if not ok:
            code = response["error"]["code"]
            self.metrics.inc_operation_error(operation=label, error_code=code)
            log.debug(
                "Operation failed",
                extra={"operation": label, "error_code": code},
            )
        return response

    def metrics_text(self) -> str:
        return generate_latest(REGISTRY).decode("utf-8")

    @staticmethod
    def _envelope_body(env: ResultEnvelope) -> Dict[str, Any]:
        if env.ok:
            return {"ok": True, "data": env.to_dict()}
        return _error_body(
            env.error_code or ErrorCode.MUTATION_FAILURE, env.message, env.details
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _list_data_sources(self, req: Request) -> Any:
        return [ds.to_dict() for ds in self.introspector.list_data_sources()]

    def _get_schema(self, req: SourceRequest) -> Any:
        return {
            "source": req.source,
            "orm_managed": self.introspector.is_orm_managed(req.source),
            "tables": [t.to_dict() for t in self.introspector.get_schema(req.source)],
        }

    def _build_erd(self, req: SourceRequest) -> Any:
        return self.erd.build_graph(req.source).to_dict()

    def _list_rows(self, req: ListRowsRequest) -> Any:
        return self.query.list_rows(
            req.source, req.table, page=req.page, page_size=req.page_size
        ).to_dict()

    def _run_query(self, req: RunQueryRequest) -> Any:
        return self.query.run_read_only_query(req.source, req.query).to_dict()

    def _insert_row(self, req: InsertRowRequest) -> ResultEnvelope:
        return self.query.insert_row(req.source, req.table, req.values)

    def _update_row(self, req: UpdateRowRequest) -> ResultEnvelope:
        return self.query.update_row(req.source, req.table, req.primary_key, req.values)

    def _delete_row(self, req: DeleteRowRequest) -> ResultEnvelope:
        return self.query.delete_row(req.source, req.table, req.primary_key)

    def _list_preferences(self, req: Request) -> Any:
        namespaces = self.preferences.list_all()
        return {
            "preferences": [ns.to_dict() for ns in namespaces],
            "total": len(namespaces),
        }

    def _create_namespace(self, req: NamespaceRequest) -> ResultEnvelope:
        return self.preferences.create_namespace(req.namespace)

    def _upsert_preference(self, req: UpsertPreferenceRequest) -> ResultEnvelope:
        return self.preferences.upsert(req.namespace, req.key, req.value, req.type)

    def _remove_entry(self, req: EntryRequest) -> ResultEnvelope:
        return self.preferences.remove_entry(req.namespace, req.key)

    def _remove_namespace(self, req: NamespaceRequest) -> ResultEnvelope:
        return self.preferences.remove_namespace(req.namespace)


def start_engine(settings: Optional[Settings] = None) -> InspectorEngine:
    return InspectorEngine(settings=settings).start()

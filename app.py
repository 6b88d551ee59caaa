"""Flask application exposing the bid reporting engine to the operator console."""

from __future__ import annotations

from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import Flask, jsonify, request, send_file

from core.aggregator import AnalyticsAggregator, RequestAggregator, RequestSummary
from core.catalog import CatalogResolver, StoreCatalogResolver
from core.database import Database
from core.notification import EmailNotificationService, build_notifier
from core.record_store import RecordStore, RequestBundle
from core.report_renderer import ReportRenderer
from core.statuses import display_status
from storage.file_storage import FileStorage
from utils.config_loader import load_config
from utils.logger import setup_logger

Clock = Callable[[], datetime]

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _load_config(path: Path) -> Dict[str, Any]:
    return load_config(path)


def _default_clock(timezone_name: str, logger) -> Clock:
    try:
        tzinfo = ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %s, falling back to UTC.", timezone_name)
        tzinfo = timezone.utc
    return lambda: datetime.now(tzinfo)


def create_app(
    *,
    config_path: str | Path = "config.yml",
    config: Optional[Mapping[str, Any]] = None,
    record_store: Optional[RecordStore] = None,
    catalog: Optional[CatalogResolver] = None,
    renderer: Optional[ReportRenderer] = None,
    notifier: Optional[EmailNotificationService] = None,
    file_storage: Optional[FileStorage] = None,
    clock: Optional[Clock] = None,
) -> Flask:
    """Application factory so tests can inject fake collaborators."""
    config_path = Path(config_path)
    config_data = dict(config) if config else _load_config(config_path)
    paths_cfg = config_data.get("paths", {})
    log_dir = Path(paths_cfg.get("log_dir", "data/logs"))
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = setup_logger(
        "WebApp", log_dir=log_dir, level=config_data.get("logging", {}).get("level")
    )

    if record_store is None:
        Path(paths_cfg.get("data_dir", "data")).mkdir(parents=True, exist_ok=True)
        db = Database(config_data, logger=logger)
        db.create_tables()
        session_factory = db.get_session_factory()
        record_store = RecordStore(session_factory, logger=logger)
        catalog = catalog or StoreCatalogResolver(session_factory)

    analytics_cfg = config_data.get("analytics", {})
    renderer = renderer or ReportRenderer(catalog, config=config_data, logger=logger)
    notifier = notifier or build_notifier(config_data, logger=logger)
    file_storage = file_storage or FileStorage(
        paths_cfg.get("export_dir", "data/exports"), logger=logger
    )
    clock = clock or _default_clock(str(analytics_cfg.get("timezone", "UTC")), logger)
    aggregator = RequestAggregator(logger=logger)
    analytics = AnalyticsAggregator(
        excluded_account_ids=analytics_cfg.get("excluded_account_ids") or (),
        recent_limit=int(analytics_cfg.get("recent_limit", 10) or 10),
        logger=logger,
    )

    app = Flask(__name__)
    app.config.update(
        {
            "RECORD_STORE": record_store,
            "REPORT_RENDERER": renderer,
            "NOTIFIER": notifier,
            "FILE_STORAGE": file_storage,
            "LOGGER": logger,
        }
    )

    def _summarize(request_id: str) -> Optional[Tuple[RequestBundle, RequestSummary]]:
        bundle = record_store.load_request_bundle(request_id)
        if bundle is None:
            return None
        return bundle, aggregator.summarize(bundle.request, bundle.items, bundle.bids)

    def _not_found(request_id: str):
        return jsonify({"success": False, "message": f"Sourcing request {request_id} not found"}), 404

    @app.get("/api/requests")
    def list_requests():
        status_filter = request.args.get("status")
        normalized = status_filter if status_filter and status_filter != "all" else None
        try:
            requests = record_store.list_requests(normalized)
        except ValueError:
            return jsonify({"success": False, "message": f"Unknown status {status_filter}"}), 400

        now = clock()
        try:
            bundles = record_store.load_bundles(requests)
        except Exception as exc:
            logger.error("Failed to load request bundles: %s", exc, exc_info=True)
            bundles = {}

        data = []
        for sourcing_request in requests:
            entry = sourcing_request.to_dict()
            entry["display_status"] = display_status(
                sourcing_request.status, sourcing_request.deadline, now
            ).value
            entry["item_count"] = None
            entry["response_count"] = None
            bundle = bundles.get(sourcing_request.id)
            if bundle is not None:
                try:
                    summary = aggregator.summarize(bundle.request, bundle.items, bundle.bids)
                except Exception as exc:
                    logger.error(
                        "Failed to summarize request %s: %s", sourcing_request.id, exc, exc_info=True
                    )
                else:
                    entry["item_count"] = summary.item_count
                    entry["response_count"] = summary.response_count
            data.append(entry)
        return jsonify({"success": True, "data": data, "count": len(data)})

    @app.get("/api/requests/<request_id>/summary")
    def request_summary(request_id: str):
        summarized = _summarize(request_id)
        if summarized is None:
            return _not_found(request_id)
        bundle, summary = summarized
        payload = summary.to_dict()
        payload["request"] = bundle.request.to_dict()
        payload["display_status"] = display_status(
            bundle.request.status, bundle.request.deadline, clock()
        ).value
        return jsonify({"success": True, "data": payload})

    @app.get("/api/requests/<request_id>/workbook")
    def download_workbook(request_id: str):
        summarized = _summarize(request_id)
        if summarized is None:
            return _not_found(request_id)
        bundle, summary = summarized
        workbook = renderer.render_workbook(bundle.request, summary)
        return send_file(
            BytesIO(renderer.workbook_bytes(workbook)),
            mimetype=XLSX_MIMETYPE,
            as_attachment=True,
            download_name=renderer.workbook_filename(bundle.request),
        )

    @app.post("/api/requests/<request_id>/export")
    def export_workbook(request_id: str):
        summarized = _summarize(request_id)
        if summarized is None:
            return _not_found(request_id)
        bundle, summary = summarized
        workbook = renderer.render_workbook(bundle.request, summary)
        saved = file_storage.save_workbook(
            renderer.workbook_bytes(workbook), renderer.workbook_filename(bundle.request)
        )
        if saved is None:
            return jsonify({"success": False, "message": "Export failed"}), 500
        return jsonify({"success": True, "data": {"path": str(saved)}})

    @app.post("/api/requests/<request_id>/email")
    def email_summary(request_id: str):
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict) or not str(payload.get("to") or "").strip():
            return jsonify({"success": False, "message": "Destination email address is required"}), 400
        if notifier is None:
            return jsonify({"success": False, "message": "Email transport is not configured"}), 503

        summarized = _summarize(request_id)
        if summarized is None:
            return _not_found(request_id)
        bundle, summary = summarized
        body = renderer.render_email_body(
            bundle.request,
            summary,
            include_contact_details=bool(payload.get("include_contact_details", False)),
        )
        sent = notifier.send_report(str(payload["to"]), renderer.email_subject(bundle.request), body)
        if not sent:
            return jsonify({"success": False, "message": "Email delivery failed"}), 502
        return jsonify({"success": True, "message": "Email sent"})

    @app.get("/api/analytics")
    def analytics_snapshot():
        population = record_store.load_population()
        snapshot = analytics.rollup(
            population.accounts,
            population.orders,
            population.subscriptions,
            population.events,
            clock(),
        )
        return jsonify({"success": True, "data": snapshot.to_dict()})

    return app


if __name__ == "__main__":  # pragma: no cover
    application = create_app()
    application.run(host="0.0.0.0", port=5000, debug=False, use_reloader=False)

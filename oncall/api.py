"""
api.py — HTTP endpoints (Flask)

  POST /api/on-call/import?dryRun=1
       body: raw .xlsx bytes, or CSV (Content-Type: text/csv / text/plain),
             or JSON {"csv": "...", "resolutions": {name: uid}, "saveAliases": true}
  POST /api/on-call/manual
       body: JSON {"dateKey": "2025-11-01", "stations": {key: {"userId", "userDisplayName"}}}
  POST /api/on-call/backfill?dryRun=true&mode=resolveNames
  POST /api/on-call/backfill?dryRun=true&mode=dateShift&month=2025-11&deltaDays=1
  GET  /api/templates/on-call-schedule.xlsx
  GET  /healthz

Errors:
  400  validation / whole-file problems (structured body, row errors included)
  401  missing or invalid token          {"errorCode": "MISSING_AUTH" | "INVALID_TOKEN"}
  403  caller is not an active admin     {"errorCode": "ADMIN_REQUIRED"}
  500  anything else: generic message to the caller, detail to the server log
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional

from flask import Flask, Response, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from oncall.auth import AuthError, TokenVerifier, auth_error_body, build_verifier, require_admin
from oncall.backfill import reconcile_names
from oncall.config import Settings, load_settings
from oncall.dateshift import shift_month
from oncall.exporter import build_template_workbook
from oncall.importer import import_schedule, save_manual_day
from oncall.models import ImportFileError, ValidationError
from oncall.store import AliasRepository, DocumentStore, JsonFileStore, ScheduleRepository, UserDirectory

logger = logging.getLogger(__name__)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
BACKFILL_MODES = ("resolveNames", "dateShift")


def _flag(name: str) -> bool:
    value = request.args.get(name, "")
    return value.strip().lower() in ("1", "true", "yes")


def _services() -> dict:
    return current_app.extensions["oncall"]


def api_error_handler(generic_message: str) -> Callable:
    """Map package errors to HTTP responses; log and hide everything else."""
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args: Any, **kwargs: Any):
            try:
                return f(*args, **kwargs)
            except AuthError as e:
                logger.warning(f"{f.__name__}: auth rejected ({e.error_code}): {e}")
                return jsonify(auth_error_body(e)), e.status_code
            except (ValidationError, ImportFileError) as e:
                return jsonify({"error": str(e), "errors": [str(e)]}), 400
            except HTTPException:
                raise
            except Exception as e:
                logger.error(f"An error occurred in endpoint '{f.__name__}': {e}", exc_info=True)
                return jsonify({"error": generic_message}), 500
        return decorated_function
    return decorator


def _authorize() -> None:
    services = _services()
    actor = require_admin(request.headers, services["verifier"], services["directory"])
    logger.info(f"{request.method} {request.path} by {actor.uid}")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def import_on_call():
    _authorize()
    services = _services()
    settings: Settings = services["settings"]
    dry_run = _flag("dryRun") or request.headers.get("x-dry-run") == "1"

    content_type = (request.content_type or "").lower()
    resolutions = None
    save_aliases = False
    if "application/json" in content_type:
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            raise ValidationError("JSON body must be an object")
        payload = str(body.get("csv") or "").encode("utf-8")
        resolutions = body.get("resolutions") or None
        if resolutions is not None and not isinstance(resolutions, dict):
            raise ValidationError("resolutions must be an object of name → user id")
        save_aliases = bool(body.get("saveAliases"))
        fmt: Optional[str] = "csv"
    else:
        payload = request.get_data(cache=False)
        fmt = "csv" if content_type.startswith(("text/csv", "text/plain")) else None

    summary = import_schedule(
        payload,
        services["schedule"],
        directory=services["directory"] if settings.resolve_on_import else None,
        aliases=services["aliases"] if settings.resolve_on_import else None,
        fmt=fmt,
        dry_run=dry_run,
        max_bytes=settings.max_upload_bytes,
        resolutions=resolutions,
        save_aliases=save_aliases,
    )
    body = summary.to_dict()
    if summary.days == 0:
        body["error"] = "no valid rows"
        return jsonify(body), 400
    return jsonify(body), 200


def manual_on_call():
    _authorize()
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")

    day = save_manual_day(_services()["schedule"], body.get("dateKey"), body.get("stations"))
    return jsonify({
        "success":  True,
        "message":  "On-call day saved successfully",
        "dateKey":  day.date_key,
        "stations": {k: a.to_doc() for k, a in sorted(day.stations.items())},
    }), 200


def backfill_on_call():
    _authorize()
    services = _services()
    dry_run = _flag("dryRun")
    mode = request.args.get("mode") or "resolveNames"
    if mode not in BACKFILL_MODES:
        raise ValidationError(f"mode must be one of {', '.join(BACKFILL_MODES)}, got {mode!r}")

    if mode == "dateShift":
        month = request.args.get("month")
        delta = request.args.get("deltaDays")
        if not month or delta is None:
            raise ValidationError("dateShift mode requires month=YYYY-MM and deltaDays")
        summary = shift_month(services["schedule"], month, delta, dry_run=dry_run)
        return jsonify(summary.to_dict()), 200

    summary = reconcile_names(services["schedule"], services["directory"], dry_run=dry_run)
    return jsonify(summary.to_dict()), 200


def on_call_template():
    payload = build_template_workbook()
    return Response(
        payload,
        mimetype=XLSX_MIME,
        headers={"Content-Disposition": 'attachment; filename="on-call-schedule-template.xlsx"'},
    )


def healthz():
    return jsonify({"status": "ok"}), 200


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    verifier: Optional[TokenVerifier] = None,
) -> Flask:
    settings = settings or load_settings()
    store = store if store is not None else JsonFileStore(settings.store_path)
    verifier = verifier or build_verifier(settings)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes + 64 * 1024
    app.extensions["oncall"] = {
        "settings":  settings,
        "store":     store,
        "verifier":  verifier,
        "schedule":  ScheduleRepository(store, page_size=settings.delete_page_size),
        "directory": UserDirectory(store),
        "aliases":   AliasRepository(store),
    }

    app.add_url_rule(
        "/api/on-call/import", "import_on_call",
        api_error_handler("Import failed")(import_on_call), methods=["POST"],
    )
    app.add_url_rule(
        "/api/on-call/manual", "manual_on_call",
        api_error_handler("Failed to save on-call day")(manual_on_call), methods=["POST"],
    )
    app.add_url_rule(
        "/api/on-call/backfill", "backfill_on_call",
        api_error_handler("Backfill failed")(backfill_on_call), methods=["POST"],
    )
    app.add_url_rule(
        "/api/templates/on-call-schedule.xlsx", "on_call_template",
        api_error_handler("Failed to generate template file")(on_call_template), methods=["GET"],
    )
    app.add_url_rule("/healthz", "healthz", healthz, methods=["GET"])

    @app.errorhandler(413)
    def too_large(_error):
        return jsonify({"error": "file too large", "errors": ["file too large"]}), 413

    logger.info(f"On-call API ready (store={type(store).__name__}, verifier={type(verifier).__name__})")
    return app

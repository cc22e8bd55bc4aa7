from __future__ import annotations

import logging
import sqlite3
from contextlib import suppress
from datetime import date, datetime, timedelta
from functools import wraps
from typing import Any, Dict, Optional

from flask import Flask, g, jsonify, request, send_file, send_from_directory, session
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

import docket_config as config
from services import cases, clearances, excel, scheduler
from services.columns import REQUIRED_COLUMNS
from services.db import close_app_db, get_app_db
from services.lifecycle import InvalidTransition
from services.schemas import (
    AutoDeleteSchedule,
    CaseCreate,
    CaseSearch,
    CaseUpdate,
    ClearanceQuery,
    PasswordChange,
    RoleUpdate,
    UserLogin,
    UserRegister,
    UserUpdate,
    field_errors,
)
from services.uploads import (
    NO_IMAGE,
    UploadRejected,
    remove_upload,
    save_index_card,
    save_profile_picture,
    upload_root,
)
from services.users import (
    EmailInUseError,
    LastAdminError,
    SelfModificationError,
    UserExistsError,
    UserNotFoundError,
    authenticate_user,
    change_password,
    count_by_role,
    count_users,
    create_user,
    delete_user,
    get_user_by_id,
    list_users,
    mark_user_login,
    serialize_user,
    set_profile_picture,
    toggle_user_active,
    update_user_profile,
    update_user_role,
)

SESSION_TIMEOUT = timedelta(minutes=config.SESSION_TIMEOUT_MINUTES)
SESSION_ACTIVITY_KEY = "last_activity"

CASE_EDITORS = ("Admin", "Clerk")

# Multipart fields carrying uploaded images.
IMAGE_FIELD = "indexCardImage"
PICTURE_FIELD = "profilePicture"

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ---- Flask setup --------------------------------------------------------
app = Flask(__name__)
app.secret_key = config.SECRET_KEY
app.permanent_session_lifetime = SESSION_TIMEOUT
app.config.update(
    MAX_CONTENT_LENGTH=config.MAX_CONTENT_LENGTH,
    DATABASE=str(config.DATABASE_PATH),
    UPLOAD_ROOT=str(config.UPLOAD_ROOT),
    SCHEDULER_ENABLED=True,
    SCHEDULER_POLL_SECONDS=config.SCHEDULER_POLL_SECONDS,
)


# ---- Response helpers ---------------------------------------------------
def api_error(message: str, status: int = 400, errors: Any = None):
    body: Dict[str, Any] = {"ok": False, "msg": message}
    if errors:
        body["errors"] = errors
    return jsonify(body), status


def validation_error(exc: ValidationError):
    errors = field_errors(exc)
    message = errors[0]["message"] if len(errors) == 1 else "Validation failed"
    return api_error(message, 400, errors)


def request_payload() -> Dict[str, Any]:
    """JSON body when sent, otherwise the submitted form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _truthy(value: Any) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


# ---- Session & access control -------------------------------------------
def login_user_session(user: sqlite3.Row) -> None:
    session.clear()
    session.permanent = True
    session["user_id"] = user["id"]
    session["user_role"] = user["role"]
    session[SESSION_ACTIVITY_KEY] = datetime.utcnow().isoformat()


def logout_user_session() -> None:
    session.clear()


def require_login_api(handler):
    @wraps(handler)
    def wrapper(*args, **kwargs):
        if g.get("current_user") is None:
            return api_error("Authentication required.", 401)
        return handler(*args, **kwargs)

    return wrapper


def require_roles(*roles: str):
    def decorator(handler):
        @wraps(handler)
        def wrapper(*args, **kwargs):
            user = g.get("current_user")
            if user is None:
                return api_error("Authentication required.", 401)
            if user["role"] not in roles:
                return api_error("You do not have permission to perform this action.", 403)
            return handler(*args, **kwargs)

        return wrapper

    return decorator


require_admin_api = require_roles("Admin")


@app.before_request
def _start_background_jobs() -> None:
    scheduler.ensure_started(app)


@app.before_request
def _enforce_session_timeout():
    if session.get("user_id") is None:
        return

    last_activity = None
    raw_last_activity = session.get(SESSION_ACTIVITY_KEY)
    if raw_last_activity:
        with suppress(ValueError, TypeError):
            last_activity = datetime.fromisoformat(raw_last_activity)

    now = datetime.utcnow()
    if last_activity and now - last_activity > SESSION_TIMEOUT:
        logout_user_session()
        return api_error("Session expired. Please log in again.", 401)

    session.permanent = True
    session[SESSION_ACTIVITY_KEY] = now.isoformat()


@app.before_request
def _load_current_user() -> None:
    g.current_user = None
    user_id = session.get("user_id")
    if user_id is None:
        return
    user = get_user_by_id(user_id)
    if user and user["is_active"]:
        g.current_user = user
    else:
        session.clear()


@app.teardown_appcontext
def close_application_db(exc: Optional[BaseException]) -> None:
    close_app_db(exc)


# ---- Error handlers -----------------------------------------------------
@app.errorhandler(sqlite3.OperationalError)
def _database_unavailable(exc: sqlite3.OperationalError):
    app.logger.error("Database error on %s %s: %s", request.method, request.path, exc)
    return api_error("Database is unavailable.", 503)


@app.errorhandler(RequestEntityTooLarge)
def _too_large(_: RequestEntityTooLarge):
    return api_error("Upload is too large.", 413)


@app.errorhandler(HTTPException)
def _http_error(exc: HTTPException):
    return api_error(exc.description or exc.name, exc.code or 500)


# ---- Health -------------------------------------------------------------
@app.get("/ping")
def ping():
    get_app_db().execute("SELECT 1")
    return jsonify({"ok": True, "msg": "pong"})


# ---- Authentication -----------------------------------------------------
@app.post("/api/auth/login")
def login():
    try:
        creds = UserLogin(**request_payload())
    except ValidationError as exc:
        return validation_error(exc)

    user = authenticate_user(creds.email, creds.password)
    if user is None:
        app.logger.info("Failed login for %s", creds.email)
        return api_error("Invalid email or password", 401)

    login_user_session(user)
    mark_user_login(user["id"])
    app.logger.info("User %s logged in", user["email"])
    return jsonify({"ok": True, "msg": "Login successful", "user": serialize_user(get_user_by_id(user["id"]))})


@app.post("/api/auth/logout")
def logout():
    logout_user_session()
    return jsonify({"ok": True, "msg": "Logged out"})


@app.get("/api/auth/me")
@require_login_api
def current_account():
    return jsonify({"ok": True, "user": serialize_user(g.current_user)})


@app.post("/api/auth/register")
def register():
    bootstrap = count_users() == 0
    user = g.get("current_user")
    if not bootstrap:
        if user is None:
            return api_error("Authentication required.", 401)
        if user["role"] != "Admin":
            return api_error("You do not have permission to perform this action.", 403)

    try:
        payload = UserRegister(**request_payload())
    except ValidationError as exc:
        return validation_error(exc)

    # The very first account administers the installation.
    role = "Admin" if bootstrap else payload.role
    try:
        user_id = create_user(payload.name, payload.email, payload.password, role=role)
    except UserExistsError as exc:
        return api_error(str(exc), 400)

    return jsonify({"ok": True, "msg": "Registration successful", "user": serialize_user(get_user_by_id(user_id))}), 201


# ---- Account management -------------------------------------------------
@app.get("/api/users")
@require_admin_api
def api_users():
    return jsonify({"ok": True, "users": [serialize_user(u) for u in list_users()]})


def _self_or_admin(user_id: int) -> bool:
    user = g.current_user
    return user["id"] == user_id or user["role"] == "Admin"


@app.get("/api/user/<int:user_id>")
@require_login_api
def api_user_detail(user_id: int):
    if not _self_or_admin(user_id):
        return api_error("You do not have permission to perform this action.", 403)
    user = get_user_by_id(user_id)
    if user is None:
        return api_error("User not found", 404)
    return jsonify({"ok": True, "user": serialize_user(user)})


@app.put("/api/user/<int:user_id>")
@require_login_api
def api_user_update(user_id: int):
    if not _self_or_admin(user_id):
        return api_error("You do not have permission to perform this action.", 403)
    try:
        payload = UserUpdate(**request_payload())
    except ValidationError as exc:
        return validation_error(exc)
    try:
        user = update_user_profile(user_id, name=payload.name, email=payload.email)
    except UserNotFoundError as exc:
        return api_error(str(exc), 404)
    except EmailInUseError as exc:
        return api_error(str(exc), 400)
    return jsonify({"ok": True, "msg": "Profile updated successfully", "user": serialize_user(user)})


@app.put("/api/user/<int:user_id>/password")
@require_login_api
def api_user_password(user_id: int):
    if g.current_user["id"] != user_id:
        return api_error("You can only change your own password.", 403)
    try:
        payload = PasswordChange(**request_payload())
    except ValidationError as exc:
        return validation_error(exc)
    if not change_password(user_id, payload.current_password, payload.new_password):
        return api_error("Current password is incorrect", 401)
    return jsonify({"ok": True, "msg": "Password updated successfully"})


@app.post("/api/user/<int:user_id>/upload-picture")
@require_login_api
def api_user_upload_picture(user_id: int):
    if not _self_or_admin(user_id):
        return api_error("You do not have permission to perform this action.", 403)
    if get_user_by_id(user_id) is None:
        return api_error("User not found", 404)
    try:
        stored = save_profile_picture(request.files.get(PICTURE_FIELD))
    except UploadRejected as exc:
        return api_error(str(exc), 400)
    try:
        user = set_profile_picture(user_id, stored)
    except UserNotFoundError as exc:
        remove_upload(stored)
        return api_error(str(exc), 404)
    return jsonify({"ok": True, "msg": "Profile picture updated successfully", "user": serialize_user(user)})


@app.delete("/api/user/<int:user_id>/picture")
@require_login_api
def api_user_remove_picture(user_id: int):
    if not _self_or_admin(user_id):
        return api_error("You do not have permission to perform this action.", 403)
    try:
        user = set_profile_picture(user_id, None)
    except UserNotFoundError as exc:
        return api_error(str(exc), 404)
    return jsonify({"ok": True, "msg": "Profile picture removed successfully", "user": serialize_user(user)})


@app.put("/api/user/<int:user_id>/role")
@require_admin_api
def api_user_role(user_id: int):
    try:
        payload = RoleUpdate(**request_payload())
    except ValidationError as exc:
        return validation_error(exc)
    try:
        user = update_user_role(user_id, payload.role)
    except UserNotFoundError as exc:
        return api_error(str(exc), 404)
    except LastAdminError as exc:
        return api_error(str(exc), 409)
    return jsonify({"ok": True, "msg": "Role updated", "user": serialize_user(user)})


@app.put("/api/user/<int:user_id>/toggle-status")
@require_admin_api
def api_user_toggle(user_id: int):
    try:
        user = toggle_user_active(user_id, acting_user_id=g.current_user["id"])
    except UserNotFoundError as exc:
        return api_error(str(exc), 404)
    except (LastAdminError, SelfModificationError) as exc:
        return api_error(str(exc), 409)
    state = "activated" if user["is_active"] else "deactivated"
    return jsonify({"ok": True, "msg": f"Account {state}", "user": serialize_user(user)})


@app.delete("/api/user/<int:user_id>")
@require_admin_api
def api_user_delete(user_id: int):
    try:
        delete_user(user_id, acting_user_id=g.current_user["id"])
    except UserNotFoundError as exc:
        return api_error(str(exc), 404)
    except (LastAdminError, SelfModificationError) as exc:
        return api_error(str(exc), 409)
    return jsonify({"ok": True, "msg": "User deleted successfully"})


# ---- Cases --------------------------------------------------------------
@app.get("/cases")
@require_login_api
def list_cases():
    return jsonify([cases.serialize_case(row) for row in cases.list_active_cases()])


@app.get("/get-case")
@require_login_api
def search_cases():
    try:
        criteria = CaseSearch(**request.args.to_dict())
    except ValidationError as exc:
        return validation_error(exc)
    rows = cases.search_cases(criteria)
    if not rows:
        return api_error("No matching cases found", 404)
    return jsonify([cases.serialize_case(row) for row in rows])


@app.get("/case/<path:docket_no>")
@require_login_api
def case_detail(docket_no: str):
    row = cases.find_case_by_docket(docket_no)
    if row is None:
        return api_error("No matching case found.", 404)
    return jsonify({"ok": True, "case": cases.serialize_case(row)})


@app.post("/add-case")
@require_roles(*CASE_EDITORS)
def add_case():
    fields = request_payload()
    fields.pop(IMAGE_FIELD, None)
    try:
        payload = CaseCreate(**fields)
    except ValidationError as exc:
        return validation_error(exc)
    if cases.find_case_by_docket(payload.docket_no) is not None:
        return api_error(f"Docket number {payload.docket_no} already exists.", 409)

    try:
        index_cards = save_index_card(request.files.get(IMAGE_FIELD))
    except UploadRejected as exc:
        return api_error(str(exc), 400)

    try:
        row = cases.create_case(payload, index_cards=index_cards)
    except cases.DuplicateDocketError as exc:
        remove_upload(index_cards)
        return api_error(str(exc), 409)

    app.logger.info("Case %s added by user %s", row["docket_no"], g.current_user["id"])
    return jsonify({
        "ok": True,
        "msg": "Case added successfully",
        "indexCardPath": row["index_cards"],
        "case": cases.serialize_case(row),
    }), 201


IMAGE_PATH_MSG = "Index card images can only be cleared here; upload a new image instead."


def _foreign_image_path(case_id: int, record: Dict[str, Any]) -> bool:
    """True when ``record`` points the case at an image path it does not own."""
    path = record.get("index_cards")
    if path is None or path == NO_IMAGE:
        return False
    existing = cases.get_case(case_id)
    return existing is not None and existing["index_cards"] != path


def _parse_case_id(raw: Any) -> Optional[int]:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


@app.post("/update-case")
@require_roles(*CASE_EDITORS)
def update_case():
    data = request_payload()
    case_id = _parse_case_id(data.get("id"))
    updated_fields = data.get("updated_fields")
    if case_id is None or not isinstance(updated_fields, dict) or not updated_fields:
        return api_error("Missing or incomplete data.", 400)
    try:
        changes = CaseUpdate(**updated_fields)
    except ValidationError as exc:
        return validation_error(exc)

    record = changes.to_record(exclude_unset=True)
    if _foreign_image_path(case_id, record):
        return api_error(IMAGE_PATH_MSG, 400)
    try:
        row = cases.update_case(case_id, record)
    except cases.CaseNotFoundError as exc:
        return api_error(str(exc), 404)
    except cases.DuplicateDocketError as exc:
        return api_error(str(exc), 409)
    except ValueError as exc:
        return api_error(str(exc), 400)
    return jsonify({"ok": True, "msg": "Case updated successfully!", "case": cases.serialize_case(row)})


@app.post("/update-case-with-image")
@require_roles(*CASE_EDITORS)
def update_case_with_image():
    form = request.form.to_dict()
    case_id = _parse_case_id(form.pop("id", None))
    form.pop(IMAGE_FIELD, None)
    if case_id is None:
        return api_error("Missing case ID.", 400)
    if cases.get_case(case_id) is None:
        return api_error("No matching case found.", 404)
    try:
        changes = CaseUpdate(**form).to_record(exclude_unset=True)
    except ValidationError as exc:
        return validation_error(exc)
    if _foreign_image_path(case_id, changes):
        return api_error(IMAGE_PATH_MSG, 400)

    image = request.files.get(IMAGE_FIELD)
    new_path = None
    if image is not None and image.filename:
        try:
            new_path = save_index_card(image)
        except UploadRejected as exc:
            return api_error(str(exc), 400)
        changes["index_cards"] = new_path

    try:
        row = cases.update_case(case_id, changes)
    except cases.CaseNotFoundError as exc:
        remove_upload(new_path)
        return api_error(str(exc), 404)
    except cases.DuplicateDocketError as exc:
        remove_upload(new_path)
        return api_error(str(exc), 409)
    except ValueError as exc:
        remove_upload(new_path)
        return api_error(str(exc), 400)
    return jsonify({"ok": True, "msg": "Case updated successfully!", "case": cases.serialize_case(row)})


# ---- Case lifecycle -----------------------------------------------------
@app.get("/deleted-cases")
@require_admin_api
def deleted_cases():
    return jsonify([cases.serialize_case(row) for row in cases.list_terminated_cases()])


@app.delete("/delete-case")
@require_admin_api
def delete_case():
    data = request_payload()
    docket_no = str(data.get("docket_no") or data.get("docketNo") or "").strip()
    permanent = _truthy(data.get("permanent", False)) or request.args.get("view") == "terminated"
    if not docket_no:
        return api_error("Docket number is required for deletion.", 400)

    try:
        if permanent:
            cases.purge_case(docket_no)
            message = "Case permanently deleted."
        else:
            cases.terminate_case(docket_no)
            message = "Case moved to terminated cases."
    except cases.CaseNotFoundError as exc:
        return api_error(str(exc), 404)
    except InvalidTransition as exc:
        return api_error(str(exc), 409)

    app.logger.info("%s: %s (by user %s)", message, docket_no, g.current_user["id"])
    return jsonify({"ok": True, "msg": message})


@app.patch("/restore-case")
@require_admin_api
def restore_case():
    data = request_payload()
    docket_no = str(data.get("docket_no") or data.get("docketNo") or "").strip()
    if not docket_no:
        return api_error("Docket number is required.", 400)
    try:
        row = cases.restore_case(docket_no)
    except cases.CaseNotFoundError as exc:
        return api_error(str(exc), 404)
    except InvalidTransition as exc:
        return api_error(str(exc), 409)
    return jsonify({"ok": True, "msg": "Case restored.", "case": cases.serialize_case(row)})


@app.route("/configure-auto-delete", methods=["GET", "POST"])
@require_admin_api
def configure_auto_delete():
    if request.method == "GET":
        return jsonify({"ok": True, "schedule": scheduler.describe_schedule(config.load_auto_delete_schedule())})

    try:
        schedule = AutoDeleteSchedule(**request_payload())
    except ValidationError as exc:
        return validation_error(exc)

    stored = schedule.model_dump()
    stored["configured_at"] = datetime.now().isoformat(sep=" ", timespec="seconds")
    config.save_auto_delete_schedule(stored)
    app.logger.info("Auto-delete schedule set to %s", stored)
    message = "Auto-delete schedule saved." if schedule.enabled else "Auto-delete disabled."
    return jsonify({"ok": True, "msg": message, "schedule": scheduler.describe_schedule(stored)})


# ---- Excel sync ---------------------------------------------------------
@app.get("/download-excel")
@app.get("/api/excel/download")
@require_login_api
def excel_download():
    include_terminated = _truthy(request.args.get("include_terminated", ""))
    buffer = excel.build_workbook(include_terminated=include_terminated)
    return send_file(
        buffer,
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=excel.DOWNLOAD_NAME,
    )


def _uploaded_spreadsheet():
    file = request.files.get("file")
    if file is None or not file.filename:
        return None, api_error("No file uploaded.", 400)
    ext = file.filename.rsplit(".", 1)[-1].lower() if "." in file.filename else ""
    if ext not in config.ALLOWED_SPREADSHEET_EXTENSIONS:
        return None, api_error("Please upload a valid Excel file (.xlsx)", 400)
    return file.read(), None


@app.post("/api/excel/validate-columns")
@require_roles(*CASE_EDITORS)
def excel_validate_columns():
    data, error = _uploaded_spreadsheet()
    if error:
        return error
    try:
        headers = excel.read_headers(data)
    except excel.SpreadsheetError as exc:
        return api_error(str(exc), 400)
    errors = excel.validate_sheet_headers(headers)
    return jsonify({
        "ok": not errors,
        "errors": errors,
        "expected": list(excel.SHEET_COLUMNS),
        "required": list(REQUIRED_COLUMNS),
    })


@app.post("/api/excel/upload")
@require_roles(*CASE_EDITORS)
def excel_upload():
    data, error = _uploaded_spreadsheet()
    if error:
        return error
    try:
        summary = excel.import_workbook(data)
    except excel.ColumnValidationError as exc:
        return api_error("Column validation failed! Please fix the errors below.", 400, exc.errors)
    except excel.SpreadsheetError as exc:
        return api_error(str(exc), 400)

    return jsonify({
        "ok": True,
        "msg": summary.message(),
        "inserted": summary.inserted,
        "updated": summary.updated,
        "skipped": summary.skipped,
        "errors": summary.errors,
    })


# ---- Clearances ---------------------------------------------------------
def _clearance_invalid(exc: clearances.ClearanceInvalid):
    return api_error(str(exc), 400, exc.errors)


def _clearance_query():
    try:
        return ClearanceQuery(**request.args.to_dict()), None
    except ValidationError as exc:
        return None, validation_error(exc)


@app.get("/api/clearances")
@require_login_api
def list_clearances():
    query, error = _clearance_query()
    if error:
        return error
    rows, pagination = clearances.search_clearances(query)
    return jsonify({
        "ok": True,
        "data": [clearances.serialize_clearance(row) for row in rows],
        "pagination": pagination,
    })


@app.post("/api/clearances")
@require_roles(*CASE_EDITORS)
def create_clearance():
    try:
        row = clearances.create_clearance(request_payload(), g.current_user)
    except clearances.ClearanceInvalid as exc:
        return _clearance_invalid(exc)
    return jsonify({
        "ok": True,
        "msg": "Clearance created successfully",
        "data": clearances.serialize_clearance(row),
    }), 201


@app.get("/api/clearances/stats/overview")
@require_login_api
def clearance_stats():
    return jsonify({"ok": True, **clearances.clearance_statistics()})


@app.get("/api/clearances/issuers")
@require_login_api
def clearance_issuers():
    return jsonify(clearances.list_issuers())


@app.get("/api/clearances/export/excel")
@require_login_api
def clearance_export():
    query, error = _clearance_query()
    if error:
        return error
    today = date.today()
    records = [clearances.serialize_clearance(row, today) for row in clearances.all_matching(query, today)]
    return send_file(
        excel.build_clearance_workbook(records),
        as_attachment=True,
        download_name=excel.clearance_download_name(today),
        mimetype=XLSX_MIMETYPE,
    )


@app.get("/api/clearances/<int:clearance_id>")
@require_login_api
def clearance_detail(clearance_id: int):
    row = clearances.get_clearance(clearance_id)
    if row is None:
        return api_error("Clearance not found", 404)
    return jsonify(clearances.serialize_clearance(row))


@app.put("/api/clearances/<int:clearance_id>")
@require_roles(*CASE_EDITORS)
def update_clearance(clearance_id: int):
    try:
        row = clearances.update_clearance(clearance_id, request_payload(), g.current_user)
    except clearances.ClearanceNotFoundError as exc:
        return api_error(str(exc), 404)
    except clearances.ClearanceInvalid as exc:
        return _clearance_invalid(exc)
    return jsonify({
        "ok": True,
        "msg": "Clearance updated successfully",
        "data": clearances.serialize_clearance(row),
    })


@app.delete("/api/clearances/<int:clearance_id>")
@require_admin_api
def delete_clearance(clearance_id: int):
    try:
        clearances.delete_clearance(clearance_id, g.current_user)
    except clearances.ClearanceNotFoundError as exc:
        return api_error(str(exc), 404)
    return jsonify({"ok": True, "msg": "Clearance deleted successfully"})


@app.post("/api/clearances/<int:clearance_id>/log-download")
@require_login_api
def clearance_log_download(clearance_id: int):
    try:
        row = clearances.log_download(clearance_id, g.current_user)
    except clearances.ClearanceNotFoundError as exc:
        return api_error(str(exc), 404)
    return jsonify({"ok": True, "downloadCount": row["download_count"]})


@app.get("/api/clearances/<int:clearance_id>/logs")
@require_admin_api
def clearance_logs(clearance_id: int):
    if clearances.get_clearance(clearance_id) is None and not clearances.list_logs(clearance_id):
        return api_error("Clearance not found", 404)
    return jsonify({"ok": True, "logs": clearances.list_logs(clearance_id)})


# ---- Dashboard & files --------------------------------------------------
@app.get("/api/dashboard")
@require_login_api
def dashboard():
    user = g.current_user
    payload: Dict[str, Any] = {
        "ok": True,
        "role": user["role"],
        "cases": cases.case_statistics(),
        "clearances": clearances.clearance_statistics(),
        "permissions": {
            "editCases": user["role"] in CASE_EDITORS,
            "manageLifecycle": user["role"] == "Admin",
            "manageAccounts": user["role"] == "Admin",
        },
    }
    if user["role"] == "Admin":
        payload["users"] = count_by_role()
        payload["autoDelete"] = scheduler.describe_schedule(config.load_auto_delete_schedule())
    return jsonify(payload)


@app.get("/uploads/<path:filename>")
@require_login_api
def uploaded_file(filename: str):
    return send_from_directory(upload_root(), filename)


# ---- Entrypoint ---------------------------------------------------------
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    upload_root().mkdir(parents=True, exist_ok=True)
    with app.app_context():
        get_app_db()
    purge_scheduler = scheduler.ensure_started(app)
    print("\nURL map:")
    for r in app.url_map.iter_rules():
        methods = ",".join(sorted(m for m in r.methods if m not in {"HEAD", "OPTIONS"}))
        print(f"  {r.rule:32s} [{methods}]")
    print()
    try:
        app.run(host="0.0.0.0", port=5000, debug=False)
    finally:
        if purge_scheduler is not None:
            purge_scheduler.stop()

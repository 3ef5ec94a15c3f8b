"""HTTP routes for the SalonFlow backend: accounts, salons, staff, roles, onboarding."""
from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, Flask, current_app, g, jsonify, request
from sqlalchemy import func, or_, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from .auth import (build_token, effective_permissions, generate_temporary_password,
                   require_auth, require_permission,
                   require_salon_access, require_service_role, require_super_admin,
                   staff_record_for)
from .email_service import (EmailDeliveryError, EmailNotConfigured, PermissionsEmail,
                            send_permissions_email)
from .extensions import db
from .models import (Appointment, AuthAccount, Customer, OnboardingRequest, Salon, Staff, StaffCategory,
                     StaffCategoryAssignment, StaffRole, StaffRoleAssignment, StaffRolePermission,
                     StockMovement, User)
from .permissions import (MODULE_DEPENDENCIES, MODULE_NAMES, InvalidPermissions,
                          check_all_dependencies, check_module_dependencies,
                          has_permission, is_admin, module_access_map, normalize_permissions)
from .storage import InvalidImage, delete_image, upload_image
from .utils import pagination_meta, parse_pagination

bp = Blueprint("api", __name__)

MIN_PASSWORD_LENGTH = 8


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database."""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


# --- Authentication ---


def _account_for_email(email: str) -> tuple[User, AuthAccount] | None:
    return (
        db.session.query(User, AuthAccount)
        .join(AuthAccount, AuthAccount.user_id == User.user_id)
        .filter(User.email == email)
        .first()
    )


def _requested_salon_id(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


def _session_payload(
    user: User, auth_account: AuthAccount | None = None, salon_id: int | None = None
) -> dict[str, object]:
    """Session data for ``user``; staff of several salons pick one with ``salon_id``."""
    staff = staff_record_for(user, salon_id)
    permissions = effective_permissions(user, staff.salon_id) if staff else {}
    salon_id = staff.salon_id if staff else None
    staff_salon_ids = (
        [row.salon_id for row in Staff.query.filter_by(user_id=user.user_id).order_by(Staff.staff_id.asc())]
        if user.role == "staff"
        else []
    )
    if user.role == "salon_admin":
        salon = user.salons.first()
        salon_id = salon.salon_id if salon else None

    return {
        "user": user.to_dict_basic(),
        "salon_id": salon_id,
        "staff_salon_ids": staff_salon_ids,
        "staff": staff.to_dict() if staff else None,
        "permissions": permissions,
        "module_access": module_access_map(user.role, permissions),
        "must_change_password": bool(auth_account and auth_account.must_change_password),
    }


def _record_login(auth_account: AuthAccount):
    auth_account.last_login_at = datetime.now(timezone.utc)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update last login timestamp", exc_info=exc)
        return jsonify({"error": "database_error"}), 500
    return None


@bp.post("/auth/register")
def register_salon_owner() -> tuple[dict[str, object], int]:
    """Sign up a salon owner together with their salon.
    ---
    tags:
      - Authentication
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            email:
              type: string
            password:
              type: string
            phone:
              type: string
            salon_name:
              type: string
            salon_address:
              type: string
          required:
            - name
            - email
            - password
            - salon_name
    responses:
      201:
        description: Owner and salon created, returns access token
      400:
        description: Invalid payload
      409:
        description: Email already registered
      500:
        description: Server error
    """
    payload = request.get_json(silent=True) or {}

    name = (payload.get("name") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    phone = (payload.get("phone") or "").strip() or None
    salon_name = (payload.get("salon_name") or "").strip()

    if not name or not email or not password or not salon_name:
        return (
            jsonify({"error": "invalid_payload", "message": "name, email, password and salon_name are required"}),
            400,
        )

    if len(password) < MIN_PASSWORD_LENGTH:
        return (
            jsonify({"error": "invalid_payload", "message": f"password must be at least {MIN_PASSWORD_LENGTH} characters"}),
            400,
        )

    if User.query.filter_by(email=email).first():
        return jsonify({"error": "conflict", "message": "email address is already in use"}), 409

    try:
        owner = User(name=name, email=email, role="salon_admin", phone=phone)
        db.session.add(owner)
        db.session.flush()

        db.session.add(AuthAccount(user_id=owner.user_id, password_hash=generate_password_hash(password)))

        salon = Salon(
            owner_id=owner.user_id,
            name=salon_name,
            owner_name=name,
            email=email,
            phone=(payload.get("salon_phone") or "").strip() or phone,
            address=(payload.get("salon_address") or "").strip() or None,
        )
        db.session.add(salon)
        db.session.commit()

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to register salon owner", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Registered salon %s for owner %s", salon.salon_id, owner.user_id)
    return jsonify({"token": build_token(owner), "user": owner.to_dict_basic(), "salon": salon.to_dict()}), 201


@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate any account by email/password and return an access token.
    ---
    tags:
      - Authentication
    responses:
      200:
        description: Login successful
      400:
        description: Missing email or password
      401:
        description: Invalid email or password
    """
    payload = request.get_json(silent=True) or {}

    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return jsonify({"error": "invalid_payload", "message": "email and password are required"}), 400

    record = _account_for_email(email)
    if not record or not check_password_hash(record[1].password_hash, password):
        return jsonify({"error": "unauthorized", "message": "invalid email or password"}), 401

    user, auth_account = record
    failed = _record_login(auth_account)
    if failed:
        return failed

    session_data = _session_payload(user, auth_account, _requested_salon_id(payload.get("salon_id")))
    return jsonify({"token": build_token(user), **session_data}), 200


@bp.post("/auth/staff-login")
def staff_login() -> tuple[dict[str, object], int]:
    """Staff login: the account must also have a staff record in a salon."""
    payload = request.get_json(silent=True) or {}

    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return jsonify({"error": "invalid_payload", "message": "email and password are required"}), 400

    record = _account_for_email(email)
    if not record or not check_password_hash(record[1].password_hash, password):
        return (
            jsonify({"error": "unauthorized", "message": "Invalid email or password. Please check your credentials."}),
            401,
        )

    user, auth_account = record
    staff = staff_record_for(user, _requested_salon_id(payload.get("salon_id")))
    if staff is None:
        return (
            jsonify({
                "error": "not_found",
                "message": "Staff record not found. Please contact your administrator to set up your account.",
            }),
            404,
        )

    failed = _record_login(auth_account)
    if failed:
        return failed

    body = {"token": build_token(user), **_session_payload(user, auth_account, staff.salon_id)}

    # Preload the salon's clients only when the role allows reading them.
    clients: list[dict[str, object]] = []
    if has_permission("clients", "read", user.role, body["permissions"]):
        clients = [
            customer.to_dict()
            for customer in Customer.query.filter_by(salon_id=staff.salon_id).order_by(Customer.name).all()
        ]
    body["clients"] = clients

    return jsonify(body), 200


@bp.get("/auth/me")
@require_auth
def current_session() -> tuple[dict[str, object], int]:
    """Refresh the caller's session data (permissions may have changed)."""
    user = g.current_user
    salon_id = _requested_salon_id(request.args.get("salon_id"))
    return jsonify(_session_payload(user, user.auth_account, salon_id)), 200


@bp.post("/auth/change-password")
@require_auth
def change_password() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    new_password = payload.get("new_password") or ""
    current_password = payload.get("current_password") or ""

    if len(new_password) < MIN_PASSWORD_LENGTH:
        return (
            jsonify({"error": "invalid_payload", "message": f"new_password must be at least {MIN_PASSWORD_LENGTH} characters"}),
            400,
        )

    auth_account = g.current_user.auth_account
    if auth_account is None:
        return jsonify({"error": "not_found", "message": "No login account for this user"}), 404

    # A temporary password was just used to log in, so it is not asked for again.
    if not auth_account.must_change_password and not check_password_hash(auth_account.password_hash, current_password):
        return jsonify({"error": "unauthorized", "message": "current password is incorrect"}), 401

    try:
        auth_account.password_hash = generate_password_hash(new_password)
        auth_account.must_change_password = False
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to change password", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Password updated"}), 200


@bp.post("/auth/generate-session")
@require_service_role
def generate_session() -> tuple[dict[str, object], int]:
    """Issue a fresh token for an existing user (direct login without OTP).
    ---
    tags:
      - Authentication
    parameters:
      - name: X-Service-Role-Key
        in: header
        type: string
        required: true
    responses:
      200:
        description: Token issued
      400:
        description: user_id missing
      404:
        description: User not found
      500:
        description: Service role key not configured
    """
    payload = request.get_json(silent=True) or {}
    user_id = payload.get("user_id")

    if not isinstance(user_id, int) or isinstance(user_id, bool):
        return jsonify({"error": "invalid_payload", "message": "user_id is required"}), 400

    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({"error": "not_found", "message": "User not found"}), 404

    return (
        jsonify({
            "success": True,
            "data": {
                "user_id": user.user_id,
                "email": user.email,
                "phone": user.phone,
                "token": build_token(user),
                "type": "bearer",
            },
        }),
        200,
    )


@bp.post("/onboarding/create-auth-user")
@require_service_role
def create_auth_user() -> tuple[dict[str, object], int]:
    """Create a confirmed login account with a password chosen by an admin."""
    payload = request.get_json(silent=True) or {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return jsonify({"error": "invalid_payload", "message": "Email and password are required"}), 400

    user = User.query.filter_by(email=email).first()
    if user is not None and user.auth_account is not None:
        return jsonify({"error": "conflict", "message": "A user with this email already exists"}), 409

    try:
        if user is None:
            user = User(name=(payload.get("name") or email.split("@")[0]).strip(), email=email, role="staff")
            db.session.add(user)
            db.session.flush()
        db.session.add(
            AuthAccount(
                user_id=user.user_id,
                password_hash=generate_password_hash(password),
                must_change_password=True,
            )
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create auth user", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"success": True, "data": {"user_id": user.user_id, "email": user.email}}), 201


# --- Salons ---


@bp.get("/salons/options")
def list_salon_options() -> tuple[dict[str, object], int]:
    """Salon picker for the signup/staff join forms."""
    try:
        salons = Salon.query.filter(Salon.admin_status != "rejected").order_by(Salon.name.asc()).all()
        return jsonify({"salons": [salon.to_option() for salon in salons]}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch salon options", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/salons")
@require_auth
def list_salons() -> tuple[dict[str, object], int]:
    """List the salons visible to the caller (all of them for super admins).
    ---
    tags:
      - Salons
    parameters:
      - name: query
        in: query
        type: string
      - name: status
        in: query
        type: string
        enum: [pending, approved, rejected]
      - name: page
        in: query
        type: integer
        default: 1
      - name: limit
        in: query
        type: integer
        default: 20
    responses:
      200:
        description: Paginated salons
      400:
        description: Invalid parameters
    """
    user = g.current_user
    try:
        page, limit = parse_pagination(request)
        query = request.args.get("query", "").strip()
        status = request.args.get("status", "").strip()

        salon_query = Salon.query
        if user.role == "salon_admin":
            salon_query = salon_query.filter(Salon.owner_id == user.user_id)
        elif user.role == "staff":
            member_of = db.select(Staff.salon_id).where(Staff.user_id == user.user_id)
            salon_query = salon_query.filter(Salon.salon_id.in_(member_of))
        elif user.role != "super_admin":
            return jsonify({"error": "forbidden", "message": "Salon listing is not available"}), 403

        if query:
            salon_query = salon_query.filter(Salon.name.ilike(f"%{query}%"))
        if status:
            salon_query = salon_query.filter(Salon.admin_status == status)

        total = salon_query.count()
        salons = salon_query.order_by(Salon.created_at.desc()).limit(limit).offset((page - 1) * limit).all()

        return jsonify({"salons": [s.to_dict() for s in salons], "pagination": pagination_meta(page, limit, total)}), 200

    except (ValueError, TypeError) as exc:
        current_app.logger.warning(f"Invalid pagination parameters: {exc}")
        return jsonify({"error": "invalid_parameters"}), 400
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch salons", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/salons/<int:salon_id>")
@require_salon_access
def get_salon(salon_id: int) -> tuple[dict[str, object], int]:
    salon = db.session.get(Salon, salon_id)
    if salon is None:
        return jsonify({"error": "not_found", "message": "Salon not found"}), 404
    return jsonify({"salon": salon.to_dict()}), 200


SALON_EDITABLE_FIELDS = ("name", "owner_name", "email", "phone", "address", "open_time", "close_time")


@bp.put("/salons/<int:salon_id>")
@require_permission("settings", "update")
def update_salon(salon_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}

    salon = db.session.get(Salon, salon_id)
    if salon is None:
        return jsonify({"error": "not_found", "message": "Salon not found"}), 404

    if "name" in payload and not (payload.get("name") or "").strip():
        return jsonify({"error": "invalid_payload", "message": "name cannot be empty"}), 400

    try:
        for field in SALON_EDITABLE_FIELDS:
            if field in payload:
                value = payload.get(field)
                setattr(salon, field, value.strip() if isinstance(value, str) else value)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update salon", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"salon": salon.to_dict()}), 200


@bp.put("/salons/<int:salon_id>/status")
@require_super_admin
def update_salon_status(salon_id: int) -> tuple[dict[str, object], int]:
    """Approve or reject a newly registered salon."""
    payload = request.get_json(silent=True) or {}
    status = (payload.get("status") or "").strip().lower()

    if status not in ("pending", "approved", "rejected"):
        return jsonify({"error": "invalid_payload", "message": "status must be pending, approved or rejected"}), 400

    salon = db.session.get(Salon, salon_id)
    if salon is None:
        return jsonify({"error": "not_found", "message": "Salon not found"}), 404

    try:
        salon.admin_status = status
        salon.rejected_reason = ((payload.get("reason") or "").strip() or None) if status == "rejected" else None
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update salon status", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"salon": salon.to_dict()}), 200


# --- Staff ---

STAFF_TEXT_FIELDS = ("name", "email", "phone", "address", "department", "shift_open_time", "shift_close_time")


def _check_staff_login(staff: Staff, user_id: object) -> str | None:
    """Validate linking ``staff`` to a login; joining a second salon goes through onboarding."""
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        return "user_id must be an integer"

    user = db.session.get(User, user_id)
    if user is None:
        return "user_id does not reference an existing user"
    if is_admin(user.role):
        return "user_id belongs to an administrator account"

    linked = Staff.query.filter(Staff.user_id == user_id)
    if staff.staff_id is not None:
        linked = linked.filter(Staff.staff_id != staff.staff_id)
    other = linked.first()
    if other is not None and other.salon_id != staff.salon_id:
        return "user_id is already linked to staff in another salon"
    if other is not None:
        return "user_id is already linked to another staff member"

    if user.role == "customer":
        user.role = "staff"
    return None


def _apply_staff_fields(staff: Staff, payload: dict) -> str | None:
    """Copy editable fields onto ``staff``; returns an error message on bad input."""
    for field in STAFF_TEXT_FIELDS:
        if field in payload:
            value = payload.get(field)
            if value is not None and not isinstance(value, str):
                return f"{field} must be a string"
            value = (value or "").strip() or None
            if field == "email" and value:
                value = value.lower()
            setattr(staff, field, value)

    if not staff.name:
        return "name is required"

    if "commission_percent" in payload:
        commission = payload.get("commission_percent")
        if isinstance(commission, bool) or not isinstance(commission, (int, float)) or not 0 <= commission <= 100:
            return "commission_percent must be between 0 and 100"
        staff.commission_percent = float(commission)

    if "base_salary_cents" in payload:
        salary = payload.get("base_salary_cents")
        if isinstance(salary, bool) or not isinstance(salary, int) or salary < 0:
            return "base_salary_cents must be a non-negative integer"
        staff.base_salary_cents = salary

    if "user_id" in payload:
        user_id = payload.get("user_id")
        if user_id is not None:
            error = _check_staff_login(staff, user_id)
            if error:
                return error
        staff.user_id = user_id

    return None


def _get_staff(salon_id: int, staff_id: int) -> Staff | None:
    return Staff.query.filter_by(staff_id=staff_id, salon_id=salon_id).first()


@bp.get("/salons/<int:salon_id>/staff")
@require_permission("staff", "read")
def list_staff(salon_id: int) -> tuple[dict[str, object], int]:
    """Get staff members for a salon, optionally filtered by name/email search or role.
    ---
    tags:
      - Staff
    parameters:
      - name: salon_id
        in: path
        type: integer
        required: true
      - name: search
        in: query
        type: string
      - name: role
        in: query
        type: string
      - name: category_id
        in: query
        type: integer
    responses:
      200:
        description: List of staff members
      500:
        description: Server error
    """
    try:
        query = Staff.query.filter_by(salon_id=salon_id)

        search = request.args.get("search", "").strip()
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Staff.name.ilike(pattern), Staff.email.ilike(pattern), Staff.phone.ilike(pattern)))

        role = request.args.get("role", "").strip()
        if role:
            query = query.filter(Staff.role_name == role)

        category_id = request.args.get("category_id", type=int)
        if category_id is not None:
            query = query.join(StaffCategoryAssignment).filter(StaffCategoryAssignment.category_id == category_id)

        staff_members = query.order_by(Staff.name.asc()).all()
        return jsonify({"staff": [member.to_dict() for member in staff_members]}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch staff members", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/salons/<int:salon_id>/staff/<int:staff_id>")
@require_permission("staff", "read")
def get_staff(salon_id: int, staff_id: int) -> tuple[dict[str, object], int]:
    staff = _get_staff(salon_id, staff_id)
    if staff is None:
        return jsonify({"error": "not_found", "message": "Staff member not found"}), 404
    return jsonify({"staff": staff.to_dict()}), 200


@bp.post("/salons/<int:salon_id>/staff")
@require_permission("staff", "create")
def create_staff(salon_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}

    staff = Staff(salon_id=salon_id)
    error = _apply_staff_fields(staff, payload)
    if error:
        return jsonify({"error": "invalid_payload", "message": error}), 400

    try:
        db.session.add(staff)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create staff member", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"staff": staff.to_dict()}), 201


@bp.put("/salons/<int:salon_id>/staff/<int:staff_id>")
@require_permission("staff", "update")
def update_staff(salon_id: int, staff_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}

    try:
        staff = _get_staff(salon_id, staff_id)
        if staff is None:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        error = _apply_staff_fields(staff, payload)
        if error:
            db.session.rollback()
            return jsonify({"error": "invalid_payload", "message": error}), 400

        db.session.commit()
        return jsonify({"staff": staff.to_dict()}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update staff member", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.delete("/salons/<int:salon_id>/staff/<int:staff_id>")
@require_permission("staff", "delete")
def delete_staff(salon_id: int, staff_id: int) -> tuple[dict[str, str], int]:
    try:
        staff = _get_staff(salon_id, staff_id)
        if staff is None:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        avatar_url = staff.avatar_url
        # Keep booking and stock history; only the staff link is dropped.
        Appointment.query.filter_by(staff_id=staff_id).update({"staff_id": None})
        StockMovement.query.filter_by(staff_id=staff_id).update({"staff_id": None})
        db.session.delete(staff)
        db.session.commit()

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete staff member", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    delete_image(current_app.config["AWS_S3_BUCKET"], avatar_url)
    return jsonify({"message": "Staff member deleted successfully"}), 200


@bp.post("/salons/<int:salon_id>/staff/<int:staff_id>/avatar")
@require_permission("staff", "update")
def upload_staff_avatar(salon_id: int, staff_id: int) -> tuple[dict[str, object], int]:
    """Upload a profile picture (multipart field ``image``)."""
    staff = _get_staff(salon_id, staff_id)
    if staff is None:
        return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

    if "image" not in request.files:
        return jsonify({"error": "invalid_payload", "message": "image file is required"}), 400

    bucket = current_app.config["AWS_S3_BUCKET"]
    previous_url = staff.avatar_url
    try:
        _, url = upload_image(request.files["image"], bucket, f"salons/{salon_id}/staff/{staff_id}")
    except InvalidImage as exc:
        return jsonify({"error": "invalid_payload", "message": str(exc)}), 400
    except Exception as exc:
        current_app.logger.exception("Failed to upload staff avatar", exc_info=exc)
        return jsonify({"error": "upload_failed", "message": "Image upload failed"}), 500

    try:
        staff.avatar_url = url
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save staff avatar", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    delete_image(bucket, previous_url)
    return jsonify({"staff": staff.to_dict()}), 200


def _assign_role(staff: Staff, role: StaffRole) -> None:
    if staff.role_assignment is None:
        staff.role_assignment = StaffRoleAssignment(role=role)
    else:
        staff.role_assignment.role = role
    staff.role_name = role.name


@bp.put("/salons/<int:salon_id>/staff/<int:staff_id>/role")
@require_permission("rolesPermissions", "update")
def assign_staff_role(salon_id: int, staff_id: int) -> tuple[dict[str, object], int]:
    """Assign (or replace) the staff member's role."""
    payload = request.get_json(silent=True) or {}
    role_id = payload.get("role_id")

    if not isinstance(role_id, int) or isinstance(role_id, bool):
        return jsonify({"error": "invalid_payload", "message": "role_id is required"}), 400

    try:
        staff = _get_staff(salon_id, staff_id)
        if staff is None:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        role = StaffRole.query.filter_by(role_id=role_id, salon_id=salon_id).first()
        if role is None:
            return jsonify({"error": "not_found", "message": "Role not found"}), 404

        _assign_role(staff, role)
        db.session.commit()

        db.session.refresh(staff)
        return (
            jsonify({
                "staff": staff.to_dict(),
                "dependency_warnings": check_all_dependencies(role.permissions),
            }),
            200,
        )

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to assign role to staff", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.delete("/salons/<int:salon_id>/staff/<int:staff_id>/role")
@require_permission("rolesPermissions", "update")
def remove_staff_role(salon_id: int, staff_id: int) -> tuple[dict[str, object], int]:
    try:
        staff = _get_staff(salon_id, staff_id)
        if staff is None:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        staff.role_assignment = None
        staff.role_name = None
        db.session.commit()
        return jsonify({"staff": staff.to_dict()}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to remove role from staff", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/staff-categories")
@require_super_admin
def create_staff_category() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    name = (payload.get("name") or "").strip()
    if not name:
        return jsonify({"error": "invalid_payload", "message": "name is required"}), 400

    if StaffCategory.query.filter(func.lower(StaffCategory.name) == name.lower()).first():
        return jsonify({"error": "conflict", "message": "A category with this name already exists"}), 409

    try:
        category = StaffCategory(name=name, image_url=(payload.get("image_url") or "").strip() or None)
        db.session.add(category)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create staff category", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"category": category.to_dict()}), 201


@bp.get("/salons/<int:salon_id>/staff/categories")
@require_permission("staff", "read")
def list_staff_categories(salon_id: int) -> tuple[dict[str, object], int]:
    """Get all staff categories with the number of this salon's staff in each.
    ---
    tags:
      - Staff
    parameters:
      - name: salon_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Categories ordered by name
      500:
        description: Server error
    """
    try:
        counts = dict(
            db.session.query(StaffCategoryAssignment.category_id, func.count(StaffCategoryAssignment.assignment_id))
            .filter(StaffCategoryAssignment.salon_id == salon_id)
            .group_by(StaffCategoryAssignment.category_id)
            .all()
        )
        categories = StaffCategory.query.order_by(StaffCategory.name.asc()).all()
        return (
            jsonify({
                "categories": [
                    {**category.to_dict(), "staff_count": counts.get(category.category_id, 0)}
                    for category in categories
                ]
            }),
            200,
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch staff categories", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/salons/<int:salon_id>/staff/<int:staff_id>/categories")
@require_permission("staff", "update")
def assign_staff_category(salon_id: int, staff_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    category_id = payload.get("category_id")

    if not isinstance(category_id, int) or isinstance(category_id, bool):
        return jsonify({"error": "invalid_payload", "message": "category_id is required"}), 400

    try:
        staff = _get_staff(salon_id, staff_id)
        if staff is None:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        category = db.session.get(StaffCategory, category_id)
        if category is None:
            return jsonify({"error": "not_found", "message": "Category not found"}), 404

        if any(assignment.category_id == category_id for assignment in staff.category_assignments):
            return jsonify({"error": "conflict", "message": "Staff member is already in this category"}), 409

        staff.category_assignments.append(StaffCategoryAssignment(category=category, salon_id=salon_id))
        db.session.commit()
        return jsonify({"staff": staff.to_dict()}), 201

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to assign staff category", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.delete("/salons/<int:salon_id>/staff/<int:staff_id>/categories/<int:category_id>")
@require_permission("staff", "update")
def remove_staff_category(salon_id: int, staff_id: int, category_id: int) -> tuple[dict[str, object], int]:
    try:
        staff = _get_staff(salon_id, staff_id)
        if staff is None:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        assignment = next((a for a in staff.category_assignments if a.category_id == category_id), None)
        if assignment is None:
            return jsonify({"error": "not_found", "message": "Staff member is not in this category"}), 404

        staff.category_assignments.remove(assignment)
        db.session.commit()
        return jsonify({"staff": staff.to_dict()}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to remove staff category", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/salons/<int:salon_id>/staff/<int:staff_id>/permissions")
@require_permission("rolesPermissions", "read")
def get_staff_permissions(salon_id: int, staff_id: int) -> tuple[dict[str, object], int]:
    """Effective permissions for a staff member plus unmet module dependencies."""
    staff = _get_staff(salon_id, staff_id)
    if staff is None:
        return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

    role = staff.role
    permissions = (role.permissions if role else None) or {}
    return (
        jsonify({
            "staff_id": staff.staff_id,
            "role": {"id": role.role_id, "name": role.name} if role else None,
            "permissions": permissions,
            "module_access": module_access_map("staff", permissions),
            "dependency_warnings": check_all_dependencies(permissions),
        }),
        200,
    )


# --- Roles & permissions ---


def _get_role(salon_id: int, role_id: int) -> StaffRole | None:
    return StaffRole.query.filter_by(role_id=role_id, salon_id=salon_id).first()


def _save_role_permissions(role: StaffRole, permissions: dict[str, dict[str, bool]]) -> None:
    if role.permission_record is None:
        role.permission_record = StaffRolePermission(permissions=permissions)
    else:
        role.permission_record.permissions = permissions


@bp.get("/permissions/modules")
def list_permission_modules() -> tuple[dict[str, object], int]:
    """Module keys, display names and the dependency table for the role editor."""
    return (
        jsonify({
            "modules": [{"key": key, "name": name} for key, name in MODULE_NAMES.items()],
            "dependencies": [dep.to_dict() for dep in MODULE_DEPENDENCIES],
        }),
        200,
    )


@bp.post("/permissions/dependency-check")
def dependency_check() -> tuple[dict[str, object], int]:
    """Check a draft permission set before it is saved.
    ---
    tags:
      - Roles
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            permissions:
              type: object
            module:
              type: string
    responses:
      200:
        description: Warnings keyed by module (or for one module)
      400:
        description: Invalid permission payload
    """
    payload = request.get_json(silent=True) or {}
    try:
        permissions = normalize_permissions(payload.get("permissions"))
    except InvalidPermissions as exc:
        return jsonify({"error": "invalid_payload", "message": str(exc)}), 400

    module_key = payload.get("module")
    if module_key is not None:
        if module_key not in MODULE_NAMES:
            return jsonify({"error": "invalid_payload", "message": f"unknown module: {module_key}"}), 400
        return jsonify(check_module_dependencies(module_key, permissions).to_dict()), 200

    warnings = check_all_dependencies(permissions)
    return jsonify({"has_warning": bool(warnings), "warnings": warnings}), 200


@bp.get("/salons/<int:salon_id>/roles")
@require_permission("rolesPermissions", "read")
def list_roles(salon_id: int) -> tuple[dict[str, object], int]:
    try:
        roles = StaffRole.query.filter_by(salon_id=salon_id).order_by(StaffRole.name.asc()).all()
        return jsonify({"roles": [role.to_dict(include_permissions=True) for role in roles]}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch roles", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/salons/<int:salon_id>/roles/<int:role_id>")
@require_permission("rolesPermissions", "read")
def get_role(salon_id: int, role_id: int) -> tuple[dict[str, object], int]:
    role = _get_role(salon_id, role_id)
    if role is None:
        return jsonify({"error": "not_found", "message": "Role not found"}), 404
    return jsonify({"role": role.to_dict(include_permissions=True)}), 200


@bp.post("/salons/<int:salon_id>/roles")
@require_permission("rolesPermissions", "create")
def create_role(salon_id: int) -> tuple[dict[str, object], int]:
    """Create a role, optionally with its initial permissions.
    ---
    tags:
      - Roles
    responses:
      201:
        description: Role created; includes dependency warnings for the permissions
      400:
        description: Missing name or invalid permissions
      409:
        description: A role with this name already exists in the salon
    """
    payload = request.get_json(silent=True) or {}
    name = (payload.get("name") or "").strip()

    if not name:
        return jsonify({"error": "invalid_payload", "message": "name is required"}), 400

    try:
        permissions = normalize_permissions(payload.get("permissions"))
    except InvalidPermissions as exc:
        return jsonify({"error": "invalid_payload", "message": str(exc)}), 400

    exists = StaffRole.query.filter(
        StaffRole.salon_id == salon_id, func.lower(StaffRole.name) == name.lower()
    ).first()
    if exists:
        return jsonify({"error": "conflict", "message": "A role with this name already exists"}), 409

    try:
        role = StaffRole(salon_id=salon_id, name=name, description=(payload.get("description") or "").strip() or None)
        if "permissions" in payload:
            _save_role_permissions(role, permissions)
        db.session.add(role)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "conflict", "message": "A role with this name already exists"}), 409
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create role", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return (
        jsonify({
            "role": role.to_dict(include_permissions=True),
            "dependency_warnings": check_all_dependencies(permissions),
        }),
        201,
    )


@bp.put("/salons/<int:salon_id>/roles/<int:role_id>")
@require_permission("rolesPermissions", "update")
def update_role(salon_id: int, role_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}

    role = _get_role(salon_id, role_id)
    if role is None:
        return jsonify({"error": "not_found", "message": "Role not found"}), 404

    try:
        if "name" in payload:
            name = (payload.get("name") or "").strip()
            if not name:
                return jsonify({"error": "invalid_payload", "message": "name cannot be empty"}), 400
            clash = StaffRole.query.filter(
                StaffRole.salon_id == salon_id,
                StaffRole.role_id != role_id,
                func.lower(StaffRole.name) == name.lower(),
            ).first()
            if clash:
                return jsonify({"error": "conflict", "message": "A role with this name already exists"}), 409
            role.name = name
            # Keep the denormalised label on assigned staff in step.
            for assignment in role.assignments:
                assignment.staff.role_name = name

        if "description" in payload:
            role.description = (payload.get("description") or "").strip() or None

        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update role", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"role": role.to_dict(include_permissions=True)}), 200


@bp.delete("/salons/<int:salon_id>/roles/<int:role_id>")
@require_permission("rolesPermissions", "delete")
def delete_role(salon_id: int, role_id: int) -> tuple[dict[str, object], int]:
    """Delete a role, unassigning it from staff and dropping its permissions."""
    try:
        role = _get_role(salon_id, role_id)
        if role is None:
            return jsonify({"error": "not_found", "message": "Role not found"}), 404

        cleared = 0
        for assignment in list(role.assignments):
            assignment.staff.role_name = None
            cleared += 1

        db.session.delete(role)
        db.session.commit()

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete role", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Deleted role %s, cleared role for %s staff member(s)", role_id, cleared)
    return jsonify({"message": "Role deleted successfully", "unassigned_staff": cleared}), 200


@bp.get("/salons/<int:salon_id>/roles/<int:role_id>/permissions")
@require_permission("rolesPermissions", "read")
def get_role_permissions(salon_id: int, role_id: int) -> tuple[dict[str, object], int]:
    role = _get_role(salon_id, role_id)
    if role is None:
        return jsonify({"error": "not_found", "message": "Role not found"}), 404

    permissions = role.permissions
    return (
        jsonify({
            "role_id": role.role_id,
            "permissions": permissions,
            "dependency_warnings": check_all_dependencies(permissions),
        }),
        200,
    )


@bp.put("/salons/<int:salon_id>/roles/<int:role_id>/permissions")
@require_permission("rolesPermissions", "update")
def save_role_permissions(salon_id: int, role_id: int) -> tuple[dict[str, object], int]:
    """Replace a role's permission set.

    The save goes through even when dependencies are unmet; the warnings are
    returned so the editor can show them.
    """
    payload = request.get_json(silent=True) or {}
    if "permissions" not in payload:
        return jsonify({"error": "invalid_payload", "message": "permissions is required"}), 400

    try:
        permissions = normalize_permissions(payload.get("permissions"))
    except InvalidPermissions as exc:
        return jsonify({"error": "invalid_payload", "message": str(exc)}), 400

    role = _get_role(salon_id, role_id)
    if role is None:
        return jsonify({"error": "not_found", "message": "Role not found"}), 404

    try:
        _save_role_permissions(role, permissions)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save role permissions", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return (
        jsonify({
            "role_id": role.role_id,
            "permissions": role.permissions,
            "dependency_warnings": check_all_dependencies(permissions),
        }),
        200,
    )


# --- Onboarding requests ---


@bp.post("/onboarding/requests")
def create_onboarding_request() -> tuple[dict[str, object], int]:
    """Ask to join a salon as staff.
    ---
    tags:
      - Onboarding
    responses:
      201:
        description: Request created (or a rejected one reopened)
      400:
        description: Missing email or salon_id
      404:
        description: Salon not found
      409:
        description: A pending or approved request already exists
    """
    payload = request.get_json(silent=True) or {}
    email = (payload.get("email") or "").strip().lower()
    salon_id = payload.get("salon_id")

    if not email or not isinstance(salon_id, int) or isinstance(salon_id, bool):
        return jsonify({"error": "invalid_payload", "message": "email and salon_id are required"}), 400

    if db.session.get(Salon, salon_id) is None:
        return jsonify({"error": "not_found", "message": "Salon not found"}), 404

    try:
        existing = OnboardingRequest.query.filter_by(email=email, salon_id=salon_id).first()
        if existing is not None:
            if existing.status == "pending":
                return (
                    jsonify({"error": "conflict", "message": "A pending request already exists for this email and salon."}),
                    409,
                )
            if existing.status == "approved":
                return (
                    jsonify({"error": "conflict", "message": "This request has already been approved. Please try logging in."}),
                    409,
                )
            # Rejected requests may be resubmitted.
            existing.status = "pending"
            existing.rejected_at = None
            existing.rejected_by = None
            name = (payload.get("name") or "").strip()
            if name:
                existing.name = name
            db.session.commit()
            return jsonify({"request": existing.to_dict()}), 201

        onboarding_request = OnboardingRequest(
            email=email,
            salon_id=salon_id,
            name=(payload.get("name") or "").strip() or None,
        )
        db.session.add(onboarding_request)
        db.session.commit()

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create onboarding request", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"request": onboarding_request.to_dict()}), 201


@bp.get("/onboarding/requests/lookup")
def lookup_onboarding_request() -> tuple[dict[str, object], int]:
    """Status of a join request, used by the staff login page."""
    email = (request.args.get("email") or "").strip().lower()
    try:
        salon_id = int(request.args.get("salon_id", ""))
    except ValueError:
        return jsonify({"error": "invalid_query", "message": "email and salon_id are required"}), 400

    if not email:
        return jsonify({"error": "invalid_query", "message": "email and salon_id are required"}), 400

    onboarding_request = OnboardingRequest.query.filter_by(email=email, salon_id=salon_id).first()
    if onboarding_request is None:
        return jsonify({"error": "not_found", "message": "No request found"}), 404

    return jsonify({"request": onboarding_request.to_dict()}), 200


@bp.get("/salons/<int:salon_id>/onboarding/requests")
@require_permission("onboardRequests", "read")
def list_onboarding_requests(salon_id: int) -> tuple[dict[str, object], int]:
    status = request.args.get("status", "").strip()
    try:
        query = OnboardingRequest.query.filter_by(salon_id=salon_id)
        if status:
            query = query.filter(OnboardingRequest.status == status)
        requests_ = query.order_by(OnboardingRequest.created_at.desc(), OnboardingRequest.request_id.desc()).all()
        return jsonify({"requests": [item.to_dict() for item in requests_]}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch onboarding requests", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


def _pending_request(salon_id: int, request_id: int):
    onboarding_request = OnboardingRequest.query.filter_by(request_id=request_id, salon_id=salon_id).first()
    if onboarding_request is None:
        return None, (jsonify({"error": "not_found", "message": "Request not found"}), 404)
    if onboarding_request.status != "pending":
        return None, (
            jsonify({"error": "conflict", "message": f"Request is already {onboarding_request.status}"}),
            409,
        )
    return onboarding_request, None


@bp.post("/salons/<int:salon_id>/onboarding/requests/<int:request_id>/approve")
@require_permission("onboardRequests", "update")
def approve_onboarding_request(salon_id: int, request_id: int) -> tuple[dict[str, object], int]:
    """Approve a join request: create the login, the staff record and send access details.
    ---
    tags:
      - Onboarding
    parameters:
      - name: body
        in: body
        schema:
          type: object
          properties:
            role_id:
              type: integer
            name:
              type: string
            crm_link:
              type: string
    responses:
      200:
        description: Approved; includes the temporary password when a login was created
      404:
        description: Request or role not found
      409:
        description: Request is not pending
    """
    payload = request.get_json(silent=True) or {}
    approver = g.current_user

    onboarding_request, error = _pending_request(salon_id, request_id)
    if error:
        return error

    role = None
    role_id = payload.get("role_id")
    if role_id is not None:
        role = _get_role(salon_id, role_id) if isinstance(role_id, int) else None
        if role is None:
            return jsonify({"error": "not_found", "message": "Role not found"}), 404

    email = onboarding_request.email
    name = (payload.get("name") or onboarding_request.name or email.split("@")[0]).strip()
    temporary_password = None

    try:
        user = User.query.filter_by(email=email).first()
        if user is not None and is_admin(user.role):
            return (
                jsonify({
                    "error": "conflict",
                    "message": "This email belongs to an administrator account and cannot join as staff.",
                }),
                409,
            )
        if user is None:
            user = User(name=name, email=email, role="staff")
            db.session.add(user)
            db.session.flush()
        elif user.role == "customer":
            user.role = "staff"

        if user.auth_account is None:
            temporary_password = generate_temporary_password()
            db.session.add(
                AuthAccount(
                    user_id=user.user_id,
                    password_hash=generate_password_hash(temporary_password),
                    must_change_password=True,
                )
            )

        staff = Staff.query.filter_by(user_id=user.user_id, salon_id=salon_id).first()
        if staff is None:
            staff = Staff(salon_id=salon_id, user_id=user.user_id, name=name, email=email, phone=user.phone)
            db.session.add(staff)
            db.session.flush()

        if role is not None:
            _assign_role(staff, role)

        onboarding_request.status = "approved"
        onboarding_request.approved_at = datetime.now(timezone.utc)
        onboarding_request.approved_by = approver.user_id
        onboarding_request.auth_user_id = user.user_id
        db.session.commit()

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to approve onboarding request", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    salon = db.session.get(Salon, salon_id)
    email_sent = False
    try:
        send_permissions_email(
            PermissionsEmail(
                to=email,
                staff_name=name,
                salon_owner_name=salon.owner_name or salon.name,
                salon_owner_email=salon.email,
                crm_link=payload.get("crm_link") or current_app.config["SITE_URL"],
                permissions=role.permissions if role else None,
            ),
            current_app.config,
        )
        email_sent = True
    except (EmailNotConfigured, EmailDeliveryError) as exc:
        current_app.logger.warning("Access email for onboarding request %s not sent: %s", request_id, exc)

    return (
        jsonify({
            "request": onboarding_request.to_dict(),
            "staff": staff.to_dict(),
            "temporary_password": temporary_password,
            "email_sent": email_sent,
        }),
        200,
    )


@bp.post("/salons/<int:salon_id>/onboarding/requests/<int:request_id>/reject")
@require_permission("onboardRequests", "update")
def reject_onboarding_request(salon_id: int, request_id: int) -> tuple[dict[str, object], int]:
    onboarding_request, error = _pending_request(salon_id, request_id)
    if error:
        return error

    try:
        onboarding_request.status = "rejected"
        onboarding_request.rejected_at = datetime.now(timezone.utc)
        onboarding_request.rejected_by = g.current_user.user_id
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to reject onboarding request", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"request": onboarding_request.to_dict()}), 200


def register_routes(app: Flask) -> None:
    from .routes_extended import bp_ext

    prefix = app.config.get("API_PREFIX", "/api")
    app.register_blueprint(bp, url_prefix=prefix)
    app.register_blueprint(bp_ext, url_prefix=prefix)

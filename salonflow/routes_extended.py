"""Salon operations routes: clients, services, appointments, deals, promotions,
inventory, payroll and outbound email."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .auth import require_auth, require_permission
from .email_service import (EmailDeliveryError, EmailNotConfigured, PermissionsEmail,
                            send_permissions_email)
from .extensions import db
from .models import (Appointment, AppointmentItem, Customer, Deal, Product, SalonDiscount,
                     Service, Staff, StockMovement)
from .storage import InvalidImage, delete_image, upload_image
from .utils import (pagination_meta, parse_cents, parse_date, parse_datetime,
                    parse_optional_date, parse_pagination, parse_percent, utc_naive_now)

bp_ext = Blueprint("api_ext", __name__)

DEFAULT_DEAL_DURATION_MINUTES = 30
DISCOUNT_SYNC_WINDOW = timedelta(hours=24)
PAYROLL_DEFAULT_DAYS = 30


def _invalid(message: str):
    return jsonify({"error": "invalid_payload", "message": message}), 400


def _not_found(message: str):
    return jsonify({"error": "not_found", "message": message}), 404


def _database_error(exc: SQLAlchemyError, action: str):
    db.session.rollback()
    current_app.logger.exception(f"Failed to {action}", exc_info=exc)
    return jsonify({"error": "database_error"}), 500


def _optional_text(payload: dict, field: str) -> str | None:
    value = payload.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{field} must be a string")
    return value.strip() or None


# CLIENTS


def _email_taken(salon_id: int, email: str | None, exclude_id: int | None = None) -> bool:
    if not email:
        return False
    query = Customer.query.filter(Customer.salon_id == salon_id, func.lower(Customer.email) == email.lower())
    if exclude_id is not None:
        query = query.filter(Customer.customer_id != exclude_id)
    return query.first() is not None


@bp_ext.get("/salons/<int:salon_id>/clients")
@require_permission("clients", "read")
def list_clients(salon_id: int) -> tuple[dict[str, object], int]:
    """Search the salon's clients by name, email or phone.
    ---
    tags:
      - Clients
    parameters:
      - name: salon_id
        in: path
        type: integer
        required: true
      - name: search
        in: query
        type: string
      - name: page
        in: query
        type: integer
        default: 1
      - name: limit
        in: query
        type: integer
        default: 20
        maximum: 100
    responses:
      200:
        description: Paginated clients
      400:
        description: Invalid pagination parameters
    """
    try:
        page, limit = parse_pagination(request)
        query = Customer.query.filter_by(salon_id=salon_id)

        search = request.args.get("search", "").strip()
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(Customer.name.ilike(pattern), Customer.email.ilike(pattern), Customer.phone.ilike(pattern))
            )

        total = query.count()
        clients = query.order_by(Customer.name.asc()).limit(limit).offset((page - 1) * limit).all()

        return (
            jsonify({"clients": [client.to_dict() for client in clients], "pagination": pagination_meta(page, limit, total)}),
            200,
        )

    except (ValueError, TypeError) as exc:
        current_app.logger.warning(f"Invalid pagination parameters: {exc}")
        return jsonify({"error": "invalid_parameters"}), 400
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch clients", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_ext.get("/salons/<int:salon_id>/clients/stats")
@require_permission("clients", "read")
def client_stats(salon_id: int) -> tuple[dict[str, object], int]:
    try:
        base = Customer.query.filter_by(salon_id=salon_id)
        cutoff = utc_naive_now() - timedelta(days=30)
        return (
            jsonify({
                "total": base.count(),
                "online": base.filter(Customer.activity_status == "online").count(),
                "offline": base.filter(Customer.activity_status == "offline").count(),
                "new_last_30_days": base.filter(Customer.created_at >= cutoff).count(),
            }),
            200,
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to compute client stats", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_ext.get("/salons/<int:salon_id>/clients/<int:client_id>")
@require_permission("clients", "read")
def get_client(salon_id: int, client_id: int) -> tuple[dict[str, object], int]:
    """Client profile with appointment history, newest first."""
    client = Customer.query.filter_by(customer_id=client_id, salon_id=salon_id).first()
    if client is None:
        return _not_found("Client not found")

    appointments = (
        Appointment.query.filter_by(salon_id=salon_id, customer_id=client_id)
        .order_by(Appointment.starts_at.desc())
        .all()
    )
    total_spent = sum(a.bill_cents for a in appointments if a.payment_status == "paid")

    return (
        jsonify({
            "client": client.to_dict(),
            "appointments": [a.to_dict() for a in appointments],
            "visits": sum(1 for a in appointments if a.status == "past"),
            "total_spent_cents": total_spent,
        }),
        200,
    )


@bp_ext.post("/salons/<int:salon_id>/clients")
@require_permission("clients", "create")
def create_client(salon_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}

    try:
        name = _optional_text(payload, "name")
        email = _optional_text(payload, "email")
        client = Customer(
            salon_id=salon_id,
            name=name,
            email=email.lower() if email else None,
            phone=_optional_text(payload, "phone"),
            gender=_optional_text(payload, "gender"),
            notes=_optional_text(payload, "notes"),
        )
    except ValueError as exc:
        return _invalid(str(exc))

    if not name:
        return _invalid("name is required")

    if _email_taken(salon_id, client.email):
        return jsonify({"error": "conflict", "message": "A client with this email already exists"}), 409

    try:
        db.session.add(client)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "conflict", "message": "A client with this email already exists"}), 409
    except SQLAlchemyError as exc:
        return _database_error(exc, "create client")

    return jsonify({"client": client.to_dict()}), 201


@bp_ext.put("/salons/<int:salon_id>/clients/<int:client_id>")
@require_permission("clients", "update")
def update_client(salon_id: int, client_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}

    client = Customer.query.filter_by(customer_id=client_id, salon_id=salon_id).first()
    if client is None:
        return _not_found("Client not found")

    try:
        updates = {
            field: _optional_text(payload, field)
            for field in ("name", "email", "phone", "gender", "notes")
            if field in payload
        }
    except ValueError as exc:
        return _invalid(str(exc))

    if "name" in updates and not updates["name"]:
        return _invalid("name cannot be empty")
    if updates.get("email"):
        updates["email"] = updates["email"].lower()
        if _email_taken(salon_id, updates["email"], exclude_id=client_id):
            return jsonify({"error": "conflict", "message": "A client with this email already exists"}), 409

    try:
        for field, value in updates.items():
            setattr(client, field, value)
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "update client")

    return jsonify({"client": client.to_dict()}), 200


@bp_ext.put("/salons/<int:salon_id>/clients/<int:client_id>/activity-status")
@require_permission("clients", "update")
def update_client_activity(salon_id: int, client_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    status = payload.get("activity_status")
    if status not in ("online", "offline"):
        return _invalid("activity_status must be online or offline")

    client = Customer.query.filter_by(customer_id=client_id, salon_id=salon_id).first()
    if client is None:
        return _not_found("Client not found")

    try:
        client.activity_status = status
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "update client activity status")

    return jsonify({"client": client.to_dict()}), 200


@bp_ext.delete("/salons/<int:salon_id>/clients/<int:client_id>")
@require_permission("clients", "delete")
def delete_client(salon_id: int, client_id: int) -> tuple[dict[str, str], int]:
    client = Customer.query.filter_by(customer_id=client_id, salon_id=salon_id).first()
    if client is None:
        return _not_found("Client not found")

    if Appointment.query.filter_by(customer_id=client_id).first() is not None:
        return (
            jsonify({"error": "conflict", "message": "Client has appointments and cannot be deleted"}),
            409,
        )

    try:
        db.session.delete(client)
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "delete client")

    return jsonify({"message": "Client deleted successfully"}), 200


# SERVICES


def _apply_service_fields(service: Service, payload: dict, *, partial: bool) -> None:
    if not partial or "name" in payload:
        name = _optional_text(payload, "name")
        if not name:
            raise ValueError("name is required")
        service.name = name
    if not partial or "price_cents" in payload:
        service.price_cents = parse_cents(payload.get("price_cents"), "price_cents")
    if not partial or "duration_minutes" in payload:
        duration = payload.get("duration_minutes")
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValueError("duration_minutes must be a positive integer")
        service.duration_minutes = duration
    for field in ("description", "gender"):
        if field in payload:
            setattr(service, field, _optional_text(payload, field))
    if "service_discount" in payload:
        value = payload.get("service_discount")
        service.service_discount = None if value is None else parse_percent(value, "service_discount")


@bp_ext.get("/salons/<int:salon_id>/services")
@require_permission("services", "read")
def list_services(salon_id: int) -> tuple[dict[str, object], int]:
    try:
        services = Service.query.filter_by(salon_id=salon_id).order_by(Service.name.asc()).all()
        return jsonify({"services": [service.to_dict() for service in services]}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch services", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_ext.get("/salons/<int:salon_id>/services/<int:service_id>")
@require_permission("services", "read")
def get_service(salon_id: int, service_id: int) -> tuple[dict[str, object], int]:
    service = Service.query.filter_by(service_id=service_id, salon_id=salon_id).first()
    if service is None:
        return _not_found("Service not found")
    return jsonify({"service": service.to_dict()}), 200


@bp_ext.post("/salons/<int:salon_id>/services")
@require_permission("services", "create")
def create_service(salon_id: int) -> tuple[dict[str, object], int]:
    """Create a service.
    ---
    tags:
      - Services
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            price_cents:
              type: integer
            duration_minutes:
              type: integer
            description:
              type: string
            gender:
              type: string
          required:
            - name
            - price_cents
            - duration_minutes
    responses:
      201:
        description: Service created
      400:
        description: Invalid payload
    """
    payload = request.get_json(silent=True) or {}
    service = Service(salon_id=salon_id)
    try:
        _apply_service_fields(service, payload, partial=False)
    except ValueError as exc:
        return _invalid(str(exc))

    try:
        db.session.add(service)
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "create service")

    return jsonify({"service": service.to_dict()}), 201


@bp_ext.put("/salons/<int:salon_id>/services/<int:service_id>")
@require_permission("services", "update")
def update_service(salon_id: int, service_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    service = Service.query.filter_by(service_id=service_id, salon_id=salon_id).first()
    if service is None:
        return _not_found("Service not found")

    try:
        _apply_service_fields(service, payload, partial=True)
    except ValueError as exc:
        db.session.rollback()
        return _invalid(str(exc))

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "update service")

    return jsonify({"service": service.to_dict()}), 200


@bp_ext.delete("/salons/<int:salon_id>/services/<int:service_id>")
@require_permission("services", "delete")
def delete_service(salon_id: int, service_id: int) -> tuple[dict[str, str], int]:
    service = Service.query.filter_by(service_id=service_id, salon_id=salon_id).first()
    if service is None:
        return _not_found("Service not found")

    if AppointmentItem.query.filter_by(service_id=service_id).first() is not None:
        return jsonify({"error": "conflict", "message": "Service is booked on appointments"}), 409

    try:
        db.session.delete(service)
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "delete service")

    return jsonify({"message": "Service deleted successfully"}), 200


# APPOINTMENTS


def _id_list(payload: dict, field: str) -> list[int]:
    values = payload.get(field) or []
    if not isinstance(values, list) or not all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        raise ValueError(f"{field} must be a list of ids")
    return values


def _staff_in_salon(salon_id: int, staff_id: object) -> Staff | None:
    if isinstance(staff_id, bool) or not isinstance(staff_id, int):
        raise ValueError("staff_id must be an integer")
    staff = Staff.query.filter_by(staff_id=staff_id, salon_id=salon_id).first()
    if staff is None:
        raise LookupError("Staff member not found")
    return staff


def _has_overlap(staff_id: int, starts_at: datetime, ends_at: datetime, exclude_id: int | None = None) -> bool:
    """True when the staff member already has a live appointment in the window."""
    query = Appointment.query.filter(
        Appointment.staff_id == staff_id,
        Appointment.status != "cancelled",
        Appointment.starts_at < ends_at,
        Appointment.ends_at > starts_at,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.appointment_id != exclude_id)
    return query.first() is not None


def _staff_conflict():
    return (
        jsonify({"error": "conflict", "message": "Staff member already has an appointment at this time"}),
        409,
    )


@bp_ext.get("/salons/<int:salon_id>/appointments")
@require_permission("appointments", "read")
def list_appointments(salon_id: int) -> tuple[dict[str, object], int]:
    """List appointments with optional filters.
    ---
    tags:
      - Appointments
    parameters:
      - name: customer_id
        in: query
        type: integer
      - name: staff_id
        in: query
        type: integer
      - name: status
        in: query
        type: string
        enum: [upcoming, ongoing, past, cancelled]
      - name: from
        in: query
        type: string
        format: date
      - name: to
        in: query
        type: string
        format: date
    responses:
      200:
        description: Paginated appointments ordered by start time
      400:
        description: Invalid filters
    """
    try:
        page, limit = parse_pagination(request, default_limit=50)
        query = Appointment.query.filter_by(salon_id=salon_id)

        if request.args.get("customer_id"):
            query = query.filter(Appointment.customer_id == int(request.args["customer_id"]))
        if request.args.get("staff_id"):
            query = query.filter(Appointment.staff_id == int(request.args["staff_id"]))
        if request.args.get("status"):
            query = query.filter(Appointment.status == request.args["status"])

        start_day = parse_optional_date(request.args.get("from"))
        end_day = parse_optional_date(request.args.get("to"))
        if start_day:
            query = query.filter(Appointment.starts_at >= datetime.combine(start_day, time.min))
        if end_day:
            query = query.filter(Appointment.starts_at < datetime.combine(end_day + timedelta(days=1), time.min))

        total = query.count()
        appointments = query.order_by(Appointment.starts_at.asc()).limit(limit).offset((page - 1) * limit).all()

        return (
            jsonify({
                "appointments": [a.to_dict() for a in appointments],
                "pagination": pagination_meta(page, limit, total),
            }),
            200,
        )

    except (ValueError, TypeError) as exc:
        current_app.logger.warning(f"Invalid appointment filters: {exc}")
        return jsonify({"error": "invalid_parameters", "message": str(exc)}), 400
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch appointments", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_ext.get("/salons/<int:salon_id>/appointments/stats")
@require_permission("appointments", "read")
def appointment_stats(salon_id: int) -> tuple[dict[str, object], int]:
    try:
        counts = dict(
            db.session.query(Appointment.status, func.count(Appointment.appointment_id))
            .filter(Appointment.salon_id == salon_id)
            .group_by(Appointment.status)
            .all()
        )
        revenue = (
            db.session.query(func.coalesce(func.sum(Appointment.bill_cents), 0))
            .filter(Appointment.salon_id == salon_id, Appointment.payment_status == "paid")
            .scalar()
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to compute appointment stats", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    by_status = {status: counts.get(status, 0) for status in ("upcoming", "ongoing", "past", "cancelled")}
    return (
        jsonify({"total": sum(by_status.values()), "by_status": by_status, "revenue_cents": int(revenue or 0)}),
        200,
    )


@bp_ext.get("/salons/<int:salon_id>/appointments/<int:appointment_id>")
@require_permission("appointments", "read")
def get_appointment(salon_id: int, appointment_id: int) -> tuple[dict[str, object], int]:
    appointment = Appointment.query.filter_by(appointment_id=appointment_id, salon_id=salon_id).first()
    if appointment is None:
        return _not_found("Appointment not found")
    return jsonify({"appointment": appointment.to_dict()}), 200


@bp_ext.post("/salons/<int:salon_id>/appointments")
@require_permission("appointments", "create")
def create_appointment(salon_id: int) -> tuple[dict[str, object], int]:
    """Book services and/or deals for a client.

    The bill is the sum of the booked item prices. Without ``ends_at`` the
    appointment lasts as long as its services.
    """
    payload = request.get_json(silent=True) or {}

    try:
        customer_id = payload.get("customer_id")
        if isinstance(customer_id, bool) or not isinstance(customer_id, int):
            raise ValueError("customer_id is required")
        service_ids = _id_list(payload, "service_ids")
        deal_ids = _id_list(payload, "deal_ids")
        if not service_ids and not deal_ids:
            raise ValueError("at least one service or deal is required")
        starts_at = parse_datetime(payload.get("starts_at"))
        ends_at = parse_datetime(payload["ends_at"]) if payload.get("ends_at") else None
        staff = _staff_in_salon(salon_id, payload["staff_id"]) if payload.get("staff_id") is not None else None
    except ValueError as exc:
        return _invalid(str(exc))
    except LookupError as exc:
        return _not_found(str(exc))

    customer = Customer.query.filter_by(customer_id=customer_id, salon_id=salon_id).first()
    if customer is None:
        return _not_found("Client not found")

    services = Service.query.filter(Service.salon_id == salon_id, Service.service_id.in_(service_ids)).all()
    deals = Deal.query.filter(Deal.salon_id == salon_id, Deal.deal_id.in_(deal_ids)).all()
    if len(services) != len(set(service_ids)) or len(deals) != len(set(deal_ids)):
        return _not_found("Service or deal not found")

    services_by_id = {service.service_id: service for service in services}
    deals_by_id = {deal.deal_id: deal for deal in deals}
    items = [AppointmentItem(service_id=sid, price_cents=services_by_id[sid].price_cents) for sid in service_ids]
    items += [AppointmentItem(deal_id=did, price_cents=deals_by_id[did].effective_price_cents) for did in deal_ids]

    if ends_at is None:
        minutes = sum(services_by_id[sid].duration_minutes for sid in service_ids) or DEFAULT_DEAL_DURATION_MINUTES
        ends_at = starts_at + timedelta(minutes=minutes)
    if ends_at <= starts_at:
        return _invalid("ends_at must be after starts_at")

    if staff is not None and _has_overlap(staff.staff_id, starts_at, ends_at):
        return _staff_conflict()

    try:
        appointment = Appointment(
            salon_id=salon_id,
            customer_id=customer_id,
            staff_id=staff.staff_id if staff else None,
            starts_at=starts_at,
            ends_at=ends_at,
            bill_cents=sum(item.price_cents for item in items),
            booking_type=_optional_text(payload, "booking_type"),
            booking_approach=_optional_text(payload, "booking_approach"),
            notes=_optional_text(payload, "notes"),
            items=items,
        )
        db.session.add(appointment)
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        return _invalid(str(exc))
    except SQLAlchemyError as exc:
        return _database_error(exc, "create appointment")

    return jsonify({"appointment": appointment.to_dict()}), 201


@bp_ext.put("/salons/<int:salon_id>/appointments/<int:appointment_id>")
@require_permission("appointments", "update")
def update_appointment(salon_id: int, appointment_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    appointment = Appointment.query.filter_by(appointment_id=appointment_id, salon_id=salon_id).first()
    if appointment is None:
        return _not_found("Appointment not found")

    status = payload.get("status", appointment.status)
    if status not in ("upcoming", "ongoing", "past", "cancelled"):
        return _invalid("status must be upcoming, ongoing, past or cancelled")

    try:
        starts_at = parse_datetime(payload["starts_at"]) if "starts_at" in payload else appointment.starts_at
        ends_at = parse_datetime(payload["ends_at"]) if "ends_at" in payload else appointment.ends_at
        notes = _optional_text(payload, "notes") if "notes" in payload else appointment.notes
    except ValueError as exc:
        return _invalid(str(exc))

    if ends_at <= starts_at:
        return _invalid("ends_at must be after starts_at")

    if (
        appointment.staff_id is not None
        and status != "cancelled"
        and _has_overlap(appointment.staff_id, starts_at, ends_at, exclude_id=appointment_id)
    ):
        return _staff_conflict()

    try:
        appointment.status = status
        appointment.starts_at = starts_at
        appointment.ends_at = ends_at
        appointment.notes = notes
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "update appointment")

    return jsonify({"appointment": appointment.to_dict()}), 200


@bp_ext.put("/salons/<int:salon_id>/appointments/<int:appointment_id>/staff")
@require_permission("appointments", "update")
def assign_appointment_staff(salon_id: int, appointment_id: int) -> tuple[dict[str, object], int]:
    """Assign a staff member (or ``null`` to unassign)."""
    payload = request.get_json(silent=True) or {}
    appointment = Appointment.query.filter_by(appointment_id=appointment_id, salon_id=salon_id).first()
    if appointment is None:
        return _not_found("Appointment not found")

    staff_id = payload.get("staff_id")
    try:
        staff = _staff_in_salon(salon_id, staff_id) if staff_id is not None else None
    except ValueError as exc:
        return _invalid(str(exc))
    except LookupError as exc:
        return _not_found(str(exc))

    if (
        staff is not None
        and appointment.status != "cancelled"
        and _has_overlap(staff.staff_id, appointment.starts_at, appointment.ends_at, exclude_id=appointment_id)
    ):
        return _staff_conflict()

    try:
        appointment.staff_id = staff.staff_id if staff else None
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "assign appointment staff")

    return jsonify({"appointment": appointment.to_dict()}), 200


@bp_ext.put("/salons/<int:salon_id>/appointments/<int:appointment_id>/payment")
@require_permission("appointments", "update")
def update_payment_status(salon_id: int, appointment_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    payment_status = payload.get("payment_status")
    if payment_status not in ("pending", "paid"):
        return _invalid("payment_status must be pending or paid")

    appointment = Appointment.query.filter_by(appointment_id=appointment_id, salon_id=salon_id).first()
    if appointment is None:
        return _not_found("Appointment not found")

    try:
        appointment.payment_status = payment_status
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "update payment status")

    return jsonify({"appointment": appointment.to_dict()}), 200


@bp_ext.delete("/salons/<int:salon_id>/appointments/<int:appointment_id>")
@require_permission("appointments", "delete")
def delete_appointment(salon_id: int, appointment_id: int) -> tuple[dict[str, str], int]:
    appointment = Appointment.query.filter_by(appointment_id=appointment_id, salon_id=salon_id).first()
    if appointment is None:
        return _not_found("Appointment not found")

    try:
        db.session.delete(appointment)
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "delete appointment")

    return jsonify({"message": "Appointment deleted successfully"}), 200


# DEALS


def _active_deals_query(salon_id: int, today: date):
    return Deal.query.filter(
        Deal.salon_id == salon_id,
        or_(Deal.valid_from.is_(None), Deal.valid_from <= today),
        or_(Deal.valid_till.is_(None), Deal.valid_till >= today),
    )


def _apply_deal_fields(deal: Deal, payload: dict, *, partial: bool) -> None:
    if not partial or "title" in payload:
        title = _optional_text(payload, "title")
        if not title:
            raise ValueError("title is required")
        deal.title = title
    if "price_cents" in payload:
        deal.price_cents = parse_cents(payload.get("price_cents"), "price_cents", allow_none=True)
    if "discounted_price_cents" in payload:
        deal.discounted_price_cents = parse_cents(
            payload.get("discounted_price_cents"), "discounted_price_cents", allow_none=True
        )
    if "prices_may_vary" in payload:
        deal.prices_may_vary = bool(payload.get("prices_may_vary"))
    if "valid_from" in payload:
        deal.valid_from = parse_optional_date(payload.get("valid_from"))
    if "valid_till" in payload:
        deal.valid_till = parse_optional_date(payload.get("valid_till"))
    if "deal_discount" in payload:
        value = payload.get("deal_discount")
        deal.deal_discount = None if value is None else parse_percent(value, "deal_discount")

    if (
        deal.price_cents is not None
        and deal.discounted_price_cents is not None
        and deal.discounted_price_cents > deal.price_cents
    ):
        raise ValueError("discounted_price_cents cannot exceed price_cents")
    if deal.valid_from and deal.valid_till and deal.valid_from > deal.valid_till:
        raise ValueError("valid_from must not be after valid_till")


def _apply_popup_fields(deal: Deal, payload: dict) -> None:
    if "enabled" in payload:
        if not isinstance(payload["enabled"], bool):
            raise ValueError("enabled must be a boolean")
        deal.popup_enabled = payload["enabled"]
    for key in ("title", "color", "template"):
        if key in payload:
            setattr(deal, f"popup_{key}", _optional_text(payload, key))


@bp_ext.get("/salons/<int:salon_id>/deals")
@require_permission("deals", "read")
def list_deals(salon_id: int) -> tuple[dict[str, object], int]:
    try:
        deals = Deal.query.filter_by(salon_id=salon_id).order_by(Deal.created_at.desc(), Deal.deal_id.desc()).all()
        return jsonify({"deals": [deal.to_dict() for deal in deals]}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch deals", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_ext.get("/salons/<int:salon_id>/deals/active")
@require_permission("deals", "read")
def list_active_deals(salon_id: int) -> tuple[dict[str, object], int]:
    """Deals whose validity window includes today."""
    deals = _active_deals_query(salon_id, utc_naive_now().date()).order_by(Deal.valid_till.asc()).all()
    return jsonify({"deals": [deal.to_dict() for deal in deals]}), 200


@bp_ext.get("/salons/<int:salon_id>/deals/popup")
@require_permission("deals", "read")
def list_popup_deals(salon_id: int) -> tuple[dict[str, object], int]:
    deals = (
        _active_deals_query(salon_id, utc_naive_now().date())
        .filter(Deal.popup_enabled.is_(True))
        .order_by(Deal.deal_id.asc())
        .all()
    )
    return jsonify({"deals": [deal.to_dict() for deal in deals]}), 200


@bp_ext.get("/salons/<int:salon_id>/deals/<int:deal_id>")
@require_permission("deals", "read")
def get_deal(salon_id: int, deal_id: int) -> tuple[dict[str, object], int]:
    deal = Deal.query.filter_by(deal_id=deal_id, salon_id=salon_id).first()
    if deal is None:
        return _not_found("Deal not found")
    return jsonify({"deal": deal.to_dict()}), 200


@bp_ext.post("/salons/<int:salon_id>/deals")
@require_permission("deals", "create")
def create_deal(salon_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    deal = Deal(salon_id=salon_id, prices_may_vary=False, popup_enabled=False)
    try:
        _apply_deal_fields(deal, payload, partial=False)
        _apply_popup_fields(deal, payload.get("popup") or {})
    except ValueError as exc:
        return _invalid(str(exc))

    try:
        db.session.add(deal)
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "create deal")

    return jsonify({"deal": deal.to_dict()}), 201


@bp_ext.put("/salons/<int:salon_id>/deals/<int:deal_id>")
@require_permission("deals", "update")
def update_deal(salon_id: int, deal_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    deal = Deal.query.filter_by(deal_id=deal_id, salon_id=salon_id).first()
    if deal is None:
        return _not_found("Deal not found")

    try:
        _apply_deal_fields(deal, payload, partial=True)
    except ValueError as exc:
        db.session.rollback()
        return _invalid(str(exc))

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "update deal")

    return jsonify({"deal": deal.to_dict()}), 200


@bp_ext.put("/salons/<int:salon_id>/deals/<int:deal_id>/popup")
@require_permission("deals", "update")
def update_deal_popup(salon_id: int, deal_id: int) -> tuple[dict[str, object], int]:
    """Toggle the booking-page popup or change its title, color and template."""
    payload = request.get_json(silent=True) or {}
    deal = Deal.query.filter_by(deal_id=deal_id, salon_id=salon_id).first()
    if deal is None:
        return _not_found("Deal not found")

    try:
        _apply_popup_fields(deal, payload)
    except ValueError as exc:
        db.session.rollback()
        return _invalid(str(exc))

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "update deal popup")

    return jsonify({"deal": deal.to_dict()}), 200


@bp_ext.post("/salons/<int:salon_id>/deals/<int:deal_id>/media")
@require_permission("deals", "update")
def upload_deal_media(salon_id: int, deal_id: int) -> tuple[dict[str, object], int]:
    deal = Deal.query.filter_by(deal_id=deal_id, salon_id=salon_id).first()
    if deal is None:
        return _not_found("Deal not found")

    if "image" not in request.files:
        return _invalid("image file is required")

    bucket = current_app.config["AWS_S3_BUCKET"]
    previous_url = deal.media_url
    try:
        _, url = upload_image(request.files["image"], bucket, f"salons/{salon_id}/deals/{deal_id}")
    except InvalidImage as exc:
        return _invalid(str(exc))
    except Exception as exc:
        current_app.logger.exception("Failed to upload deal media", exc_info=exc)
        return jsonify({"error": "upload_failed", "message": "Image upload failed"}), 500

    try:
        deal.media_url = url
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "save deal media")

    delete_image(bucket, previous_url)
    return jsonify({"deal": deal.to_dict()}), 200


@bp_ext.delete("/salons/<int:salon_id>/deals/<int:deal_id>")
@require_permission("deals", "delete")
def delete_deal(salon_id: int, deal_id: int) -> tuple[dict[str, str], int]:
    deal = Deal.query.filter_by(deal_id=deal_id, salon_id=salon_id).first()
    if deal is None:
        return _not_found("Deal not found")

    if AppointmentItem.query.filter_by(deal_id=deal_id).first() is not None:
        return jsonify({"error": "conflict", "message": "Deal is booked on appointments"}), 409

    media_url = deal.media_url
    try:
        db.session.delete(deal)
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "delete deal")

    delete_image(current_app.config["AWS_S3_BUCKET"], media_url)
    return jsonify({"message": "Deal deleted successfully"}), 200


# PROMOTIONS


def sync_recent_discounts(salon_id: int, discount: SalonDiscount) -> tuple[int, int]:
    """Copy the salon's discount percents onto recently touched services and deals.

    Only rows created or updated within the last 24 hours are changed.
    Returns ``(services_updated, deals_updated)``.
    """
    cutoff = utc_naive_now() - DISCOUNT_SYNC_WINDOW

    services_updated = (
        Service.query.filter(
            Service.salon_id == salon_id,
            or_(Service.created_at >= cutoff, Service.updated_at >= cutoff),
        )
        .update({Service.service_discount: discount.service_discount}, synchronize_session=False)
    )
    deals_updated = (
        Deal.query.filter(
            Deal.salon_id == salon_id,
            or_(Deal.created_at >= cutoff, Deal.updated_at >= cutoff),
        )
        .update({Deal.deal_discount: discount.deal_discount}, synchronize_session=False)
    )
    db.session.commit()
    return services_updated, deals_updated


def _sync_after_save(salon_id: int, discount: SalonDiscount) -> None:
    try:
        services_updated, deals_updated = sync_recent_discounts(salon_id, discount)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning("Discount sync failed for salon %s: %s", salon_id, exc)
        return
    current_app.logger.info(
        "Synced discounts for salon %s onto %s service(s) and %s deal(s)", salon_id, services_updated, deals_updated
    )


def _apply_discount_fields(discount: SalonDiscount, payload: dict) -> None:
    for field in ("service_discount", "deal_discount", "package_discount"):
        if field in payload:
            setattr(discount, field, parse_percent(payload.get(field), field))


@bp_ext.get("/salons/<int:salon_id>/promotions")
@require_permission("promotions", "read")
def list_promotions(salon_id: int) -> tuple[dict[str, object], int]:
    discounts = (
        SalonDiscount.query.filter_by(salon_id=salon_id)
        .order_by(SalonDiscount.created_at.desc(), SalonDiscount.discount_id.desc())
        .all()
    )
    return jsonify({"promotions": [d.to_dict() for d in discounts]}), 200


@bp_ext.get("/salons/<int:salon_id>/promotions/<int:discount_id>")
@require_permission("promotions", "read")
def get_promotion(salon_id: int, discount_id: int) -> tuple[dict[str, object], int]:
    discount = SalonDiscount.query.filter_by(discount_id=discount_id, salon_id=salon_id).first()
    if discount is None:
        return _not_found("Promotion not found")
    return jsonify({"promotion": discount.to_dict()}), 200


@bp_ext.post("/salons/<int:salon_id>/promotions")
@require_permission("promotions", "create")
def create_promotion(salon_id: int) -> tuple[dict[str, object], int]:
    """Create salon discounts and apply them to recently added services and deals.
    ---
    tags:
      - Promotions
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            service_discount:
              type: integer
            deal_discount:
              type: integer
            package_discount:
              type: integer
    responses:
      201:
        description: Promotion created
      400:
        description: A discount is not a percentage between 0 and 100
    """
    payload = request.get_json(silent=True) or {}
    discount = SalonDiscount(salon_id=salon_id, service_discount=0, deal_discount=0, package_discount=0)
    try:
        _apply_discount_fields(discount, payload)
    except ValueError as exc:
        return _invalid(str(exc))

    try:
        db.session.add(discount)
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "create promotion")

    _sync_after_save(salon_id, discount)
    return jsonify({"promotion": discount.to_dict()}), 201


@bp_ext.put("/salons/<int:salon_id>/promotions/<int:discount_id>")
@require_permission("promotions", "update")
def update_promotion(salon_id: int, discount_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    discount = SalonDiscount.query.filter_by(discount_id=discount_id, salon_id=salon_id).first()
    if discount is None:
        return _not_found("Promotion not found")

    try:
        _apply_discount_fields(discount, payload)
    except ValueError as exc:
        db.session.rollback()
        return _invalid(str(exc))

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "update promotion")

    _sync_after_save(salon_id, discount)
    return jsonify({"promotion": discount.to_dict()}), 200


@bp_ext.delete("/salons/<int:salon_id>/promotions/<int:discount_id>")
@require_permission("promotions", "delete")
def delete_promotion(salon_id: int, discount_id: int) -> tuple[dict[str, str], int]:
    discount = SalonDiscount.query.filter_by(discount_id=discount_id, salon_id=salon_id).first()
    if discount is None:
        return _not_found("Promotion not found")

    try:
        db.session.delete(discount)
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "delete promotion")

    return jsonify({"message": "Promotion deleted successfully"}), 200


# INVENTORY


def _get_product(salon_id: int, product_id: int, *, for_update: bool = False) -> Product | None:
    query = Product.query.filter_by(product_id=product_id, salon_id=salon_id)
    if for_update:
        query = query.with_for_update()
    return query.first()


def _apply_product_fields(product: Product, payload: dict, *, partial: bool) -> None:
    if not partial or "name" in payload:
        name = _optional_text(payload, "name")
        if not name:
            raise ValueError("name is required")
        product.name = name
    for field in ("sku", "category"):
        if field in payload:
            setattr(product, field, _optional_text(payload, field))
    for field in ("price_cents", "stock_quantity", "reorder_level"):
        if field in payload:
            setattr(product, field, parse_cents(payload.get(field), field))


def _movement_quantity(payload: dict) -> int:
    quantity = payload.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValueError("quantity must be at least 1")
    return quantity


@bp_ext.get("/salons/<int:salon_id>/inventory/products")
@require_permission("inventory", "read")
def list_products(salon_id: int) -> tuple[dict[str, object], int]:
    try:
        query = Product.query.filter_by(salon_id=salon_id)

        search = request.args.get("search", "").strip()
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
        category = request.args.get("category", "").strip()
        if category:
            query = query.filter(Product.category == category)

        products = query.order_by(Product.name.asc()).all()
        return jsonify({"products": [product.to_dict() for product in products]}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch products", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_ext.get("/salons/<int:salon_id>/inventory/products/low-stock")
@require_permission("inventory", "read")
def list_low_stock_products(salon_id: int) -> tuple[dict[str, object], int]:
    """Products at or below their reorder level."""
    products = (
        Product.query.filter(Product.salon_id == salon_id, Product.stock_quantity <= Product.reorder_level)
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .all()
    )
    return jsonify({"products": [product.to_dict() for product in products]}), 200


@bp_ext.get("/salons/<int:salon_id>/inventory/products/<int:product_id>")
@require_permission("inventory", "read")
def get_product(salon_id: int, product_id: int) -> tuple[dict[str, object], int]:
    product = _get_product(salon_id, product_id)
    if product is None:
        return _not_found("Product not found")
    return jsonify({"product": product.to_dict()}), 200


@bp_ext.post("/salons/<int:salon_id>/inventory/products")
@require_permission("inventory", "create")
def create_product(salon_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    product = Product(salon_id=salon_id, price_cents=0, stock_quantity=0, reorder_level=0)
    try:
        _apply_product_fields(product, payload, partial=False)
    except ValueError as exc:
        return _invalid(str(exc))

    try:
        db.session.add(product)
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "create product")

    return jsonify({"product": product.to_dict()}), 201


@bp_ext.put("/salons/<int:salon_id>/inventory/products/<int:product_id>")
@require_permission("inventory", "update")
def update_product(salon_id: int, product_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    product = _get_product(salon_id, product_id)
    if product is None:
        return _not_found("Product not found")

    try:
        _apply_product_fields(product, payload, partial=True)
    except ValueError as exc:
        db.session.rollback()
        return _invalid(str(exc))

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "update product")

    return jsonify({"product": product.to_dict()}), 200


@bp_ext.delete("/salons/<int:salon_id>/inventory/products/<int:product_id>")
@require_permission("inventory", "delete")
def delete_product(salon_id: int, product_id: int) -> tuple[dict[str, str], int]:
    product = _get_product(salon_id, product_id)
    if product is None:
        return _not_found("Product not found")

    try:
        db.session.delete(product)
        db.session.commit()
    except SQLAlchemyError as exc:
        return _database_error(exc, "delete product")

    return jsonify({"message": "Product deleted successfully"}), 200


def _record_movement(salon_id: int, product_id: int, kind: str) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}

    try:
        quantity = _movement_quantity(payload)
        reason = _optional_text(payload, "reason")
        staff = None
        if kind == "issue":
            if payload.get("staff_id") is None:
                raise ValueError("staff_id is required")
            staff = _staff_in_salon(salon_id, payload["staff_id"])
    except ValueError as exc:
        return _invalid(str(exc))
    except LookupError as exc:
        return _not_found(str(exc))

    try:
        product = _get_product(salon_id, product_id, for_update=True)
        if product is None:
            db.session.rollback()
            return _not_found("Product not found")

        if kind == "restock":
            product.stock_quantity += quantity
        else:
            if quantity > product.stock_quantity:
                db.session.rollback()
                return _invalid(f"Insufficient stock: only {product.stock_quantity} available")
            product.stock_quantity -= quantity

        movement = StockMovement(
            product=product,
            kind=kind,
            quantity=quantity,
            staff_id=staff.staff_id if staff else None,
            reason=reason,
        )
        db.session.add(movement)
        db.session.commit()

    except SQLAlchemyError as exc:
        return _database_error(exc, f"record {kind} movement")

    current_app.logger.info("Recorded %s of %s for product %s", kind, quantity, product_id)
    return jsonify({"product": product.to_dict(), "movement": movement.to_dict()}), 201


@bp_ext.post("/salons/<int:salon_id>/inventory/products/<int:product_id>/issue")
@require_permission("inventory", "update")
def issue_product(salon_id: int, product_id: int) -> tuple[dict[str, object], int]:
    """Issue stock to a staff member.
    ---
    tags:
      - Inventory
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            quantity:
              type: integer
              minimum: 1
            staff_id:
              type: integer
            reason:
              type: string
          required:
            - quantity
            - staff_id
    responses:
      201:
        description: Stock issued
      400:
        description: Invalid quantity or insufficient stock
      404:
        description: Product or staff member not found
    """
    return _record_movement(salon_id, product_id, "issue")


@bp_ext.post("/salons/<int:salon_id>/inventory/products/<int:product_id>/wastage")
@require_permission("inventory", "update")
def record_wastage(salon_id: int, product_id: int) -> tuple[dict[str, object], int]:
    return _record_movement(salon_id, product_id, "wastage")


@bp_ext.post("/salons/<int:salon_id>/inventory/products/<int:product_id>/restock")
@require_permission("inventory", "update")
def restock_product(salon_id: int, product_id: int) -> tuple[dict[str, object], int]:
    return _record_movement(salon_id, product_id, "restock")


@bp_ext.get("/salons/<int:salon_id>/inventory/products/<int:product_id>/movements")
@require_permission("inventory", "read")
def list_movements(salon_id: int, product_id: int) -> tuple[dict[str, object], int]:
    product = _get_product(salon_id, product_id)
    if product is None:
        return _not_found("Product not found")
    return jsonify({"movements": [movement.to_dict() for movement in product.movements]}), 200


# PAYROLL


def build_payroll(salon_id: int, start_day: date, end_day: date) -> list[dict[str, object]]:
    """Per-staff pay for completed appointments between two dates (inclusive)."""
    window_start = datetime.combine(start_day, time.min)
    window_end = datetime.combine(end_day + timedelta(days=1), time.min)

    completed = (
        db.session.query(Appointment.staff_id, func.count(Appointment.appointment_id), func.sum(Appointment.bill_cents))
        .filter(
            Appointment.salon_id == salon_id,
            Appointment.status == "past",
            Appointment.staff_id.isnot(None),
            Appointment.starts_at >= window_start,
            Appointment.starts_at < window_end,
        )
        .group_by(Appointment.staff_id)
        .all()
    )
    sales = {staff_id: (count, total) for staff_id, count, total in completed}

    rows = []
    for staff in Staff.query.filter_by(salon_id=salon_id).order_by(Staff.name.asc()).all():
        count, total_sales = sales.get(staff.staff_id, (0, 0))
        total_sales = int(total_sales or 0)
        commission = round(total_sales * (staff.commission_percent or 0) / 100)
        rows.append({
            "staff_id": staff.staff_id,
            "name": staff.name,
            "completed_appointments": count,
            "total_sales_cents": total_sales,
            "commission_percent": staff.commission_percent,
            "commission_cents": commission,
            "base_salary_cents": staff.base_salary_cents,
            "total_pay_cents": staff.base_salary_cents + commission,
        })
    return rows


@bp_ext.get("/salons/<int:salon_id>/payroll")
@require_permission("hr", "read")
def payroll_report(salon_id: int) -> tuple[dict[str, object], int]:
    """Payroll report; ``from``/``to`` default to the last 30 days."""
    try:
        end_day = parse_date(request.args["to"]) if request.args.get("to") else utc_naive_now().date()
        start_day = (
            parse_date(request.args["from"])
            if request.args.get("from")
            else end_day - timedelta(days=PAYROLL_DEFAULT_DAYS - 1)
        )
    except ValueError as exc:
        return jsonify({"error": "invalid_parameters", "message": str(exc)}), 400

    if start_day > end_day:
        return jsonify({"error": "invalid_parameters", "message": "from must not be after to"}), 400

    try:
        rows = build_payroll(salon_id, start_day, end_day)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to build payroll report", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return (
        jsonify({
            "from": start_day.isoformat(),
            "to": end_day.isoformat(),
            "staff": rows,
            "totals": {
                "total_sales_cents": sum(r["total_sales_cents"] for r in rows),
                "commission_cents": sum(r["commission_cents"] for r in rows),
                "total_pay_cents": sum(r["total_pay_cents"] for r in rows),
            },
        }),
        200,
    )


# EMAIL

PERMISSIONS_EMAIL_FIELDS = ("email", "staffName", "salonOwnerName", "salonId", "crmLink")


@bp_ext.post("/email/send-permissions-email")
@require_auth
def send_permissions_email_route() -> tuple[dict[str, object], int]:
    """Send a staff member their CRM access details.
    ---
    tags:
      - Email
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            email:
              type: string
            staffName:
              type: string
            salonOwnerName:
              type: string
            salonOwnerEmail:
              type: string
            salonId:
              type: integer
            crmLink:
              type: string
            permissions:
              type: object
    responses:
      200:
        description: Email sent
      400:
        description: Missing required fields
      503:
        description: Email service not configured
    """
    payload = request.get_json(silent=True) or {}

    missing = [field for field in PERMISSIONS_EMAIL_FIELDS if not payload.get(field)]
    if missing:
        return _invalid(f"Missing required fields: {', '.join(missing)}")

    message = PermissionsEmail(
        to=payload["email"],
        staff_name=payload["staffName"],
        salon_owner_name=payload["salonOwnerName"],
        salon_owner_email=payload.get("salonOwnerEmail") or None,
        crm_link=payload["crmLink"],
        permissions=payload.get("permissions") if isinstance(payload.get("permissions"), dict) else None,
    )

    try:
        response = send_permissions_email(message, current_app.config)
    except EmailNotConfigured:
        return (
            jsonify({"error": "service_unavailable", "message": "Email service not configured. Please contact support."}),
            503,
        )
    except EmailDeliveryError as exc:
        return jsonify({"error": "email_failed", "message": str(exc)}), 500

    email_id = response.get("id") if isinstance(response, dict) else None
    return jsonify({"success": True, "message": "Permissions email sent successfully", "emailId": email_id}), 200

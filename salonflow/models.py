"""Database models for the SalonFlow backend."""
from __future__ import annotations

from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value) -> str | None:
    return value.isoformat() if value else None


class User(db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    role = db.Column(
        db.Enum(
            "super_admin",
            "salon_admin",
            "staff",
            "customer",
            name="user_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="customer",
    )
    phone = db.Column(db.String(30))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    salons = db.relationship("Salon", back_populates="owner", lazy="dynamic")
    auth_account = db.relationship("AuthAccount", back_populates="user", uselist=False)

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "phone": self.phone,
        }


class AuthAccount(db.Model):
    __tablename__ = "auth_accounts"

    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), primary_key=True)
    password_hash = db.Column(db.String(255), nullable=False)
    # Accounts created with a temporary password must set their own on first login.
    must_change_password = db.Column(db.Boolean, nullable=False, default=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("User", back_populates="auth_account")


class Salon(db.Model):
    """A tenant organization."""

    __tablename__ = "salons"

    salon_id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    owner_name = db.Column(db.String(150))
    email = db.Column(db.String(255))
    phone = db.Column(db.String(30))
    address = db.Column(db.String(255))
    open_time = db.Column(db.String(10))
    close_time = db.Column(db.String(10))
    admin_status = db.Column(
        db.Enum(
            "pending",
            "approved",
            "rejected",
            name="salon_admin_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    rejected_reason = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    owner = db.relationship("User", back_populates="salons")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.salon_id,
            "name": self.name,
            "owner_name": self.owner_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "open_time": self.open_time,
            "close_time": self.close_time,
            "admin_status": self.admin_status,
            "owner": self.owner.to_dict_basic() if self.owner else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def to_option(self) -> dict[str, object]:
        return {"id": self.salon_id, "name": self.name}


class Staff(db.Model):
    __tablename__ = "staff"

    staff_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255))
    phone = db.Column(db.String(30))
    address = db.Column(db.String(255))
    department = db.Column(db.String(100))
    # Mirrors the assigned role's name so listings do not need a join.
    role_name = db.Column(db.String(100))
    shift_open_time = db.Column(db.String(10))
    shift_close_time = db.Column(db.String(10))
    commission_percent = db.Column(db.Float, nullable=False, default=0)
    base_salary_cents = db.Column(db.Integer, nullable=False, default=0)
    avatar_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    salon = db.relationship("Salon")
    user = db.relationship("User")
    role_assignment = db.relationship(
        "StaffRoleAssignment",
        back_populates="staff",
        uselist=False,
        cascade="all, delete-orphan",
    )
    category_assignments = db.relationship(
        "StaffCategoryAssignment",
        back_populates="staff",
        cascade="all, delete-orphan",
        order_by="StaffCategoryAssignment.category_id",
    )

    @property
    def role(self) -> "StaffRole | None":
        return self.role_assignment.role if self.role_assignment else None

    def to_dict(self) -> dict[str, object]:
        role = self.role
        return {
            "id": self.staff_id,
            "salon_id": self.salon_id,
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "department": self.department,
            "role": self.role_name,
            "role_id": role.role_id if role else None,
            "shift_open_time": self.shift_open_time,
            "shift_close_time": self.shift_close_time,
            "commission_percent": self.commission_percent,
            "base_salary_cents": self.base_salary_cents,
            "avatar_url": self.avatar_url,
            "categories": [
                {"id": assignment.category_id, "name": assignment.category.name}
                for assignment in self.category_assignments
            ],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class StaffRole(db.Model):
    """Named bundle of module permissions, scoped to a salon."""

    __tablename__ = "staff_roles"
    __table_args__ = (db.UniqueConstraint("salon_id", "name", name="uq_staff_roles_salon_name"),)

    role_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    salon = db.relationship("Salon")
    permission_record = db.relationship(
        "StaffRolePermission",
        back_populates="role",
        uselist=False,
        cascade="all, delete-orphan",
    )
    assignments = db.relationship(
        "StaffRoleAssignment",
        back_populates="role",
        cascade="all, delete-orphan",
    )

    @property
    def permissions(self) -> dict[str, dict[str, bool]] | None:
        return self.permission_record.permissions if self.permission_record else None

    def to_dict(self, include_permissions: bool = False) -> dict[str, object]:
        data: dict[str, object] = {
            "id": self.role_id,
            "salon_id": self.salon_id,
            "name": self.name,
            "description": self.description,
            "staff_count": len(self.assignments),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_permissions:
            data["permissions"] = self.permissions
        return data


class StaffRolePermission(db.Model):
    __tablename__ = "staff_role_permissions"

    permission_id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("staff_roles.role_id"), unique=True, nullable=False)
    permissions = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    role = db.relationship("StaffRole", back_populates="permission_record")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.permission_id,
            "role_id": self.role_id,
            "permissions": self.permissions or {},
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class StaffRoleAssignment(db.Model):
    """At most one role per staff member."""

    __tablename__ = "staff_role_assignments"

    staff_id = db.Column(db.Integer, db.ForeignKey("staff.staff_id"), primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("staff_roles.role_id"), nullable=False)

    staff = db.relationship("Staff", back_populates="role_assignment")
    role = db.relationship("StaffRole", back_populates="assignments")


class StaffCategory(db.Model):
    """Skill category (e.g. Hair, Nails) shared by every salon."""

    __tablename__ = "staff_categories"

    category_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    image_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    assignments = db.relationship(
        "StaffCategoryAssignment",
        back_populates="category",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.category_id,
            "name": self.name,
            "image_url": self.image_url,
            "created_at": _iso(self.created_at),
        }


class StaffCategoryAssignment(db.Model):
    __tablename__ = "staff_category_assignments"
    __table_args__ = (db.UniqueConstraint("staff_id", "category_id", name="uq_staff_category"),)

    assignment_id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.staff_id"), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("staff_categories.category_id"), nullable=False)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    staff = db.relationship("Staff", back_populates="category_assignments")
    category = db.relationship("StaffCategory", back_populates="assignments")


class Customer(db.Model):
    __tablename__ = "customers"
    __table_args__ = (db.UniqueConstraint("salon_id", "email", name="uq_customers_salon_email"),)

    customer_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255))
    phone = db.Column(db.String(30))
    gender = db.Column(db.String(20))
    notes = db.Column(db.Text)
    activity_status = db.Column(
        db.Enum(
            "online",
            "offline",
            name="customer_activity_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="offline",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    salon = db.relationship("Salon")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.customer_id,
            "salon_id": self.salon_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "gender": self.gender,
            "notes": self.notes,
            "activity_status": self.activity_status,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Service(db.Model):
    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    price_cents = db.Column(db.Integer, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    gender = db.Column(db.String(20))
    service_discount = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    salon = db.relationship("Salon")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "salon_id": self.salon_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "price_dollars": self.price_cents / 100.0,
            "duration_minutes": self.duration_minutes,
            "gender": self.gender,
            "service_discount": self.service_discount,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Deal(db.Model):
    __tablename__ = "deals"

    deal_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    price_cents = db.Column(db.Integer)
    discounted_price_cents = db.Column(db.Integer)
    prices_may_vary = db.Column(db.Boolean, nullable=False, default=False)
    valid_from = db.Column(db.Date)
    valid_till = db.Column(db.Date)
    media_url = db.Column(db.String(500))
    popup_enabled = db.Column(db.Boolean, nullable=False, default=False)
    popup_title = db.Column(db.String(200))
    popup_color = db.Column(db.String(20))
    popup_template = db.Column(db.String(50))
    deal_discount = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    salon = db.relationship("Salon")

    @property
    def effective_price_cents(self) -> int:
        if self.discounted_price_cents is not None:
            return self.discounted_price_cents
        return self.price_cents or 0

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.deal_id,
            "salon_id": self.salon_id,
            "title": self.title,
            "price_cents": self.price_cents,
            "discounted_price_cents": self.discounted_price_cents,
            "prices_may_vary": self.prices_may_vary,
            "valid_from": _iso(self.valid_from),
            "valid_till": _iso(self.valid_till),
            "media_url": self.media_url,
            "popup": {
                "enabled": self.popup_enabled,
                "title": self.popup_title,
                "color": self.popup_color,
                "template": self.popup_template,
            },
            "deal_discount": self.deal_discount,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class SalonDiscount(db.Model):
    """Salon-wide discount percentages (the promotions module)."""

    __tablename__ = "salon_discounts"

    discount_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    service_discount = db.Column(db.Integer, nullable=False, default=0)
    deal_discount = db.Column(db.Integer, nullable=False, default=0)
    package_discount = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    salon = db.relationship("Salon")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.discount_id,
            "salon_id": self.salon_id,
            "service_discount": self.service_discount,
            "deal_discount": self.deal_discount,
            "package_discount": self.package_discount,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Appointment(db.Model):
    __tablename__ = "appointments"

    appointment_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.customer_id"), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.staff_id"), nullable=True)
    starts_at = db.Column(db.DateTime, nullable=False)
    ends_at = db.Column(db.DateTime, nullable=False)
    bill_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(
        db.Enum(
            "upcoming",
            "ongoing",
            "past",
            "cancelled",
            name="appointment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="upcoming",
    )
    payment_status = db.Column(
        db.Enum(
            "pending",
            "paid",
            name="payment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    booking_type = db.Column(db.String(50))
    booking_approach = db.Column(db.String(50))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    salon = db.relationship("Salon")
    customer = db.relationship("Customer")
    staff = db.relationship("Staff")
    items = db.relationship(
        "AppointmentItem",
        back_populates="appointment",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.appointment_id,
            "salon_id": self.salon_id,
            "customer_id": self.customer_id,
            "customer": {
                "id": self.customer.customer_id,
                "name": self.customer.name,
                "email": self.customer.email,
                "phone": self.customer.phone,
            } if self.customer else None,
            "staff_id": self.staff_id,
            "staff": {
                "id": self.staff.staff_id,
                "name": self.staff.name,
                "avatar_url": self.staff.avatar_url,
            } if self.staff else None,
            "services": [item.to_dict() for item in self.items if item.service_id is not None],
            "deals": [item.to_dict() for item in self.items if item.deal_id is not None],
            "starts_at": _iso(self.starts_at),
            "ends_at": _iso(self.ends_at),
            "bill_cents": self.bill_cents,
            "status": self.status,
            "payment_status": self.payment_status,
            "booking_type": self.booking_type,
            "booking_approach": self.booking_approach,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class AppointmentItem(db.Model):
    """A booked service or deal on an appointment."""

    __tablename__ = "appointment_items"

    item_id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.appointment_id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=True)
    deal_id = db.Column(db.Integer, db.ForeignKey("deals.deal_id"), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    appointment = db.relationship("Appointment", back_populates="items")
    service = db.relationship("Service")
    deal = db.relationship("Deal")

    def to_dict(self) -> dict[str, object]:
        if self.service_id is not None:
            name = self.service.name if self.service else None
        else:
            name = self.deal.title if self.deal else None
        return {
            "id": self.item_id,
            "service_id": self.service_id,
            "deal_id": self.deal_id,
            "name": name,
            "price_cents": self.price_cents,
        }


class Product(db.Model):
    __tablename__ = "products"

    product_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    sku = db.Column(db.String(100))
    category = db.Column(db.String(100))
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    salon = db.relationship("Salon")
    movements = db.relationship(
        "StockMovement",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="StockMovement.movement_id.desc()",
    )

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.reorder_level

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.product_id,
            "salon_id": self.salon_id,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "price_cents": self.price_cents,
            "price_dollars": self.price_cents / 100.0,
            "stock_quantity": self.stock_quantity,
            "reorder_level": self.reorder_level,
            "is_low_stock": self.is_low_stock,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class StockMovement(db.Model):
    __tablename__ = "stock_movements"

    movement_id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.product_id"), nullable=False)
    kind = db.Column(
        db.Enum(
            "issue",
            "wastage",
            "restock",
            name="stock_movement_kind",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    quantity = db.Column(db.Integer, nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.staff_id"), nullable=True)
    reason = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    product = db.relationship("Product", back_populates="movements")
    staff = db.relationship("Staff")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.movement_id,
            "product_id": self.product_id,
            "kind": self.kind,
            "quantity": self.quantity,
            "staff_id": self.staff_id,
            "staff_name": self.staff.name if self.staff else None,
            "reason": self.reason,
            "created_at": _iso(self.created_at),
        }


class OnboardingRequest(db.Model):
    """A staff-join request waiting for a salon admin's decision."""

    __tablename__ = "onboarding_requests"
    __table_args__ = (db.UniqueConstraint("salon_id", "email", name="uq_onboarding_salon_email"),)

    request_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(150))
    status = db.Column(
        db.Enum(
            "pending",
            "approved",
            "rejected",
            name="onboarding_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    approved_at = db.Column(db.DateTime)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    rejected_at = db.Column(db.DateTime)
    rejected_by = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    auth_user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    salon = db.relationship("Salon")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.request_id,
            "salon_id": self.salon_id,
            "email": self.email,
            "name": self.name,
            "status": self.status,
            "approved_at": _iso(self.approved_at),
            "approved_by": self.approved_by,
            "rejected_at": _iso(self.rejected_at),
            "rejected_by": self.rejected_by,
            "auth_user_id": self.auth_user_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class OnlineStore(db.Model):
    """
    Online shop front for a physical store.

    Products sold online are the store's own Product rows, so storefront
    orders draw on the same stock_quantity as the register.
    """
    __tablename__ = "online_stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(32), nullable=True)
    currency = db.Column(db.String(8), nullable=False, default="VND")
    shipping_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    # Bank transfer instructions shown to customers
    bank_name = db.Column(db.String(120), nullable=True)
    bank_account_number = db.Column(db.String(64), nullable=True)
    bank_account_name = db.Column(db.String(120), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", backref=db.backref("online_stores", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "slug": self.slug,
            "name": self.name,
            "description": self.description,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "currency": self.currency,
            "shipping_fee_cents": self.shipping_fee_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "description": self.description,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "currency": self.currency,
            "shipping_fee_cents": self.shipping_fee_cents,
        }


class ShoppingCart(db.Model):
    """Anonymous cart identified by the X-Session-Id header."""
    __tablename__ = "shopping_carts"
    __table_args__ = (
        db.UniqueConstraint("online_store_id", "session_id", name="uq_carts_store_session"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    online_store_id = db.Column(db.Integer, db.ForeignKey("online_stores.id"), nullable=False, index=True)
    session_id = db.Column(db.String(128), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "CartItem",
        backref="cart",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    @property
    def subtotal_cents(self) -> int:
        return sum(item.total_price_cents for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "item_count": sum(item.quantity for item in self.items),
        }


class CartItem(db.Model):
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("shopping_carts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    @property
    def total_price_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }


class OnlineOrder(db.Model):
    """
    Storefront order.

    LIFECYCLE: pending -> confirmed -> processing -> shipped -> delivered,
    cancellable until shipped. Stock is deducted on confirmation and
    stock_deducted records that so cancellation restores exactly once.
    """
    __tablename__ = "online_orders"
    __table_args__ = (
        db.Index("ix_online_orders_store_status", "online_store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    online_store_id = db.Column(db.Integer, db.ForeignKey("online_stores.id"), nullable=False, index=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    customer_email = db.Column(db.String(255), nullable=False)
    customer_name = db.Column(db.String(120), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False)
    shipping_address = db.Column(db.JSON, nullable=False)
    customer_note = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(16), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_deducted = db.Column(db.Boolean, nullable=False, default=False)

    tracking_number = db.Column(db.String(64), nullable=True)
    carrier = db.Column(db.String(64), nullable=True)
    estimated_delivery = db.Column(db.DateTime(timezone=True), nullable=True)
    internal_note = db.Column(db.Text, nullable=True)

    payment_reference = db.Column(db.String(128), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_cents = db.Column(db.Integer, nullable=True)
    payment_note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    online_store = db.relationship("OnlineStore", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OnlineOrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OnlineOrderItem.id",
    )

    def __repr__(self) -> str:
        return f"<OnlineOrder id={self.id} number={self.order_number} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "online_store_id": self.online_store_id,
            "order_number": self.order_number,
            "customer_email": self.customer_email,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "shipping_address": self.shipping_address,
            "customer_note": self.customer_note,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "subtotal_cents": self.subtotal_cents,
            "shipping_fee_cents": self.shipping_fee_cents,
            "total_cents": self.total_cents,
            "stock_deducted": self.stock_deducted,
            "tracking_number": self.tracking_number,
            "carrier": self.carrier,
            "estimated_delivery": to_utc_z(self.estimated_delivery),
            "internal_note": self.internal_note,
            "payment_reference": self.payment_reference,
            "paid_at": to_utc_z(self.paid_at),
            "refunded_cents": self.refunded_cents,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OnlineOrderItem(db.Model):
    """Line item snapshot taken from the cart at checkout."""
    __tablename__ = "online_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("online_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }

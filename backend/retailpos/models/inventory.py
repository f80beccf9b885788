from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Unit(db.Model):
    """
    Unit of measure.

    A unit with no base_unit_id is itself a base unit (conversion_factor 1).
    Otherwise 1 of this unit equals conversion_factor of its base unit.
    The base_unit_id graph must stay acyclic; unit_service enforces this.
    """
    __tablename__ = "units"
    __table_args__ = (
        db.UniqueConstraint("store_id", "name", name="uq_units_store_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    base_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True, index=True)
    conversion_factor = db.Column(db.Float, nullable=False, default=1.0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    base_unit = db.relationship("Unit", remote_side=[id], backref=db.backref("derived_units", lazy=True))

    def __repr__(self) -> str:
        return f"<Unit id={self.id} name={self.name!r} base_unit_id={self.base_unit_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "description": self.description,
            "base_unit_id": self.base_unit_id,
            "conversion_factor": self.conversion_factor,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data with its on-hand quantity.

    MULTI-TENANT: Products are scoped to stores via store_id.

    STOCK: stock_quantity is mutated only by purchase receipt, order
    fulfilment or explicit adjustment, and must never go negative. The
    database does not enforce this; products_service and
    order_status_service do, under row locks.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("store_id", "sku", name="uq_products_store_sku"),
        db.Index("ix_products_store_name", "store_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=True)
    cost_price_cents = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True))
    unit = db.relationship("Unit", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock_quantity} store_id={self.store_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "cost_price_cents": self.cost_price_cents,
            "stock_quantity": self.stock_quantity,
            "unit_id": self.unit_id,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

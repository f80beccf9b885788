# Overview: Service-layer operations for units of measure; encapsulates business logic and database work.

"""
Unit of Measure Service

Units form a forest per store: a unit with no base_unit_id is a root
(base) unit, any other unit says "1 of me = conversion_factor of my base".
Chains may be longer than one hop (thung -> loc -> lon), so conversion
resolves both units to their root and multiplies the factors along the
way.

INVARIANTS:
- The base_unit_id graph is acyclic (can_set_as_base_unit walks the chain)
- A unit referenced by products or by other units cannot be deleted
- Names are unique within a store
"""

from __future__ import annotations

from ..extensions import db
from ..models import Unit, Product
from ..validation import (
    ValidationError,
    ConflictError,
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_unit,
)


UNIT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "base_unit_id", "conversion_factor"},
    required_on_create={"name"},
)


class UnitNotFoundError(Exception):
    pass


class UnitConversionError(Exception):
    """Units do not share a root base unit."""

    def __init__(self, from_unit_id: int, to_unit_id: int):
        super().__init__(f"Cannot convert unit {from_unit_id} to unit {to_unit_id}: no common base unit")
        self.from_unit_id = from_unit_id
        self.to_unit_id = to_unit_id


class UnitInUseError(Exception):
    """Delete blocked by products or derived units referencing the unit."""

    def __init__(self, unit_id: int, product_count: int, derived_unit_count: int):
        reasons = []
        if product_count:
            reasons.append(f"{product_count} product(s)")
        if derived_unit_count:
            reasons.append(f"{derived_unit_count} derived unit(s)")
        super().__init__(f"Unit {unit_id} is in use by {' and '.join(reasons)}")
        self.unit_id = unit_id
        self.product_count = product_count
        self.derived_unit_count = derived_unit_count


def get_unit(unit_id: int, store_id: int) -> Unit:
    unit = db.session.query(Unit).filter_by(id=unit_id, store_id=store_id).first()
    if not unit:
        raise UnitNotFoundError("Unit not found")
    return unit


def list_units(store_id: int, *, base_units_only: bool = False) -> list[Unit]:
    query = db.session.query(Unit).filter_by(store_id=store_id)
    if base_units_only:
        query = query.filter(Unit.base_unit_id.is_(None))
    return query.order_by(Unit.name.asc()).all()


def unit_to_dict(unit: Unit, *, include_base_unit: bool = False) -> dict:
    data = unit.to_dict()
    if include_base_unit:
        data["base_unit_name"] = unit.base_unit.name if unit.base_unit else None
    return data


def _name_exists(name: str, store_id: int, exclude_id: int | None = None) -> bool:
    query = db.session.query(Unit.id).filter(
        Unit.store_id == store_id,
        db.func.lower(Unit.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(Unit.id != exclude_id)
    return query.first() is not None


def _resolve_root(unit: Unit) -> tuple[Unit, float]:
    """
    Walk base_unit links to the root base unit.

    Returns (root, factor) where 1 unit = factor root units. Raises
    UnitConversionError on a cycle, which the write paths never create.
    """
    factor = 1.0
    seen = {unit.id}
    current = unit
    while current.base_unit_id is not None:
        factor *= current.conversion_factor
        current = current.base_unit
        if current is None or current.id in seen:
            raise UnitConversionError(unit.id, unit.id)
        seen.add(current.id)
    return current, factor


def convert(quantity: float, from_unit_id: int, to_unit_id: int, store_id: int | None = None) -> float:
    """
    Convert quantity from one unit to another.

    Both units must resolve to the same root base unit; otherwise
    UnitConversionError. Same-unit conversion returns quantity unchanged,
    but the unit must still exist in the store.
    """
    query = db.session.query(Unit)
    if store_id is not None:
        query = query.filter(Unit.store_id == store_id)
    from_unit = query.filter(Unit.id == from_unit_id).first()
    if from_unit is None:
        raise UnitNotFoundError("Unit not found")
    if from_unit_id == to_unit_id:
        return quantity

    to_unit = query.filter(Unit.id == to_unit_id).first()
    if to_unit is None:
        raise UnitNotFoundError("Unit not found")

    from_root, from_factor = _resolve_root(from_unit)
    to_root, to_factor = _resolve_root(to_unit)
    if from_root.id != to_root.id:
        raise UnitConversionError(from_unit_id, to_unit_id)

    return quantity * from_factor / to_factor


def can_set_as_base_unit(unit_id: int, candidate_base_unit_id: int) -> bool:
    """
    True if candidate may become unit's base without creating a cycle.

    Rejects self-reference and any candidate whose base chain reaches
    unit_id at any depth.
    """
    if unit_id == candidate_base_unit_id:
        return False

    seen = set()
    current_id = candidate_base_unit_id
    while current_id is not None:
        if current_id == unit_id:
            return False
        if current_id in seen:
            return False
        seen.add(current_id)
        current_id = db.session.query(Unit.base_unit_id).filter(Unit.id == current_id).scalar()
    return True


def _check_base_unit(base_unit_id: int, store_id: int) -> Unit:
    base = db.session.query(Unit).filter_by(id=base_unit_id, store_id=store_id).first()
    if not base:
        raise ValidationError("Base unit does not exist")
    return base


def create_unit(store_id: int, payload: dict) -> Unit:
    patch = validate_payload(model=Unit, payload=payload, policy=UNIT_POLICY, partial=False)

    if _name_exists(patch["name"], store_id):
        raise ConflictError("Unit name already exists")

    base_unit_id = patch.get("base_unit_id")
    if base_unit_id is not None:
        _check_base_unit(base_unit_id, store_id)
    enforce_rules_unit(patch, has_base_unit=base_unit_id is not None)

    unit = Unit(
        store_id=store_id,
        name=patch["name"],
        description=patch.get("description") or None,
        base_unit_id=base_unit_id,
        conversion_factor=patch["conversion_factor"] if base_unit_id is not None else 1.0,
    )
    db.session.add(unit)
    db.session.commit()
    return unit


def update_unit(unit_id: int, store_id: int, payload: dict) -> Unit:
    unit = get_unit(unit_id, store_id)
    patch = validate_payload(model=Unit, payload=payload, policy=UNIT_POLICY, partial=True)

    if "name" in patch and _name_exists(patch["name"], store_id, exclude_id=unit.id):
        raise ConflictError("Unit name already exists")

    base_unit_id = patch["base_unit_id"] if "base_unit_id" in patch else unit.base_unit_id
    if "base_unit_id" in patch and base_unit_id is not None:
        _check_base_unit(base_unit_id, store_id)
        if not can_set_as_base_unit(unit.id, base_unit_id):
            raise ValidationError("Cannot set this base unit: circular reference")

    if base_unit_id is not None:
        effective = {"conversion_factor": patch.get("conversion_factor", unit.conversion_factor)}
        enforce_rules_unit(effective, has_base_unit=True)

    for key in ("name", "description"):
        if key in patch:
            setattr(unit, key, patch[key])
    unit.base_unit_id = base_unit_id
    if base_unit_id is None:
        unit.conversion_factor = 1.0
    elif "conversion_factor" in patch:
        unit.conversion_factor = patch["conversion_factor"]

    db.session.commit()
    return unit


def get_unit_usage(unit_id: int) -> tuple[int, int]:
    """(products referencing the unit, units using it as base)."""
    product_count = db.session.query(Product).filter(Product.unit_id == unit_id).count()
    derived_count = db.session.query(Unit).filter(Unit.base_unit_id == unit_id).count()
    return product_count, derived_count


def delete_unit(unit_id: int, store_id: int) -> None:
    unit = get_unit(unit_id, store_id)

    product_count, derived_count = get_unit_usage(unit.id)
    if product_count or derived_count:
        raise UnitInUseError(unit.id, product_count, derived_count)

    db.session.delete(unit)
    db.session.commit()

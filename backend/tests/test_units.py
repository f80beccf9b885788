"""
Units of measure: CRUD, conversion and cycle protection.
"""

import pytest

from retailpos.models import Product, Unit
from retailpos.services import unit_service
from retailpos.services.unit_service import UnitConversionError, UnitInUseError, UnitNotFoundError
from retailpos.validation import ValidationError, ConflictError

from conftest import headers_for


# =============================================================================
# SERVICE
# =============================================================================


class TestConversion:

    def test_derived_to_base(self, db_session, unit_box, unit_piece):
        assert unit_service.convert(2, unit_box.id, unit_piece.id) == 24

    def test_base_to_derived(self, db_session, unit_box, unit_piece):
        assert unit_service.convert(36, unit_piece.id, unit_box.id) == 3

    def test_same_unit_is_identity(self, db_session, unit_box):
        assert unit_service.convert(5, unit_box.id, unit_box.id) == 5

    def test_multi_level_chain(self, db_session, store_a, unit_box, unit_piece):
        crate = unit_service.create_unit(
            store_a.id, {"name": "Crate", "base_unit_id": unit_box.id, "conversion_factor": 10}
        )
        assert unit_service.convert(1, crate.id, unit_piece.id) == 120

    def test_unrelated_units_rejected(self, db_session, store_a, unit_piece):
        kg = unit_service.create_unit(store_a.id, {"name": "Kg"})
        with pytest.raises(UnitConversionError):
            unit_service.convert(1, unit_piece.id, kg.id)

    @pytest.mark.parametrize("quantity", [1, 7.3, 0.125, 1000])
    def test_round_trip_with_fractional_factor(self, db_session, store_a, unit_piece, quantity):
        scoop = unit_service.create_unit(
            store_a.id, {"name": "Scoop", "base_unit_id": unit_piece.id, "conversion_factor": 0.45}
        )
        there = unit_service.convert(quantity, scoop.id, unit_piece.id)
        assert unit_service.convert(there, unit_piece.id, scoop.id) == pytest.approx(quantity)

    def test_same_unit_must_exist_in_store(self, db_session, store_a2, unit_piece):
        with pytest.raises(UnitNotFoundError):
            unit_service.convert(5, 99999, 99999)
        with pytest.raises(UnitNotFoundError):
            unit_service.convert(5, unit_piece.id, unit_piece.id, store_id=store_a2.id)


class TestUnitWrites:

    def test_base_unit_factor_forced_to_one(self, db_session, store_a):
        unit = unit_service.create_unit(store_a.id, {"name": "Litre", "conversion_factor": 5})
        assert unit.base_unit_id is None
        assert unit.conversion_factor == 1.0

    def test_derived_unit_needs_positive_factor(self, db_session, store_a, unit_piece):
        with pytest.raises(ValidationError):
            unit_service.create_unit(
                store_a.id, {"name": "Pack", "base_unit_id": unit_piece.id, "conversion_factor": 0}
            )

    @pytest.mark.parametrize("factor", [float("inf"), float("-inf"), "nan", "Infinity"])
    def test_derived_unit_factor_must_be_finite(self, db_session, store_a, unit_piece, factor):
        with pytest.raises(ValidationError):
            unit_service.create_unit(
                store_a.id, {"name": "Pack", "base_unit_id": unit_piece.id, "conversion_factor": factor}
            )
        assert db_session.query(Unit).filter_by(name="Pack").count() == 0

    def test_update_rejects_non_finite_factor(self, db_session, store_a, unit_box):
        with pytest.raises(ValidationError):
            unit_service.update_unit(unit_box.id, store_a.id, {"conversion_factor": float("nan")})

        db_session.expire_all()
        assert db_session.get(Unit, unit_box.id).conversion_factor == 12

    def test_duplicate_name_case_insensitive(self, db_session, store_a, unit_piece):
        with pytest.raises(ConflictError):
            unit_service.create_unit(store_a.id, {"name": "piece"})

    def test_same_name_allowed_in_other_store(self, db_session, store_a2, unit_piece):
        unit = unit_service.create_unit(store_a2.id, {"name": "Piece"})
        assert unit.store_id == store_a2.id

    def test_direct_cycle_rejected(self, db_session, store_a, unit_box, unit_piece):
        with pytest.raises(ValidationError, match="circular"):
            unit_service.update_unit(unit_piece.id, store_a.id, {"base_unit_id": unit_box.id, "conversion_factor": 2})

    def test_deep_cycle_rejected(self, db_session, store_a, unit_box, unit_piece):
        crate = unit_service.create_unit(
            store_a.id, {"name": "Crate", "base_unit_id": unit_box.id, "conversion_factor": 10}
        )
        with pytest.raises(ValidationError, match="circular"):
            unit_service.update_unit(unit_piece.id, store_a.id, {"base_unit_id": crate.id, "conversion_factor": 2})

    def test_self_reference_rejected(self, db_session, store_a, unit_piece):
        assert unit_service.can_set_as_base_unit(unit_piece.id, unit_piece.id) is False

    def test_delete_in_use_reports_usage(self, db_session, store_a, unit_box, unit_piece):
        db_session.add(Product(store_id=store_a.id, sku="U-1", name="Boxed", unit_id=unit_piece.id))
        db_session.commit()

        with pytest.raises(UnitInUseError) as exc:
            unit_service.delete_unit(unit_piece.id, store_a.id)
        assert exc.value.product_count == 1
        assert exc.value.derived_unit_count == 1

        db_session.expire_all()
        intact = db_session.get(Unit, unit_piece.id)
        assert intact is not None
        assert intact.name == "Piece"
        assert db_session.get(Unit, unit_box.id).base_unit_id == unit_piece.id


# =============================================================================
# API
# =============================================================================


class TestUnitsApi:

    def test_list_requires_store_header(self, client, store_manager):
        resp = client.get("/api/units", headers=headers_for(client, store_manager))
        assert resp.status_code == 400

    def test_list_units(self, client, store_manager, store_a, unit_box):
        resp = client.get(
            "/api/units?include_base_unit=true",
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 200
        names = {u["name"]: u for u in resp.json["units"]}
        assert names["Box"]["base_unit_name"] == "Piece"

    def test_create_unit(self, client, store_manager, store_a, unit_piece):
        resp = client.post(
            "/api/units",
            json={"name": "Dozen", "base_unit_id": unit_piece.id, "conversion_factor": 12},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 201
        assert resp.json["unit"]["conversion_factor"] == 12

    def test_create_duplicate_is_conflict(self, client, store_manager, store_a, unit_piece):
        resp = client.post(
            "/api/units",
            json={"name": "PIECE"},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 409

    def test_store_manager_cannot_delete(self, client, store_manager, store_a, unit_piece):
        resp = client.delete(
            f"/api/units/{unit_piece.id}",
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 403
        assert resp.json["code"] == "PERM001"

    def test_delete_in_use_is_conflict(self, client, admin, store_a, unit_box, unit_piece):
        resp = client.delete(
            f"/api/units/{unit_piece.id}",
            headers=headers_for(client, admin, store_a.id),
        )
        assert resp.status_code == 409
        assert resp.json["derived_unit_count"] == 1

    def test_convert(self, client, store_manager, store_a, unit_box, unit_piece):
        resp = client.post(
            "/api/units/convert",
            json={"quantity": 3, "from_unit_id": unit_box.id, "to_unit_id": unit_piece.id},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 200
        assert resp.json["result"] == 36

    def test_unit_from_other_store_not_found(self, client, admin, store_a2, unit_piece):
        resp = client.get(
            f"/api/units/{unit_piece.id}",
            headers=headers_for(client, admin, store_a2.id),
        )
        assert resp.status_code == 404

    def test_create_with_infinite_factor_is_400(self, client, store_manager, store_a, unit_piece):
        resp = client.post(
            "/api/units",
            data='{"name": "Dozen", "base_unit_id": %d, "conversion_factor": Infinity}' % unit_piece.id,
            content_type="application/json",
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 400

    def test_convert_same_unit_from_other_store_is_404(self, client, admin, store_a2, unit_piece):
        resp = client.post(
            "/api/units/convert",
            json={"quantity": 3, "from_unit_id": unit_piece.id, "to_unit_id": unit_piece.id},
            headers=headers_for(client, admin, store_a2.id),
        )
        assert resp.status_code == 404

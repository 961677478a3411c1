from datetime import datetime

from app.config.settings import settings
from app.modules.integrations.repository import PackageRepository
from app.modules.integrations.service import DELETE_NOTE, EDIT_NOTE
from app.shared.database.models import Package, PackageHistory
from app.shared.services.tracking_service import TrackingNumberService

from tests.helpers import STATIC_KEY, intake

HEADERS = {"x-warehouse-key": STATIC_KEY}
PACKAGES = "/api/v1/integrations/packages"


def get_package(client, tracking_id):
    return client.get(f"{PACKAGES}/{tracking_id}", headers=HEADERS)


def update_status(client, **payload):
    return client.post(f"{PACKAGES}/update-status", json=payload, headers=HEADERS)


class TestIntake:
    def test_creates_package_with_generated_tracking(self, client, customer):
        response = intake(client, HEADERS)

        assert response.status_code == 201
        body = response.json()
        assert body["created"] is True
        assert body["status"] == "AtWarehouse"
        assert body["external_customer_code"] == "C100"
        assert body["customer_id"] == customer.id
        assert body["history_length"] == 1
        assert body["tracking_id"].startswith(f"{settings.tracking_prefix}-")
        assert TrackingNumberService.validate(body["tracking_id"])

    def test_repeat_intake_updates_and_appends_history(self, client, customer):
        first = intake(client, HEADERS, TrackingNumber="TAS-MANUAL-0001", Weight=1.0)
        second = intake(client, HEADERS, TrackingNumber="TAS-MANUAL-0001", Weight=3.75, Shipper="Amazon")

        assert first.status_code == 201
        assert second.status_code == 200
        body = second.json()
        assert body["created"] is False
        assert body["weight"] == 3.75
        assert body["shipper"] == "Amazon"
        assert body["branch"] == "MIA"
        assert body["history_length"] == 2
        assert body["created_at"] == first.json()["created_at"]

    def test_owner_is_immutable(self, client, customer, other_customer, session_factory):
        intake(client, HEADERS, TrackingNumber="TAS-OWNER-1")
        response = intake(client, HEADERS, TrackingNumber="TAS-OWNER-1", UserCode="C200")

        assert response.status_code == 200
        assert response.json()["external_customer_code"] == "C100"
        with session_factory() as db:
            package = db.query(Package).filter(Package.tracking_id == "TAS-OWNER-1").one()
            assert package.customer_id == customer.id

    def test_descriptive_fields_and_extras(self, client, customer):
        response = intake(
            client, HEADERS,
            TrackingNumber="TAS-DESC-1",
            ControlNumber="CC-77",
            ServiceTypeID="25a1d8e5-a478-4cc3-b1fd-a37d0d787302",
            EntryDateTime="2025-01-19",
            FirstName="Ana",
            LastName="Pérez",
            Pieces=2,
            HSCode="6109",
            CustomsValue=25,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["control_number"] == "CC-77"
        assert body["service_type_name"] == "AIR EXPRESS"
        assert body["entry_date"] == "2025-01-19T00:00:00Z"
        assert body["pieces"] == 2
        assert body["hs_code"] == "6109"
        assert body["integration_payload"] == {"CustomsValue": 25}

        history = get_package(client, "TAS-DESC-1").json()["history"]
        assert history[0]["at"] == "2025-01-19T00:00:00Z"
        assert history[0]["location"] == "MIA"

    def test_snake_and_camel_case_accepted(self, client, customer):
        response = client.post(
            f"{PACKAGES}/intake",
            json={"trackingId": "TAS-CAMEL-1", "external_customer_code": "C100", "entryStaff": "Jorge"},
            headers=HEADERS
        )
        assert response.status_code == 201
        assert response.json()["entry_staff"] == "Jorge"

    def test_external_code_on_intake_is_metadata_only(self, client, customer):
        body = intake(client, HEADERS, TrackingNumber="TAS-META-1", PackageStatus=3).json()
        assert body["status"] == "AtWarehouse"
        assert body["external_status_code"] == "3"
        assert body["external_status_label"] == "AT LOCAL PORT"

    def test_unknown_customer_is_404(self, client, customer):
        response = intake(client, HEADERS, UserCode="NOPE")
        assert response.status_code == 404

    def test_inactive_customer_is_404(self, client, customer, db_session):
        customer.is_active = False
        db_session.commit()
        assert intake(client, HEADERS).status_code == 404

    def test_missing_customer_code_is_400(self, client, customer):
        response = client.post(f"{PACKAGES}/intake", json={"Weight": 1}, headers=HEADERS)
        assert response.status_code == 400
        body = response.json()
        assert body["detail"] == "Invalid payload"
        assert body["errors"]

    def test_invalid_values_are_400(self, client, customer):
        assert intake(client, HEADERS, Weight=-1).status_code == 400
        assert intake(client, HEADERS, EntryDateTime="not a date").status_code == 400

    def test_checksum_enforcement(self, client, customer, monkeypatch):
        monkeypatch.setattr(settings, "enforce_tracking_checksum", True)

        rejected = intake(client, HEADERS, TrackingNumber="TAS-BAD-1")
        accepted = intake(client, HEADERS, TrackingNumber=TrackingNumberService.generate())

        assert rejected.status_code == 400
        assert rejected.json()["errors"][0]["field"] == "tracking_id"
        assert accepted.status_code == 201

    def test_non_finite_numbers_are_400_and_nothing_is_saved(self, client, customer, session_factory):
        for raw in ("Infinity", "NaN"):
            response = client.post(
                f"{PACKAGES}/intake",
                content='{"UserCode": "C100", "TrackingNumber": "TAS-INF-1", "Weight": %s}' % raw,
                headers={**HEADERS, "content-type": "application/json"}
            )
            assert response.status_code == 400

        assert intake(client, HEADERS, TrackingNumber="TAS-INF-1", Weight="inf").status_code == 400
        assert client.post(
            f"{PACKAGES}/intake",
            content='{"UserCode": "C100", "TrackingNumber": "TAS-INF-1", "Customs": {"value": Infinity}}',
            headers={**HEADERS, "content-type": "application/json"}
        ).status_code == 400
        with session_factory() as db:
            assert db.query(Package).filter(Package.tracking_id == "TAS-INF-1").count() == 0

    def test_values_outside_column_range_are_400(self, client, customer):
        assert intake(client, HEADERS, Weight=100_000_000).status_code == 400
        assert intake(client, HEADERS, Cubes=10_000_000).status_code == 400
        assert intake(client, HEADERS, Pieces=2 ** 31).status_code == 400
        assert intake(client, HEADERS, TrackingNumber="T" * 101).status_code == 400
        assert intake(client, HEADERS, UserCode="C" * 51).status_code == 400
        assert intake(client, HEADERS, HSCode="6" * 51).status_code == 400
        assert intake(client, HEADERS, Weight=99_999_999.99).status_code == 201

    def test_conflict_on_supplied_tracking_retries_as_update(self, client, customer, monkeypatch):
        intake(client, HEADERS, TrackingNumber="TAS-RACE-1")
        lookup = PackageRepository.get_by_tracking_id
        calls = []

        def first_lookup_misses(self, tracking_id, for_update=False):
            # Simula otro request que creó el paquete entre la lectura y el insert
            calls.append(tracking_id)
            if len(calls) == 1:
                return None
            return lookup(self, tracking_id, for_update=for_update)

        monkeypatch.setattr(PackageRepository, "get_by_tracking_id", first_lookup_misses)
        response = intake(client, HEADERS, TrackingNumber="TAS-RACE-1", Shipper="DHL")

        assert response.status_code == 200
        body = response.json()
        assert body["created"] is False
        assert body["tracking_id"] == "TAS-RACE-1"
        assert body["shipper"] == "DHL"
        assert body["history_length"] == 2
        assert calls == ["TAS-RACE-1", "TAS-RACE-1"]

    def test_second_conflict_is_409_and_leaves_package_untouched(
        self, client, customer, monkeypatch, session_factory
    ):
        intake(client, HEADERS, TrackingNumber="TAS-RACE-2", Shipper="UPS")
        monkeypatch.setattr(PackageRepository, "get_by_tracking_id", lambda self, tracking_id, for_update=False: None)

        response = intake(client, HEADERS, TrackingNumber="TAS-RACE-2", Shipper="DHL")

        assert response.status_code == 409
        with session_factory() as db:
            package = db.query(Package).filter(Package.tracking_id == "TAS-RACE-2").one()
            assert package.shipper == "UPS"
            assert db.query(PackageHistory).filter(PackageHistory.package_id == package.id).count() == 1

    def test_generated_tracking_is_regenerated_on_conflict(self, client, customer, monkeypatch):
        taken = intake(client, HEADERS, TrackingNumber="TAS-TAKEN-1").json()["tracking_id"]
        generated = iter([taken, "TAS-FRESH-1"])
        monkeypatch.setattr(TrackingNumberService, "generate", lambda *args, **kwargs: next(generated))

        lookup = PackageRepository.get_by_tracking_id
        calls = []

        def first_lookup_misses(self, tracking_id, for_update=False):
            calls.append(tracking_id)
            if len(calls) == 1:
                return None
            return lookup(self, tracking_id, for_update=for_update)

        monkeypatch.setattr(PackageRepository, "get_by_tracking_id", first_lookup_misses)
        response = intake(client, HEADERS)

        assert response.status_code == 201
        assert response.json()["tracking_id"] == "TAS-FRESH-1"
        assert calls == [taken, "TAS-FRESH-1"]

    def test_get_missing_package_is_404(self, client):
        assert get_package(client, "TAS-NONE").status_code == 404


class TestStatusUpdate:
    def test_external_code_translation(self, client, customer):
        tracking_id = intake(client, HEADERS).json()["tracking_id"]

        response = update_status(client, TrackingNumber=tracking_id, PackageStatus=3, note="Llegó a puerto")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "AtLocalPort"
        assert body["external_status_label"] == "AT LOCAL PORT"
        assert body["previous_status"] == "AtWarehouse"
        assert body["history_length"] == 2

        package = get_package(client, tracking_id).json()
        assert package["status"] == "AtLocalPort"
        assert package["external_status_code"] == "3"
        assert [entry["status"] for entry in package["history"]] == ["AtWarehouse", "AtLocalPort"]
        assert package["history"][1]["note"] == "Llegó a puerto"

    def test_internal_status_and_location(self, client, customer):
        tracking_id = intake(client, HEADERS).json()["tracking_id"]

        body = update_status(client, tracking_id=tracking_id, status="Delivered", location="KIN").json()

        assert body["status"] == "Delivered"
        package = get_package(client, tracking_id).json()
        assert package["branch"] == "KIN"
        assert package["history"][-1]["location"] == "KIN"

    def test_unknown_code_maps_to_unknown(self, client, customer):
        tracking_id = intake(client, HEADERS).json()["tracking_id"]
        assert update_status(client, tracking_id=tracking_id, external_status_code=9).json()["status"] == "Unknown"

    def test_backward_transition_is_accepted(self, client, customer):
        tracking_id = intake(client, HEADERS).json()["tracking_id"]
        update_status(client, tracking_id=tracking_id, external_status_code=3)

        response = update_status(client, tracking_id=tracking_id, external_status_code=0)

        assert response.status_code == 200
        assert response.json()["status"] == "AtWarehouse"
        assert response.json()["history_length"] == 3

    def test_merge_data_is_deep_merged(self, client, customer):
        tracking_id = intake(client, HEADERS, Customs={"hs": "6109", "value": 10}).json()["tracking_id"]

        update_status(
            client, tracking_id=tracking_id, external_status_code=1,
            merge_data={"Customs": {"value": 12}, "flight": "AA100"}
        )

        payload = get_package(client, tracking_id).json()["integration_payload"]
        assert payload == {"Customs": {"hs": "6109", "value": 12}, "flight": "AA100"}

    def test_descriptive_fields_are_applied(self, client, customer):
        tracking_id = intake(client, HEADERS, Shipper="UPS").json()["tracking_id"]

        response = update_status(
            client, TrackingNumber=tracking_id, PackageStatus=1,
            Weight=7.25, Shipper="DHL", Description="Zapatos", ManifestID="MAN-77"
        )

        assert response.status_code == 200
        package = get_package(client, tracking_id).json()
        assert package["weight"] == 7.25
        assert package["shipper"] == "DHL"
        assert package["description"] == "Zapatos"
        assert package["manifest_id"] == "MAN-77"

    def test_descriptive_fields_are_validated(self, client, customer):
        tracking_id = intake(client, HEADERS).json()["tracking_id"]
        assert update_status(client, tracking_id=tracking_id, status="InTransit", weight=-1).status_code == 400
        assert update_status(client, tracking_id=tracking_id, status="InTransit", weight=1e9).status_code == 400
        assert get_package(client, tracking_id).json()["history_length"] == 1

    def test_documented_codes_match_translation(self, client):
        operation = client.get("/openapi.json").json()["paths"][f"{PACKAGES}/update-status"]["post"]
        assert "- 0: AtWarehouse" in operation["description"]
        assert "- 1 / 2: InTransit" in operation["description"]
        assert "- 3 / 4: AtLocalPort" in operation["description"]

    def test_non_finite_merge_data_is_400(self, client, customer):
        tracking_id = intake(client, HEADERS).json()["tracking_id"]
        response = client.post(
            f"{PACKAGES}/update-status",
            content='{"tracking_id": "%s", "status": "InTransit", "merge_data": {"rate": NaN}}' % tracking_id,
            headers={**HEADERS, "content-type": "application/json"}
        )
        assert response.status_code == 400
        assert get_package(client, tracking_id).json()["integration_payload"] == {}

    def test_requires_code_or_status(self, client, customer):
        tracking_id = intake(client, HEADERS).json()["tracking_id"]
        assert update_status(client, tracking_id=tracking_id).status_code == 400

    def test_missing_package_is_404(self, client):
        assert update_status(client, tracking_id="TAS-NONE", external_status_code=2).status_code == 404

    def test_history_is_append_only(self, client, customer, session_factory):
        tracking_id = intake(client, HEADERS).json()["tracking_id"]
        for code in (1, 2, 3):
            update_status(client, tracking_id=tracking_id, external_status_code=code)

        with session_factory() as db:
            package = db.query(Package).filter(Package.tracking_id == tracking_id).one()
            entries = db.query(PackageHistory).filter(
                PackageHistory.package_id == package.id
            ).order_by(PackageHistory.id).all()
            assert [entry.status for entry in entries] == ["AtWarehouse", "InTransit", "InTransit", "AtLocalPort"]
            assert all(isinstance(entry.at, datetime) for entry in entries)


class TestSoftDelete:
    def test_delete_is_idempotent_and_keeps_record(self, client, customer):
        tracking_id = intake(client, HEADERS).json()["tracking_id"]

        first = client.post(f"{PACKAGES}/delete", json={"TrackingNumber": tracking_id}, headers=HEADERS)
        second = client.post(f"{PACKAGES}/delete", json={"TrackingNumber": tracking_id}, headers=HEADERS)

        assert first.status_code == 200
        assert second.status_code == 200
        package = get_package(client, tracking_id).json()
        assert package["status"] == "Deleted"
        assert package["history_length"] == 3

    def test_delete_missing_is_404(self, client):
        response = client.post(f"{PACKAGES}/delete", json={"tracking_id": "TAS-NONE"}, headers=HEADERS)
        assert response.status_code == 404

    def test_bulk_delete_reports_each_item(self, client, customer):
        first = intake(client, HEADERS).json()["tracking_id"]
        second = intake(client, HEADERS).json()["tracking_id"]

        response = client.post(
            f"{PACKAGES}/bulk-delete",
            json=[{"TrackingNumber": first}, {"TrackingNumber": "TAS-NONE"}, {"TrackingNumber": second}],
            headers=HEADERS
        )

        assert response.status_code == 200
        body = response.json()
        assert body["processed"] == 3
        assert body["success"] is False
        assert [r["status_code"] for r in body["results"]] == [200, 404, 200]
        assert body["results"][1]["tracking_id"] == "TAS-NONE"
        assert get_package(client, first).json()["status"] == "Deleted"
        assert get_package(client, second).json()["status"] == "Deleted"

    def test_bulk_delete_accepts_single_object_with_body_token(self, client, customer):
        tracking_id = intake(client, HEADERS).json()["tracking_id"]

        response = client.post(
            f"{PACKAGES}/bulk-delete", json={"TrackingNumber": tracking_id, "APIToken": STATIC_KEY}
        )

        assert response.status_code == 200
        assert response.json()["succeeded"] == 1
        assert get_package(client, tracking_id).json()["history"][-1]["note"] == DELETE_NOTE

    def test_bulk_delete_without_tracking_is_400(self, client):
        assert client.post(f"{PACKAGES}/bulk-delete", json=[{"Note": "x"}], headers=HEADERS).status_code == 400
        assert client.post(f"{PACKAGES}/bulk-delete", json=[], headers=HEADERS).status_code == 400
        assert client.post(
            f"{PACKAGES}/bulk-delete", json={"TrackingNumber": "  "}, headers=HEADERS
        ).status_code == 400


class TestBulkIntake:
    def test_items_are_isolated(self, client, customer):
        items = [
            {"TrackingNumber": "TAS-BULK-1", "UserCode": "C100"},
            {"TrackingNumber": "TAS-BULK-2"},
            {"TrackingNumber": "TAS-BULK-3", "UserCode": "NOPE"},
            {"TrackingNumber": "TAS-BULK-4", "UserCode": "C100", "Weight": 4},
        ]

        response = client.post(f"{PACKAGES}/bulk-intake", json=items, headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["processed"] == 4
        assert body["succeeded"] == 2
        assert body["failed"] == 2
        assert body["success"] is False
        assert [r["status_code"] for r in body["results"]] == [201, 400, 404, 201]
        assert body["results"][1]["tracking_id"] == "TAS-BULK-2"
        assert get_package(client, "TAS-BULK-4").status_code == 200
        assert get_package(client, "TAS-BULK-3").status_code == 404

    def test_token_from_first_item_carrying_it(self, client, customer):
        items = [
            {"TrackingNumber": "TAS-BULK-5", "UserCode": "C100"},
            {"TrackingNumber": "TAS-BULK-6", "UserCode": "C100", "APIToken": STATIC_KEY},
        ]
        response = client.post(f"{PACKAGES}/bulk-intake", json=items)
        assert response.status_code == 200
        assert response.json()["succeeded"] == 2


class TestPackageEdit:
    def edit(self, client, *items):
        return client.post(f"{PACKAGES}/edit", json=list(items), headers=HEADERS)

    def test_creates_with_reported_status_and_partner_ids(self, client, customer):
        response = self.edit(client, {
            "TrackingNumber": "TAS-ED-1",
            "UserCode": "C100",
            "PackageStatus": 2,
            "ManifestID": "MAN-9",
            "PackageID": "PK-1",
            "CourierID": "CR-1",
            "CollectionID": "COL-1",
            "Discrepancy": True,
            "DiscrepancyDescription": "Caja abierta",
            "Weight": "3.5",
        })

        assert response.status_code == 200
        assert response.json()["results"] == [
            {"index": 0, "tracking_id": "TAS-ED-1", "ok": True, "status_code": 201, "error": None}
        ]
        package = get_package(client, "TAS-ED-1").json()
        assert package["status"] == "InTransit"
        assert package["external_status_code"] == "2"
        assert package["external_status_label"] == "IN TRANSIT TO LOCAL PORT"
        assert package["manifest_id"] == "MAN-9"
        assert package["external_package_id"] == "PK-1"
        assert package["courier_id"] == "CR-1"
        assert package["collection_id"] == "COL-1"
        assert package["discrepancy"] is True
        assert package["discrepancy_description"] == "Caja abierta"
        assert package["weight"] == 3.5
        assert [(h["status"], h["note"]) for h in package["history"]] == [("InTransit", EDIT_NOTE)]

    def test_history_grows_only_when_status_changes(self, client, customer):
        self.edit(client, {"TrackingNumber": "TAS-ED-2", "UserCode": "C100", "PackageStatus": 1})
        same = self.edit(client, {"TrackingNumber": "TAS-ED-2", "UserCode": "C100", "PackageStatus": 2, "Weight": 8})

        package = get_package(client, "TAS-ED-2").json()
        assert same.json()["results"][0]["status_code"] == 200
        assert package["weight"] == 8
        assert package["external_status_code"] == "2"
        assert package["history_length"] == 1

        self.edit(client, {"TrackingNumber": "TAS-ED-2", "UserCode": "C100", "PackageStatus": 3})
        package = get_package(client, "TAS-ED-2").json()
        assert [h["status"] for h in package["history"]] == ["InTransit", "AtLocalPort"]

    def test_without_status_code_keeps_current_status(self, client, customer):
        tracking_id = intake(client, HEADERS).json()["tracking_id"]
        update_status(client, tracking_id=tracking_id, external_status_code=3)

        self.edit(client, {"TrackingNumber": tracking_id, "UserCode": "C100", "Shipper": "FedEx"})

        package = get_package(client, tracking_id).json()
        assert package["status"] == "AtLocalPort"
        assert package["shipper"] == "FedEx"
        assert package["history_length"] == 2

    def test_new_package_without_code_starts_at_warehouse(self, client, customer):
        self.edit(client, {"TrackingNumber": "TAS-ED-3", "UserCode": "C100"})
        package = get_package(client, "TAS-ED-3").json()
        assert package["status"] == "AtWarehouse"
        assert package["history_length"] == 1

    def test_items_are_isolated(self, client, customer):
        response = self.edit(
            client,
            {"TrackingNumber": "TAS-ED-4", "UserCode": "C100"},
            {"UserCode": "C100"},
            {"TrackingNumber": "TAS-ED-5"},
            {"TrackingNumber": "TAS-ED-6", "UserCode": "NOPE"},
            {"TrackingNumber": "TAS-ED-7", "UserCode": "C100", "Weight": "Infinity"},
        )

        body = response.json()
        assert [r["status_code"] for r in body["results"]] == [201, 400, 400, 404, 400]
        assert body["results"][1]["tracking_id"] is None
        assert body["results"][2]["tracking_id"] == "TAS-ED-5"
        assert body["succeeded"] == 1
        assert get_package(client, "TAS-ED-7").status_code == 404

    def test_body_must_be_a_list(self, client, customer):
        response = client.post(
            f"{PACKAGES}/edit", json={"TrackingNumber": "TAS-ED-8", "UserCode": "C100"}, headers=HEADERS
        )
        assert response.status_code == 400


class TestPackageExists:
    def test_reports_presence(self, client, customer):
        tracking_id = intake(client, HEADERS).json()["tracking_id"]

        found = client.get(f"{PACKAGES}/exists", params={"tracking": tracking_id}, headers=HEADERS)
        missing = client.get(f"{PACKAGES}/exists", params={"tracking": "TAS-NONE"}, headers=HEADERS)

        assert found.json() == {"tracking_id": tracking_id, "exists": True}
        assert missing.json() == {"tracking_id": "TAS-NONE", "exists": False}

    def test_tracking_is_required(self, client):
        assert client.get(f"{PACKAGES}/exists", headers=HEADERS).status_code == 400
        assert client.get(f"{PACKAGES}/exists", params={"tracking": "  "}, headers=HEADERS).status_code == 400

    def test_requires_read_permission(self, client, customer):
        assert client.get(f"{PACKAGES}/exists", params={"tracking": "TAS-1"}).status_code == 401


class TestCustomerDirectory:
    def test_pull_with_query_token(self, client, customer, other_customer, warehouse_user):
        response = client.get(f"/api/v1/integrations/customers?id={STATIC_KEY}")

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == str(settings.partner_read_rate_limit)
        rows = {row["UserCode"]: row for row in response.json()}
        assert set(rows) == {"C100", "C200"}
        assert rows["C100"] == {"UserCode": "C100", "FirstName": "Ana", "LastName": "Pérez", "Branch": "MIA"}

    def test_requires_customer_permission(self, client, customer, stored_key):
        response = client.get(f"/api/v1/integrations/customers?id={stored_key.key}")
        assert response.status_code == 401

    def test_operator_session_not_accepted(self, client, customer, warehouse_headers):
        response = client.get("/api/v1/integrations/customers", headers=warehouse_headers)
        assert response.status_code == 401


class TestTrackingValidation:
    def test_validate_endpoint(self, client):
        valid_id = TrackingNumberService.generate()
        assert client.get(f"/api/v1/tracking/{valid_id}/validate").json() == {
            "tracking_id": valid_id, "valid": True
        }
        assert client.get("/api/v1/tracking/TAS-NOPE/validate").json()["valid"] is False

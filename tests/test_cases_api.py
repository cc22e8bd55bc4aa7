from io import BytesIO
from pathlib import Path

from conftest import case_payload


def _png(name="card.png"):
    return (BytesIO(b"\x89PNG\r\n\x1a\n" + b"\0" * 32), name, "image/png")


def test_requires_login(client) -> None:
    resp = client.get("/cases")

    assert resp.status_code == 401
    assert resp.get_json()["ok"] is False


def test_add_case_json(clerk_client) -> None:
    resp = clerk_client.post("/add-case", json=case_payload())

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["ok"] is True
    assert body["indexCardPath"] == "N/A"
    case = body["case"]
    assert case["docketNo"] == "NPS-2024-001"
    assert case["isActive"] is True
    assert case["remarksDecision"] == "Pending"
    assert case["dateFiled"] == "2024-01-15"


def test_add_case_validation_errors(clerk_client) -> None:
    payload = case_payload()
    del payload["docketNo"]

    resp = clerk_client.post("/add-case", json=payload)

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["msg"] == "Docket number is required"
    assert body["errors"] == [{"field": "docketNo", "message": "Docket number is required"}]


def test_duplicate_docket_is_conflict(clerk_client) -> None:
    clerk_client.post("/add-case", json=case_payload())

    resp = clerk_client.post("/add-case", json=case_payload(docketNo="  nps-2024-001"))

    assert resp.status_code == 409
    assert len(clerk_client.get("/cases").get_json()) == 1


def test_staff_is_read_only(staff_client) -> None:
    assert staff_client.post("/add-case", json=case_payload()).status_code == 403
    assert staff_client.get("/cases").status_code == 200


def test_add_case_with_legacy_form_and_image(app, clerk_client) -> None:
    form = {
        "DOCKET_NO": "NPS-2024-002",
        "DATE_FILED": "2024-02-01",
        "COMPLAINANT": "Ana Reyes",
        "RESPONDENT": "Jose Cruz",
        "ADDRESS_OF_RESPONDENT": "Pasig",
        "OFFENSE": "Estafa",
        "DATE_OF_COMMISSION": "2024-01-20",
        "BRANCH": "Branch 3",
        "indexCardImage": _png(),
    }

    resp = clerk_client.post("/add-case", data=form, content_type="multipart/form-data")

    assert resp.status_code == 201
    path = resp.get_json()["indexCardPath"]
    assert path.startswith("/uploads/index_cards/indexcard-")
    assert path.endswith(".png")
    assert (Path(app.config["UPLOAD_ROOT"]) / path[len("/uploads/"):]).exists()
    assert clerk_client.get(path).status_code == 200


def test_non_image_upload_is_rejected(clerk_client) -> None:
    data = case_payload()
    data["indexCardImage"] = (BytesIO(b"GIF89a"), "card.gif", "image/gif")

    resp = clerk_client.post("/add-case", data=data, content_type="multipart/form-data")

    assert resp.status_code == 400
    assert clerk_client.get("/cases").get_json() == []


def test_search(clerk_client) -> None:
    clerk_client.post("/add-case", json=case_payload())
    clerk_client.post(
        "/add-case",
        json=case_payload(docketNo="NPS-2024-002", respondent="Maria Lopez", dateFiled="2024-03-02",
                          remarksDecision="Dismissed"),
    )

    assert clerk_client.get("/get-case").status_code == 400

    found = clerk_client.get("/get-case?respondent=SANTOS").get_json()
    assert [c["docketNo"] for c in found] == ["NPS-2024-001"]

    found = clerk_client.get("/get-case?start_date=2024-03-01").get_json()
    assert [c["docketNo"] for c in found] == ["NPS-2024-002"]

    found = clerk_client.get("/get-case?remarks=dismiss&end_date=2024-12-31").get_json()
    assert [c["docketNo"] for c in found] == ["NPS-2024-002"]

    resp = clerk_client.get("/get-case?docket_no=XYZ")
    assert resp.status_code == 404
    assert resp.get_json()["msg"] == "No matching cases found"


def test_search_include_terminated(admin_client) -> None:
    admin_client.post("/add-case", json=case_payload())
    admin_client.delete("/delete-case", json={"docket_no": "NPS-2024-001"})

    assert admin_client.get("/get-case?docket_no=NPS").status_code == 404
    found = admin_client.get("/get-case?docket_no=NPS&include_terminated=1").get_json()
    assert found[0]["isActive"] is False


def test_update_case(clerk_client) -> None:
    case = clerk_client.post("/add-case", json=case_payload()).get_json()["case"]

    resp = clerk_client.post(
        "/update-case",
        json={"id": case["id"], "updated_fields": {"remarksDecision": "convicted", "penalty": "6 months"}},
    )

    assert resp.status_code == 200
    updated = resp.get_json()["case"]
    assert updated["remarksDecision"] == "Convicted"
    assert updated["penalty"] == "6 months"
    assert updated["complainant"] == "Juan Dela Cruz"


def test_update_case_errors(clerk_client) -> None:
    case = clerk_client.post("/add-case", json=case_payload()).get_json()["case"]

    resp = clerk_client.post("/update-case", json={"id": case["id"], "updated_fields": {}})
    assert resp.status_code == 400

    resp = clerk_client.post("/update-case", json={"id": case["id"], "updated_fields": {"courtroom": "3"}})
    assert resp.status_code == 400
    assert resp.get_json()["errors"][0]["field"] == "courtroom"

    resp = clerk_client.post("/update-case", json={"id": 9999, "updated_fields": {"penalty": "Fine"}})
    assert resp.status_code == 404


def test_update_case_accepts_legacy_remarks_and_index_cards(clerk_client) -> None:
    case = clerk_client.post("/add-case", json=case_payload()).get_json()["case"]

    resp = clerk_client.post(
        "/update-case",
        json={"id": case["id"], "updated_fields": {"REMARKS": "for review", "INDEX_CARDS": "N/A"}},
    )

    assert resp.status_code == 200
    updated = resp.get_json()["case"]
    assert updated["remarks"] == "for review"
    assert updated["remarksDecision"] == "Pending"
    assert updated["indexCards"] == "N/A"

    resp = clerk_client.post(
        "/update-case",
        json={"id": case["id"], "updated_fields": {"indexCards": "/uploads/index_cards/someone-else.png"}},
    )
    assert resp.status_code == 400


def test_search_matches_free_text_remarks(clerk_client) -> None:
    clerk_client.post("/add-case", json=case_payload(remarks="Awaiting witness affidavit"))
    clerk_client.post("/add-case", json=case_payload(docketNo="NPS-2024-002"))

    found = clerk_client.get("/get-case?remarks=affidavit").get_json()

    assert [c["docketNo"] for c in found] == ["NPS-2024-001"]
    assert found[0]["remarks"] == "Awaiting witness affidavit"


def test_search_treats_like_wildcards_literally(clerk_client) -> None:
    clerk_client.post("/add-case", json=case_payload())

    assert clerk_client.get("/get-case?docket_no=NPS_2024").status_code == 404
    assert clerk_client.get("/get-case?docket_no=%25").status_code == 404
    found = clerk_client.get("/get-case?docket_no=NPS-2024").get_json()
    assert [c["docketNo"] for c in found] == ["NPS-2024-001"]


def test_update_case_with_image_replaces_previous(app, clerk_client) -> None:
    data = case_payload()
    data["indexCardImage"] = _png("first.png")
    created = clerk_client.post("/add-case", data=data, content_type="multipart/form-data").get_json()
    old_file = Path(app.config["UPLOAD_ROOT"]) / created["indexCardPath"][len("/uploads/"):]
    assert old_file.exists()

    resp = clerk_client.post(
        "/update-case-with-image",
        data={"id": str(created["case"]["id"]), "offense": "Qualified Theft", "indexCardImage": _png("second.png")},
        content_type="multipart/form-data",
    )

    assert resp.status_code == 200
    case = resp.get_json()["case"]
    assert case["offense"] == "Qualified Theft"
    assert case["indexCards"] != created["indexCardPath"]
    assert not old_file.exists()
    assert (Path(app.config["UPLOAD_ROOT"]) / case["indexCards"][len("/uploads/"):]).exists()


def test_case_detail(clerk_client) -> None:
    clerk_client.post("/add-case", json=case_payload())

    resp = clerk_client.get("/case/NPS-2024-001")

    assert resp.status_code == 200
    assert resp.get_json()["case"]["respondent"] == "Pedro Santos"


def test_dashboard_is_role_tailored(app, make_user, admin_client) -> None:
    admin_client.post("/add-case", json=case_payload())
    make_user("Staff")
    staff = app.test_client()
    staff.post("/api/auth/login", json={"email": "staff@example.com", "password": "secret123"})

    admin_view = admin_client.get("/api/dashboard").get_json()
    staff_view = staff.get("/api/dashboard").get_json()

    assert admin_view["cases"]["active"] == 1
    assert admin_view["users"]["Admin"]["active"] == 1
    assert admin_view["autoDelete"] == {"enabled": False}
    assert staff_view["cases"]["byRemarksDecision"]["Pending"] == 1
    assert staff_view["permissions"]["editCases"] is False
    assert "users" not in staff_view


def test_unavailable_database_maps_to_503(app, client, tmp_path) -> None:
    db_dir = tmp_path / "not-a-file"
    db_dir.mkdir()
    app.config["DATABASE"] = str(db_dir)

    resp = client.get("/ping")

    assert resp.status_code == 503
    assert resp.get_json() == {"ok": False, "msg": "Database is unavailable."}

from io import BytesIO

from openpyxl import Workbook, load_workbook

from conftest import case_payload
from services.excel import SHEET_COLUMNS

IMPORT_HEADERS = [
    "Docket No",
    "Date Filed",
    "Complainant",
    "Respondent",
    "Address of Respondent",
    "Offense",
    "Date of Commission",
    "Branch",
    "Remarks Decision",
]


def _xlsx(rows):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer


def _upload(client, rows, url="/api/excel/upload", filename="cases.xlsx"):
    return client.post(url, data={"file": (_xlsx(rows), filename)}, content_type="multipart/form-data")


def test_export_has_expected_header_and_active_rows(admin_client) -> None:
    admin_client.post("/add-case", json=case_payload())
    admin_client.post("/add-case", json=case_payload(docketNo="NPS-2024-002"))
    admin_client.delete("/delete-case", json={"docket_no": "NPS-2024-002"})

    resp = admin_client.get("/download-excel")

    assert resp.status_code == 200
    assert "cases.xlsx" in resp.headers["Content-Disposition"]
    ws = load_workbook(BytesIO(resp.data))["Cases"]
    rows = list(ws.iter_rows(values_only=True))
    assert list(rows[0]) == list(SHEET_COLUMNS)
    assert len(rows) == 2
    assert rows[1][1] == "NPS-2024-001"
    assert rows[1][2] == "2024-01-15"

    resp = admin_client.get("/api/excel/download?include_terminated=1")
    rows = list(load_workbook(BytesIO(resp.data))["Cases"].iter_rows(values_only=True))
    assert len(rows) == 3


def test_import_inserts_updates_and_collects_row_errors(clerk_client) -> None:
    clerk_client.post("/add-case", json=case_payload())
    rows = [
        IMPORT_HEADERS,
        ["NPS-2024-001", None, "Juana Dela Cruz", None, None, None, None, None, "Convicted"],
        ["NPS-2024-010", "2024-04-01", "Ana Reyes", "Jose Cruz", "Pasig", "Estafa", "2024-03-15", "Branch 3", None],
        ["NPS-2024-011", "2024-04-02", None, "Ben Torres", "Manila", "Libel", "2024-03-20", "Branch 4", None],
        [None, None, None, None, None, None, None, None, None],
    ]

    resp = _upload(clerk_client, rows)

    assert resp.status_code == 200
    body = resp.get_json()
    assert (body["inserted"], body["updated"], body["skipped"]) == (1, 1, 1)
    assert len(body["errors"]) == 1
    assert body["errors"][0].startswith("Row 4: complainant")

    updated = clerk_client.get("/case/NPS-2024-001").get_json()["case"]
    assert updated["complainant"] == "Juana Dela Cruz"
    assert updated["respondent"] == "Pedro Santos"
    assert updated["remarksDecision"] == "Convicted"
    inserted = clerk_client.get("/case/NPS-2024-010").get_json()["case"]
    assert inserted["remarksDecision"] == "Pending"
    assert clerk_client.get("/case/NPS-2024-011").status_code == 404


def test_import_refuses_bad_headers(clerk_client) -> None:
    resp = _upload(clerk_client, [["Dockt No", "Complainant", "Respondent"], ["X-1", "A", "B"]])

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["errors"] == [
        'Column "Dockt No" is wrong name, use "Docket No" instead.',
        'Required column "Docket No" is missing.',
    ]
    assert clerk_client.get("/cases").get_json() == []


def test_import_rejects_non_xlsx(clerk_client) -> None:
    resp = clerk_client.post(
        "/api/excel/upload",
        data={"file": (BytesIO(b"a,b,c\n"), "cases.csv")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400

    resp = clerk_client.post(
        "/api/excel/upload",
        data={"file": (BytesIO(b"not a workbook"), "cases.xlsx")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400


def test_validate_columns_endpoint(clerk_client) -> None:
    resp = _upload(clerk_client, [["Docket No", "Complainant", "Respondant"]], url="/api/excel/validate-columns")

    body = resp.get_json()
    assert body["ok"] is False
    assert body["errors"][0] == 'Column "Respondant" is wrong name, use "Respondent" instead.'
    assert body["required"] == ["Docket No", "Complainant", "Respondent"]


def test_staff_cannot_import(staff_client) -> None:
    resp = _upload(staff_client, [IMPORT_HEADERS])

    assert resp.status_code == 403


def test_import_ignores_unnamed_columns_and_reads_remarks(clerk_client) -> None:
    rows = [
        [IMPORT_HEADERS[0], None, *IMPORT_HEADERS[1:], "Remarks"],
        ["NPS-2024-020", "scratch note", "2024-04-01", "Ana Reyes", "Jose Cruz", "Pasig", "Estafa",
         "2024-03-15", "Branch 3", None, "Witness relocated"],
    ]

    resp = _upload(clerk_client, rows)

    assert resp.status_code == 200
    assert resp.get_json()["inserted"] == 1
    case = clerk_client.get("/case/NPS-2024-020").get_json()["case"]
    assert case["complainant"] == "Ana Reyes"
    assert case["remarks"] == "Witness relocated"


def test_validate_columns_endpoint_skips_blank_headers(clerk_client) -> None:
    resp = _upload(
        clerk_client,
        [["Docket No", None, "Complainant", "Respondent"]],
        url="/api/excel/validate-columns",
    )

    body = resp.get_json()
    assert body["ok"] is True
    assert body["errors"] == []

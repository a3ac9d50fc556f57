from io import BytesIO

import pytest
from openpyxl import load_workbook


def _form(name="Ann Lee", school="Greenwood", photo=True, **overrides):
    data = {
        "school": school,
        "name": name,
        "dob": "2012-04-01",
        "gender": "Female",
        "events": ["100m", "Relay"],
    }
    if photo:
        data["photo"] = (BytesIO(b"\x89PNG fake"), "ann lee.png")
    data.update(overrides)
    return data


def _submit(client, **kwargs):
    return client.post("/submit", data=_form(**kwargs), content_type="multipart/form-data")


def test_index_serves_form(client):
    res = client.get("/")
    assert res.status_code == 200
    assert b'action="/submit"' in res.data


def test_submit_assigns_chest_and_stores_photo(client, app_config):
    res = _submit(client)
    assert res.status_code == 201
    body = res.get_json()
    assert body["chest"] == 100
    assert body["events"] == ["100m", "Relay"]
    assert body["photo"].startswith("/uploads/")
    assert body["photo"].endswith("_ann_lee.png")

    photo = client.get(body["photo"])
    assert photo.status_code == 200
    assert photo.data == b"\x89PNG fake"


def test_submit_duplicate_rejected_and_photo_discarded(client, app_config):
    import os

    assert _submit(client).status_code == 201
    res = _submit(client, name="  ann LEE ")
    assert res.status_code == 400
    assert "already registered" in res.get_json()["error"]
    assert len(os.listdir(app_config["UPLOAD_FOLDER"])) == 1


def test_submit_requires_photo(client):
    res = _submit(client, photo=False)
    assert res.status_code == 400
    assert res.get_json() == {"error": "A photo is required"}
    assert client.get("/api/chest/peek?school=Greenwood").get_json()["next"] == 100


def test_submit_rejects_bad_photo_type(client):
    data = _form(photo=False)
    data["photo"] = (BytesIO(b"x"), "evil.exe")
    res = client.post("/submit", data=data, content_type="multipart/form-data")
    assert res.status_code == 400
    assert "not allowed" in res.get_json()["error"]


def test_submit_missing_fields(client):
    res = _submit(client, events=[])
    assert res.status_code == 400
    assert "events" in res.get_json()["error"]


def test_submit_unknown_school_and_exhausted(client):
    res = _submit(client, school="Atlantis")
    assert res.status_code == 400
    assert "No chest number range" in res.get_json()["error"]
    for name in ("A", "B", "C"):
        assert _submit(client, name=name).status_code == 201
    res = _submit(client, name="D")
    assert res.status_code == 400
    assert len(client.get("/results").get_json()) == 3


def test_results_schools_ranges_and_peek(client):
    _submit(client, name="Zed", school="Hillside")
    _submit(client, name="Ann")
    results = client.get("/results").get_json()
    assert [r["school"] for r in results] == ["Greenwood", "Hillside"]
    assert client.get("/schools").get_json() == ["Greenwood", "Hillside"]
    ranges = {r["school"]: r for r in client.get("/api/ranges").get_json()}
    assert ranges["Hillside"]["next"] == 201
    assert client.get("/api/chest/peek?school=Greenwood").get_json() == {"school": "Greenwood", "next": 101}
    assert client.get("/api/chest/peek?school=Nowhere").get_json()["next"] is None
    assert client.get("/api/chest/peek").status_code == 400


def test_delete_participant_rolls_back_chest(client):
    _submit(client, name="Ann")
    _submit(client, name="Ben")
    res = client.delete("/api/participants", json={"name": "ben", "school": "greenwood"})
    assert res.status_code == 200
    assert res.get_json()["removed"]["chest"] == 101
    assert client.get("/api/chest/peek?school=Greenwood").get_json()["next"] == 101
    res = client.delete("/api/participants", json={"name": "ben", "school": "greenwood"})
    assert res.status_code == 404
    assert client.delete("/api/participants", json={"name": "ben"}).status_code == 400


def test_edit_participant(client):
    _submit(client, name="Ann")
    res = client.patch(
        "/api/participants",
        json={"name": "Ann", "school": "Greenwood", "changes": {"events": ["Shot Put"], "gender": "m"}},
    )
    assert res.status_code == 200
    assert res.get_json()["events"] == ["Shot Put"]
    assert res.get_json()["gender"] == "Male"
    res = client.patch(
        "/api/participants",
        json={"name": "Ann", "school": "Greenwood", "changes": {"chest": 999}},
    )
    assert res.status_code == 400
    assert client.patch("/api/participants", json={"name": "Ann", "school": "Greenwood"}).status_code == 400


def test_reset_last_and_reset_all(client):
    assert client.post("/reset-last").status_code == 404
    _submit(client, name="Ann")
    _submit(client, name="Ben", school="Hillside")
    res = client.post("/reset-last")
    assert res.status_code == 200
    assert res.get_json()["removed"]["name"] == "Ben"
    res = client.post("/reset-all")
    assert res.get_json()["removed"] == 1
    assert client.get("/results").get_json() == []
    assert client.get("/api/chest/peek?school=Greenwood").get_json()["next"] == 100


def test_export_all(client):
    _submit(client, name="Ann")
    res = client.get("/export")
    assert res.status_code == 200
    assert res.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert "sports_results.xlsx" in res.headers["Content-Disposition"]
    wb = load_workbook(BytesIO(res.data))
    values = [row[0] for row in wb.active.iter_rows(values_only=True)]
    assert "School: Greenwood" in values
    assert "Ann" in values


def test_export_school(client):
    assert client.get("/export-school").status_code == 400
    assert client.get("/export-school?school=Greenwood").status_code == 404
    _submit(client, name="Ann")
    res = client.get("/export-school?school=greenwood")
    assert res.status_code == 200
    assert "greenwood_responses.xlsx" in res.headers["Content-Disposition"]


@pytest.fixture()
def locked_client(app_config):
    from sportsreg import create_app

    app_config["ADMIN_PASSWORD"] = "s3cret"
    app = create_app(app_config)
    with app.test_client() as c:
        yield c


def test_admin_routes_require_login(locked_client):
    assert locked_client.post("/reset-all").status_code == 401
    assert locked_client.get("/export").status_code == 401
    res = locked_client.post("/login", json={"username": "admin", "password": "wrong"})
    assert res.status_code == 401
    res = locked_client.post("/login", json={"username": "admin", "password": "s3cret"})
    assert res.status_code == 200
    assert locked_client.post("/reset-all").status_code == 200
    locked_client.post("/logout")
    assert locked_client.post("/reset-all").status_code == 401


def test_registration_stays_public_when_locked(locked_client):
    assert _submit(locked_client, name="Ann").status_code == 201
    assert locked_client.get("/results").status_code == 200


def test_submit_keeps_event_names_containing_commas(client):
    res = _submit(client, events=["Relay 4x100, Mixed", "Long Jump"])
    assert res.status_code == 201
    assert res.get_json()["events"] == ["Relay 4x100, Mixed", "Long Jump"]


def test_submit_splits_single_comma_separated_field(client):
    res = _submit(client, events="100m, Relay")
    assert res.status_code == 201
    assert res.get_json()["events"] == ["100m", "Relay"]

from io import BytesIO

from openpyxl import load_workbook

from sportsreg.categories import INVALID_DOB
from sportsreg.export import HEADER, build_workbook, group_records, safe_filename, workbook_bytes
from sportsreg.models import Participant


def _p(name, school, events, category, chest):
    return Participant(
        school=school,
        name=name,
        dob="2012-01-01",
        gender="Female",
        events=events,
        chest=chest,
        age_category=category,
        created_at="2026-06-01T10:00:00Z",
    )


RECORDS = [
    _p("Ann", "Greenwood", ["100m", "Relay"], "Under 16", 100),
    _p("Ben", "Greenwood", ["100m"], "Under 11", 101),
    _p("Old", "Greenwood", ["100m"], "Overage", 102),
    _p("Zed", "Hillside", ["Shot Put"], INVALID_DOB, 200),
    _p("Cat", "Greenwood", ["100m"], "Under 19", 103),
]


def test_group_records_orders_categories():
    grouped = group_records(RECORDS)
    assert list(grouped) == ["Greenwood", "Hillside"]
    assert list(grouped["Greenwood"]) == ["100m", "Relay"]
    assert list(grouped["Greenwood"]["100m"]) == ["Under 11", "Under 16", "Under 19", "Overage"]
    assert [p.name for p in grouped["Greenwood"]["Relay"]["Under 16"]] == ["Ann"]
    assert list(grouped["Hillside"]["Shot Put"]) == [INVALID_DOB]


def _rows(wb_bytes):
    wb = load_workbook(BytesIO(wb_bytes.getvalue()))
    return [[c for c in row] for row in wb.active.iter_rows(values_only=True)]


def test_build_workbook_all_schools():
    rows = _rows(workbook_bytes(build_workbook(RECORDS)))
    firsts = [r[0] for r in rows if r and r[0] is not None]
    assert firsts[0] == "School: Greenwood"
    assert "School: Hillside" in firsts
    assert "Event: Relay" in firsts
    assert tuple(HEADER) in [tuple(r[:5]) for r in rows]
    ann = next(r for r in rows if r[0] == "Ann")
    assert list(ann[:5]) == ["Ann", 100, "2012-01-01", "Female", "2026-06-01T10:00:00Z"]
    # Under 11 block comes before Under 16 within the 100m event
    assert firsts.index("Age Category: Under 11") < firsts.index("Age Category: Under 16")


def test_build_workbook_single_school():
    wb = build_workbook([r for r in RECORDS if r.school == "Hillside"], school="Hillside")
    assert wb.active.title == "Responses - Hillside"
    rows = _rows(workbook_bytes(wb))
    firsts = [r[0] for r in rows if r and r[0] is not None]
    assert not any(str(v).startswith("School:") for v in firsts)
    assert firsts[0] == "Event: Shot Put"
    assert "Zed" in firsts


def test_safe_filename():
    assert safe_filename("St. Mary's  School") == "St._Mary's_School"
    assert safe_filename("a/b:c") == "abc"
    assert safe_filename("   ") == "school"

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from nest.crud.gears import all_gears, create_gear, get_gear
from nest.db.session import Base
from nest.services.gear_csv import COLUMNS, CsvImportError, export_gears, import_gears, parse_csv


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def test_export_has_header_plus_one_line_per_gear(db_session):
    create_gear(db_session, {"name": "Camera, 4K", "category": "Video", "quantity": 2})
    create_gear(db_session, {"name": "Tripod", "quantity": 1})

    lines = export_gears(all_gears(db_session)).strip().split("\n")

    assert len(lines) == 3
    assert lines[0] == ",".join(COLUMNS)
    assert '"Camera, 4K"' in lines[1]


def test_export_flattens_multiline_descriptions(db_session):
    create_gear(db_session, {"name": "Light", "description": "Bi-colour panel\r\nComes with diffuser", "quantity": 1})
    create_gear(db_session, {"name": "Stand", "quantity": 1})

    lines = export_gears(all_gears(db_session)).strip().split("\n")

    assert len(lines) == 3
    assert "Bi-colour panel Comes with diffuser" in lines[1]


def test_export_then_import_updates_in_place(db_session):
    create_gear(db_session, {"name": "Camera", "category": "Video", "quantity": 2})
    text = export_gears(all_gears(db_session)).replace("Video", "Cinema")

    result = import_gears(db_session, text)

    assert result == {"inserted": 0, "updated": 1, "total": 1}
    gears = all_gears(db_session)
    assert len(gears) == 1
    assert gears[0].category == "Cinema"
    assert gears[0].quantity == 2


def test_import_inserts_rows_without_known_id(db_session):
    existing = create_gear(db_session, {"name": "Camera", "quantity": 1})
    text = (
        "Name,Category,Quantity,Status\n"
        "Light Stand,Lighting,4,available\n"
        "\n"
        ",,,\n"
    )

    result = import_gears(db_session, text)

    assert result["inserted"] == 1
    stand = [gear for gear in all_gears(db_session) if gear.name == "Light Stand"][0]
    assert stand.quantity == 4
    assert stand.available_quantity == 4
    assert stand.status == "Available"
    assert get_gear(db_session, existing.id).name == "Camera"


def test_empty_file_is_rejected(db_session):
    with pytest.raises(CsvImportError):
        import_gears(db_session, "   \n")
    with pytest.raises(CsvImportError):
        import_gears(db_session, "name,quantity\n")


def test_bad_integer_is_reported():
    with pytest.raises(CsvImportError, match="quantity"):
        parse_csv("name,quantity\nCamera,two\n")


def test_parse_without_coercion_keeps_strings():
    rows = parse_csv("NAME,Quantity,extra\nCamera,3,x\n", coerce=False)
    assert rows == [{"name": "Camera", "quantity": "3"}]

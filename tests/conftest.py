import json

import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from database import get_db


def _polygon(lng, lat):
    return {
        "type": "Polygon",
        "coordinates": [[[lng, lat], [lng + 0.01, lat], [lng + 0.01, lat + 0.01], [lng, lat]]],
    }


FEATURES = [
    {
        "type": "Feature",
        "properties": {"Vill_Th": "บ้านแม่ตื่น", "Vill_Code": 1, "Amp_Th": "อมก๋อย", "Tam_Th": "แม่ตื่น",
                       "Prov_Th": "เชียงใหม่", "new-uid": "U1"},
        "geometry": _polygon(98.1, 17.5),
    },
    {
        "type": "Feature",
        "properties": {"Vill_Th": "บ้านห้วยน้ำดิบ", "Vill_Code": 2, "Amp_Th": "แม่แตง", "Tam_Th": "กื้ดช้าง",
                       "Prov_Th": "เชียงใหม่", "new-uid": "U2"},
        "geometry": {
            "type": "MultiPolygon",
            "coordinates": [[[[98.9, 19.1], [99.0, 19.1], [99.0, 19.2], [98.9, 19.1]]]],
        },
    },
    {
        "type": "Feature",
        "properties": {"Vill_Code": 3, "Amp_Th": "แม่แตง", "Tam_Th": "ป่าแป๋", "Prov_Th": "เชียงใหม่",
                       "new-uid": "U3"},
        "geometry": None,
    },
    {
        "type": "Feature",
        "properties": {"Vill_Th": "บ้านไร้รหัส", "Vill_Code": 4, "Amp_Th": "สะเมิง", "Tam_Th": "บ่อแก้ว",
                       "Prov_Th": "เชียงใหม่"},
        "geometry": _polygon(98.7, 18.8),
    },
]

PLANS = {
    "villages": {
        "mae-tuen": {
            "village_info": {"name": "บ้านแม่ตื่น", "new-uid": "U1"},
            "volunteers": [{"name": f"v{i}"} for i in range(6)],
            "budget_info": {"total_budget": 25000},
        },
        "huai-nam-dip-first": {
            "village_info": {"name": "first", "new-uid": "U2"},
            "budget_info": {"total_budget": 500},
        },
        "huai-nam-dip-second": {
            "village_info": {"name": "second", "new-uid": "U2"},
            "volunteers": [{"name": f"v{i}"} for i in range(10)],
            "budget_info": {"total_budget": 90000},
        },
        "orphan": {
            "village_info": {"name": "ไม่มีใน GIS", "new-uid": "U99"},
        },
    }
}

BURN_AREAS = {
    "type": "FeatureCollection",
    "features": [
        {"type": "Feature", "properties": {"OBJECTID": i, "AREA_RAI": 10 * i}, "geometry": _polygon(98.0, 18.0)}
        for i in range(1, 4)
    ],
}

FOREST_TYPES = {"type": "FeatureCollection", "features": []}


def write_json(path, data):
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")


@pytest.fixture
def data_dir(tmp_path):
    write_json(tmp_path / "allfvill_newuid.geojson", {"type": "FeatureCollection", "features": FEATURES})
    write_json(tmp_path / "comunity-plan.json", PLANS)
    write_json(tmp_path / "burn_area_2024.geojson", BURN_AREAS)
    write_json(tmp_path / "forrest-type-cnx.json", FOREST_TYPES)
    (tmp_path / "wildfire_protect_all-20vills.geojson").write_text("{not json", encoding="utf-8")

    buildings = tmp_path / "builing-in-village"
    buildings.mkdir()
    write_json(buildings / "new-uid_U1.geojson", {"type": "FeatureCollection", "features": [{"id": "b1"}]})
    return tmp_path


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["fire_management_test"]


@pytest.fixture
def client(monkeypatch, data_dir, mongo_db):
    monkeypatch.setenv("DATA_DIR", str(data_dir))
    main.app.dependency_overrides[get_db] = lambda: mongo_db
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture
def plan_payload():
    return {
        "village_info": {
            "name": "บ้านแม่ตื่น",
            "new-uid": "U1",
            "moo": 5,
            "subdistrict": "แม่ตื่น",
            "district": "อมก๋อย",
            "population": 820,
            "forest_types": ["ป่าเบญจพรรณ", "ป่าเต็งรัง"],
            "area": {"forest_managed_rai": 3200},
        },
        "fire_management": {
            "pre_incident": [
                {"name": "ทำแนวกันไฟ", "description": "แนวกันไฟรอบหมู่บ้าน", "budget": 500, "timing": "pre_incident"},
                {"name": "อบรมอาสาสมัคร", "description": "อบรมก่อนฤดูไฟ", "budget": 1500,
                 "timing": "pre_incident", "budget_items": [{"description": "อาหาร", "amount": 1500}]},
            ],
            "post_incident": [
                {"name": "ฟื้นฟูป่า", "description": "ปลูกป่าหลังไฟ", "budget": 1000, "timing": "post_incident"},
            ],
        },
        "equipment": [
            {"name": "ไม้ตบไฟ", "available": 0, "needed": 11},
            {"name": "เครื่องเป่าลม", "available": 3, "needed": 2},
        ],
        "budget": {"allocated": 2000, "shortage": 1000, "sources": [{"name": "อบต.", "amount": 2000}]},
    }

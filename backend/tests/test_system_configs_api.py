def test_missing_config_returns_default(client):
    response = client.get("/api/system-configs/printer_port")
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == 0
    assert body["value"] == "9100"


def test_hotel_config_overrides_global(client):
    client.put("/api/system-configs/default_tax_percentage", json={"value": "5"})
    response = client.put("/api/system-configs/default_tax_percentage", params={"hotel_id": 1},
                          json={"value": "12", "description": "1号店税率"})
    assert response.json()["key"] == "hotel_1_default_tax_percentage"

    assert client.get("/api/system-configs/default_tax_percentage", params={"hotel_id": 1}).json()["value"] == "12"
    assert client.get("/api/system-configs/default_tax_percentage", params={"hotel_id": 2}).json()["value"] == "5"
    assert client.get("/api/system-configs/default_tax_percentage").json()["value"] == "5"


def test_update_keeps_unspecified_fields(client):
    client.put("/api/system-configs/printer_ip", json={"value": "10.0.0.5", "description": "后厨打印机"})
    body = client.put("/api/system-configs/printer_ip", json={"value": "10.0.0.6"}).json()
    assert body["value"] == "10.0.0.6"
    assert body["description"] == "后厨打印机"


def test_list_filters_other_hotels(client):
    client.put("/api/system-configs/printer_ip", json={"value": "10.0.0.5"})
    client.put("/api/system-configs/printer_ip", params={"hotel_id": 1}, json={"value": "10.0.1.5"})
    client.put("/api/system-configs/printer_ip", params={"hotel_id": 2}, json={"value": "10.0.2.5"})

    keys = [c["key"] for c in client.get("/api/system-configs", params={"hotel_id": 1}).json()]

    assert keys == ["hotel_1_printer_ip", "printer_ip"]
    assert len(client.get("/api/system-configs").json()) == 3


def test_delete_config(client):
    client.put("/api/system-configs/printer_ip", params={"hotel_id": 1}, json={"value": "10.0.1.5"})
    assert client.delete("/api/system-configs/printer_ip", params={"hotel_id": 1}).status_code == 200
    assert client.delete("/api/system-configs/printer_ip", params={"hotel_id": 1}).status_code == 404

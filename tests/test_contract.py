from fastapi.testclient import TestClient
from roofline.main import app

client = TestClient(app)


def _resolve_schema_ref(spec: dict, schema_node: dict) -> dict:
    ref = schema_node.get("$ref")
    if not ref:
        return schema_node
    # Expect format: #/components/schemas/Name
    parts = ref.split("/")
    if len(parts) >= 4 and parts[1] == "components" and parts[2] == "schemas":
        return spec.get("components", {}).get("schemas", {}).get(parts[3], {})
    return {}


def _request_props(spec: dict, path: str) -> dict:
    node = spec["paths"][path]["post"]["requestBody"]["content"]["application/json"]["schema"]
    return _resolve_schema_ref(spec, node).get("properties", {})


def test_openapi_contains_endpoints():
    resp = client.get("/openapi.json")
    assert resp.status_code == 200
    paths = resp.json().get("paths", {})
    for path in ("/detect", "/cleanup/outline", "/cleanup/geometry",
                 "/suggest/planes", "/suggest/outline", "/suggest/lines"):
        assert path in paths
    assert "/health" in paths


def test_detect_schema_has_expected_fields():
    spec = client.get("/openapi.json").json()
    props = _request_props(spec, "/detect")
    assert {"image_base64", "options", "include_planes", "return_overlay"} <= set(props)

    options = _resolve_schema_ref(spec, props["options"])
    if "allOf" in props["options"]:
        options = _resolve_schema_ref(spec, props["options"]["allOf"][0])
    option_props = options.get("properties", {})
    for name in ("sensitivity", "detail_suppression", "min_line_fraction", "roof_region_fraction",
                 "edge_contrast_threshold", "per_direction_cap", "mode"):
        assert name in option_props


def test_geometry_cleanup_schema_has_expected_fields():
    spec = client.get("/openapi.json").json()
    props = _request_props(spec, "/cleanup/geometry")
    assert {"outline", "closed", "holes", "lines", "strength", "locked_line_ids"} <= set(props)

"""
OpenAPI Contract Tests
"""

from motionswap.api.main import app


def test_openapi_has_required_endpoints():
    """Test that the generated OpenAPI schema exposes the generation API"""
    paths = app.openapi().get("paths", {})

    assert "post" in paths["/api/generate"]
    assert {"get", "post"} <= set(paths["/api/generations"])
    assert {"patch", "delete"} <= set(paths["/api/generations/{generation_id}"])
    assert "get" in paths["/health"]


def test_submit_request_uses_camel_case_fields():
    schemas = app.openapi()["components"]["schemas"]
    properties = schemas["SubmitGenerationRequest"]["properties"]

    for field in ["videoUrl", "characterImageUrl", "userId", "generationId", "sendEmail"]:
        assert field in properties

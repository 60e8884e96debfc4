from httpx import AsyncClient

from gateway.utils.logging_utils import redact_credentials


def test_redact_sensitive_keys():
    event = redact_credentials(
        None, "info", {"event": "Fetched token", "token": "tok-1", "scope": "repository:library/nginx:pull"}
    )

    assert event["token"] == "[redacted]"
    assert event["scope"] == "repository:library/nginx:pull"


def test_redact_credentials_in_messages():
    event = redact_credentials(
        None, "error", {"event": "Upstream rejected", "error": "header Authorization: Bearer abc.def-ghi"}
    )

    assert event["error"] == "header Authorization: Bearer [redacted]"


async def test_request_id_is_generated(client: AsyncClient):
    response = await client.get("/health")

    assert len(response.headers["x-request-id"]) == 32

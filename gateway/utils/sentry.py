from typing import Optional

import sentry_sdk
from sentry_sdk.types import Event, Hint

from gateway.settings import settings

# Registry credentials travel in these request headers
SCRUBBED_HEADERS = frozenset({"authorization", "cookie", "proxy-authorization"})


def scrub_credentials(event: Event, hint: Hint) -> Optional[Event]:
    headers = event.get("request", {}).get("headers")
    if isinstance(headers, dict):
        for name in headers:
            if name.lower() in SCRUBBED_HEADERS:
                headers[name] = "[Filtered]"
    return event


def init_sentry():
    if not settings.SENTRY_DSN:
        return

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
        before_send=scrub_credentials,
    )

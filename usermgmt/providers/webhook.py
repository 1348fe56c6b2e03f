"""
Templated Webhook Delivery

A WebhookTarget describes one outbound HTTP call. The URL, body and each
header value are Jinja2 templates rendered against the call's variables
merged with the target's own ``env`` (``env`` wins on collision).
text/template style placeholders such as ``{{.Username}}`` are accepted too.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

import jinja2
import requests

logger = logging.getLogger(__name__)

# Seconds; bounds each target independently
DEFAULT_TIMEOUT = 15

# Bytes of response body kept for diagnostics on failure
MAX_ERROR_BODY = 1024

_GO_PLACEHOLDER = re.compile(r"\{\{\s*\.(\w+)\s*\}\}")

_env = jinja2.Environment(autoescape=False, keep_trailing_newline=True)


class WebhookError(Exception):
    """Delivery to one target failed."""

    def __init__(self, target: str, message: str):
        super().__init__(f"{target}: {message}")
        self.target = target
        self.reason = message


@dataclass
class WebhookTarget:
    """One configured outbound call."""
    name: str = ""
    url: str = ""
    method: str = "POST"
    content_type: str = "application/json"
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    skip_tls_verify: bool = False
    env: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping) -> "WebhookTarget":
        """Build from the JSON record shape used in PASSWORD_TARGETS."""
        return cls(
            name=str(data.get("name") or ""),
            url=str(data.get("url") or ""),
            method=str(data.get("method") or "POST").upper(),
            content_type=str(data.get("content_type") or data.get("contentType") or "application/json"),
            body=str(data.get("body") or ""),
            headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
            skip_tls_verify=bool(data.get("skip_tls_verify") or data.get("skipTLSVerify") or False),
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
        )


def build_template_data(env: Optional[Mapping[str, str]], variables: Mapping[str, str]) -> Dict[str, str]:
    """Merge call variables and target env; target env takes precedence."""
    data = dict(variables)
    data.update(env or {})
    return data


def render_template(source: str, data: Mapping[str, str]) -> str:
    """
    Render one template string.

    Raises:
        jinja2.TemplateError: syntax or render failure
    """
    source = _GO_PLACEHOLDER.sub(r"{{ \1 }}", source)
    return _env.from_string(source).render(**data)


def deliver(
    target: WebhookTarget,
    variables: Mapping[str, str],
    timeout: float = DEFAULT_TIMEOUT,
) -> int:
    """
    Render and send one webhook.

    Returns:
        HTTP status code of a successful (< 400) response

    Raises:
        WebhookError: template failure, transport failure or HTTP status >= 400
    """
    data = build_template_data(target.env, variables)

    try:
        url = render_template(target.url, data)
    except jinja2.TemplateError as e:
        raise WebhookError(target.name, f"template url: {e}") from e
    try:
        body = render_template(target.body, data)
    except jinja2.TemplateError as e:
        raise WebhookError(target.name, f"template body: {e}") from e

    headers = {"Content-Type": target.content_type}
    for key, value in target.headers.items():
        try:
            headers[key] = render_template(value, data)
        except jinja2.TemplateError as e:
            raise WebhookError(target.name, f"template header {key}: {e}") from e

    try:
        with requests.request(
            target.method,
            url,
            data=body.encode("utf-8"),
            headers=headers,
            timeout=timeout,
            verify=not target.skip_tls_verify,
            stream=True,
        ) as resp:
            snippet = b""
            if resp.status_code >= 400:
                snippet = next(resp.iter_content(MAX_ERROR_BODY), b"")[:MAX_ERROR_BODY]
            status = resp.status_code
    except requests.RequestException as e:
        raise WebhookError(target.name, f"http request: {e}") from e

    if status >= 400:
        raise WebhookError(
            target.name,
            f"HTTP {status}: {snippet.decode('utf-8', errors='replace')}",
        )
    return status

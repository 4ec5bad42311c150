"""
Edge response construction.

Responses are built once as EdgeResponse and rendered either as a
Lambda@Edge origin-request result or as an aiohttp response.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from aiohttp import web


@dataclass
class EdgeResponse:
    """A short-circuit response produced by an edge handler."""
    status: int
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def cache_control(self) -> Optional[str]:
        return self.headers.get('cache-control')

    @property
    def content_type(self) -> str:
        return self.headers['content-type']

    def to_cloudfront(self) -> dict:
        """Render as a CloudFront result response."""
        return {
            'status': str(self.status),
            'body': self.body,
            'bodyEncoding': 'text',
            'headers': {
                name: [{'key': name.title(), 'value': value}]
                for name, value in self.headers.items()
            }
        }

    def to_web_response(self) -> web.Response:
        """Render as an aiohttp response."""
        headers = {
            name: value
            for name, value in self.headers.items()
            if name != 'content-type'
        }
        return web.Response(
            status=self.status,
            text=self.body,
            content_type=self.content_type,
            headers=headers
        )


def cache_control_value(max_age: Optional[int] = None, no_cache: bool = False) -> Optional[str]:
    """
    Synthesize a cache-control value.

    Returns:
        'no-cache', 'max-age=<n>', or None when no directive applies.
    """
    if no_cache:
        return 'no-cache'
    if max_age is None:
        return None
    if isinstance(max_age, bool) or not isinstance(max_age, int):
        raise ValueError(f"max_age must be an integer, got {max_age!r}")
    if max_age < 0:
        raise ValueError(f"max_age must be non-negative, got {max_age}")
    return f"max-age={max_age}"


def build_response(
    status: int,
    body: str = "",
    content_type: str = "text/plain",
    max_age: Optional[int] = None,
    no_cache: bool = False
) -> EdgeResponse:
    """
    Build an edge response with a single content-type header.

    Args:
        status: HTTP status code.
        body: Text body.
        content_type: Value of the content-type header.
        max_age: Seconds the response may be cached. Omitted when None.
        no_cache: Emit 'no-cache' instead of a max-age directive.
    """
    headers = {'content-type': content_type}

    cache_control = cache_control_value(max_age, no_cache)
    if cache_control is not None:
        headers['cache-control'] = cache_control

    return EdgeResponse(status=status, body=body, headers=headers)


def failure_response(max_age: int) -> EdgeResponse:
    """Generic failure response; details stay in the logs."""
    return build_response(500, body="Internal Server Error", max_age=max_age)

"""
Pure helpers for naming, routing and CloudFront/S3 values. Testable without
Pulumi runtime.

Used by the Website component (zone names, API route keys and origin
domain, error page path, bucket policy) and by the uploader (object keys and
content types). No Pulumi types; all functions accept and return plain Python
types so they can be unit-tested without a Pulumi stack.
"""

import json
import mimetypes
import os
import re
from collections import Counter
from urllib.parse import urlparse

# Used when the file extension gives no hint.
FALLBACK_CONTENT_TYPE = "text/plain"


def strip_trailing_dot(
    domain: str,
) -> str:
    """
    Return domain without a trailing dot.

    Route 53 zone lookups and CloudFront aliases take the bare form.
    Idempotent if no dot is present.
    """
    return domain[:-1] if domain.endswith(".") else domain


def normalize_prefix(
    prefix: str,
) -> str:
    """
    Return an API prefix without leading or trailing slashes ('/api/' -> 'api').

    The bare form is the stage name; slashes are added back where a path is
    built.
    """
    return prefix.strip("/")


def prefixed_path(
    prefix: str,
    path: str,
) -> str:
    """
    Mount a route path under the API prefix ('api', '/hello' -> '/api/hello').
    """
    if not path.startswith("/"):
        path = f"/{path}"
    return f"/{normalize_prefix(prefix)}{path}"


def route_key(
    method: str,
    path: str,
) -> str:
    """
    Return the API Gateway route key, e.g. 'GET /api/hello/{name}'.
    """
    return f"{method.upper()} {path}"


def duplicate_route_keys(
    keys: list[str],
) -> list[str]:
    """
    Return route keys that occur more than once, in first-seen order.
    """
    counts = Counter(keys)
    return [key for key in counts if counts[key] > 1]


def resource_suffix(
    key: str,
) -> str:
    """
    Turn a route key into a resource-name suffix.

    'GET /api/hello/{name}' -> 'get-api-hello-name'. Keeps route resources
    stable when the route list is reordered.
    """
    return re.sub(r"[^a-z0-9]+", "-", key.lower()).strip("-")


def api_path_pattern(
    prefix: str,
) -> str:
    """
    CloudFront path pattern routing '/<prefix>/*' to the API origin.
    """
    return f"/{normalize_prefix(prefix)}/*"


def api_origin_domain(
    url: str,
) -> str:
    """
    Return the host of an API stage URL.

    'https://abc.execute-api.us-east-1.amazonaws.com/api' ->
    'abc.execute-api.us-east-1.amazonaws.com'. CloudFront origins take a bare
    domain; the stage path is set separately as the origin path.
    """
    return urlparse(url).netloc


def error_page_path(
    error_document: str,
) -> str:
    """
    CloudFront response page path for the error document ('404.html' -> '/404.html').
    """
    return f"/{error_document.lstrip('/')}"


def public_read_policy(
    bucket_arn: str,
) -> str:
    """
    Return a bucket policy (JSON) granting anonymous s3:GetObject on every object.
    """
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": "*",
                    "Action": ["s3:GetObject"],
                    "Resource": [f"{bucket_arn}/*"],
                }
            ],
        }
    )


def object_key(
    root: str,
    path: str,
) -> str:
    """
    Return the S3 key for a file: its path relative to root, '/'-separated.
    """
    relative = os.path.relpath(path, root)
    return relative.replace(os.sep, "/")


def content_type(
    path: str,
) -> str:
    """
    Guess a Content-Type from the file extension, defaulting to text/plain.
    """
    guessed, _ = mimetypes.guess_type(path)
    return guessed or FALLBACK_CONTENT_TYPE

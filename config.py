"""
Website configuration: schema, parsing and defaults.

Provides a typed, immutable view of the website settings. One schema covers
every shape the component has accepted: the nested blocks (``site``, ``dns``,
``cdn``, ``api``) and the older flat keys (``siteRoot``, ``domain``/``host``,
``indexDocument``, ``cacheTtlInSeconds``, ``logs``, ``cdn: true``, a bare
``api`` route list). Flat keys are still read and mapped onto the blocks,
each producing a deprecation notice.

The component receives a ``WebsiteConfig`` explicitly. ``from_pulumi_config``
is the only reader of stack configuration and is used by __main__.main().
"""

import os
from dataclasses import dataclass, replace
from typing import Any, Callable

import pulumi
import pulumi_aws as aws

DEFAULT_INDEX_DOCUMENT = "index.html"
DEFAULT_ERROR_DOCUMENT = "404.html"
DEFAULT_CACHE_TTL = 10 * 60
DEFAULT_API_PREFIX = "api"
PROTOCOLS = ("http", "https")

# A Lambda function owned by the caller, or its ARN.
EventHandler = aws.lambda_.Function | str | pulumi.Output[str]

# (deprecated key, replacement); dotted keys live inside a block.
_DEPRECATED_KEYS: list[tuple[str, str]] = [
    ("siteRoot", "site.root"),
    ("indexDocument", "site.indexDocument"),
    ("errorDocument", "site.errorDocument"),
    ("site.defaultDoc", "site.indexDocument"),
    ("site.errorDoc", "site.errorDocument"),
    ("domain", "dns.domain"),
    ("host", "dns.host"),
    ("cacheTtlInSeconds", "cdn.cacheTTL"),
    ("logs", "cdn.logs"),
]


@dataclass(frozen=True)
class RouteDefinition:
    """
    One API route.

    Attributes:
        method: HTTP method (e.g. "GET"); stored upper-case.
        path: Route path relative to the API prefix, may hold path
            parameters (e.g. "/hello/{name}").
        event_handler: Lambda function (or its ARN) that serves the route.
    """

    method: str
    path: str
    event_handler: EventHandler


@dataclass(frozen=True)
class SiteConfig:
    """
    Local site assets.

    Attributes:
        root: Directory whose files are uploaded to the bucket (required).
        index_document: Served for directory requests; defaults to index.html.
        error_document: Served for missing objects; defaults to 404.html.
    """

    root: str
    index_document: str | None = None
    error_document: str | None = None


@dataclass(frozen=True)
class DnsConfig:
    """Custom hostname: ``host`` in the Route 53 zone for ``domain``."""

    domain: str
    host: str

    @property
    def domain_name(self) -> str:
        return f"{self.host}.{self.domain.rstrip('.')}"


@dataclass(frozen=True)
class CdnConfig:
    """
    CloudFront settings.

    Attributes:
        certificate_arn: Existing us-east-1 ACM certificate; when unset and a
            custom domain is given, one is requested and DNS-validated.
        cache_ttl: Min/default/max TTL in seconds for the site origin.
        logs: Whether to capture access logs in a dedicated bucket.
    """

    certificate_arn: str | None = None
    cache_ttl: int | None = None
    logs: bool = False


@dataclass(frozen=True)
class ApiConfig:
    """
    HTTP API mounted under the site.

    Attributes:
        prefix: Path segment the routes live under; also the stage name.
        routes: Route definitions; an empty tuple means no API.
    """

    prefix: str = DEFAULT_API_PREFIX
    routes: tuple[RouteDefinition, ...] = ()


@dataclass(frozen=True)
class WebsiteConfig:
    """
    Website configuration.

    Attributes:
        site: Local assets and the index/error document names (required).
        protocol: "http" (bucket website only) or "https" (CloudFront);
            derived from ``cdn`` when unset.
        dns: Custom hostname; activates the certificate and DNS record.
        cdn: CloudFront settings; activates the distribution.
        api: API prefix and routes; activates the API when routes exist.
    """

    site: SiteConfig
    protocol: str | None = None
    dns: DnsConfig | None = None
    cdn: CdnConfig | None = None
    api: ApiConfig | None = None

    def __post_init__(self):
        if self.protocol is not None and self.protocol not in PROTOCOLS:
            raise ValueError(
                f'Unknown protocol "{self.protocol}"; expected one of {PROTOCOLS}.'
            )

    @property
    def domain_name(self) -> str | None:
        return self.dns.domain_name if self.dns else None

    @property
    def cdn_enabled(self) -> bool:
        if self.protocol is not None:
            return self.protocol == "https"
        return self.cdn is not None

    @property
    def api_enabled(self) -> bool:
        return self.api is not None and len(self.api.routes) > 0

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> tuple["WebsiteConfig", list[str]]:
        """
        Build WebsiteConfig from a raw mapping (camelCase keys, as in stack
        config). Returns the config and a deprecation notice per flat key used.

        Raises:
            ValueError: no site root, a DNS block with only one of
                domain/host, an unknown protocol, or a malformed route.
        """
        notices = [
            f'"{key}" is deprecated; use "{replacement}" instead.'
            for key, replacement in _DEPRECATED_KEYS
            if _lookup(raw, key) is not None
        ]

        site_raw = raw.get("site") or {}
        root = site_raw.get("root") or raw.get("siteRoot")
        if not root:
            raise ValueError('A site root ("site.root") is required.')
        site = SiteConfig(
            root=root,
            index_document=_first(
                site_raw.get("indexDocument"),
                site_raw.get("defaultDoc"),
                raw.get("indexDocument"),
            ),
            error_document=_first(
                site_raw.get("errorDocument"),
                site_raw.get("errorDoc"),
                raw.get("errorDocument"),
            ),
        )

        dns_raw = raw.get("dns") or {}
        dns = _parse_dns(
            _first(dns_raw.get("domain"), raw.get("domain")),
            _first(dns_raw.get("host"), raw.get("host")),
        )

        cdn_raw = raw.get("cdn")
        if isinstance(cdn_raw, dict):
            cdn = CdnConfig(
                certificate_arn=cdn_raw.get("certificateARN"),
                cache_ttl=_first(cdn_raw.get("cacheTTL"), raw.get("cacheTtlInSeconds")),
                logs=bool(_first(cdn_raw.get("logs"), raw.get("logs"), False)),
            )
        elif cdn_raw or (cdn_raw is None and "siteRoot" in raw and dns is not None):
            # Flat configs implied a CDN whenever a custom domain was given.
            cdn = CdnConfig(
                cache_ttl=raw.get("cacheTtlInSeconds"),
                logs=bool(raw.get("logs", False)),
            )
        else:
            cdn = None

        api_raw = raw.get("api")
        if isinstance(api_raw, list):
            notices.append(
                'A flat "api" route list is deprecated; use "api.prefix" and "api.routes".'
            )
            api = ApiConfig(routes=tuple(_parse_route(route) for route in api_raw))
        elif isinstance(api_raw, dict):
            api = ApiConfig(
                prefix=api_raw.get("prefix") or DEFAULT_API_PREFIX,
                routes=tuple(_parse_route(route) for route in api_raw.get("routes") or []),
            )
        else:
            api = None

        config = cls(site=site, protocol=raw.get("protocol"), dns=dns, cdn=cdn, api=api)
        return config, notices

    @classmethod
    def from_pulumi_config(
        cls, config: pulumi.Config
    ) -> tuple["WebsiteConfig", list[str]]:
        """
        Build WebsiteConfig from pulumi.Config(). Only keys that are set are
        passed on to from_dict.
        """
        raw = {}
        for key, parser in _CONFIG_SPEC:
            value = parser(config, key)
            if value is not None:
                raw[key] = value
        return cls.from_dict(raw)


def normalize(config: WebsiteConfig) -> tuple[WebsiteConfig, list[str]]:
    """
    Fill defaults and check the local site assets.

    Defaults: index document "index.html", error document "404.html",
    protocol "https" when a CDN block is given ("http" otherwise), cache TTL
    600 seconds when a CDN is enabled. Explicit values are never replaced, so
    normalizing a normalized config returns it unchanged.

    Missing assets (root directory, index document, error document) produce
    warnings rather than errors so the infrastructure can be provisioned
    before the site is built.
    """
    site = replace(
        config.site,
        index_document=config.site.index_document or DEFAULT_INDEX_DOCUMENT,
        error_document=config.site.error_document or DEFAULT_ERROR_DOCUMENT,
    )

    warnings = []

    protocol = config.protocol or ("https" if config.cdn is not None else "http")
    cdn = config.cdn
    if protocol == "http" and cdn is not None:
        warnings.append('CDN settings are ignored with protocol "http".')
        cdn = None
    if protocol == "https" and cdn is None:
        cdn = CdnConfig()
    if cdn is not None and cdn.cache_ttl is None:
        cdn = replace(cdn, cache_ttl=DEFAULT_CACHE_TTL)

    if not os.path.isdir(site.root):
        warnings.append(f"Directory {site.root} does not exist.")
    for label, document in [
        ("Index", site.index_document),
        ("Error", site.error_document),
    ]:
        if not os.path.isfile(os.path.join(site.root, document)):
            warnings.append(f'{label} document "{document}" does not exist.')

    normalized = replace(config, site=site, protocol=protocol, cdn=cdn)
    return normalized, warnings


def _first(*values: Any) -> Any:
    return next((value for value in values if value is not None), None)


def _lookup(raw: dict[str, Any], key: str) -> Any:
    block, _, name = key.rpartition(".")
    source = raw.get(block) if block else raw
    return source.get(name) if isinstance(source, dict) else None


def _parse_dns(domain: str | None, host: str | None) -> DnsConfig | None:
    if not domain and not host:
        return None
    if not (domain and host):
        raise ValueError('"dns.domain" and "dns.host" must be given together.')
    return DnsConfig(domain=domain, host=host)


def _parse_route(route: RouteDefinition | dict[str, Any]) -> RouteDefinition:
    if isinstance(route, RouteDefinition):
        return replace(route, method=route.method.upper())
    try:
        return RouteDefinition(
            method=route["method"].upper(),
            path=route["path"],
            event_handler=route["eventHandler"],
        )
    except (KeyError, TypeError, AttributeError) as err:
        raise ValueError(
            f"Route {route!r} needs method, path and eventHandler."
        ) from err


def _get_str(config: pulumi.Config, key: str) -> str | None:
    return config.get(key)


def _get_int(config: pulumi.Config, key: str) -> int | None:
    return config.get_int(key)


def _get_bool(config: pulumi.Config, key: str) -> bool | None:
    return config.get_bool(key)


def _get_object(config: pulumi.Config, key: str) -> Any:
    return config.get_object(key)


# (key, parser); parser receives (config, key) and returns value or None.
_CONFIG_SPEC: list[tuple[str, Callable[[pulumi.Config, str], Any]]] = [
    ("protocol", _get_str),
    ("site", _get_object),
    ("dns", _get_object),
    ("cdn", _get_object),
    ("api", _get_object),
    ("siteRoot", _get_str),
    ("indexDocument", _get_str),
    ("errorDocument", _get_str),
    ("domain", _get_str),
    ("host", _get_str),
    ("cacheTtlInSeconds", _get_int),
    ("logs", _get_bool),
]

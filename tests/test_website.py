"""Tests for the Website component, run against Pulumi mocks"""

import pulumi
import pytest
from botocore.exceptions import ClientError

from components import website
from components.website import Website
from config import ApiConfig, CdnConfig, DnsConfig, RouteDefinition, SiteConfig, WebsiteConfig

HOSTED_ZONE_ID = "Z0123456789ABC"
CDN_DOMAIN = "d111111abcdef8.cloudfront.net"
CDN_ZONE_ID = "Z2FDTNDATAQYW2"
CERT_ARN = "arn:aws:acm:us-east-1:123456789012:certificate/abc"
HANDLER_ARN = "arn:aws:lambda:us-west-2:123456789012:function:hello"

OUTPUT_NAMES = [
    "bucket_name",
    "bucket_website_url",
    "website_url",
    "website_logs_bucket_name",
    "api_gateway_url",
    "cdn_domain_name",
    "cdn_url",
]


class WebsiteMocks(pulumi.runtime.Mocks):
    """Fills the provider-computed outputs the component reads; records every resource."""

    def __init__(self, zones=("example.com",)):
        self.zones = set(zones)
        self.resources = []

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        self.resources.append(args)
        outputs = dict(args.inputs)
        if args.typ == "aws:s3/bucket:Bucket":
            bucket = args.inputs.get("bucket") or f"{args.name}-1234"
            outputs.update(
                bucket=bucket,
                arn=f"arn:aws:s3:::{bucket}",
                websiteEndpoint=f"{bucket}.s3-website-us-west-2.amazonaws.com",
                websiteDomain="s3-website-us-west-2.amazonaws.com",
                hostedZoneId="Z3BJ6K6RIION7M",
                bucketDomainName=f"{bucket}.s3.amazonaws.com",
            )
        elif args.typ == "aws:acm/certificate:Certificate":
            domain = args.inputs["domainName"]
            outputs.update(
                arn=CERT_ARN,
                domainValidationOptions=[
                    {
                        "domainName": domain,
                        "resourceRecordName": f"_a1b2.{domain}.",
                        "resourceRecordType": "CNAME",
                        "resourceRecordValue": "_c3d4.acm-validations.aws.",
                    }
                ],
            )
        elif args.typ == "aws:cloudfront/distribution:Distribution":
            outputs.update(domainName=CDN_DOMAIN, hostedZoneId=CDN_ZONE_ID)
        elif args.typ == "aws:apigatewayv2/api:Api":
            outputs.update(executionArn="arn:aws:execute-api:us-west-2:123456789012:abc123")
        elif args.typ == "aws:apigatewayv2/stage:Stage":
            outputs.update(
                invokeUrl=f"https://abc123.execute-api.us-west-2.amazonaws.com/{args.inputs['name']}"
            )
        elif args.typ == "aws:route53/record:Record":
            outputs.update(fqdn=f"{args.inputs['name']}.example.com")
        return [f"{args.name}_id", outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        if args.token == "aws:route53/getZone:getZone":
            name = args.args["name"]
            if name not in self.zones:
                raise Exception(f"no matching Route 53 Hosted Zone found: {name}")
            return {"id": HOSTED_ZONE_ID, "zoneId": HOSTED_ZONE_ID, "name": name}
        return {}

    def of_type(self, typ: str) -> list:
        return [resource for resource in self.resources if resource.typ == typ]


class FakeS3:
    def __init__(self):
        self.keys = []

    def put_object(self, **kwargs):
        self.keys.append(kwargs["Key"])


class DeniedS3:
    """Rejects every upload the way S3 does for a missing permission."""

    def put_object(self, **kwargs):
        raise ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "PutObject"
        )


@pytest.fixture
def mocks():
    mocks = WebsiteMocks()
    pulumi.runtime.set_mocks(mocks, project="static-website", stack="test", preview=False)
    return mocks


@pytest.fixture
def preview_mocks():
    mocks = WebsiteMocks()
    pulumi.runtime.set_mocks(mocks, project="static-website", stack="test", preview=True)
    return mocks


@pytest.fixture
def site_root(tmp_path):
    (tmp_path / "index.html").write_text("<h1>Hello</h1>")
    (tmp_path / "404.html").write_text("<h1>Not found</h1>")
    return str(tmp_path)


def build(config: WebsiteConfig, s3_client=None) -> dict:
    """Create a Website and return its resolved outputs (absent ones omitted)."""
    resolved = {}

    @pulumi.runtime.test
    def run():
        site = Website("site", config, s3_client=s3_client)
        outputs = {
            name: getattr(site, name)
            for name in OUTPUT_NAMES
            if getattr(site, name) is not None
        }
        outputs["uploaded_files"] = site.uploaded_files
        return pulumi.Output.all(**outputs).apply(resolved.update)

    run()
    return resolved


class TestBucketOnly:
    def test_single_bucket(self, mocks, site_root):
        outputs = build(WebsiteConfig(site=SiteConfig(root=site_root)), FakeS3())
        assert len(mocks.of_type("aws:s3/bucket:Bucket")) == 1
        assert mocks.of_type("aws:acm/certificate:Certificate") == []
        assert mocks.of_type("aws:cloudfront/distribution:Distribution") == []
        assert mocks.of_type("aws:route53/record:Record") == []
        assert outputs["bucket_website_url"] == (
            "http://site-bucket-1234.s3-website-us-west-2.amazonaws.com"
        )
        assert outputs["website_url"] == outputs["bucket_website_url"]
        assert "cdn_url" not in outputs
        assert "api_gateway_url" not in outputs

    def test_website_documents(self, mocks, site_root):
        build(
            WebsiteConfig(site=SiteConfig(root=site_root, error_document="oops.html")),
            FakeS3(),
        )
        (bucket,) = mocks.of_type("aws:s3/bucket:Bucket")
        assert bucket.inputs["website"]["indexDocument"] == "index.html"
        assert bucket.inputs["website"]["errorDocument"] == "oops.html"

    def test_site_files_uploaded(self, mocks, site_root):
        client = FakeS3()
        outputs = build(WebsiteConfig(site=SiteConfig(root=site_root)), client)
        assert sorted(client.keys) == ["404.html", "index.html"]
        assert outputs["uploaded_files"] == 2

    def test_preview_skips_upload(self, preview_mocks, site_root):
        client = FakeS3()
        build(WebsiteConfig(site=SiteConfig(root=site_root)), client)
        assert client.keys == []

    def test_upload_failure_does_not_abort(self, mocks, site_root):
        outputs = build(WebsiteConfig(site=SiteConfig(root=site_root)), DeniedS3())
        assert len(mocks.of_type("aws:s3/bucket:Bucket")) == 1
        assert outputs["bucket_name"] == "site-bucket-1234"
        assert outputs["bucket_website_url"] == (
            "http://site-bucket-1234.s3-website-us-west-2.amazonaws.com"
        )
        assert outputs["uploaded_files"] == 0


class TestCustomDomain:
    def test_cdn_with_domain(self, mocks, site_root):
        outputs = build(
            WebsiteConfig(
                site=SiteConfig(root=site_root),
                dns=DnsConfig(domain="example.com", host="www"),
                cdn=CdnConfig(),
            ),
            FakeS3(),
        )
        assert len(mocks.of_type("aws:s3/bucket:Bucket")) == 1
        (certificate,) = mocks.of_type("aws:acm/certificate:Certificate")
        assert certificate.inputs["domainName"] == "www.example.com"
        assert certificate.inputs["validationMethod"] == "DNS"
        assert len(mocks.of_type("aws:acm/certificateValidation:CertificateValidation")) == 1
        (provider,) = [
            provider
            for provider in mocks.of_type("pulumi:providers:aws")
            if provider.name == "site-cert-provider"
        ]
        assert provider.inputs["region"] == "us-east-1"

        (distribution,) = mocks.of_type("aws:cloudfront/distribution:Distribution")
        assert distribution.inputs["aliases"] == ["www.example.com"]
        assert distribution.inputs["viewerCertificate"]["acmCertificateArn"] == CERT_ARN

        records = mocks.of_type("aws:route53/record:Record")
        assert len(records) == 2
        validation_records = [record for record in records if record.inputs["type"] == "CNAME"]
        assert [record.name for record in validation_records] == ["site-cert-validation-record"]
        alias_records = [record for record in records if record.inputs["type"] == "A"]
        assert len(alias_records) == 1
        assert alias_records[0].inputs["name"] == "www"
        assert alias_records[0].inputs["aliases"][0]["name"] == CDN_DOMAIN

        assert outputs["website_url"] == "https://www.example.com"
        assert outputs["cdn_url"] == f"https://{CDN_DOMAIN}"

    def test_existing_certificate(self, mocks, site_root):
        arn = "arn:aws:acm:us-east-1:123456789012:certificate/existing"
        build(
            WebsiteConfig(
                site=SiteConfig(root=site_root),
                dns=DnsConfig(domain="example.com", host="www"),
                cdn=CdnConfig(certificate_arn=arn),
            ),
            FakeS3(),
        )
        assert mocks.of_type("aws:acm/certificate:Certificate") == []
        (distribution,) = mocks.of_type("aws:cloudfront/distribution:Distribution")
        assert distribution.inputs["viewerCertificate"]["acmCertificateArn"] == arn

    def test_http_points_record_at_bucket(self, mocks, site_root):
        outputs = build(
            WebsiteConfig(
                site=SiteConfig(root=site_root),
                dns=DnsConfig(domain="example.com", host="www"),
            ),
            FakeS3(),
        )
        (bucket,) = mocks.of_type("aws:s3/bucket:Bucket")
        assert bucket.inputs["bucket"] == "www.example.com"
        (record,) = mocks.of_type("aws:route53/record:Record")
        assert record.inputs["name"] == "www"
        assert record.inputs["aliases"][0]["name"] == "s3-website-us-west-2.amazonaws.com"
        assert outputs["website_url"] == "http://www.example.com"

    def test_missing_zone_skips_record(self, mocks, site_root, monkeypatch):
        warnings = []
        monkeypatch.setattr(
            pulumi.log, "warn", lambda message, *args, **kwargs: warnings.append(message)
        )
        build(
            WebsiteConfig(
                site=SiteConfig(root=site_root),
                dns=DnsConfig(domain="missing.com", host="www"),
            ),
            FakeS3(),
        )
        assert len(mocks.of_type("aws:s3/bucket:Bucket")) == 1
        assert mocks.of_type("aws:route53/record:Record") == []
        (warning,) = [message for message in warnings if "Route 53" in message]
        assert "missing.com" in warning
        assert "Exception" in warning

    def test_missing_zone_fails_certificate(self, mocks, site_root):
        with pytest.raises(Exception):
            build(
                WebsiteConfig(
                    site=SiteConfig(root=site_root),
                    dns=DnsConfig(domain="missing.com", host="www"),
                    cdn=CdnConfig(),
                ),
                FakeS3(),
            )


class TestCdn:
    def test_cdn_without_domain(self, mocks, site_root):
        outputs = build(
            WebsiteConfig(site=SiteConfig(root=site_root), cdn=CdnConfig()),
            FakeS3(),
        )
        (distribution,) = mocks.of_type("aws:cloudfront/distribution:Distribution")
        assert distribution.inputs["viewerCertificate"]["cloudfrontDefaultCertificate"] is True
        assert distribution.inputs["priceClass"] == "PriceClass_100"
        assert distribution.inputs["customErrorResponses"][0]["responsePagePath"] == "/404.html"
        assert mocks.of_type("aws:acm/certificate:Certificate") == []
        assert mocks.of_type("aws:route53/record:Record") == []
        assert outputs["cdn_domain_name"] == CDN_DOMAIN
        assert outputs["website_url"] == outputs["bucket_website_url"]

    def test_logs_bucket(self, mocks, site_root):
        outputs = build(
            WebsiteConfig(site=SiteConfig(root=site_root), cdn=CdnConfig(logs=True)),
            FakeS3(),
        )
        assert len(mocks.of_type("aws:s3/bucket:Bucket")) == 2
        (distribution,) = mocks.of_type("aws:cloudfront/distribution:Distribution")
        assert distribution.inputs["loggingConfig"]["bucket"] == (
            "site-logs-bucket-1234.s3.amazonaws.com"
        )
        assert distribution.inputs["loggingConfig"]["includeCookies"] is False
        assert outputs["website_logs_bucket_name"] == "site-logs-bucket-1234"

    def test_default_behavior_ttl(self):
        behavior = website.default_cache_behavior(300)
        assert behavior.min_ttl == behavior.default_ttl == behavior.max_ttl == 300
        assert behavior.viewer_protocol_policy == "redirect-to-https"
        assert behavior.forwarded_values.query_string is True
        assert behavior.forwarded_values.cookies.forward == "all"

    def test_api_behavior_never_caches(self):
        behavior = website.api_cache_behavior("api")
        assert behavior.path_pattern == "/api/*"
        assert behavior.target_origin_id == website.API_ORIGIN_ID
        assert behavior.max_ttl == 0
        assert "POST" in behavior.allowed_methods
        assert "DELETE" in behavior.allowed_methods
        assert behavior.cached_methods == website.CDN_METHODS
        assert behavior.forwarded_values.headers == website.API_FORWARDED_HEADERS
        assert behavior.forwarded_values.cookies.forward == "none"

    def test_bucket_origin_is_http_only(self):
        origin = website.bucket_origin("site.s3-website-us-west-2.amazonaws.com")
        assert origin.custom_origin_config.origin_protocol_policy == "http-only"

    def test_default_certificate(self):
        assert website.viewer_certificate(None).cloudfront_default_certificate is True
        custom = website.viewer_certificate(CERT_ARN)
        assert custom.acm_certificate_arn == CERT_ARN
        assert custom.ssl_support_method == "sni-only"


class TestApi:
    def api_config(self, site_root, routes, **kwargs) -> WebsiteConfig:
        return WebsiteConfig(
            site=SiteConfig(root=site_root),
            api=ApiConfig(prefix="api", routes=tuple(routes)),
            **kwargs,
        )

    def test_routes_mounted_under_prefix(self, mocks, site_root):
        outputs = build(
            self.api_config(
                site_root,
                [
                    RouteDefinition("GET", "/hello/{name}", HANDLER_ARN),
                    RouteDefinition("POST", "/items", HANDLER_ARN),
                ],
            ),
            FakeS3(),
        )
        route_keys = sorted(
            route.inputs["routeKey"] for route in mocks.of_type("aws:apigatewayv2/route:Route")
        )
        assert route_keys == ["GET /api/hello/{name}", "POST /api/items"]
        assert len(mocks.of_type("aws:lambda/permission:Permission")) == 2
        (stage,) = mocks.of_type("aws:apigatewayv2/stage:Stage")
        assert stage.inputs["name"] == "api"
        assert outputs["api_gateway_url"] == (
            "https://abc123.execute-api.us-west-2.amazonaws.com/api"
        )

    def test_api_origin_behind_cdn(self, mocks, site_root):
        build(
            self.api_config(
                site_root,
                [RouteDefinition("GET", "/hello", HANDLER_ARN)],
                cdn=CdnConfig(),
            ),
            FakeS3(),
        )
        (distribution,) = mocks.of_type("aws:cloudfront/distribution:Distribution")
        origins = {origin["originId"]: origin for origin in distribution.inputs["origins"]}
        api_origin = origins[website.API_ORIGIN_ID]
        assert api_origin["domainName"] == "abc123.execute-api.us-west-2.amazonaws.com"
        assert api_origin["originPath"] == "/api"
        (behavior,) = distribution.inputs["orderedCacheBehaviors"]
        assert behavior["pathPattern"] == "/api/*"

    def test_no_routes_no_api(self, mocks, site_root):
        outputs = build(self.api_config(site_root, []), FakeS3())
        assert mocks.of_type("aws:apigatewayv2/api:Api") == []
        assert "api_gateway_url" not in outputs

    def test_duplicate_routes_rejected(self, mocks, site_root):
        with pytest.raises(ValueError, match="GET /api/hello"):
            build(
                self.api_config(
                    site_root,
                    [
                        RouteDefinition("GET", "/hello", HANDLER_ARN),
                        RouteDefinition("get", "/hello", HANDLER_ARN),
                    ],
                ),
                FakeS3(),
            )

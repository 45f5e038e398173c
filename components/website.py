"""
AWS static website: S3 origin, optional HTTP API, CloudFront, ACM and Route 53.

This component creates a public S3 bucket configured as a website and uploads
the local site files to it (skipped during preview). Optional blocks in the
``WebsiteConfig`` switch on the rest:

- **api**: an API Gateway HTTP API whose routes, mounted under ``/<prefix>``,
  invoke caller-owned Lambda functions. Stage name is the prefix.
- **cdn** (or protocol "https"): a CloudFront distribution in front of the
  bucket website endpoint, with the API as a second origin for
  ``/<prefix>/*`` and optional access logs in a dedicated bucket.
- **dns**: ``<host>.<domain>`` as a Route 53 alias record pointing at the
  distribution (or, without a CDN, at the bucket website). With a CDN, an
  ACM certificate is requested in us-east-1 and DNS-validated unless an
  existing certificate ARN is given.

Outputs (``bucket_name``, ``bucket_website_url``, ``website_url``,
``website_logs_bucket_name``, ``api_gateway_url``, ``cdn_domain_name``,
``cdn_url``) are ``Output[str]`` when the resource behind them exists and
None otherwise.
"""

import boto3
import pulumi
import pulumi_aws as aws
from botocore.exceptions import BotoCoreError, ClientError

from components import _helpers
from components._upload import list_site_files, upload_files
from config import EventHandler, WebsiteConfig, normalize

ID: str = "static-website:aws:Website"

# CloudFront only accepts ACM certificates issued in us-east-1.
CERTIFICATE_REGION = "us-east-1"

# Bucket website endpoints serve anonymous reads, so nothing is blocked.
S3_PUBLIC_ACCESS: dict[str, bool] = {
    "block_public_acls": False,
    "block_public_policy": False,
    "ignore_public_acls": False,
    "restrict_public_buckets": False,
}

BUCKET_ORIGIN_ID = "bucket-origin"
API_ORIGIN_ID = "api-origin"
CDN_METHODS = ["GET", "HEAD", "OPTIONS"]
# Writes must reach the API through the CDN.
API_METHODS = ["DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"]
PRICE_CLASS = "PriceClass_100"
VALIDATION_RECORD_TTL = 10 * 60

# Forwarded to the API origin so CORS preflights and auth reach the handlers.
API_FORWARDED_HEADERS = [
    "Access-Control-Request-Headers",
    "Access-Control-Request-Method",
    "Origin",
    "Authorization",
]


def bucket_origin(
    website_endpoint: pulumi.Input[str],
) -> aws.cloudfront.DistributionOriginArgs:
    """Bucket website origin; website endpoints only speak plain HTTP."""
    return aws.cloudfront.DistributionOriginArgs(
        origin_id=BUCKET_ORIGIN_ID,
        domain_name=website_endpoint,
        custom_origin_config=aws.cloudfront.DistributionOriginCustomOriginConfigArgs(
            origin_protocol_policy="http-only",
            http_port=80,
            https_port=443,
            origin_ssl_protocols=["TLSv1.2"],
        ),
    )


def api_origin(
    stage_url: pulumi.Input[str],
    prefix: str,
) -> aws.cloudfront.DistributionOriginArgs:
    """API stage origin, HTTPS only; the stage path becomes the origin path."""
    return aws.cloudfront.DistributionOriginArgs(
        origin_id=API_ORIGIN_ID,
        origin_path=f"/{_helpers.normalize_prefix(prefix)}",
        domain_name=pulumi.Output.from_input(stage_url).apply(
            _helpers.api_origin_domain
        ),
        custom_origin_config=aws.cloudfront.DistributionOriginCustomOriginConfigArgs(
            origin_protocol_policy="https-only",
            http_port=80,
            https_port=443,
            origin_ssl_protocols=["TLSv1.2"],
        ),
    )


def default_cache_behavior(
    cache_ttl: int,
) -> aws.cloudfront.DistributionDefaultCacheBehaviorArgs:
    """Site behavior: redirect to HTTPS, cache for cache_ttl, forward cookies and query."""
    return aws.cloudfront.DistributionDefaultCacheBehaviorArgs(
        target_origin_id=BUCKET_ORIGIN_ID,
        viewer_protocol_policy="redirect-to-https",
        allowed_methods=CDN_METHODS,
        cached_methods=CDN_METHODS,
        min_ttl=cache_ttl,
        default_ttl=cache_ttl,
        max_ttl=cache_ttl,
        forwarded_values=aws.cloudfront.DistributionDefaultCacheBehaviorForwardedValuesArgs(
            query_string=True,
            cookies=aws.cloudfront.DistributionDefaultCacheBehaviorForwardedValuesCookiesArgs(
                forward="all",
            ),
        ),
    )


def api_cache_behavior(
    prefix: str,
) -> aws.cloudfront.DistributionOrderedCacheBehaviorArgs:
    """API behavior for /<prefix>/*: never cached, no cookies, CORS/auth headers forwarded."""
    return aws.cloudfront.DistributionOrderedCacheBehaviorArgs(
        path_pattern=_helpers.api_path_pattern(prefix),
        target_origin_id=API_ORIGIN_ID,
        viewer_protocol_policy="https-only",
        allowed_methods=API_METHODS,
        cached_methods=CDN_METHODS,
        min_ttl=0,
        default_ttl=0,
        max_ttl=0,
        forwarded_values=aws.cloudfront.DistributionOrderedCacheBehaviorForwardedValuesArgs(
            query_string=True,
            headers=API_FORWARDED_HEADERS,
            cookies=aws.cloudfront.DistributionOrderedCacheBehaviorForwardedValuesCookiesArgs(
                forward="none",
            ),
        ),
    )


def viewer_certificate(
    certificate_arn: pulumi.Input[str] | None,
) -> aws.cloudfront.DistributionViewerCertificateArgs:
    """Custom ACM certificate when given, else the shared *.cloudfront.net one."""
    if certificate_arn is None:
        return aws.cloudfront.DistributionViewerCertificateArgs(
            cloudfront_default_certificate=True,
        )
    return aws.cloudfront.DistributionViewerCertificateArgs(
        cloudfront_default_certificate=False,
        acm_certificate_arn=certificate_arn,
        ssl_support_method="sni-only",
        minimum_protocol_version="TLSv1.2_2021",
    )


def _handler_arn(handler: EventHandler) -> pulumi.Output[str]:
    if isinstance(handler, aws.lambda_.Function):
        return handler.arn
    return pulumi.Output.from_input(handler)


class Website(pulumi.ComponentResource):
    """
    S3 website bucket + optional HTTP API, CloudFront, ACM certificate and
    Route 53 alias record, all children of this component.
    """

    def __init__(
        self,
        name: str,
        config: WebsiteConfig,
        s3_client=None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Provision the website.

        Args:
            name: Pulumi resource name; prefixes every child resource name.
            config: Website configuration; defaults are filled here and
                missing site assets are logged as warnings.
            s3_client: boto3 S3 client used for uploads. Created on first
                upload when None.
            opts: Options for the component itself.

        Raises:
            ValueError: two routes share a method and path.
            Exception: the Route 53 zone for the domain cannot be found while
                a certificate has to be validated (from the zone lookup).
        """
        super().__init__(ID, name, None, opts)

        self.config, warnings = normalize(config)
        for warning in warnings:
            pulumi.log.warn(warning, resource=self)

        self._prefix = name
        self._s3_client = s3_client
        self._zone_id: str | None = None

        self.website_logs_bucket_name: pulumi.Output[str] | None = None
        self.api_gateway_url: pulumi.Output[str] | None = None
        self.cdn_domain_name: pulumi.Output[str] | None = None
        self.cdn_url: pulumi.Output[str] | None = None
        self.distribution: aws.cloudfront.Distribution | None = None
        self.api_stage: aws.apigatewayv2.Stage | None = None
        self.logs_bucket: aws.s3.Bucket | None = None

        self.bucket = self._provision_bucket()

        if self.config.api_enabled:
            self.api_gateway_url = self._provision_api()

        if self.config.cdn_enabled:
            self.distribution = self._provision_cdn()
            self.cdn_domain_name = self.distribution.domain_name
            self.cdn_url = pulumi.Output.concat("https://", self.distribution.domain_name)

        if self.config.dns:
            self._provision_record()

        self.bucket_name: pulumi.Output[str] = self.bucket.bucket
        self.bucket_website_url: pulumi.Output[str] = pulumi.Output.concat(
            "http://", self.bucket.website_endpoint
        )
        self.website_url: pulumi.Output[str] = self._website_url()

        self.register_outputs(
            {
                "bucket_name": self.bucket_name,
                "bucket_website_url": self.bucket_website_url,
                "website_url": self.website_url,
                "website_logs_bucket_name": self.website_logs_bucket_name,
                "api_gateway_url": self.api_gateway_url,
                "cdn_domain_name": self.cdn_domain_name,
                "cdn_url": self.cdn_url,
                "uploaded_files": self.uploaded_files,
            }
        )

    def _provision_bucket(self) -> aws.s3.Bucket:
        site = self.config.site
        child_opts = pulumi.ResourceOptions(parent=self)

        # S3 website alias records only resolve when the bucket is named
        # after the hostname.
        bucket_name = None
        if self.config.dns and not self.config.cdn_enabled:
            bucket_name = self.config.domain_name

        bucket = aws.s3.Bucket(
            resource_name=f"{self._prefix}-bucket",
            bucket=bucket_name,
            website=aws.s3.BucketWebsiteArgs(
                index_document=site.index_document,
                error_document=site.error_document,
            ),
            force_destroy=True,
            opts=child_opts,
        )

        # Object ACLs are disabled on new buckets; uploads set public-read.
        ownership = aws.s3.BucketOwnershipControls(
            resource_name=f"{self._prefix}-bucket-ownership",
            bucket=bucket.id,
            rule=aws.s3.BucketOwnershipControlsRuleArgs(
                object_ownership="BucketOwnerPreferred",
            ),
            opts=child_opts,
        )
        public_access = aws.s3.BucketPublicAccessBlock(
            resource_name=f"{self._prefix}-bucket-public",
            bucket=bucket.id,
            opts=child_opts,
            **S3_PUBLIC_ACCESS,
        )
        aws.s3.BucketPolicy(
            resource_name=f"{self._prefix}-bucket-policy",
            bucket=bucket.id,
            policy=bucket.arn.apply(_helpers.public_read_policy),
            opts=pulumi.ResourceOptions(parent=self, depends_on=[public_access]),
        )

        # Runs once the bucket accepts public-read objects.
        self.uploaded_files: pulumi.Output[int] = pulumi.Output.all(
            bucket.id, ownership.id, public_access.id
        ).apply(lambda ids: self._upload_site(ids[0]))
        return bucket

    async def _upload_site(self, bucket: str) -> int:
        root = self.config.site.root
        files = list_site_files(root)

        # Uploads have no preview form.
        if pulumi.runtime.is_dry_run():
            pulumi.log.info(
                f"Skipping upload of {len(files)} files from {root} (preview).",
                resource=self,
            )
            return 0

        pulumi.log.info(f"Uploading {len(files)} files from {root}...", resource=self)
        if not files:
            return 0

        if self._s3_client is None:
            self._s3_client = boto3.client("s3")
        try:
            count = await upload_files(self._s3_client, bucket, root, files)
        except (BotoCoreError, ClientError, OSError) as err:
            pulumi.log.error(f"Upload to bucket {bucket} failed: {err}", resource=self)
            return 0

        pulumi.log.info(f"Uploaded {count} files.", resource=self)
        return count

    def _provision_api(self) -> pulumi.Output[str]:
        api_config = self.config.api
        prefix = _helpers.normalize_prefix(api_config.prefix)
        child_opts = pulumi.ResourceOptions(parent=self)

        keys = [
            _helpers.route_key(route.method, _helpers.prefixed_path(prefix, route.path))
            for route in api_config.routes
        ]
        duplicates = _helpers.duplicate_route_keys(keys)
        if duplicates:
            raise ValueError(f"Duplicate API routes: {', '.join(duplicates)}")

        api = aws.apigatewayv2.Api(
            resource_name=f"{self._prefix}-api",
            protocol_type="HTTP",
            opts=child_opts,
        )

        routes = []
        for key, route in zip(keys, api_config.routes):
            suffix = _helpers.resource_suffix(key)
            handler_arn = _handler_arn(route.event_handler)
            integration = aws.apigatewayv2.Integration(
                resource_name=f"{self._prefix}-api-{suffix}",
                api_id=api.id,
                integration_type="AWS_PROXY",
                integration_uri=handler_arn,
                integration_method="POST",
                payload_format_version="2.0",
                opts=child_opts,
            )
            routes.append(
                aws.apigatewayv2.Route(
                    resource_name=f"{self._prefix}-api-{suffix}",
                    api_id=api.id,
                    route_key=key,
                    target=integration.id.apply(lambda id: f"integrations/{id}"),
                    opts=child_opts,
                )
            )
            aws.lambda_.Permission(
                resource_name=f"{self._prefix}-api-{suffix}",
                action="lambda:InvokeFunction",
                function=handler_arn,
                principal="apigateway.amazonaws.com",
                source_arn=pulumi.Output.concat(api.execution_arn, "/*/*"),
                opts=child_opts,
            )

        self.api_stage = aws.apigatewayv2.Stage(
            resource_name=f"{self._prefix}-api-stage",
            api_id=api.id,
            name=prefix,
            auto_deploy=True,
            opts=pulumi.ResourceOptions(parent=self, depends_on=routes),
        )
        return self.api_stage.invoke_url

    def _lookup_zone_id(self) -> str:
        """Resolve the Route 53 zone for the domain; raises when it does not exist."""
        if self._zone_id is None:
            zone = aws.route53.get_zone(
                name=_helpers.strip_trailing_dot(self.config.dns.domain),
                private_zone=False,
            )
            self._zone_id = zone.zone_id
        return self._zone_id

    def _provision_certificate(self) -> pulumi.Output[str]:
        """Request a DNS-validated certificate; return its ARN once validated."""
        domain_name = self.config.domain_name
        child_opts = pulumi.ResourceOptions(parent=self)

        provider = aws.Provider(
            resource_name=f"{self._prefix}-cert-provider",
            region=CERTIFICATE_REGION,
            opts=child_opts,
        )
        cert_opts = pulumi.ResourceOptions(parent=self, provider=provider)
        certificate = aws.acm.Certificate(
            resource_name=f"{self._prefix}-cert",
            domain_name=domain_name,
            validation_method="DNS",
            opts=cert_opts,
        )

        # Awaited here: no validation record is declared without a zone.
        zone_id = self._lookup_zone_id()

        # Only host.domain is requested, so there is a single challenge.
        option = certificate.domain_validation_options[0]
        validation_record = aws.route53.Record(
            resource_name=f"{self._prefix}-cert-validation-record",
            zone_id=zone_id,
            name=option.resource_record_name,
            type=option.resource_record_type,
            records=[option.resource_record_value],
            ttl=VALIDATION_RECORD_TTL,
            allow_overwrite=True,
            opts=child_opts,
        )

        validation = aws.acm.CertificateValidation(
            resource_name=f"{self._prefix}-cert-validation",
            certificate_arn=certificate.arn,
            validation_record_fqdns=[validation_record.fqdn],
            opts=cert_opts,
        )
        return validation.certificate_arn

    def _provision_cdn(self) -> aws.cloudfront.Distribution:
        cdn = self.config.cdn
        site = self.config.site
        distribution_opts = pulumi.ResourceOptions(parent=self)

        origins = [bucket_origin(self.bucket.website_endpoint)]
        ordered_cache_behaviors = None
        if self.api_gateway_url is not None:
            origins.insert(0, api_origin(self.api_gateway_url, self.config.api.prefix))
            # Path patterns are matched before the default behavior.
            ordered_cache_behaviors = [api_cache_behavior(self.config.api.prefix)]

        aliases = None
        certificate_arn = None
        if self.config.dns:
            aliases = [self.config.domain_name]
            certificate_arn = cdn.certificate_arn or self._provision_certificate()

        logging_config = None
        if cdn.logs:
            self.logs_bucket = aws.s3.Bucket(
                resource_name=f"{self._prefix}-logs-bucket",
                force_destroy=True,
                opts=pulumi.ResourceOptions(parent=self),
            )
            # CloudFront log delivery writes with ACLs.
            logs_ownership = aws.s3.BucketOwnershipControls(
                resource_name=f"{self._prefix}-logs-ownership",
                bucket=self.logs_bucket.id,
                rule=aws.s3.BucketOwnershipControlsRuleArgs(
                    object_ownership="BucketOwnerPreferred",
                ),
                opts=pulumi.ResourceOptions(parent=self),
            )
            logging_config = aws.cloudfront.DistributionLoggingConfigArgs(
                bucket=self.logs_bucket.bucket_domain_name,
                include_cookies=False,
            )
            distribution_opts = pulumi.ResourceOptions(
                parent=self,
                depends_on=[self.logs_bucket, logs_ownership],
            )
            self.website_logs_bucket_name = self.logs_bucket.bucket

        custom_error_responses = [
            aws.cloudfront.DistributionCustomErrorResponseArgs(
                error_code=404,
                response_code=404,
                response_page_path=_helpers.error_page_path(site.error_document),
            )
        ]
        restrictions = aws.cloudfront.DistributionRestrictionsArgs(
            geo_restriction=aws.cloudfront.DistributionRestrictionsGeoRestrictionArgs(
                restriction_type="none",
            ),
        )

        return aws.cloudfront.Distribution(
            resource_name=f"{self._prefix}-cdn",
            enabled=True,
            aliases=aliases,
            origins=origins,
            default_cache_behavior=default_cache_behavior(cdn.cache_ttl),
            ordered_cache_behaviors=ordered_cache_behaviors,
            custom_error_responses=custom_error_responses,
            price_class=PRICE_CLASS,
            restrictions=restrictions,
            viewer_certificate=viewer_certificate(certificate_arn),
            logging_config=logging_config,
            opts=distribution_opts,
        )

    def _provision_record(self) -> aws.route53.Record | None:
        """
        Point <host> at the distribution, or at the bucket website without one.

        The zone was already resolved (and required) when a certificate was
        issued. Otherwise a missing zone only skips the record.
        """
        # The engine reports a failed invoke as a bare Exception.
        try:
            zone_id = self._lookup_zone_id()
        except Exception as err:
            pulumi.log.warn(
                f"Domain {self.config.dns.domain} not found in Route 53; "
                f"not creating a DNS record ({type(err).__name__}: {err}).",
                resource=self,
            )
            return None

        if self.distribution is not None:
            alias = aws.route53.RecordAliasArgs(
                name=self.distribution.domain_name,
                zone_id=self.distribution.hosted_zone_id,
                evaluate_target_health=True,
            )
        else:
            alias = aws.route53.RecordAliasArgs(
                name=self.bucket.website_domain,
                zone_id=self.bucket.hosted_zone_id,
                evaluate_target_health=True,
            )

        return aws.route53.Record(
            resource_name=f"{self._prefix}-record",
            zone_id=zone_id,
            name=self.config.dns.host,
            type="A",
            aliases=[alias],
            allow_overwrite=True,
            opts=pulumi.ResourceOptions(parent=self),
        )

    def _website_url(self) -> pulumi.Output[str]:
        # Without a custom hostname the bucket website is the canonical URL,
        # even behind a CDN (see cdn_url).
        if not self.config.dns:
            return self.bucket_website_url
        scheme = "https" if self.config.cdn_enabled else "http"
        return pulumi.Output.from_input(f"{scheme}://{self.config.domain_name}")

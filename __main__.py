"""
Static website - IaC entrypoint.

Reads the website settings from Pulumi config, builds one ``Website``
component and exports the outputs of the resources it created:

- **Bucket**: always; the site files are uploaded on ``pulumi up``.
- **API**: when ``api.routes`` is non-empty; routes name existing Lambda
  functions by ARN in ``eventHandler``.
- **CDN**: when ``cdn`` is set or ``protocol`` is "https".
- **Certificate and DNS record**: when ``dns.domain`` and ``dns.host`` are
  set; the domain must be a Route 53 hosted zone in the account.

Stack exports: bucketName, bucketWebsiteURL, websiteURL, websiteLogsBucketName,
apiGatewayURL, cdnDomainName, cdnURL (absent ones are not exported).
"""

import pulumi

from components import Website
from config import WebsiteConfig


def main():
    """
    Build the Website component from stack config and export its outputs.

    Deprecated config keys are reported as warnings; configuration errors
    (no site root, half a DNS block, unknown protocol) fail the run.
    """
    config, notices = WebsiteConfig.from_pulumi_config(pulumi.Config())
    for notice in notices:
        pulumi.log.warn(notice)

    site = Website(
        name=f"website-{pulumi.get_stack()}",
        config=config,
    )

    for output_name, value in [
        ("bucketName", site.bucket_name),
        ("bucketWebsiteURL", site.bucket_website_url),
        ("websiteURL", site.website_url),
        ("websiteLogsBucketName", site.website_logs_bucket_name),
        ("apiGatewayURL", site.api_gateway_url),
        ("cdnDomainName", site.cdn_domain_name),
        ("cdnURL", site.cdn_url),
    ]:
        if value is not None:
            pulumi.export(output_name, value)


if __name__ == "__main__":
    main()

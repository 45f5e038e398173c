"""
Static website infrastructure components.

The website is one ComponentResource so every resource it creates is a child
of a single instance, named after it and destroyed with it. Use from the
Pulumi entrypoint (e.g. __main__.py) with an explicit WebsiteConfig:

- **Website**: S3 website bucket with uploaded site files, and optionally an
  HTTP API, a CloudFront CDN, an ACM certificate and a Route 53 alias record.
"""

from components.website import Website

__all__ = ["Website"]

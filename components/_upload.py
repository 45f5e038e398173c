"""
Upload of local site files to the website bucket.

Every file under the site root is sent with the S3 ``put_object`` API, one
task per file, all started at once. The Website component calls this from an
``apply`` on the bucket id; the S3 client is passed in, so nothing here needs
a Pulumi stack and tests can use a fake client.
"""

import asyncio
import os
from concurrent.futures import ThreadPoolExecutor

from components._helpers import content_type, object_key

PUBLIC_READ_ACL = "public-read"


def list_site_files(
    root: str,
) -> list[str]:
    """
    Return every regular file under root, recursively, sorted.

    A missing root gives an empty list.
    """
    files = []
    for dirpath, _, filenames in os.walk(root):
        files.extend(os.path.join(dirpath, filename) for filename in filenames)
    return sorted(files)


def put_file(client, bucket: str, root: str, path: str) -> str:
    """Upload one file as a public-read object; return its key."""
    key = object_key(root, path)
    with open(path, "rb") as body:
        client.put_object(
            Bucket=bucket,
            Key=key,
            Body=body.read(),
            ContentType=content_type(path),
            ACL=PUBLIC_READ_ACL,
        )
    return key


async def upload_files(
    client,
    bucket: str,
    root: str,
    files: list[str],
) -> int:
    """
    Upload files concurrently and return how many were sent.

    Every file gets its own worker thread in a pool sized to the batch, kept
    apart from the event loop's default executor (boto3 clients are
    thread-safe). The first failure cancels uploads that have not started
    yet and is raised; objects already written are left in place.
    """
    if not files:
        return 0

    loop = asyncio.get_running_loop()
    executor = ThreadPoolExecutor(max_workers=len(files))

    async def put(path: str) -> str:
        return await loop.run_in_executor(executor, put_file, client, bucket, root, path)

    try:
        async with asyncio.TaskGroup() as group:
            for path in files:
                group.create_task(put(path))
    except ExceptionGroup as errors:
        raise errors.exceptions[0] from None
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return len(files)

"""
Example requests for the Mail Parse Service
===========================================

This script demonstrates how to use the API: post a raw message to /parse,
inspect the attachment outcomes and download what was stored, either
directly with the bearer token or through a temporary download link.

Usage:
    API_TOKEN=secret python example_request.py [path/to/message.eml] [--links]
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp


API_BASE_URL = os.getenv("BASE_URL", "http://localhost:3000")
API_TOKEN = os.getenv("API_TOKEN", "")
DOWNLOAD_DIR = Path("./downloads")

SAMPLE_MESSAGE = (
    "From: Alice Example <alice@example.com>\r\n"
    "To: Bob Example <bob@example.com>\r\n"
    "Subject: Quarterly report\r\n"
    "Date: Mon, 06 Jan 2025 09:30:00 +0000\r\n"
    "Message-ID: <report-2025-q4@example.com>\r\n"
    "MIME-Version: 1.0\r\n"
    "Content-Type: multipart/mixed; boundary=\"sep\"\r\n"
    "\r\n"
    "--sep\r\n"
    "Content-Type: text/plain; charset=utf-8\r\n"
    "\r\n"
    "The report is attached.\r\n"
    "--sep\r\n"
    "Content-Type: text/plain; name=\"report.txt\"\r\n"
    "Content-Disposition: attachment; filename=\"report.txt\"\r\n"
    "\r\n"
    "Revenue went up.\r\n"
    "--sep--\r\n"
).encode("utf-8")


def _auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {API_TOKEN}"}


async def check_health(session: aiohttp.ClientSession) -> bool:
    async with session.get(f"{API_BASE_URL}/health") as response:
        if response.status != 200:
            print(f"❌ Service unhealthy: HTTP {response.status}")
            return False
        print("✅ Service is up")
        return True


async def parse_message(session: aiohttp.ClientSession, raw: bytes) -> Optional[Dict[str, Any]]:
    """Send a raw message to /parse and return the structured result."""
    headers = {**_auth_headers(), "Content-Type": "message/rfc822"}
    async with session.post(f"{API_BASE_URL}/parse", data=raw, headers=headers) as response:
        if response.status != 200:
            error = await response.text()
            print(f"❌ Parse failed with HTTP {response.status}: {error}")
            return None
        return await response.json()


async def request_download_link(session: aiohttp.ClientSession, attachment_id: str) -> Optional[str]:
    """Exchange an attachment id for a temporary, token-bearing URL."""
    url = f"{API_BASE_URL}/attachments/{attachment_id}/download-link"
    async with session.post(url, headers=_auth_headers()) as response:
        if response.status != 200:
            print(f"❌ Could not get a download link for {attachment_id}: HTTP {response.status}")
            return None
        data = await response.json()
        print(f"🔗 Temporary link valid for {data['expiresIn']}s")
        return data["downloadUrl"]


async def download(session: aiohttp.ClientSession, url: str, filename: str, *, authenticated: bool) -> None:
    if url.startswith("/"):
        url = f"{API_BASE_URL}{url}"
    headers = _auth_headers() if authenticated else {}
    async with session.get(url, headers=headers) as response:
        if response.status != 200:
            print(f"❌ Download of {filename} failed: HTTP {response.status}")
            return
        content = await response.read()

    DOWNLOAD_DIR.mkdir(parents=True, exist_ok=True)
    target = DOWNLOAD_DIR / Path(filename).name
    target.write_bytes(content)
    print(f"💾 Saved {filename} ({len(content)} bytes) to {target}")


async def run_example(raw: bytes, use_temporary_links: bool = False) -> None:
    async with aiohttp.ClientSession() as session:
        if not await check_health(session):
            return

        result = await parse_message(session, raw)
        if result is None:
            return

        sender = result["from"]
        print(f"📧 {result['subject']!r} from {sender['name']} <{sender['address']}>")
        print(f"📅 {result['date']}")
        print(f"📎 {len(result['attachments'])} attachment(s)")

        for attachment in result["attachments"]:
            label = f"{attachment['filename']} ({attachment['mimeType']}, {attachment['size']} bytes)"
            if attachment["skipped"]:
                print(f"  ⏭️  {label}: {attachment['skipReason']}")
                continue

            print(f"  ⬇️  {label}")
            if use_temporary_links:
                link = await request_download_link(session, attachment["id"])
                if link:
                    await download(session, link, attachment["filename"], authenticated=False)
            else:
                await download(
                    session,
                    f"/attachments/{attachment['id']}",
                    attachment["filename"],
                    authenticated=True,
                )


if __name__ == "__main__":
    if not API_TOKEN:
        print("Set API_TOKEN to the token configured on the server")
        sys.exit(1)

    paths = [arg for arg in sys.argv[1:] if not arg.startswith("--")]
    message_bytes = Path(paths[0]).read_bytes() if paths else SAMPLE_MESSAGE
    asyncio.run(run_example(message_bytes, use_temporary_links="--links" in sys.argv))

"""Escrow E2E Test Client.

One-shot client that asks a running escrow server to release one
consultation and outputs a structured JSON result for the e2e test
framework to parse.
"""

import asyncio
import json
import os
import sys

from dotenv import load_dotenv

load_dotenv()

server_url = os.getenv("ESCROW_SERVER_URL", "")
cron_secret = os.getenv("CRON_SECRET", "")
consultation_id = os.getenv("CONSULTATION_ID", "")
amount_raw = os.getenv("AMOUNT_RAW", "")
specialist_account = os.getenv("SPECIALIST_ACCOUNT", "")

if not all([server_url, cron_secret, consultation_id, amount_raw, specialist_account]):
    result = {
        "success": False,
        "error": "Missing required environment variables: ESCROW_SERVER_URL, CRON_SECRET, "
        "CONSULTATION_ID, AMOUNT_RAW, SPECIALIST_ACCOUNT",
    }
    print(json.dumps(result))
    sys.exit(1)


async def main() -> dict:
    """Call the release endpoint. Returns the e2e result dict."""
    import httpx

    async with httpx.AsyncClient(timeout=120.0) as client:
        resp = await client.post(
            f"{server_url.rstrip('/')}/settlements/release",
            json={
                "consultationId": consultation_id,
                "amountRaw": amount_raw,
                "specialistAccount": specialist_account,
            },
            headers={"x-cron-secret": cron_secret},
        )

    try:
        data = resp.json()
    except ValueError:
        data = {"text": resp.text}

    return {
        "success": resp.status_code == 200 and bool(data.get("success")),
        "data": data,
        "status_code": resp.status_code,
    }


if __name__ == "__main__":
    try:
        result = asyncio.run(main())
    except Exception as e:
        result = {"success": False, "error": str(e)}
    print(json.dumps(result))
    sys.exit(0 if result.get("success") else 1)

#!/usr/bin/env python3
"""
Example: Sign and verify an image via the REST API

Start the server first:
    uvicorn reclaim.api:app --host 0.0.0.0 --port 8000
"""

import base64
import os

import numpy as np
import requests

from reclaim.watermark import encode_png


def main():
    api_url = "http://127.0.0.1:8000"

    # Check if API is running
    try:
        health_response = requests.get(f"{api_url}/healthz", timeout=5)
        if health_response.status_code != 200:
            print("❌ API health check failed")
            return
        print("✅ API is healthy")
    except requests.exceptions.RequestException:
        print("❌ Cannot connect to API. Make sure the server is running:")
        print("   uvicorn reclaim.api:app --host 0.0.0.0 --port 8000")
        return

    headers = {}
    api_key = os.getenv("API_KEY")
    if api_key:
        headers["x-api-key"] = api_key
        print(f"🔐 Using API key: {api_key[:8]}...")

    pixels = np.random.default_rng(0).integers(0, 256, size=(128, 128, 3), dtype=np.uint8)
    image = encode_png(pixels)

    print("🔐 Signing via API...")
    response = requests.post(
        f"{api_url}/sign",
        files={"file": ("photo.png", image, "image/png")},
        data={"creator_id": "abc123", "source_type": "authentic"},
        headers=headers,
        timeout=30,
    )
    if response.status_code == 401:
        print("❌ Authentication failed. Set API_KEY environment variable:")
        print("   export API_KEY=your-api-key")
        return
    if response.status_code != 200:
        print(f"❌ Signing failed: {response.status_code}")
        print(f"   Error: {response.json().get('detail', 'Unknown error')}")
        return

    signed = base64.b64decode(response.json()["signed_media_base64"])
    print(f"✅ Signed at {response.json()['metadata']['timestamp']}")

    print("🔍 Verifying via API...")
    response = requests.post(
        f"{api_url}/verify",
        files={"file": ("signed.png", signed, "image/png")},
        headers=headers,
        timeout=30,
    )
    if response.status_code == 200:
        result = response.json()
        print(f"   Outcome: {result['outcome']}")
        print(f"   Creator: {result['creator']}")
        print(f"   Message: {result['message']}")
    else:
        print(f"❌ Verification failed: {response.status_code}")
        print(f"   Error: {response.json().get('detail', 'Unknown error')}")


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Example: Sign and verify an image

This example demonstrates the complete workflow:
1. Create a test image
2. Sign it for a creator
3. Verify the signature
4. Show that lossy re-encoding removes it
"""

import numpy as np

from reclaim import tamper, watermark
from reclaim.verification import verify_image


def create_test_image(size: int = 256) -> bytes:
    """Color bars with some noise, as PNG bytes"""
    pixels = np.zeros((size, size, 3), dtype=np.uint8)
    pixels[:, :size // 3] = (255, 0, 0)
    pixels[:, size // 3:2 * size // 3] = (0, 255, 0)
    pixels[:, 2 * size // 3:] = (0, 0, 255)
    noise = np.random.default_rng(42).integers(0, 16, size=pixels.shape, dtype=np.uint8)
    return watermark.encode_png(pixels ^ noise)


def main():
    creator_id = "0x52908400098527886E0F7030069857D2E4169EE7"

    print("🖼️  Step 1: Creating test image...")
    image = create_test_image()
    print(f"   Needs at least {watermark.minimum_dimension(creator_id)}px square for this creator")

    print("\n🔐 Step 2: Signing...")
    signed = watermark.sign(image, creator_id, "authentic")
    print(f"✅ Signed (fingerprint {signed.record.content_fingerprint}, {len(signed.data)} bytes)")

    print("\n🔍 Step 3: Verifying signed image...")
    report = verify_image(signed.data)
    print(f"   Outcome: {report.outcome.kind.value}")
    print(f"   Message: {report.message}")

    print("\n📼 Step 4: Applying attacks...")
    for preset in ("jpeg_light", "pixel"):
        attacked = tamper.apply_attack(signed.data, preset)
        report = verify_image(attacked)
        print(f"   {preset}: {report.message}")


if __name__ == "__main__":
    main()

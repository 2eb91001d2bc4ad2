from __future__ import annotations

import json
import os

import fitz
import httpx


def _make_smoke_pdf() -> bytes:
    doc = fitz.open()
    page = doc.new_page(width=612, height=792)
    page.insert_text((72, 72), "InkSeal Smoke Test", fontsize=14)
    page.insert_text((72, 100), "Sign below", fontsize=12)
    payload = doc.tobytes()
    doc.close()
    return payload


def main() -> int:
    base_url = os.getenv("INKSEAL_SMOKE_API_BASE_URL", "http://localhost:8000").rstrip("/")
    client = httpx.Client(base_url=base_url, timeout=30)

    health = client.get("/health")
    health.raise_for_status()

    fonts = client.get("/v1/signatures/fonts")
    fonts.raise_for_status()
    family = fonts.json()[0]["family"]

    created = client.post(
        "/v1/signatures",
        json={"name": "Smoke Signer", "font_family": family, "color": "#0d47a1"},
    )
    created.raise_for_status()
    signature_id = created.json()["id"]

    annotations = [
        {"kind": "text", "page_number": 1, "x": 72, "y": 140, "text": "Smoke OK", "font_size": 14},
        {"kind": "signature", "page_number": 1, "x": 72, "y": 200, "signature_id": signature_id},
    ]
    flattened = client.post(
        "/v1/flatten",
        files={"file": ("smoke.pdf", _make_smoke_pdf(), "application/pdf")},
        data={"annotations": json.dumps(annotations)},
    )
    flattened.raise_for_status()
    if not flattened.content.startswith(b"%PDF"):
        raise RuntimeError("Flatten did not return PDF bytes")

    client.delete(f"/v1/signatures/{signature_id}").raise_for_status()

    print(
        json.dumps(
            {
                "status": "ok",
                "drawn": flattened.headers.get("x-inkseal-drawn"),
                "font_fallbacks": flattened.headers.get("x-inkseal-font-fallbacks"),
            }
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

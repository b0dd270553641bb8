"""Demo: walk a certificate from request to public lookup using FastAPI TestClient.

Uses the in-memory repos and content store (leave DATABASE_URL and the
PINATA_* variables unset).  Run with:
    python scripts/demo_issuance_flow.py
"""

from __future__ import annotations

import fitz
from fastapi.testclient import TestClient

from decertify.main import app
from decertify.services import token_service


def _bearer(identity: dict) -> dict[str, str]:
    token = token_service.create_access_token(sub=identity["id"], role=identity["role"])
    return {"Authorization": f"Bearer {token}"}


def _sample_pdf() -> bytes:
    doc = fitz.open()
    page = doc.new_page(width=595, height=842)
    page.insert_text((72, 120), "Certificate of Graduation", fontsize=24)
    page.insert_text((72, 160), "Bachelor of Engineering, 2024")
    data = doc.tobytes()
    doc.close()
    return data


def main() -> None:
    client = TestClient(app)

    # ── Seed identities ─────────────────────────────────────────────
    org = client.post(
        "/v1/identities",
        json={
            "wallet_address": "0x" + "a1" * 20,
            "name": "Demo Institute of Technology",
            "role": "organization",
        },
    ).json()
    student = client.post(
        "/v1/identities",
        json={"wallet_address": "0x" + "b2" * 20, "name": "Demo Student", "role": "student"},
    ).json()
    print(f"1. POST /v1/identities         → org={org['id'][:8]}…  student={student['id'][:8]}…")

    # ── Step 2: student files a request ─────────────────────────────
    r = client.post(
        "/v1/requests",
        json={
            "organization_id": org["id"],
            "issuance_amount": "1000000000000000",
            "usn": "1DM24CS042",
            "year_of_graduation": 2024,
            "certificate_type": "degree",
        },
        headers=_bearer(student),
    )
    request_id = r.json()["id"]
    print(f"2. POST /v1/requests           → {r.status_code}  status={r.json()['status']}")

    # ── Step 3: issuing before acceptance ───────────────────────────
    pdf = _sample_pdf()
    r = client.post(
        f"/v1/requests/{request_id}/issue",
        files={"document": ("degree.pdf", pdf, "application/pdf")},
        headers=_bearer(org),
    )
    print(f"3. POST …/issue (pending)      → {r.status_code}  {r.json()['detail']['kind']}")

    # ── Step 4: organization accepts ────────────────────────────────
    r = client.put(
        f"/v1/requests/{request_id}/status",
        json={"status": "accepted"},
        headers=_bearer(org),
    )
    print(f"4. PUT  …/status (accepted)    → {r.status_code}  status={r.json()['status']}")

    # ── Step 5: issue ───────────────────────────────────────────────
    r = client.post(
        f"/v1/requests/{request_id}/issue",
        files={"document": ("degree.pdf", pdf, "application/pdf")},
        headers=_bearer(org),
    )
    issued = r.json()
    print(
        f"5. POST …/issue                → {r.status_code}  "
        f"original={issued['original_content_id'][:16]}…  final={issued['content_id'][:16]}…"
    )

    # ── Step 6: public verification ─────────────────────────────────
    r = client.get(f"/v1/certificates/{issued['content_id']}")
    cert = r.json()
    print(
        f"6. GET  /v1/certificates/{{cid}} → {r.status_code}  "
        f"{cert['organization']['name']} / {cert['certificate_type']} / {cert['usn']}"
    )

    # ── Step 7: the original upload is not a certificate of record ──
    r = client.get(f"/v1/certificates/{issued['original_content_id']}")
    print(f"7. GET  /v1/certificates/{{orig}} → {r.status_code}")

    print("\nAll steps completed.")


if __name__ == "__main__":
    main()

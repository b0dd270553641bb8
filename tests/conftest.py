from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import fitz
import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import decertify` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from decertify.main import app  # noqa: E402
from decertify.models.identity import Identity, Role  # noqa: E402
from decertify.models.principal import Principal  # noqa: E402
from decertify.repos.identity_repo import identity_repo  # noqa: E402
from decertify.repos.org_profile_repo import org_profile_repo  # noqa: E402
from decertify.repos.request_repo import request_repo  # noqa: E402
from decertify.services import token_service  # noqa: E402
from decertify.services.content_store import content_store  # noqa: E402


@pytest.fixture(autouse=True)
def reset_identity_state() -> None:
    """Clear identity and organization profile repos between tests."""
    identity_repo._by_id.clear()  # type: ignore[attr-defined]
    identity_repo._by_wallet.clear()  # type: ignore[attr-defined]
    org_profile_repo._by_identity.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_request_state() -> None:
    """Clear certificate requests between tests."""
    request_repo._by_id.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_content_store() -> None:
    """Forget pinned documents between tests."""
    if hasattr(content_store, "_blobs"):
        content_store._blobs.clear()  # type: ignore[union-attr]
        content_store._metadata.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(identity: Identity) -> str:
    """Create a valid ES256 JWT for *identity*."""
    return token_service.create_access_token(
        sub=str(identity.id), role=identity.role.value
    )


def auth_headers(identity: Identity) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(identity)}"}


def principal_of(identity: Identity) -> Principal:
    return Principal(identity_id=identity.id, role=identity.role)


# ---------------------------------------------------------------------------
# Identity helpers
# ---------------------------------------------------------------------------

_wallet_counter = 0


def next_wallet() -> str:
    global _wallet_counter
    _wallet_counter += 1
    return f"0x{_wallet_counter:040x}"


def create_identity(role: Role, name: str | None = None) -> Identity:
    """Persist an identity directly in the in-memory repo."""
    identity = Identity.new(
        wallet_address=next_wallet(),
        name=name or f"test {role.value}",
        role=role,
    )
    asyncio.run(identity_repo.add(identity))
    return identity


@pytest.fixture
def student() -> Identity:
    return create_identity(Role.STUDENT, "Asha Student")


@pytest.fixture
def organization() -> Identity:
    return create_identity(Role.ORGANIZATION, "Example University")


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def make_pdf(text: str = "Certificate of Completion", pages: int = 1) -> bytes:
    """Build a small A4 PDF in memory."""
    doc = fitz.open()
    try:
        for i in range(pages):
            page = doc.new_page(width=595, height=842)
            page.insert_text((72, 100), f"{text} (page {i + 1})", fontsize=18)
        return doc.tobytes()
    finally:
        doc.close()


@pytest.fixture
def pdf_bytes() -> bytes:
    return make_pdf()

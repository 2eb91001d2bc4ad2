from __future__ import annotations

from fastapi import APIRouter

from inkseal_api.core.annotations.model import SIGNATURE_COLORS, Signature
from inkseal_api.core.errors import APIError
from inkseal_api.core.flatten.config import get_flatten_config
from inkseal_api.core.fonts.registry import SIGNATURE_FONTS
from inkseal_api.schemas.annotations import SignatureCreateRequest, SignatureFontEntry, SignatureListResponse
from inkseal_api.services import signature_store

router = APIRouter(prefix="/v1/signatures", tags=["signatures"])

@router.get("", response_model=SignatureListResponse)
def list_signatures() -> SignatureListResponse:
    return SignatureListResponse(signatures=signature_store.load_signatures())


@router.get("/fonts", response_model=list[SignatureFontEntry])
def list_signature_fonts() -> list[SignatureFontEntry]:
    registry = get_flatten_config().registry
    return [
        SignatureFontEntry(label=font.label, family=font.family, available=registry.is_available(font.family))
        for font in SIGNATURE_FONTS
    ]


@router.post("", response_model=Signature)
def create_signature(payload: SignatureCreateRequest) -> Signature:
    entry = get_flatten_config().registry.lookup(payload.font_family)
    if entry is None:
        raise APIError(
            status_code=400,
            code="unknown_font_family",
            message="Font family is not a registered signature font",
            details={"font_family": payload.font_family},
        )
    color = payload.color.lower()
    if color not in SIGNATURE_COLORS.values():
        raise APIError(
            status_code=400,
            code="invalid_color",
            message="Color must be one of the signature palette colors",
            details={"color": payload.color, "allowed": list(SIGNATURE_COLORS.values())},
        )
    signature_id = signature_store.save_signature(payload.name, entry[0], color)
    return signature_store.get_signature(signature_id)


@router.delete("/{signature_id}")
def delete_signature(signature_id: int) -> dict[str, int]:
    signature_store.delete_signature(signature_id)
    return {"deleted": signature_id}

from typing import Any

from fastapi import APIRouter, HTTPException
from starlette import status

from storefront.schemas import RequestModel, envelope
from storefront.translation import translate_content, translate_text

class TranslateRequest(RequestModel):
    text: str | None = None
    content: dict[str, Any] | None = None
    target_lang: str | None = None
    source_lang: str | None = None

router = APIRouter(
    prefix="/api/translate",
    tags=["translate"],
    responses={404: {"description": "Not found"}},
)

@router.post("")
def translate(body: TranslateRequest):
    """Translate a text, or every string field of ``content`` into all configured languages"""
    if not body.target_lang:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="targetLang is required"
        )
    if body.content:
        return envelope(translate_content(body.content))
    if body.text:
        return envelope({
            "text": translate_text(body.text, body.target_lang, body.source_lang),
            "target_lang": body.target_lang,
        })
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="text or content is required"
    )

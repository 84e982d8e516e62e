from fastapi import APIRouter

from scenepipe.api.deps import AssetServiceDep
from scenepipe.schemas.envelope import ApiResponse
from scenepipe.schemas.job import FontInfo

router = APIRouter()


@router.get("/stickers", response_model=ApiResponse)
async def list_stickers(assets: AssetServiceDep) -> ApiResponse:
    stickers = assets.list_stickers()
    return ApiResponse(success=True, message=f"Found {len(stickers)} stickers", data=stickers)


@router.get("/fonts", response_model=ApiResponse)
async def list_fonts(assets: AssetServiceDep) -> ApiResponse:
    fonts = [FontInfo(**font) for font in assets.list_fonts()]
    return ApiResponse(success=True, message=f"Found {len(fonts)} fonts", data=fonts)

"""Static catalog routes for the editor palette."""

from typing import Any, Dict, List

from fastapi import APIRouter

from ..config import VOICE_OPTIONS
from ..flows.catalog import BLOCK_DEFINITIONS, list_presets

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/blocks")
async def list_block_types() -> List[Dict[str, Any]]:
    return [d.to_dict() for d in BLOCK_DEFINITIONS]


@router.get("/voices")
async def list_voices() -> List[Dict[str, str]]:
    return VOICE_OPTIONS


@router.get("/presets")
async def presets() -> List[Dict[str, Any]]:
    return list_presets()

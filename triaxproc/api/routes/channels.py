"""
Channels Router
===============
Endpoints for the canonical channel schema and the filter recipes.
"""

from typing import Optional
from fastapi import APIRouter

from triaxproc.api.schemas import Channel, ChannelListResponse, FilterRecipe, FilterStep
from triaxproc.processing.filters import FILTER_RECIPES
from triaxproc.processing.schema import CHANNEL_SCHEMA, RUNTIME


router = APIRouter()


@router.get("", response_model=ChannelListResponse)
def list_channels(
    unit: Optional[str] = None
):
    """List all canonical channels."""
    specs = [spec for spec in CHANNEL_SCHEMA if unit is None or spec.unit == unit]

    channels = [Channel(
        name=spec.name,
        sources=list(spec.sources),
        unit=spec.unit,
        description=spec.description,
        continuity=spec.continuity.value,
        impact=spec.impact
    ) for spec in specs]

    return ChannelListResponse(channels=channels, total=len(channels))


@router.get("/units")
def list_units():
    """List all physical units with their channel count."""
    counts = {}
    for spec in CHANNEL_SCHEMA:
        counts[spec.unit] = counts.get(spec.unit, 0) + 1

    return {
        "units": [
            {"unit": unit, "channel_count": count}
            for unit, count in counts.items()
        ],
        "derived": [{"name": RUNTIME.name, "unit": RUNTIME.unit}],
    }


@router.get("/filters")
def list_filter_recipes():
    """List the denoising recipe of every channel group."""
    recipes = [FilterRecipe(
        group=recipe.group,
        channels=list(recipe.channels),
        steps=[FilterStep(kind=step.kind, param=step.param) for step in recipe.steps],
        decimals=recipe.decimals,
        zero_relative=recipe.zero_relative
    ) for recipe in FILTER_RECIPES]

    return {"recipes": recipes, "total": len(recipes)}

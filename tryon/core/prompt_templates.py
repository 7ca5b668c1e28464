"""Prompt templates and builders for the virtual try-on providers."""

from __future__ import annotations
from dataclasses import dataclass


# --- GENERATION PROMPT ---

PROMPT_TEMPLATE = """Use the **base image (first image)** as the person and scene reference. Completely remove the outfit in the base image, then render a realistic, high quality replacement using {APPAREL_REFERENCE}, fully adopting its **design, shape, silhouette, style, and texture**.

Guidelines:
- Fit the outfit naturally to the person's body posture, maintaining correct scale, orientation, lighting, and perspective. {LAYERING_DESCRIPTION}
- Do **not invent or extrapolate** beyond what is shown in the base image. Match the outfit's visible length to the base image's crop.
- Keep all other elements of the base image intact, including the person's pose, skin, hair, environment, and shadows.
- Use {LIGHTING_DESCRIPTION}.
- Do not modify anything outside the outfit area.

**Outfit definition:** {OUTFIT_DEFINITION}
"""


@dataclass(frozen=True)
class PromptDefaults:
    """Default configuration values for virtual try-on generation prompts."""

    apparel_single: str = "the **outfit from the second image**"
    apparel_multi: str = "the **outfit pieces from images 2 to {LAST}**"
    layering_single: str = ""
    layering_multi: str = (
        "Combine every apparel image into one outfit; layer a piece only when it is naturally worn "
        "on top (e.g., jacket over shirt), otherwise replace the matching item."
    )
    lighting_description: str = "natural lighting with realistic shadows and fabric textures that blend with the original scene"
    outfit_definition: str = (
        "All visible clothing and accessories (upper and lower garments, footwear, and accessories "
        "such as hats, jewelry, belts, handbags, and glasses)."
    )


DEFAULTS = PromptDefaults()


def build_tryon_prompt(
    apparel_count: int,
    lighting_description: str | None = None,
    outfit_definition: str | None = None,
) -> str:
    """Render the generation prompt for a model image plus `apparel_count` apparel images."""
    if apparel_count < 1:
        raise ValueError("Virtual try-on prompt needs at least one apparel image.")

    if apparel_count == 1:
        apparel = DEFAULTS.apparel_single
        layering = DEFAULTS.layering_single
    else:
        apparel = DEFAULTS.apparel_multi.format(LAST=apparel_count + 1)
        layering = DEFAULTS.layering_multi

    return PROMPT_TEMPLATE.format(
        APPAREL_REFERENCE=apparel,
        LAYERING_DESCRIPTION=layering,
        LIGHTING_DESCRIPTION=lighting_description or DEFAULTS.lighting_description,
        OUTFIT_DEFINITION=outfit_definition or DEFAULTS.outfit_definition,
    ).strip()


__all__ = [
    "PROMPT_TEMPLATE",
    "DEFAULTS",
    "PromptDefaults",
    "build_tryon_prompt",
]

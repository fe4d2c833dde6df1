"""
Prompt templates for the try-on edit request.

Both templates ask the model to edit the first image in place rather than
generate a new picture. ``{garment}`` is replaced with the garment
description; ``{garment_hint}`` (garment-image template only) carries the
optional description as an extra line.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

GARMENT_IMAGE_TEMPLATE = """\
Edit the first image (person) by replacing their current clothing with the garment from the second image.
{garment_hint}
CRITICAL REQUIREMENTS:
- EDIT the existing person image, do not create a new one
- Keep the person's face, hair, body shape, and background EXACTLY the same
- Only change the clothing - replace their current clothes with the garment from image 2
- Maintain identical lighting, shadows, pose, and background
- Make the new garment fit naturally on their existing body
- The result should look like the same photo but with different clothes

DO NOT: Change anything else about the person or image
DO: Only edit the clothing to match the garment from image 2"""

DESCRIPTION_TEMPLATE = """\
Edit this image to show the person wearing a {garment}.

CRITICAL REQUIREMENTS:
- Keep the person's face, hair, body shape, pose, and background EXACTLY the same
- Only edit the clothing area to show them wearing the {garment}
- The garment should look exactly like described (same color, style, fit)
- Maintain identical lighting, shadows, and background
- The result should look like a real photo edit where only the clothing changed
- Do NOT change anything else about the image

This is an EDIT operation - preserve the original image structure and only modify the clothing."""


@dataclass(frozen=True)
class PromptTemplates:
    with_garment_image: str = GARMENT_IMAGE_TEMPLATE
    with_description: str = DESCRIPTION_TEMPLATE
    garment_hint: str = "The garment is: {garment}.\n"

    def build(self, *, garment_description: Optional[str], has_garment_image: bool) -> str:
        garment = (garment_description or "").strip()
        if has_garment_image:
            hint = self.garment_hint.format(garment=garment) if garment else ""
            return self.with_garment_image.format(garment=garment, garment_hint=hint)
        if not garment:
            raise ValueError("A garment description is required when no garment image is attached.")
        return self.with_description.format(garment=garment)


DEFAULT_TEMPLATES = PromptTemplates()


def build_prompt(
    garment_description: Optional[str],
    has_garment_image: bool,
    templates: PromptTemplates = DEFAULT_TEMPLATES,
) -> str:
    return templates.build(
        garment_description=garment_description,
        has_garment_image=has_garment_image,
    )

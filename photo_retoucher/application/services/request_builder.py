"""Turns an asset plus the current settings into an edit request."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from ...domain.entities.asset import ImageAsset
from ...domain.value_objects.options import (
    AspectRatio,
    DayToNight,
    FurnitureEnhance,
    LightsMode,
    PeopleDensity,
    ProcessingOptions,
    ProjectSettings,
    SkyReplacement,
    Strength,
    Vehicles,
)
from ..ports.image_service import EditRequest

logger = logging.getLogger(__name__)


SYSTEM_INSTRUCTION_HEADER = """\
ROLE: You are a senior architectural photo retoucher.

CRITICAL RULES:
1. Keep the structure: never change the design or massing of the building.
2. Keep the materials: brick stays brick, wood stays wood. Never swap materials.
3. Keep the original colours: clean and brighten only, never repaint walls or floors
   unless a task explicitly asks for a colour change.
4. Correct geometry: every vertical line must stand at 90 degrees to the ground.

Carry out the TASKS listed below exactly.
"""

# (minimum width/height ratio, service aspect ratio), checked in order
ASPECT_RATIO_RULES: tuple[tuple[float, str], ...] = (
    (1.6, "16:9"),
    (1.2, "4:3"),
    (0.9, "1:1"),
    (0.6, "3:4"),
)
TALLEST_ASPECT_RATIO = "9:16"


def infer_aspect_ratio(width: int, height: int) -> str:
    """Pick the service aspect ratio closest in spirit to the source shape."""
    ratio = width / height if height else 1.0
    for minimum, aspect in ASPECT_RATIO_RULES:
        if ratio >= minimum:
            return aspect
    return TALLEST_ASPECT_RATIO


@runtime_checkable
class PromptBuilder(Protocol):
    """Translates settings into the text part of a request."""

    def batch_prompt(self, settings: ProjectSettings) -> str:
        ...

    def mask_prompt(self, replacement_text: str | None) -> str:
        ...


class TaskPromptBuilder:
    """Default prompt builder: system header plus one directive per toggle."""

    def __init__(self, header: str = SYSTEM_INSTRUCTION_HEADER):
        self._header = header

    def tasks(self, options: ProcessingOptions) -> list[str]:
        """Declarative task directives for the enabled options."""
        tasks: list[str] = []

        # Geometry
        if options.auto_verticals:
            tasks.append("- Straighten walls and columns (verticals).")
        if options.auto_perspective_correction:
            tasks.append("- Balance the perspective.")
        if options.auto_lens_correction:
            tasks.append("- Remove lens distortion.")
        if options.auto_level_horizon:
            tasks.append("- Level the horizon.")

        # Cleaning
        if options.clean_walls is not Strength.OFF:
            strength = "Digital restoration" if options.clean_walls is Strength.STRONG else "Clean"
            tasks.append(
                f"- Walls: {strength}. Remove mould and stains. Keep the original paint colour."
            )
        if options.clean_paving is not Strength.OFF:
            tasks.append("- Floor/paving: remove stains, refresh grout lines. Keep the material.")
        if options.clean_glass is not Strength.OFF:
            tasks.append("- Glass: remove smudges and reflections of clutter.")
        if options.clean_ground_tiles is not Strength.OFF:
            tasks.append("- Ground tiles: even out stains and discolouration.")
        if options.clean_trash:
            tasks.append("- Remove litter and foreign objects from the ground.")
        if options.remove_power_lines:
            tasks.append("- Remove power lines.")
        if options.remove_sensor_spots:
            tasks.append("- Remove sensor dust spots.")
        tasks.append(f"- Urban noise (signs, cones, clutter): reduce {options.remove_urban_noise.value.lower()}.")
        if options.smooth_soft_surfaces is not Strength.OFF:
            tasks.append(f"- Smooth soft surfaces (bedding, curtains, sofas): {options.smooth_soft_surfaces.value.lower()}.")

        # Lighting
        if options.auto_hdr is not Strength.OFF:
            tasks.append(f"- Auto HDR ({options.auto_hdr.value.lower()}): balance highlights and shadows.")
        tasks.append(f"- White balance: {options.auto_white_balance.value.replace('_', ' ').lower()}.")
        if options.optimize_interior:
            tasks.append("- Optimise interior exposure.")
        if options.lights_mode is LightsMode.ON:
            tasks.append("- Turn on the interior lights.")
        elif options.lights_mode is LightsMode.MIXED:
            tasks.append("- Mix natural daylight with warm interior lighting.")

        # Sky
        if options.sky_replacement is not SkyReplacement.OFF:
            sky = (
                options.sky_custom_prompt
                if options.sky_replacement is SkyReplacement.CUSTOM
                else options.sky_replacement.value.replace('_', ' ').lower()
            )
            tasks.append(f"- Replace the sky: {sky} (strength {options.sky_strength}%).")
            if options.match_light_direction:
                tasks.append("- Match the light direction of the new sky on the building.")
        if options.cpl_filter_effect:
            tasks.append("- Apply a circular polariser look.")

        # Scene
        if options.day_to_night is not DayToNight.OFF:
            tasks.append(f"- Change the time of day to {options.day_to_night.value.replace('_', ' ').lower()}.")

        # Staging
        if options.add_people is not PeopleDensity.OFF:
            tasks.append(
                f"- Add people ({options.add_people.value.lower()} density, "
                f"{options.people_style.value.replace('_', ' ').lower()} style)."
            )
        if options.vehicles is not Vehicles.OFF:
            tasks.append(f"- Add {options.vehicles.value.lower()} parked vehicles.")
        if options.furniture_enhance is not FurnitureEnhance.OFF:
            tasks.append(f"- Furniture: {options.furniture_enhance.value.lower()} enhancement, keep the layout.")
        if options.color_consistency:
            tasks.append("- Keep colours consistent with the other photos of the project.")

        return tasks

    def batch_prompt(self, settings: ProjectSettings) -> str:
        tasks = "\n".join(self.tasks(settings.options))
        parts = [self._header]
        if settings.project_context:
            parts.append(f"PROJECT CONTEXT: {settings.project_context}")
        parts.append(f"TASKS:\n{tasks}")
        parts.append(f"Additional notes: {settings.extra_prompt or 'None'}")
        return "\n\n".join(parts)

    def mask_prompt(self, replacement_text: str | None) -> str:
        if replacement_text:
            instruction = f'GENERATIVE FILL: inside the red masked area, paint: "{replacement_text}".'
        else:
            instruction = "REMOVE OBJECT: remove the object inside the red masked area and inpaint the background."
        return f"{self._header}\n{instruction}"


class RequestBuilder:
    """Builds :class:`EditRequest` objects for the orchestrator."""

    def __init__(self, prompt_builder: PromptBuilder | None = None):
        self._prompts = prompt_builder or TaskPromptBuilder()

    def build(
        self,
        asset: ImageAsset,
        settings: ProjectSettings,
        mask: bytes | None = None,
        replacement_text: str | None = None
    ) -> EditRequest:
        """Build the request for one asset.

        Args:
            asset: Asset whose source bytes are edited
            settings: Snapshot current at dispatch time
            mask: Serialized mask overlay (mask mode only)
            replacement_text: What to paint inside the mask (mask mode only)
        """
        options = settings.options
        if options.aspect_ratio is AspectRatio.ORIGINAL:
            aspect_ratio = infer_aspect_ratio(*asset.natural_size)
        else:
            aspect_ratio = options.aspect_ratio.value

        if mask is not None:
            prompt = self._prompts.mask_prompt(replacement_text)
        else:
            prompt = self._prompts.batch_prompt(settings)

        return EditRequest(
            source_bytes=asset.source.data,
            source_mime=asset.source.mime_type,
            prompt=prompt,
            resolution=options.resolution,
            aspect_ratio=aspect_ratio,
            mask_bytes=mask,
            replacement_text=replacement_text if mask is not None else None,
            settings=settings,
        )

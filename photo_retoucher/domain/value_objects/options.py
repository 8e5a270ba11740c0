"""Processing options - the declarative edit configuration."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OutputResolution(str, Enum):
    """Output resolution tiers offered by the service."""
    RES_2K = "2K"
    RES_4K = "4K"


class AspectRatio(str, Enum):
    """Target aspect ratio. ORIGINAL lets the request infer one from the source."""
    ORIGINAL = "ORIGINAL"
    WIDE = "16:9"
    TALL = "9:16"
    STANDARD = "4:3"
    PORTRAIT = "3:4"
    CLASSIC = "3:2"
    CLASSIC_PORTRAIT = "2:3"


class Strength(str, Enum):
    """Four-level intensity used by the cleaning and lighting toggles."""
    OFF = "OFF"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    STRONG = "STRONG"


class NoiseLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    STRONG = "STRONG"


class SkyReplacement(str, Enum):
    OFF = "OFF"
    CLEAR_BLUE = "CLEAR_BLUE"
    SOFT_OVERCAST = "SOFT_OVERCAST"
    GOLDEN_HOUR = "GOLDEN_HOUR"
    DRAMATIC_CLOUDY = "DRAMATIC_CLOUDY"
    NIGHT_LUXURY = "NIGHT_LUXURY"
    CUSTOM = "CUSTOM"


class WhiteBalance(str, Enum):
    ARCHITECTURAL_NEUTRAL = "ARCHITECTURAL_NEUTRAL"
    WARM = "WARM"
    COOL = "COOL"


class LightsMode(str, Enum):
    OFF = "OFF"
    ON = "ON"
    MIXED = "MIXED"
    ORIGINAL = "ORIGINAL"


class DayToNight(str, Enum):
    OFF = "OFF"
    MORNING = "MORNING"
    NOON = "NOON"
    AFTERNOON = "AFTERNOON"
    GOLDEN_HOUR = "GOLDEN_HOUR"
    BLUE_HOUR = "BLUE_HOUR"
    NIGHT = "NIGHT"


class PeopleStyle(str, Enum):
    BUSINESS = "BUSINESS"
    RESIDENTS = "RESIDENTS"
    FAMILY = "FAMILY"
    TOURISTS = "TOURISTS"
    LIFESTYLE_MINIMAL = "LIFESTYLE_MINIMAL"


class PeopleDensity(str, Enum):
    OFF = "OFF"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Vehicles(str, Enum):
    OFF = "OFF"
    FEW = "FEW"
    MANY = "MANY"


class FurnitureEnhance(str, Enum):
    OFF = "OFF"
    LIGHT = "LIGHT"
    HEAVY = "HEAVY"


class ProcessingOptions(BaseModel):
    """Immutable edit configuration snapshot.

    A request always carries the snapshot current at dispatch time; callers
    change options by building a new instance (``model_copy(update=...)``).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    resolution: OutputResolution = OutputResolution.RES_2K
    aspect_ratio: AspectRatio = AspectRatio.ORIGINAL

    # Cleaning
    clean_trash: bool = True
    remove_power_lines: bool = True
    remove_sensor_spots: bool = True
    clean_paving: Strength = Strength.OFF
    clean_walls: Strength = Strength.OFF
    clean_glass: Strength = Strength.OFF
    clean_ground_tiles: Strength = Strength.OFF
    remove_urban_noise: NoiseLevel = NoiseLevel.MEDIUM

    # Geometry
    auto_perspective_correction: bool = True
    auto_verticals: bool = True
    auto_lens_correction: bool = True
    auto_level_horizon: bool = True

    # Lighting & HDR
    auto_hdr: Strength = Strength.MEDIUM
    auto_white_balance: WhiteBalance = WhiteBalance.ARCHITECTURAL_NEUTRAL
    optimize_interior: bool = False

    # Environment
    sky_replacement: SkyReplacement = SkyReplacement.OFF
    sky_custom_prompt: str = ""
    sky_strength: int = Field(default=100, ge=0, le=100)
    match_light_direction: bool = True
    cpl_filter_effect: bool = False

    smooth_soft_surfaces: Strength = Strength.MEDIUM

    # Scene & atmosphere
    lights_mode: LightsMode = LightsMode.MIXED
    day_to_night: DayToNight = DayToNight.OFF

    # Staging
    add_people: PeopleDensity = PeopleDensity.OFF
    people_style: PeopleStyle = PeopleStyle.RESIDENTS
    vehicles: Vehicles = Vehicles.OFF
    furniture_enhance: FurnitureEnhance = FurnitureEnhance.LIGHT

    color_consistency: bool = True

    @model_validator(mode='after')
    def check_custom_sky(self) -> ProcessingOptions:
        """A custom sky needs a description to send."""
        if self.sky_replacement is SkyReplacement.CUSTOM and not self.sky_custom_prompt.strip():
            raise ValueError("sky_custom_prompt is required when sky_replacement is CUSTOM")
        return self


class ProjectSettings(BaseModel):
    """Session-level configuration carried, read-only, by every request."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    options: ProcessingOptions = Field(default_factory=ProcessingOptions)
    project_context: str = ""
    extra_prompt: str = ""


__all__ = [
    'OutputResolution',
    'AspectRatio',
    'Strength',
    'NoiseLevel',
    'SkyReplacement',
    'WhiteBalance',
    'LightsMode',
    'DayToNight',
    'PeopleStyle',
    'PeopleDensity',
    'Vehicles',
    'FurnitureEnhance',
    'ProcessingOptions',
    'ProjectSettings',
]

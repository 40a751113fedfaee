"""
Piktor Engine

Pure, deterministic logic for the image-generation dashboard: domain types,
the wizard state machine, prompt builders, camera-angle tables and pricing.

Nothing in this package performs I/O; all model calls, storage and
persistence live in the backend.
"""

from engine.types import (
    AssetType,
    ContextPreset,
    GeneratedImage,
    ProductConfiguration,
    ProductInput,
    ProductSpecs,
    UiSettings,
    DEFAULT_UI_SETTINGS,
    SIZE_MAPPINGS,
    generate_slug,
)
from engine.camera_angles import build_camera_angle_prompt, map_legacy_angle
from engine.edit_prompt import EditParams, build_edit_prompt, get_edited_dimensions, validate_edit_params
from engine.generation_prompt import build_generation_prompt, build_asset_prompt
from engine.wizard import Wizard, WizardStep, WizardFlow, WizardState
from engine.plans import PLANS, get_plan, check_usage_limits

__version__ = "0.1.0"

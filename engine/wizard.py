"""
Image-generation wizard state machine.

Each step draft owns a local copy of its slice of the aggregate and derives
``can_continue`` purely from its own fields. Continuing emits the finalized
slice through ``on_change`` and then calls ``on_complete``; only the Wizard
moves ``current_step``. Backward navigation is always allowed, forward
navigation is gated on the active step's predicate.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field

from engine.types import (
    ASSET_TYPE_CONFIG,
    AssetType,
    ContextPreset,
    ContextSelection,
    ContextType,
    GeneratedImage,
    ProductConfiguration,
    ProductInput,
    ProductSpecs,
    SocialMediaFormat,
    UiSettings,
    UploadedImage,
    clamp_variations,
)


class WizardStep(str, Enum):
    PRODUCT_INPUT = "product-input"
    CONTEXT_SELECTION = "context-selection"
    UNIFIED_INPUT = "unified-input"
    GENERATION_SETTINGS = "generation-settings"
    GENERATE = "generate"
    EDIT_IMAGES = "edit-images"


class WizardFlow(str, Enum):
    CLASSIC = "classic"
    UNIFIED = "unified"


FLOW_STEPS: dict[WizardFlow, tuple[WizardStep, ...]] = {
    WizardFlow.CLASSIC: (
        WizardStep.PRODUCT_INPUT,
        WizardStep.CONTEXT_SELECTION,
        WizardStep.GENERATION_SETTINGS,
        WizardStep.GENERATE,
    ),
    WizardFlow.UNIFIED: (
        WizardStep.UNIFIED_INPUT,
        WizardStep.GENERATION_SETTINGS,
        WizardStep.GENERATE,
        WizardStep.EDIT_IMAGES,
    ),
}


OnChange = Callable[[dict], None]
OnComplete = Callable[[], None]


# --- Step drafts ---

class StepDraft(BaseModel):
    """Base class for step-local drafts."""

    step: WizardStep

    def can_continue(self) -> bool:
        raise NotImplementedError

    def finalize(self) -> dict:
        """The slice of wizard state this step owns."""
        raise NotImplementedError

    def continue_(self, on_change: OnChange, on_complete: OnComplete) -> bool:
        if not self.can_continue():
            return False
        on_change(self.finalize())
        on_complete()
        return True


class ProductInputDraft(StepDraft):
    step: WizardStep = WizardStep.PRODUCT_INPUT
    images: list[UploadedImage] = Field(default_factory=list)
    specs: ProductSpecs = Field(default_factory=ProductSpecs)

    def can_continue(self) -> bool:
        return ProductInput(images=self.images, specs=self.specs).is_complete()

    def finalize(self) -> dict:
        return {"product_input": ProductInput(images=list(self.images), specs=self.specs)}


class ContextSelectionDraft(StepDraft):
    step: WizardStep = WizardStep.CONTEXT_SELECTION
    context_type: Optional[ContextType] = None
    social_media_format: Optional[SocialMediaFormat] = None

    def select_context_type(self, context_type: ContextType) -> None:
        self.context_type = ContextType(context_type)
        if self.context_type != ContextType.SOCIAL_MEDIA:
            self.social_media_format = None

    def selection(self) -> Optional[ContextSelection]:
        if self.context_type is None:
            return None
        return ContextSelection(context_type=self.context_type, social_media_format=self.social_media_format)

    def can_continue(self) -> bool:
        selection = self.selection()
        return selection is not None and selection.is_complete()

    def finalize(self) -> dict:
        return {"context_selection": self.selection()}


class UnifiedInputDraft(StepDraft):
    """Product input and context selection collected on one screen."""
    step: WizardStep = WizardStep.UNIFIED_INPUT
    images: list[UploadedImage] = Field(default_factory=list)
    specs: ProductSpecs = Field(default_factory=ProductSpecs)
    context_type: Optional[ContextType] = None
    social_media_format: Optional[SocialMediaFormat] = None

    def _parts(self) -> tuple[ProductInputDraft, ContextSelectionDraft]:
        return (
            ProductInputDraft(images=self.images, specs=self.specs),
            ContextSelectionDraft(context_type=self.context_type, social_media_format=self.social_media_format),
        )

    def can_continue(self) -> bool:
        product, context = self._parts()
        return product.can_continue() and context.can_continue()

    def finalize(self) -> dict:
        product, context = self._parts()
        return {**product.finalize(), **context.finalize()}


class GenerationSettingsDraft(StepDraft):
    step: WizardStep = WizardStep.GENERATION_SETTINGS
    settings: UiSettings = Field(default_factory=UiSettings)
    formats: list[ContextPreset] = Field(default_factory=list)

    def set_variations(self, value: int) -> None:
        self.settings = self.settings.model_copy(update={"variations": clamp_variations(value)})

    def toggle_format(self, preset: ContextPreset) -> None:
        preset = ContextPreset(preset)
        if preset in self.formats:
            self.formats = [f for f in self.formats if f != preset]
        else:
            self.formats = self.formats + [preset]

    def can_continue(self) -> bool:
        return len(self.formats) > 0 and 1 <= self.settings.variations <= 4

    def finalize(self) -> dict:
        # Primary preset follows the first selected format
        settings = self.settings.model_copy(update={"context_preset": self.formats[0]})
        return {"ui_settings": settings, "output_formats": list(self.formats)}


class GenerateDraft(StepDraft):
    step: WizardStep = WizardStep.GENERATE
    generated_images: list[GeneratedImage] = Field(default_factory=list)
    is_generating: bool = False

    def can_continue(self) -> bool:
        return not self.is_generating and len(self.generated_images) > 0

    def finalize(self) -> dict:
        return {"generated_images": list(self.generated_images)}


class AssetSelection(BaseModel):
    asset_type: AssetType
    selected: bool = False
    variations: int = Field(default=1, ge=1, le=4)
    custom_prompt: str = ""


def default_asset_selections() -> list[AssetSelection]:
    return [
        AssetSelection(asset_type=asset_type, variations=config.variations)
        for asset_type, config in ASSET_TYPE_CONFIG.items()
    ]


class EditPlan(BaseModel):
    source_image_id: str
    selections: list[AssetSelection]


class EditImagesDraft(StepDraft):
    step: WizardStep = WizardStep.EDIT_IMAGES
    source_image_id: Optional[str] = None
    selections: list[AssetSelection] = Field(default_factory=default_asset_selections)
    is_editing: bool = False

    def toggle_asset_type(self, asset_type: AssetType) -> None:
        asset_type = AssetType(asset_type)
        self.selections = [
            s.model_copy(update={"selected": not s.selected}) if s.asset_type == asset_type else s
            for s in self.selections
        ]

    def set_variations(self, asset_type: AssetType, value: int) -> None:
        asset_type = AssetType(asset_type)
        self.selections = [
            s.model_copy(update={"variations": clamp_variations(value)}) if s.asset_type == asset_type else s
            for s in self.selections
        ]

    def selected(self) -> list[AssetSelection]:
        return [s for s in self.selections if s.selected]

    def can_continue(self) -> bool:
        return bool(self.source_image_id) and len(self.selected()) > 0 and not self.is_editing

    def finalize(self) -> dict:
        return {"edit_plan": EditPlan(source_image_id=self.source_image_id, selections=self.selected())}


DRAFT_TYPES: dict[WizardStep, type[StepDraft]] = {
    WizardStep.PRODUCT_INPUT: ProductInputDraft,
    WizardStep.CONTEXT_SELECTION: ContextSelectionDraft,
    WizardStep.UNIFIED_INPUT: UnifiedInputDraft,
    WizardStep.GENERATION_SETTINGS: GenerationSettingsDraft,
    WizardStep.GENERATE: GenerateDraft,
    WizardStep.EDIT_IMAGES: EditImagesDraft,
}

if set(DRAFT_TYPES) != set(WizardStep):
    raise RuntimeError("every wizard step needs a draft type")


def draft_from_payload(step: WizardStep, payload: dict) -> StepDraft:
    """Build a step draft from a client payload (raises pydantic ValidationError)."""
    step = WizardStep(step)
    data = dict(payload)
    data["step"] = step
    return DRAFT_TYPES[step].model_validate(data)


# --- Wizard container ---

def _now() -> datetime:
    return datetime.now(timezone.utc)


class WizardState(BaseModel):
    """Serializable snapshot of a wizard session."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None
    flow: WizardFlow = WizardFlow.UNIFIED
    current_step: WizardStep = WizardStep.UNIFIED_INPUT
    completed_steps: list[WizardStep] = Field(default_factory=list)
    configuration: ProductConfiguration = Field(default_factory=ProductConfiguration)
    generated_images: list[GeneratedImage] = Field(default_factory=list)
    edit_plan: Optional[EditPlan] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


_CONFIG_FIELDS = {"product_input", "context_selection", "ui_settings", "output_formats"}


class Wizard:
    """Owns the step pointer and the aggregate the steps feed."""

    def __init__(self, state: Optional[WizardState] = None, flow: WizardFlow = WizardFlow.UNIFIED):
        if state is None:
            flow = WizardFlow(flow)
            state = WizardState(flow=flow, current_step=FLOW_STEPS[flow][0])
        self.state = state
        self.steps = FLOW_STEPS[state.flow]
        if state.current_step not in self.steps:
            raise ValueError(f"Step {state.current_step.value} is not part of the {state.flow.value} flow")

    @property
    def current_step(self) -> WizardStep:
        return self.state.current_step

    @property
    def step_index(self) -> int:
        return self.steps.index(self.state.current_step)

    @property
    def is_finished(self) -> bool:
        return self.steps[-1] in self.state.completed_steps

    def draft(self, step: Optional[WizardStep] = None) -> StepDraft:
        """A draft for ``step`` (default: current) seeded from the aggregate."""
        step = WizardStep(step or self.current_step)
        config = self.state.configuration
        product = config.product_input or ProductInput()
        selection = config.context_selection

        if step == WizardStep.PRODUCT_INPUT:
            return ProductInputDraft(images=product.images, specs=product.specs)
        if step == WizardStep.CONTEXT_SELECTION:
            return ContextSelectionDraft(
                context_type=selection.context_type if selection else None,
                social_media_format=selection.social_media_format if selection else None,
            )
        if step == WizardStep.UNIFIED_INPUT:
            return UnifiedInputDraft(
                images=product.images,
                specs=product.specs,
                context_type=selection.context_type if selection else None,
                social_media_format=selection.social_media_format if selection else None,
            )
        if step == WizardStep.GENERATION_SETTINGS:
            formats = list(config.output_formats)
            if not formats and selection and selection.to_preset():
                formats = [selection.to_preset()]
            return GenerationSettingsDraft(settings=config.ui_settings, formats=formats)
        if step == WizardStep.GENERATE:
            return GenerateDraft(generated_images=self.state.generated_images)
        return EditImagesDraft(
            source_image_id=self.state.generated_images[0].id if self.state.generated_images else None,
        )

    def can_advance(self) -> bool:
        return self.draft().can_continue()

    def complete_step(self, draft: StepDraft) -> bool:
        """Apply a finished draft and advance. Returns False when the draft is incomplete."""
        if draft.step != self.current_step:
            raise ValueError(f"Step {draft.step.value} is not the current step ({self.current_step.value})")
        return draft.continue_(self._apply, self._advance)

    def go_back(self) -> bool:
        if self.step_index == 0:
            return False
        self.state = self.state.model_copy(
            update={"current_step": self.steps[self.step_index - 1], "updated_at": _now()}
        )
        return True

    def _apply(self, slice_: dict) -> None:
        config_changes = {k: v for k, v in slice_.items() if k in _CONFIG_FIELDS}
        update: dict = {"updated_at": _now()}
        if config_changes:
            update["configuration"] = self.state.configuration.with_changes(**config_changes)
        if "generated_images" in slice_:
            update["generated_images"] = slice_["generated_images"]
        if "edit_plan" in slice_:
            update["edit_plan"] = slice_["edit_plan"]
        self.state = self.state.model_copy(update=update)

    def _advance(self) -> None:
        completed = list(self.state.completed_steps)
        if self.current_step not in completed:
            completed.append(self.current_step)
        next_step = self.current_step
        if self.step_index < len(self.steps) - 1:
            next_step = self.steps[self.step_index + 1]
        self.state = self.state.model_copy(
            update={"completed_steps": completed, "current_step": next_step, "updated_at": _now()}
        )

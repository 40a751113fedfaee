"""
Tests for generation prompts and the product/context types behind them.

Validates:
1. Product description and layout sections
2. Preset-specific requirements (hero breathing room, strict fidelity block)
3. Asset prompts and variation suffixes
4. Size tables, context preset resolution and configuration updates
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

from pydantic import ValidationError

from engine.generation_prompt import (
    NEGATIVE_PROMPT,
    asset_variation_prompt,
    build_asset_prompt,
    build_generation_prompt,
    build_layout_instructions,
    build_product_description,
)
from engine.types import (
    CONTEXT_PRESET_SETTINGS,
    SIZE_MAPPINGS,
    AssetType,
    ContextPreset,
    ContextSelection,
    ContextType,
    Dimensions,
    ProductConfiguration,
    ProductInput,
    ProductPosition,
    ProductSpecs,
    Prop,
    SocialMediaFormat,
    TextZone,
    UiSettings,
    UploadedImage,
    clamp_variations,
    generate_slug,
    get_asset_type_config,
)


def _specs(**overrides) -> ProductSpecs:
    data = dict(product_name="Oslo Sofa", product_type="sofa", materials="oak, linen")
    data.update(overrides)
    return ProductSpecs(**data)


class TestProductDescription:
    def test_lists_declared_fields(self):
        text = build_product_description(_specs(dimensions=Dimensions(width=220, height=85, depth=95)))
        assert text.startswith("PRODUCT SPECIFICATIONS:")
        assert "- Product: Oslo Sofa" in text
        assert "- Furniture type: sofa" in text
        assert "- Materials: oak, linen" in text
        assert "220cm W x 85cm H x 95cm D" in text

    def test_blank_fields_are_omitted(self):
        text = build_product_description(ProductSpecs())
        assert "- Product: furniture piece" in text
        assert "Materials" not in text
        assert "Dimensions" not in text

    def test_dimensions_must_be_positive(self):
        with pytest.raises(ValidationError):
            Dimensions(width=0, height=10, depth=10)


class TestLayoutInstructions:
    def test_position_only_for_hero_and_packshot(self):
        settings = UiSettings(product_position=ProductPosition.LEFT)
        assert "Product position: left" in build_layout_instructions(settings, ContextPreset.HERO)
        assert "Product position: left" in build_layout_instructions(settings, ContextPreset.PACKSHOT)
        assert "Product position" not in build_layout_instructions(settings, ContextPreset.LIFESTYLE)

    def test_props(self):
        with_props = UiSettings(props=[Prop.PLANT, Prop.RUG])
        assert "- Props allowed: plant, rug" in build_layout_instructions(with_props, ContextPreset.PACKSHOT)
        assert "- Props: none (clean focus on product)" in build_layout_instructions(UiSettings(), ContextPreset.PACKSHOT)

    def test_lighting_underscores_become_spaces(self):
        assert "- Lighting: soft daylight" in build_layout_instructions(UiSettings(), ContextPreset.PACKSHOT)


class TestGenerationPrompt:
    def test_deterministic(self):
        settings = UiSettings(context_preset=ContextPreset.LIFESTYLE)
        assert build_generation_prompt(_specs(), settings) == build_generation_prompt(_specs(), settings)

    def test_uses_settings_preset_by_default(self):
        prompt = build_generation_prompt(_specs(), UiSettings(context_preset=ContextPreset.DETAIL))
        assert "DETAIL REQUIREMENTS:" in prompt
        assert "detailed close-up furniture craftsmanship shot" in prompt

    def test_explicit_preset_overrides_settings(self):
        prompt = build_generation_prompt(_specs(), UiSettings(), ContextPreset.STORY)
        assert "STORY REQUIREMENTS:" in prompt
        assert "PACKSHOT REQUIREMENTS:" not in prompt

    def test_strict_mode_block(self):
        assert "PRODUCT FIDELITY (STRICT):" in build_generation_prompt(_specs(), UiSettings(strict_mode=True))
        assert "PRODUCT FIDELITY (STRICT):" not in build_generation_prompt(_specs(), UiSettings(strict_mode=False))

    def test_hero_breathing_room_follows_text_zone(self):
        settings = UiSettings(context_preset=ContextPreset.HERO, reserved_text_zone=TextZone.RIGHT)
        prompt = build_generation_prompt(_specs(), settings)
        assert "Leave breathing room on the right side" in prompt
        assert "Reserved text zone: right" in prompt

    def test_hero_breathing_room_without_text_zone(self):
        prompt = build_generation_prompt(_specs(), UiSettings(context_preset=ContextPreset.HERO))
        assert "Leave breathing room opposite the furniture positioning" in prompt

    def test_ends_with_negative_prompt(self):
        assert build_generation_prompt(_specs(), UiSettings()).endswith(NEGATIVE_PROMPT)


class TestAssetPrompts:
    @pytest.mark.parametrize("asset_type", list(AssetType))
    def test_every_asset_type_names_product(self, asset_type):
        assert "Oslo Sofa" in build_asset_prompt(asset_type, "Oslo Sofa")

    def test_blank_product_name(self):
        assert "this product" in build_asset_prompt(AssetType.AD, "")

    def test_variation_suffix(self):
        text = asset_variation_prompt("base", AssetType.SOCIAL, 2)
        assert text.startswith("base (Create variation 2 ")
        assert text.endswith("while maintaining the social theme)")

    def test_asset_config_defaults(self):
        assert get_asset_type_config(AssetType.SOCIAL).variations == 3
        assert get_asset_type_config(AssetType.HERO).variations == 1
        assert get_asset_type_config("variation").context_preset == ContextPreset.PACKSHOT


class TestTypes:
    def test_size_tables(self):
        assert SIZE_MAPPINGS[ContextPreset.STORY] == "1024x1536"
        assert SIZE_MAPPINGS[ContextPreset.HERO] == "1536x1024"
        assert CONTEXT_PRESET_SETTINGS[ContextPreset.LIFESTYLE]["aspect_ratio"] == "3:2"
        assert CONTEXT_PRESET_SETTINGS[ContextPreset.STORY]["aspect_ratio"] == "9:16"

    def test_social_media_needs_format(self):
        selection = ContextSelection(context_type=ContextType.SOCIAL_MEDIA)
        assert not selection.is_complete()
        assert selection.to_preset() is None

    def test_social_media_formats(self):
        square = ContextSelection(context_type=ContextType.SOCIAL_MEDIA, social_media_format=SocialMediaFormat.SQUARE)
        story = ContextSelection(context_type=ContextType.SOCIAL_MEDIA, social_media_format=SocialMediaFormat.STORY)
        assert square.to_preset() == ContextPreset.INSTAGRAM
        assert story.to_preset() == ContextPreset.STORY

    def test_product_input_completeness(self):
        image = UploadedImage(url="data:image/png;base64,eA==")
        assert ProductInput(images=[image], specs=_specs()).is_complete()
        assert not ProductInput(images=[], specs=_specs()).is_complete()
        assert not ProductInput(images=[image], specs=_specs(product_type="  ")).is_complete()

    def test_variations_bounds(self):
        assert UiSettings().variations == 2
        with pytest.raises(ValidationError):
            UiSettings(variations=5)
        with pytest.raises(ValidationError):
            UiSettings(variations=0)

    def test_clamp_variations(self):
        assert clamp_variations(0) == 1
        assert clamp_variations(9) == 4
        assert clamp_variations(3) == 3

    def test_slug(self):
        assert generate_slug("  Oslo Sofa -- 3 Seater! ") == "oslo-sofa-3-seater"

    def test_with_changes_returns_new_configuration(self):
        config = ProductConfiguration()
        product_input = ProductInput(images=[UploadedImage(url="https://x/y.png")], specs=_specs())
        updated = config.with_changes(product_input=product_input)

        assert updated is not config
        assert config.product_input is None
        assert updated.name == "Oslo Sofa"
        assert updated.slug == "oslo-sofa"
        assert updated.id == config.id
        assert updated.updated_at >= config.updated_at

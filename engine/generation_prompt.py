"""
Prompt construction for first-pass product image generation.

Combines user-declared product specs with the wizard's UI settings into a
furniture-photography brief. Asset prompts cover the second-pass
transformations offered on already generated images.
"""

from typing import Optional

from engine.types import (
    AssetType,
    ContextPreset,
    ProductSpecs,
    UiSettings,
)


BASE_DESCRIPTIONS = {
    ContextPreset.PACKSHOT: "professional commercial furniture packshot",
    ContextPreset.INSTAGRAM: "Instagram-ready furniture showcase post",
    ContextPreset.STORY: "Instagram/Facebook story format furniture presentation",
    ContextPreset.HERO: "website hero banner furniture showcase",
    ContextPreset.LIFESTYLE: "lifestyle furniture image in realistic interior setting",
    ContextPreset.DETAIL: "detailed close-up furniture craftsmanship shot",
}

CONTEXT_INSTRUCTIONS = {
    ContextPreset.PACKSHOT: [
        "Clean, neutral presentation focusing entirely on the furniture product",
        "Minimal distractions - furniture as exclusive focus",
        "Suitable for furniture catalogs and commercial product listings",
        "Professional studio-quality lighting for furniture photography",
    ],
    ContextPreset.INSTAGRAM: [
        "Engaging, social-media ready furniture composition",
        "Consider furniture visibility in an Instagram feed context",
        "Balanced lighting optimized for furniture on mobile screens",
        "Professional yet approachable furniture aesthetic",
    ],
    ContextPreset.STORY: [
        "Vertical composition optimized for mobile furniture showcase",
        "Furniture prominently centered and featured",
        "Clean, thumb-stopping furniture visual appeal",
    ],
    ContextPreset.HERO: [
        "Ensure visual balance and negative space for text overlay placement",
        "High-impact furniture composition suitable for commercial website headers",
        "No text in image (added by the website)",
    ],
    ContextPreset.LIFESTYLE: [
        "Furniture shown in a realistic commercial or residential environment",
        "Natural lighting with architectural context",
        "Lived-in atmosphere with complementary interior elements",
        "Furniture naturally integrated within a professional interior scene",
    ],
    ContextPreset.DETAIL: [
        "Close-up focus on furniture craftsmanship and construction quality",
        "High detail clarity of materials, joinery, and hardware",
        "Showcase furniture quality indicators and workmanship",
    ],
}

NEGATIVE_PROMPT = (
    "AVOID: text overlays, captions, logos, stickers, price tags, model numbers, annotations, "
    "extra furniture not listed in approved props, unrealistic reflections, heavy noise, "
    "over-saturation, cartoonish appearance, duplicate furniture pieces, cluttered composition, "
    "amateur furniture staging."
)

ASSET_PROMPTS = {
    AssetType.LIFESTYLE: (
        "Transform this {product} into a stunning lifestyle scene. Place the product naturally in a modern, "
        "sophisticated real-world environment such as a beautifully designed living room, bedroom, kitchen, or "
        "office space. Include complementary furniture, decor, and proper lighting that enhances the product's "
        "appeal. The scene should feel authentic, inviting, and aspirational, showing potential customers how the "
        "product fits perfectly into their desired lifestyle. Use professional interior design principles with "
        "attention to color harmony, spatial composition, and ambient lighting."
    ),
    AssetType.AD: (
        "Create a high-impact advertising image for this {product}. Apply commercial photography techniques with "
        "dramatic, professional lighting that makes the product the clear hero of the composition. Use "
        "sophisticated styling, perfect product placement, and visual elements that communicate premium quality "
        "and desirability. The image should have the polished, attention-grabbing quality suitable for marketing "
        "campaigns, print ads, or digital advertising. Focus on creating emotional appeal while maintaining "
        "commercial viability."
    ),
    AssetType.SOCIAL: (
        "Transform this {product} into an engaging social media image perfect for Instagram, Facebook, or "
        "Pinterest. Apply trendy, contemporary styling with vibrant but tasteful colors, modern composition, and "
        "elements that encourage social sharing. Include lifestyle context that resonates with target "
        "demographics while maintaining the product as the focal point. The aesthetic should be current, "
        "photogenic, and optimized for mobile viewing with high engagement potential."
    ),
    AssetType.HERO: (
        "Create a premium hero banner image for this {product} suitable for website headers and landing pages. "
        "Design with professional composition that leaves strategic white space for text overlay while making "
        "the product the dominant visual element. Apply sophisticated lighting, clean backgrounds, and "
        "brand-appropriate styling. The image should communicate quality, trustworthiness, and premium "
        "positioning while maintaining visual impact at various screen sizes."
    ),
    AssetType.VARIATION: (
        "Generate an appealing variation of this {product} by modifying its color, material, finish, or texture "
        "while maintaining the same style, composition, and product integrity. Explore different colorways such "
        "as natural wood tones, metallic finishes, fabric textures, or contemporary color palettes that would "
        "appeal to different customer preferences. Ensure the variation looks authentic and professionally "
        "rendered while clearly showing the alternative design option."
    ),
}

for _table in (BASE_DESCRIPTIONS, CONTEXT_INSTRUCTIONS):
    if set(_table) != set(ContextPreset):
        raise RuntimeError("context preset table is not exhaustive")
if set(ASSET_PROMPTS) != set(AssetType):
    raise RuntimeError("asset prompt table is not exhaustive")


def build_product_description(specs: ProductSpecs) -> str:
    lines = ["PRODUCT SPECIFICATIONS:"]
    lines.append(f"- Product: {specs.product_name.strip() or 'furniture piece'}")
    if specs.product_type.strip():
        lines.append(f"- Furniture type: {specs.product_type.strip()}")
    if specs.materials.strip():
        lines.append(f"- Materials: {specs.materials.strip()}")
    if specs.dimensions:
        d = specs.dimensions
        lines.append(f"- Dimensions: {d.width:g}cm W x {d.height:g}cm H x {d.depth:g}cm D (respect real-world proportions)")
    if specs.additional_specs.strip():
        lines.append(f"- Notes: {specs.additional_specs.strip()}")
    return "\n".join(lines)


def build_layout_instructions(settings: UiSettings, context_preset: ContextPreset) -> str:
    lines = ["LAYOUT & COMPOSITION:", f"- Background: {settings.background_style.value}"]
    if context_preset in (ContextPreset.HERO, ContextPreset.PACKSHOT):
        lines.append(f"- Product position: {settings.product_position.value}")
    if settings.reserved_text_zone:
        lines.append(f"- Reserved text zone: {settings.reserved_text_zone.value} (leave this area clear for text overlay)")
    if settings.props:
        lines.append(f"- Props allowed: {', '.join(p.value for p in settings.props)}")
    else:
        lines.append("- Props: none (clean focus on product)")
    lines.append(f"- Lighting: {settings.lighting.value.replace('_', ' ')}")
    return "\n".join(lines)


def build_generation_prompt(
    specs: ProductSpecs,
    settings: UiSettings,
    context_preset: Optional[ContextPreset] = None,
) -> str:
    """Full generation brief for one context preset (defaults to the settings' preset)."""
    preset = ContextPreset(context_preset or settings.context_preset)

    sections = [
        f"Create a high-quality {BASE_DESCRIPTIONS[preset]} using professional furniture photography standards. "
        "The result must keep exact product fidelity while meeting commercial presentation requirements.",
        build_product_description(specs),
        build_layout_instructions(settings, preset),
    ]

    if settings.strict_mode:
        sections.append(
            "PRODUCT FIDELITY (STRICT):\n"
            "- Reproduce the product exactly as in the reference images: shape, proportions, materials, color\n"
            "- Do not add, remove, or restyle product parts\n"
            "- Only the environment, lighting, and framing may change"
        )

    context_lines = CONTEXT_INSTRUCTIONS[preset]
    if preset == ContextPreset.HERO:
        zone = settings.reserved_text_zone
        room = f"on the {zone.value} side" if zone else "opposite the furniture positioning"
        context_lines = context_lines + [f"Leave breathing room {room}"]
    sections.append(f"{preset.value.upper()} REQUIREMENTS:\n" + "\n".join(f"- {line}" for line in context_lines))
    sections.append(NEGATIVE_PROMPT)

    return "\n\n".join(sections).strip()


def build_asset_prompt(asset_type: AssetType, product_name: str) -> str:
    return ASSET_PROMPTS[AssetType(asset_type)].format(product=product_name or "product")


def asset_variation_prompt(base_prompt: str, asset_type: AssetType, variation: int) -> str:
    return (
        f"{base_prompt} (Create variation {variation} with a different style, perspective, or approach "
        f"while maintaining the {AssetType(asset_type).value} theme)"
    )

"""Build scene descriptors and clip overlays from form records.

The form layer hands over plain records (PropertyData, AllyConfig and
the visual settings). This module turns them into the immutable values
the compositor and the overlay renderer consume: one photo scene per
photo, optionally followed by a summary scene, or one ClipOverlay per
clip of a multi-clip reel.
"""

from .common import format_price, parse_hex_color
from .models import (
    AllyConfig,
    BrandColors,
    Clip,
    GradientSettings,
    GradientSpec,
    IconChip,
    LogoSettings,
    LogoSpec,
    PropertyData,
    SceneDescriptor,
    SummaryContent,
    TextBlock,
    TextCompositionSettings,
    VisualLayers,
)
from .overlays import ClipOverlay


PROPERTY_TYPE_LABELS = {
    "apartamento": "Apartamento",
    "casa": "Casa",
    "local": "Local Comercial",
    "oficina": "Oficina",
    "bodega": "Bodega",
    "lote": "Lote",
}

SUMMARY_HEADLINES = {"venta": "¡Tu nueva propiedad!", "arriendo": "¡Tu nuevo hogar!"}

CALL_TO_ACTION = "¡Agenda tu visita hoy!"


def brand_colors(ally: AllyConfig) -> BrandColors:
    return BrandColors(parse_hex_color(ally.primary_color), parse_hex_color(ally.secondary_color))


def property_price(prop: PropertyData) -> str:
    """Formatted price for the property's modality (sale price or rent)."""
    value = prop.sale_price if prop.modality == "venta" else prop.rent
    return format_price(value)


def price_label(prop: PropertyData) -> str:
    return "VENTA" if prop.modality == "venta" else "ARRIENDO"


def property_chips(prop: PropertyData) -> tuple[IconChip, ...]:
    chips = []
    if prop.bedrooms:
        chips.append(IconChip("hab", str(prop.bedrooms)))
    if prop.bathrooms:
        chips.append(IconChip("baños", str(prop.bathrooms)))
    if prop.parking:
        chips.append(IconChip("parq", str(prop.parking)))
    if prop.area:
        chips.append(IconChip("m²", f"{prop.area:g}"))
    return tuple(chips)


def feature_summary(prop: PropertyData) -> str:
    """One-line feature list for the summary slide ('3 hab • 2 baños • 80m²')."""
    parts = []
    if prop.bedrooms:
        parts.append(f"{prop.bedrooms} hab")
    if prop.bathrooms:
        parts.append(f"{prop.bathrooms} baños")
    if prop.area:
        parts.append(f"{prop.area:g}m²")
    return " • ".join(parts)


def _logo_spec(ally: AllyConfig, logo: LogoSettings) -> LogoSpec | None:
    if not ally.logo:
        return None
    return LogoSpec(
        ally.logo,
        position=logo.position,
        size=logo.size,
        shape=logo.shape,
        background=logo.background,
        opacity=logo.opacity,
        animation=logo.animation,
    )


def build_scenes(
    prop: PropertyData,
    ally: AllyConfig,
    photos: list[str],
    layers: VisualLayers | None = None,
    logo: LogoSettings | None = None,
    text: TextCompositionSettings | None = None,
    gradient: GradientSettings | None = None,
    photo_duration_ms: int = 2000,
    summary_duration_ms: int = 2500,
    include_summary: bool = True,
    summary_background: str = "solid",
    footer_mark: str | None = None,
    footer_text: str = "",
) -> list[SceneDescriptor]:
    """One photo scene per photo, plus the closing summary scene.

    Photo i carries subtitle i (if any) as its badge.
    """
    layers = layers or VisualLayers()
    logo = logo or LogoSettings()
    text = text or TextCompositionSettings()
    gradient = gradient or GradientSettings()

    brand = brand_colors(ally)
    logo_spec = _logo_spec(ally, logo)
    gradient_spec = GradientSpec(gradient.direction, gradient.intensity)
    chips = property_chips(prop)
    price = property_price(prop)
    title = PROPERTY_TYPE_LABELS.get(prop.property_type, prop.property_type.capitalize())

    scenes = []
    for i, photo in enumerate(photos):
        badge = prop.subtitles[i] if i < len(prop.subtitles) else ""
        scenes.append(SceneDescriptor(
            kind="photo",
            background=photo,
            gradient=gradient_spec,
            logo=logo_spec,
            text=TextBlock(
                title=title,
                location=prop.location,
                price_label=price_label(prop),
                price=price,
                badge=badge,
                typography_scale=1 + text.typography_scale / 100,
                badge_scale=1 + text.badge_scale / 100,
            ),
            chips=chips,
            layers=layers,
            brand=brand,
            footer_mark=footer_mark,
            footer_text=footer_text,
            duration_ms=photo_duration_ms,
        ))

    if include_summary:
        scenes.append(SceneDescriptor(
            kind="summary",
            background=photos[0] if photos else None,
            logo=logo_spec,
            layers=layers,
            brand=brand,
            footer_mark=footer_mark,
            summary=SummaryContent(
                headline=SUMMARY_HEADLINES.get(prop.modality, SUMMARY_HEADLINES["arriendo"]),
                price=price,
                location=prop.location,
                features=feature_summary(prop),
                call_to_action=CALL_TO_ACTION,
                contact=ally.whatsapp,
                ally_name=ally.name,
                background_style=summary_background,
            ),
            duration_ms=summary_duration_ms,
        ))
    return scenes


def build_clip_overlays(
    prop: PropertyData,
    ally: AllyConfig,
    clips: list[Clip],
    layers: VisualLayers | None = None,
    logo: LogoSettings | None = None,
    gradient: GradientSettings | None = None,
    footer_mark: str | None = None,
) -> list[ClipOverlay]:
    """One overlay per clip; a clip's own subtitle wins over the form's."""
    layers = layers or VisualLayers()
    logo = logo or LogoSettings()
    gradient = gradient or GradientSettings()

    modality = "Venta" if prop.modality == "venta" else "Arriendo mensual"
    attributes = "  ".join(
        f"{value} {key}" for key, value in (
            ("Hab", prop.bedrooms), ("Baños", prop.bathrooms), ("Parq", prop.parking),
        ) if value
    )
    if prop.area:
        attributes = f"{attributes}  {prop.area:g}m²".strip()

    overlays = []
    for i, clip in enumerate(clips):
        subtitle = clip.subtitle
        if subtitle is None and i < len(prop.subtitles):
            subtitle = prop.subtitles[i]
        overlays.append(ClipOverlay(
            subtitle=subtitle or "",
            modality=modality,
            price=property_price(prop),
            location=prop.location or "Ubicación",
            property_type=PROPERTY_TYPE_LABELS.get(prop.property_type, ""),
            attributes=attributes,
            logo=ally.logo or None,
            logo_position=logo.position,
            logo_size=logo.size,
            logo_shape=logo.shape,
            logo_background=logo.background != "none",
            logo_opacity=logo.opacity,
            gradient=GradientSpec(gradient.direction, gradient.intensity),
            layers=layers,
            footer_mark=footer_mark,
        ))
    return overlays

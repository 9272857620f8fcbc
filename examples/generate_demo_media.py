#!/usr/bin/env python3
"""Generate synthetic listing media for the reelcompose demo manifests.

Creates, in examples/demo-media/:
  - 4 "room" photos in mixed orientations (solid color + room label)
  - an ally logo and a footer mark (RGBA)
  - 3 phone-style clips: landscape, portrait and square, each ending
    with a white "END" frame so joins are easy to spot

and writes demo-reel.yaml / demo-clips.yaml next to this script.

Usage:
    python examples/generate_demo_media.py
    # Then render:
    reelcompose render --manifest examples/demo-reel.yaml --output demo-reel.mp4
    reelcompose concat --manifest examples/demo-clips.yaml --output demo-clips.mp4
"""

from pathlib import Path

import numpy as np
import yaml
from moviepy import ColorClip, CompositeVideoClip, ImageClip
from PIL import Image, ImageDraw, ImageFont

HERE = Path(__file__).resolve().parent
OUTPUT_DIR = HERE / "demo-media"
FPS = 30

PHOTOS = [
    ("sala", (1600, 1067), (176, 140, 100), "Sala"),
    ("cocina", (1067, 1600), (90, 120, 150), "Cocina"),
    ("habitacion", (1600, 1200), (150, 110, 140), "Habitación"),
    ("terraza", (1200, 1200), (80, 150, 90), "Terraza"),
]

# name, size, color, duration
CLIPS = [
    ("recorrido-1", (640, 360), (180, 60, 60), 2.5),   # landscape
    ("recorrido-2", (360, 640), (60, 60, 180), 2.0),   # portrait
    ("recorrido-3", (480, 480), (60, 160, 60), 1.5),   # square
]


def _font(size: int):
    try:
        return ImageFont.truetype("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", size)
    except OSError:
        return ImageFont.load_default()


def _labelled(size: tuple[int, int], color: tuple[int, int, int], label: str) -> Image.Image:
    img = Image.new("RGB", size, color)
    draw = ImageDraw.Draw(img)
    font = _font(max(24, size[1] // 10))
    bbox = draw.textbbox((0, 0), label, font=font)
    tw, th = bbox[2] - bbox[0], bbox[3] - bbox[1]
    draw.text(((size[0] - tw) / 2, (size[1] - th) / 2), label, fill=(255, 255, 255), font=font)
    return img


def _make_end_frame(size: tuple[int, int], bg_color: tuple[int, int, int]) -> np.ndarray:
    """An 'END' frame: white text on a dimmed version of the clip color."""
    dim = tuple(max(c // 3, 20) for c in bg_color)
    return np.array(_labelled(size, dim, "END"))


def _write_logos() -> None:
    logo = Image.new("RGBA", (256, 256), (0, 0, 0, 0))
    draw = ImageDraw.Draw(logo)
    draw.rounded_rectangle((16, 16, 240, 240), radius=48, fill=(255, 102, 0, 255))
    draw.text((72, 70), "S", fill=(255, 255, 255, 255), font=_font(120))
    logo.save(OUTPUT_DIR / "logo.png")

    mark = Image.new("RGBA", (480, 120), (0, 0, 0, 0))
    ImageDraw.Draw(mark).text((10, 20), "reelcompose", fill=(255, 255, 255, 255), font=_font(64))
    mark.save(OUTPUT_DIR / "mark.png")


def _write_manifests() -> None:
    common = {
        "paths": {"media": str(OUTPUT_DIR)},
        "ally": {
            "name": "Inmobiliaria Sol",
            "logo": "${media}/logo.png",
            "primary_color": "#FF6600",
            "secondary_color": "#1F2937",
            "whatsapp": "+57 300 000 0000",
        },
        "footer_mark": "${media}/mark.png",
    }
    reel = {
        "video": {"resolution": [540, 960], "fps": 24, "format": "mp4"},
        **common,
        "property": {
            "property_type": "apartamento",
            "modality": "arriendo",
            "rent": "2500000",
            "location": "Chapinero, Bogotá",
            "bedrooms": 3,
            "bathrooms": 2,
            "parking": 1,
            "area": 82,
            "subtitles": [label for *_, label in PHOTOS],
        },
        "logo": {"position": "top-right", "background": "elevated"},
        "photos": [f"${{media}}/{name}.png" for name, *_ in PHOTOS],
        "summary": {"include": True, "background": "blur"},
    }
    clips = {
        "video": {"resolution": [540, 960], "fps": 30},
        **common,
        "property": {
            "property_type": "casa",
            "modality": "venta",
            "sale_price": "650000000",
            "location": "Envigado",
            "bedrooms": 4,
            "bathrooms": 3,
        },
        "clips": [
            {"path": f"${{media}}/{name}.mp4", "subtitle": subtitle}
            for (name, *_), subtitle in zip(CLIPS, ["Fachada", "Patio", "Estudio"])
        ],
    }
    for name, manifest in (("demo-reel.yaml", reel), ("demo-clips.yaml", clips)):
        with open(HERE / name, "w") as f:
            yaml.safe_dump(manifest, f, allow_unicode=True, sort_keys=False)
        print(f"  wrote {name}")


def main():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

    for name, size, color, label in PHOTOS:
        out = OUTPUT_DIR / f"{name}.png"
        if out.exists():
            print(f"  skip {name} (exists)")
            continue
        _labelled(size, color, label).save(out)
        print(f"  wrote {name}.png {size[0]}x{size[1]}")

    _write_logos()

    for name, size, color, duration in CLIPS:
        out = OUTPUT_DIR / f"{name}.mp4"
        if out.exists():
            print(f"  skip {name} (exists)")
            continue

        # Main color body (all but last 0.5s)
        body_dur = max(duration - 0.5, 0.5)
        body = ColorClip(size=size, color=color, duration=body_dur)
        end_clip = ImageClip(_make_end_frame(size, color), duration=0.5).with_start(body_dur)

        final = CompositeVideoClip([body, end_clip], size=size)
        final.write_videofile(str(out), fps=FPS, logger=None)
        print(f"  wrote {name} ({duration}s, {size[0]}x{size[1]})")

    _write_manifests()
    print(f"\nDone. Media in {OUTPUT_DIR}")


if __name__ == "__main__":
    main()

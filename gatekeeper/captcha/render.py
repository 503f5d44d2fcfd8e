"""
Challenge image rendering.

Draws the answer with per-glyph jitter over random noise lines and
returns it as a PNG ``data:`` URI the client can drop into an <img>.
"""

import base64
import io
import secrets

from PIL import Image, ImageDraw, ImageFont

WIDTH = 200
HEIGHT = 60
NOISE_LINES = 10
FONT_SIZE = 30
BACKGROUND = '#f9f9f9'
NOISE_COLOR = '#cccccc'
TEXT_COLOR = '#333333'

_rng = secrets.SystemRandom()


def render_challenge(text: str, width: int = WIDTH, height: int = HEIGHT) -> str:
    image = Image.new('RGB', (width, height), BACKGROUND)
    draw = ImageDraw.Draw(image)

    for _ in range(NOISE_LINES):
        start = (_rng.uniform(0, width), _rng.uniform(0, height))
        end = (_rng.uniform(0, width), _rng.uniform(0, height))
        draw.line([start, end], fill=NOISE_COLOR, width=1)

    font = ImageFont.load_default(size=FONT_SIZE)
    slot = width / (len(text) + 1)
    for index, char in enumerate(text):
        left, top, right, bottom = draw.textbbox((0, 0), char, font=font)
        x = slot * (index + 1) - (right - left) / 2
        y = (height - (bottom - top)) / 2 - top + _rng.uniform(-6, 6)
        draw.text((x, y), char, fill=TEXT_COLOR, font=font)

    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
    return f'data:image/png;base64,{encoded}'

import asyncio
import io
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Union

from PIL import Image, ImageDraw, ImageFont

import config
from logger import get_logger
from models import Country
from repository import CountryRepository
from schemas import format_timestamp

logger = get_logger(__name__)

IMAGE_NAME = "summary.png"
TIMESTAMP_NAME = "last_refreshed.txt"
IMAGE_SIZE = (800, 400)
BACKGROUND = "#101010"
TEXT_COLOR = "#ffffff"
TOP_N = 5


@dataclass
class Snapshot:
    total_countries: int
    top: List[Country]
    last_refreshed_at: str
    image_path: Path


def _load_font(size: int, bold: bool = False):
    name = "DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf"
    try:
        return ImageFont.truetype(name, size)
    except OSError:
        return ImageFont.load_default()


def format_gdp(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:.2f}"


def render_summary(total: int, top: Sequence[Country], refreshed_at: str) -> bytes:
    """Draw the summary card and return it PNG-encoded."""
    img = Image.new("RGB", IMAGE_SIZE, color=BACKGROUND)
    draw = ImageDraw.Draw(img)

    draw.text((40, 35), "Country Summary Report", fill=TEXT_COLOR, font=_load_font(28, bold=True))
    draw.text((40, 95), f"Total Countries: {total}", fill=TEXT_COLOR, font=_load_font(22))

    body = _load_font(20)
    draw.text((40, 145), f"Top {TOP_N} Countries by Estimated GDP:", fill=TEXT_COLOR, font=body)
    y = 180
    if not top:
        draw.text((60, y), "No countries available.", fill=TEXT_COLOR, font=body)
    for rank, country in enumerate(top, start=1):
        draw.text((60, y), f"{rank}. {country.name}: {format_gdp(country.estimated_gdp)}", fill=TEXT_COLOR, font=body)
        y += 30

    draw.text((40, 345), f"Last Refreshed: {refreshed_at}", fill=TEXT_COLOR, font=_load_font(18))

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def _write_atomic(path: Path, data: Union[bytes, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    if isinstance(data, str):
        tmp.write_text(data, encoding="utf-8")
    else:
        tmp.write_bytes(data)
    os.replace(tmp, path)


class SnapshotReporter:
    """Renders the post-refresh summary and keeps the last-refresh marker.

    Both files live in ``cache_dir`` and are replaced whole on every
    successful refresh; there is no history.
    """

    def __init__(self, cache_dir: Union[str, Path] = config.CACHE_DIR):
        self.cache_dir = Path(cache_dir)

    @property
    def image_path(self) -> Path:
        return self.cache_dir / IMAGE_NAME

    @property
    def timestamp_path(self) -> Path:
        return self.cache_dir / TIMESTAMP_NAME

    async def publish(self, repository: CountryRepository, refreshed_at: datetime) -> Snapshot:
        total = await repository.count()
        top = await repository.top_by_gdp(TOP_N)
        stamp = format_timestamp(refreshed_at)

        png = await asyncio.to_thread(render_summary, total, top, stamp)
        await asyncio.to_thread(_write_atomic, self.image_path, png)
        await asyncio.to_thread(_write_atomic, self.timestamp_path, stamp)
        logger.info("Saved summary image to %s", self.image_path)
        return Snapshot(total_countries=total, top=top, last_refreshed_at=stamp, image_path=self.image_path)

    def read_last_refreshed(self) -> Optional[str]:
        try:
            return self.timestamp_path.read_text(encoding="utf-8").strip() or None
        except FileNotFoundError:
            return None

    def has_image(self) -> bool:
        return self.image_path.is_file()

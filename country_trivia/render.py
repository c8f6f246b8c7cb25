import os
from datetime import datetime, timezone
from typing import Optional, Sequence

from PIL import Image, ImageDraw, ImageFont

from country_trivia.error import NotFoundError
from country_trivia.log import get_image_filepath, setup_logger

logger = setup_logger(__name__, "render.log")

SUMMARY_FILE_NAME = "summary.png"


def format_gdp(gdp: Optional[float]) -> str:
    if not gdp:
        return "0"
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if gdp >= threshold:
            return f"{gdp / threshold:.2f}{suffix}"
    return f"{gdp:.2f}"


def _load_fonts():
    try:
        return (
            ImageFont.truetype("DejaVuSans-Bold.ttf", 32),
            ImageFont.truetype("DejaVuSans.ttf", 20),
            ImageFont.truetype("DejaVuSans.ttf", 16),
        )
    except OSError:
        default = ImageFont.load_default()
        return default, default, default


class SummaryRenderer:
    """Draws the refresh summary PNG into the cache directory."""

    def __init__(self, cache_dir: Optional[str] = None, file_name: str = SUMMARY_FILE_NAME):
        self.cache_dir = cache_dir
        self.file_name = file_name

    @property
    def file_path(self) -> str:
        return get_image_filepath(self.file_name, self.cache_dir)

    def render(
        self,
        total_countries: int,
        top_countries: Sequence,
        last_refreshed_at: Optional[datetime],
    ) -> str:
        """
        top_countries: objects with ``name`` and ``estimated_gdp`` attributes,
        already ranked.
        """
        logger.info(
            f"Generating image with total_countries={total_countries}, "
            f"top={[c.name for c in top_countries]}, last_refresh={last_refreshed_at}"
        )
        width, height = 800, 600
        image = Image.new("RGB", (width, height), color=(26, 26, 46))
        draw = ImageDraw.Draw(image)
        title_font, header_font, body_font = _load_fonts()

        draw.rectangle([(0, 0), (width, 90)], fill=(22, 33, 62))
        draw.text((50, 28), "Country Trivia Summary", fill="white", font=title_font)

        y_position = 120
        draw.text(
            (50, y_position), f"Total Countries: {total_countries}", fill=(0, 217, 255), font=header_font
        )
        y_position += 45
        draw.line([(50, y_position), (width - 50, y_position)], fill=(0, 217, 255), width=2)
        y_position += 25

        draw.text((50, y_position), "Top 5 Countries by Estimated GDP", fill="white", font=header_font)
        y_position += 45

        if not top_countries:
            draw.text((70, y_position), "No GDP data available", fill=(136, 136, 136), font=body_font)
        for rank, country in enumerate(top_countries, 1):
            draw.text((70, y_position), f"{rank}.", fill=(255, 215, 0), font=header_font)
            draw.text((110, y_position), str(country.name), fill="white", font=header_font)
            draw.text(
                (110, y_position + 26),
                f"GDP: ${format_gdp(country.estimated_gdp)}",
                fill=(0, 217, 255),
                font=body_font,
            )
            y_position += 60

        if last_refreshed_at is not None:
            if last_refreshed_at.tzinfo is None:
                last_refreshed_at = last_refreshed_at.replace(tzinfo=timezone.utc)
            stamp = last_refreshed_at.isoformat()
        else:
            stamp = "never"
        draw.text((50, height - 40), f"Last refreshed: {stamp}", fill=(136, 136, 136), font=body_font)

        file_path = self.file_path
        logger.info(f"Saving generated image to: {file_path}")
        image.save(file_path, format="PNG")
        logger.info("Image generated and saved successfully.")
        return file_path

    def serve_file(self) -> dict:
        file_path = self.file_path
        logger.info(f"file path: {file_path}")
        if not os.path.exists(file_path):
            raise NotFoundError("Summary image not found")
        return {
            "file_path": file_path,
            "file_name": self.file_name,
        }

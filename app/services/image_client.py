"""Image Client - stills for static-image mode via a Hugging Face Inference Endpoint, or a Pillow placeholder."""

import base64
import io
import textwrap
import time
from pathlib import Path
from typing import Any, Optional

import requests
from PIL import Image, ImageDraw, ImageFilter, ImageFont, UnidentifiedImageError

from app.core.config import Settings
from app.models.schemas import ImageData, Orientation
from app.services.ffmpeg_filters import VIDEO_DIMENSIONS
from app.utils.error_handler import ImageGenerationError


def build_image_prompt(text: str, image_data: Optional[ImageData]) -> str:
    """Prompt for one scene's still: explicit prompt, else the narration text."""
    image_data = image_data or ImageData()
    prompt = image_data.prompt or text
    style = image_data.style or "cinematic"
    mood = image_data.mood or "dynamic"
    return f"{prompt}, {style} style, {mood} mood"


class ImageClient:
    """Generates one still per scene, sized to the output frame."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize the image client.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.endpoint_url = settings.hf_endpoint_url
        self.endpoint_token = settings.hf_endpoint_token
        if not (self.endpoint_url and self.endpoint_token):
            self.logger.warning("HF Endpoint not configured. Will use placeholder images.")

    def generate(self, prompt: str, orientation: Orientation, output_path: Path) -> Path:
        """
        Generate a still and save it as PNG.

        Args:
            prompt: Image generation prompt
            orientation: Output orientation (drives the aspect ratio)
            output_path: Path to save the image

        Returns:
            Path to the saved image

        Raises:
            ImageGenerationError: If the endpoint fails or returns something that is not an image
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)
        size = VIDEO_DIMENSIONS[orientation]

        if not (self.endpoint_url and self.endpoint_token):
            self._create_placeholder_image(output_path, size, prompt)
            return output_path

        start_time = time.time()
        prompt_preview = prompt[:120] + "..." if len(prompt) > 120 else prompt
        self.logger.info(f"Using HF endpoint for image generation: {prompt_preview}")

        image = self._request_image(prompt)
        image = image.convert("RGB").resize(size, Image.Resampling.LANCZOS)
        image.save(output_path, "PNG")

        self.logger.info(f"Generated image {output_path.name} in {time.time() - start_time:.2f}s")
        return output_path

    def _request_image(self, prompt: str) -> Image.Image:
        headers = {
            "Authorization": f"Bearer {self.endpoint_token}",
            "Content-Type": "application/json",
        }
        payload = {"inputs": prompt}

        try:
            response = requests.post(self.endpoint_url, json=payload, headers=headers, timeout=120)

            if response.status_code == 503:
                self.logger.warning("Endpoint loading, waiting 15 seconds...")
                time.sleep(15)
                response = requests.post(self.endpoint_url, json=payload, headers=headers, timeout=120)
        except requests.exceptions.RequestException as e:
            raise ImageGenerationError(f"Network error calling HF Endpoint: {e}") from e

        if response.status_code != 200:
            raise ImageGenerationError(f"HF Endpoint error: status {response.status_code} - {response.text[:500]}")

        content_type = response.headers.get("Content-Type", "").lower()
        raw = response.content
        if "application/json" in content_type or raw.startswith(b"{") or raw.startswith(b'"'):
            raw = self._decode_json_image(response)

        try:
            return Image.open(io.BytesIO(raw))
        except UnidentifiedImageError as e:
            raise ImageGenerationError(f"Cannot parse HF Endpoint response as image: {e}") from e

    @staticmethod
    def _decode_json_image(response: requests.Response) -> bytes:
        """Endpoints answer with {"image"|"output"|"data": <base64>} or a bare base64 string."""
        try:
            data = response.json()
        except ValueError as e:
            raise ImageGenerationError(f"HF Endpoint returned malformed JSON: {e}") from e

        if isinstance(data, dict):
            image_b64 = data.get("image") or data.get("output") or data.get("data")
        else:
            image_b64 = data
        if not isinstance(image_b64, str):
            raise ImageGenerationError(f"HF Endpoint returned unexpected JSON format: {str(data)[:200]}")

        # Strip data URL prefix if present
        if "," in image_b64:
            image_b64 = image_b64.split(",", 1)[1]
        try:
            return base64.b64decode(image_b64)
        except ValueError as e:
            raise ImageGenerationError(f"HF Endpoint returned invalid base64: {e}") from e

    def _create_placeholder_image(self, output_path: Path, size: tuple[int, int], prompt: str) -> None:
        """Dark gradient background with the prompt written across it."""
        width, height = size
        image = Image.new("RGB", (width, height), color=(20, 25, 40))
        draw = ImageDraw.Draw(image)

        # Lighter band through the middle
        for y in range(height):
            alpha = int(255 * (1 - abs(y - height // 2) / (height // 2)) * 0.3)
            draw.rectangle([(0, y), (width, y + 1)], fill=(20 + alpha // 10, 25 + alpha // 10, 40 + alpha // 8))
        image = image.filter(ImageFilter.GaussianBlur(radius=2))
        draw = ImageDraw.Draw(image)

        try:
            font = ImageFont.truetype("DejaVuSans-Bold.ttf", 56)
        except OSError:
            font = ImageFont.load_default()

        lines = textwrap.wrap(prompt.split(",")[0], width=24)[:6]
        line_height = 72
        y = (height - line_height * len(lines)) // 2
        for line in lines:
            text_width = draw.textlength(line, font=font)
            draw.text(((width - text_width) / 2, y), line, fill=(235, 235, 235), font=font)
            y += line_height

        image.save(output_path, "PNG")
        self.logger.info(f"Created placeholder image: {output_path.name}")

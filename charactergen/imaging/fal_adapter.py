# charactergen/imaging/fal_adapter.py

"""
Fal.ai adapter. Requests a portrait aspect ratio in a realistic style,
which suits character art.
"""

from charactergen.config import FAL_API_URL
from charactergen.exceptions import ImageGenerationError
from charactergen.imaging.base import ImageProvider, ImageResult

DEFAULT_MODEL = "fal-ai/recraft-v3"


class FalProvider(ImageProvider):
    name = "fal.ai"

    def __init__(self, config, **options):
        super().__init__(config, **options)
        self.model = config.model or DEFAULT_MODEL
        self.endpoint_url = f"{(config.endpoint_url or FAL_API_URL).rstrip('/')}/{self.model}"

    def _generate(self, prompt: str) -> ImageResult:
        body = {
            "prompt": prompt,
            "image_size": "portrait_4_3",
            "style": "realistic_image",
        }
        headers = {"Authorization": f"Key {self.config.api_key}"}
        data = self._post(self.endpoint_url, headers, body)

        try:
            url = data["images"][0]["url"]
        except (KeyError, IndexError, TypeError) as e:
            raise ImageGenerationError("image response did not include a url") from e

        return ImageResult(url=url, model=self.model, provider=self.name, prompt=prompt, size="portrait_4_3")

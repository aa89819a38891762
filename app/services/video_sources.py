"""Video Sources - clip providers and the fallback chain that resolves one clip per scene."""

import hashlib
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import requests

from app.core.config import Settings
from app.models.schemas import ClipResult, Orientation, VideoSource
from app.utils.error_handler import ProviderError

DEFAULT_PROVIDER = VideoSource.PEXELS.value

# Generic terms tried after the scene's own terms come up empty
JOKER_TERMS = ["nature", "globe", "space", "ocean"]

LEONARDO_BASE_URL = "https://cloud.leonardo.ai/api/rest/v1"
PEXELS_SEARCH_URL = "https://api.pexels.com/videos/search"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# Leonardo and Veo generate at 720p
GENERATED_DIMENSIONS: dict[Orientation, tuple[int, int]] = {
    Orientation.PORTRAIT: (720, 1280),
    Orientation.LANDSCAPE: (1280, 720),
}


class ClipProvider(ABC):
    """A source of stock or generated clips."""

    name: str = "unknown"

    def __init__(self, settings: Settings, logger: Any):
        self.settings = settings
        self.logger = logger

    @abstractmethod
    def find(
        self,
        search_terms: list[str],
        min_duration: float,
        exclude_ids: set[str],
        orientation: Orientation,
        prompt: Optional[str] = None,
    ) -> ClipResult:
        """
        Find or generate one clip.

        Args:
            search_terms: Terms describing the scene
            min_duration: Minimum clip length in seconds
            exclude_ids: Clip ids that must not be returned
            orientation: Requested orientation
            prompt: Optional prompt for generative providers

        Returns:
            The chosen clip

        Raises:
            ProviderError: On HTTP errors, timeouts, quota, or malformed responses
        """


# ============================================================================
# Pexels
# ============================================================================


class PexelsClipProvider(ClipProvider):
    """Stock footage search via the Pexels video API."""

    name = "pexels"

    def __init__(self, settings: Settings, logger: Any, per_page: int = 80):
        super().__init__(settings, logger)
        self.per_page = per_page

    def find(
        self,
        search_terms: list[str],
        min_duration: float,
        exclude_ids: set[str],
        orientation: Orientation,
        prompt: Optional[str] = None,
    ) -> ClipResult:
        if not self.settings.pexels_api_key:
            raise ProviderError("Pexels API key not configured", provider=self.name)

        terms = [t for t in search_terms if t and t.strip()]
        for term in terms + [t for t in JOKER_TERMS if t not in terms]:
            videos = self._search(term, orientation)
            clip = self._pick(videos, min_duration, exclude_ids, orientation)
            if clip:
                self.logger.info(f"Pexels clip {clip.id} for '{term}' ({clip.duration}s)")
                return clip
            self.logger.debug(f"No suitable Pexels clip for '{term}', trying next term")

        raise ProviderError(f"No Pexels clip found for {search_terms} (min {min_duration:.1f}s)", provider=self.name)

    def _search(self, term: str, orientation: Orientation) -> list[dict]:
        headers = {"Authorization": self.settings.pexels_api_key}
        params = {"query": term, "orientation": orientation.value, "per_page": self.per_page, "size": "medium"}

        try:
            response = requests.get(
                PEXELS_SEARCH_URL,
                headers=headers,
                params=params,
                timeout=self.settings.provider_timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Pexels network error: {e}", provider=self.name) from e

        if response.status_code == 401:
            raise ProviderError("Pexels rejected the API key (401)", provider=self.name)
        if response.status_code == 429:
            raise ProviderError("Pexels rate limit exceeded (429)", provider=self.name)
        if response.status_code != 200:
            raise ProviderError(
                f"Pexels API returned status {response.status_code}: {response.text[:200]}", provider=self.name
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Pexels returned malformed JSON: {e}", provider=self.name) from e

        videos = data.get("videos") if isinstance(data, dict) else None
        if not isinstance(videos, list):
            raise ProviderError("Pexels response has no 'videos' list", provider=self.name)
        return videos

    def _pick(
        self, videos: list[dict], min_duration: float, exclude_ids: set[str], orientation: Orientation
    ) -> Optional[ClipResult]:
        for video in videos:
            if not isinstance(video, dict) or video.get("id") is None:
                self.logger.debug(f"Skipping malformed Pexels entry: {str(video)[:80]}")
                continue
            clip_id = f"pexels-{video['id']}"
            duration = video.get("duration") or 0
            if isinstance(duration, bool) or not isinstance(duration, (int, float)):
                self.logger.debug(f"Skipping Pexels clip {clip_id} with non-numeric duration {duration!r}")
                continue
            if clip_id in exclude_ids or duration < min_duration:
                continue
            files = video.get("video_files") or []
            if not isinstance(files, list):
                continue
            file = self._best_file(files, orientation)
            if file is None:
                continue
            return ClipResult(
                id=clip_id,
                url=file["link"],
                width=file.get("width") or 0,
                height=file.get("height") or 0,
                duration=float(duration),
                provider=self.name,
            )
        return None

    @staticmethod
    def _best_file(files: list[dict], orientation: Orientation) -> Optional[dict]:
        """Largest mp4 rendition with the right aspect, capped at full HD."""
        candidates = []
        for file in files:
            if not isinstance(file, dict):
                continue
            width, height = file.get("width") or 0, file.get("height") or 0
            if not isinstance(width, int) or not isinstance(height, int):
                continue
            if not isinstance(file.get("link"), str) or not file["link"]:
                continue
            if file.get("file_type", "video/mp4") != "video/mp4":
                continue
            if (orientation == Orientation.PORTRAIT) != (height > width):
                continue
            if max(width, height) > 1920:
                continue
            candidates.append(file)
        if not candidates:
            return None
        return max(candidates, key=lambda f: (f.get("width") or 0) * (f.get("height") or 0))


# ============================================================================
# Leonardo.AI
# ============================================================================


class LeonardoClipProvider(ClipProvider):
    """Text-to-video generation via Leonardo.AI (submit, then poll)."""

    name = "leonardo"

    def find(
        self,
        search_terms: list[str],
        min_duration: float,
        exclude_ids: set[str],
        orientation: Orientation,
        prompt: Optional[str] = None,
    ) -> ClipResult:
        if not self.settings.leonardo_api_key:
            raise ProviderError("Leonardo.AI API key not configured", provider=self.name)

        prompt = prompt or self.build_prompt(search_terms, orientation)
        generation_id = self._submit(prompt, orientation)
        clip_id = f"leonardo-{generation_id}"
        if clip_id in exclude_ids:
            # Only happens if the API hands back a reused generation
            generation_id = self._submit(self.build_prompt(search_terms, orientation, variant=True), orientation)
            clip_id = f"leonardo-{generation_id}"

        url = self._poll(generation_id)
        width, height = GENERATED_DIMENSIONS[orientation]
        self.logger.info(f"Leonardo.AI generation {generation_id} ready")
        return ClipResult(id=clip_id, url=url, width=width, height=height, duration=None, provider=self.name)

    @staticmethod
    def build_prompt(search_terms: list[str], orientation: Orientation, variant: bool = False) -> str:
        orientation_hint = "vertical mobile format" if orientation == Orientation.PORTRAIT else "cinematic horizontal format"
        variant_suffix = ", different angle" if variant else ""
        return (
            f"High-quality cinematic video featuring {' '.join(search_terms)}. "
            f"Shot in {orientation_hint} with smooth camera movements, professional lighting, and vibrant colors. "
            "Dynamic motion with realistic physics, engaging composition, and visual appeal. "
            f"Perfect for social media content{variant_suffix}."
        )

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.settings.leonardo_api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _submit(self, prompt: str, orientation: Orientation) -> str:
        width, height = GENERATED_DIMENSIONS[orientation]
        body = {
            "prompt": prompt,
            "height": height,
            "width": width,
            "resolution": "RESOLUTION_720",
            "frameInterpolation": True,
            "isPublic": False,
            "promptEnhance": True,
        }
        self.logger.debug(f"Submitting Leonardo.AI generation: {prompt[:120]}")

        try:
            response = requests.post(
                f"{LEONARDO_BASE_URL}/generations-text-to-video",
                json=body,
                headers=self._headers(),
                timeout=self.settings.provider_timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Leonardo.AI network error: {e}", provider=self.name) from e

        if response.status_code == 401:
            raise ProviderError("Leonardo.AI authentication failed (401): check the API key", provider=self.name)
        if response.status_code == 402:
            raise ProviderError("Leonardo.AI has insufficient credits (402)", provider=self.name)
        if response.status_code == 429:
            raise ProviderError("Leonardo.AI rate limit exceeded (429)", provider=self.name)
        if not response.ok:
            raise ProviderError(
                f"Leonardo.AI API error: {response.status_code} - {response.text[:200]}", provider=self.name
            )

        try:
            generation_id = response.json()["sdGenerationJob"]["generationId"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError(f"No generation ID received from Leonardo.AI: {e}", provider=self.name) from e
        return generation_id

    def _poll(self, generation_id: str) -> str:
        deadline = time.monotonic() + self.settings.leonardo_max_wait_seconds
        while time.monotonic() < deadline:
            try:
                response = requests.get(
                    f"{LEONARDO_BASE_URL}/generations/{generation_id}",
                    headers=self._headers(),
                    timeout=self.settings.provider_timeout_seconds,
                )
            except requests.exceptions.RequestException as e:
                raise ProviderError(f"Leonardo.AI network error while polling: {e}", provider=self.name) from e

            if not response.ok:
                raise ProviderError(
                    f"Failed to check Leonardo.AI generation status: {response.status_code}", provider=self.name
                )

            try:
                payload = response.json()
            except ValueError as e:
                raise ProviderError(f"Leonardo.AI returned malformed JSON: {e}", provider=self.name) from e
            if not isinstance(payload, dict):
                raise ProviderError(
                    f"Leonardo.AI status response is not an object: {str(payload)[:120]}", provider=self.name
                )
            generation = payload.get("generations_by_pk") or {}
            if not isinstance(generation, dict):
                raise ProviderError("Leonardo.AI status response has a malformed generation", provider=self.name)

            status = generation.get("status")
            if status == "COMPLETE":
                return self._video_url(generation)
            if status == "FAILED":
                raise ProviderError("Leonardo.AI video generation failed", provider=self.name)

            self.logger.debug(f"Leonardo.AI generation {generation_id} status: {status}")
            time.sleep(self.settings.leonardo_poll_interval_seconds)

        raise ProviderError("Leonardo.AI video generation timed out", provider=self.name)

    def _video_url(self, generation: dict) -> str:
        videos = generation.get("generated_videos") or []
        first = videos[0] if isinstance(videos, list) and videos else None
        url = first.get("url") if isinstance(first, dict) else None
        if not isinstance(url, str) or not url:
            raise ProviderError("Leonardo.AI generation completed but no video URL found", provider=self.name)
        return url


# ============================================================================
# Google Veo
# ============================================================================


class VeoClipProvider(ClipProvider):
    """
    Text-to-video generation with Google Veo through the Gemini API.

    Veo 3 clips come with a generated soundtrack; they are flagged so the
    workflows swap it for the narration.
    """

    name = "veo"

    @property
    def is_veo3(self) -> bool:
        return "veo-3" in self.settings.veo_model

    def find(
        self,
        search_terms: list[str],
        min_duration: float,
        exclude_ids: set[str],
        orientation: Orientation,
        prompt: Optional[str] = None,
    ) -> ClipResult:
        if not self.settings.gemini_api_key:
            raise ProviderError("Gemini API key not configured for Veo", provider=self.name)

        prompt = prompt or self.build_prompt(search_terms, min_duration, orientation)
        operation = self._submit(prompt, min_duration, orientation)
        clip_id = f"veo-{operation.rsplit('/', 1)[-1]}"
        if clip_id in exclude_ids:
            operation = self._submit(
                self.build_prompt(search_terms, min_duration, orientation, variant=True), min_duration, orientation
            )
            clip_id = f"veo-{operation.rsplit('/', 1)[-1]}"

        uri = self._poll(operation)
        width, height = GENERATED_DIMENSIONS[orientation]
        separator = "&" if "?" in uri else "?"
        self.logger.info(f"Veo generation {clip_id} ready (native audio: {self.is_veo3})")
        return ClipResult(
            id=clip_id,
            url=f"{uri}{separator}key={self.settings.gemini_api_key}",
            width=width,
            height=height,
            duration=None,
            provider=self.name,
            has_native_audio=self.is_veo3,
        )

    @staticmethod
    def build_prompt(
        search_terms: list[str], duration: float, orientation: Orientation, variant: bool = False
    ) -> str:
        orientation_hint = (
            "vertical mobile-friendly format" if orientation == Orientation.PORTRAIT else "cinematic widescreen format"
        )
        variant_suffix = ", alternative perspective" if variant else ""
        return (
            f"Create a high-quality {duration:.0f}-second video featuring {' '.join(search_terms)}. "
            f"The video should be in {orientation_hint}, with smooth camera movements and professional lighting. "
            "Include rich details, vibrant colors, and engaging composition. "
            f"Make it suitable for social media content{variant_suffix}."
        )

    def _headers(self) -> dict:
        return {"x-goog-api-key": self.settings.gemini_api_key, "Content-Type": "application/json"}

    def _submit(self, prompt: str, min_duration: float, orientation: Orientation) -> str:
        parameters: dict[str, Any] = {"aspectRatio": "9:16" if orientation == Orientation.PORTRAIT else "16:9"}
        if not self.is_veo3:
            # Veo 2 renders 5 to 8 seconds; Veo 3 picks its own length
            parameters["durationSeconds"] = int(min(max(round(min_duration), 5), 8))
            parameters["personGeneration"] = "dont_allow"
        body = {"instances": [{"prompt": prompt}], "parameters": parameters}
        self.logger.debug(f"Submitting Veo generation ({self.settings.veo_model}): {prompt[:120]}")

        try:
            response = requests.post(
                f"{GEMINI_BASE_URL}/models/{self.settings.veo_model}:predictLongRunning",
                json=body,
                headers=self._headers(),
                timeout=self.settings.provider_timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Veo network error: {e}", provider=self.name) from e

        if response.status_code in (401, 403):
            raise ProviderError(
                f"Veo authentication failed ({response.status_code}): check the Gemini API key", provider=self.name
            )
        if response.status_code == 429:
            raise ProviderError("Veo quota exceeded (429)", provider=self.name)
        if not response.ok:
            raise ProviderError(f"Veo API error: {response.status_code} - {response.text[:200]}", provider=self.name)

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(f"Veo returned malformed JSON: {e}", provider=self.name) from e
        operation = payload.get("name") if isinstance(payload, dict) else None
        if not isinstance(operation, str) or not operation:
            raise ProviderError("No operation name received from Veo", provider=self.name)
        return operation

    def _poll(self, operation: str) -> str:
        deadline = time.monotonic() + self.settings.veo_max_wait_seconds
        while time.monotonic() < deadline:
            try:
                response = requests.get(
                    f"{GEMINI_BASE_URL}/{operation}",
                    headers=self._headers(),
                    timeout=self.settings.provider_timeout_seconds,
                )
            except requests.exceptions.RequestException as e:
                raise ProviderError(f"Veo network error while polling: {e}", provider=self.name) from e
            if not response.ok:
                raise ProviderError(f"Failed to check Veo operation status: {response.status_code}", provider=self.name)

            try:
                payload = response.json()
            except ValueError as e:
                raise ProviderError(f"Veo returned malformed JSON: {e}", provider=self.name) from e
            if not isinstance(payload, dict):
                raise ProviderError(f"Veo operation status is not an object: {str(payload)[:120]}", provider=self.name)

            if payload.get("done"):
                return self._video_uri(payload)
            self.logger.debug(f"Veo operation {operation} still running")
            time.sleep(self.settings.veo_poll_interval_seconds)

        raise ProviderError("Veo video generation timed out", provider=self.name)

    def _video_uri(self, payload: dict) -> str:
        error = payload.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise ProviderError(f"Veo video generation failed: {message}", provider=self.name)

        response = payload.get("response")
        samples = None
        if isinstance(response, dict):
            video_response = response.get("generateVideoResponse")
            if isinstance(video_response, dict):
                samples = video_response.get("generatedSamples")
        first = samples[0] if isinstance(samples, list) and samples else None
        video = first.get("video") if isinstance(first, dict) else None
        uri = video.get("uri") if isinstance(video, dict) else None
        if not isinstance(uri, str) or not uri:
            raise ProviderError("Veo generation completed but no video URI found", provider=self.name)
        return uri


# ============================================================================
# Resolver
# ============================================================================


class VideoSourceResolver:
    """Tries providers in priority order until one returns an acceptable clip."""

    def __init__(self, settings: Settings, logger: Any, providers: Optional[dict[str, ClipProvider]] = None):
        """
        Initialize the resolver.

        Args:
            settings: Application settings
            logger: Logger instance
            providers: Provider registry keyed by source name (default: Pexels, Leonardo.AI and Veo)
        """
        self.settings = settings
        self.logger = logger
        if providers is None:
            providers = {
                PexelsClipProvider.name: PexelsClipProvider(settings, logger),
                LeonardoClipProvider.name: LeonardoClipProvider(settings, logger),
                VeoClipProvider.name: VeoClipProvider(settings, logger),
            }
        self.providers = providers

    def chain_for(self, video_source: Optional[VideoSource] = None) -> list[ClipProvider]:
        """
        Provider chain: primary, optional secondary, then the default.

        The default provider is always last and appears once.
        """
        primary = video_source.value if video_source else self.settings.video_source
        names = []
        for name in (primary, self.settings.secondary_video_source):
            if name and name != DEFAULT_PROVIDER and name in self.providers and name not in names:
                names.append(name)
        names.append(DEFAULT_PROVIDER)
        return [self.providers[name] for name in names if name in self.providers]

    def find_clip(
        self,
        search_terms: list[str],
        min_duration: float,
        exclude_set: set[str],
        orientation: Orientation,
        video_source: Optional[VideoSource] = None,
        prompt: Optional[str] = None,
    ) -> ClipResult:
        """
        Resolve one clip and record its id in the job's exclude set.

        Args:
            search_terms: Scene search terms
            min_duration: Minimum clip duration in seconds
            exclude_set: Clip ids already used by this job (updated in place)
            orientation: Output orientation
            video_source: Per-job source override
            prompt: Optional prompt for generative providers

        Returns:
            The selected clip

        Raises:
            ProviderError: Only when every provider in the chain failed
        """
        failures: list[str] = []
        for provider in self.chain_for(video_source):
            rejected: set[str] = set()
            for attempt in range(1, self.settings.provider_max_attempts + 1):
                try:
                    clip = provider.find(search_terms, min_duration, exclude_set | rejected, orientation, prompt=prompt)
                except ProviderError as e:
                    self.logger.warning(f"Clip provider {provider.name} failed, falling back: {e}")
                    failures.append(f"{provider.name}: {e}")
                    break
                except (ValueError, TypeError, KeyError, AttributeError) as e:
                    self.logger.warning(f"Clip provider {provider.name} sent a malformed response, falling back: {e!r}")
                    failures.append(f"{provider.name}: malformed response ({type(e).__name__}: {e})")
                    break

                if clip.id in exclude_set or clip.id in rejected:
                    self.logger.warning(f"{provider.name} returned already used clip {clip.id} (attempt {attempt})")
                    rejected.add(clip.id)
                    continue
                if clip.duration is not None and clip.duration < min_duration:
                    self.logger.warning(
                        f"{provider.name} clip {clip.id} too short: {clip.duration:.1f}s < {min_duration:.1f}s"
                    )
                    rejected.add(clip.id)
                    continue

                exclude_set.add(clip.id)
                return clip
            else:
                failures.append(f"{provider.name}: no acceptable clip after {self.settings.provider_max_attempts} attempts")
                self.logger.warning(f"Clip provider {provider.name} exhausted its attempts, falling back")

        raise ProviderError(f"All clip providers failed for {search_terms}: {'; '.join(failures)}")

    def supplied_clip(self, url: str, exclude_set: set[str]) -> ClipResult:
        """Wrap a caller-supplied video so it is deduplicated like any provider clip."""
        clip = ClipResult(
            id=f"supplied:{hashlib.sha1(url.encode('utf-8')).hexdigest()}",
            url=url,
            provider="supplied",
        )
        if clip.id in exclude_set:
            self.logger.warning(f"Supplied video {url} is used by more than one scene; the clip will repeat")
        exclude_set.add(clip.id)
        return clip

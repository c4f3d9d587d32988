"""
Request orchestration.

Answers one ``(action, payload, credential)`` request end to end:

    Authenticating -> QuotaChecking (rate limit) -> CacheLookup
        -> [Generating -> SafetyFiltering -> CacheStoring -> QuotaIncrementing]
        -> Responding

Every provider-bound action passes the per-caller request limiter at
QuotaChecking; a limited media request degrades instead of failing.
Any stage may exit with a GatewayError. Only entry actions consume quota, and
only when they actually reach the provider; cache hits are free. Cache stores
and quota increments run as detached tasks whose failures are logged and
swallowed, so they may land after the caller has seen the response.
"""

import asyncio
import base64
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from ..config.loader import GatewayConfig, SafetyMode
from ..sdk.auth import AuthProvider
from ..sdk.provider import GenerativeProvider
from ..storage.repository import GatewayRepository
from .actions import (
    REQUEST_TYPES,
    DiscoverConcepts,
    DiscoverPhilosophies,
    DiscoverProfiles,
    GenerateAudio,
    GenerateImage,
    GeneratePhilosophyEntry,
    GenerateScienceEntry,
    GenerateStory,
    GetUserQuota,
    ActionKind,
    Request,
    consumes_quota,
    is_throttled,
    parse_request,
)
from .cache import ContentCache, item_identity
from .errors import (
    DeadlineExceeded,
    GatewayError,
    RequestRateLimited,
    SafetyViolation,
    Unauthorized,
    UpstreamFatal,
)
from .prompts import (
    CONCEPT_SHAPE,
    IMAGE_STYLE_HINT,
    MAP_STYLE_HINT,
    PHILOSOPHY_ENTRY_SHAPE,
    PHILOSOPHY_SHAPE,
    PROFILE_SHAPE,
    PROTECTED_KEYS,
    SCIENCE_ENTRY_SHAPE,
    STORY_SHAPE,
    discover_concepts_prompt,
    discover_philosophies_prompt,
    discover_profiles_prompt,
    list_of,
    philosophy_entry_prompt,
    science_entry_prompt,
    story_prompt,
)
from .quota import QuotaTracker, utc_today
from .rate_limit import RequestRateLimiter
from .retry import RetryPolicy
from .safety import SafetyFilter

logger = logging.getLogger(__name__)

IMAGE_ACTION = GenerateImage.ACTION

# (response key, prompt, is_map)
MediaSpec = Tuple[str, Optional[str], bool]


class RequestStage(Enum):
    """Stages a request passes through."""
    AUTHENTICATING = "authenticating"
    QUOTA_CHECKING = "quota_checking"
    CACHE_LOOKUP = "cache_lookup"
    GENERATING = "generating"
    SAFETY_FILTERING = "safety_filtering"
    CACHE_STORING = "cache_storing"
    QUOTA_INCREMENTING = "quota_incrementing"
    RESPONDING = "responding"


@dataclass
class RequestContext:
    """Per-invocation state. Nothing here outlives the request."""
    action: str
    payload: Dict[str, Any]
    request: Optional[Request] = None
    user_id: Optional[str] = None
    stage: RequestStage = RequestStage.AUTHENTICATING
    history: List[RequestStage] = field(default_factory=list)

    def advance(self, stage: RequestStage) -> None:
        self.stage = stage
        self.history.append(stage)
        logger.debug("request %s -> %s", self.action, stage.value)


class RequestOrchestrator:
    """Entry point composing retry, safety, quota and cache.

    Args:
        config: Immutable gateway configuration
        provider: Generative content provider
        repository: Backing store for quota and cache
        auth: Auth provider resolving bearer credentials
        rng: Random source for the mixed-content strategy
        sleep: Awaitable sleep used for retry backoff
        today: Callable returning the current ISO day (UTC)
        clock: Callable returning epoch seconds for the request limiter
    """

    def __init__(
        self,
        config: GatewayConfig,
        provider: GenerativeProvider,
        repository: GatewayRepository,
        auth: AuthProvider,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        today: Callable[[], str] = utc_today,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.provider = provider
        self.auth = auth
        self.retry = RetryPolicy(
            max_attempts=config.max_attempts,
            rate_limited_base_ms=config.rate_limited_base_ms,
            overloaded_base_ms=config.overloaded_base_ms,
            sleep=sleep,
        )
        self.safety = SafetyFilter(extra_strict_terms=config.extra_strict_terms)
        self.quota = QuotaTracker(
            repository,
            limit=config.daily_quota_limit,
            atomic=config.atomic_quota_increment,
            today=today,
        )
        self.cache = ContentCache(
            repository,
            version=config.cache_version,
            full_hit_probability=config.full_hit_probability,
            fresh_count=config.mix_fresh_count,
            rng=rng,
        )
        self.rate_limiter = RequestRateLimiter(repository, config.rate_limit_windows, clock=clock)
        self._handlers: Dict[type, Callable[[Any, RequestContext], Awaitable[Any]]] = {
            DiscoverProfiles: self._discover_profiles,
            DiscoverConcepts: self._discover_concepts,
            DiscoverPhilosophies: self._discover_philosophies,
            GenerateStory: self._generate_story,
            GenerateScienceEntry: self._generate_science_entry,
            GeneratePhilosophyEntry: self._generate_philosophy_entry,
            GenerateImage: self._generate_image,
            GenerateAudio: self._generate_audio,
            GetUserQuota: self._get_user_quota,
        }
        missing = set(REQUEST_TYPES) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for: {sorted(cls.__name__ for cls in missing)}")
        self._background: Set["asyncio.Task[Any]"] = set()

    # -- entry point -----------------------------------------------------------

    async def handle(
        self,
        action: Any,
        payload: Any = None,
        credential: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> Any:
        """Answer one request within the invocation deadline.

        Args:
            action: Action name
            payload: Action payload
            credential: Optional bearer credential
            client_id: Network identity of an anonymous caller (e.g. client
                address); used as the rate-limit key when there is no user

        Returns:
            JSON-serializable result for the action

        Raises:
            GatewayError: Any classified failure; see ``core.errors``
        """
        try:
            return await asyncio.wait_for(
                self._process(action, payload, credential, client_id),
                timeout=self.config.invocation_deadline_seconds,
            )
        except asyncio.TimeoutError:
            logger.error("request %s exceeded %.1fs deadline", action, self.config.invocation_deadline_seconds)
            raise DeadlineExceeded("The request took too long. Please try again.")

    async def _process(
        self, action: Any, payload: Any, credential: Optional[str], client_id: Optional[str]
    ) -> Any:
        ctx = RequestContext(action=str(action), payload=payload if isinstance(payload, dict) else {})
        try:
            ctx.request = parse_request(action, payload)
            ctx.advance(RequestStage.AUTHENTICATING)
            ctx.user_id = await self._authenticate(ctx.request, credential)

            if is_throttled(ctx.request):
                ctx.advance(RequestStage.QUOTA_CHECKING)
                try:
                    await self._check_rate(ctx.user_id, client_id)
                except RequestRateLimited:
                    if ctx.request.KIND is not ActionKind.MEDIA:
                        raise
                    ctx.advance(RequestStage.RESPONDING)
                    return self._media_fallback(ctx.request)

            if consumes_quota(ctx.request):
                await self.quota.ensure_fresh_window(ctx.user_id)

            handler = self._handlers[type(ctx.request)]
            return await handler(ctx.request, ctx)
        except GatewayError as e:
            logger.warning(
                "request %s failed at %s [%s]: %s (stages: %s)",
                ctx.action,
                ctx.stage.value,
                e.category,
                e,
                " -> ".join(stage.value for stage in ctx.history),
            )
            raise

    async def _check_rate(self, user_id: Optional[str], client_id: Optional[str]) -> None:
        if user_id is not None:
            await self.rate_limiter.check(user_id)
        elif client_id:
            await self.rate_limiter.check(f"anon:{client_id}")

    def _media_fallback(self, request: Request) -> Optional[str]:
        logger.info("media: %s rate limited, degraded", request.ACTION)
        if isinstance(request, GenerateImage):
            return self.config.placeholder_image_url
        return None

    async def _authenticate(self, request: Request, credential: Optional[str]) -> Optional[str]:
        if credential:
            return await self.auth.resolve_identity(credential)
        if consumes_quota(request):
            raise Unauthorized("Unauthorized: Please log in.")
        return None

    # -- background persistence -------------------------------------------------

    def _detach(self, coro: Awaitable[Any], what: str) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)

        def _done(finished: "asyncio.Task[Any]") -> None:
            self._background.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                logger.warning("%s failed (ignored): %s", what, exc)

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait for all detached cache stores and quota increments."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # -- safety -------------------------------------------------------------------

    def _filter_entry(self, action: str, raw: Any) -> Dict[str, Any]:
        if not isinstance(raw, dict):
            raise UpstreamFatal(f"{action}: provider returned a malformed entry")
        if self.safety.is_safe(raw):
            return raw
        if self.config.safety_mode is SafetyMode.BLOCK:
            raise SafetyViolation("Content blocked by safety filters.")
        redacted = self.safety.redact(raw, PROTECTED_KEYS)
        if not self.safety.is_safe(redacted):
            raise SafetyViolation("Content blocked by safety filters.")
        logger.info("safety: served redacted %s", action)
        return redacted

    def _filter_items(self, action: str, raw: Any, count: int) -> List[Dict[str, Any]]:
        if not isinstance(raw, list):
            raise UpstreamFatal(f"{action}: provider returned a malformed list")

        items: List[Dict[str, Any]] = []
        seen: Set[Optional[str]] = set()
        for item in raw:
            if not isinstance(item, dict):
                continue
            if not self.safety.is_safe(item):
                if self.config.safety_mode is SafetyMode.BLOCK:
                    raise SafetyViolation("Content blocked by safety filters.")
                item = self.safety.redact(item, PROTECTED_KEYS)
                if not self.safety.is_safe(item):
                    logger.info("safety: dropped unsafe %s item", action)
                    continue
            identity = item_identity(item, "name")
            if identity in seen:
                continue
            seen.add(identity)
            items.append(item)
        return items[:count]

    # -- discovery ----------------------------------------------------------------

    async def _discover(
        self,
        request: Request,
        ctx: RequestContext,
        build_prompt: Callable[[Any, int], str],
        item_shape: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        ctx.advance(RequestStage.CACHE_LOOKUP)

        async def generate(count: int) -> List[Dict[str, Any]]:
            ctx.advance(RequestStage.GENERATING)
            prompt = build_prompt(request, count)
            raw = await self.retry.execute(lambda: self.provider.generate(prompt, list_of(item_shape)))
            ctx.advance(RequestStage.SAFETY_FILTERING)
            return self._filter_items(request.ACTION, raw, count)

        result = await self.cache.lookup_or_mix(
            request.ACTION,
            request.criterion,
            generate,
            size=self.config.discovery_size,
        )
        ctx.advance(RequestStage.RESPONDING)
        return result.items

    async def _discover_profiles(self, request: DiscoverProfiles, ctx: RequestContext) -> List[Dict[str, Any]]:
        return await self._discover(request, ctx, discover_profiles_prompt, PROFILE_SHAPE)

    async def _discover_concepts(self, request: DiscoverConcepts, ctx: RequestContext) -> List[Dict[str, Any]]:
        return await self._discover(request, ctx, discover_concepts_prompt, CONCEPT_SHAPE)

    async def _discover_philosophies(
        self, request: DiscoverPhilosophies, ctx: RequestContext
    ) -> List[Dict[str, Any]]:
        return await self._discover(request, ctx, discover_philosophies_prompt, PHILOSOPHY_SHAPE)

    # -- entries -----------------------------------------------------------------

    async def _serve_entry(
        self,
        request: Request,
        ctx: RequestContext,
        prompt: str,
        shape: Dict[str, Any],
        extras: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        ctx.advance(RequestStage.CACHE_LOOKUP)
        entry = await self.cache.lookup(request.ACTION, ctx.payload)
        if entry is not None:
            content = entry.content
        else:
            await self.quota.check(ctx.user_id)

            ctx.advance(RequestStage.GENERATING)
            raw = await self.retry.execute(lambda: self.provider.generate(prompt, shape))

            ctx.advance(RequestStage.SAFETY_FILTERING)
            content = self._filter_entry(request.ACTION, raw)
            if extras:
                content = {**content, **extras}

            ctx.advance(RequestStage.CACHE_STORING)
            self._detach(self.cache.store(request.ACTION, ctx.payload, content), "cache store")

            ctx.advance(RequestStage.QUOTA_INCREMENTING)
            self._detach(self.quota.increment(ctx.user_id), "quota increment")

        ctx.advance(RequestStage.RESPONDING)
        return content

    async def _generate_story(self, request: GenerateStory, ctx: RequestContext) -> Dict[str, Any]:
        content = await self._serve_entry(
            request,
            ctx,
            story_prompt(request),
            STORY_SHAPE,
            extras={"englishStyle": request.english_style_name, "hindiStyle": request.hindi_style_name},
        )
        geography = content.get("geography")
        map_prompt = geography.get("mapPrompt") if isinstance(geography, dict) else None
        return await self._attach_media(content, [
            ("generatedImageUrl", content.get("illustrationPrompt"), False),
            ("generatedMapUrl", map_prompt, True),
        ])

    async def _generate_science_entry(self, request: GenerateScienceEntry, ctx: RequestContext) -> Dict[str, Any]:
        content = await self._serve_entry(request, ctx, science_entry_prompt(request), SCIENCE_ENTRY_SHAPE)
        return await self._attach_media(content, [
            ("generatedImageUrl", content.get("illustrationPrompt"), False),
        ])

    async def _generate_philosophy_entry(
        self, request: GeneratePhilosophyEntry, ctx: RequestContext
    ) -> Dict[str, Any]:
        content = await self._serve_entry(request, ctx, philosophy_entry_prompt(request), PHILOSOPHY_ENTRY_SHAPE)
        return await self._attach_media(content, [
            ("generatedImageUrl", content.get("illustrationPrompt"), False),
        ])

    # -- media ---------------------------------------------------------------------

    async def _attach_media(self, content: Dict[str, Any], specs: List[MediaSpec]) -> Dict[str, Any]:
        """Fetch all media concurrently; each one degrades on its own."""
        results = await asyncio.gather(
            *(self._image_url(prompt, is_map) for _, prompt, is_map in specs),
            return_exceptions=True,
        )
        response = dict(content)
        for (key, _, _), result in zip(specs, results):
            if isinstance(result, BaseException):
                logger.warning("media: %s degraded to placeholder (%s)", key, result)
                result = self.config.placeholder_image_url
            response[key] = result
        return response

    async def _image_url(self, prompt: Optional[str], is_map: bool) -> str:
        placeholder = self.config.placeholder_image_url
        if not isinstance(prompt, str) or not prompt.strip():
            return placeholder
        if not self.safety.is_safe(prompt):
            logger.info("media: unsafe image prompt replaced by placeholder")
            return placeholder

        payload = GenerateImage(prompt=prompt, is_map=is_map).cache_payload
        try:
            cached = await self.cache.lookup(IMAGE_ACTION, payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("media: image cache lookup failed (%s)", exc)
            cached = None
        if cached is not None:
            return cached.content

        style_hint = MAP_STYLE_HINT if is_map else IMAGE_STYLE_HINT
        try:
            data = await self.retry.execute(
                lambda: self.provider.generate_image(prompt, style_hint),
                max_attempts=self.config.media_max_attempts,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("media: image generation degraded to placeholder (%s)", exc)
            return placeholder

        url = "data:image/png;base64," + base64.b64encode(data).decode("ascii")
        self._detach(self.cache.store(IMAGE_ACTION, payload, url), "image cache store")
        return url

    async def _generate_image(self, request: GenerateImage, ctx: RequestContext) -> str:
        ctx.advance(RequestStage.RESPONDING)
        return await self._image_url(request.prompt, request.is_map)

    async def _generate_audio(self, request: GenerateAudio, ctx: RequestContext) -> Optional[str]:
        ctx.advance(RequestStage.RESPONDING)
        if not self.safety.is_safe(request.text):
            return None
        try:
            data = await self.retry.execute(
                lambda: self.provider.generate_speech(request.text),
                max_attempts=self.config.media_max_attempts,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("media: narration unavailable (%s)", exc)
            return None
        return base64.b64encode(data).decode("ascii")

    # -- quota -----------------------------------------------------------------------

    async def _get_user_quota(self, request: GetUserQuota, ctx: RequestContext) -> Dict[str, int]:
        ctx.advance(RequestStage.RESPONDING)
        if ctx.user_id is None:
            return {"usage": 0, "limit": self.config.daily_quota_limit}
        return await self.quota.read(ctx.user_id)


def build_orchestrator(config: GatewayConfig) -> RequestOrchestrator:
    """Wire the production collaborators for ``config``.

    Creates the SQLite schema if needed, an OpenAI provider (reads
    ``OPENAI_API_KEY``) and a JWT auth provider (reads ``LUMINA_JWT_SECRET``).
    """
    from ..sdk.auth import JWTAuthProvider
    from ..sdk.provider import OpenAIProvider
    from ..storage.repository import initialize_schema

    initialize_schema(config.db_path)
    provider = OpenAIProvider(
        text_model=config.text_model,
        image_model=config.image_model,
        audio_model=config.audio_model,
        audio_voice=config.audio_voice,
        temperature=config.temperature,
    )
    return RequestOrchestrator(
        config=config,
        provider=provider,
        repository=GatewayRepository(config.db_path),
        auth=JWTAuthProvider(),
    )

from __future__ import annotations

"""
Embedding resolution for bottles.

A bottle is summarised into a short descriptive string (name, spirit type,
proof, average price) which is sent to an OpenAI-compatible ``/embeddings``
endpoint through the ``openai`` SDK.  Vectors are memoised in a bounded
LRU keyed by the bottle id plus a hash of the description, so a bottle
whose fields change is re-embedded while repeated requests for the same
catalog stay cheap.
"""

import hashlib
from collections import OrderedDict
from typing import Optional, Tuple

import httpx
import numpy as np  # type: ignore
import openai
from openai import AsyncOpenAI

from .config import Bottle, ProviderSettings
from .errors import ProviderError

CacheKey = Tuple[int, str]


def _fmt_number(value: float) -> str:
    return f"{value:g}"


def build_bottle_text(bottle: Bottle) -> str:
    """
    Descriptive text submitted to the embedding provider.

    Unknown proof / price are left out rather than rendered as a number.
    """
    parts = [bottle.name.strip(), bottle.spirit_type.strip()]
    if bottle.proof is not None:
        parts.append(f"{_fmt_number(bottle.proof)}proof")
    if bottle.avg_msrp is not None:
        parts.append(f"${_fmt_number(bottle.avg_msrp)}")
    return " ".join(p for p in parts if p)


def cache_key(bottle: Bottle, text: str) -> CacheKey:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return bottle.id, digest


# -------------------------------------------------------------------
# LRU cache
# -------------------------------------------------------------------

class EmbeddingCache:
    """
    Bounded least-recently-used map of ``(bottle_id, text_hash) -> vector``.

    ``max_size=0`` turns every lookup into a miss.
    """

    def __init__(self, max_size: int):
        if max_size < 0:
            raise ValueError("max_size must be >= 0")
        self.max_size = max_size
        self._items: "OrderedDict[CacheKey, np.ndarray]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._items

    def get(self, key: CacheKey) -> Optional[np.ndarray]:
        vec = self._items.get(key)
        if vec is None:
            self.misses += 1
            return None
        self._items.move_to_end(key)
        self.hits += 1
        return vec

    def put(self, key: CacheKey, vector: np.ndarray) -> None:
        if self.max_size == 0:
            return
        self._items[key] = vector
        self._items.move_to_end(key)
        while len(self._items) > self.max_size:
            self._items.popitem(last=False)

    def clear(self) -> None:
        self._items.clear()
        self.hits = 0
        self.misses = 0


# -------------------------------------------------------------------
# Resolver
# -------------------------------------------------------------------

def _parse_embedding(response: object) -> np.ndarray:
    # The SDK builds response models without validating them, so a
    # malformed body shows up here as a missing attribute or bad value.
    try:
        raw = response.data[0].embedding  # type: ignore[attr-defined]
    except (AttributeError, IndexError, KeyError, TypeError) as e:
        raise ProviderError(f"Malformed embedding response: {e!r}") from e

    if not isinstance(raw, list) or not raw:
        raise ProviderError("Malformed embedding response: empty or non-list vector")
    try:
        vec = np.asarray(raw, dtype="float32")
    except (TypeError, ValueError) as e:
        raise ProviderError(f"Malformed embedding response: {e}") from e
    if vec.ndim != 1:
        raise ProviderError(f"Malformed embedding response: vector shape {vec.shape}")
    return vec


class EmbeddingResolver:
    """
    Maps a bottle to its embedding vector via the external provider.

    Wraps one ``AsyncOpenAI`` client (retries off; the pipeline does not
    retry).  An ``httpx.AsyncClient`` may be passed in as its transport and
    is then left open by :meth:`aclose`.  Every failure of the provider
    surfaces as :class:`ProviderError`.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[EmbeddingCache] = None,
    ):
        self.settings = settings
        self.cache = cache if cache is not None else EmbeddingCache(settings.cache_size)
        self._http_client = http_client
        self._client: Optional[AsyncOpenAI] = None
        self.calls = 0

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create the OpenAI client."""
        if not self.settings.api_key:
            raise ProviderError("Embedding provider API key is not configured")

        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.api_key,
                base_url=self.settings.base_url,
                max_retries=0,
                timeout=httpx.Timeout(
                    self.settings.read_timeout, connect=self.settings.connect_timeout
                ),
                http_client=self._http_client,
            )
        return self._client

    async def __aenter__(self) -> "EmbeddingResolver":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._http_client is None:
            await self._client.close()
        self._client = None

    async def embed(self, bottle: Bottle) -> np.ndarray:
        text = build_bottle_text(bottle)
        key = cache_key(bottle, text)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        vec = await self.embed_text(text)
        self.cache.put(key, vec)
        return vec

    async def embed_text(self, text: str) -> np.ndarray:
        client = self.client

        self.calls += 1
        try:
            response = await client.embeddings.create(
                model=self.settings.model,
                input=text,
                encoding_format="float",
            )
        except openai.APIStatusError as e:
            if e.status_code == 429:
                raise ProviderError(
                    "Embedding provider rate limited the request", status_code=429
                ) from e
            raise ProviderError(
                f"Embedding provider returned HTTP {e.status_code}", status_code=e.status_code
            ) from e
        except openai.APIError as e:
            raise ProviderError(f"Embedding provider unreachable: {e!r}") from e
        except (TypeError, ValueError) as e:
            raise ProviderError(f"Malformed embedding response: {e}") from e

        return _parse_embedding(response)

    def cache_stats(self) -> dict:
        return {
            "size": len(self.cache),
            "hits": self.cache.hits,
            "misses": self.cache.misses,
            "provider_calls": self.calls,
        }

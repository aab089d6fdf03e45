"""Client configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Union

from .cache import MemoryResponseCache, RedisResponseCache, create_cache
from .transport import DEFAULT_BASE_URL, DEFAULT_NCI_SITE_URL, DEFAULT_TIMEOUT


@dataclass
class ClientConfig:
    """Configuration container for :class:`~cdisc_library_client.client.CdiscLibrary`.

    Attributes:
        api_key: CDISC Library API key.
        base_url: API root.
        timeout: Request timeout in seconds.
        use_nci_site_for_ct: Load terminology from the NCI EVS site.
        nci_site_url: Root of the NCI CDISC folder.
        content_encoding: Optional ``Content-Encoding`` request header.
        cache_type: ``none``, ``memory`` or ``redis``.
        cache_ttl: Cached response lifetime in seconds.
        redis_url: Redis URL for the ``redis`` cache.
        redis_prefix: Key prefix for the ``redis`` cache.
        log_level: Python logging level name.
    """

    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    use_nci_site_for_ct: bool = False
    nci_site_url: str = DEFAULT_NCI_SITE_URL
    content_encoding: Optional[str] = None
    cache_type: str = "none"
    cache_ttl: float = 3600.0
    redis_url: Optional[str] = None
    redis_prefix: str = "cdisc:"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Create configuration from environment variables."""
        return cls(
            api_key=os.getenv("CDISC_LIBRARY_API_KEY"),
            base_url=os.getenv("CDISC_LIBRARY_BASE_URL", DEFAULT_BASE_URL),
            timeout=float(os.getenv("CDISC_LIBRARY_TIMEOUT", str(DEFAULT_TIMEOUT))),
            use_nci_site_for_ct=os.getenv("CDISC_LIBRARY_USE_NCI_SITE", "false").lower()
            == "true",
            nci_site_url=os.getenv("CDISC_LIBRARY_NCI_SITE_URL", DEFAULT_NCI_SITE_URL),
            content_encoding=os.getenv("CDISC_LIBRARY_CONTENT_ENCODING"),
            cache_type=os.getenv("CDISC_CACHE_TYPE", "none"),
            cache_ttl=float(os.getenv("CDISC_CACHE_TTL", "3600")),
            redis_url=os.getenv("REDIS_URL"),
            redis_prefix=os.getenv("CDISC_REDIS_PREFIX", "cdisc:"),
            log_level=os.getenv("CDISC_LIBRARY_LOG_LEVEL", "INFO"),
        )

    def build_cache(self) -> Optional[Union[MemoryResponseCache, RedisResponseCache]]:
        """Response cache described by this configuration (None when disabled)."""
        return create_cache(
            self.cache_type,
            default_ttl=self.cache_ttl,
            redis_url=self.redis_url,
            redis_prefix=self.redis_prefix,
        )

"""Centralized configuration for keydrop."""

import os


class Config:
    """
    keydrop configuration with environment variable overrides.

    All configuration values are centralized here with sensible defaults.
    Values can be overridden via environment variables.
    """

    @staticmethod
    def _parse_port(port_str: str) -> int:
        """Parse and validate port number from string."""
        try:
            port = int(port_str)
            if not (1 <= port <= 65535):
                raise ValueError(f"Port must be 1-65535, got {port}")
            return port
        except ValueError as e:
            raise ValueError(f"Invalid PORT environment variable: {e}")

    # ========================================================================
    # Server Configuration
    # ========================================================================
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = _parse_port.__func__(os.getenv("PORT", "3000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "keydrop.log")
    AUDIT_LOG_PATH: str = os.getenv("AUDIT_LOG_PATH", "./audit.jsonl")

    # ========================================================================
    # Redis Configuration (pool, expiry markers, rate limit counters)
    # ========================================================================
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    REDIS_KEYSET: str = os.getenv("REDIS_KEYSET", "unused_keys")
    REDIS_MAX_CONNECTIONS: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "100"))
    REDIS_SOCKET_CONNECT_TIMEOUT: float = float(
        os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "2")
    )
    REDIS_SOCKET_TIMEOUT: float = float(os.getenv("REDIS_SOCKET_TIMEOUT", "2"))
    REDIS_CONNECT_RETRIES: int = int(os.getenv("REDIS_CONNECT_RETRIES", "3"))
    REDIS_CONNECT_RETRY_DELAY: float = float(os.getenv("REDIS_CONNECT_RETRY_DELAY", "0.5"))
    REDIS_CONNECT_RETRY_MAX_DELAY: float = float(
        os.getenv("REDIS_CONNECT_RETRY_MAX_DELAY", "5")
    )

    # ========================================================================
    # Ledger Database Configuration
    # ========================================================================
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL", "postgresql+asyncpg://localhost:5432/keydrop"
    )
    DATABASE_POOL_SIZE: int = int(os.getenv("DATABASE_POOL_SIZE", "10"))
    DATABASE_ECHO: bool = os.getenv("DATABASE_ECHO", "").lower() in ("1", "true", "yes")

    # ========================================================================
    # Claim / Redemption
    # ========================================================================
    CLAIM_TTL: int = int(os.getenv("CLAIM_TTL", "600"))  # 10 minutes
    STORE_TIMEOUT_SECONDS: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))
    EXPIRY_MARKER_PREFIX: str = "page_ttl:"

    # ========================================================================
    # Rate Limiting (claim endpoint)
    # ========================================================================
    RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "30"))

    # ========================================================================
    # Admin
    # ========================================================================
    ADMIN_TOKEN: str = os.getenv("ADMIN_TOKEN", "")
    INSPECT_LIMIT: int = int(os.getenv("INSPECT_LIMIT", "200"))
    INSPECT_LIMIT_MAX: int = 1000

    @staticmethod
    def normalize_database_url(url: str) -> str:
        """
        Map plain postgres URLs onto the asyncpg driver.

        ``postgres://`` and ``postgresql://`` are what hosting providers hand
        out; SQLAlchemy's asyncio engine needs an explicit async driver.
        """
        for prefix in ("postgres://", "postgresql://"):
            if url.startswith(prefix):
                return "postgresql+asyncpg://" + url[len(prefix):]
        return url

    @classmethod
    def validate(cls) -> bool:
        """
        Validate configuration consistency.

        Checks:
        - ADMIN_TOKEN is set (warning if not, admin routes stay locked)
        - All TTL, timeout and limit values are > 0

        Returns:
            True if validation passes

        Raises:
            ValueError: If validation fails
        """
        errors = []

        is_production = os.getenv("ENVIRONMENT", "").lower() == "production"
        if not cls.ADMIN_TOKEN:
            if is_production:
                errors.append("ADMIN_TOKEN must be set in production.")
            else:
                import warnings

                warnings.warn(
                    "ADMIN_TOKEN not set - admin refill and inspect will reject every call."
                )
        elif len(cls.ADMIN_TOKEN) < 16:
            import warnings

            warnings.warn(
                f"ADMIN_TOKEN is only {len(cls.ADMIN_TOKEN)} characters. "
                "Use at least 16 random characters."
            )

        if cls.CLAIM_TTL <= 0:
            errors.append(f"CLAIM_TTL must be > 0, got {cls.CLAIM_TTL}")

        if cls.STORE_TIMEOUT_SECONDS <= 0:
            errors.append(
                f"STORE_TIMEOUT_SECONDS must be > 0, got {cls.STORE_TIMEOUT_SECONDS}"
            )

        if cls.RATE_LIMIT_WINDOW_SECONDS <= 0:
            errors.append(
                f"RATE_LIMIT_WINDOW_SECONDS must be > 0, got {cls.RATE_LIMIT_WINDOW_SECONDS}"
            )
        if cls.RATE_LIMIT_MAX_REQUESTS <= 0:
            errors.append(
                f"RATE_LIMIT_MAX_REQUESTS must be > 0, got {cls.RATE_LIMIT_MAX_REQUESTS}"
            )

        if not (0 < cls.INSPECT_LIMIT <= cls.INSPECT_LIMIT_MAX):
            errors.append(
                f"INSPECT_LIMIT must be 1-{cls.INSPECT_LIMIT_MAX}, got {cls.INSPECT_LIMIT}"
            )

        if not cls.REDIS_KEYSET:
            errors.append("REDIS_KEYSET must not be empty")
        if cls.REDIS_MAX_CONNECTIONS <= 0:
            errors.append(
                f"REDIS_MAX_CONNECTIONS must be > 0, got {cls.REDIS_MAX_CONNECTIONS}"
            )
        if cls.REDIS_SOCKET_CONNECT_TIMEOUT <= 0:
            errors.append(
                "REDIS_SOCKET_CONNECT_TIMEOUT must be > 0, "
                f"got {cls.REDIS_SOCKET_CONNECT_TIMEOUT}"
            )
        if cls.REDIS_SOCKET_TIMEOUT <= 0:
            errors.append(
                f"REDIS_SOCKET_TIMEOUT must be > 0, got {cls.REDIS_SOCKET_TIMEOUT}"
            )
        if cls.DATABASE_POOL_SIZE <= 0:
            errors.append(f"DATABASE_POOL_SIZE must be > 0, got {cls.DATABASE_POOL_SIZE}")

        if errors:
            raise ValueError(f"Config validation failed: {'; '.join(errors)}")

        return True

"""Error kinds raised by the signing pipeline.

Candle-level failures (``UpstreamError`` and ``CandleUnavailable``) are
handled per asset by :class:`~harbinger.src.OracleService.OracleService`.
Everything else propagates to the entry point.
"""


class OracleError(Exception):
    """Base exception for all pipeline errors."""

    pass


class UpstreamError(OracleError):
    """Raised when a market-data source fails or returns an unusable response.

    :ivar status_code: HTTP status code, if the source answered.
    :ivar body: Raw response body, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
    ):
        """Initialize the upstream error.

        :param message: Error message.
        :param status_code: HTTP status code from the failed request.
        :param body: Raw response body from the failed request.
        """
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class UpstreamTimeout(UpstreamError):
    """Raised when a market-data request times out."""

    pass


class CandleUnavailable(OracleError):
    """Raised when a provider exhausts its retry budget for an asset.

    :ivar asset_name: Asset that could not be fetched.
    :ivar attempts: Number of attempts made.
    """

    def __init__(self, asset_name: str, attempts: int):
        self.asset_name = asset_name
        self.attempts = attempts
        super().__init__(
            f"Could not get candle for {asset_name} after {attempts} attempts"
        )


class EncodingError(OracleError):
    """Raised when a Michelson literal does not pack under its schema."""

    pass


class SigningError(OracleError):
    """Raised when the remote signer is unreachable or rejects a request.

    :ivar status_code: HTTP status code, if the signer answered.
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class SigningTimeout(SigningError):
    """Raised when a request to the remote signer times out."""

    pass


class ConfigurationError(OracleError):
    """Raised when the pipeline is built from missing or invalid settings."""

    pass


class ProviderConfigError(ConfigurationError):
    """Raised when a candle provider is missing its credentials."""

    pass

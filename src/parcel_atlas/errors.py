"""
Error taxonomy for the parcel atlas engine.

Every error carries a stable ``code`` so the request layer can map it to a
distinct response without inspecting messages.
"""


class ParcelAtlasError(Exception):
    """Base class for all engine errors."""

    code = "parcel_atlas_error"


class NotFoundError(ParcelAtlasError):
    """No parcel or entry point at the given location or code."""

    code = "not_found"


class InvalidInputError(ParcelAtlasError, ValueError):
    """Malformed coordinates, tile indices or out-of-range parameters."""

    code = "invalid_input"


class NoEntryPointsError(ParcelAtlasError):
    """Parcel has no entry point within the configured threshold."""

    code = "no_entry_points"


class EntryPointNotFoundError(ParcelAtlasError):
    """Preferred entry point label is absent from the parcel context."""

    code = "entry_point_not_found"


class NoRouteError(ParcelAtlasError):
    """No named road available to start or end a stitched route."""

    code = "no_route"


class UpstreamUnavailableError(ParcelAtlasError):
    """Directions provider failed or timed out."""

    code = "upstream_unavailable"


class IndexBuildError(ParcelAtlasError):
    """A geometry collection could not be indexed at all."""

    code = "index_build_error"

"""Stock transformations for :class:`~infragraph.pipeline.TransformationPipeline`."""

from collections.abc import Mapping

from infragraph.pipeline import Properties, Transformation

__all__ = ["default_tags"]


def default_tags(tags: Mapping[str, str], force: bool = False) -> Transformation:
    """Build a transformation merging ``tags`` into each resource's ``tags``.

    A default overrides a same-named tag already set on the resource.

    Args:
        tags: Tags to add to every tagged resource.
        force: If False (the default), only resources whose properties
            already carry a ``tags`` field are touched. If True, resources
            without one get the defaults too; only use this when every
            resource type in the program accepts tags.

    Example:
        >>> pipeline.register(default_tags({"CreatedBy": "infragraph"}))
    """
    defaults = dict(tags)

    def apply_default_tags(properties: Properties) -> Properties:
        if not isinstance(properties, Mapping):
            return properties
        if "tags" not in properties and not force:
            return properties
        existing = properties.get("tags") or {}
        if not isinstance(existing, Mapping):
            return properties
        return {**properties, "tags": {**existing, **defaults}}

    return apply_default_tags

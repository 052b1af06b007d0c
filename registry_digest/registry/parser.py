"""Parse Docker image references into registry components."""

from __future__ import annotations

from dataclasses import dataclass, replace

#: Registry used when a reference does not name one.
DEFAULT_REGISTRY = "registry-1.docker.io"

#: Tag used when a reference does not carry one.
DEFAULT_TAG = "latest"


@dataclass(frozen=True)
class ImageReference:
    """Parsed reference to an image on a registry.

    Attributes:
        registry: Registry hostname (e.g. ``registry-1.docker.io``). Empty
            until normalized when the reference did not name one.
        repository: Repository path (e.g. ``library/nginx``).
        tag: Image tag. Empty until normalized when none was given.
    """

    registry: str
    repository: str
    tag: str = ""

    def __str__(self) -> str:
        prefix = f"{self.registry}/" if self.registry else ""
        suffix = f":{self.tag}" if self.tag else ""
        return f"{prefix}{self.repository}{suffix}"


def parse_reference(name: str) -> ImageReference:
    """Split a ``[registry/]repository[:tag]`` string into its parts.

    Parsing is lenient: no input is rejected, malformed references are
    interpreted as well as possible.

    * ``nginx`` -> registry ``""``, repository ``nginx``, tag ``""``
    * ``myregistry.example.com/org/image:v1`` -> ``myregistry.example.com``,
      ``org/image``, ``v1``
    * ``localhost:5000/image`` -> ``localhost:5000``, ``image``, ``""``

    Args:
        name: The image reference string.

    Returns:
        An un-normalized :class:`ImageReference`.
    """
    remainder, tag = _split_tag(name)

    # Heuristic: if the first segment contains a dot or colon it's a registry host.
    parts = remainder.split("/", 1)
    if len(parts) == 2 and ("." in parts[0] or ":" in parts[0]):
        return ImageReference(registry=parts[0], repository=parts[1], tag=tag)

    return ImageReference(registry="", repository=remainder, tag=tag)


def normalize_reference(ref: ImageReference) -> ImageReference:
    """Apply registry, ``library/`` and tag defaults to a parsed reference.

    Args:
        ref: Output of :func:`parse_reference`.

    Returns:
        A new :class:`ImageReference` with every field populated.
    """
    registry = ref.registry
    repository = ref.repository

    if not registry:
        registry = DEFAULT_REGISTRY
    elif repository.startswith(registry + "/"):
        repository = repository[len(registry) + 1 :]

    # Official images live under "library/" on Docker Hub.
    if registry == DEFAULT_REGISTRY and "/" not in repository:
        repository = "library/" + repository

    return replace(ref, registry=registry, repository=repository, tag=ref.tag or DEFAULT_TAG)


def parse_image_reference(name: str) -> ImageReference:
    """Parse and normalize *name* in one step."""
    return normalize_reference(parse_reference(name))


def _split_tag(ref: str) -> tuple[str, str]:
    """Split ``repo:tag`` into ``(repo, tag)``; only a colon after the last ``/`` counts."""
    last_slash = ref.rfind("/")
    colon = ref.rfind(":")
    if colon > last_slash:
        return ref[:colon], ref[colon + 1 :]
    return ref, ""

"""
Pydantic data models for the downloadable sources of a wrapped binary.

A source ties one download URL to an optional operating system and CPU
architecture. A SourceSet keeps the sources in declaration order and picks
the one that fits a platform best.
"""

from typing import Iterator, List, Optional, Sequence, Set

from pydantic import BaseModel, ConfigDict, Field, RootModel

# Artifacts are often published under these short names
_ARCH_ALIASES = {
    "386": "x86",
    "amd64": "x64",
}
_OS_ALIASES = {
    "windows": "win32",
}


class Source(BaseModel):
    """
    A single downloadable artifact.

    Empty os or arch means the source is not tied to an operating system
    or architecture. A source with neither is a universal fallback.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    url: str = Field(..., description="URL to download from")
    os: str = Field("", description="Operating system, e.g. linux, darwin, windows")
    arch: str = Field("", description="Architecture, e.g. amd64, 386, arm64")
    exec_path: str = Field(
        "",
        alias="execPath",
        description="Executable path relative to the destination directory",
    )

    def specificity(self, os_candidates: Set[str], arch_candidates: Set[str]) -> Optional[int]:
        """
        Rank how well this source fits a platform.

        Returns:
            1 (os and arch match) to 4 (universal fallback), or None when
            the source does not apply to the platform.
        """
        os_match = bool(self.os) and self.os in os_candidates
        arch_match = bool(self.arch) and self.arch in arch_candidates

        if os_match and arch_match:
            return 1
        if os_match and not self.arch:
            return 2
        if arch_match and not self.os:
            return 3
        if not self.os and not self.arch:
            return 4
        return None


def os_candidates(os_name: str) -> Set[str]:
    candidates = {os_name}
    if os_name in _OS_ALIASES:
        candidates.add(_OS_ALIASES[os_name])
    return candidates


def arch_candidates(arch: str) -> Set[str]:
    candidates = {arch}
    if arch in _ARCH_ALIASES:
        candidates.add(_ARCH_ALIASES[arch])
    return candidates


def select_source(sources: Sequence[Source], os_name: str, arch: str) -> Optional[Source]:
    """
    Pick the most specific source for the given platform.

    Sources matching both os and arch win over os-only sources, which win
    over arch-only sources, which win over universal ones. Among equally
    specific sources the first declared wins.

    Args:
        sources: Candidate sources in declaration order
        os_name: Operating system identifier, e.g. "linux"
        arch: Architecture identifier, e.g. "amd64"

    Returns:
        The selected Source, or None if no source applies
    """
    platforms = os_candidates(os_name)
    arches = arch_candidates(arch)

    best: Optional[Source] = None
    best_rank: Optional[int] = None
    for source in sources:
        rank = source.specificity(platforms, arches)
        if rank is None:
            continue
        if best_rank is None or rank < best_rank:
            best, best_rank = source, rank
            if rank == 1:
                break

    return best


class SourceSet(RootModel[List[Source]]):
    """
    Ordered collection of sources for one binary.
    """

    root: List[Source] = Field(default_factory=list)

    def __iter__(self) -> Iterator[Source]:
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __bool__(self) -> bool:
        return bool(self.root)

    def add(self, source: Source) -> "SourceSet":
        """Returns a new SourceSet with the source appended."""
        return SourceSet(self.root + [source])

    def select(self, os_name: str, arch: str) -> Optional[Source]:
        return select_source(self.root, os_name, arch)

    @classmethod
    def from_list(cls, data: List[dict]) -> "SourceSet":
        """
        Create a SourceSet from a list of dictionaries.

        Args:
            data: Items like {"url": ..., "os": ..., "arch": ..., "execPath": ...}

        Returns:
            SourceSet instance
        """
        return cls.model_validate(data)

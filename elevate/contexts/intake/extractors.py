"""
Section extractors.

A SectionExtractor exposes one profile section in two steps: a cheap scan()
used to fingerprint the profile for caching, and a full extract() that is only
run on a cache miss. The orchestrator receives an explicit map of section name
to extractor and never looks inside them.

Profile export format (YAML or JSON):

    profile_id: jane-doe
    sections:
      headline:
        text: "Senior Data Engineer | Spark, Airflow, dbt"
      experience:
        items:
          - title: Data Engineer
            company: Acme
            description: Built the ingestion platform...
      skills:
        items: [Python, SQL, Spark]
      photo:
        exists: true
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from omegaconf import OmegaConf

from elevate.contexts.analysis.data_structures import ScanResult, SectionData
from elevate.contexts.analysis.exceptions import ExtractionFailure


class SectionExtractor(ABC):
    """Source of one profile section."""

    @abstractmethod
    async def scan(self) -> ScanResult:
        """Cheap presence/size check (no full content read)."""
        pass

    @abstractmethod
    async def extract(self) -> SectionData:
        """Full content read. Raise ExtractionFailure when the section is unreadable."""
        pass


class StaticSectionExtractor(SectionExtractor):
    """
    Extractor over an already-loaded section payload.

    Args:
        section: Section name (used in error messages)
        payload: Section dict from a profile export, or None when absent
    """

    def __init__(self, section: str, payload: Optional[Mapping[str, Any]]):
        self.section = section
        self.payload = payload

    def _parse(self) -> SectionData:
        if self.payload is None:
            return SectionData.absent()
        if not isinstance(self.payload, Mapping):
            raise ExtractionFailure(
                self.section, f"expected a mapping, got {type(self.payload).__name__}"
            )
        try:
            return SectionData.from_dict(self.payload)
        except (TypeError, ValueError) as exc:
            raise ExtractionFailure(self.section, str(exc)) from exc

    async def scan(self) -> ScanResult:
        data = self._parse()
        return ScanResult(exists=data.exists, count=data.count)

    async def extract(self) -> SectionData:
        return self._parse()


@dataclass
class ProfileExport:
    """Profile loaded from an export file."""

    profile_id: str
    sections: Dict[str, Any] = field(default_factory=dict)

    def extractors(self) -> Dict[str, SectionExtractor]:
        return {
            name: StaticSectionExtractor(name, payload) for name, payload in self.sections.items()
        }


def load_profile_export(path: Union[str, Path]) -> ProfileExport:
    """
    Load a profile export file.

    Args:
        path: YAML or JSON file (JSON is valid YAML)

    Returns:
        ProfileExport (profile_id defaults to the file stem)

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file has no "sections" mapping
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Profile export not found: {path}")

    data = OmegaConf.to_container(OmegaConf.load(path), resolve=True)
    sections = data.get("sections") if isinstance(data, dict) else None
    if not isinstance(sections, dict):
        raise ValueError(f"{path}: expected a 'sections' mapping")

    return ProfileExport(profile_id=str(data.get("profile_id") or path.stem), sections=sections)


def load_profile_extractors(path: Union[str, Path]) -> Dict[str, SectionExtractor]:
    """Load a profile export and return its section name -> extractor map."""
    return load_profile_export(path).extractors()

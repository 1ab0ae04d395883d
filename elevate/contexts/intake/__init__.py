"""
Intake Context

Responsibilities:
- Reads profile content from its source (profile export files, host applications)
- Exposes each profile section through a SectionExtractor (scan + extract)

Owns: Section extraction contract and file-backed extractors
Never: Scores, evaluates or caches profile content
"""

from elevate.contexts.intake.extractors import (
    ProfileExport,
    SectionExtractor,
    StaticSectionExtractor,
    load_profile_export,
    load_profile_extractors,
)

"""Deterministic refinement of extraction instructions from failure patterns."""
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from schemas.enums import FailurePattern

INSTRUCTIONS_TITLE = "# Tender Extraction Instructions"

BASE_FIELDS = """Extract tender information from this Malaysian government tender listing (PDF).

REQUIRED FIELDS (extract exactly as shown):
1. BIL - Item number (integer, e.g., 1, 2, 3)
2. TARIKH - Date in DD/MM/YYYY format (e.g., 03/07/2024)
3. DAFTAR - Registration/Reference code
4. BIDANG - Category/Field description (full text)
5. KOD BIDANG - Code (exactly 6 digits, e.g., 010302)
6. KETERANGAN - Description (full text)
7. STATUS - Status (exactly "Aktif" or "Tidak Aktif")"""

BASE_RULES = """CRITICAL RULES:
- Extract EVERY visible row/entry from the table
- Preserve original Malay text exactly
- Do NOT invent or guess missing data
- If a field is unclear or missing, return null for that field"""

OUTPUT_CONTRACT = """OUTPUT FORMAT:
Return ONLY a valid JSON array. NO explanations.
[
  {
    "bil": 1,
    "tarikh": "03/07/2024",
    "daftar": "code",
    "bidang": "PENERBITAN DAN PENYIARAN/ PERALATAN PENERBITAN/PERCETAKAN",
    "kod_bidang": "010302",
    "keterangan": "Full description text",
    "status": "Aktif"
  }
]

If NO data is found or extraction fails, return: []"""

CORRECTIVE_CLAUSES = {
    FailurePattern.CODE_FORMAT: (
        "- KOD BIDANG MUST be exactly 6 numeric digits. Verify the digit count twice.",
        "- Do not include spaces, dashes, or other separators in codes.",
    ),
    FailurePattern.STATUS_FORMAT: (
        '- STATUS must be EXACTLY "Aktif" or "Tidak Aktif" (case-sensitive).',
        "- Do not add extra text, numbers, or symbols to STATUS.",
    ),
    FailurePattern.TEXT_CONTENT: (
        "- BIDANG and KETERANGAN contain full Malay descriptions.",
        "- Preserve the full original text verbatim, including special characters.",
        "- Do not shorten, translate, or paraphrase descriptions.",
    ),
    FailurePattern.DATE_FORMAT: (
        "- TARIKH must be normalized to DD/MM/YYYY (e.g., 03/07/2024).",
        "- Convert from any other date format; day comes before month.",
    ),
    FailurePattern.SEQUENCE_FORMAT: (
        "- BIL is the row number printed in the first column. Return it as a JSON integer, not a string.",
        "- Do not renumber rows; copy BIL exactly as printed.",
    ),
    FailurePattern.REFERENCE_FORMAT: (
        "- DAFTAR must be copied character for character. Do not leave it empty when a value is visible.",
    ),
}


@dataclass(frozen=True)
class InstructionSet:
    """A complete, self-contained extraction instruction document."""
    patterns: Tuple[FailurePattern, ...]
    text: str

    @property
    def clause_count(self) -> int:
        return sum(len(CORRECTIVE_CLAUSES[p]) for p in self.patterns)


def canonical_patterns(patterns: Iterable[FailurePattern]) -> Tuple[FailurePattern, ...]:
    """De-duplicate patterns and put them in enum order."""
    wanted = {FailurePattern(p) for p in patterns}
    return tuple(p for p in FailurePattern if p in wanted)


def build_instructions(patterns: Tuple[FailurePattern, ...]) -> str:
    sections: List[str] = [INSTRUCTIONS_TITLE, BASE_FIELDS, BASE_RULES]
    if patterns:
        lines = ["CORRECTIONS FROM VALIDATED FAILURES:"]
        for pattern in patterns:
            lines.extend(CORRECTIVE_CLAUSES[pattern])
        sections.append("\n".join(lines))
    sections.append(OUTPUT_CONTRACT)
    return "\n\n".join(sections) + "\n"


def base_instructions() -> InstructionSet:
    return refine([])


def refine(patterns: Iterable[FailurePattern]) -> InstructionSet:
    """
    Map failure pattern tags to a revised instruction document.

    The document is rebuilt from the base every time, so refining twice with
    the same tags yields identical text instead of accumulating clauses.
    """
    ordered = canonical_patterns(patterns)
    return InstructionSet(patterns=ordered, text=build_instructions(ordered))

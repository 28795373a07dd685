"""Vision extraction collaborator: tender PDF -> raw candidate rows."""
import asyncio
import base64
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import anthropic

from errors import TransientExternalError
from improvement.refiner import base_instructions
from schemas.tender import ScoredRecord
from verifier.fields import score_record

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 8192


@dataclass
class RawCandidate:
    """One candidate row as returned by the vision service."""
    data: Dict[str, Any]
    raw_text: str

    def score(self) -> ScoredRecord:
        return score_record(self.data, self.raw_text)


def _load_array(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def extract_json_array(response: str) -> List[Any]:
    """
    Extract a JSON array from model output, handling markdown code blocks.

    Malformed or non-JSON text yields an empty list instead of raising.
    """
    parsed = _load_array(response.strip())

    if parsed is None:
        # Try fenced code blocks
        lines = response.split("\n")
        in_code_block = False
        block: List[str] = []
        for line in lines:
            if line.strip().startswith("```"):
                if in_code_block:
                    parsed = _load_array("\n".join(block))
                    if parsed is not None:
                        break
                    block = []
                in_code_block = not in_code_block
            elif in_code_block:
                block.append(line)

    if parsed is None:
        # Last resort: outermost [...] span
        start = response.find("[")
        end = response.rfind("]")
        if start != -1 and end > start:
            parsed = _load_array(response[start:end + 1])

    if parsed is None:
        logger.warning(f"No JSON found in response: {response[:200]!r}")
        return []
    if isinstance(parsed, dict):
        parsed = [parsed]
    if not isinstance(parsed, list):
        logger.warning("Response JSON is not an array")
        return []
    return parsed


def parse_candidates(response: str) -> List[RawCandidate]:
    """Split model output into per-row raw candidates, skipping non-objects."""
    candidates = []
    for item in extract_json_array(response):
        if not isinstance(item, dict):
            logger.debug(f"Skipping non-object row: {item!r}")
            continue
        candidates.append(RawCandidate(
            data=item,
            raw_text=json.dumps(item, ensure_ascii=False),
        ))
    return candidates


class Extractor(ABC):
    """Interface the learning loop expects from an extraction service."""

    def __init__(self, instructions: Optional[str] = None):
        self.instructions = instructions or base_instructions().text
        self.revision = 0

    def install_instructions(self, text: str) -> None:
        """Use new instructions for all subsequent calls."""
        self.instructions = text
        self.revision += 1
        logger.info(f"Extraction instructions installed (revision {self.revision})")

    @abstractmethod
    async def extract(self, document_path: Path) -> List[RawCandidate]:
        """Return every candidate row found in the document."""


class VisionExtractor(Extractor):
    """Sends a PDF plus the current instructions to the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str,
        instructions: Optional[str] = None,
        client: Optional[anthropic.Anthropic] = None,
    ):
        super().__init__(instructions)
        if client is None:
            if not api_key:
                raise ValueError("ANTHROPIC_API_KEY not provided")
            client = anthropic.Anthropic(api_key=api_key)
        self.client = client
        self.model = model

    def _call(self, document_path: Path) -> str:
        try:
            pdf_data = base64.standard_b64encode(Path(document_path).read_bytes()).decode("utf-8")
        except OSError as e:
            raise TransientExternalError(f"Cannot read document {document_path}: {e}") from e

        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=MAX_OUTPUT_TOKENS,
                messages=[{
                    "role": "user",
                    "content": [
                        {
                            "type": "document",
                            "source": {
                                "type": "base64",
                                "media_type": "application/pdf",
                                "data": pdf_data,
                            },
                        },
                        {"type": "text", "text": self.instructions},
                    ],
                }],
            )
        except anthropic.APIError as e:
            raise TransientExternalError(f"Extraction call failed for {document_path}: {e}") from e

        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    async def extract(self, document_path: Path) -> List[RawCandidate]:
        """
        Extract candidate tender rows from a PDF.

        Raises:
            TransientExternalError: If the document is unreadable or the API call fails
        """
        logger.info(f"Extracting data from PDF: {document_path}")
        text = await asyncio.to_thread(self._call, document_path)
        logger.info(f"Vision response received ({len(text)} chars)")
        return parse_candidates(text)

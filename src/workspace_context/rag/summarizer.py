"""LLM-backed summarization for text too large to present verbatim."""

from dataclasses import dataclass, field
from pathlib import Path

from ..errors import ConfigurationError, SummarizationError
from ..llm import LLMClient
from ..logging_config import get_logger
from .chunker import Chunker, ChunkOptions, ChunkStrategy, TextChunk

logger = get_logger(__name__)

SUMMARY_STYLES = ("brief", "detailed", "technical")

# Files above this size are chunked before summarizing
LARGE_FILE_CHARS = 10_000

SUMMARIZER_SYSTEM_PROMPT = """You are an expert at creating concise, informative summaries of code and technical documentation.
Focus on the main purpose, key functionality, and important details.
Preserve technical accuracy while making the content accessible.
If the text contains code, highlight the main functions, classes, and their purposes."""

_STYLE_INSTRUCTIONS = {
    "brief": " in a brief, concise manner",
    "detailed": " in detail, preserving important information",
    "technical": " focusing on technical aspects and key functionality",
}

_CODE_INDICATORS = (
    "func ", "function ", "class ", "def ", "interface ", "type ",
    "import ", "package ", "module ", "const ", "var ",
    "{", "}", "(", ")", "[", "]", "=", "==", "!=",
)


def contains_code(text: str) -> bool:
    """Heuristic: at least three distinct code indicators appear in text."""
    lowered = text.lower()
    return sum(1 for indicator in _CODE_INDICATORS if indicator in lowered) >= 3


@dataclass
class SummaryOptions:
    max_length: int = 500  # characters
    style: str = "technical"
    preserve_tags: list[str] = field(default_factory=lambda: ["func", "class", "interface", "type"])
    include_code: bool = True


class Summarizer:
    """Condenses text through the LLM, chunking first when the input is large."""

    def __init__(self, llm_client: LLMClient, model_name: str, options: SummaryOptions | None = None) -> None:
        options = options or SummaryOptions()
        if options.style not in SUMMARY_STYLES:
            raise ConfigurationError(f"unsupported summary style: {options.style!r}")
        if options.max_length < 1:
            raise ConfigurationError(f"max_length must be positive, got {options.max_length}")

        self.llm_client = llm_client
        self.model_name = model_name
        self.options = options

    def summarize_text(self, text: str) -> str:
        """Summarize text, or return it unchanged if it already fits.

        Raises:
            SummarizationError: empty input or the LLM call failed
        """
        if not text:
            raise SummarizationError("cannot summarize empty text")

        if len(text) <= self.options.max_length:
            return text

        prompt = self.build_prompt(text)
        try:
            summary = self.llm_client.generate(self.model_name, prompt, SUMMARIZER_SYSTEM_PROMPT)
        except Exception as e:
            raise SummarizationError(f"failed to generate summary: {e}") from e

        return summary.strip()

    def summarize_chunks(self, chunks: list[TextChunk]) -> list[str]:
        summaries = []
        for chunk in chunks:
            try:
                summaries.append(self.summarize_text(chunk.content))
            except SummarizationError as e:
                raise SummarizationError(f"failed to summarize chunk {chunk.chunk_index}: {e}") from e
        return summaries

    def summarize_file(self, file_path: str | Path) -> str:
        """Summarize a file, prefixed with "File: <path>".

        Raises:
            SummarizationError: the file cannot be read or summarized
        """
        try:
            content = Path(file_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise SummarizationError(f"failed to read file {file_path}: {e}") from e

        if len(content) > LARGE_FILE_CHARS:
            summary = self._summarize_large_text(content)
        else:
            summary = self.summarize_text(content)

        return f"File: {file_path}\n{summary}"

    def sliding_window_summary(self, text: str, window_size: int) -> str:
        """Summarize overlapping line windows (50% overlap), then combine.

        Args:
            text: Text to summarize
            window_size: Window length in lines; text no longer than this many
                characters is summarized in one call
        """
        if window_size < 1:
            raise ConfigurationError(f"window_size must be positive, got {window_size}")

        if len(text) <= window_size:
            return self.summarize_text(text)

        lines = text.split("\n")
        step = max(window_size // 2, 1)
        summaries = []

        for start in range(0, len(lines), step):
            end = min(start + window_size, len(lines))
            window = "\n".join(lines[start:end])
            try:
                summaries.append(self.summarize_text(window))
            except SummarizationError as e:
                raise SummarizationError(
                    f"failed to summarize window starting at line {start + 1}: {e}"
                ) from e
            if end >= len(lines):
                break

        return self._combine(summaries)

    def build_prompt(self, text: str) -> str:
        parts = ["Please summarize the following text", _STYLE_INSTRUCTIONS[self.options.style]]

        if self.options.include_code and contains_code(text):
            parts.append(". Include important code structures and function signatures")

        if self.options.preserve_tags:
            parts.append(f". Pay special attention to: {', '.join(self.options.preserve_tags)}")

        parts.append(f". Keep the summary under {self.options.max_length} characters.\n\n")
        parts.append("Text to summarize:\n")
        parts.append(text)
        return "".join(parts)

    def _summarize_large_text(self, content: str) -> str:
        chunker = Chunker(ChunkOptions(
            strategy=ChunkStrategy.BY_SEMANTIC_BOUNDARIES,
            max_size=200,
            overlap_size=20,
        ))
        chunks = chunker.chunk_text(content)
        logger.debug("Summarizing %s chunks", len(chunks))
        return self._combine(self.summarize_chunks(chunks))

    def _combine(self, summaries: list[str]) -> str:
        # At most one extra pass over the joined summaries
        combined = "\n\n".join(summaries)
        if len(combined) > self.options.max_length * 2:
            return self.summarize_text(combined)
        return combined
